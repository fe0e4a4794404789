"""
In-process fan-out of crawl progress events.

The crawler only knows a synchronous ``ProgressSink``; this module turns
that into per-subscriber asyncio queues (one per WebSocket client).
Publishing never blocks: a subscriber whose queue is full misses the event.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from crawler.models import ProgressEvent, ProgressSink

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


class ProgressBroadcaster:
    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue[dict[str, Any]]] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[dict[str, Any]]) -> None:
        self._subscribers.discard(queue)

    @asynccontextmanager
    async def subscription(self) -> AsyncIterator[asyncio.Queue[dict[str, Any]]]:
        queue = self.subscribe()
        try:
            yield queue
        finally:
            self.unsubscribe(queue)

    def publish(self, message: dict[str, Any]) -> int:
        """Deliver ``message`` to every subscriber with room. Returns deliveries."""
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.debug("Progress subscriber queue full, dropping %s event", message.get("status"))
        return delivered

    def sink_for(self, website_id: int, job_id: int | None = None) -> ProgressSink:
        """A ProgressSink that tags events with the website and job they belong to."""

        def _sink(event: ProgressEvent) -> None:
            self.publish({"type": "crawl_progress", "website_id": website_id, "job_id": job_id, **event.to_dict()})

        return _sink

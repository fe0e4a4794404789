"""
Crawler Manager — one active crawl per website
================================================
Owns the in-process registry of running crawls. For every job it:

  1. Reserves the website key (atomic check-and-insert)
  2. Resolves ``auto`` to a concrete fetch strategy
  3. Races the crawl against the job-level wall clock
  4. Releases the key when the race settles, whatever the outcome

One manager instance per process; pass it explicitly to whatever needs it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from core.config import settings
from core.models import CrawlStrategy
from crawler.engine import CrawlEngine
from crawler.exceptions import CrawlAlreadyActiveError, CrawlTimeoutError
from crawler.fetchers import BaseFetcher, FetcherFactory
from crawler.models import CrawlOptions, CrawlResult, ProgressSink
from crawler.strategy_detector import StrategyDetector

logger = logging.getLogger(__name__)

WebsiteKey = str | int


@dataclass(eq=False, slots=True)
class ActiveCrawl:
    """Registry entry for a running crawl."""

    key: WebsiteKey
    url: str
    options: CrawlOptions
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    strategy: CrawlStrategy | None = None
    engine: CrawlEngine | None = None
    cancel_requested: bool = False
    _started_monotonic: float = field(default_factory=time.monotonic)

    def cancel(self) -> None:
        self.cancel_requested = True
        if self.engine is not None:
            self.engine.cancel()

    def status(self) -> dict[str, Any]:
        engine = self.engine
        return {
            "website_key": self.key,
            "url": self.url,
            "strategy": self.strategy.value if self.strategy else None,
            "started_at": self.started_at.isoformat(),
            "elapsed_seconds": round(time.monotonic() - self._started_monotonic, 1),
            "pages_crawled": engine.pages_crawled if engine else 0,
            "failed_pages": engine.failed_pages if engine else 0,
            "products_found": engine.products_found if engine else 0,
            "cancel_requested": self.cancel_requested,
        }


class CrawlerManager:
    """
    Usage:
        manager = CrawlerManager()
        result = await manager.start_crawl(website.id, website.url, options, on_progress)
    """

    def __init__(
        self,
        *,
        rendered_available: bool | None = None,
        detector_factory: Callable[[CrawlOptions], StrategyDetector] = StrategyDetector,
        fetcher_factory: Callable[[CrawlStrategy, CrawlOptions], BaseFetcher] = FetcherFactory.create,
    ) -> None:
        self.rendered_available = (
            settings.rendered_crawling_enabled if rendered_available is None else rendered_available
        )
        self._detector_factory = detector_factory
        self._fetcher_factory = fetcher_factory
        self._jobs: dict[WebsiteKey, ActiveCrawl] = {}
        self._lock = asyncio.Lock()

    # ── Registry ───────────────────────────────────────────────────────

    async def reserve(self, key: WebsiteKey, url: str, options: CrawlOptions | None = None) -> ActiveCrawl:
        """Claim ``key`` for a new crawl. Raises CrawlAlreadyActiveError if taken."""
        async with self._lock:
            if key in self._jobs:
                raise CrawlAlreadyActiveError(key)
            job = ActiveCrawl(key=key, url=url, options=options or CrawlOptions.from_settings())
            self._jobs[key] = job
            return job

    async def release(self, job: ActiveCrawl) -> None:
        async with self._lock:
            if self._jobs.get(job.key) is job:
                del self._jobs[job.key]

    def is_active(self, key: WebsiteKey) -> bool:
        return key in self._jobs

    def get_active_job(self, key: WebsiteKey) -> ActiveCrawl | None:
        return self._jobs.get(key)

    def list_active_jobs(self) -> list[ActiveCrawl]:
        return list(self._jobs.values())

    def get_status(self, key: WebsiteKey) -> dict[str, Any] | None:
        job = self._jobs.get(key)
        return job.status() if job is not None else None

    # ── Lifecycle ──────────────────────────────────────────────────────

    async def start_crawl(
        self,
        key: WebsiteKey,
        url: str,
        options: CrawlOptions | None = None,
        on_progress: ProgressSink | None = None,
    ) -> CrawlResult:
        job = await self.reserve(key, url, options)
        return await self.run(job, on_progress)

    async def run(self, job: ActiveCrawl, on_progress: ProgressSink | None = None) -> CrawlResult:
        """
        Crawl a reserved job to the end.

        Raises CrawlTimeoutError when ``max_crawl_time_ms`` elapses, and
        propagates crawl-fatal errors such as FetcherInitError.
        """
        try:
            job.strategy = await self.resolve_strategy(job.url, job.options)
            logger.info("[Crawler] Using %s strategy for %s", job.strategy, job.url)

            fetcher = self._fetcher_factory(job.strategy, job.options)
            engine = CrawlEngine(job.url, fetcher, job.options, on_progress)
            job.engine = engine
            if job.cancel_requested:
                engine.cancel()

            limit_ms = job.options.max_crawl_time_ms
            try:
                return await asyncio.wait_for(engine.crawl(), timeout=limit_ms / 1000)
            except asyncio.TimeoutError:
                engine.cancel()
                logger.warning("[Crawler] Crawl of %s timed out after %dms", job.url, limit_ms)
                raise CrawlTimeoutError(job.key, limit_ms) from None
        finally:
            await self.release(job)

    async def resolve_strategy(self, url: str, options: CrawlOptions) -> CrawlStrategy:
        strategy = CrawlStrategy(options.strategy)

        if strategy == CrawlStrategy.AUTO:
            if not self.rendered_available:
                logger.info("[Crawler] Rendered crawling unavailable, using static for %s", url)
                return CrawlStrategy.STATIC
            strategy = await self._detector_factory(options).detect(url)

        if strategy == CrawlStrategy.RENDERED and not self.rendered_available:
            logger.info("[Crawler] Rendered crawling unavailable, falling back to static for %s", url)
            return CrawlStrategy.STATIC
        return strategy

    async def cancel_crawl(self, key: WebsiteKey) -> bool:
        """Cancel and unregister the crawl for ``key``. False if none was active."""
        async with self._lock:
            job = self._jobs.pop(key, None)
        if job is None:
            return False
        job.cancel()
        logger.info("[Crawler] Cancelled crawl for %s", key)
        return True

    async def shutdown(self) -> None:
        """Cancel every active crawl (application shutdown)."""
        async with self._lock:
            jobs = list(self._jobs.values())
            self._jobs.clear()
        for job in jobs:
            job.cancel()

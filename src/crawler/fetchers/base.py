"""Abstract base class for page fetch strategies (Strategy Pattern)."""

from __future__ import annotations

from abc import ABC, abstractmethod

from core.models import CrawlStrategy
from crawler.models import CrawlOptions


class BaseFetcher(ABC):
    """
    Contract for all page fetchers used by the crawl engine.

    Lifecycle: ``open()`` once, ``fetch_page()`` many times, ``close()``
    exactly once at the end (closing twice is harmless).

    Principles:
    - ``fetch_page`` raises on any failure; the engine decides what a
      failed page means.
    - ``open`` failures are crawl-fatal.
    - ``abort`` is synchronous and never blocks: it only starts teardown
      so an in-flight fetch is interrupted.
    """

    strategy: CrawlStrategy

    def __init__(self, options: CrawlOptions) -> None:
        self.options = options
        self.last_headers: dict[str, str] = {}

    async def open(self) -> None:
        """Acquire the underlying client/browser."""

    @abstractmethod
    async def fetch_page(self, url: str) -> str:
        """Return the page's HTML."""
        ...

    def abort(self) -> None:
        """Start tearing down resources without waiting."""

    @abstractmethod
    async def close(self) -> None:
        ...

    async def __aenter__(self) -> BaseFetcher:
        await self.open()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

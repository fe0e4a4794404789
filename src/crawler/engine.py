"""
Crawl Engine — breadth-first walk of one storefront
=====================================================
Loop over a FIFO frontier seeded with the start URL:

  1. Pop the next URL, skipping anything already visited
  2. Fetch it through the injected fetcher
  3. Detect the platform (first successful page only)
  4. Extract products, discover links, grow the frontier
  5. Emit a progress event, then pause for the configured delay

Stops when the frontier is empty, ``max_pages`` pages were crawled, the
crawl was cancelled, or the failed-page budget is used up. A failed page
is reported and counted; it never aborts the crawl. The fetcher is always
closed on the way out, whatever ended the loop.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from crawler.deduplicator import deduplicate
from crawler.discovery import compile_listing_patterns, discover_links
from crawler.extractor import PageExtractor
from crawler.fetchers.base import BaseFetcher
from crawler.models import (
    CrawlOptions,
    CrawlResult,
    CrawlStatus,
    Platform,
    ProgressEvent,
    ProgressSink,
    ProgressStatus,
    RawProduct,
)
from crawler.platform_detector import PlatformDetector

logger = logging.getLogger(__name__)


class CrawlEngine:
    """
    Single-use crawler for one start URL.

    Usage:
        engine = CrawlEngine(url, StaticFetcher(options), options, on_progress)
        result = await engine.crawl()
        ...
        engine.cancel()  # from anywhere on the same loop
    """

    def __init__(
        self,
        start_url: str,
        fetcher: BaseFetcher,
        options: CrawlOptions | None = None,
        on_progress: ProgressSink | None = None,
    ) -> None:
        self.start_url = start_url
        self.hostname = (urlparse(start_url).hostname or "").lower()
        self.fetcher = fetcher
        self.options = options or CrawlOptions()
        self._on_progress = on_progress
        self._listing_re = compile_listing_patterns(self.options.listing_patterns)

        self._cancel_event = asyncio.Event()
        self._inflight: asyncio.Future[str] | None = None
        self._started = False
        self._fetcher_open = False

        self.pages_crawled = 0
        self.failed_pages = 0
        self.products_found = 0
        self.platform: Platform | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def cancel(self) -> None:
        """Stop the crawl: interrupt the in-flight fetch and the delay sleep."""
        if self._cancel_event.is_set():
            return
        logger.info("Cancelling crawl of %s", self.start_url)
        self._cancel_event.set()
        if self._inflight is not None and not self._inflight.done():
            self._inflight.cancel()
        if self._fetcher_open:
            self.fetcher.abort()

    async def crawl(self) -> CrawlResult:
        if self._started:
            raise RuntimeError("CrawlEngine.crawl() can only run once per instance")
        self._started = True

        options = self.options
        products: list[RawProduct] = []
        frontier: deque[str] = deque([self.start_url])
        queued: set[str] = {self.start_url}
        visited: set[str] = set()
        budget_exhausted = False

        self._emit(ProgressStatus.STARTING, f"Starting crawl of {self.start_url}")
        logger.info("🕷️  Crawl started: %s (max_pages=%d)", self.start_url, options.max_pages)

        try:
            try:
                await self.fetcher.open()
                self._fetcher_open = True
            except Exception as exc:
                self._emit(ProgressStatus.ERROR, f"Crawl failed to start: {exc}")
                raise

            while frontier and self.pages_crawled < options.max_pages and not self.cancelled:
                url = frontier.popleft()
                if url in visited:
                    continue
                visited.add(url)

                try:
                    html = await self._fetch(url)
                    page_products, links = self._process(url, html)
                except asyncio.CancelledError:
                    task = asyncio.current_task()
                    if not self.cancelled or (task is not None and task.cancelling()):
                        raise
                    break
                except Exception as exc:
                    if self.cancelled:
                        # aborted fetcher raising its own error
                        break
                    self.failed_pages += 1
                    logger.warning("Failed to crawl %s: %s", url, exc)
                    self._emit(ProgressStatus.ERROR, f"Error crawling {url}: {exc}")
                    if self.failed_pages >= options.max_failed_pages:
                        budget_exhausted = True
                        message = f"Too many failed pages ({self.failed_pages}). Stopping crawl."
                        logger.warning("%s [%s]", message, self.start_url)
                        self._emit(ProgressStatus.ERROR, message)
                        break
                else:
                    self.pages_crawled += 1
                    products.extend(page_products)
                    self.products_found = len(products)
                    for link in links:
                        if link not in visited and link not in queued:
                            queued.add(link)
                            frontier.append(link)
                    self._emit(ProgressStatus.CRAWLING, f"Crawled {url} ({len(page_products)} products)")

                if frontier and self.pages_crawled < options.max_pages:
                    await self._pause()
        finally:
            await self.fetcher.close()

        unique = deduplicate(products)
        status = CrawlStatus.CANCELLED if self.cancelled else CrawlStatus.COMPLETED
        self.products_found = len(unique)
        self._emit(ProgressStatus(status.value), f"Crawl {status}. Found {len(unique)} products.")
        logger.info(
            "🏁 Crawl %s: %s — %d pages, %d failed, %d products",
            status, self.start_url, self.pages_crawled, self.failed_pages, len(unique),
        )

        return CrawlResult(
            products=unique,
            status=status,
            pages_crawled=self.pages_crawled,
            failed_pages=self.failed_pages,
            platform=self.platform,
            budget_exhausted=budget_exhausted,
        )

    # ── Steps ──────────────────────────────────────────────────────────

    async def _fetch(self, url: str) -> str:
        self._inflight = asyncio.ensure_future(self.fetcher.fetch_page(url))
        try:
            return await self._inflight
        finally:
            self._inflight = None

    def _process(self, url: str, html: str) -> tuple[list[RawProduct], list[str]]:
        soup = BeautifulSoup(html, "html.parser")

        if self.platform is None:
            self.platform = PlatformDetector.detect(html, self.fetcher.last_headers)
            logger.info("  Platform detected for %s: %s", self.hostname, self.platform)

        page_products = PageExtractor(soup, url).extract(self.platform)
        links = discover_links(
            soup,
            url,
            self.hostname,
            self.platform,
            listing_patterns=self._listing_re,
            max_links=self.options.max_links_per_page,
        )
        return page_products, links

    async def _pause(self) -> None:
        """Inter-request delay; returns early on cancel."""
        if self.options.delay_ms <= 0 or self.cancelled:
            return
        try:
            await asyncio.wait_for(self._cancel_event.wait(), timeout=self.options.delay_ms / 1000)
        except asyncio.TimeoutError:
            pass

    def _emit(self, status: ProgressStatus, message: str) -> None:
        if self._on_progress is None:
            return
        event = ProgressEvent(
            status=status,
            message=message,
            pages_crawled=self.pages_crawled,
            products_found=self.products_found,
        )
        try:
            self._on_progress(event)
        except Exception:
            logger.exception("Progress sink raised on %s event, ignoring", status)

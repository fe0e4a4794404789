"""Plain HTTP fetcher: one browser-impersonating curl_cffi session per crawl."""

from __future__ import annotations

import logging

from curl_cffi.requests import AsyncSession as CurlSession

from core.models import CrawlStrategy
from crawler.fetchers.base import BaseFetcher

logger = logging.getLogger(__name__)


class StaticFetcher(BaseFetcher):
    """
    Fetches raw HTML without running scripts.

    The curl timeout covers the whole transfer, body read included.
    """

    strategy = CrawlStrategy.STATIC

    def __init__(self, options) -> None:
        super().__init__(options)
        self._session: CurlSession | None = None

    async def open(self) -> None:
        self._session = CurlSession(
            headers=self.options.request_headers,
            timeout=self.options.timeout_ms / 1000,
            impersonate="chrome120",
        )

    async def fetch_page(self, url: str) -> str:
        if self._session is None:
            raise RuntimeError("StaticFetcher.fetch_page() called before open()")

        response = await self._session.get(url, allow_redirects=True)
        response.raise_for_status()
        self.last_headers = dict(response.headers)
        logger.debug("GET %s -> %d (%d bytes)", url, response.status_code, len(response.content))
        return response.text

    async def close(self) -> None:
        session, self._session = self._session, None
        if session is not None:
            await session.close()

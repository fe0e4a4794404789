"""
Decide whether a site can be crawled with plain HTTP or needs a browser.

One short-timeout fetch of the start URL, then:
  - a client-side framework signature          -> rendered
  - under MIN_TEXT_CHARS of visible body text  -> rendered
  - anything else (known static platforms too) -> static
Any failure during detection means static.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from bs4 import BeautifulSoup
from curl_cffi.requests import AsyncSession as CurlSession

from core.models import CrawlStrategy
from crawler.models import CrawlOptions

logger = logging.getLogger(__name__)

MIN_TEXT_CHARS = 500

JS_FRAMEWORK_SIGNATURES: tuple[str, ...] = (
    "window.__NEXT_DATA__",
    "window.__NUXT__",
    "__GATSBY",
    "react-root",
    "ng-app",
    "v-app",
    "data-reactroot",
    "data-react-helmet",
)

STATIC_PLATFORM_SIGNATURES: tuple[str, ...] = (
    "woocommerce",
    "Magento",
    "OpenCart",
    "PrestaShop",
    "osCommerce",
)

HtmlFetcher = Callable[[str], Awaitable[str]]


def visible_text_length(html: str) -> int:
    soup = BeautifulSoup(html, "html.parser")
    root = soup.body or soup
    for tag in root.find_all(["script", "style", "noscript", "template"]):
        tag.decompose()
    return len(root.get_text("", strip=True))


def needs_rendering(html: str) -> CrawlStrategy:
    """Classify already-fetched markup."""
    for signature in JS_FRAMEWORK_SIGNATURES:
        if signature in html:
            logger.info("[Detect] JS framework marker %r found, using rendered", signature)
            return CrawlStrategy.RENDERED

    text_length = visible_text_length(html)
    if text_length < MIN_TEXT_CHARS:
        logger.info("[Detect] Minimal content (%d chars), using rendered", text_length)
        return CrawlStrategy.RENDERED

    for signature in STATIC_PLATFORM_SIGNATURES:
        if signature in html:
            logger.info("[Detect] Static platform %r found, using static", signature)
            return CrawlStrategy.STATIC

    return CrawlStrategy.STATIC


class StrategyDetector:
    """
    Resolves ``auto`` to a concrete strategy for one URL.

    ``fetch`` can be swapped for tests; by default a curl_cffi session
    with the detection timeout is used.
    """

    def __init__(self, options: CrawlOptions | None = None, fetch: HtmlFetcher | None = None) -> None:
        self.options = options or CrawlOptions()
        self._fetch = fetch or self._fetch_html

    async def detect(self, url: str) -> CrawlStrategy:
        timeout = self.options.detection_timeout_ms / 1000
        try:
            html = await asyncio.wait_for(self._fetch(url), timeout=timeout)
        except Exception as exc:
            logger.warning("[Detect] Detection failed for %s (%s), falling back to static", url, exc)
            return CrawlStrategy.STATIC
        return needs_rendering(html)

    async def _fetch_html(self, url: str) -> str:
        async with CurlSession(
            headers=self.options.request_headers,
            timeout=self.options.detection_timeout_ms / 1000,
            impersonate="chrome120",
        ) as client:
            response = await client.get(url, allow_redirects=True)
            response.raise_for_status()
            return response.text

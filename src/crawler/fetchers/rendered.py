"""
Rendered fetcher — headless Chromium through Playwright
=========================================================
For storefronts that build their catalogue client-side. Per page:

  1. Navigate (DOM ready), then wait for the network to go idle
  2. Let scripts settle; wait longer if a bot-check page is showing
  3. Scroll down in steps to trigger lazy loading, then back to the top
  4. Return the rendered HTML

``abort()`` closes the browser in the background, which makes any
in-flight navigation fail immediately instead of running to its timeout.
"""

from __future__ import annotations

import asyncio
import logging

from playwright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from core.models import CrawlStrategy
from crawler.exceptions import FetcherInitError
from crawler.fetchers.base import BaseFetcher

logger = logging.getLogger(__name__)

SETTLE_MS = 2000
BOT_CHECK_WAIT_MS = 5000
NETWORK_IDLE_TIMEOUT_MS = 10000
SCROLL_STEP_PX = 500
SCROLL_PAUSE_MS = 200
MAX_SCROLLS = 10

_BOT_CHECK_MARKERS = (
    "captcha",
    "cf-challenge",
    "challenge-platform",
    "are you a robot",
    "verify you are human",
)

_SCROLL_STEP_JS = """
(step) => {
    window.scrollBy(0, step);
    const root = document.scrollingElement || document.documentElement;
    return window.innerHeight + window.scrollY >= root.scrollHeight;
}
"""


def looks_like_bot_check(html: str) -> bool:
    lowered = html.lower()
    return any(marker in lowered for marker in _BOT_CHECK_MARKERS)


class RenderedFetcher(BaseFetcher):
    strategy = CrawlStrategy.RENDERED

    def __init__(self, options) -> None:
        super().__init__(options)
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._shutdown_task: asyncio.Task | None = None

    async def open(self) -> None:
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(
                headless=True,
                args=["--no-sandbox", "--disable-dev-shm-usage"],
            )
            self._context = await self._browser.new_context(
                user_agent=self.options.user_agent,
                viewport={"width": 1366, "height": 768},
                extra_http_headers={"Accept-Language": self.options.accept_language},
            )
        except Exception as exc:
            await self.close()
            raise FetcherInitError(f"Could not launch headless browser: {exc}") from exc
        logger.info("Headless Chromium started")

    async def fetch_page(self, url: str) -> str:
        if self._context is None:
            raise RuntimeError("RenderedFetcher is not open")

        page = await self._context.new_page()
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=self.options.render_timeout_ms)
            try:
                await page.wait_for_load_state("networkidle", timeout=NETWORK_IDLE_TIMEOUT_MS)
            except PlaywrightTimeoutError:
                logger.debug("Network never went idle on %s, continuing with what loaded", url)

            await page.wait_for_timeout(SETTLE_MS)
            if looks_like_bot_check(await page.content()):
                logger.info("Bot check detected on %s, waiting %dms", url, BOT_CHECK_WAIT_MS)
                await page.wait_for_timeout(BOT_CHECK_WAIT_MS)

            await self._auto_scroll(page)
            return await page.content()
        finally:
            try:
                await page.close()
            except PlaywrightError as exc:
                logger.debug("Page already gone for %s: %s", url, exc)

    @staticmethod
    async def _auto_scroll(page: Page) -> None:
        for _ in range(MAX_SCROLLS):
            at_bottom = await page.evaluate(_SCROLL_STEP_JS, SCROLL_STEP_PX)
            await page.wait_for_timeout(SCROLL_PAUSE_MS)
            if at_bottom:
                break
        await page.evaluate("window.scrollTo(0, 0)")

    def abort(self) -> None:
        if self._shutdown_task is None:
            self._shutdown_task = asyncio.get_running_loop().create_task(self._shutdown())

    async def close(self) -> None:
        self.abort()
        await self._shutdown_task

    async def _shutdown(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._context = self._browser = self._playwright = None

        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as exc:
                logger.debug("Browser close failed: %s", exc)
        if playwright is not None:
            await playwright.stop()
            logger.info("Headless Chromium stopped")

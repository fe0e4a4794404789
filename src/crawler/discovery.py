"""
Link Discovery — frontier growth for a crawl
==============================================
From one fetched page, collects the same-site links worth visiting next:

  1. Pagination links (platform selectors + common pager markup)
  2. Category / listing links, recognised by their path

Pagination comes first so that a listing is exhausted before the crawl
wanders into other categories. The result is deduplicated, fragment-free
and capped to keep the frontier bounded on large catalogues.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from urllib.parse import urldefrag, urlparse

from bs4 import BeautifulSoup, Tag

from crawler.models import Platform
from crawler.normalizer import absolute_url
from crawler.platform_selectors import get_selectors

logger = logging.getLogger(__name__)

# ── Listing path patterns (English + Turkish storefront variants) ─────

DEFAULT_LISTING_PATTERNS: tuple[str, ...] = (
    r"/category/",
    r"/collections?/",
    r"/shop/",
    r"/products?/",
    r"/catalog/",
    r"/kategori/",
    r"/urun/",
    r"/urunler/",
    r"/magaza/",
    r"/grup/",
    r"/c/",
    r"/k/",
    r"/g/",
    r"\?.*kategori",
    r"\?.*category",
)

PAGINATION_SELECTORS: tuple[str, ...] = (
    ".pagination a",
    ".pager a",
    "a.page-numbers",
    ".page-link",
    'a[rel="next"]',
    ".next a",
    "a.next",
)

MAX_LINKS = 30


def compile_listing_patterns(patterns: Sequence[str] | re.Pattern[str] | None = None) -> re.Pattern[str]:
    if isinstance(patterns, re.Pattern):
        return patterns
    return re.compile("|".join(f"(?:{p})" for p in (patterns or DEFAULT_LISTING_PATTERNS)), re.IGNORECASE)


_DEFAULT_LISTING_RE = compile_listing_patterns()


def _bare_host(host: str | None) -> str:
    return (host or "").lower().removeprefix("www.")


def discover_links(
    page: str | BeautifulSoup,
    page_url: str,
    hostname: str | None = None,
    platform: Platform = Platform.GENERIC,
    *,
    listing_patterns: Sequence[str] | re.Pattern[str] | None = None,
    max_links: int = MAX_LINKS,
) -> list[str]:
    """
    Pagination and listing links of ``page`` that stay on ``hostname``.

    Args:
        page: Page HTML or its parsed tree.
        page_url: URL the page was fetched from (resolves relative hrefs).
        hostname: Site host; defaults to the host of ``page_url``.
        platform: Detected platform, adds its pagination selectors.
        listing_patterns: Regexes replacing the default listing patterns.
        max_links: Cap on the number of returned links.
    """
    soup = page if isinstance(page, BeautifulSoup) else BeautifulSoup(page, "html.parser")
    site = _bare_host(hostname or urlparse(page_url).hostname)
    listing_re = _DEFAULT_LISTING_RE if listing_patterns is None else compile_listing_patterns(listing_patterns)

    base_tag = soup.find("base", href=True)
    base_url = absolute_url(base_tag["href"], page_url) if base_tag is not None else None
    base_url = base_url or page_url

    links: list[str] = []
    seen: set[str] = set()

    def _accept(anchor: Tag) -> str | None:
        url = absolute_url(anchor.get("href"), base_url)
        if url is None:
            return None
        url = urldefrag(url).url
        if url in seen or _bare_host(urlparse(url).hostname) != site:
            return None
        return url

    pagination = tuple(dict.fromkeys([*PAGINATION_SELECTORS, *get_selectors(platform).pagination]))
    for selector in pagination:
        for element in soup.select(selector):
            anchor = element if element.name == "a" else element.find("a", href=True)
            if anchor is None:
                continue
            url = _accept(anchor)
            if url is None:
                continue
            seen.add(url)
            links.append(url)

    for anchor in soup.find_all("a", href=True):
        url = _accept(anchor)
        if url is None:
            continue
        parsed = urlparse(url)
        target = f"{parsed.path}?{parsed.query}" if parsed.query else parsed.path
        if not listing_re.search(target):
            continue
        seen.add(url)
        links.append(url)

    if len(links) > max_links:
        logger.debug("Capping %d discovered links to %d on %s", len(links), max_links, page_url)
    return links[:max_links]

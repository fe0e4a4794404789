"""
Page Extractor — product listings from one fetched page
=========================================================
Extraction order:
  1. Embedded schema.org JSON-LD (Product, ItemList, @graph)
  2. Container selectors of the hinted platform
  3. Generic selectors, when the platform set found nothing

Never raises because nothing matched: an unmatched page yields ``[]``.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from typing import Any
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from crawler.models import Platform, RawProduct
from crawler.normalizer import absolute_url, extract_sku, parse_price
from crawler.platform_selectors import PlatformSelectors, get_selectors

logger = logging.getLogger(__name__)

_IMAGE_ATTRIBUTES = ("src", "data-src", "data-lazy-src")
_PRICE_ATTRIBUTES = ("content", "data-price-amount", "data-price")


def _ld_types(node: dict[str, Any]) -> set[str]:
    """@type as a set of bare names ("schema:Product" -> "Product")."""
    raw = node.get("@type")
    values = raw if isinstance(raw, list) else [raw]
    return {str(v).rsplit("/", 1)[-1].rsplit(":", 1)[-1] for v in values if v}


def _iter_ld_products(data: Any) -> Iterator[dict[str, Any]]:
    if isinstance(data, list):
        for entry in data:
            yield from _iter_ld_products(entry)
        return
    if not isinstance(data, dict):
        return

    types = _ld_types(data)
    if "Product" in types:
        yield data
    if "ItemList" in types:
        for element in data.get("itemListElement") or []:
            if isinstance(element, dict) and isinstance(element.get("item"), dict):
                yield from _iter_ld_products(element["item"])
            else:
                yield from _iter_ld_products(element)
    if "@graph" in data:
        yield from _iter_ld_products(data["@graph"])


def _ld_text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def _ld_price(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    text = _ld_text(value)
    return parse_price(text) if text else None


def _ld_image(value: Any) -> str | None:
    if isinstance(value, list):
        value = value[0] if value else None
    if isinstance(value, dict):
        value = value.get("url") or value.get("@id")
    return _ld_text(value)


class PageExtractor:
    """
    Extracts RawProduct records from a page.

    Accepts raw HTML or an already parsed BeautifulSoup tree so that a
    crawl only parses every page once.

    Usage:
        products = PageExtractor(html, page_url).extract(Platform.SHOPIFY)
    """

    def __init__(self, html: str | BeautifulSoup, page_url: str) -> None:
        self.soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html, "html.parser")
        self.page_url = page_url
        self.base_url = self._resolve_base()

    def extract(self, platform: Platform = Platform.GENERIC) -> list[RawProduct]:
        products = self.extract_structured()
        if products:
            return products

        products = self._extract_with(get_selectors(platform))
        if not products and platform != Platform.GENERIC:
            logger.debug("No %s containers on %s, retrying with generic selectors", platform, self.page_url)
            products = self._extract_with(get_selectors(Platform.GENERIC))
        return products

    # ── Structured data ────────────────────────────────────────────────

    def extract_structured(self) -> list[RawProduct]:
        products: list[RawProduct] = []
        for script in self.soup.find_all("script", type="application/ld+json"):
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                data = json.loads(raw)
            except json.JSONDecodeError as exc:
                logger.debug("Skipping malformed JSON-LD on %s: %s", self.page_url, exc)
                continue

            for node in _iter_ld_products(data):
                product = self._product_from_ld(node)
                if product is not None:
                    products.append(product)
        return products

    def _product_from_ld(self, node: dict[str, Any]) -> RawProduct | None:
        name = _ld_text(node.get("name"))
        if not name:
            return None

        offers = node.get("offers")
        if isinstance(offers, list):
            offers = offers[0] if offers else None
        if not isinstance(offers, dict):
            offers = {}

        price = _ld_price(offers.get("price"))
        if price is None:
            price = _ld_price(offers.get("lowPrice"))

        sku = _ld_text(node.get("sku")) or _ld_text(node.get("productID")) or _ld_text(node.get("mpn"))
        url = _ld_text(node.get("url")) or _ld_text(offers.get("url"))

        return RawProduct(
            name=name,
            price=price,
            sku=sku,
            image_url=absolute_url(_ld_image(node.get("image")), self.base_url),
            product_url=absolute_url(url, self.base_url),
        )

    # ── Selector scraping ──────────────────────────────────────────────

    def _extract_with(self, selectors: PlatformSelectors) -> list[RawProduct]:
        containers: list[Tag] = []
        for selector in selectors.product_container:
            containers = self.soup.select(selector)
            if containers:
                break

        products: list[RawProduct] = []
        for container in containers:
            product = self._product_from_container(container, selectors)
            if product is not None:
                products.append(product)
        return products

    def _product_from_container(self, container: Tag, selectors: PlatformSelectors) -> RawProduct | None:
        name = self._name(container, selectors)
        if not name:
            return None

        return RawProduct(
            name=name,
            price=self._price(container, selectors),
            sku=extract_sku(container, selectors.sku_attributes, selectors.sku_text_selectors),
            image_url=self._image(container, selectors),
            product_url=self._link(container, selectors),
        )

    @staticmethod
    def _name(container: Tag, selectors: PlatformSelectors) -> str | None:
        for selector in selectors.name:
            element = container.select_one(selector)
            if element is None:
                continue
            text = " ".join(element.get_text(" ", strip=True).split())
            text = text or element.get("data-product-name") or element.get("title")
            if text:
                return text.strip()
        return None

    @staticmethod
    def _price(container: Tag, selectors: PlatformSelectors) -> float | None:
        for selector in selectors.price:
            element = container.select_one(selector)
            if element is None:
                continue
            raw = next((element.get(a) for a in _PRICE_ATTRIBUTES if element.get(a)), None)
            price = parse_price(raw or element.get_text(" ", strip=True))
            if price is not None:
                return price
        return None

    def _image(self, container: Tag, selectors: PlatformSelectors) -> str | None:
        for selector in selectors.image:
            element = container.select_one(selector)
            if element is not None:
                src = self._image_src(element)
                if src:
                    return src
        fallback = container.find("img")
        return self._image_src(fallback) if fallback is not None else None

    def _image_src(self, element: Tag) -> str | None:
        if element.name != "img":
            element = element.find("img") or element
        for attr in _IMAGE_ATTRIBUTES:
            url = absolute_url(element.get(attr), self.base_url)
            if url:
                return url
        return None

    def _link(self, container: Tag, selectors: PlatformSelectors) -> str | None:
        for selector in selectors.link:
            element = container.select_one(selector)
            if element is None:
                continue
            if element.name != "a":
                element = element.find("a", href=True) or element
            url = absolute_url(element.get("href"), self.base_url)
            if url:
                return url

        if container.name == "a":
            url = absolute_url(container.get("href"), self.base_url)
            if url:
                return url
        fallback = container.find("a", href=True)
        return absolute_url(fallback.get("href"), self.base_url) if fallback is not None else None

    def _resolve_base(self) -> str:
        base = self.soup.find("base", href=True)
        if base is not None and base.get("href", "").strip():
            return urljoin(self.page_url, base["href"].strip())
        return self.page_url

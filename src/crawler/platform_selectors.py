"""
Selector catalog per eCommerce platform.

Every field is an ordered list of CSS selectors; the first selector that
matches inside a product container wins for that field. ``generic`` is
always present and is the fallback when a platform set finds nothing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from crawler.models import Platform
from crawler.normalizer import DEFAULT_SKU_ATTRIBUTES

_ATTRIBUTE_SELECTOR = re.compile(r"^\[([\w-]+)\]$")


@dataclass(frozen=True, slots=True)
class PlatformSelectors:
    product_container: tuple[str, ...]
    name: tuple[str, ...]
    price: tuple[str, ...]
    sku: tuple[str, ...]
    image: tuple[str, ...]
    link: tuple[str, ...]
    pagination: tuple[str, ...]

    @property
    def sku_attributes(self) -> tuple[str, ...]:
        """Attribute names from ``[data-...]`` sku selectors, then the defaults."""
        names = [m.group(1) for s in self.sku if (m := _ATTRIBUTE_SELECTOR.match(s))]
        return tuple(dict.fromkeys([*names, *DEFAULT_SKU_ATTRIBUTES]))

    @property
    def sku_text_selectors(self) -> tuple[str, ...]:
        return tuple(s for s in self.sku if not _ATTRIBUTE_SELECTOR.match(s))


_PAGINATION = (".pagination a", ".pager a", "a.next", '[rel="next"]', ".load-more")

SELECTOR_CATALOG: dict[Platform, PlatformSelectors] = {
    Platform.GENERIC: PlatformSelectors(
        product_container=(
            ".product", ".product-item", ".product-card", "[data-product]",
            ".item", ".listing-item", "article.product",
        ),
        name=(
            ".product-name", ".product-title", "h2.title", "h3.title",
            "[data-product-name]", ".item-title", "a.product-link", "h2 a", "h3 a",
        ),
        price=(
            ".price", ".product-price", "[data-price]", ".current-price",
            ".sale-price", ".regular-price", "span.amount",
        ),
        sku=("[data-sku]", "[data-product-id]", ".sku", ".product-sku", "[data-item-id]"),
        image=(
            ".product-image img", ".product-img img", "img.product-image",
            "[data-product-image]", ".item-image img",
        ),
        link=(
            "a.product-link", ".product-name a", ".product-title a",
            'a[href*="/product"]', 'a[href*="/p/"]', "h2 a", "h3 a",
        ),
        pagination=_PAGINATION,
    ),
    Platform.SHOPIFY: PlatformSelectors(
        product_container=(".product-card", ".grid__item", ".product-item"),
        name=(".product-card__title", ".product__title", "h3"),
        price=(".price-item--sale", ".price", ".product__price", ".money"),
        sku=("[data-variant-id]", "[data-product-id]"),
        image=(".product-card__image img", "img.lazyload", ".card__media img"),
        link=(".product-card__link", "a.product__link", 'a[href*="/products/"]'),
        pagination=_PAGINATION,
    ),
    Platform.WOOCOMMERCE: PlatformSelectors(
        product_container=(".product", ".type-product"),
        name=(".woocommerce-loop-product__title", "h2"),
        # Sale markup wraps the old price in <del>; the current one is in <ins>
        price=(".price ins .woocommerce-Price-amount", ".price", ".woocommerce-Price-amount"),
        sku=("[data-product_id]", "[data-product_sku]"),
        image=(".woocommerce-LoopProduct-link img", "img.attachment-woocommerce_thumbnail"),
        link=(".woocommerce-LoopProduct-link", "a.woocommerce-loop-product__link"),
        pagination=("a.page-numbers", ".woocommerce-pagination a", *_PAGINATION),
    ),
    Platform.MAGENTO: PlatformSelectors(
        product_container=(".product-item", ".item.product"),
        name=(".product-item-name", ".product-name"),
        price=("[data-price-amount]", ".price-box .price"),
        sku=("[data-product-id]", "[data-product-sku]"),
        image=(".product-image-photo",),
        link=(".product-item-link", "a.product-item-photo"),
        pagination=(".pages-item-next a", ".pages a", *_PAGINATION),
    ),
}


def get_selectors(platform: Platform | str | None) -> PlatformSelectors:
    """Selector set for ``platform``; unknown platforms get the generic set."""
    try:
        return SELECTOR_CATALOG[Platform(platform)]
    except (KeyError, ValueError):
        return SELECTOR_CATALOG[Platform.GENERIC]

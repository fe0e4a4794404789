"""Merge raw product records that describe the same listing."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace

from crawler.models import RawProduct

_BACKFILL_FIELDS = ("price", "sku", "image_url", "product_url")


def identity_key(product: RawProduct) -> tuple[str, str]:
    """sku, else product_url, else name."""
    if product.sku:
        return ("sku", product.sku)
    if product.product_url:
        return ("url", product.product_url)
    return ("name", product.name)


def deduplicate(products: Iterable[RawProduct]) -> list[RawProduct]:
    """
    Keep the first record per identity key; later duplicates only fill
    fields the kept record is missing. Output keeps first-seen order.
    """
    merged: dict[tuple[str, str], RawProduct] = {}

    for product in products:
        key = identity_key(product)
        canonical = merged.get(key)
        if canonical is None:
            merged[key] = product
            continue

        missing = {
            name: getattr(product, name)
            for name in _BACKFILL_FIELDS
            if getattr(canonical, name) is None and getattr(product, name) is not None
        }
        if missing:
            merged[key] = replace(canonical, **missing)

    return list(merged.values())

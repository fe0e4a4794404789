"""
Price / text normalisation helpers.

Pure functions with no I/O. Shared by the page extractor (prices, SKUs,
URLs) and by the similarity scorer (names).
"""

from __future__ import annotations

import math
import re
from collections.abc import Sequence
from urllib.parse import urljoin, urlparse

from bs4 import Tag

DEFAULT_SKU_ATTRIBUTES: tuple[str, ...] = (
    "data-sku",
    "data-product-id",
    "data-variant-id",
    "data-item-id",
)
SKU_TEXT_SELECTORS: tuple[str, ...] = (".sku", ".product-sku")

_NON_PRICE_CHARS = re.compile(r"[^\d.,]")
# "Rs. 499", "12." and ".," carry separators that are not part of a number
_DANGLING_SEPARATOR = re.compile(r"[.,](?!\d)")
_NON_WORD = re.compile(r"\W+")
# A label only counts when a separator follows it: "SKU: A-1", "Item No. 7".
# "PART-4471" is a SKU, not a label.
_SKU_LABEL = re.compile(
    r"^\s*(?:(?:sku|item|ref(?:erence)?|part|model|code)\b\.?\s*(?:(?:no\.?|number)\s*)?)?"
    r"(?:[:#]\s*|(?<=[\w.])\s+)",
    re.IGNORECASE,
)
_SKU_TOKEN = re.compile(r"[A-Za-z0-9][A-Za-z0-9._/-]*")
_REJECTED_SCHEMES = ("javascript:", "mailto:", "tel:", "data:")


def parse_price(text: str | None) -> float | None:
    """
    Parse a price string written in either US or EU notation.

    >>> parse_price("1.234,56")
    1234.56
    >>> parse_price("$19.99")
    19.99
    """
    if not text:
        return None

    cleaned = _NON_PRICE_CHARS.sub("", _DANGLING_SEPARATOR.sub("", text))
    if not cleaned:
        return None

    last_dot = cleaned.rfind(".")
    last_comma = cleaned.rfind(",")

    if last_dot != -1 and last_comma != -1:
        # Whichever separator comes last is the decimal point
        if last_comma > last_dot:
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif last_comma != -1:
        head, _, tail = cleaned.rpartition(",")
        if len(tail) == 2:
            cleaned = f"{head.replace(',', '')}.{tail}"
        else:
            cleaned = cleaned.replace(",", "")
    elif cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")

    try:
        value = float(cleaned)
    except ValueError:
        return None

    if not math.isfinite(value):
        return None
    return value


def normalize_name(text: str | None) -> str:
    """Lowercase, punctuation to spaces, whitespace collapsed."""
    if not text:
        return ""
    return _NON_WORD.sub(" ", text.lower()).strip()


def extract_sku(
    element: Tag,
    attributes: Sequence[str] = DEFAULT_SKU_ATTRIBUTES,
    text_selectors: Sequence[str] = SKU_TEXT_SELECTORS,
) -> str | None:
    """
    Find a SKU on a product container.

    Attributes are tried in order on the element itself and then on its
    descendants. Falls back to the text of SKU-labelled children,
    e.g. ``<span class="sku">SKU: ABC-123</span>`` gives ``ABC-123``.
    """
    for attr in attributes:
        value = element.get(attr)
        if not value:
            holder = element.select_one(f"[{attr}]")
            value = holder.get(attr) if holder is not None else None
        if isinstance(value, list):
            value = " ".join(value)
        if value and value.strip():
            return value.strip()

    for selector in text_selectors:
        for node in element.select(selector):
            text = node.get_text(" ", strip=True)
            token = _SKU_TOKEN.search(_SKU_LABEL.sub("", text, count=1))
            if token:
                return token.group(0).rstrip("._/-")

    return None


def absolute_url(href: str | None, base: str) -> str | None:
    """Resolve ``href`` against ``base``; None for non-navigable references."""
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith("#"):
        return None
    if href.lower().startswith(_REJECTED_SCHEMES):
        return None

    resolved = urljoin(base, href)
    if urlparse(resolved).scheme not in ("http", "https"):
        return None
    return resolved

"""
Fast signature-based detection of the eCommerce platform behind a page.

Looks at the raw HTML and, when available, the HTTP response headers.
Runs in milliseconds and is only done once per crawl, on the first page
that was fetched successfully.
"""

from __future__ import annotations

import re

from crawler.models import Platform


# ──────────────────────────────────────────────────────────────────────
# Known signatures per platform, checked in declaration order.
# Each entry is a (source, regex) tuple.
# source: "html" | "header_key" | "header_value"
# ──────────────────────────────────────────────────────────────────────

_PLATFORM_SIGNATURES: dict[Platform, list[tuple[str, str]]] = {
    Platform.SHOPIFY: [
        ("html", r"cdn\.shopify\.com"),
        ("html", r"window\.Shopify"),
        ("html", r"Shopify\.theme"),
        ("html", r"shopify-section"),
        ("header_key", r"^x-shopify"),
        ("header_value", r"^shopify$"),
    ],
    Platform.WOOCOMMERCE: [
        ("html", r"wp-content/plugins/woocommerce"),
        ("html", r"woocommerce"),
        ("html", r"wc-block-"),
    ],
    Platform.MAGENTO: [
        ("html", r"Magento"),
        ("html", r"\bmage/"),
        ("html", r"mage-cache-storage"),
        ("header_key", r"^x-magento"),
    ],
}


class PlatformDetector:
    """
    Detects the eCommerce platform from raw HTML and HTTP headers.

    Usage:
        platform = PlatformDetector.detect(html=page_html, headers=response_headers)
    """

    @staticmethod
    def detect(
        html: str,
        headers: dict[str, str] | None = None,
    ) -> Platform:
        """
        Return the first platform with at least one matching signature,
        or ``Platform.GENERIC`` when nothing matches.
        """
        normalized_headers = {k.lower(): v for k, v in (headers or {}).items()}

        for platform, signatures in _PLATFORM_SIGNATURES.items():
            for source, pattern in signatures:
                if source == "html":
                    if re.search(pattern, html, re.IGNORECASE):
                        return platform
                elif source == "header_key":
                    if any(re.search(pattern, key) for key in normalized_headers):
                        return platform
                elif source == "header_value":
                    if any(
                        re.search(pattern, value, re.IGNORECASE)
                        for value in normalized_headers.values()
                    ):
                        return platform

        return Platform.GENERIC

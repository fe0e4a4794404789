"""Data models shared by the crawl pipeline (raw products, options, progress)."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from core.config import Settings, settings
from core.models import CrawlStrategy


class Platform(StrEnum):
    """eCommerce platforms with a dedicated selector set."""

    GENERIC = "generic"
    SHOPIFY = "shopify"
    WOOCOMMERCE = "woocommerce"
    MAGENTO = "magento"


class ProgressStatus(StrEnum):
    STARTING = "starting"
    CRAWLING = "crawling"
    ERROR = "error"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CrawlStatus(StrEnum):
    """How a crawl loop ended. Timeouts and fatal errors are exceptions instead."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class RawProduct:
    """A product listing as found on a page. ``name`` is always non-empty."""

    name: str
    price: float | None = None
    sku: str | None = None
    image_url: str | None = None
    product_url: str | None = None


@dataclass(frozen=True, slots=True)
class ProgressEvent:
    status: ProgressStatus
    message: str
    pages_crawled: int = 0
    products_found: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "message": self.message,
            "pages_crawled": self.pages_crawled,
            "products_found": self.products_found,
        }


ProgressSink = Callable[[ProgressEvent], None]


@dataclass(slots=True)
class CrawlResult:
    """Outcome of one crawl loop. ``products`` is already deduplicated."""

    products: list[RawProduct]
    status: CrawlStatus
    pages_crawled: int
    failed_pages: int
    platform: Platform | None = None
    budget_exhausted: bool = False


@dataclass(slots=True)
class CrawlOptions:
    """
    Knobs for a single crawl. Durations are milliseconds.

    ``listing_patterns`` replaces the built-in category/listing path
    patterns when given.
    """

    max_pages: int = 50
    delay_ms: int = 1000
    timeout_ms: int = 15000
    render_timeout_ms: int = 30000
    strategy: CrawlStrategy = CrawlStrategy.AUTO
    max_crawl_time_ms: int = 300000
    max_failed_pages: int = 5
    detection_timeout_ms: int = 5000
    max_links_per_page: int = 30
    user_agent: str = settings.crawl_user_agent
    accept_language: str = settings.crawl_accept_language
    listing_patterns: Sequence[str] | None = field(default=None)

    @classmethod
    def from_settings(cls, config: Settings | None = None, **overrides: Any) -> CrawlOptions:
        config = config or settings
        values: dict[str, Any] = {
            "max_pages": config.crawl_max_pages,
            "delay_ms": config.crawl_delay_ms,
            "timeout_ms": config.crawl_timeout_ms,
            "render_timeout_ms": config.crawl_render_timeout_ms,
            "max_crawl_time_ms": config.crawl_max_crawl_time_ms,
            "max_failed_pages": config.crawl_max_failed_pages,
            "detection_timeout_ms": config.crawl_detection_timeout_ms,
            "user_agent": config.crawl_user_agent,
            "accept_language": config.crawl_accept_language,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def request_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": self.accept_language,
        }

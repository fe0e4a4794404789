"""
FetcherFactory: Strategy Pattern router.

Maps a concrete crawl strategy to the BaseFetcher implementation that
performs it. ``auto`` must be resolved (see StrategyDetector) before
asking the factory for a fetcher.

Usage:
    fetcher = FetcherFactory.create(CrawlStrategy.STATIC, options)
"""

from __future__ import annotations

import logging

from core.models import CrawlStrategy
from crawler.fetchers.base import BaseFetcher
from crawler.fetchers.rendered import RenderedFetcher
from crawler.fetchers.static import StaticFetcher
from crawler.models import CrawlOptions

logger = logging.getLogger(__name__)

# ── Registry: maps CrawlStrategy → concrete fetcher class ─────────────

_FETCHER_REGISTRY: dict[CrawlStrategy, type[BaseFetcher]] = {
    CrawlStrategy.STATIC: StaticFetcher,
    CrawlStrategy.RENDERED: RenderedFetcher,
}


class FetcherFactory:
    @staticmethod
    def create(strategy: CrawlStrategy, options: CrawlOptions) -> BaseFetcher:
        fetcher_cls = _FETCHER_REGISTRY.get(CrawlStrategy(strategy))
        if fetcher_cls is None:
            raise ValueError(f"No fetcher for strategy={strategy}; resolve 'auto' first")

        logger.info("Using %s for strategy=%s.", fetcher_cls.__name__, strategy)
        return fetcher_cls(options)

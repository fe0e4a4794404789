"""Page fetch strategies for the crawl engine."""

from crawler.fetchers.base import BaseFetcher
from crawler.fetchers.factory import FetcherFactory
from crawler.fetchers.rendered import RenderedFetcher
from crawler.fetchers.static import StaticFetcher

__all__ = [
    "BaseFetcher",
    "FetcherFactory",
    "RenderedFetcher",
    "StaticFetcher",
]

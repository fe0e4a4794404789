"""
Shared fixtures: a throwaway SQLite database per test, repositories on
top of it, and an in-memory fetcher serving canned pages.
"""

import asyncio
import os

# Must be set before anything imports core.config / core.database
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RENDERED_CRAWLING_ENABLED", "false")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from core.database import Base
from core.models import CrawlStrategy
from core.repositories import (
    CrawlJobRepository,
    ProductMatchRepository,
    ProductRepository,
    WebsiteRepository,
)
from crawler.fetchers.base import BaseFetcher
from crawler.models import CrawlOptions


class FakeFetcher(BaseFetcher):
    """
    Serves ``pages`` (url -> html, or an exception to raise).
    Unknown URLs raise ConnectionError like an unreachable page would.
    """

    strategy = CrawlStrategy.STATIC

    def __init__(self, pages, options=None, *, delay=0.0, headers=None, open_error=None):
        super().__init__(options or CrawlOptions(delay_ms=0))
        self.pages = pages
        self.delay = delay
        self.headers = headers or {}
        self.open_error = open_error
        self.requested = []
        self.opened = False
        self.aborted = False
        self.closed = False

    async def open(self):
        if self.open_error is not None:
            raise self.open_error
        self.opened = True

    async def fetch_page(self, url):
        self.requested.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        page = self.pages.get(url)
        if page is None:
            raise ConnectionError(f"Could not reach {url}")
        if isinstance(page, Exception):
            raise page
        self.last_headers = dict(self.headers)
        return page

    def abort(self):
        self.aborted = True

    async def close(self):
        self.closed = True


@pytest.fixture
def make_fetcher():
    """Factory for FakeFetcher instances; keeps every instance it built."""
    built = []

    def _make(pages, options=None, **kwargs):
        fetcher = FakeFetcher(pages, options, **kwargs)
        built.append(fetcher)
        return fetcher

    _make.built = built
    return _make


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def websites(session_factory):
    return WebsiteRepository(session_factory)


@pytest.fixture
def products(session_factory):
    return ProductRepository(session_factory)


@pytest.fixture
def matches(session_factory):
    return ProductMatchRepository(session_factory)


@pytest.fixture
def jobs(session_factory):
    return CrawlJobRepository(session_factory)

"""FastAPI dependencies: services wired once in the lifespan, read from app.state."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.notifications.progress import ProgressBroadcaster
from core.repositories import (
    CrawlJobRepository,
    ProductMatchRepository,
    ProductRepository,
    WebsiteRepository,
)
from crawler.manager import CrawlerManager
from crawler.service import CrawlService
from matching.service import MatchingService


@dataclass
class Container:
    websites: WebsiteRepository
    products: ProductRepository
    matches: ProductMatchRepository
    jobs: CrawlJobRepository
    broadcaster: ProgressBroadcaster
    crawl_service: CrawlService
    matching_service: MatchingService
    # Matching runs rewrite the shared match set; one at a time
    matching_lock: asyncio.Lock

    @classmethod
    def build(
        cls,
        session_factory: async_sessionmaker[AsyncSession],
        manager: CrawlerManager | None = None,
    ) -> Container:
        websites = WebsiteRepository(session_factory)
        products = ProductRepository(session_factory)
        matches = ProductMatchRepository(session_factory)
        jobs = CrawlJobRepository(session_factory)
        broadcaster = ProgressBroadcaster()
        return cls(
            websites=websites,
            products=products,
            matches=matches,
            jobs=jobs,
            broadcaster=broadcaster,
            crawl_service=CrawlService(manager or CrawlerManager(), websites, products, jobs, broadcaster),
            matching_service=MatchingService(products, matches),
            matching_lock=asyncio.Lock(),
        )


def get_container(request: Request) -> Container:
    return request.app.state.container

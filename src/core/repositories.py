"""
Persistence interface used by the crawler and the matching engine.

Each repository wraps an injected ``async_sessionmaker`` and exposes the
small set of CRUD operations the core needs. No caller outside this module
issues queries directly. Every public method runs in its own session and
commits before returning.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any, Protocol
from urllib.parse import urlparse

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from core.models import (
    CrawlJob,
    CrawlJobStatus,
    CrawlStrategy,
    MatchType,
    Product,
    ProductMatch,
    Website,
    WebsiteRole,
    WebsiteStatus,
)

logger = logging.getLogger(__name__)


class RepositoryError(Exception):
    """Base class for persistence-level rejections."""


class DuplicateWebsiteError(RepositoryError):
    def __init__(self, url: str) -> None:
        super().__init__(f"Website already exists: {url}")
        self.url = url


class WebsiteNotFoundError(RepositoryError):
    def __init__(self, website_id: int) -> None:
        super().__init__(f"Website {website_id} not found")
        self.website_id = website_id


class ProductRecord(Protocol):
    """Anything shaped like a crawled product (RawProduct, ORM Product...)."""

    name: str
    price: float | None
    sku: str | None
    image_url: str | None
    product_url: str | None


class MatchRecord(Protocol):
    source_product_id: int
    competitor_product_id: int
    match_type: MatchType
    match_score: float | None
    is_confirmed: bool


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ══════════════════════════════════════════════════════════════════════
# WEBSITES
# ══════════════════════════════════════════════════════════════════════

class WebsiteRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(
        self,
        url: str,
        *,
        name: str | None = None,
        role: WebsiteRole = WebsiteRole.COMPETITOR,
        crawl_strategy: CrawlStrategy = CrawlStrategy.AUTO,
    ) -> Website:
        """Register a website. Raises DuplicateWebsiteError if the URL is taken."""
        async with self._session_factory() as session:
            existing = await session.execute(select(Website.id).where(Website.url == url))
            if existing.scalar_one_or_none() is not None:
                raise DuplicateWebsiteError(url)

            if role == WebsiteRole.SOURCE:
                await self._demote_source(session)

            website = Website(
                url=url,
                name=name or urlparse(url).hostname or url,
                role=role,
                crawl_strategy=crawl_strategy,
                status=WebsiteStatus.PENDING,
            )
            session.add(website)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                raise DuplicateWebsiteError(url) from exc
            logger.info("Website #%d registered: %s (%s)", website.id, url, role.value)
            return website

    async def get(self, website_id: int) -> Website | None:
        async with self._session_factory() as session:
            return await session.get(Website, website_id)

    async def require(self, website_id: int) -> Website:
        website = await self.get(website_id)
        if website is None:
            raise WebsiteNotFoundError(website_id)
        return website

    async def list_all(self) -> Sequence[Website]:
        async with self._session_factory() as session:
            result = await session.execute(select(Website).order_by(Website.id))
            return result.scalars().all()

    async def list_by_role(self, role: WebsiteRole) -> Sequence[Website]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Website).where(Website.role == role).order_by(Website.id)
            )
            return result.scalars().all()

    async def get_source(self) -> Website | None:
        async with self._session_factory() as session:
            result = await session.execute(select(Website).where(Website.role == WebsiteRole.SOURCE))
            return result.scalars().first()

    async def set_source(self, website_id: int) -> Website:
        """Make ``website_id`` the source; the previous source becomes a competitor."""
        async with self._session_factory() as session:
            website = await session.get(Website, website_id)
            if website is None:
                raise WebsiteNotFoundError(website_id)
            await self._demote_source(session)
            website.role = WebsiteRole.SOURCE
            await session.commit()
            logger.info("Website #%d is now the source store", website_id)
            return website

    async def update(self, website_id: int, **fields: Any) -> Website:
        async with self._session_factory() as session:
            website = await session.get(Website, website_id)
            if website is None:
                raise WebsiteNotFoundError(website_id)
            for key, value in fields.items():
                setattr(website, key, value)
            await session.commit()
            return website

    async def set_status(
        self,
        website_id: int,
        status: WebsiteStatus,
        *,
        crawled: bool = False,
    ) -> None:
        values: dict[str, Any] = {"status": status}
        if crawled:
            values["last_crawled_at"] = _utcnow()
        async with self._session_factory() as session:
            await session.execute(update(Website).where(Website.id == website_id).values(**values))
            await session.commit()

    async def delete(self, website_id: int) -> bool:
        """Delete a website together with its products, their matches and its jobs."""
        async with self._session_factory() as session:
            website = await session.get(Website, website_id)
            if website is None:
                return False
            product_ids = select(Product.id).where(Product.website_id == website_id)
            await session.execute(
                delete(ProductMatch).where(
                    or_(
                        ProductMatch.source_product_id.in_(product_ids),
                        ProductMatch.competitor_product_id.in_(product_ids),
                    )
                )
            )
            await session.execute(delete(Product).where(Product.website_id == website_id))
            await session.execute(delete(CrawlJob).where(CrawlJob.website_id == website_id))
            await session.execute(delete(Website).where(Website.id == website_id))
            await session.commit()
            logger.info("Website #%d deleted", website_id)
            return True

    @staticmethod
    async def _demote_source(session: AsyncSession) -> None:
        await session.execute(
            update(Website)
            .where(Website.role == WebsiteRole.SOURCE)
            .values(role=WebsiteRole.COMPETITOR)
        )


# ══════════════════════════════════════════════════════════════════════
# PRODUCTS
# ══════════════════════════════════════════════════════════════════════

class ProductRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create_many(self, products: Iterable[ProductRecord], website_id: int) -> int:
        async with self._session_factory() as session:
            count = self._add_all(session, products, website_id)
            await session.commit()
            return count

    async def delete_all_for_website(self, website_id: int) -> int:
        async with self._session_factory() as session:
            deleted = await self._delete_for_website(session, website_id)
            await session.commit()
            return deleted

    async def replace_for_website(self, website_id: int, products: Iterable[ProductRecord]) -> int:
        """Swap the website's catalogue snapshot for ``products`` in one transaction."""
        async with self._session_factory() as session:
            deleted = await self._delete_for_website(session, website_id)
            created = self._add_all(session, products, website_id)
            await session.commit()
            logger.info(
                "Website #%d catalogue replaced: %d removed, %d stored",
                website_id, deleted, created,
            )
            return created

    async def get(self, product_id: int) -> Product | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Product).options(selectinload(Product.website)).where(Product.id == product_id)
            )
            return result.scalar_one_or_none()

    async def list_for_website(self, website_id: int) -> Sequence[Product]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Product).where(Product.website_id == website_id).order_by(Product.name, Product.id)
            )
            return result.scalars().all()

    async def list_by_role(self, role: WebsiteRole) -> Sequence[Product]:
        """Products of every website holding ``role``, in a stable order."""
        stmt = (
            select(Product)
            .join(Product.website)
            .options(selectinload(Product.website))
            .where(Website.role == role)
        )
        if role == WebsiteRole.SOURCE:
            stmt = stmt.order_by(Product.name, Product.id)
        else:
            stmt = stmt.order_by(Website.name, Product.name, Product.id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalars().all()

    async def count(self, website_id: int | None = None) -> int:
        stmt = select(func.count(Product.id))
        if website_id is not None:
            stmt = stmt.where(Product.website_id == website_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def search(self, query: str, limit: int = 50) -> Sequence[Product]:
        """Case-insensitive substring search over name and SKU."""
        pattern = f"%{query.strip().lower()}%"
        stmt = (
            select(Product)
            .options(selectinload(Product.website))
            .where(or_(func.lower(Product.name).like(pattern), func.lower(Product.sku).like(pattern)))
            .order_by(Product.name, Product.id)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalars().all()

    async def delete(self, product_id: int) -> bool:
        return await self.delete_many([product_id]) > 0

    async def delete_many(self, product_ids: Iterable[int]) -> int:
        """Delete products and every match that references them. Unknown ids are skipped."""
        ids = list(set(product_ids))
        if not ids:
            return 0
        async with self._session_factory() as session:
            await session.execute(
                delete(ProductMatch).where(
                    or_(
                        ProductMatch.source_product_id.in_(ids),
                        ProductMatch.competitor_product_id.in_(ids),
                    )
                )
            )
            result = await session.execute(delete(Product).where(Product.id.in_(ids)))
            await session.commit()
            deleted = result.rowcount or 0
            logger.info("Deleted %d of %d requested products", deleted, len(ids))
            return deleted

    @staticmethod
    def _add_all(session: AsyncSession, products: Iterable[ProductRecord], website_id: int) -> int:
        rows = [
            Product(
                website_id=website_id,
                name=p.name,
                price=p.price,
                sku=p.sku,
                image_url=p.image_url,
                product_url=p.product_url,
            )
            for p in products
        ]
        session.add_all(rows)
        return len(rows)

    @staticmethod
    async def _delete_for_website(session: AsyncSession, website_id: int) -> int:
        product_ids = select(Product.id).where(Product.website_id == website_id)
        await session.execute(
            delete(ProductMatch).where(
                or_(
                    ProductMatch.source_product_id.in_(product_ids),
                    ProductMatch.competitor_product_id.in_(product_ids),
                )
            )
        )
        result = await session.execute(delete(Product).where(Product.website_id == website_id))
        return result.rowcount or 0


# ══════════════════════════════════════════════════════════════════════
# MATCHES
# ══════════════════════════════════════════════════════════════════════

class ProductMatchRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def upsert_many(self, matches: Iterable[MatchRecord]) -> int:
        """
        Insert the given pairs, overwriting any row that already exists
        for the same (source, competitor) pair. Returns rows written.
        """
        matches = list(matches)
        if not matches:
            return 0

        source_ids = {m.source_product_id for m in matches}
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProductMatch).where(ProductMatch.source_product_id.in_(source_ids))
            )
            existing = {
                (row.source_product_id, row.competitor_product_id): row
                for row in result.scalars().all()
            }

            for match in matches:
                key = (match.source_product_id, match.competitor_product_id)
                row = existing.get(key)
                if row is None:
                    row = ProductMatch(
                        source_product_id=match.source_product_id,
                        competitor_product_id=match.competitor_product_id,
                    )
                    session.add(row)
                    existing[key] = row
                row.match_type = match.match_type
                row.match_score = match.match_score
                row.is_confirmed = match.is_confirmed

            await session.commit()
            return len(matches)

    async def get(self, match_id: int) -> ProductMatch | None:
        async with self._session_factory() as session:
            return await session.get(ProductMatch, match_id)

    async def confirm(self, match_id: int) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(ProductMatch).where(ProductMatch.id == match_id).values(is_confirmed=True)
            )
            await session.commit()
            return result.rowcount > 0

    async def delete(self, match_id: int) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(delete(ProductMatch).where(ProductMatch.id == match_id))
            await session.commit()
            return result.rowcount > 0

    async def list_all(self) -> Sequence[ProductMatch]:
        """Every match with both products (and their websites) loaded."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProductMatch)
                .options(
                    selectinload(ProductMatch.source_product).selectinload(Product.website),
                    selectinload(ProductMatch.competitor_product).selectinload(Product.website),
                )
                .order_by(ProductMatch.source_product_id, ProductMatch.match_score.desc())
            )
            return result.scalars().all()

    async def list_for_source(self, source_product_id: int) -> Sequence[ProductMatch]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProductMatch)
                .options(selectinload(ProductMatch.competitor_product).selectinload(Product.website))
                .where(ProductMatch.source_product_id == source_product_id)
                .order_by(ProductMatch.match_score.desc())
            )
            return result.scalars().all()

    async def list_unmatched_sources(self) -> Sequence[Product]:
        return await self._list_unmatched(WebsiteRole.SOURCE, ProductMatch.source_product_id)

    async def list_unmatched_competitors(self) -> Sequence[Product]:
        return await self._list_unmatched(WebsiteRole.COMPETITOR, ProductMatch.competitor_product_id)

    async def _list_unmatched(self, role: WebsiteRole, column) -> Sequence[Product]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Product)
                .join(Product.website)
                .options(selectinload(Product.website))
                .where(Website.role == role, Product.id.not_in(select(column)))
                .order_by(Website.name, Product.name)
            )
            return result.scalars().all()


# ══════════════════════════════════════════════════════════════════════
# CRAWL JOBS
# ══════════════════════════════════════════════════════════════════════

class CrawlJobRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, website_id: int) -> CrawlJob:
        async with self._session_factory() as session:
            job = CrawlJob(
                website_id=website_id,
                status=CrawlJobStatus.RUNNING,
                started_at=_utcnow(),
            )
            session.add(job)
            await session.commit()
            logger.info("CrawlJob #%d started for website #%d", job.id, website_id)
            return job

    async def get(self, job_id: int) -> CrawlJob | None:
        async with self._session_factory() as session:
            return await session.get(CrawlJob, job_id)

    async def latest_for_website(self, website_id: int) -> CrawlJob | None:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CrawlJob)
                .where(CrawlJob.website_id == website_id)
                .order_by(CrawlJob.id.desc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_for_website(self, website_id: int, limit: int = 50) -> Sequence[CrawlJob]:
        """Crawl history of a website, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(CrawlJob)
                .where(CrawlJob.website_id == website_id)
                .order_by(CrawlJob.id.desc())
                .limit(limit)
            )
            return result.scalars().all()

    async def list_running(self) -> Sequence[CrawlJob]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(CrawlJob).where(CrawlJob.status == CrawlJobStatus.RUNNING).order_by(CrawlJob.id)
            )
            return result.scalars().all()

    async def update_progress(self, job_id: int, crawled_pages: int, total_products: int) -> None:
        async with self._session_factory() as session:
            await session.execute(
                update(CrawlJob)
                .where(CrawlJob.id == job_id, CrawlJob.status == CrawlJobStatus.RUNNING)
                .values(crawled_pages=crawled_pages, total_products=total_products)
            )
            await session.commit()

    async def mark_completed(self, job_id: int, total_products: int) -> bool:
        """Finalise a running job as completed. No-op if already finalised."""
        return await self._finalise(
            job_id,
            status=CrawlJobStatus.COMPLETED,
            total_products=total_products,
        )

    async def mark_failed(self, job_id: int, error_message: str) -> bool:
        """Finalise a running job as failed. No-op if already finalised."""
        return await self._finalise(
            job_id,
            status=CrawlJobStatus.FAILED,
            error_message=error_message,
        )

    async def _finalise(self, job_id: int, **values: Any) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(CrawlJob)
                .where(CrawlJob.id == job_id, CrawlJob.status == CrawlJobStatus.RUNNING)
                .values(completed_at=_utcnow(), **values)
            )
            await session.commit()
            finalised = result.rowcount > 0
            if not finalised:
                logger.debug("CrawlJob #%d already finalised, ignoring %s", job_id, values.get("status"))
            return finalised

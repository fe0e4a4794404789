"""
SQLAlchemy 2.0 ORM Models — Competitor Price Matching
======================================================

  - snake_case names
  - BIGINT PKs (auto-increment)
  - Explicit FKs with ON DELETE CASCADE
  - created_at on every table

Tables:
  1. website        — stores we crawl (one source, N competitors)
  2. product        — latest crawl snapshot of a website's catalogue
  3. product_match  — source ↔ competitor product pairs
  4. crawl_job      — audit / progress record of each crawl
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum as PyEnum

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.database import Base, BigIntPK


# ══════════════════════════════════════════════════════════════════════
# ENUMS
# ══════════════════════════════════════════════════════════════════════

class WebsiteRole(str, PyEnum):
    SOURCE = "source"
    COMPETITOR = "competitor"


class CrawlStrategy(str, PyEnum):
    AUTO = "auto"
    STATIC = "static"      # plain HTTP fetch + HTML parse
    RENDERED = "rendered"  # headless browser


class WebsiteStatus(str, PyEnum):
    PENDING = "pending"
    CRAWLING = "crawling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class CrawlJobStatus(str, PyEnum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class MatchType(str, PyEnum):
    SKU_EXACT = "sku_exact"
    SKU_PARTIAL = "sku_partial"
    NAME_EXACT = "name_exact"
    NAME_FUZZY = "name_fuzzy"
    MANUAL = "manual"


def _enum(enum_cls: type[PyEnum]) -> Enum:
    """Persist enum *values* (lowercase) rather than member names."""
    return Enum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=20,
    )


# ══════════════════════════════════════════════════════════════════════
# TABLES
# ══════════════════════════════════════════════════════════════════════

class Website(Base):
    """
    A store we crawl. Exactly one website may be the source at a time;
    all the others are competitors.
    """
    __tablename__ = "website"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    url: Mapped[str] = mapped_column(String(2048), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[WebsiteRole] = mapped_column(_enum(WebsiteRole), default=WebsiteRole.COMPETITOR)
    crawl_strategy: Mapped[CrawlStrategy] = mapped_column(
        _enum(CrawlStrategy), default=CrawlStrategy.AUTO
    )
    status: Mapped[WebsiteStatus] = mapped_column(_enum(WebsiteStatus), default=WebsiteStatus.PENDING)
    last_crawled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    products: Mapped[list["Product"]] = relationship(
        "Product", back_populates="website", cascade="all, delete-orphan", passive_deletes=True
    )
    crawl_jobs: Mapped[list["CrawlJob"]] = relationship(
        "CrawlJob", back_populates="website", cascade="all, delete-orphan", passive_deletes=True
    )


class Product(Base):
    """
    A product listing found by the latest successful crawl of a website.
    Replaced wholesale on every crawl.
    """
    __tablename__ = "product"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    website_id: Mapped[int] = mapped_column(
        ForeignKey("website.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(1024), nullable=False)
    price: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    sku: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    image_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    product_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    website: Mapped["Website"] = relationship("Website", back_populates="products")


class ProductMatch(Base):
    """
    A source product paired with a competitor product.
    Re-matching the same pair overwrites the previous row.
    """
    __tablename__ = "product_match"
    __table_args__ = (
        UniqueConstraint("source_product_id", "competitor_product_id", name="uq_product_match_pair"),
    )

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    source_product_id: Mapped[int] = mapped_column(
        ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True
    )
    competitor_product_id: Mapped[int] = mapped_column(
        ForeignKey("product.id", ondelete="CASCADE"), nullable=False, index=True
    )
    match_type: Mapped[MatchType] = mapped_column(_enum(MatchType), nullable=False)
    match_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    is_confirmed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    source_product: Mapped["Product"] = relationship("Product", foreign_keys=[source_product_id])
    competitor_product: Mapped["Product"] = relationship("Product", foreign_keys=[competitor_product_id])


class CrawlJob(Base):
    """
    A single crawl execution for one website.
    Progress counters are updated while it runs; finalised exactly once.
    """
    __tablename__ = "crawl_job"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    website_id: Mapped[int] = mapped_column(
        ForeignKey("website.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[CrawlJobStatus] = mapped_column(_enum(CrawlJobStatus), default=CrawlJobStatus.RUNNING)
    crawled_pages: Mapped[int] = mapped_column(Integer, default=0)
    total_products: Mapped[int] = mapped_column(Integer, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Relationships
    website: Mapped["Website"] = relationship("Website", back_populates="crawl_jobs")

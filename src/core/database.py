"""
Async database engine and session factory.

Uses SQLAlchemy 2.0 async API with asyncpg driver (aiosqlite for tests).
"""

from __future__ import annotations

from sqlalchemy import BigInteger, Integer
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from core.config import settings


# ── Engine ────────────────────────────────────────────────────────────

def build_engine(url: str | None = None, **kwargs) -> AsyncEngine:
    """Create an async engine. Pool options only apply to server databases."""
    url = url or settings.database_url
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=False, **kwargs)
    return create_async_engine(
        url,
        echo=False,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
        **kwargs,
    )


engine = build_engine()

# ── Session Factory ───────────────────────────────────────────────────

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


# ── Base Model ────────────────────────────────────────────────────────

# SQLite only auto-increments INTEGER PRIMARY KEY columns
BigIntPK = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""

    pass

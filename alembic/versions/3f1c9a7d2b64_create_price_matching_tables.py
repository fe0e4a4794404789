"""create_price_matching_tables

Revision ID: 3f1c9a7d2b64
Revises:
Create Date: 2026-10-18 10:12:04.118532

Adds:
- website table (source / competitor stores)
- product table (latest crawl snapshot per website)
- product_match table (source ↔ competitor pairs, unique per pair)
- crawl_job table (crawl audit + progress)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3f1c9a7d2b64"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_PK = sa.BigInteger().with_variant(sa.Integer(), "sqlite")
_FK = sa.BigInteger()


def _enum(*values: str, name: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False, length=20)


def upgrade() -> None:
    # -- Websites --
    op.create_table(
        "website",
        sa.Column("id", _PK, autoincrement=True, nullable=False),
        sa.Column("url", sa.String(length=2048), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("role", _enum("source", "competitor", name="websiterole"), nullable=False),
        sa.Column("crawl_strategy", _enum("auto", "static", "rendered", name="crawlstrategy"), nullable=False),
        sa.Column(
            "status",
            _enum("pending", "crawling", "completed", "failed", "cancelled", name="websitestatus"),
            nullable=False,
        ),
        sa.Column("last_crawled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("url"),
    )

    # -- Products --
    op.create_table(
        "product",
        sa.Column("id", _PK, autoincrement=True, nullable=False),
        sa.Column("website_id", _FK, nullable=False),
        sa.Column("name", sa.String(length=1024), nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=True),
        sa.Column("sku", sa.String(length=255), nullable=True),
        sa.Column("image_url", sa.String(length=2048), nullable=True),
        sa.Column("product_url", sa.String(length=2048), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["website_id"], ["website.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_product_website_id", "product", ["website_id"])
    op.create_index("ix_product_sku", "product", ["sku"])

    # -- Matches --
    op.create_table(
        "product_match",
        sa.Column("id", _PK, autoincrement=True, nullable=False),
        sa.Column("source_product_id", _FK, nullable=False),
        sa.Column("competitor_product_id", _FK, nullable=False),
        sa.Column(
            "match_type",
            _enum("sku_exact", "sku_partial", "name_exact", "name_fuzzy", "manual", name="matchtype"),
            nullable=False,
        ),
        sa.Column("match_score", sa.Float(), nullable=True),
        sa.Column("is_confirmed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(["source_product_id"], ["product.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["competitor_product_id"], ["product.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source_product_id", "competitor_product_id", name="uq_product_match_pair"),
    )
    op.create_index("ix_product_match_source_product_id", "product_match", ["source_product_id"])
    op.create_index("ix_product_match_competitor_product_id", "product_match", ["competitor_product_id"])

    # -- Crawl jobs --
    op.create_table(
        "crawl_job",
        sa.Column("id", _PK, autoincrement=True, nullable=False),
        sa.Column("website_id", _FK, nullable=False),
        sa.Column("status", _enum("running", "completed", "failed", name="crawljobstatus"), nullable=False),
        sa.Column("crawled_pages", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_products", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["website_id"], ["website.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_crawl_job_website_id", "crawl_job", ["website_id"])


def downgrade() -> None:
    op.drop_index("ix_crawl_job_website_id", table_name="crawl_job")
    op.drop_table("crawl_job")
    op.drop_index("ix_product_match_competitor_product_id", table_name="product_match")
    op.drop_index("ix_product_match_source_product_id", table_name="product_match")
    op.drop_table("product_match")
    op.drop_index("ix_product_sku", table_name="product")
    op.drop_index("ix_product_website_id", table_name="product")
    op.drop_table("product")
    op.drop_table("website")

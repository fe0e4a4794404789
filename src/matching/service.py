"""
Matching Service — matching runs and match management over persistence.

Reads products only through the role partitions (source vs competitor),
so every stored match pairs a source product with a competitor product.
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from typing import Any

from core.models import MatchType, Product, ProductMatch, WebsiteRole
from core.repositories import ProductMatchRepository, ProductRepository
from matching.engine import MatchingEngine
from matching.exceptions import (
    InvalidMatchPairError,
    MatchNotFoundError,
    NoCompetitorProductsError,
    NoSourceProductsError,
    ProductNotFoundError,
)
from matching.models import MatchCandidate, MatchingOptions, MatchingResult, Suggestion

logger = logging.getLogger(__name__)


def _product_summary(product: Product) -> dict[str, Any]:
    return {
        "id": product.id,
        "name": product.name,
        "price": product.price,
        "sku": product.sku,
        "image_url": product.image_url,
        "product_url": product.product_url,
        "website_id": product.website_id,
    }


class MatchingService:
    def __init__(
        self,
        products: ProductRepository,
        matches: ProductMatchRepository,
        options: MatchingOptions | None = None,
    ) -> None:
        self.products = products
        self.matches = matches
        self.options = options or MatchingOptions.from_settings()

    async def run_matching(self, options: MatchingOptions | None = None) -> MatchingResult:
        """
        Match every source product against every competitor product and
        upsert the assignment in one batch.

        Raises NoSourceProductsError / NoCompetitorProductsError before any
        scoring or writes happen.
        """
        options = options or self.options

        sources = await self.products.list_by_role(WebsiteRole.SOURCE)
        if not sources:
            raise NoSourceProductsError()
        competitors = await self.products.list_by_role(WebsiteRole.COMPETITOR)
        if not competitors:
            raise NoCompetitorProductsError()

        matches = MatchingEngine(options).match(sources, competitors)
        if matches:
            await self.matches.upsert_many(matches)

        logger.info("Matching run stored %d matches", len(matches))
        return MatchingResult(
            matches_found=len(matches),
            matches=matches,
            total_source_products=len(sources),
            total_competitor_products=len(competitors),
        )

    async def get_suggested_matches(self, source_product_id: int, limit: int = 10) -> list[Suggestion]:
        """Best competitors for one source product, no threshold applied."""
        source = await self.products.get(source_product_id)
        if source is None:
            raise ProductNotFoundError(source_product_id)
        competitors = await self.products.list_by_role(WebsiteRole.COMPETITOR)
        return MatchingEngine(self.options).suggest(source, competitors, limit)

    async def create_manual_match(self, source_product_id: int, competitor_product_id: int) -> MatchCandidate:
        source = await self.products.get(source_product_id)
        if source is None:
            raise ProductNotFoundError(source_product_id)
        competitor = await self.products.get(competitor_product_id)
        if competitor is None:
            raise ProductNotFoundError(competitor_product_id)

        if source.website.role != WebsiteRole.SOURCE:
            raise InvalidMatchPairError(f"Product {source_product_id} does not belong to the source website")
        if competitor.website.role != WebsiteRole.COMPETITOR:
            raise InvalidMatchPairError(f"Product {competitor_product_id} does not belong to a competitor website")

        match = MatchCandidate(
            source_product_id=source.id,
            competitor_product_id=competitor.id,
            match_type=MatchType.MANUAL,
            match_score=1.0,
            is_confirmed=True,
        )
        await self.matches.upsert_many([match])
        logger.info("Manual match %d <-> %d stored", source.id, competitor.id)
        return match

    async def confirm_match(self, match_id: int) -> None:
        if not await self.matches.confirm(match_id):
            raise MatchNotFoundError(match_id)

    async def delete_match(self, match_id: int) -> None:
        if not await self.matches.delete(match_id):
            raise MatchNotFoundError(match_id)

    async def get_statistics(self) -> dict[str, Any]:
        sources = await self.products.list_by_role(WebsiteRole.SOURCE)
        competitors = await self.products.list_by_role(WebsiteRole.COMPETITOR)
        matches = await self.matches.list_all()
        unmatched = await self.matches.list_unmatched_sources()

        breakdown = Counter(m.match_type.value for m in matches)
        return {
            "total_source_products": len(sources),
            "total_competitor_products": len(competitors),
            "total_matches": len(matches),
            "confirmed_matches": sum(1 for m in matches if m.is_confirmed),
            "unmatched_source_products": len(unmatched),
            "match_type_breakdown": dict(breakdown),
        }

    async def build_comparison(self) -> list[dict[str, Any]]:
        """
        Price comparison per source product: each match with its competitor
        price and ``price_difference`` (competitor - source), plus the lowest
        and highest competitor price seen.
        """
        sources = await self.products.list_by_role(WebsiteRole.SOURCE)
        by_source: dict[int, list[ProductMatch]] = defaultdict(list)
        for match in await self.matches.list_all():
            by_source[match.source_product_id].append(match)

        rows: list[dict[str, Any]] = []
        for source in sources:
            entries = []
            prices: list[float] = []
            for match in by_source.get(source.id, []):
                competitor = match.competitor_product
                difference = None
                if competitor.price is not None and source.price is not None:
                    difference = round(competitor.price - source.price, 2)
                if competitor.price is not None:
                    prices.append(competitor.price)
                entries.append({
                    "match_id": match.id,
                    "match_type": match.match_type.value,
                    "match_score": match.match_score,
                    "is_confirmed": match.is_confirmed,
                    "competitor_website": competitor.website.name,
                    "competitor_product": _product_summary(competitor),
                    "price_difference": difference,
                })

            rows.append({
                "source_product": _product_summary(source),
                "matches": entries,
                "lowest_competitor_price": min(prices) if prices else None,
                "highest_competitor_price": max(prices) if prices else None,
            })
        return rows

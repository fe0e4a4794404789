"""Matching API — matching runs, suggestions, manual matches and price comparison."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from api.dependencies import Container, get_container
from core.models import MatchType
from matching.exceptions import (
    InvalidMatchPairError,
    MatchingConfigurationError,
    MatchNotFoundError,
    ProductNotFoundError,
)
from matching.models import MatchingOptions

router = APIRouter(prefix="/api/matching", tags=["matching"])


# ── Schemas ───────────────────────────────────────────────────────────

class ProductBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    website_id: int
    name: str
    price: float | None = None
    sku: str | None = None
    product_url: str | None = None


class MatchOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    source_product_id: int
    competitor_product_id: int
    match_type: MatchType
    match_score: float | None = None
    is_confirmed: bool
    source_product: ProductBrief | None = None
    competitor_product: ProductBrief | None = None


class RunMatchingRequest(BaseModel):
    min_similarity: float | None = Field(default=None, ge=0.0, le=1.0)
    max_matches_per_product: int | None = Field(default=None, ge=1)
    allow_duplicate_matches: bool | None = None


class RunMatchingResponse(BaseModel):
    total_source_products: int
    total_competitor_products: int
    matches_found: int


class ManualMatchRequest(BaseModel):
    source_product_id: int
    competitor_product_id: int


class SuggestionOut(BaseModel):
    product: ProductBrief
    match_score: float
    match_type: str


# ── Endpoints ─────────────────────────────────────────────────────────

@router.get("", response_model=list[MatchOut])
async def list_matches(container: Container = Depends(get_container)):
    return [MatchOut.model_validate(m) for m in await container.matches.list_all()]


@router.get("/unmatched", response_model=list[ProductBrief])
async def list_unmatched_sources(container: Container = Depends(get_container)):
    return await container.matches.list_unmatched_sources()


@router.get("/unmatched-competitors", response_model=list[ProductBrief])
async def list_unmatched_competitors(container: Container = Depends(get_container)):
    return await container.matches.list_unmatched_competitors()


@router.get("/suggestions/{source_product_id}", response_model=list[SuggestionOut])
async def suggestions(
    source_product_id: int,
    limit: int = Query(default=10, ge=1, le=100),
    container: Container = Depends(get_container),
):
    """Best competitor candidates for one source product, threshold not applied."""
    try:
        ranked = await container.matching_service.get_suggested_matches(source_product_id, limit)
    except ProductNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return [
        SuggestionOut(
            product=ProductBrief.model_validate(s.competitor),
            match_score=s.score.value,
            match_type=s.score.match_type.value,
        )
        for s in ranked
    ]


@router.post("/run", response_model=RunMatchingResponse)
async def run_matching(payload: RunMatchingRequest | None = None, container: Container = Depends(get_container)):
    overrides = payload.model_dump(exclude_none=True) if payload else {}
    try:
        options = MatchingOptions.from_settings(**overrides)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    async with container.matching_lock:
        try:
            result = await container.matching_service.run_matching(options)
        except MatchingConfigurationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

    return RunMatchingResponse(
        total_source_products=result.total_source_products,
        total_competitor_products=result.total_competitor_products,
        matches_found=result.matches_found,
    )


@router.post("/manual", status_code=status.HTTP_201_CREATED)
async def create_manual_match(payload: ManualMatchRequest, container: Container = Depends(get_container)):
    try:
        match = await container.matching_service.create_manual_match(
            payload.source_product_id, payload.competitor_product_id
        )
    except ProductNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except InvalidMatchPairError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {
        "source_product_id": match.source_product_id,
        "competitor_product_id": match.competitor_product_id,
        "match_type": match.match_type.value,
        "match_score": match.match_score,
        "is_confirmed": match.is_confirmed,
    }


@router.post("/{match_id}/confirm")
async def confirm_match(match_id: int, container: Container = Depends(get_container)) -> dict[str, bool]:
    try:
        await container.matching_service.confirm_match(match_id)
    except MatchNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"confirmed": True}


@router.delete("/{match_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_match(match_id: int, container: Container = Depends(get_container)):
    try:
        await container.matching_service.delete_match(match_id)
    except MatchNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.get("/stats")
async def matching_stats(container: Container = Depends(get_container)) -> dict:
    return await container.matching_service.get_statistics()


@router.get("/comparison")
async def price_comparison(container: Container = Depends(get_container)) -> list[dict]:
    return await container.matching_service.build_comparison()

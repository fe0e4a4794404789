"""Products API — catalogue browsing, search and manual clean-up."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from api.dependencies import Container, get_container
from core.models import WebsiteRole

router = APIRouter(prefix="/api/products", tags=["products"])


# ── Schemas ───────────────────────────────────────────────────────────

class WebsiteBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    role: WebsiteRole


class ProductDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    website_id: int
    name: str
    price: float | None = None
    sku: str | None = None
    image_url: str | None = None
    product_url: str | None = None
    website: WebsiteBrief | None = None


class BulkDeleteRequest(BaseModel):
    ids: list[int] = Field(min_length=1)


class BulkDeleteResponse(BaseModel):
    requested: int
    deleted: int


# ── Endpoints ─────────────────────────────────────────────────────────

@router.get("", response_model=list[ProductDetail])
async def list_products(
    role: WebsiteRole = Query(default=WebsiteRole.SOURCE),
    container: Container = Depends(get_container),
):
    return await container.products.list_by_role(role)


@router.get("/search", response_model=list[ProductDetail])
async def search_products(
    q: str = Query(min_length=1),
    limit: int = Query(default=50, ge=1, le=500),
    container: Container = Depends(get_container),
):
    """Name or SKU contains ``q``, case-insensitive."""
    return await container.products.search(q, limit=limit)


@router.get("/{product_id}", response_model=ProductDetail)
async def get_product(product_id: int, container: Container = Depends(get_container)):
    product = await container.products.get(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return product


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(product_id: int, container: Container = Depends(get_container)):
    """Remove one product and the matches that reference it."""
    if not await container.products.delete(product_id):
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")


@router.post("/bulk-delete", response_model=BulkDeleteResponse)
async def bulk_delete_products(payload: BulkDeleteRequest, container: Container = Depends(get_container)):
    deleted = await container.products.delete_many(payload.ids)
    return BulkDeleteResponse(requested=len(set(payload.ids)), deleted=deleted)

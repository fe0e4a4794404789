"""Websites API — store registry, catalogue snapshots and crawl control."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator

from api.dependencies import Container, get_container
from core.models import CrawlJobStatus, CrawlStrategy, WebsiteRole, WebsiteStatus
from core.repositories import DuplicateWebsiteError, WebsiteNotFoundError
from crawler.exceptions import CrawlAlreadyActiveError

router = APIRouter(prefix="/api/websites", tags=["websites"])


# ── Schemas ───────────────────────────────────────────────────────────

class WebsiteCreate(BaseModel):
    url: str
    name: str | None = None
    role: WebsiteRole = WebsiteRole.COMPETITOR
    crawl_strategy: CrawlStrategy = CrawlStrategy.AUTO

    @field_validator("url")
    @classmethod
    def _http_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("url must start with http:// or https://")
        return value


class WebsiteUpdate(BaseModel):
    name: str | None = None
    crawl_strategy: CrawlStrategy | None = None


class WebsiteOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    name: str
    role: WebsiteRole
    crawl_strategy: CrawlStrategy
    status: WebsiteStatus
    last_crawled_at: datetime | None = None


class ProductOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    website_id: int
    name: str
    price: float | None = None
    sku: str | None = None
    image_url: str | None = None
    product_url: str | None = None


class CrawlRequest(BaseModel):
    strategy: CrawlStrategy | None = None
    max_pages: int | None = Field(default=None, ge=1)
    delay_ms: int | None = Field(default=None, ge=0)
    timeout_ms: int | None = Field(default=None, gt=0)
    max_crawl_time_ms: int | None = Field(default=None, gt=0)


class CrawlJobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    website_id: int
    status: CrawlJobStatus
    crawled_pages: int
    total_products: int
    error_message: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None


class CrawlStatusOut(BaseModel):
    active: bool
    live: dict | None = None
    job: CrawlJobOut | None = None


# ── Helpers ───────────────────────────────────────────────────────────

async def _require_website(container: Container, website_id: int):
    try:
        return await container.websites.require(website_id)
    except WebsiteNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


# ── Endpoints ─────────────────────────────────────────────────────────

@router.get("", response_model=list[WebsiteOut])
async def list_websites(container: Container = Depends(get_container)):
    return await container.websites.list_all()


@router.post("", response_model=WebsiteOut, status_code=status.HTTP_201_CREATED)
async def create_website(payload: WebsiteCreate, container: Container = Depends(get_container)):
    try:
        return await container.websites.create(
            payload.url,
            name=payload.name,
            role=payload.role,
            crawl_strategy=payload.crawl_strategy,
        )
    except DuplicateWebsiteError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc


@router.get("/{website_id}", response_model=WebsiteOut)
async def get_website(website_id: int, container: Container = Depends(get_container)):
    return await _require_website(container, website_id)


@router.put("/{website_id}", response_model=WebsiteOut)
async def update_website(website_id: int, payload: WebsiteUpdate, container: Container = Depends(get_container)):
    fields = payload.model_dump(exclude_none=True)
    try:
        return await container.websites.update(website_id, **fields)
    except WebsiteNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/{website_id}/set-source", response_model=WebsiteOut)
async def set_source(website_id: int, container: Container = Depends(get_container)):
    """Make this website the source store; the previous source becomes a competitor."""
    try:
        return await container.websites.set_source(website_id)
    except WebsiteNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.delete("/{website_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_website(website_id: int, container: Container = Depends(get_container)):
    if container.crawl_service.manager.is_active(website_id):
        raise HTTPException(status_code=409, detail="Cancel the running crawl before deleting this website")
    if not await container.websites.delete(website_id):
        raise HTTPException(status_code=404, detail=f"Website {website_id} not found")


@router.get("/{website_id}/products", response_model=list[ProductOut])
async def list_website_products(website_id: int, container: Container = Depends(get_container)):
    await _require_website(container, website_id)
    return await container.products.list_for_website(website_id)


# ── Crawling ──────────────────────────────────────────────────────────

@router.post("/{website_id}/crawl", response_model=CrawlJobOut, status_code=status.HTTP_202_ACCEPTED)
async def start_crawl(
    website_id: int,
    payload: CrawlRequest | None = None,
    container: Container = Depends(get_container),
):
    """Start a background crawl. Progress is pushed on /ws/progress."""
    overrides = payload.model_dump(exclude_none=True) if payload else {}
    try:
        return await container.crawl_service.start_website_crawl(website_id, **overrides)
    except WebsiteNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except CrawlAlreadyActiveError as exc:
        raise HTTPException(status_code=409, detail="A crawl is already in progress for this website") from exc


@router.post("/{website_id}/crawl/cancel")
async def cancel_crawl(website_id: int, container: Container = Depends(get_container)) -> dict[str, bool]:
    await _require_website(container, website_id)
    found = await container.crawl_service.cancel_website_crawl(website_id)
    return {"cancelled": True, "was_running": found}


@router.get("/{website_id}/jobs", response_model=list[CrawlJobOut])
async def list_crawl_jobs(
    website_id: int,
    limit: int = Query(default=50, ge=1, le=500),
    container: Container = Depends(get_container),
):
    """Crawl history, newest first."""
    await _require_website(container, website_id)
    return await container.jobs.list_for_website(website_id, limit=limit)


@router.get("/{website_id}/crawl/status", response_model=CrawlStatusOut)
async def crawl_status(website_id: int, container: Container = Depends(get_container)):
    await _require_website(container, website_id)
    state = await container.crawl_service.get_crawl_status(website_id)
    job = state["job"]
    return CrawlStatusOut(
        active=state["active"],
        live=state["live"],
        job=CrawlJobOut.model_validate(job) if job is not None else None,
    )

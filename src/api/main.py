"""
FastAPI application entry point.

Composition root: builds the repositories, the crawler manager and the
services once per app (lifespan), mounts the REST routers and streams
crawl progress over a WebSocket.

Run with:
    uvicorn api.main:app --app-dir src
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from api.dependencies import Container
from api.routes.matching import router as matching_router
from api.routes.products import router as products_router
from api.routes.websites import router as websites_router
from core.config import settings
from crawler.manager import CrawlerManager

logger = logging.getLogger(__name__)


def create_app(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    manager: CrawlerManager | None = None,
) -> FastAPI:
    """
    Build the application. Tests pass their own session factory and
    manager; production uses the module-level database engine.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Application lifespan: startup/shutdown events."""
        # Startup
        if session_factory is None:
            from core.database import async_session_factory as factory
        else:
            factory = session_factory
        app.state.container = Container.build(factory, manager)
        logger.info("API started (rendered crawling: %s)", settings.rendered_crawling_enabled)
        yield
        # Shutdown
        await app.state.container.crawl_service.shutdown()
        logger.info("API stopped")

    app = FastAPI(
        title="Competitor Price Matcher",
        description="Crawls competitor storefronts and matches their products against the source store",
        version="0.1.0",
        lifespan=lifespan,
    )

    # ── Routes ────────────────────────────────────────────────────────
    app.include_router(websites_router)
    app.include_router(matching_router)
    app.include_router(products_router)

    @app.get("/health")
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "price-matcher"}

    @app.websocket("/ws/progress")
    async def progress_stream(websocket: WebSocket) -> None:
        """Push every crawl progress event to the connected client."""
        await websocket.accept()
        broadcaster = websocket.app.state.container.broadcaster
        async with broadcaster.subscription() as queue:
            try:
                while True:
                    message = await queue.get()
                    await websocket.send_json(message)
            except WebSocketDisconnect:
                logger.debug("Progress subscriber disconnected")

    return app


logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - [%(levelname)s] - %(name)s - %(message)s",
)

app = create_app()

"""
Crawl Service — job and website lifecycle around a crawl
==========================================================
Glue between the CrawlerManager and persistence:

  start     → reserve the website, create a running CrawlJob,
              mark the website ``crawling``, crawl in a background task
  progress  → job counters updated as pages complete, events broadcast
  completed → website products replaced, job completed, website ``completed``
  cancelled → job failed "Cancelled by user", website ``cancelled``,
              previous products kept
  timeout / fatal error → job failed with the message, website ``failed``
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from core.models import CrawlJob, CrawlJobStatus, Website, WebsiteStatus
from core.notifications.progress import ProgressBroadcaster
from core.repositories import CrawlJobRepository, ProductRepository, WebsiteRepository
from crawler.exceptions import CrawlTimeoutError
from crawler.manager import ActiveCrawl, CrawlerManager
from crawler.models import CrawlOptions, CrawlResult, CrawlStatus, ProgressEvent, ProgressSink, ProgressStatus

logger = logging.getLogger(__name__)

CANCELLED_BY_USER = "Cancelled by user"


class _JobProgressWriter:
    """
    ProgressSink that forwards every event and persists the page counters.

    Writes are coalesced: while one update is in flight only the most
    recent counters are kept for the next one.
    """

    def __init__(self, jobs: CrawlJobRepository, job_id: int, forward: ProgressSink | None = None) -> None:
        self._jobs = jobs
        self._job_id = job_id
        self._forward = forward
        self._pending: tuple[int, int] | None = None
        self._task: asyncio.Task | None = None

    def __call__(self, event: ProgressEvent) -> None:
        if self._forward is not None:
            self._forward(event)
        if event.status != ProgressStatus.CRAWLING:
            return
        self._pending = (event.pages_crawled, event.products_found)
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while self._pending is not None:
            pages, products = self._pending
            self._pending = None
            try:
                await self._jobs.update_progress(self._job_id, pages, products)
            except Exception as exc:
                logger.warning("Could not record progress for CrawlJob #%d: %s", self._job_id, exc)

    async def flush(self) -> None:
        if self._task is not None:
            await self._task


class CrawlService:
    """
    Usage:
        service = CrawlService(manager, websites, products, jobs, broadcaster)
        job = await service.start_website_crawl(website_id)      # background
        result = await service.crawl_website(website_id)          # awaited
    """

    def __init__(
        self,
        manager: CrawlerManager,
        websites: WebsiteRepository,
        products: ProductRepository,
        jobs: CrawlJobRepository,
        broadcaster: ProgressBroadcaster | None = None,
    ) -> None:
        self.manager = manager
        self.websites = websites
        self.products = products
        self.jobs = jobs
        self.broadcaster = broadcaster
        self._tasks: set[asyncio.Task] = set()

    async def start_website_crawl(self, website_id: int, **overrides: Any) -> CrawlJob:
        """
        Start crawling a website in the background and return its CrawlJob.

        Raises WebsiteNotFoundError or CrawlAlreadyActiveError before any
        job is created.
        """
        website, job, active = await self._prepare(website_id, overrides)
        task = asyncio.create_task(self._run(website, job, active), name=f"crawl-website-{website.id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return job

    async def crawl_website(self, website_id: int, **overrides: Any) -> CrawlResult | None:
        """Same as start_website_crawl but waits for the end. None when the job failed."""
        website, job, active = await self._prepare(website_id, overrides)
        return await self._run(website, job, active)

    async def cancel_website_crawl(self, website_id: int) -> bool:
        """
        Cancel a website's crawl and force its records to a terminal state.
        Returns whether a crawl was actually running.
        """
        found = await self.manager.cancel_crawl(website_id)
        await self.websites.set_status(website_id, WebsiteStatus.CANCELLED)
        job = await self.jobs.latest_for_website(website_id)
        if job is not None and job.status == CrawlJobStatus.RUNNING:
            await self.jobs.mark_failed(job.id, CANCELLED_BY_USER)
        return found

    async def get_crawl_status(self, website_id: int) -> dict[str, Any]:
        live = self.manager.get_status(website_id)
        job = await self.jobs.latest_for_website(website_id)
        return {
            "active": live is not None,
            "live": live,
            "job": job,
        }

    async def join(self) -> None:
        """Wait until every background crawl has finished and been recorded."""
        while self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    async def shutdown(self) -> None:
        await self.manager.shutdown()
        await self.join()

    # ── Internals ──────────────────────────────────────────────────────

    async def _prepare(self, website_id: int, overrides: dict[str, Any]) -> tuple[Website, CrawlJob, ActiveCrawl]:
        website = await self.websites.require(website_id)
        params = {"strategy": website.crawl_strategy, **overrides}
        options = CrawlOptions.from_settings(**params)

        active = await self.manager.reserve(website.id, website.url, options)
        try:
            job = await self.jobs.create(website.id)
            await self.websites.set_status(website.id, WebsiteStatus.CRAWLING)
        except BaseException:
            await self.manager.release(active)
            raise
        return website, job, active

    async def _run(self, website: Website, job: CrawlJob, active: ActiveCrawl) -> CrawlResult | None:
        forward = self.broadcaster.sink_for(website.id, job.id) if self.broadcaster else None
        progress = _JobProgressWriter(self.jobs, job.id, forward)

        try:
            try:
                result = await self.manager.run(active, progress)
            finally:
                await progress.flush()

            if result.status == CrawlStatus.CANCELLED or active.cancel_requested:
                await self.jobs.mark_failed(job.id, CANCELLED_BY_USER)
                await self._set_website_status(website, job, WebsiteStatus.CANCELLED)
                logger.info("CrawlJob #%d cancelled, keeping previous products of %s", job.id, website.url)
                return result

            stored = await self.products.replace_for_website(website.id, result.products)
            await self.jobs.update_progress(job.id, result.pages_crawled, stored)
            await self.jobs.mark_completed(job.id, stored)
            await self.websites.set_status(website.id, WebsiteStatus.COMPLETED, crawled=True)
            return result

        except CrawlTimeoutError as exc:
            await self._fail(website, job, str(exc))
        except asyncio.CancelledError:
            await self._fail(website, job, "Crawl task cancelled")
            raise
        except Exception as exc:
            logger.exception("CrawlJob #%d for %s failed", job.id, website.url)
            await self._fail(website, job, str(exc) or exc.__class__.__name__)
        return None

    async def _fail(self, website: Website, job: CrawlJob, message: str) -> None:
        await self.jobs.mark_failed(job.id, message)
        await self._set_website_status(website, job, WebsiteStatus.FAILED)
        if self.broadcaster is not None:
            self.broadcaster.sink_for(website.id, job.id)(
                ProgressEvent(status=ProgressStatus.ERROR, message=message)
            )
        logger.warning("CrawlJob #%d failed: %s", job.id, message)

    async def _set_website_status(self, website: Website, job: CrawlJob, status: WebsiteStatus) -> None:
        # A newer crawl may already own the website after a cancel
        latest = await self.jobs.latest_for_website(website.id)
        if latest is not None and latest.id != job.id:
            logger.info(
                "CrawlJob #%d superseded by #%d, leaving website #%d status alone",
                job.id, latest.id, website.id,
            )
            return
        await self.websites.set_status(website.id, status)

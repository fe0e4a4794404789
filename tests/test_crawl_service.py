"""Tests for crawl job / website lifecycle around a crawl."""

import asyncio

import pytest

from core.models import CrawlJobStatus, WebsiteRole, WebsiteStatus
from core.notifications.progress import ProgressBroadcaster
from core.repositories import WebsiteNotFoundError
from crawler.exceptions import CrawlAlreadyActiveError, FetcherInitError
from crawler.manager import CrawlerManager
from crawler.models import CrawlStatus, RawProduct
from crawler.service import CANCELLED_BY_USER, CrawlService

URL = "https://rival.test/"
PAGES = {
    URL: """
        <div class="product" data-sku="K1"><h2 class="product-name">Kettle</h2><span class="price">$30</span></div>
        <div class="product" data-sku="T1"><h2 class="product-name">Toaster</h2><span class="price">$45</span></div>
        <a href="/category/small-appliances">More</a>
    """,
    "https://rival.test/category/small-appliances": """
        <div class="product" data-sku="B1"><h2 class="product-name">Blender</h2><span class="price">$60</span></div>
    """,
}


@pytest.fixture
def broadcaster():
    return ProgressBroadcaster()


@pytest.fixture
def build_service(websites, products, jobs, broadcaster, make_fetcher):
    def _build(pages=PAGES, **fetcher_kwargs):
        manager = CrawlerManager(
            rendered_available=False,
            fetcher_factory=lambda strategy, options: make_fetcher(pages, options, **fetcher_kwargs),
        )
        return CrawlService(manager, websites, products, jobs, broadcaster)

    return _build


class TestCrawlWebsite:
    @pytest.mark.asyncio
    async def test_successful_crawl_stores_snapshot(self, websites, products, jobs, build_service):
        website = await websites.create(URL, name="Rival")
        service = build_service()

        result = await service.crawl_website(website.id, delay_ms=0)

        assert result.status == CrawlStatus.COMPLETED
        assert sorted(p.name for p in await products.list_for_website(website.id)) == ["Blender", "Kettle", "Toaster"]

        job = await jobs.latest_for_website(website.id)
        assert job.status == CrawlJobStatus.COMPLETED
        assert job.crawled_pages == 2
        assert job.total_products == 3

        stored = await websites.get(website.id)
        assert stored.status == WebsiteStatus.COMPLETED
        assert stored.last_crawled_at is not None
        assert not service.manager.is_active(website.id)

    @pytest.mark.asyncio
    async def test_recrawl_replaces_products(self, websites, products, build_service):
        website = await websites.create(URL)
        await products.create_many([RawProduct("Discontinued Fridge", 999.0)], website.id)

        await build_service().crawl_website(website.id, delay_ms=0)

        names = [p.name for p in await products.list_for_website(website.id)]
        assert "Discontinued Fridge" not in names
        assert len(names) == 3

    @pytest.mark.asyncio
    async def test_progress_is_broadcast(self, websites, broadcaster, build_service):
        website = await websites.create(URL)
        queue = broadcaster.subscribe()

        await build_service().crawl_website(website.id, delay_ms=0)

        messages = []
        while not queue.empty():
            messages.append(queue.get_nowait())
        assert messages[0]["status"] == "starting"
        assert messages[-1]["status"] == "completed"
        assert {m["website_id"] for m in messages} == {website.id}
        assert all(m["type"] == "crawl_progress" for m in messages)

    @pytest.mark.asyncio
    async def test_unknown_website(self, build_service):
        with pytest.raises(WebsiteNotFoundError):
            await build_service().crawl_website(404)

    @pytest.mark.asyncio
    async def test_already_active_creates_no_job(self, websites, jobs, build_service):
        website = await websites.create(URL)
        service = build_service()
        await service.manager.reserve(website.id, URL)

        with pytest.raises(CrawlAlreadyActiveError):
            await service.start_website_crawl(website.id)

        assert await jobs.latest_for_website(website.id) is None


class TestFailureAndCancellation:
    @pytest.mark.asyncio
    async def test_timeout_marks_job_failed(self, websites, products, jobs, build_service):
        website = await websites.create(URL)
        await products.create_many([RawProduct("Old Kettle", 25.0)], website.id)
        service = build_service(delay=10)

        result = await service.crawl_website(website.id, delay_ms=0, max_crawl_time_ms=100)

        assert result is None
        job = await jobs.latest_for_website(website.id)
        assert job.status == CrawlJobStatus.FAILED
        assert "timed out" in job.error_message
        assert (await websites.get(website.id)).status == WebsiteStatus.FAILED
        assert [p.name for p in await products.list_for_website(website.id)] == ["Old Kettle"]
        assert not service.manager.is_active(website.id)

    @pytest.mark.asyncio
    async def test_fetcher_start_failure_marks_job_failed(self, websites, jobs, build_service):
        website = await websites.create(URL)
        service = build_service(open_error=FetcherInitError("browser missing"))

        assert await service.crawl_website(website.id) is None

        job = await jobs.latest_for_website(website.id)
        assert job.status == CrawlJobStatus.FAILED
        assert job.error_message == "browser missing"

    @pytest.mark.asyncio
    async def test_cancel_keeps_previous_products(self, websites, products, jobs, build_service):
        website = await websites.create(URL, role=WebsiteRole.SOURCE)
        await products.create_many([RawProduct("Old Kettle", 25.0)], website.id)
        service = build_service(delay=10)

        job = await service.start_website_crawl(website.id, delay_ms=0)
        await asyncio.sleep(0.05)
        assert (await service.get_crawl_status(website.id))["active"] is True

        assert await service.cancel_website_crawl(website.id) is True
        await asyncio.wait_for(service.join(), timeout=2)

        stored_job = await jobs.get(job.id)
        assert stored_job.status == CrawlJobStatus.FAILED
        assert stored_job.error_message == CANCELLED_BY_USER
        assert (await websites.get(website.id)).status == WebsiteStatus.CANCELLED
        assert [p.name for p in await products.list_for_website(website.id)] == ["Old Kettle"]

        status = await service.get_crawl_status(website.id)
        assert status["active"] is False
        assert status["job"].id == job.id

    @pytest.mark.asyncio
    async def test_late_finish_of_cancelled_crawl_leaves_new_crawl_alone(
        self, websites, products, jobs, broadcaster, make_fetcher
    ):
        """Should not flip the website back to cancelled once a newer crawl owns it."""
        website = await websites.create(URL)
        gate = asyncio.Event()

        def factory(strategy, options):
            first = not make_fetcher.built
            fetcher = make_fetcher(PAGES, options, delay=10)
            if first:
                async def gated_close():
                    await gate.wait()
                    fetcher.closed = True

                fetcher.close = gated_close
            return fetcher

        manager = CrawlerManager(rendered_available=False, fetcher_factory=factory)
        service = CrawlService(manager, websites, products, jobs, broadcaster)

        old_job = await service.start_website_crawl(website.id, delay_ms=0)
        old_tasks = set(service._tasks)
        await asyncio.sleep(0.05)
        await service.cancel_website_crawl(website.id)

        new_job = await service.start_website_crawl(website.id, delay_ms=0)
        gate.set()
        await asyncio.wait_for(asyncio.gather(*old_tasks), timeout=2)

        assert (await websites.get(website.id)).status == WebsiteStatus.CRAWLING
        assert (await jobs.get(old_job.id)).error_message == CANCELLED_BY_USER
        assert (await jobs.get(new_job.id)).status == CrawlJobStatus.RUNNING

        await service.cancel_website_crawl(website.id)
        await asyncio.wait_for(service.join(), timeout=2)

    @pytest.mark.asyncio
    async def test_cancel_without_running_crawl(self, websites, build_service):
        website = await websites.create(URL)

        assert await build_service().cancel_website_crawl(website.id) is False
        assert (await websites.get(website.id)).status == WebsiteStatus.CANCELLED


class TestProgressBroadcaster:
    @pytest.mark.asyncio
    async def test_full_queue_drops_instead_of_blocking(self):
        broadcaster = ProgressBroadcaster(queue_size=1)
        async with broadcaster.subscription() as queue:
            assert broadcaster.publish({"status": "crawling"}) == 1
            assert broadcaster.publish({"status": "crawling"}) == 0
            assert queue.qsize() == 1
        assert broadcaster.subscriber_count == 0

"""HTTP API tests: FastAPI app over a temporary SQLite store, fake fetcher."""

import httpx
import pytest
import pytest_asyncio

from api.main import create_app
from core.models import WebsiteRole
from crawler.manager import CrawlerManager
from crawler.models import RawProduct

RIVAL_URL = "https://rival.test/"
RIVAL_PAGES = {
    RIVAL_URL: """
        <div class="product" data-sku="WM-X200"><h2 class="product-name">Wireless Mouse X200</h2>
        <span class="price">$27.50</span></div>
        <div class="product"><h2 class="product-name">Espresso Machine</h2><span class="price">$399.00</span></div>
    """,
}


@pytest_asyncio.fixture
async def app(session_factory, make_fetcher):
    manager = CrawlerManager(
        rendered_available=False,
        fetcher_factory=lambda strategy, options: make_fetcher(RIVAL_PAGES, options),
    )
    application = create_app(session_factory, manager)
    async with application.router.lifespan_context(application):
        yield application


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        yield http


async def _create_source(client, products):
    response = await client.post(
        "/api/websites", json={"url": "https://source.test", "name": "Source", "role": "source"}
    )
    source = response.json()
    await products.create_many(
        [RawProduct("Wireless Mouse X200", 29.99, "WM-X200"), RawProduct("Garden Hose 20m", 15.0)],
        source["id"],
    )
    return source


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "service": "price-matcher"}


class TestWebsitesApi:
    @pytest.mark.asyncio
    async def test_create_list_get(self, client):
        response = await client.post("/api/websites", json={"url": RIVAL_URL, "name": "Rival"})
        assert response.status_code == 201
        website = response.json()
        assert website["role"] == "competitor"
        assert website["status"] == "pending"
        assert website["crawl_strategy"] == "auto"

        listed = (await client.get("/api/websites")).json()
        assert [w["id"] for w in listed] == [website["id"]]
        assert (await client.get(f"/api/websites/{website['id']}")).json()["name"] == "Rival"

    @pytest.mark.asyncio
    async def test_duplicate_and_invalid(self, client):
        await client.post("/api/websites", json={"url": RIVAL_URL})

        assert (await client.post("/api/websites", json={"url": RIVAL_URL})).status_code == 409
        assert (await client.post("/api/websites", json={"url": "ftp://rival.test"})).status_code == 422

    @pytest.mark.asyncio
    async def test_missing_website(self, client):
        assert (await client.get("/api/websites/999")).status_code == 404
        assert (await client.put("/api/websites/999", json={"name": "x"})).status_code == 404
        assert (await client.delete("/api/websites/999")).status_code == 404
        assert (await client.post("/api/websites/999/crawl")).status_code == 404

    @pytest.mark.asyncio
    async def test_update_and_set_source(self, client):
        first = (await client.post("/api/websites", json={"url": "https://a.test", "role": "source"})).json()
        second = (await client.post("/api/websites", json={"url": "https://b.test"})).json()

        updated = await client.put(f"/api/websites/{second['id']}", json={"name": "Bee", "crawl_strategy": "static"})
        assert updated.json()["name"] == "Bee"
        assert updated.json()["crawl_strategy"] == "static"

        response = await client.post(f"/api/websites/{second['id']}/set-source")
        assert response.json()["role"] == "source"
        assert (await client.get(f"/api/websites/{first['id']}")).json()["role"] == "competitor"

    @pytest.mark.asyncio
    async def test_crawl_then_products(self, app, client):
        website = (await client.post("/api/websites", json={"url": RIVAL_URL})).json()

        response = await client.post(f"/api/websites/{website['id']}/crawl", json={"delay_ms": 0})
        assert response.status_code == 202
        assert response.json()["status"] == "running"

        await app.state.container.crawl_service.join()

        status = (await client.get(f"/api/websites/{website['id']}/crawl/status")).json()
        assert status["active"] is False
        assert status["job"]["status"] == "completed"
        assert status["job"]["total_products"] == 2

        products = (await client.get(f"/api/websites/{website['id']}/products")).json()
        assert sorted(p["name"] for p in products) == ["Espresso Machine", "Wireless Mouse X200"]
        assert (await client.get(f"/api/websites/{website['id']}")).json()["status"] == "completed"

    @pytest.mark.asyncio
    async def test_cancel_idle_crawl(self, client):
        website = (await client.post("/api/websites", json={"url": RIVAL_URL})).json()

        response = await client.post(f"/api/websites/{website['id']}/crawl/cancel")

        assert response.json() == {"cancelled": True, "was_running": False}

    @pytest.mark.asyncio
    async def test_delete(self, client):
        website = (await client.post("/api/websites", json={"url": RIVAL_URL})).json()

        assert (await client.delete(f"/api/websites/{website['id']}")).status_code == 204
        assert (await client.get(f"/api/websites/{website['id']}")).status_code == 404


class TestMatchingApi:
    @pytest.mark.asyncio
    async def test_run_without_products(self, client):
        response = await client.post("/api/matching/run")
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_run_and_inspect(self, app, client, products):
        await _create_source(client, products)
        rival = (await client.post("/api/websites", json={"url": RIVAL_URL, "name": "Rival"})).json()
        await client.post(f"/api/websites/{rival['id']}/crawl", json={"delay_ms": 0})
        await app.state.container.crawl_service.join()

        response = await client.post("/api/matching/run", json={"min_similarity": 0.6})
        assert response.status_code == 200
        assert response.json() == {"total_source_products": 2, "total_competitor_products": 2, "matches_found": 1}

        [match] = (await client.get("/api/matching")).json()
        assert match["match_type"] == "sku_exact"
        assert match["is_confirmed"] is True
        assert match["competitor_product"]["name"] == "Wireless Mouse X200"

        unmatched = (await client.get("/api/matching/unmatched")).json()
        assert [p["name"] for p in unmatched] == ["Garden Hose 20m"]
        unmatched_rivals = (await client.get("/api/matching/unmatched-competitors")).json()
        assert [p["name"] for p in unmatched_rivals] == ["Espresso Machine"]

        stats = (await client.get("/api/matching/stats")).json()
        assert stats["total_matches"] == 1
        assert stats["match_type_breakdown"] == {"sku_exact": 1}

        comparison = (await client.get("/api/matching/comparison")).json()
        mouse_row = next(r for r in comparison if r["source_product"]["name"] == "Wireless Mouse X200")
        assert mouse_row["matches"][0]["price_difference"] == pytest.approx(-2.49)

    @pytest.mark.asyncio
    async def test_invalid_run_options(self, client):
        response = await client.post("/api/matching/run", json={"min_similarity": 2})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_manual_match_confirm_delete(self, client, products):
        source = await _create_source(client, products)
        rival = (await client.post("/api/websites", json={"url": RIVAL_URL})).json()
        await products.create_many([RawProduct("Espresso Machine", 399.0)], rival["id"])
        [hose] = [p for p in await products.list_by_role(WebsiteRole.SOURCE) if p.name == "Garden Hose 20m"]
        [espresso] = await products.list_for_website(rival["id"])

        response = await client.post(
            "/api/matching/manual",
            json={"source_product_id": hose.id, "competitor_product_id": espresso.id},
        )
        assert response.status_code == 201
        assert response.json()["match_type"] == "manual"

        wrong_way = await client.post(
            "/api/matching/manual",
            json={"source_product_id": espresso.id, "competitor_product_id": hose.id},
        )
        assert wrong_way.status_code == 422
        missing = await client.post(
            "/api/matching/manual", json={"source_product_id": 9999, "competitor_product_id": espresso.id}
        )
        assert missing.status_code == 404

        [match] = (await client.get("/api/matching")).json()
        assert (await client.post(f"/api/matching/{match['id']}/confirm")).json() == {"confirmed": True}
        assert (await client.delete(f"/api/matching/{match['id']}")).status_code == 204
        assert (await client.delete(f"/api/matching/{match['id']}")).status_code == 404
        assert (await client.post(f"/api/matching/{match['id']}/confirm")).status_code == 404
        assert source["role"] == "source"

    @pytest.mark.asyncio
    async def test_suggestions(self, client, products):
        await _create_source(client, products)
        rival = (await client.post("/api/websites", json={"url": RIVAL_URL})).json()
        await products.create_many([RawProduct("Wireless Mouse X-200", 26.0)], rival["id"])
        [mouse] = [p for p in await products.list_by_role(WebsiteRole.SOURCE) if p.sku == "WM-X200"]

        response = await client.get(f"/api/matching/suggestions/{mouse.id}", params={"limit": 5})

        [suggestion] = response.json()
        assert suggestion["product"]["name"] == "Wireless Mouse X-200"
        assert suggestion["match_type"] == "name_exact"
        assert (await client.get("/api/matching/suggestions/9999")).status_code == 404


class TestProductsApi:
    @pytest.mark.asyncio
    async def test_list_get_and_search(self, client, products):
        source = await _create_source(client, products)

        listed = (await client.get("/api/products", params={"role": "source"})).json()
        assert [p["name"] for p in listed] == ["Garden Hose 20m", "Wireless Mouse X200"]
        assert listed[0]["website"]["id"] == source["id"]

        found = (await client.get("/api/products/search", params={"q": "wm-x"})).json()
        assert [p["name"] for p in found] == ["Wireless Mouse X200"]
        assert (await client.get("/api/products/search", params={"q": "HOSE"})).json()[0]["sku"] is None

        product = (await client.get(f"/api/products/{listed[0]['id']}")).json()
        assert product["website"]["role"] == "source"
        assert (await client.get("/api/products/9999")).status_code == 404

    @pytest.mark.asyncio
    async def test_delete_product_removes_its_matches(self, client, products):
        await _create_source(client, products)
        rival = (await client.post("/api/websites", json={"url": RIVAL_URL})).json()
        await products.create_many([RawProduct("Wireless Mouse X200", 27.5, "WM-X200")], rival["id"])
        await client.post("/api/matching/run")
        [rival_mouse] = await products.list_for_website(rival["id"])
        assert len((await client.get("/api/matching")).json()) == 1

        assert (await client.delete(f"/api/products/{rival_mouse.id}")).status_code == 204

        assert (await client.get("/api/matching")).json() == []
        assert (await client.get(f"/api/websites/{rival['id']}/products")).json() == []
        assert (await client.delete(f"/api/products/{rival_mouse.id}")).status_code == 404

    @pytest.mark.asyncio
    async def test_bulk_delete(self, client, products):
        source = await _create_source(client, products)
        ids = [p.id for p in await products.list_for_website(source["id"])]

        response = await client.post("/api/products/bulk-delete", json={"ids": ids + [9999]})

        assert response.json() == {"requested": 3, "deleted": 2}
        assert (await client.get(f"/api/websites/{source['id']}/products")).json() == []
        assert (await client.post("/api/products/bulk-delete", json={"ids": []})).status_code == 422


class TestCrawlHistoryApi:
    @pytest.mark.asyncio
    async def test_jobs_newest_first(self, app, client):
        website = (await client.post("/api/websites", json={"url": RIVAL_URL})).json()
        for _ in range(2):
            await client.post(f"/api/websites/{website['id']}/crawl", json={"delay_ms": 0})
            await app.state.container.crawl_service.join()

        jobs = (await client.get(f"/api/websites/{website['id']}/jobs")).json()

        assert len(jobs) == 2
        assert jobs[0]["id"] > jobs[1]["id"]
        assert {j["status"] for j in jobs} == {"completed"}
        assert len((await client.get(f"/api/websites/{website['id']}/jobs", params={"limit": 1})).json()) == 1
        assert (await client.get("/api/websites/999/jobs")).status_code == 404

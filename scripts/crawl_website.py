"""
Crawl one storefront from the command line.

Without --website-id nothing touches the database: the crawl runs in
memory and the products are printed. With --website-id the crawl goes
through CrawlService, exactly like the API does.

    python scripts/crawl_website.py --url https://shop.example.com --max-pages 5
    python scripts/crawl_website.py --website-id 3
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from core.database import async_session_factory  # noqa: E402
from core.models import CrawlStrategy  # noqa: E402
from core.repositories import CrawlJobRepository, ProductRepository, WebsiteRepository  # noqa: E402
from crawler.manager import CrawlerManager  # noqa: E402
from crawler.models import CrawlOptions, ProgressEvent  # noqa: E402
from crawler.service import CrawlService  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s - [%(levelname)s] - %(name)s - %(message)s")
logger = logging.getLogger("crawl_website")


def print_progress(event: ProgressEvent) -> None:
    print(f"  [{event.status}] {event.message} (pages={event.pages_crawled}, products={event.products_found})")


async def crawl_url(url: str, options: CrawlOptions) -> None:
    manager = CrawlerManager()
    result = await manager.start_crawl(url, url, options, print_progress)

    print(f"\n🏁 {result.status}: {result.pages_crawled} pages, {result.failed_pages} failed, platform={result.platform}")
    for product in result.products:
        price = f"{product.price:.2f}" if product.price is not None else "-"
        print(f"  • {product.name[:70]:<70} {price:>10}  sku={product.sku or '-'}")


async def crawl_stored_website(website_id: int, overrides: dict) -> None:
    websites = WebsiteRepository(async_session_factory)
    service = CrawlService(
        CrawlerManager(),
        websites,
        ProductRepository(async_session_factory),
        CrawlJobRepository(async_session_factory),
    )
    result = await service.crawl_website(website_id, **overrides)
    website = await websites.require(website_id)
    if result is None:
        print(f"\n❌ Crawl failed, website status: {website.status}")
    else:
        print(f"\n🏁 {website.name}: {len(result.products)} products stored, status {website.status}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Crawl a storefront and extract its product listings")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--url", type=str, help="Start URL, crawled in memory only")
    target.add_argument("--website-id", type=int, help="Registered website to crawl and store")
    parser.add_argument("--max-pages", type=int, default=None)
    parser.add_argument("--delay-ms", type=int, default=None)
    parser.add_argument("--strategy", choices=[s.value for s in CrawlStrategy], default=None)
    args = parser.parse_args()

    overrides = {
        "max_pages": args.max_pages,
        "delay_ms": args.delay_ms,
        "strategy": CrawlStrategy(args.strategy) if args.strategy else None,
    }

    if args.url:
        asyncio.run(crawl_url(args.url, CrawlOptions.from_settings(**overrides)))
    else:
        asyncio.run(crawl_stored_website(args.website_id, {k: v for k, v in overrides.items() if v is not None}))


if __name__ == "__main__":
    main()

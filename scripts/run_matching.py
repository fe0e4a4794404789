"""Run product matching against the database and print the price comparison."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from core.database import async_session_factory  # noqa: E402
from core.repositories import ProductMatchRepository, ProductRepository  # noqa: E402
from matching.exceptions import MatchingConfigurationError  # noqa: E402
from matching.models import MatchingOptions  # noqa: E402
from matching.service import MatchingService  # noqa: E402

logging.basicConfig(level=logging.INFO, format="%(asctime)s - [%(levelname)s] - %(name)s - %(message)s")
logger = logging.getLogger("run_matching")


async def main(options: MatchingOptions) -> int:
    service = MatchingService(
        ProductRepository(async_session_factory),
        ProductMatchRepository(async_session_factory),
        options,
    )
    try:
        result = await service.run_matching()
    except MatchingConfigurationError as exc:
        print(f"❌ {exc}")
        return 1

    print(
        f"🔗 {result.matches_found} matches "
        f"({result.total_source_products} source vs {result.total_competitor_products} competitor products)\n"
    )
    for row in await service.build_comparison():
        source = row["source_product"]
        print(f"• {source['name'][:60]} — {source['price']}")
        for match in row["matches"]:
            diff = match["price_difference"]
            diff_text = f"{diff:+.2f}" if diff is not None else "n/a"
            print(
                f"    {match['competitor_website']:<25} {match['competitor_product']['price']!s:>10} "
                f"({diff_text}) [{match['match_type']} {match['match_score']:.2f}]"
            )
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Match source products against competitors")
    parser.add_argument("--min-similarity", type=float, default=None)
    parser.add_argument("--max-matches", type=int, default=None)
    parser.add_argument("--allow-duplicates", action="store_true")
    args = parser.parse_args()

    opts = MatchingOptions.from_settings(
        min_similarity=args.min_similarity,
        max_matches_per_product=args.max_matches,
        allow_duplicate_matches=args.allow_duplicates or None,
    )
    sys.exit(asyncio.run(main(opts)))

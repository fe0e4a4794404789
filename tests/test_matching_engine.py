"""Tests for turning pairwise scores into a match assignment."""

from dataclasses import dataclass

import pytest

from core.models import MatchType
from matching.engine import MatchingEngine, to_match_type
from matching.models import MatchingOptions, ScoreType


@dataclass
class Item:
    id: int
    name: str
    price: float | None = None
    sku: str | None = None


MOUSE = Item(1, "Wireless Mouse X200", 29.99, "WM-X200")
SHIRT = Item(2, "Blue Cotton T-Shirt Large", 20.00)

COMPETITORS = [
    Item(10, "Wireless Mouse X200", 27.50, "WM-X200"),
    Item(11, "Cotton T-Shirt Blue (L)", 19.00),
    Item(12, "Espresso Machine", 399.0),
]


class TestMatch:
    def test_end_to_end_assignment(self):
        matches = MatchingEngine(MatchingOptions()).match([MOUSE, SHIRT], COMPETITORS)

        pairs = {(m.source_product_id, m.competitor_product_id): m for m in matches}
        assert set(pairs) == {(1, 10), (2, 11)}

        mouse = pairs[(1, 10)]
        assert mouse.match_type == MatchType.SKU_EXACT
        assert mouse.match_score == 1.0
        assert mouse.is_confirmed is True

        shirt = pairs[(2, 11)]
        assert shirt.match_type in (MatchType.NAME_FUZZY, MatchType.NAME_EXACT)
        assert shirt.is_confirmed is False

    def test_competitor_goes_to_first_source(self):
        sources = [Item(1, "Ceramic Coffee Mug"), Item(2, "Ceramic Coffee Mug")]
        competitors = [Item(10, "Ceramic Coffee Mug")]

        matches = MatchingEngine().match(sources, competitors)

        assert [(m.source_product_id, m.competitor_product_id) for m in matches] == [(1, 10)]

    def test_duplicates_allowed(self):
        sources = [Item(1, "Ceramic Coffee Mug"), Item(2, "Ceramic Coffee Mug")]
        competitors = [Item(10, "Ceramic Coffee Mug")]

        matches = MatchingEngine(MatchingOptions(allow_duplicate_matches=True)).match(sources, competitors)

        assert [(m.source_product_id, m.competitor_product_id) for m in matches] == [(1, 10), (2, 10)]

    def test_cap_per_source_keeps_best(self):
        source = Item(1, "Desk Lamp", 25.0)
        competitors = [Item(10, "Desk Lamp", 80.0), Item(11, "Desk Lamp", 25.0), Item(12, "Desk Lamp", 26.0)]

        matches = MatchingEngine(MatchingOptions(max_matches_per_product=2)).match([source], competitors)

        assert [m.competitor_product_id for m in matches] == [11, 12]

    def test_threshold(self):
        source = Item(1, "Ceramic Coffee Mug")
        competitors = [Item(10, "Ceramic Coffee Mug")]

        assert MatchingEngine(MatchingOptions(min_similarity=0.8)).match([source], competitors) == []
        assert len(MatchingEngine(MatchingOptions(min_similarity=0.7)).match([source], competitors)) == 1

    def test_sku_exact_ignores_threshold(self):
        source = Item(1, "Totally different", sku="X-1")
        competitors = [Item(10, "Nothing alike", sku="x-1")]

        [match] = MatchingEngine(MatchingOptions(min_similarity=1.0)).match([source], competitors)

        assert match.match_type == MatchType.SKU_EXACT

    def test_options_override(self):
        sources = [Item(1, "Ceramic Coffee Mug")]
        competitors = [Item(10, "Ceramic Coffee Mug")]

        assert MatchingEngine().match(sources, competitors, MatchingOptions(min_similarity=0.9)) == []


class TestSuggest:
    def test_ranked_without_threshold(self):
        suggestions = MatchingEngine().suggest(SHIRT, COMPETITORS, limit=2)

        assert len(suggestions) == 2
        assert suggestions[0].competitor.id == 11
        assert suggestions[0].score.value >= suggestions[1].score.value
        assert suggestions[1].score.value < 0.6


class TestOptions:
    @pytest.mark.parametrize(
        "kwargs",
        [{"min_similarity": 1.5}, {"min_similarity": -0.1}, {"max_matches_per_product": 0}],
    )
    def test_invalid_options_rejected(self, kwargs):
        with pytest.raises(ValueError):
            MatchingOptions(**kwargs)

    def test_none_score_type_persists_as_fuzzy(self):
        assert to_match_type(ScoreType.NONE) == MatchType.NAME_FUZZY
        assert to_match_type(ScoreType.SKU_PARTIAL) == MatchType.SKU_PARTIAL

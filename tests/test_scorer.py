"""Tests for pairwise product similarity."""

from dataclasses import dataclass

import pytest

from matching.models import MatchingOptions, ScoreType
from matching.scorer import SimilarityScorer, levenshtein_similarity, name_similarity, token_jaccard


@dataclass
class Item:
    name: str
    price: float | None = None
    sku: str | None = None
    id: int = 0


@pytest.fixture
def scorer():
    return SimilarityScorer(MatchingOptions())


class TestNameSimilarity:
    def test_identical_after_normalisation(self):
        assert levenshtein_similarity("Wireless Mouse", "wireless-mouse!") == 1.0

    def test_empty_names(self):
        assert levenshtein_similarity("", "Mouse") == 0.0
        assert token_jaccard("", "Mouse") == 0.0

    def test_token_overlap_ignores_word_order(self):
        assert token_jaccard("Blue Cotton T-Shirt Large", "Cotton T-Shirt Blue (L)") == pytest.approx(0.75)

    def test_best_of_both_measures(self):
        a, b = "Blue Cotton T-Shirt Large", "Cotton T-Shirt Blue (L)"
        assert name_similarity(a, b) == max(levenshtein_similarity(a, b), token_jaccard(a, b))


class TestSimilarityScorer:
    def test_exact_sku(self, scorer):
        """Same SKU (case and padding aside) is a certain match."""
        source = Item("Wireless Mouse X200", 29.99, "WM-X200")
        competitor = Item("Wireless Mouse X200", 27.50, " wm-x200 ")

        score = scorer.score(source, competitor)

        assert score.value == 1.0
        assert score.match_type == ScoreType.SKU_EXACT

    def test_reordered_name_with_close_price(self, scorer):
        source = Item("Blue Cotton T-Shirt Large", 20.00)
        competitor = Item("Cotton T-Shirt Blue (L)", 19.00)

        score = scorer.score(source, competitor)

        assert score.value >= 0.6
        assert score.match_type in (ScoreType.NAME_FUZZY, ScoreType.NAME_EXACT)

    def test_identical_names_without_prices(self, scorer):
        score = scorer.score(Item("Ceramic Coffee Mug"), Item("Ceramic Coffee Mug"))

        assert score.value == pytest.approx(0.7)
        assert score.match_type == ScoreType.NAME_EXACT

    def test_equal_prices_add_full_price_weight(self, scorer):
        score = scorer.score(Item("Ceramic Coffee Mug", 10.0), Item("Ceramic Coffee Mug", 10.0))
        assert score.value == pytest.approx(1.0)

    def test_distant_prices_add_nothing(self, scorer):
        score = scorer.score(Item("Ceramic Coffee Mug", 10.0), Item("Ceramic Coffee Mug", 100.0))
        assert score.value == pytest.approx(0.7)

    def test_partial_sku(self, scorer):
        score = scorer.score(Item("Desk Lamp", sku="LMP-100"), Item("Desk Lamp", sku="LMP-100-BLK"))

        assert score.match_type == ScoreType.SKU_PARTIAL
        assert score.value == pytest.approx(1.0)

    def test_unrelated_products(self, scorer):
        score = scorer.score(Item("Garden Hose 20m", 15.0), Item("Espresso Machine", 399.0))

        assert score.value < 0.6
        assert score.match_type == ScoreType.NONE

    def test_score_is_capped(self, scorer):
        score = scorer.score(Item("Desk Lamp", 25.0, "LMP-1"), Item("Desk Lamp", 25.0, "LMP-1-BLK"))
        assert score.value == 1.0

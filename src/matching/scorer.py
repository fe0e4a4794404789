"""
Similarity Scorer — how alike are two product listings?
=========================================================
Signals, strongest first:

  1. SKU: exact (case/space-insensitive) match short-circuits to 1.0;
     one SKU containing the other adds a fixed boost
  2. Name: the better of edit-distance similarity and token Jaccard,
     scaled by ``name_weight``
  3. Price: linear bonus from ``price_weight`` at equal prices down to
     zero at ``max_price_diff_ratio`` relative difference

The final value is capped at 1.0.
"""

from __future__ import annotations

import re

from rapidfuzz.distance import Levenshtein

from crawler.normalizer import normalize_name
from matching.models import Comparable, MatchingOptions, ScoreType, SimilarityScore

_PUNCTUATION = re.compile(r"[^\w\s]")


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - distance / longer length, over normalised names."""
    na, nb = normalize_name(a), normalize_name(b)
    if not na or not nb:
        return 0.0
    if na == nb:
        return 1.0
    return 1.0 - Levenshtein.distance(na, nb) / max(len(na), len(nb))


def name_tokens(text: str) -> set[str]:
    return {word for word in _PUNCTUATION.sub(" ", text.lower()).split() if len(word) > 2}


def token_jaccard(a: str, b: str) -> float:
    ta, tb = name_tokens(a or ""), name_tokens(b or "")
    if not ta or not tb:
        return 0.0
    return len(ta & tb) / len(ta | tb)


def name_similarity(a: str, b: str) -> float:
    return max(levenshtein_similarity(a, b), token_jaccard(a, b))


class SimilarityScorer:
    def __init__(self, options: MatchingOptions | None = None) -> None:
        self.options = options or MatchingOptions()

    def score(self, source: Comparable, competitor: Comparable) -> SimilarityScore:
        opts = self.options
        value = 0.0
        match_type = ScoreType.NONE

        source_sku = (source.sku or "").strip().lower()
        competitor_sku = (competitor.sku or "").strip().lower()
        if source_sku and competitor_sku:
            if source_sku == competitor_sku:
                return SimilarityScore(1.0, ScoreType.SKU_EXACT)
            if source_sku in competitor_sku or competitor_sku in source_sku:
                value += opts.sku_partial_boost
                match_type = ScoreType.SKU_PARTIAL

        similarity = name_similarity(source.name, competitor.name)
        value += similarity * opts.name_weight
        if match_type != ScoreType.SKU_PARTIAL:
            if similarity >= opts.exact_name_threshold:
                match_type = ScoreType.NAME_EXACT
            elif similarity >= opts.min_similarity:
                match_type = ScoreType.NAME_FUZZY

        if source.price and competitor.price and source.price + competitor.price > 0:
            ratio = abs(source.price - competitor.price) / ((source.price + competitor.price) / 2)
            if ratio <= opts.max_price_diff_ratio:
                value += (1 - ratio / opts.max_price_diff_ratio) * opts.price_weight

        return SimilarityScore(min(value, 1.0), match_type)

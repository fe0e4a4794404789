"""
Matching Engine — from pairwise scores to an assignment
=========================================================
For each source product, in the order given:

  1. Score every competitor; admit score >= min_similarity or sku_exact
  2. Rank admitted candidates by score (stable for ties)
  3. Unless duplicates are allowed, drop competitors already taken
  4. Keep the top ``max_matches_per_product``

The assignment is greedy: an earlier source product wins a contested
competitor. Pure CPU work, no I/O.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from core.models import MatchType
from matching.models import (
    Comparable,
    MatchCandidate,
    MatchingOptions,
    ScoreType,
    SimilarityScore,
    Suggestion,
)
from matching.scorer import SimilarityScorer

logger = logging.getLogger(__name__)


def to_match_type(score_type: ScoreType) -> MatchType:
    """Persisted type for an admitted score; NONE (price bonus only) is fuzzy."""
    if score_type == ScoreType.NONE:
        return MatchType.NAME_FUZZY
    return MatchType(score_type.value)


class MatchingEngine:
    def __init__(self, options: MatchingOptions | None = None) -> None:
        self.options = options or MatchingOptions()
        self.scorer = SimilarityScorer(self.options)

    def rank(self, source: Comparable, competitors: Sequence[Comparable]) -> list[tuple[Comparable, SimilarityScore]]:
        """All competitors with their score, best first."""
        scored = [(competitor, self.scorer.score(source, competitor)) for competitor in competitors]
        scored.sort(key=lambda pair: pair[1].value, reverse=True)
        return scored

    def candidates_for(self, source: Comparable, competitors: Sequence[Comparable]) -> list[tuple[Comparable, SimilarityScore]]:
        min_similarity = self.options.min_similarity
        return [
            (competitor, score)
            for competitor, score in self.rank(source, competitors)
            if score.value >= min_similarity or score.match_type == ScoreType.SKU_EXACT
        ]

    def match(
        self,
        sources: Sequence[Comparable],
        competitors: Sequence[Comparable],
        options: MatchingOptions | None = None,
    ) -> list[MatchCandidate]:
        if options is not None and options is not self.options:
            return MatchingEngine(options).match(sources, competitors)

        opts = self.options
        consumed: set[int] = set()
        matches: list[MatchCandidate] = []

        for source in sources:
            candidates = self.candidates_for(source, competitors)
            if not opts.allow_duplicate_matches:
                candidates = [pair for pair in candidates if pair[0].id not in consumed]

            for competitor, score in candidates[: opts.max_matches_per_product]:
                matches.append(
                    MatchCandidate(
                        source_product_id=source.id,
                        competitor_product_id=competitor.id,
                        match_type=to_match_type(score.match_type),
                        match_score=score.value,
                        is_confirmed=score.match_type == ScoreType.SKU_EXACT,
                    )
                )
                if not opts.allow_duplicate_matches:
                    consumed.add(competitor.id)

        logger.info(
            "Matched %d source products against %d competitors: %d matches",
            len(sources), len(competitors), len(matches),
        )
        return matches

    def suggest(self, source: Comparable, competitors: Sequence[Comparable], limit: int = 10) -> list[Suggestion]:
        """Top ``limit`` competitors regardless of threshold or prior assignment."""
        return [Suggestion(competitor, score) for competitor, score in self.rank(source, competitors)[:limit]]

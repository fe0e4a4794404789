"""Value types for product matching."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from core.config import Settings, settings
from core.models import MatchType


class ScoreType(StrEnum):
    """Scorer verdict. NONE means no SKU or name signal qualified."""

    SKU_EXACT = "sku_exact"
    SKU_PARTIAL = "sku_partial"
    NAME_EXACT = "name_exact"
    NAME_FUZZY = "name_fuzzy"
    NONE = "none"


class Comparable(Protocol):
    """Anything the scorer can compare: ORM products or plain records."""

    id: int
    name: str
    price: float | None
    sku: str | None


@dataclass(frozen=True, slots=True)
class SimilarityScore:
    value: float
    match_type: ScoreType


@dataclass(slots=True)
class MatchingOptions:
    min_similarity: float = 0.6
    max_matches_per_product: int = 5
    allow_duplicate_matches: bool = False
    # Scorer weights
    sku_partial_boost: float = 0.3
    name_weight: float = 0.7
    price_weight: float = 0.3
    max_price_diff_ratio: float = 0.3
    exact_name_threshold: float = 0.9

    def __post_init__(self) -> None:
        if not 0.0 <= self.min_similarity <= 1.0:
            raise ValueError(f"min_similarity must be within [0, 1], got {self.min_similarity}")
        if self.max_matches_per_product < 1:
            raise ValueError("max_matches_per_product must be at least 1")
        if self.max_price_diff_ratio <= 0:
            raise ValueError("max_price_diff_ratio must be positive")

    @classmethod
    def from_settings(cls, config: Settings | None = None, **overrides: Any) -> MatchingOptions:
        config = config or settings
        values: dict[str, Any] = {
            "min_similarity": config.match_min_similarity,
            "max_matches_per_product": config.match_max_matches_per_product,
            "allow_duplicate_matches": config.match_allow_duplicate_matches,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)


@dataclass(frozen=True, slots=True)
class MatchCandidate:
    """One (source, competitor) assignment produced by a matching run."""

    source_product_id: int
    competitor_product_id: int
    match_type: MatchType
    match_score: float
    is_confirmed: bool


@dataclass(slots=True)
class MatchingResult:
    matches_found: int
    matches: list[MatchCandidate] = field(default_factory=list)
    total_source_products: int = 0
    total_competitor_products: int = 0


@dataclass(frozen=True, slots=True)
class Suggestion:
    """A ranked competitor for a source product (manual matching UI)."""

    competitor: Any
    score: SimilarityScore

"""Matching errors. Configuration errors are raised before any scoring or writes."""

from __future__ import annotations


class MatchingError(Exception):
    """Base class for matching failures."""


class MatchingConfigurationError(MatchingError):
    """The store is not in a state where matching can run."""


class NoSourceProductsError(MatchingConfigurationError):
    def __init__(self) -> None:
        super().__init__("No source products found. Set a source website and crawl it first.")


class NoCompetitorProductsError(MatchingConfigurationError):
    def __init__(self) -> None:
        super().__init__("No competitor products found. Add competitor websites and crawl them first.")


class ProductNotFoundError(MatchingError):
    def __init__(self, product_id: int) -> None:
        super().__init__(f"Product {product_id} not found")
        self.product_id = product_id


class InvalidMatchPairError(MatchingError):
    """A manual match whose products are not (source, competitor)."""


class MatchNotFoundError(MatchingError):
    def __init__(self, match_id: int) -> None:
        super().__init__(f"Match {match_id} not found")
        self.match_id = match_id

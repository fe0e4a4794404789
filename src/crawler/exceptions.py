"""Crawl-level exceptions. Page-level failures never surface as these."""

from __future__ import annotations


class CrawlError(Exception):
    """Base class for errors that end (or prevent) a whole crawl."""


class CrawlAlreadyActiveError(CrawlError):
    def __init__(self, key: str | int) -> None:
        super().__init__(f"A crawl is already active for {key}")
        self.key = key


class CrawlTimeoutError(CrawlError):
    """The crawl hit the job-level wall clock and was cancelled."""

    def __init__(self, key: str | int, limit_ms: int) -> None:
        super().__init__(f"Crawl for {key} timed out after {limit_ms / 1000:.0f}s")
        self.key = key
        self.limit_ms = limit_ms


class FetcherInitError(CrawlError):
    """The fetch strategy could not be started (e.g. browser launch failure)."""

"""
Failure taxonomy for the notice ingestion pipeline.

Item-level errors are caught at the worker boundary; nothing here is meant to
escape a scheduled job.
"""
from __future__ import annotations

from typing import Dict, Optional


class CrawlerError(Exception):
    """Base class for every error raised by the crawler."""


class FetchError(CrawlerError):
    def __init__(self, url: str, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code


class FetchTimeout(FetchError):
    pass


class ParseError(CrawlerError):
    """The page no longer has the structure the extractor expects."""


class MediaUploadError(CrawlerError):
    pass


class PersistenceError(CrawlerError):
    pass


class DispatchPartialFailure(CrawlerError):
    """Some tokens of a push batch were rejected; carries per-token outcomes."""

    def __init__(self, outcomes: Dict[str, object], failed: int) -> None:
        super().__init__(f"{failed} of {len(outcomes)} push deliveries failed")
        self.outcomes = outcomes
        self.failed = failed

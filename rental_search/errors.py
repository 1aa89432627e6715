"""
rental_search.errors - error taxonomy

Only SearchUnavailable crosses the engine boundary to end callers.
CacheUnavailable and SuggestionSourceFailure are recovered where they occur
(cache miss, fail-open, empty source). InvalidCachePattern signals a
programming error in an internal caller. InvalidSearchQuery is an input
error raised before any store or repository call.
"""

from __future__ import annotations

from typing import Optional


class RentalSearchError(Exception):
    """Base class for engine errors."""


class CacheUnavailable(RentalSearchError):
    """Cache store connectivity failure or timeout."""


class InvalidCachePattern(RentalSearchError, ValueError):
    """Bulk invalidation pattern outside [A-Za-z0-9:_-]+ with one trailing '*'."""

    def __init__(self, pattern: str) -> None:
        super().__init__(
            f"Invalid cache pattern {pattern!r}: only alphanumerics, colons, "
            "underscores, hyphens and a single trailing asterisk are allowed"
        )
        self.pattern = pattern


class RepositoryUnavailable(RentalSearchError):
    """Upstream property repository failure or timeout."""


class SearchUnavailable(RentalSearchError):
    """Property search could not be served; callers should retry later."""

    def __init__(self, message: str = "Search service temporarily unavailable") -> None:
        super().__init__(message)


class InvalidSearchQuery(RentalSearchError, ValueError):
    """Search text outside the accepted length after sanitization."""


class SuggestionSourceFailure(RentalSearchError):
    """A single suggestion source raised or timed out."""

    def __init__(self, source: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"suggestion source '{source}' failed: {cause!r}")
        self.source = source
        self.cause = cause


__all__ = [
    "RentalSearchError",
    "CacheUnavailable",
    "InvalidCachePattern",
    "RepositoryUnavailable",
    "SearchUnavailable",
    "InvalidSearchQuery",
    "SuggestionSourceFailure",
]

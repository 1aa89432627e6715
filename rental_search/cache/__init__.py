"""
rental_search.cache - cache store, key derivation and rate limiting
"""

from rental_search.cache.keys import (
    canonical_search_params,
    featured_key,
    location_bucket,
    popular_searches_key,
    search_count_key,
    search_key,
    search_results_key,
    suggestions_key,
)
from rental_search.cache.rate_limit import RateLimiter, RateLimitScope
from rental_search.cache.store import CacheStore, validate_pattern

__all__ = [
    "CacheStore",
    "validate_pattern",
    "RateLimiter",
    "RateLimitScope",
    "canonical_search_params",
    "featured_key",
    "location_bucket",
    "popular_searches_key",
    "search_count_key",
    "search_key",
    "search_results_key",
    "suggestions_key",
]

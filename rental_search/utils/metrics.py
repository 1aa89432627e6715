"""
rental_search.utils.metrics - Prometheus metric definitions

Purpose:
- cache hit/miss/error rates per operation
- rate limiter decisions per scope
- suggestion source health and end-to-end latencies

Usage:
    from rental_search.utils.metrics import cache_operations

    cache_operations.labels(op="get", result="hit").inc()
"""

from prometheus_client import Counter, Histogram


# === Cache Metrics ===

cache_operations = Counter(
    "rental_search_cache_operations_total",
    "Cache store operations",
    ["op", "result"],  # result: hit, miss, ok, error, skipped
)

cache_invalidated_keys = Counter(
    "rental_search_cache_invalidated_keys_total",
    "Keys removed by pattern invalidation",
    ["pattern"],
)


# === Rate Limit Metrics ===

rate_limit_decisions = Counter(
    "rental_search_rate_limit_decisions_total",
    "Rate limiter decisions",
    ["scope", "decision"],  # decision: allowed, limited, fail_open
)


# === Suggestion Metrics ===

suggestion_source_failures = Counter(
    "rental_search_suggestion_source_failures_total",
    "Suggestion sources that raised or timed out",
    ["source"],
)

suggestion_latency = Histogram(
    "rental_search_suggestion_latency_seconds",
    "Suggestion latency",
    ["path"],  # path: default, cache, fanout, fallback
)


# === Search Metrics ===

search_latency = Histogram(
    "rental_search_search_latency_seconds",
    "Property search latency",
    ["cached"],
)

search_failures = Counter(
    "rental_search_search_failures_total",
    "Property searches surfaced as SearchUnavailable",
    ["reason"],  # reason: repository, timeout
)

"""
rental_search.cache.keys - deterministic cache key derivation

Design notes:
- search_key: a SearchQuery (or an equivalent mapping) is normalized into a
  canonical dict with a fixed field order and serialized compactly. The token
  is the sha256 digest of those bytes, base64 encoded, stripped to
  alphanumerics and truncated to 32 characters (~190 bits). Two queries that
  are equal after normalization always share a key.
- legacy=True reproduces the historical token (base64 of the canonical bytes
  themselves); it only covers the first 24 canonical bytes, so queries
  differing after that collide.
- location_bucket: lat/lng rounded independently to 3 decimals (~110 m)
  and joined with "_".
"""

from __future__ import annotations

import base64
import hashlib
import json
import math
import re
from typing import Any, Dict, Mapping, Optional, Union

from rental_search.schemas import Location, SearchFilters, SearchQuery
from rental_search.utils.text import normalize_query

SEARCH_KEY_LENGTH = 32
BUCKET_PRECISION = 1000  # 3 decimals

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]")

QueryLike = Union[SearchQuery, Mapping[str, Any]]
LocationLike = Union[Location, Mapping[str, Any]]


def _round3(value: float) -> float:
    # half rounds toward +inf, matching the historical key format
    return math.floor(float(value) * BUCKET_PRECISION + 0.5) / BUCKET_PRECISION


def _num(value: float) -> str:
    """Shortest decimal form, integers without a trailing '.0'."""
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def _lat_lng(location: LocationLike) -> tuple[float, float]:
    if isinstance(location, Location):
        return location.lat, location.lng
    return float(location["lat"]), float(location["lng"])


def location_bucket(location: LocationLike) -> str:
    """
    Location bucket key.

    Example:
        >>> location_bucket({"lat": 14.07234, "lng": -87.19211})
        '14.072_-87.192'
    """
    lat, lng = _lat_lng(location)
    return f"{_num(_round3(lat))}_{_num(_round3(lng))}"


def _coerce_query(query: QueryLike) -> SearchQuery:
    if isinstance(query, SearchQuery):
        return query
    data = dict(query)
    # accept the camelCase names used by the HTTP layer
    if "sortBy" in data and "sort_by" not in data:
        data["sort_by"] = data.pop("sortBy")
    if "query" in data and "text" not in data:
        data["text"] = data.pop("query")
    return SearchQuery.model_validate(data)


def canonical_search_params(query: QueryLike) -> Dict[str, Any]:
    """Normalized, order-stable form of a search query."""
    q = _coerce_query(query)
    location: Optional[str] = None
    if q.location is not None:
        location = f"{_num(_round3(q.location.lat))},{_num(_round3(q.location.lng))}"
    filters: Dict[str, Any] = (q.filters or SearchFilters()).normalized()
    return {
        "query": q.text or "",
        "location": location,
        "filters": filters,
        "sortBy": q.sort_by.value,
        "page": q.page,
        "limit": q.limit,
    }


def _canonical_bytes(query: QueryLike) -> bytes:
    params = canonical_search_params(query)
    # filters are the only nested mapping; sort their keys for stability
    params["filters"] = dict(sorted(params["filters"].items()))
    return json.dumps(params, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def search_key(query: QueryLike, legacy: bool = False) -> str:
    """
    32-char opaque token for a search query.

    Args:
        query: SearchQuery or mapping with the same fields
        legacy: encode the canonical bytes directly instead of their digest
    """
    raw = _canonical_bytes(query)
    if not legacy:
        raw = hashlib.sha256(raw).digest()
    encoded = base64.b64encode(raw).decode("ascii")
    return _NON_ALNUM_RE.sub("", encoded)[:SEARCH_KEY_LENGTH]


# ===== namespaced keys =====


def search_results_key(query: QueryLike, legacy: bool = False) -> str:
    return f"search:{search_key(query, legacy=legacy)}"


def suggestions_key(normalized_query: str, location: Optional[LocationLike] = None) -> str:
    key = f"suggestions:{normalized_query}"
    if location is not None:
        key += f":{location_bucket(location)}"
    return key


def featured_key(limit: int, location: Optional[LocationLike] = None) -> str:
    bucket = location_bucket(location) if location is not None else "default"
    return f"featured:{int(limit)}_{bucket}"


def popular_searches_key() -> str:
    return "popular:searches"


def search_count_key(text: str) -> str:
    return f"analytics:search_count:{normalize_query(text)}"


def rate_limit_key(identifier: str) -> str:
    return f"rate_limit:{identifier}"


__all__ = [
    "SEARCH_KEY_LENGTH",
    "location_bucket",
    "canonical_search_params",
    "search_key",
    "search_results_key",
    "suggestions_key",
    "featured_key",
    "popular_searches_key",
    "search_count_key",
    "rate_limit_key",
]

"""
rental_search.utils.text - query text normalization and sanitization
"""

from __future__ import annotations

import re

MAX_QUERY_CHARS = 200

_TAG_RE = re.compile(r"<[^>]*>")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
# SQL meta-characters
_META_RE = re.compile(r"[%;'\"\\<>]")
_SQL_KEYWORD_RE = re.compile(
    r"\b(SELECT|INSERT|UPDATE|DELETE|DROP|UNION|ALTER|CREATE)\b", re.IGNORECASE
)
_SPACES_RE = re.compile(r"\s+")


def normalize_query(text: str | None) -> str:
    """Case-fold and trim; the form used for matching and cache keys."""
    return (text or "").casefold().strip()


def sanitize_search_query(text: str | None) -> str:
    """
    Clean a raw user query before it reaches the engine.

    - markup tags are dropped, their content kept
    - control characters and SQL meta-characters are removed
    - SQL statement keywords are removed
    - whitespace is collapsed and the result capped at MAX_QUERY_CHARS
    """
    s = text or ""
    s = _TAG_RE.sub("", s)
    s = _CONTROL_RE.sub(" ", s)
    s = _META_RE.sub("", s)
    s = _SQL_KEYWORD_RE.sub("", s)
    s = _SPACES_RE.sub(" ", s).strip()
    return s[:MAX_QUERY_CHARS]


__all__ = ["MAX_QUERY_CHARS", "normalize_query", "sanitize_search_query"]

"""
rental_search.utils - shared utilities
"""

from .logger import (
    clear_context,
    get_logger,
    init_logging,
    log_event,
    safe_log_event,
    set_context,
)
from .text import normalize_query, sanitize_search_query

__all__ = [
    # Logging
    "init_logging",
    "get_logger",
    "set_context",
    "clear_context",
    "log_event",
    "safe_log_event",
    # Text
    "normalize_query",
    "sanitize_search_query",
]

"""
rental_search.utils.logger - central logger (single entry point)

Features:
- JSON console logging
- request context (request_id, client) injected through contextvars
- uvicorn/fastapi access and error loggers routed through the same handler
- helpers: get_logger, set_context, clear_context, log_event, init_logging

Note:
- Only this module configures handlers/formatters. Other modules just call
  logging.getLogger(name) or log_event.
- Free-text query fields are never written verbatim; only their length is kept.
"""

from __future__ import annotations

import contextvars
import json
import logging
import os
import random
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# =============================
# Request context
# =============================
_request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "request_id", default=None
)
_client_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "client", default=None
)


# =============================
# Event schemas / sampling
# =============================
# required/optional fields and sample rate per structured event
EVENT_SCHEMAS: dict[str, dict[str, object]] = {
    "search.cache_hit": {
        "required": ["key"],
        "optional": ["took_ms"],
        "sample_rate": 0.1,
    },
    "search.cache_miss": {
        "required": ["key", "count"],
        "optional": ["took_ms", "cached"],
        "sample_rate": 1.0,
    },
    "search.failed": {
        "required": ["key", "error"],
        "optional": ["took_ms"],
        "sample_rate": 1.0,
    },
    "suggestions.served": {
        "required": ["count", "path"],
        "optional": ["query", "took_ms"],
        "sample_rate": 0.1,
    },
    "suggestions.fallback": {
        "required": ["reason"],
        "optional": ["query"],
        "sample_rate": 1.0,
    },
    "suggestions.source_failed": {
        "required": ["source", "error"],
        "optional": [],
        "sample_rate": 1.0,
    },
    "cache.invalidated": {
        "required": ["pattern", "deleted"],
        "optional": [],
        "sample_rate": 1.0,
    },
    "cache.degraded": {
        "required": ["op", "error"],
        "optional": ["key"],
        "sample_rate": 0.2,
    },
    "rate_limit.exceeded": {
        "required": ["identifier", "count", "max_requests"],
        "optional": ["window_seconds"],
        "sample_rate": 1.0,
    },
    "analytics.failed": {
        "required": ["error"],
        "optional": ["query"],
        "sample_rate": 1.0,
    },
}

# free-text fields logged as {"len": n} only
_SENSITIVE_KEYS = {"query", "text", "raw_query"}


def set_context(request_id: Optional[str] = None, client: Optional[str] = None) -> None:
    """Set the request context (partial updates allowed)."""
    if request_id is not None:
        _request_id_var.set(request_id)
    if client is not None:
        _client_var.set(client)


def clear_context() -> None:
    """Reset the request context."""
    _request_id_var.set(None)
    _client_var.set(None)


class _ContextFilter(logging.Filter):
    """logging.Filter: attach request_id/client to the record"""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: D401
        setattr(record, "request_id", _request_id_var.get())
        setattr(record, "client", _client_var.get())
        return True


class _JsonFormatter(logging.Formatter):
    """Compact JSON formatter."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401
        ts = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()

        payload: Dict[str, Any] = {
            "ts": ts,
            "level": record.levelname,
            "logger": record.name,
            "event": getattr(record, "event", None),
            "request_id": getattr(record, "request_id", None),
            "client": getattr(record, "client", None),
        }

        msg = record.getMessage()
        if msg:
            payload["message"] = msg

        data = getattr(record, "data", None)
        if data is not None:
            try:
                json.dumps(data, ensure_ascii=False, default=str)
                payload["data"] = data
            except (TypeError, ValueError):
                payload["data"] = str(data)

        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


_initialized = False


def _ensure_root_config(level: int) -> None:
    """Install the single root handler/formatter."""
    global _initialized
    if _initialized:
        return

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(_JsonFormatter())
    handler.addFilter(_ContextFilter())
    root.addHandler(handler)

    # route uvicorn loggers through the root handler
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error", "uvicorn.asgi"):
        lg = logging.getLogger(name)
        lg.handlers.clear()
        lg.setLevel(level)
        lg.propagate = True

    _initialized = True


def init_logging(default_level: str | int | None = None) -> None:
    """
    Initialize logging (call once at process start).

    Args:
        default_level: level name or number. Falls back to settings.LOG_LEVEL,
            then to the LOG_LEVEL environment variable.
    """
    if isinstance(default_level, str):
        level = getattr(logging, default_level.upper().strip(), logging.INFO)
    elif isinstance(default_level, int):
        level = default_level
    else:
        try:
            from rental_search.config import get_settings as _gs

            env = str(getattr(_gs(), "LOG_LEVEL", "INFO")).upper().strip()
        except Exception:
            env = os.getenv("LOG_LEVEL", "INFO").upper().strip()
        level = getattr(logging, env, logging.INFO)

    _ensure_root_config(level)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a named logger (configuration is applied centrally)."""
    return logging.getLogger(name or "rental_search")


def _observability_enabled() -> bool:
    try:
        from rental_search.config import get_settings as _gs2

        return bool(getattr(_gs2(), "OBSERVABILITY_ENABLED", True))
    except Exception:
        return os.getenv("OBSERVABILITY_ENABLED", "true").lower() in ("true", "1", "yes")


def log_event(
    event: str,
    data: Optional[Dict[str, Any]] = None,
    level: int = logging.INFO,
    logger: Optional[logging.Logger] = None,
    *,
    force: bool = False,
) -> None:
    """
    Structured event logging helper.

    Args:
        event: event name (e.g. "search.cache_miss")
        data: extra structured data
        level: logging level
        logger: logger to use (defaults to the package logger)
        force: bypass the observability toggle and sampling
    """
    lg = logger or get_logger()
    if not force and not _observability_enabled():
        return

    payload: Dict[str, Any] = dict(data or {})

    for k in list(payload.keys()):
        v = payload.get(k)
        if isinstance(v, str) and k in _SENSITIVE_KEYS:
            payload[k] = {"len": len(v)}

    schema = EVENT_SCHEMAS.get(event)
    if schema is not None:
        for field in list(schema.get("required", [])):  # type: ignore[arg-type]
            if field not in payload:
                logging.getLogger("rental_search").warning(
                    f"[log_event] Missing required field '{field}' in event '{event}'"
                )

        if not force:
            sample_rate = float(schema.get("sample_rate", 1.0))  # type: ignore[arg-type]
            if sample_rate < 1.0 and random.random() > max(0.0, min(1.0, sample_rate)):
                return

    payload.setdefault("timestamp", int(time.time_ns()))
    req = _request_id_var.get()
    if req is not None and "request_id" not in payload:
        payload["request_id"] = req

    # negative latency guard
    if "took_ms" in payload:
        try:
            if float(payload["took_ms"]) < 0:
                payload["took_ms"] = 0.0
        except (TypeError, ValueError):
            payload.pop("took_ms", None)

    lg.log(level, event, extra={"event": event, "data": payload})


def safe_log_event(
    event: str,
    data: Optional[Dict[str, Any]] = None,
    level: int = logging.INFO,
    logger: Optional[logging.Logger] = None,
    *,
    force: bool = False,
) -> None:
    """
    log_event wrapper that never raises.
    Used on degradation paths where a logging failure must not replace the
    original error handling.
    """
    try:
        log_event(event, data, level=level, logger=logger, force=force)
    except Exception:
        pass


__all__ = [
    "EVENT_SCHEMAS",
    "init_logging",
    "get_logger",
    "set_context",
    "clear_context",
    "log_event",
    "safe_log_event",
]

"""
rental_search.config.settings - environment and settings management

All environment variables are consolidated in a single Pydantic Settings class.
A cached accessor provides process-wide access.
"""

import logging
from functools import lru_cache

from pydantic import Field, validator
from pydantic_settings import BaseSettings

logger = logging.getLogger("config")


class Settings(BaseSettings):
    """
    Search engine settings

    Values are loaded from the environment (or a .env file). Every field has a
    default, so the engine starts without any configuration in development.
    """

    # ===== Cache store (Redis) =====
    REDIS_URL: str = Field(
        default="redis://localhost:6379/0", description="Redis connection URL"
    )
    CACHE_KEY_PREFIX: str = Field(
        default="heurekka:", description="Namespace prefix applied to every key"
    )
    REDIS_SOCKET_TIMEOUT_S: float = Field(
        default=2.0, description="Per-command socket timeout (s)"
    )
    CACHE_SCAN_COUNT: int = Field(default=100, description="SCAN batch size hint")
    CACHE_MAX_VALUE_BYTES: int = Field(
        default=1024 * 1024, description="Values above this size are not cached"
    )

    # ===== TTLs (seconds) =====
    SEARCH_RESULTS_TTL_SEC: int = Field(default=300, description="Search results TTL")
    SUGGESTIONS_TTL_SEC: int = Field(default=1800, description="Suggestions TTL")
    FEATURED_TTL_SEC: int = Field(default=600, description="Featured properties TTL")
    POPULAR_SEARCHES_TTL_SEC: int = Field(
        default=3600, description="Shared popular-searches list TTL"
    )
    POPULAR_REFRESH_SEC: int = Field(
        default=300, description="Process-local popular list reuse window"
    )
    SEARCH_COUNT_TTL_SEC: int = Field(
        default=7 * 86400, description="Per-query search counter TTL"
    )

    # ===== Suggestions =====
    SUGGESTIONS_CACHE_ENABLED: bool = Field(
        default=True, description="Cache merged suggestion lists"
    )
    MAX_SUGGESTIONS: int = Field(default=8, description="Default suggestion count")
    LOCATION_SUGGESTION_WEIGHT: float = Field(
        default=0.9, description="Base weight of location suggestions"
    )
    POPULAR_SUGGESTION_WEIGHT: float = Field(
        default=0.7, description="Base weight of popular-search suggestions"
    )
    LOCATION_SOURCE_LIMIT: int = Field(
        default=3, description="Neighborhood matches requested per query"
    )
    POPULAR_SOURCE_LIMIT: int = Field(
        default=3, description="Popular-search matches kept per query"
    )

    # ===== Keys =====
    SEARCH_KEY_LEGACY_FORMAT: bool = Field(
        default=False,
        description="Derive search keys from raw canonical bytes (pre-digest format)",
    )

    # ===== Rate limiting (fixed window) =====
    RATE_LIMIT_WINDOW_SEC: int = Field(default=900, description="Window length (s)")
    RATE_LIMIT_PUBLIC_MAX: int = Field(
        default=100, description="Anonymous requests per window"
    )
    RATE_LIMIT_AUTH_MAX: int = Field(
        default=200, description="Authenticated requests per window"
    )
    RATE_LIMIT_AUTH_ENDPOINT_MAX: int = Field(
        default=5, description="Auth endpoint attempts per window"
    )

    # ===== Timeouts (seconds) =====
    SEARCH_TIMEOUT_S: float = Field(default=10.0, description="Property search ceiling")
    SUGGESTIONS_TIMEOUT_S: float = Field(
        default=3.0, description="Caller-visible suggestions ceiling"
    )
    SUGGESTIONS_FANOUT_TIMEOUT_S: float = Field(
        default=2.5, description="Internal suggestion fan-out deadline"
    )
    FEATURED_TIMEOUT_S: float = Field(
        default=5.0, description="Featured properties lookup ceiling"
    )

    # ===== Observability =====
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    OBSERVABILITY_ENABLED: bool = Field(
        default=True, description="Emit structured log events"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    @validator(
        "SUGGESTIONS_CACHE_ENABLED",
        "SEARCH_KEY_LEGACY_FORMAT",
        "OBSERVABILITY_ENABLED",
        pre=True,
    )
    def parse_bool_flags(cls, v):
        """Accept "0"/"1" strings for boolean flags"""
        if isinstance(v, str) and v.strip() in ("0", "1"):
            return bool(int(v))
        return v

    @validator(
        "SEARCH_RESULTS_TTL_SEC",
        "SUGGESTIONS_TTL_SEC",
        "FEATURED_TTL_SEC",
        "POPULAR_SEARCHES_TTL_SEC",
        "SEARCH_COUNT_TTL_SEC",
        "RATE_LIMIT_WINDOW_SEC",
    )
    def ttl_must_be_positive(cls, v):
        """Cache entries never live forever."""
        if int(v) <= 0:
            raise ValueError("TTL values must be positive")
        return int(v)

    @property
    def suggestions_fanout_deadline(self) -> float:
        """
        Internal fan-out deadline, always strictly below the caller ceiling so
        the bounded request never outlives SUGGESTIONS_TIMEOUT_S.
        """
        ceiling = float(self.SUGGESTIONS_TIMEOUT_S)
        deadline = float(self.SUGGESTIONS_FANOUT_TIMEOUT_S)
        if deadline >= ceiling:
            deadline = ceiling * 0.8
        return max(0.05, deadline)

    def log_startup_info(self) -> None:
        """Log the main settings at boot"""
        logger.info(
            f"[boot] redis={self.REDIS_URL} prefix={self.CACHE_KEY_PREFIX} "
            f"suggestions_cache={self.SUGGESTIONS_CACHE_ENABLED}"
        )
        logger.info(
            f"[boot] ttl search={self.SEARCH_RESULTS_TTL_SEC}s "
            f"suggestions={self.SUGGESTIONS_TTL_SEC}s featured={self.FEATURED_TTL_SEC}s "
            f"timeouts search={self.SEARCH_TIMEOUT_S}s suggestions={self.SUGGESTIONS_TIMEOUT_S}s"
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Return the process-wide Settings instance

    The first call loads the environment; later calls reuse the same object.

    Returns:
        Settings: global settings instance

    Example:
        >>> from rental_search.config import get_settings
        >>> settings = get_settings()
        >>> settings.SEARCH_RESULTS_TTL_SEC
        300
    """
    return Settings()


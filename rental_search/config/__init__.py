"""
rental_search.config - settings and client factories
"""

from .clients import create_redis_client
from .settings import Settings, get_settings

__all__ = [
    "get_settings",
    "Settings",
    "create_redis_client",
]

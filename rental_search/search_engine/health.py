from __future__ import annotations

"""
Engine health

- healthy: cache store answers PING
- degraded: store unreachable; searches still run against the repository
- unhealthy: the check itself failed unexpectedly
"""

import logging
from typing import Any, Dict, Optional

from rental_search.cache.store import CacheStore
from rental_search.errors import CacheUnavailable
from rental_search.schemas import HealthReport, HealthStatus
from rental_search.search_engine.orchestrator import SearchOrchestrator
from rental_search.search_engine.sources import PopularSearches

logger = logging.getLogger("health")


class HealthReporter:
    def __init__(
        self,
        store: CacheStore,
        orchestrator: Optional[SearchOrchestrator] = None,
        popular: Optional[PopularSearches] = None,
    ) -> None:
        self.store = store
        self.orchestrator = orchestrator
        self.popular = popular

    def _details(self) -> Dict[str, Any]:
        details: Dict[str, Any] = {}
        if self.popular is not None:
            details["popular_searches"] = self.popular.size
            last = self.popular.last_refresh
            details["last_update"] = last.isoformat() if last is not None else None
        if self.orchestrator is not None:
            details["pending_analytics"] = self.orchestrator.pending_tasks
        return details

    async def check(self) -> HealthReport:
        try:
            details = self._details()
            try:
                latency = await self.store.ping()
            except CacheUnavailable as e:
                details["cache"] = {"status": "unhealthy", "error": str(e)}
                status = (
                    HealthStatus.DEGRADED
                    if self.orchestrator is not None
                    else HealthStatus.UNHEALTHY
                )
                return HealthReport(status=status, details=details)
            latency_ms = int(round(latency))
            details["cache"] = {"status": "healthy", "latency": latency_ms}
            return HealthReport(
                status=HealthStatus.HEALTHY, cache_latency_ms=latency_ms, details=details
            )
        except Exception as e:
            logger.error(f"[health] check failed: {e}")
            return HealthReport(status=HealthStatus.UNHEALTHY, details={"error": str(e)})


__all__ = ["HealthReporter"]

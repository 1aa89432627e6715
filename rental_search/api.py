"""
rental_search.api - FastAPI routes over SearchEngine

Routes:
- GET  /search/suggestions   autocomplete (never fails the UI)
- POST /search/properties    cached property search (503 when unavailable)
- GET  /properties/featured  featured listings
- GET  /search/popular       popular queries
- GET  /health               engine health (503 when unhealthy)

Every route except /health is admitted through the public rate limit
(public:<client ip>), 429 when over budget.
"""

import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from rental_search.engine import SearchEngine
from rental_search.errors import InvalidSearchQuery, SearchUnavailable
from rental_search.schemas import HealthStatus, Location, SearchQuery, SuggestionsResponse
from rental_search.utils.logger import clear_context, init_logging, set_context

logger = logging.getLogger("api")


def _client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _location(lat: Optional[float], lng: Optional[float]) -> Optional[Location]:
    """Location from query params; None unless both are given. Raises ValidationError."""
    if lat is None or lng is None:
        return None
    return Location(lat=lat, lng=lng)


def build_router(engine: SearchEngine) -> APIRouter:
    router = APIRouter()
    settings = engine.settings

    async def public_rate_limit(request: Request) -> None:
        limited = await engine.check_rate_limit(
            "public",
            _client_ip(request),
            int(settings.RATE_LIMIT_PUBLIC_MAX),
            int(settings.RATE_LIMIT_WINDOW_SEC),
        )
        if limited:
            raise HTTPException(
                status_code=429, detail="Too many requests, please try again later"
            )

    # ===== search =====

    @router.get(
        "/search/suggestions",
        response_model=SuggestionsResponse,
        dependencies=[Depends(public_rate_limit)],
        tags=["Search"],
    )
    async def get_suggestions(
        q: str = Query(default=""),
        lat: Optional[float] = Query(default=None),
        lng: Optional[float] = Query(default=None),
        limit: Optional[int] = Query(default=None),
    ):
        """Autocomplete; a bad location or query yields success=false, not an HTTP error"""
        try:
            location = _location(lat, lng)
        except ValidationError:
            return SuggestionsResponse(success=False, data=[], query=q, error="Invalid location")
        return await engine.get_suggestions(q, location, limit)

    @router.post(
        "/search/properties",
        dependencies=[Depends(public_rate_limit)],
        tags=["Search"],
    )
    async def search_properties(payload: SearchQuery):
        try:
            results = await engine.search_properties(payload)
        except InvalidSearchQuery as e:
            raise HTTPException(status_code=400, detail=str(e))
        except SearchUnavailable as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {
            "success": True,
            "data": results.model_dump(mode="json"),
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @router.get(
        "/search/popular",
        dependencies=[Depends(public_rate_limit)],
        tags=["Search"],
    )
    async def popular_searches(limit: int = Query(default=10, ge=1, le=50)):
        return {"success": True, "data": await engine.popular_searches(limit)}

    # ===== featured =====

    @router.get(
        "/properties/featured",
        dependencies=[Depends(public_rate_limit)],
        tags=["Properties"],
    )
    async def featured_properties(
        limit: int = Query(default=6, ge=1, le=20),
        lat: Optional[float] = Query(default=None),
        lng: Optional[float] = Query(default=None),
    ):
        try:
            location = _location(lat, lng)
        except ValidationError:
            raise HTTPException(status_code=400, detail="Invalid location coordinates")
        try:
            properties = await engine.featured_properties(limit, location)
        except SearchUnavailable as e:
            raise HTTPException(status_code=503, detail=str(e))
        return {"success": True, "data": [p.model_dump(mode="json") for p in properties]}

    # ===== health =====

    @router.get("/health", tags=["Health"])
    async def health():
        report = await engine.health_check()
        status_code = 503 if report.status == HealthStatus.UNHEALTHY else 200
        return JSONResponse(status_code=status_code, content=report.model_dump(mode="json"))

    return router


def create_app(engine: SearchEngine) -> FastAPI:
    """
    FastAPI application bound to an already-built engine.

    Example:
        >>> engine = build_search_engine(repository=my_repo)
        >>> app = create_app(engine)
    """
    app = FastAPI(
        title="Rental Search",
        description="Search suggestions and cached property search for rental listings",
        version="1.0.0",
    )
    app.state.engine = engine

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        set_context(
            request_id=request.headers.get("x-request-id") or uuid.uuid4().hex,
            client=_client_ip(request),
        )
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            took_ms = (time.perf_counter() - start) * 1000.0
            logger.debug(f"[api] {request.method} {request.url.path} took={took_ms:.1f}ms")
            clear_context()
        return response

    @app.on_event("startup")
    async def on_startup():
        init_logging()
        engine.settings.log_startup_info()
        await engine.initialize()

    @app.on_event("shutdown")
    async def on_shutdown():
        await engine.close()

    app.include_router(build_router(engine))
    return app


__all__ = ["build_router", "create_app"]

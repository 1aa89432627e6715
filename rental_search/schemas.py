"""
rental_search.schemas - engine data model

Pydantic models for queries, suggestions and results. They validate external
input at the boundary and give the cache a stable JSON serialization.
"""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# ===== Location =====


class LocationSource(str, Enum):
    GPS = "gps"
    IP = "ip"
    MANUAL = "manual"


class Location(BaseModel):
    """User position. Immutable; bucketed to 3 decimals for caching."""

    model_config = ConfigDict(frozen=True)

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    accuracy: Optional[float] = Field(default=None, ge=0.0)
    source: LocationSource = LocationSource.MANUAL


# ===== Search query =====


class PropertyType(str, Enum):
    APARTMENT = "apartment"
    HOUSE = "house"
    ROOM = "room"
    COMMERCIAL = "commercial"


class SortBy(str, Enum):
    RELEVANCE = "relevance"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    DATE_DESC = "date_desc"
    DISTANCE = "distance"


class SearchFilters(BaseModel):
    """
    Optional search filters

    Set-valued fields are order-independent: normalized() sorts and dedups
    them so equal filter sets always serialize identically.
    """

    price_min: Optional[float] = Field(default=None, ge=0)
    price_max: Optional[float] = Field(default=None, ge=0)
    property_types: Optional[List[PropertyType]] = None
    bedrooms: Optional[List[int]] = None
    bathrooms: Optional[List[int]] = None
    amenities: Optional[List[str]] = None
    furnished: Optional[bool] = None
    pet_friendly: Optional[bool] = None
    parking: Optional[bool] = None
    available_from: Optional[date] = None

    @field_validator("bedrooms", "bathrooms")
    @classmethod
    def _room_counts_in_range(cls, v):
        if v is not None:
            for n in v:
                if n < 0 or n > 10:
                    raise ValueError("room counts must be between 0 and 10")
        return v

    @field_validator("amenities")
    @classmethod
    def _strip_amenities(cls, v):
        if v is None:
            return v
        return [a.strip() for a in v if a and a.strip()]

    @model_validator(mode="after")
    def _price_range_ordered(self) -> "SearchFilters":
        if (
            self.price_min is not None
            and self.price_max is not None
            and self.price_min > self.price_max
        ):
            raise ValueError("price_min must not exceed price_max")
        return self

    def normalized(self) -> Dict[str, Any]:
        """Canonical dict: unset fields dropped, set fields sorted."""
        out: Dict[str, Any] = {}
        if self.price_min is not None:
            out["price_min"] = float(self.price_min)
        if self.price_max is not None:
            out["price_max"] = float(self.price_max)
        if self.property_types:
            out["property_types"] = sorted({t.value for t in self.property_types})
        if self.bedrooms:
            out["bedrooms"] = sorted(set(self.bedrooms))
        if self.bathrooms:
            out["bathrooms"] = sorted(set(self.bathrooms))
        if self.amenities:
            out["amenities"] = sorted(set(self.amenities))
        for flag in ("furnished", "pet_friendly", "parking"):
            value = getattr(self, flag)
            if value is not None:
                out[flag] = bool(value)
        if self.available_from is not None:
            out["available_from"] = self.available_from.isoformat()
        return out


class SearchQuery(BaseModel):
    text: Optional[str] = None
    location: Optional[Location] = None
    filters: Optional[SearchFilters] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=50)
    sort_by: SortBy = SortBy.RELEVANCE


# ===== Suggestions =====


class SuggestionType(str, Enum):
    LOCATION = "location"
    PROPERTY = "property"
    LANDMARK = "landmark"
    RECENT = "recent"


class SuggestionMetadata(BaseModel):
    property_count: Optional[int] = None
    coordinates: Optional[Location] = None
    popularity_score: Optional[float] = None
    weight: Optional[float] = None


class Suggestion(BaseModel):
    """
    Single autocomplete candidate

    id identifies the producing source + payload (provenance only);
    deduplication is by normalized text.
    """

    id: str
    text: str
    type: SuggestionType
    icon: str
    metadata: SuggestionMetadata = Field(default_factory=SuggestionMetadata)
    score: Optional[float] = None


class SuggestionsResponse(BaseModel):
    success: bool
    data: List[Suggestion] = Field(default_factory=list)
    query: str = ""
    error: Optional[str] = None


# ===== Search results =====


class Property(BaseModel):
    """Listing payload as returned by the repository (opaque beyond id/title)."""

    model_config = ConfigDict(extra="allow")

    id: str
    title: str = ""


class FacetCount(BaseModel):
    name: str
    count: int


class SearchFacets(BaseModel):
    neighborhoods: List[FacetCount] = Field(default_factory=list)
    price_ranges: List[FacetCount] = Field(default_factory=list)
    property_types: List[FacetCount] = Field(default_factory=list)


class SearchResults(BaseModel):
    properties: List[Property] = Field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 20
    facets: SearchFacets = Field(default_factory=SearchFacets)


# ===== Health =====


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class HealthReport(BaseModel):
    status: HealthStatus
    cache_latency_ms: Optional[int] = None
    details: Dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "LocationSource",
    "Location",
    "PropertyType",
    "SortBy",
    "SearchFilters",
    "SearchQuery",
    "SuggestionType",
    "SuggestionMetadata",
    "Suggestion",
    "SuggestionsResponse",
    "Property",
    "FacetCount",
    "SearchFacets",
    "SearchResults",
    "HealthStatus",
    "HealthReport",
]

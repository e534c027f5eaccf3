from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float


class Tier(str, Enum):
    essential = "essential"
    showcase = "showcase"
    spotlight = "spotlight"

    @classmethod
    def from_store(cls, value: Optional[str]) -> "Tier":
        """Map a stored subscription tier (including legacy names) onto a Tier."""
        if not value:
            return cls.essential
        value = value.strip().lower()
        legacy = {"professional": cls.showcase, "enterprise": cls.spotlight}
        if value in legacy:
            return legacy[value]
        try:
            return cls(value)
        except ValueError:
            return cls.essential


class SearchCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    address: str
    description: str = ""
    service_type: str = ""
    service_categories: List[str] = Field(default_factory=list)
    service_areas: List[str] = Field(default_factory=list)
    verified: bool = False
    tier: Tier = Tier.essential


class ScoredResult(SearchCandidate):
    location: Coordinate
    distance_km: Optional[float] = None
    relevance_score: float = Field(0.0, ge=0.0, le=20.0)


class ProximityContractor(SearchCandidate):
    location: Coordinate
    distance_km: float


class SearchQuery(BaseModel):
    text: str
    origin: Optional[Coordinate] = None
    radius_km: Optional[float] = Field(None, ge=1.0, le=200.0)
    service_type: Optional[str] = None
    verified_only: bool = False


class ServiceArea(BaseModel):
    name: str
    location: Optional[Coordinate] = None


class LocationSuggestion(BaseModel):
    id: str
    name: str
    text: str = ""
    place_type: List[str] = Field(default_factory=list)
    lat: float
    lng: float


class BoundingBox(BaseModel):
    west: float
    south: float
    east: float
    north: float

    def as_param(self) -> str:
        return f"{self.west},{self.south},{self.east},{self.north}"


class SearchDebug(BaseModel):
    dropped: int


class SearchResponse(BaseModel):
    results: List[ScoredResult]
    total: int
    query: str
    location: Optional[Coordinate] = None
    radius: Optional[float] = None
    debug: Optional[SearchDebug] = None


class FilterResponse(BaseModel):
    contractors: List[ProximityContractor]
    total: int
    location: Coordinate
    radius: float


class CoverageResponse(BaseModel):
    contractor_id: str
    coverage_areas: List[ServiceArea]
    business_location: Optional[Coordinate] = None


class SuggestionsResponse(BaseModel):
    suggestions: List[LocationSuggestion]
    query: str

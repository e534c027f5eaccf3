from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

import aiohttp
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.config import Settings, get_settings
from app.logging_config import configure_logging
from app.models import (
    BoundingBox,
    Coordinate,
    CoverageResponse,
    FilterResponse,
    SearchDebug,
    SearchQuery,
    SearchResponse,
    SuggestionsResponse,
)
from app.services.cache import TTLCache
from app.services.geocoder import CachedGeocoder, GeocodingError, MapboxGeocoder
from app.services.proximity import MIN_QUERY_LENGTH, ProximitySearch
from app.services.store import DataStoreError, SupabaseContractorStore

settings = get_settings()
configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

_geocode_cache: TTLCache[Coordinate] = TTLCache(ttl_s=settings.cache_ttl_s, max_size=settings.cache_max_size)

app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Finds event professionals near a location and ranks them against a query.",
)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if errors:
        first = errors[0]
        field = ".".join(str(part) for part in first.get("loc", ())[1:]) or "request"
        message = f"Invalid {field}: {first.get('msg', 'invalid value')}"
    else:
        message = "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


async def get_http_session() -> AsyncIterator[aiohttp.ClientSession]:
    async with aiohttp.ClientSession() as session:
        yield session


def get_geocoder(session: aiohttp.ClientSession = Depends(get_http_session)) -> MapboxGeocoder:
    return MapboxGeocoder(session, settings)


def get_proximity_search(
    session: aiohttp.ClientSession = Depends(get_http_session),
    geocoder: MapboxGeocoder = Depends(get_geocoder),
) -> ProximitySearch:
    return ProximitySearch(
        store=SupabaseContractorStore(session, settings),
        geocoder=CachedGeocoder(geocoder, _geocode_cache),
        concurrency=settings.geocode_concurrency,
    )


def _check_radius(radius: float, cfg: Settings) -> None:
    if not cfg.min_radius_km <= radius <= cfg.max_radius_km:
        raise HTTPException(
            status_code=400,
            detail=f"Radius must be between {cfg.min_radius_km:g} and {cfg.max_radius_km:g} km",
        )


def _server_error(exc: Exception) -> HTTPException:
    logger.exception("Contractor store failure: %s", exc)
    return HTTPException(status_code=500, detail="Internal server error")


@app.get("/", tags=["Root"])
async def root():
    return {"ok": True, "service": settings.app_name, "version": settings.version}


@app.get("/health", tags=["Healthcheck"])
async def health():
    return {"ok": True}


@app.get(
    "/proximity/search",
    response_model=SearchResponse,
    response_model_exclude_none=True,
    tags=["Proximity"],
)
async def proximity_search(
    q: str = Query("", description="Free-text query matched against name, services and description"),
    lat: Optional[float] = Query(None, ge=-90.0, le=90.0),
    lng: Optional[float] = Query(None, ge=-180.0, le=180.0),
    radius: Optional[float] = Query(None, description="Search radius in km (1-200)"),
    service_type: Optional[str] = Query(None),
    verified_only: bool = Query(False),
    service: ProximitySearch = Depends(get_proximity_search),
):
    if (lat is None) != (lng is None):
        raise HTTPException(status_code=400, detail="lat and lng must be provided together")
    if radius is not None:
        _check_radius(radius, settings)

    origin = Coordinate(lat=lat, lng=lng) if lat is not None and lng is not None else None
    if len(q.strip()) < MIN_QUERY_LENGTH:
        return SearchResponse(results=[], total=0, query=q, location=origin, radius=radius)

    query = SearchQuery(
        text=q,
        origin=origin,
        radius_km=radius if origin is not None else None,
        service_type=service_type or None,
        verified_only=verified_only,
    )
    try:
        outcome = await service.search(query)
    except DataStoreError as e:
        raise _server_error(e)

    return SearchResponse(
        results=outcome.results,
        total=outcome.total,
        query=q,
        location=origin,
        radius=query.radius_km,
        debug=SearchDebug(dropped=outcome.dropped) if settings.include_debug else None,
    )


@app.get("/proximity/filter", response_model=FilterResponse, tags=["Proximity"])
async def proximity_filter(
    lat: Optional[float] = Query(None, ge=-90.0, le=90.0),
    lng: Optional[float] = Query(None, ge=-180.0, le=180.0),
    radius: Optional[float] = Query(None, description="Radius in km (1-200)"),
    service_type: Optional[str] = Query(None),
    verified_only: bool = Query(False),
    service: ProximitySearch = Depends(get_proximity_search),
):
    if not lat or not lng:
        raise HTTPException(status_code=400, detail="lat and lng are required")
    if radius is None:
        radius = settings.default_radius_km
    _check_radius(radius, settings)

    origin = Coordinate(lat=lat, lng=lng)
    try:
        outcome = await service.filter(
            origin, radius, service_type=service_type or None, verified_only=verified_only
        )
    except DataStoreError as e:
        raise _server_error(e)

    return FilterResponse(contractors=outcome.contractors, total=outcome.total, location=origin, radius=radius)


@app.get("/proximity/coverage", response_model=CoverageResponse, tags=["Proximity"])
async def proximity_coverage(
    contractor_id: Optional[str] = Query(None),
    service: ProximitySearch = Depends(get_proximity_search),
):
    if not contractor_id or not contractor_id.strip():
        raise HTTPException(status_code=400, detail="contractor_id is required")

    try:
        outcome = await service.coverage(contractor_id.strip())
    except DataStoreError as e:
        raise _server_error(e)
    if outcome is None:
        raise HTTPException(status_code=404, detail="Contractor not found")

    return CoverageResponse(
        contractor_id=outcome.contractor_id,
        coverage_areas=outcome.coverage_areas,
        business_location=outcome.business_location,
    )


@app.get("/proximity/suggestions", response_model=SuggestionsResponse, tags=["Proximity"])
async def proximity_suggestions(
    q: str = Query(""),
    north: Optional[float] = Query(None, ge=-90.0, le=90.0),
    south: Optional[float] = Query(None, ge=-90.0, le=90.0),
    east: Optional[float] = Query(None, ge=-180.0, le=180.0),
    west: Optional[float] = Query(None, ge=-180.0, le=180.0),
    geocoder: MapboxGeocoder = Depends(get_geocoder),
):
    bounds = (west, south, east, north)
    if any(b is not None for b in bounds) and any(b is None for b in bounds):
        raise HTTPException(status_code=400, detail="north, south, east and west must be provided together")
    if len(q.strip()) < MIN_QUERY_LENGTH:
        return SuggestionsResponse(suggestions=[], query=q)

    bbox = BoundingBox(west=west, south=south, east=east, north=north) if north is not None else None
    try:
        suggestions = await geocoder.suggest(q.strip(), bbox)
    except GeocodingError as e:
        logger.warning("Suggestions lookup failed for %r: %s", q, e)
        raise HTTPException(status_code=502, detail=str(e))

    return SuggestionsResponse(suggestions=suggestions, query=q)

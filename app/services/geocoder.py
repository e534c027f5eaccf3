from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import quote

import aiohttp

from app.config import Settings, get_settings
from app.models import BoundingBox, Coordinate, LocationSuggestion
from app.services.cache import TTLCache, normalize_address

logger = logging.getLogger(__name__)


class GeocodingError(RuntimeError):
    """Raised when the geocoding provider cannot answer a request."""


class Geocoder(Protocol):
    async def geocode(self, address: str) -> Optional[Coordinate]:
        ...


def _coordinate_from_feature(feature: Dict[str, Any]) -> Coordinate:
    # Mapbox returns [lng, lat]
    lng, lat = feature["center"][:2]
    return Coordinate(lat=float(lat), lng=float(lng))


class MapboxGeocoder:
    """Forward geocoding and autocomplete through the Mapbox places API."""

    def __init__(self, session: aiohttp.ClientSession, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    async def _features(self, text: str, bbox: Optional[BoundingBox] = None) -> List[Dict[str, Any]]:
        settings = self.settings
        if not settings.mapbox_access_token:
            raise GeocodingError("MAPBOX_ACCESS_TOKEN is not configured")

        params = {
            "access_token": settings.mapbox_access_token,
            "country": settings.mapbox_country,
            "autocomplete": "true",
            "limit": str(settings.mapbox_suggestion_limit),
        }
        if bbox is not None:
            params["bbox"] = bbox.as_param()

        url = f"{str(settings.mapbox_base_url).rstrip('/')}/{quote(text, safe='')}.json"
        timeout = aiohttp.ClientTimeout(total=settings.http_timeout_s)

        try:
            async with self.session.get(url, params=params, timeout=timeout) as resp:
                resp.raise_for_status()
                data = await resp.json()
        except aiohttp.ClientResponseError as e:
            raise GeocodingError(f"Mapbox error: {e.status}") from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise GeocodingError(f"Mapbox request failed: {e!r}") from e
        except ValueError as e:
            raise GeocodingError("Mapbox returned invalid JSON") from e

        features = data.get("features") if isinstance(data, dict) else None
        if not isinstance(features, list):
            raise GeocodingError("Mapbox returned an unexpected payload")
        return features

    async def geocode(self, address: str) -> Optional[Coordinate]:
        """Best-ranked coordinate for an address, or None when it cannot be resolved."""
        if not address or not address.strip():
            return None
        try:
            features = await self._features(address)
        except GeocodingError as e:
            logger.warning("Geocoding failed for %r: %s", address, e)
            return None

        if not features:
            logger.info("No geocoding match for %r", address)
            return None

        try:
            return _coordinate_from_feature(features[0])
        except (KeyError, TypeError, ValueError):
            logger.warning("Malformed geocoding feature for %r", address)
            return None

    async def suggest(self, query: str, bbox: Optional[BoundingBox] = None) -> List[LocationSuggestion]:
        """Autocomplete suggestions for partial location text."""
        features = await self._features(query, bbox)
        suggestions: List[LocationSuggestion] = []
        for feature in features:
            try:
                point = _coordinate_from_feature(feature)
            except (KeyError, TypeError, ValueError):
                continue
            suggestions.append(
                LocationSuggestion(
                    id=str(feature.get("id", "")),
                    name=str(feature.get("place_name") or feature.get("text") or ""),
                    text=str(feature.get("text", "")),
                    place_type=[str(t) for t in feature.get("place_type") or []],
                    lat=point.lat,
                    lng=point.lng,
                )
            )
        return suggestions


class CachedGeocoder:
    """Wraps a geocoder with a TTL cache keyed by normalized address.

    Misses are not cached, so an address that failed once is retried next time.
    """

    def __init__(self, inner: Geocoder, cache: TTLCache[Coordinate]) -> None:
        self.inner = inner
        self.cache = cache

    async def geocode(self, address: str) -> Optional[Coordinate]:
        key = normalize_address(address or "")
        if not key:
            return None
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        result = await self.inner.geocode(address)
        if result is not None:
            self.cache.set(key, result)
        return result

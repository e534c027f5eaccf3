from __future__ import annotations

import asyncio
import json

import aiohttp
import pytest

from app.config import Settings
from app.models import BoundingBox, Coordinate
from app.services.cache import TTLCache
from app.services.geocoder import CachedGeocoder, GeocodingError, MapboxGeocoder

from conftest import FakeGeocoder


class DummyResponse:
    def __init__(self, status=200, payload=None, body_error=None):
        self.status = status
        self._payload = payload if payload is not None else {}
        self._body_error = body_error

    def raise_for_status(self):
        if self.status >= 400:
            raise aiohttp.ClientResponseError(request_info=None, history=(), status=self.status)

    async def json(self):
        if self._body_error is not None:
            raise self._body_error
        return self._payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class DummySession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.calls.append((url, params, timeout))
        if self.error is not None:
            raise self.error
        return self.response


def _settings(**overrides):
    values = {"mapbox_access_token": "tok", "mapbox_country": "nz"}
    values.update(overrides)
    return Settings(**values)


def _feature(lng, lat, **extra):
    feature = {"id": "place.1", "center": [lng, lat], "text": "Queen Street", "place_name": "Queen Street, Auckland"}
    feature.update(extra)
    return feature


def test_geocode_picks_first_feature():
    session = DummySession(DummyResponse(payload={"features": [_feature(174.76, -36.85), _feature(0, 0)]}))
    geocoder = MapboxGeocoder(session, _settings())

    point = asyncio.run(geocoder.geocode("123 Queen Street, Auckland"))

    assert point == Coordinate(lat=-36.85, lng=174.76)
    url, params, timeout = session.calls[0]
    assert url.endswith("/123%20Queen%20Street%2C%20Auckland.json")
    assert params["country"] == "nz"
    assert params["limit"] == "10"
    assert params["autocomplete"] == "true"
    assert params["access_token"] == "tok"
    assert timeout.total == 10.0


@pytest.mark.parametrize(
    "session",
    [
        DummySession(DummyResponse(payload={"features": []})),
        DummySession(DummyResponse(status=500)),
        DummySession(DummyResponse(payload={"message": "nope"})),
        DummySession(DummyResponse(payload={"features": [{"id": "x"}]})),
        DummySession(error=aiohttp.ClientConnectionError("down")),
        DummySession(error=asyncio.TimeoutError()),
        DummySession(DummyResponse(body_error=json.JSONDecodeError("Expecting value", "<html>", 0))),
    ],
)
def test_geocode_failures_return_none(session):
    geocoder = MapboxGeocoder(session, _settings())
    assert asyncio.run(geocoder.geocode("somewhere")) is None


def test_geocode_without_token_makes_no_request():
    session = DummySession(DummyResponse(payload={"features": [_feature(1, 2)]}))
    geocoder = MapboxGeocoder(session, _settings(mapbox_access_token=None))

    assert asyncio.run(geocoder.geocode("somewhere")) is None
    assert session.calls == []


def test_geocode_blank_address():
    session = DummySession(DummyResponse())
    assert asyncio.run(MapboxGeocoder(session, _settings()).geocode("   ")) is None
    assert session.calls == []


def test_suggest_maps_features_and_bbox():
    features = [
        _feature(174.76, -36.85, place_type=["address"]),
        {"id": "broken"},
        _feature(174.78, -41.29, id="place.2", text="Wellington", place_name="Wellington, New Zealand"),
    ]
    session = DummySession(DummyResponse(payload={"features": features}))
    geocoder = MapboxGeocoder(session, _settings())
    bbox = BoundingBox(west=166.0, south=-47.5, east=179.0, north=-34.0)

    suggestions = asyncio.run(geocoder.suggest("wel", bbox))

    assert [s.id for s in suggestions] == ["place.1", "place.2"]
    assert suggestions[0].place_type == ["address"]
    assert suggestions[1].name == "Wellington, New Zealand"
    assert suggestions[1].lat == -41.29
    _, params, _ = session.calls[0]
    assert params["bbox"] == "166.0,-47.5,179.0,-34.0"


def test_suggest_raises_on_provider_error():
    session = DummySession(DummyResponse(status=429))
    geocoder = MapboxGeocoder(session, _settings())
    with pytest.raises(GeocodingError, match="429"):
        asyncio.run(geocoder.suggest("wel"))


def test_cached_geocoder_reuses_normalized_hits():
    point = Coordinate(lat=-36.85, lng=174.76)
    inner = FakeGeocoder({"123 Queen St": point})
    geocoder = CachedGeocoder(inner, TTLCache(ttl_s=60.0, max_size=10))

    assert asyncio.run(geocoder.geocode("123 Queen St")) == point
    assert asyncio.run(geocoder.geocode("  123 queen   st ")) == point
    assert inner.calls == ["123 Queen St"]


def test_cached_geocoder_does_not_cache_misses():
    inner = FakeGeocoder({})
    geocoder = CachedGeocoder(inner, TTLCache(ttl_s=60.0, max_size=10))

    assert asyncio.run(geocoder.geocode("nowhere")) is None
    assert asyncio.run(geocoder.geocode("nowhere")) is None
    assert inner.calls == ["nowhere", "nowhere"]


def test_suggest_reports_invalid_json():
    session = DummySession(DummyResponse(body_error=json.JSONDecodeError("Expecting value", "<html>", 0)))
    geocoder = MapboxGeocoder(session, _settings())
    with pytest.raises(GeocodingError, match="invalid JSON"):
        asyncio.run(geocoder.suggest("wel"))

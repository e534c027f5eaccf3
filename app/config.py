from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AnyHttpUrl
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """App configuration (env-friendly).

    Tip: put MAPBOX_ACCESS_TOKEN and SUPABASE_* values in a .env file.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    app_name: str = "Event Pros Proximity API"
    version: str = "0.1.0"
    log_level: str = "INFO"

    mapbox_base_url: AnyHttpUrl = "https://api.mapbox.com/geocoding/v5/mapbox.places"
    mapbox_access_token: Optional[str] = None
    # Geocoding is scoped to a single country (ISO 3166 alpha-2).
    mapbox_country: str = "nz"
    mapbox_suggestion_limit: int = 10

    supabase_url: Optional[AnyHttpUrl] = None
    supabase_service_key: Optional[str] = None
    contractors_table: str = "business_profiles"

    http_timeout_s: float = 10.0

    cache_ttl_s: float = 3600.0
    cache_max_size: int = 2048

    geocode_concurrency: int = 5

    min_radius_km: float = 1.0
    max_radius_km: float = 200.0
    default_radius_km: float = 50.0

    # Adds a "debug" block (dropped candidate count) to search responses.
    include_debug: bool = False


@lru_cache
def get_settings() -> Settings:
    return Settings()

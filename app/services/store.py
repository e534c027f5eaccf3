from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol

import aiohttp

from app.config import Settings, get_settings
from app.models import SearchCandidate, Tier

logger = logging.getLogger(__name__)

_COLUMNS = (
    "user_id,company_name,description,business_address,service_categories,"
    "service_areas,is_verified,subscription_tier"
)


class DataStoreError(RuntimeError):
    """Raised when contractor records cannot be read from the store."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.status = status


class ContractorStore(Protocol):
    async def fetch_candidates(
        self, *, service_type: Optional[str] = None, verified_only: bool = False
    ) -> List[SearchCandidate]:
        ...

    async def get_contractor(self, contractor_id: str) -> Optional[SearchCandidate]:
        ...


def candidate_from_row(row: Dict[str, Any]) -> SearchCandidate:
    categories = [str(c) for c in row.get("service_categories") or []]
    return SearchCandidate(
        id=str(row["user_id"]),
        name=str(row.get("company_name") or ""),
        address=str(row.get("business_address") or ""),
        description=str(row.get("description") or ""),
        service_type=", ".join(categories),
        service_categories=categories,
        service_areas=[str(a) for a in row.get("service_areas") or []],
        verified=bool(row.get("is_verified")),
        tier=Tier.from_store(row.get("subscription_tier")),
    )


def _quote_array_item(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class SupabaseContractorStore:
    """Reads contractor business profiles through the Supabase REST (PostgREST) API."""

    def __init__(self, session: aiohttp.ClientSession, settings: Optional[Settings] = None) -> None:
        self.session = session
        self.settings = settings or get_settings()

    def _headers(self) -> Dict[str, str]:
        key = self.settings.supabase_service_key or ""
        return {"apikey": key, "Authorization": f"Bearer {key}", "Accept": "application/json"}

    async def _select(self, params: Dict[str, str]) -> List[Dict[str, Any]]:
        settings = self.settings
        if settings.supabase_url is None:
            raise DataStoreError("SUPABASE_URL is not configured")

        url = f"{str(settings.supabase_url).rstrip('/')}/rest/v1/{settings.contractors_table}"
        timeout = aiohttp.ClientTimeout(total=settings.http_timeout_s)
        try:
            async with self.session.get(url, params=params, headers=self._headers(), timeout=timeout) as resp:
                resp.raise_for_status()
                rows = await resp.json()
        except aiohttp.ClientResponseError as e:
            raise DataStoreError(f"Supabase error: {e.status}", status=e.status) from e
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise DataStoreError(f"Supabase request failed: {e!r}") from e
        except ValueError as e:
            raise DataStoreError("Supabase returned invalid JSON") from e

        if not isinstance(rows, list):
            raise DataStoreError("Supabase returned an unexpected payload")
        return rows

    async def fetch_candidates(
        self, *, service_type: Optional[str] = None, verified_only: bool = False
    ) -> List[SearchCandidate]:
        params = {
            "select": _COLUMNS,
            "business_address": "not.is.null",
            "order": "company_name.asc",
        }
        if service_type:
            params["service_categories"] = "cs.{" + _quote_array_item(service_type) + "}"
        if verified_only:
            params["is_verified"] = "eq.true"

        rows = await self._select(params)
        candidates = [candidate_from_row(row) for row in rows if row.get("user_id")]
        logger.debug("Fetched %d contractor candidates", len(candidates))
        return candidates

    async def get_contractor(self, contractor_id: str) -> Optional[SearchCandidate]:
        try:
            rows = await self._select({"select": _COLUMNS, "user_id": f"eq.{contractor_id}", "limit": "1"})
        except DataStoreError as e:
            # PostgREST answers 400 when the id does not parse as a user_id
            if e.status in (400, 404):
                logger.info("Contractor lookup rejected for %r: %s", contractor_id, e)
                return None
            raise
        if not rows:
            return None
        return candidate_from_row(rows[0])

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from app.models import (
    Coordinate,
    ProximityContractor,
    ScoredResult,
    SearchCandidate,
    SearchQuery,
    ServiceArea,
)
from app.services.geo import distance_km
from app.services.geocoder import Geocoder
from app.services.scoring import relevance_score
from app.services.store import ContractorStore

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 2


@dataclass
class SearchOutcome:
    results: List[ScoredResult] = field(default_factory=list)
    dropped: int = 0

    @property
    def total(self) -> int:
        return len(self.results)


@dataclass
class FilterOutcome:
    contractors: List[ProximityContractor] = field(default_factory=list)
    dropped: int = 0

    @property
    def total(self) -> int:
        return len(self.contractors)


@dataclass
class CoverageOutcome:
    contractor_id: str
    coverage_areas: List[ServiceArea]
    business_location: Optional[Coordinate]


class ProximitySearch:
    """Fetches contractors, geocodes them and ranks them by relevance and distance.

    Store failures propagate to the caller. Candidates whose address cannot be
    geocoded are left out of the results and only counted in ``dropped``.
    """

    def __init__(self, store: ContractorStore, geocoder: Geocoder, *, concurrency: int = 5) -> None:
        self.store = store
        self.geocoder = geocoder
        self.concurrency = max(1, concurrency)

    async def _geocode_many(self, addresses: Sequence[str]) -> List[Optional[Coordinate]]:
        """Geocode with at most ``concurrency`` lookups in flight; output keeps input order."""
        semaphore = asyncio.Semaphore(self.concurrency)

        async def locate(address: str) -> Optional[Coordinate]:
            async with semaphore:
                return await self.geocoder.geocode(address)

        return list(await asyncio.gather(*(locate(a) for a in addresses)))

    async def _locate_all(
        self, candidates: Sequence[SearchCandidate]
    ) -> Tuple[List[Tuple[SearchCandidate, Coordinate]], int]:
        coords = await self._geocode_many([c.address for c in candidates])

        located = [(c, point) for c, point in zip(candidates, coords) if point is not None]
        dropped = len(candidates) - len(located)
        if dropped:
            logger.info("Dropped %d of %d candidates with unresolvable addresses", dropped, len(candidates))
        return located, dropped

    async def search(self, query: SearchQuery) -> SearchOutcome:
        text = query.text.strip()
        if len(text) < MIN_QUERY_LENGTH:
            return SearchOutcome()

        candidates = await self.store.fetch_candidates(
            service_type=query.service_type, verified_only=query.verified_only
        )
        located, dropped = await self._locate_all(candidates)

        results: List[ScoredResult] = []
        for candidate, point in located:
            dist: Optional[float] = None
            if query.origin is not None:
                dist = distance_km(query.origin, point)
                if query.radius_km is not None and dist > query.radius_km:
                    continue
            score = relevance_score(text, candidate.name, candidate.description, candidate.service_type)
            results.append(
                ScoredResult(
                    **candidate.model_dump(),
                    location=point,
                    distance_km=dist,
                    relevance_score=score,
                )
            )

        # stable: ties without a distance keep store order
        results.sort(
            key=lambda r: (-r.relevance_score, r.distance_km if r.distance_km is not None else 0.0)
        )
        return SearchOutcome(results=results, dropped=dropped)

    async def filter(
        self,
        origin: Coordinate,
        radius_km: float,
        *,
        service_type: Optional[str] = None,
        verified_only: bool = False,
    ) -> FilterOutcome:
        candidates = await self.store.fetch_candidates(service_type=service_type, verified_only=verified_only)
        located, dropped = await self._locate_all(candidates)

        contractors: List[ProximityContractor] = []
        for candidate, point in located:
            dist = distance_km(origin, point)
            if dist > radius_km:
                continue
            contractors.append(ProximityContractor(**candidate.model_dump(), location=point, distance_km=dist))

        contractors.sort(key=lambda c: c.distance_km)
        return FilterOutcome(contractors=contractors, dropped=dropped)

    async def coverage(self, contractor_id: str) -> Optional[CoverageOutcome]:
        contractor = await self.store.get_contractor(contractor_id)
        if contractor is None:
            return None

        business_location, *area_points = await self._geocode_many(
            [contractor.address, *contractor.service_areas]
        )
        areas = [ServiceArea(name=name, location=point) for name, point in zip(contractor.service_areas, area_points)]
        return CoverageOutcome(
            contractor_id=contractor.id,
            coverage_areas=areas,
            business_location=business_location,
        )

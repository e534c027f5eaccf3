from __future__ import annotations

from typing import Dict, List, Optional

import pytest

from app.models import Coordinate, SearchCandidate, Tier
from app.services.store import DataStoreError

AUCKLAND = Coordinate(lat=-36.8485, lng=174.7633)
WELLINGTON = Coordinate(lat=-41.2865, lng=174.7762)


class FakeStore:
    def __init__(self, candidates: List[SearchCandidate], fail: bool = False) -> None:
        self.candidates = candidates
        self.fail = fail
        self.calls: List[dict] = []

    async def fetch_candidates(self, *, service_type: Optional[str] = None, verified_only: bool = False):
        self.calls.append({"service_type": service_type, "verified_only": verified_only})
        if self.fail:
            raise DataStoreError("boom")
        found = [c for c in self.candidates if c.address]
        if service_type:
            found = [c for c in found if service_type in c.service_categories]
        if verified_only:
            found = [c for c in found if c.verified]
        return found

    async def get_contractor(self, contractor_id: str):
        self.calls.append({"contractor_id": contractor_id})
        if self.fail:
            raise DataStoreError("boom")
        for c in self.candidates:
            if c.id == contractor_id:
                return c
        return None


class FakeGeocoder:
    def __init__(self, places: Dict[str, Coordinate]) -> None:
        self.places = places
        self.calls: List[str] = []

    async def geocode(self, address: str) -> Optional[Coordinate]:
        self.calls.append(address)
        return self.places.get(address)


def make_candidate(cid: str, name: str, address: str, **kwargs) -> SearchCandidate:
    categories = kwargs.pop("service_categories", [])
    return SearchCandidate(
        id=cid,
        name=name,
        address=address,
        service_categories=categories,
        service_type=", ".join(categories),
        **kwargs,
    )


@pytest.fixture
def candidates() -> List[SearchCandidate]:
    return [
        make_candidate(
            "c-akl",
            "Auckland Catering Co",
            "123 Queen Street, Auckland",
            description="Corporate and wedding catering",
            service_categories=["Catering"],
            service_areas=["Auckland", "North Shore"],
            verified=True,
            tier=Tier.spotlight,
        ),
        make_candidate(
            "c-wlg",
            "Wellington Florists",
            "456 Lambton Quay, Wellington",
            description="Wedding flowers and catering table arrangements",
            service_categories=["Florist"],
            verified=False,
        ),
        make_candidate(
            "c-lost",
            "Nowhere Catering",
            "1 Unknown Road, Atlantis",
            service_categories=["Catering"],
            verified=True,
        ),
    ]


@pytest.fixture
def places() -> Dict[str, Coordinate]:
    return {
        "123 Queen Street, Auckland": AUCKLAND,
        "456 Lambton Quay, Wellington": WELLINGTON,
        "Auckland": AUCKLAND,
    }


@pytest.fixture
def store(candidates) -> FakeStore:
    return FakeStore(candidates)


@pytest.fixture
def geocoder(places) -> FakeGeocoder:
    return FakeGeocoder(places)

"""Shared fixtures for the AwardScout test suite."""

import asyncio
from collections.abc import Sequence
from datetime import date, datetime

import pytest

from awardscout.schemas.award import RawAwardOffer
from awardscout.schemas.itinerary import Carrier, Itinerary, Segment, Slice
from awardscout.schemas.search import AwardSearchParams, SearchSlice


def _itinerary(itinerary_id: str, carrier: str = "QF") -> Itinerary:
    return Itinerary(
        id=itinerary_id,
        slices=[
            Slice(
                origin="SYD",
                destination="LAX",
                departure=datetime(2025, 11, 3, 9, 30),
                arrival=datetime(2025, 11, 3, 6, 15),
                segments=[Segment(carrier=Carrier(code=carrier), flight_number=f"{carrier}11")],
            )
        ],
        total_price=1450.0,
    )


def _offer(**overrides) -> RawAwardOffer:
    fields = {
        "carrier_code": "AA",
        "flight_number": "AA100",
        "origin": "JFK",
        "destination": "LAX",
        "departure_at": datetime(2025, 11, 3, 8, 0),
        "arrival_at": datetime(2025, 11, 3, 11, 30),
        "mileage": 25000,
        "copay": 0.0,
        "cabin": "ECONOMY",
    }
    fields.update(overrides)
    return RawAwardOffer(**fields)


@pytest.fixture
def make_itinerary():
    """Factory for cash-fare itineraries with a given operating carrier."""
    return _itinerary


@pytest.fixture
def make_offer():
    """Factory for canonical award offers; keyword overrides replace defaults."""
    return _offer


@pytest.fixture
def search_params() -> AwardSearchParams:
    return AwardSearchParams(
        slices=[SearchSlice(origins=["SYD"], destinations=["LAX"], depart_date=date(2025, 11, 3))],
        cabin="BUSINESS",
    )


class FakeAwardClient:
    """Award fetcher double that records each dispatched batch."""

    def __init__(
        self,
        results: dict[str, list[RawAwardOffer]] | None = None,
        error: Exception | None = None,
        gated: bool = False,
        ignore_cancel: bool = False,
    ):
        self.results = results or {}
        self.error = error
        self.gate = asyncio.Event() if gated else None
        self.ignore_cancel = ignore_cancel
        self.scheduler = None
        self.calls: list[list[str]] = []
        self.batches: list[set[str]] = []
        self.completed = 0

    async def fetch_awards(self, params: AwardSearchParams, carriers: Sequence[str]):
        self.calls.append(list(carriers))
        if self.scheduler is not None:
            self.batches.append(set(self.scheduler.progress().in_progress))
        try:
            if self.gate is not None:
                try:
                    await self.gate.wait()
                except asyncio.CancelledError:
                    if not self.ignore_cancel:
                        raise
                    await self.gate.wait()
            if self.error is not None:
                raise self.error
            return self.results
        finally:
            self.completed += 1


@pytest.fixture
def fake_client_cls():
    return FakeAwardClient

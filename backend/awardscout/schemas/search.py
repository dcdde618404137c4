from datetime import date

from pydantic import BaseModel, Field


class SearchSlice(BaseModel):
    origins: list[str]
    destinations: list[str]
    depart_date: date
    cabin: str | None = None
    via: str = ""
    ext: str = ""


class AwardSearchParams(BaseModel):
    """Itinerary context sent to the award provider alongside the carrier list."""
    slices: list[SearchSlice] = Field(min_length=1)
    cabin: str = "COACH"
    max_stops: int | None = None
    passengers: int = 1
    currency: str | None = None
    sales_city: str | None = None

    @property
    def is_round_trip(self) -> bool:
        if len(self.slices) != 2:
            return False
        outbound, inbound = self.slices
        return bool(outbound.origins and inbound.destinations) and (
            outbound.origins[0] == inbound.destinations[0]
        )


class FakeRoundTripRequest(BaseModel):
    """Identity of a fake-round-trip option set; results are keyed by return airport."""
    origin: str
    destination: str
    return_date: date
    return_airports: list[str] = []
    cabin: str = "COACH"
    max_stops: int = -1
    via_airports: list[str] = []
    booking_classes: list[str] = []


class SearchPageRequest(BaseModel):
    """Identity of a paged cash-fare search; results are keyed by page number."""
    trip_type: str = "one-way"
    origin: str
    destination: str
    depart_date: date
    return_date: date | None = None
    cabin: str = "COACH"
    passengers: int = 1
    max_stops: int = -1
    flexibility: int = 0
    page_size: int = 25
    airlines: list[str] = []

from datetime import datetime

from pydantic import BaseModel


class Carrier(BaseModel):
    code: str
    name: str | None = None


class Segment(BaseModel):
    carrier: Carrier
    marketing_carrier: str | None = None
    flight_number: str | None = None
    origin: str | None = None
    destination: str | None = None


class Slice(BaseModel):
    origin: str
    destination: str
    departure: datetime
    arrival: datetime | None = None
    segments: list[Segment] = []


class Itinerary(BaseModel):
    """A cash-fare itinerary as produced by the search layer."""
    id: str
    slices: list[Slice] = []
    total_price: float | None = None
    currency: str = "USD"

    @property
    def operating_carrier(self) -> str | None:
        """Upper-cased carrier of the first segment of the first slice, if any."""
        if not self.slices or not self.slices[0].segments:
            return None
        return self.slices[0].segments[0].carrier.code.strip().upper()

"""Award-provider wire events and the canonical offer / program models."""

from datetime import datetime
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ─── Canonical models ───


class RawAwardOffer(BaseModel):
    """One award redemption option, normalised from either provider shape."""
    carrier_code: str = Field(min_length=2, max_length=2)
    carriers: list[str] = []
    flight_number: str | None = None
    origin: str | None = None
    destination: str | None = None
    departure_at: datetime | None = None
    arrival_at: datetime | None = None
    mileage: int = Field(ge=0)
    copay: float = Field(default=0.0, ge=0)
    copay_currency: str = "USD"
    cabin: str = "UNKNOWN"
    stops: list[str] = []
    number_of_stops: int = 0
    exact_match: bool = False
    match_type: str | None = None
    segment: str | None = None
    slice_index: int = 0
    provider: str | None = None

    @model_validator(mode="after")
    def _fill_defaults(self) -> "RawAwardOffer":
        if not self.carriers:
            self.carriers = [self.carrier_code]
        if self.segment is None and self.origin and self.destination:
            self.segment = f"{self.origin}-{self.destination}"
        return self

    @property
    def segment_key(self) -> tuple[int, str]:
        return self.slice_index, self.segment or ""


MatchType = Literal["exact", "partial", "mixed"]


class MileageProgram(BaseModel):
    """All offers for one carrier, collapsed to the cheapest combination."""
    carrier_code: str
    carrier_name: str
    total_mileage: int
    total_price: float
    match_type: MatchType
    offers: list[RawAwardOffer]
    alternatives: list[RawAwardOffer] = []
    segment_count: int


class CabinBestValue(BaseModel):
    cabin: str
    offer: RawAwardOffer
    value: float


class CashComparison(BaseModel):
    award_value: float
    cash_price: float
    show_strikethrough: bool
    show_savings_badge: bool
    savings: float | None = None


class TimeWindowPartition(BaseModel):
    best_match: list[RawAwardOffer] = []
    time_insensitive: list[RawAwardOffer] = []
    active: Literal["best_match", "time_insensitive"] = "best_match"

    @property
    def selected(self) -> list[RawAwardOffer]:
        return self.best_match if self.active == "best_match" else self.time_insensitive


class MileageSegment(BaseModel):
    origin: str | None
    destination: str | None
    mileage: int
    price: float
    cabin: str
    flight_number: str | None = None
    carrier: str | None = None
    match_type: str | None = None
    exact_match: bool = False
    is_nonstop: bool = False


class MileageCalculationResult(BaseModel):
    total_mileage: int
    total_price: float
    total_value: float
    segments: list[MileageSegment]
    strategy: Literal["nonstop", "full-segment", "pieced", "none"]
    cabin: str


# ─── Wire shapes ───


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class WireEndpoint(_Wire):
    iata_code: str | None = Field(default=None, alias="iataCode")
    at: str | None = None


class WireOperating(_Wire):
    carrier_code: str | None = Field(default=None, alias="carrierCode")


class DirectSegment(_Wire):
    carrier_code: str | None = Field(default=None, alias="carrierCode")
    operating: WireOperating | None = None
    number: str | int | None = None
    departure: WireEndpoint = WireEndpoint()
    arrival: WireEndpoint = WireEndpoint()
    cabin: str | None = None

    @property
    def operating_carrier(self) -> str | None:
        if self.carrier_code:
            return self.carrier_code
        return self.operating.carrier_code if self.operating else None


class DirectItinerary(_Wire):
    duration: str | None = None
    segments: list[DirectSegment] = []


class DirectSolution(_Wire):
    id: str | None = None
    cabin: str | None = None
    mileage: float | None = None
    miles: float | None = None
    mileage_price: float | str | None = Field(default=None, alias="mileagePrice")
    tax: float | str | None = None
    itineraries: list[DirectItinerary] = []


class MatchingFlight(_Wire):
    flight_number: str | int | None = Field(default=None, alias="flightNumber")
    carrier_code: str | None = Field(default=None, alias="carrierCode")
    operating_carrier: str | None = Field(default=None, alias="operatingCarrier")
    departure: WireEndpoint | None = None
    arrival: WireEndpoint | None = None
    mileage: float | None = None
    mileage_price: float | str | None = Field(default=None, alias="mileagePrice")
    match_type: str | None = Field(default=None, alias="matchType")
    exact_match: bool = Field(default=False, alias="exactMatch")
    cabin: str | None = None
    number_of_stops: int = Field(default=0, alias="numberOfStops")

    @property
    def carrier(self) -> str | None:
        return self.operating_carrier or self.carrier_code


class MileageBreakdown(_Wire):
    origin: str | None = None
    destination: str | None = None
    all_matching_flights: list[MatchingFlight] = Field(default=[], alias="allMatchingFlights")


class WireAirport(_Wire):
    code: str | None = None


class SummarySlice(_Wire):
    origin: WireAirport | None = None
    destination: WireAirport | None = None
    departure: str | None = None
    mileage_breakdown: list[MileageBreakdown] = Field(default=[], alias="mileageBreakdown")


class SummarySolution(_Wire):
    slices: list[SummarySlice] = []


class DirectProviderEvent(_Wire):
    kind: Literal["direct"] = "direct"
    provider: str
    data: DirectSolution


class EnrichedSummaryEvent(_Wire):
    kind: Literal["summary"] = "summary"
    provider: str | None = None
    data: SummarySolution


class UnrecognizedEvent(_Wire):
    kind: Literal["unrecognized"] = "unrecognized"
    type: str | None = None
    provider: str | None = None
    raw: dict[str, Any] = {}


AwardEvent = Annotated[
    Union[DirectProviderEvent, EnrichedSummaryEvent, UnrecognizedEvent],
    Field(discriminator="kind"),
]

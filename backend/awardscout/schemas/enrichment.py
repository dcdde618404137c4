from datetime import datetime

from pydantic import BaseModel, Field

from awardscout.schemas.award import (
    CabinBestValue,
    CashComparison,
    MileageProgram,
    RawAwardOffer,
)
from awardscout.schemas.itinerary import Itinerary
from awardscout.schemas.search import AwardSearchParams


class EnrichmentSearchRequest(BaseModel):
    search_params: AwardSearchParams
    itineraries: list[Itinerary]
    visible_ids: list[str] = []


class AddItinerariesRequest(BaseModel):
    itineraries: list[Itinerary]
    visible_ids: list[str] = []


class VisibilityRequest(BaseModel):
    visible_ids: list[str]


class ProgressResponse(BaseModel):
    total: int
    completed: int
    in_progress: list[str]
    failed: list[str]


class StatusResponse(BaseModel):
    queue_size: int
    enriched_count: int
    in_progress_count: int
    failed_count: int
    is_processing: bool
    progress: ProgressResponse
    carriers: list[str] = []


class ProgramsRequest(BaseModel):
    offers: list[RawAwardOffer]
    cash_price: float | None = None
    per_cent_value: float | None = None


class ProgramsResponse(BaseModel):
    programs: list[MileageProgram]
    recommended: MileageProgram | None = None
    best_by_cabin: dict[str, CabinBestValue] = {}
    cash_comparison: CashComparison | None = None


class TimeWindowRequest(BaseModel):
    offers: list[RawAwardOffer]
    original_departure: datetime
    window_minutes: int | None = None


class SliceAwardsRequest(BaseModel):
    origin: str
    destination: str
    offers: list[RawAwardOffer] = []


class TripMileageRequest(BaseModel):
    slices: list[SliceAwardsRequest] = Field(min_length=1)
    per_cent_value: float | None = None

"""Awards router — program ranking, cabin best value, trip mileage and time-window partitioning."""

from fastapi import APIRouter, HTTPException

from awardscout.config import settings
from awardscout.schemas.award import MileageCalculationResult, TimeWindowPartition
from awardscout.schemas.enrichment import (
    ProgramsRequest,
    ProgramsResponse,
    TimeWindowRequest,
    TripMileageRequest,
)
from awardscout.services.mileage_valuation import (
    SliceAwards,
    best_value_by_cabin,
    calculate_best_mileage_for_trip,
    compare_program_to_cash,
    group_by_program,
    partition_by_time_window,
)

router = APIRouter()


def _per_cent_value(value: float | None) -> float:
    return settings.mileage_per_cent_value if value is None else value


@router.post("/programs", response_model=ProgramsResponse)
async def rank_programs(req: ProgramsRequest):
    """Rank award programs and compare the recommended one against the cash fare."""
    per_cent_value = _per_cent_value(req.per_cent_value)
    programs = group_by_program(req.offers)
    recommended = programs[0] if programs else None

    comparison = None
    if recommended is not None and req.cash_price is not None:
        comparison = compare_program_to_cash(recommended, req.cash_price, per_cent_value)

    return ProgramsResponse(
        programs=programs,
        recommended=recommended,
        best_by_cabin=best_value_by_cabin(req.offers, per_cent_value),
        cash_comparison=comparison,
    )


@router.post("/trip-mileage", response_model=MileageCalculationResult)
async def trip_mileage(req: TripMileageRequest):
    """Cheapest redemption covering every slice of the trip."""
    slices = [SliceAwards(origin=s.origin, destination=s.destination, offers=s.offers) for s in req.slices]
    result = calculate_best_mileage_for_trip(slices, _per_cent_value(req.per_cent_value))
    if result is None:
        raise HTTPException(status_code=404, detail="No award covers every slice of this trip")
    return result


@router.post("/time-window", response_model=TimeWindowPartition)
async def time_window(req: TimeWindowRequest):
    window = settings.time_window_minutes if req.window_minutes is None else req.window_minutes
    return partition_by_time_window(req.offers, req.original_departure, window_minutes=window)

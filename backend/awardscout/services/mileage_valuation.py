"""Mileage valuation — dedupes, groups and ranks award offers."""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from awardscout.config import settings
from awardscout.data.airlines import carrier_name
from awardscout.schemas.award import (
    CabinBestValue,
    CashComparison,
    MatchType,
    MileageCalculationResult,
    MileageProgram,
    MileageSegment,
    RawAwardOffer,
    TimeWindowPartition,
)

COPAY_WEIGHT = 100  # $1 of co-pay ranks like 100 miles
DEFAULT_PER_CENT_VALUE = settings.mileage_per_cent_value

_STRATEGY_RANK = {"nonstop": 0, "full-segment": 1, "pieced": 2, "none": 3}


@dataclass(frozen=True)
class ValuationThresholds:
    """Fraction of the cash fare an award must come in under to be surfaced."""
    strikethrough: float = 0.90    # itinerary card: strike through the cash price
    savings_badge: float = 0.85    # individual offer: "Save $X" badge

    @classmethod
    def from_settings(cls) -> "ValuationThresholds":
        return cls(
            strikethrough=settings.strikethrough_threshold,
            savings_badge=settings.savings_badge_threshold,
        )


@dataclass
class SliceAwards:
    """Award offers gathered for one slice of the cash itinerary."""
    origin: str
    destination: str
    offers: list[RawAwardOffer] = field(default_factory=list)


# ─── Scores ───


def value_score(offer: RawAwardOffer) -> float:
    """Ranking score for a single offer: miles plus weighted co-pay."""
    return offer.mileage + offer.copay * COPAY_WEIGHT


def program_score(program: MileageProgram) -> float:
    return program.total_mileage + program.total_price * COPAY_WEIGHT


def award_value(mileage: int, copay: float, per_cent_value: float = DEFAULT_PER_CENT_VALUE) -> float:
    """Cash-equivalent value of a redemption."""
    return mileage * per_cent_value + copay


def offer_value(offer: RawAwardOffer, per_cent_value: float = DEFAULT_PER_CENT_VALUE) -> float:
    return award_value(offer.mileage, offer.copay, per_cent_value)


# ─── Deduplication ───


def _flight_number_rank(flight_number: str) -> tuple[int, int, str]:
    digits = re.findall(r"\d+", flight_number)
    if digits:
        return 0, int(digits[-1]), flight_number
    return 1, 0, flight_number


def _prefer(candidate: RawAwardOffer, current: RawAwardOffer) -> bool:
    if not candidate.flight_number:
        return False
    if not current.flight_number:
        return True
    return _flight_number_rank(candidate.flight_number) < _flight_number_rank(current.flight_number)


def dedup_key(offer: RawAwardOffer) -> tuple:
    return (offer.origin, offer.destination, offer.departure_at, offer.arrival_at, offer.mileage)


def dedupe_offers(offers: Iterable[RawAwardOffer]) -> list[RawAwardOffer]:
    """
    Collapse codeshare duplicates.

    Offers sharing route, departure, arrival and mileage are one offer; the
    numerically lowest flight number wins. First-seen order is preserved.
    """
    unique: dict[tuple, RawAwardOffer] = {}
    for offer in offers:
        key = dedup_key(offer)
        current = unique.get(key)
        if current is None or _prefer(offer, current):
            unique[key] = offer
    return list(unique.values())


# ─── Programs ───


def _match_type(offers: Sequence[RawAwardOffer]) -> MatchType:
    exact = [o.exact_match for o in offers]
    if exact and all(exact):
        return "exact"
    if any(exact):
        return "mixed"
    return "partial"


def build_program(
    carrier_code: str,
    offers: Sequence[RawAwardOffer],
    carrier_names: dict[str, str] | None = None,
) -> MileageProgram:
    """Cheapest combination for one carrier: the best offer per required segment."""
    ranked = sorted(offers, key=value_score)

    cheapest: dict[tuple[int, str], RawAwardOffer] = {}
    for offer in ranked:
        cheapest.setdefault(offer.segment_key, offer)
    contributing = sorted(cheapest.values(), key=lambda o: o.slice_index)

    name = (carrier_names or {}).get(carrier_code) or carrier_name(carrier_code)
    return MileageProgram(
        carrier_code=carrier_code,
        carrier_name=name,
        total_mileage=sum(o.mileage for o in contributing),
        total_price=round(sum(o.copay for o in contributing), 2),
        match_type=_match_type(contributing),
        offers=contributing,
        alternatives=ranked,
        segment_count=len(contributing),
    )


def rank_programs(programs: Iterable[MileageProgram]) -> list[MileageProgram]:
    return sorted(programs, key=program_score)


def group_by_program(
    offers: Iterable[RawAwardOffer],
    carrier_names: dict[str, str] | None = None,
) -> list[MileageProgram]:
    """
    Group offers into per-carrier programs, ranked best value first.

    Offers are deduplicated before grouping, so a codeshare appears under
    the carrier of the surviving flight number only.
    """
    by_carrier: dict[str, list[RawAwardOffer]] = {}
    for offer in dedupe_offers(offers):
        by_carrier.setdefault(offer.carrier_code, []).append(offer)

    return rank_programs(
        build_program(code, carrier_offers, carrier_names)
        for code, carrier_offers in by_carrier.items()
    )


def recommended_program(offers: Iterable[RawAwardOffer]) -> MileageProgram | None:
    programs = group_by_program(offers)
    return programs[0] if programs else None


def count_mileage_programs(offers: Iterable[RawAwardOffer]) -> int:
    return len({o.carrier_code for o in offers})


# ─── Cabins ───


def best_value_by_cabin(
    offers: Iterable[RawAwardOffer],
    per_cent_value: float = DEFAULT_PER_CENT_VALUE,
) -> dict[str, CabinBestValue]:
    """Lowest ``mileage * per_cent_value + copay`` offer per cabin."""
    best: dict[str, CabinBestValue] = {}
    for offer in offers:
        value = offer_value(offer, per_cent_value)
        current = best.get(offer.cabin)
        if current is None or value < current.value:
            best[offer.cabin] = CabinBestValue(cabin=offer.cabin, offer=offer, value=round(value, 2))
    return best


# ─── Cash comparison ───


def is_better_than_cash(value: float, cash_price: float, threshold: float) -> bool:
    """True when the award costs less than ``threshold`` of the cash fare."""
    if cash_price <= 0:
        return False
    return value < cash_price * threshold


def compare_to_cash(
    value: float,
    cash_price: float,
    thresholds: ValuationThresholds | None = None,
) -> CashComparison:
    """
    Evaluate both display policies against a cash fare.

    The card-level strikethrough and the offer-level savings badge use
    separate thresholds; both are reported so callers pick by context.
    """
    if thresholds is None:
        thresholds = ValuationThresholds.from_settings()

    strikethrough = is_better_than_cash(value, cash_price, thresholds.strikethrough)
    badge = is_better_than_cash(value, cash_price, thresholds.savings_badge)
    return CashComparison(
        award_value=round(value, 2),
        cash_price=cash_price,
        show_strikethrough=strikethrough,
        show_savings_badge=badge,
        savings=round(cash_price - value, 2) if badge else None,
    )


def compare_program_to_cash(
    program: MileageProgram,
    cash_price: float,
    per_cent_value: float = DEFAULT_PER_CENT_VALUE,
    thresholds: ValuationThresholds | None = None,
) -> CashComparison:
    value = award_value(program.total_mileage, program.total_price, per_cent_value)
    return compare_to_cash(value, cash_price, thresholds)


# ─── Time window ───


def _minutes_apart(a: datetime, b: datetime) -> float:
    if (a.tzinfo is None) != (b.tzinfo is None):
        a, b = a.replace(tzinfo=None), b.replace(tzinfo=None)
    return abs((a - b).total_seconds()) / 60


def partition_by_time_window(
    offers: Iterable[RawAwardOffer],
    original_departure: datetime,
    window_minutes: int = settings.time_window_minutes,
    preferred: Literal["best_match", "time_insensitive"] = "best_match",
) -> TimeWindowPartition:
    """
    Split offers by distance from the cash itinerary's departure.

    Offers within ``window_minutes`` are best matches, the rest are
    time-insensitive. Both lists are sorted by proximity. If the preferred
    partition is empty and the other is not, the other is selected.
    Offers without a departure time are left out.
    """
    timed = [o for o in offers if o.departure_at is not None]
    timed.sort(key=lambda o: _minutes_apart(o.departure_at, original_departure))

    best_match = [o for o in timed if _minutes_apart(o.departure_at, original_departure) <= window_minutes]
    time_insensitive = [o for o in timed if _minutes_apart(o.departure_at, original_departure) > window_minutes]

    active = preferred
    if active == "best_match" and not best_match and time_insensitive:
        active = "time_insensitive"
    elif active == "time_insensitive" and not time_insensitive and best_match:
        active = "best_match"

    return TimeWindowPartition(best_match=best_match, time_insensitive=time_insensitive, active=active)


# ─── Slice / trip calculation ───


def _to_segment(offer: RawAwardOffer, is_nonstop: bool) -> MileageSegment:
    return MileageSegment(
        origin=offer.origin,
        destination=offer.destination,
        mileage=offer.mileage,
        price=offer.copay,
        cabin=offer.cabin,
        flight_number=offer.flight_number,
        carrier=offer.carrier_code,
        match_type=offer.match_type,
        exact_match=offer.exact_match,
        is_nonstop=is_nonstop,
    )


def _best_single(
    candidates: list[RawAwardOffer],
    strategy: Literal["nonstop", "full-segment"],
    per_cent_value: float,
) -> MileageCalculationResult:
    best = min(candidates, key=lambda o: offer_value(o, per_cent_value))
    return MileageCalculationResult(
        total_mileage=best.mileage,
        total_price=best.copay,
        total_value=round(offer_value(best, per_cent_value), 2),
        segments=[_to_segment(best, is_nonstop=strategy == "nonstop")],
        strategy=strategy,
        cabin=best.cabin,
    )


def _find_path(
    by_origin: dict[str, list[RawAwardOffer]],
    current: str,
    target: str,
    visited: frozenset[str],
) -> list[RawAwardOffer] | None:
    if current == target:
        return []
    if current in visited:
        return None
    visited = visited | {current}
    for offer in by_origin.get(current, []):
        if offer.destination == target:
            return [offer]
        if offer.destination is None:
            continue
        rest = _find_path(by_origin, offer.destination, target, visited)
        if rest is not None:
            return [offer, *rest]
    return None


def find_best_mileage_for_slice(
    slice_awards: SliceAwards,
    per_cent_value: float = DEFAULT_PER_CENT_VALUE,
) -> MileageCalculationResult | None:
    """
    Best redemption covering one slice.

    Tries a nonstop award first, then any award covering the full route,
    then pieces connecting awards together.
    """
    offers = slice_awards.offers
    if not offers:
        return None
    origin, destination = slice_awards.origin, slice_awards.destination

    full_route = [o for o in offers if o.origin == origin and o.destination == destination]
    nonstop = [o for o in full_route if o.number_of_stops == 0 and not o.stops]
    if nonstop:
        return _best_single(nonstop, "nonstop", per_cent_value)
    if full_route:
        return _best_single(full_route, "full-segment", per_cent_value)

    by_origin: dict[str, list[RawAwardOffer]] = {}
    for offer in sorted(offers, key=lambda o: offer_value(o, per_cent_value)):
        if offer.origin:
            by_origin.setdefault(offer.origin, []).append(offer)

    path = _find_path(by_origin, origin, destination, frozenset())
    if not path:
        return None

    total_mileage = sum(o.mileage for o in path)
    total_price = round(sum(o.copay for o in path), 2)
    cabins = list(dict.fromkeys(o.cabin for o in path))
    return MileageCalculationResult(
        total_mileage=total_mileage,
        total_price=total_price,
        total_value=round(award_value(total_mileage, total_price, per_cent_value), 2),
        segments=[_to_segment(o, is_nonstop=False) for o in path],
        strategy="pieced",
        cabin="/".join(cabins),
    )


def calculate_best_mileage_for_trip(
    slices: Sequence[SliceAwards],
    per_cent_value: float = DEFAULT_PER_CENT_VALUE,
) -> MileageCalculationResult | None:
    """Best redemption across every slice; None if any slice has no award."""
    results: list[MileageCalculationResult] = []
    for slice_awards in slices:
        result = find_best_mileage_for_slice(slice_awards, per_cent_value)
        if result is None:
            return None
        results.append(result)

    if not results:
        return None

    total_mileage = sum(r.total_mileage for r in results)
    total_price = round(sum(r.total_price for r in results), 2)
    worst = max(results, key=lambda r: _STRATEGY_RANK[r.strategy]).strategy
    return MileageCalculationResult(
        total_mileage=total_mileage,
        total_price=total_price,
        total_value=round(award_value(total_mileage, total_price, per_cent_value), 2),
        segments=[seg for r in results for seg in r.segments],
        strategy=worst,
        cabin="/".join(dict.fromkeys(r.cabin for r in results)),
    )

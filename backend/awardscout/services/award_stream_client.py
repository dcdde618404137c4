"""Award provider client — streams NDJSON award events and decodes them into offers."""

import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from typing import Any

import httpx
from pydantic import TypeAdapter, ValidationError

from awardscout.config import settings
from awardscout.data.airlines import is_carrier_code
from awardscout.data.currency import CurrencyConverter, default_converter, parse_copay
from awardscout.schemas.award import (
    AwardEvent,
    DirectProviderEvent,
    EnrichedSummaryEvent,
    RawAwardOffer,
    UnrecognizedEvent,
)
from awardscout.schemas.search import AwardSearchParams

logger = logging.getLogger(__name__)

DIRECT_PROVIDER = "awardtool-direct"

_event_adapter = TypeAdapter(AwardEvent)


class AwardProviderError(Exception):
    """The award provider answered with an error status."""

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"Award provider returned {status_code}: {detail}")


# ─── NDJSON framing ───


def _reject_constant(token: str) -> Any:
    raise ValueError(f"non-finite number {token}")


def _parse_line(line: bytes) -> dict[str, Any] | None:
    line = line.strip()
    if not line:
        return None
    try:
        record = json.loads(line.decode("utf-8"), parse_constant=_reject_constant)
    except ValueError:
        logger.warning(f"Skipping malformed award stream line: {line[:200]!r}")
        return None
    if not isinstance(record, dict):
        logger.warning(f"Skipping non-object award stream line: {line[:200]!r}")
        return None
    return record


async def iter_ndjson(chunks: AsyncIterable[bytes]) -> AsyncIterator[dict[str, Any]]:
    """
    Reassemble newline-delimited JSON records from arbitrary byte chunks.

    Each record is yielded as soon as its terminating newline arrives.
    A trailing record without a newline is parsed when the stream closes.
    """
    buffer = b""
    async for chunk in chunks:
        buffer += chunk
        *lines, buffer = buffer.split(b"\n")
        for line in lines:
            record = _parse_line(line)
            if record is not None:
                yield record

    record = _parse_line(buffer)
    if record is not None:
        yield record


# ─── Event decoding ───


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def decode_event(record: dict[str, Any]) -> AwardEvent:
    """
    Decode one stream record into a tagged event.

    Raises pydantic.ValidationError when a recognised shape is malformed.
    """
    kind = "unrecognized"
    data = record.get("data")
    if record.get("type") == "solution" and isinstance(data, dict):
        if record.get("provider") == DIRECT_PROVIDER:
            kind = "direct"
        elif "slices" in data:
            kind = "summary"

    if kind == "unrecognized":
        return UnrecognizedEvent(
            type=_as_str(record.get("type")),
            provider=_as_str(record.get("provider")),
            raw=record,
        )
    return _event_adapter.validate_python({**record, "kind": kind})


def _flight_number(carrier: str, number: str | int | None) -> str | None:
    if number is None or number == "":
        return None
    number = str(number)
    return number if number[:1].isalpha() else f"{carrier}{number}"


def _whole_miles(value: float) -> int | None:
    try:
        return int(value)
    except (ValueError, OverflowError):
        return None


def _build_offer(**fields: Any) -> RawAwardOffer | None:
    try:
        return RawAwardOffer(**fields)
    except ValidationError as e:
        logger.warning(f"Skipping invalid award offer ({fields.get('carrier_code')}): {e.error_count()} errors")
        return None


def _direct_offers(event: DirectProviderEvent, converter: CurrencyConverter) -> list[RawAwardOffer]:
    solution = event.data
    itineraries = [itin for itin in solution.itineraries if itin.segments]
    if not itineraries:
        return []

    carriers = list(dict.fromkeys(
        seg.operating_carrier
        for itin in itineraries
        for seg in itin.segments
        if is_carrier_code(seg.operating_carrier)
    ))
    if not carriers:
        return []

    mileage = solution.mileage if solution.mileage is not None else solution.miles
    mileage = _whole_miles(mileage) if mileage is not None else None
    if mileage is None:
        logger.warning(f"Skipping award solution without usable mileage: {solution.mileage or solution.miles}")
        return []
    copay_raw = solution.mileage_price if solution.mileage_price is not None else solution.tax
    copay, currency = parse_copay(copay_raw, converter)

    segments = itineraries[0].segments
    first, last = segments[0], segments[-1]
    carrier = first.operating_carrier if is_carrier_code(first.operating_carrier) else carriers[0]

    offer = _build_offer(
        carrier_code=carrier,
        carriers=carriers,
        flight_number=_flight_number(carrier, first.number),
        origin=first.departure.iata_code,
        destination=last.arrival.iata_code,
        departure_at=first.departure.at,
        arrival_at=last.arrival.at,
        mileage=mileage,
        copay=copay,
        copay_currency=currency,
        cabin=solution.cabin or first.cabin or "UNKNOWN",
        stops=[seg.arrival.iata_code for seg in segments[:-1] if seg.arrival.iata_code],
        number_of_stops=len(segments) - 1,
        provider=event.provider,
    )
    return [offer] if offer else []


def _summary_offers(event: EnrichedSummaryEvent, converter: CurrencyConverter) -> list[RawAwardOffer]:
    offers: list[RawAwardOffer] = []
    for slice_index, sl in enumerate(event.data.slices):
        for breakdown in sl.mileage_breakdown:
            segment = None
            if breakdown.origin and breakdown.destination:
                segment = f"{breakdown.origin}-{breakdown.destination}"

            for flight in breakdown.all_matching_flights:
                carrier = flight.carrier
                mileage = _whole_miles(flight.mileage) if flight.mileage is not None else None
                if not is_carrier_code(carrier) or mileage is None:
                    continue
                copay, currency = parse_copay(flight.mileage_price, converter)
                departure = flight.departure
                arrival = flight.arrival
                offer = _build_offer(
                    carrier_code=carrier,
                    carriers=[carrier],
                    flight_number=_flight_number(carrier, flight.flight_number),
                    origin=(departure.iata_code if departure else None) or breakdown.origin,
                    destination=(arrival.iata_code if arrival else None) or breakdown.destination,
                    departure_at=departure.at if departure else None,
                    arrival_at=arrival.at if arrival else None,
                    mileage=mileage,
                    copay=copay,
                    copay_currency=currency,
                    cabin=flight.cabin or "UNKNOWN",
                    number_of_stops=flight.number_of_stops,
                    exact_match=flight.exact_match,
                    match_type=flight.match_type,
                    segment=segment,
                    slice_index=slice_index,
                    provider=event.provider,
                )
                if offer:
                    offers.append(offer)
    return offers


def event_offers(event: AwardEvent, converter: CurrencyConverter | None = None) -> list[RawAwardOffer]:
    """Canonical offers carried by an event. Unrecognised events carry none."""
    converter = converter or default_converter
    if isinstance(event, DirectProviderEvent):
        return _direct_offers(event, converter)
    if isinstance(event, EnrichedSummaryEvent):
        return _summary_offers(event, converter)
    return []


def route_offers(offers: Sequence[RawAwardOffer]) -> dict[str, list[RawAwardOffer]]:
    """Index offers under every carrier they mention."""
    by_carrier: dict[str, list[RawAwardOffer]] = {}
    for offer in offers:
        for carrier in offer.carriers:
            by_carrier.setdefault(carrier, []).append(offer)
    return by_carrier


# ─── Client ───


class AwardStreamClient:
    """Streaming client for the award provider's NDJSON endpoint."""

    def __init__(
        self,
        base_url: str = settings.award_api_base_url,
        path: str = settings.award_api_path,
        timeout: float = settings.award_api_timeout_seconds,
        transport: httpx.AsyncBaseTransport | None = None,
        converter: CurrencyConverter | None = None,
    ):
        self._base_url = base_url
        self._path = path
        self._timeout = timeout
        self._transport = transport
        self._converter = converter or default_converter
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    def build_payload(self, params: AwardSearchParams, carriers: Sequence[str]) -> dict[str, Any]:
        """Provider request restricted to ``carriers``."""
        is_round_trip = params.is_round_trip
        return_date = params.slices[1].depart_date if is_round_trip else None

        slices = [
            {
                "origin": sl.origins,
                "dest": sl.destinations,
                "routing": sl.via,
                "ext": sl.ext,
                "routingRet": "",
                "extRet": "",
                "dates": {
                    "searchDateType": "specific",
                    "departureDate": sl.depart_date.isoformat(),
                    "departureDateType": "depart",
                    "departureDateModifier": "0",
                    "departureDatePreferredTimes": [],
                    "returnDate": (return_date or sl.depart_date).isoformat(),
                    "returnDateType": "depart",
                    "returnDateModifier": "0",
                    "returnDatePreferredTimes": [],
                },
            }
            for sl in params.slices
        ]

        return {
            "type": "round-trip" if is_round_trip else "one-way",
            "slices": slices,
            "options": {
                "cabin": params.cabin,
                "stops": str(params.max_stops) if params.max_stops is not None else "-1",
                "extraStops": "-1",
                "allowAirportChanges": "true",
                "showOnlyAvailable": "true",
                "pageSize": settings.award_page_size,
                "pageNum": 1,
                "aero": True,
                "programs": list(carriers),
                "ita_flow": False,
                "airlines": "",
                "alliances": "",
                "exclude": [],
                "currencyCode": params.currency or settings.award_default_currency,
                "salesCity": {"code": params.sales_city or settings.award_sales_city},
            },
            "pax": {
                "adults": str(params.passengers),
                "seniors": "0",
                "youth": "0",
                "children": "0",
                "infantsInSeat": "0",
                "infantsOnLap": "0",
            },
        }

    async def stream_events(
        self,
        params: AwardSearchParams,
        carriers: Sequence[str],
    ) -> AsyncIterator[AwardEvent]:
        """Yield decoded events as the provider streams them."""
        client = await self._get_client()
        payload = self.build_payload(params, carriers)

        async with client.stream("POST", self._path, json=payload) as resp:
            if resp.status_code >= 400:
                body = (await resp.aread()).decode("utf-8", errors="replace")
                logger.error(f"Award provider error {resp.status_code} for {', '.join(carriers)}")
                raise AwardProviderError(resp.status_code, body[:200])

            unrecognized = 0
            async for record in iter_ndjson(resp.aiter_bytes()):
                try:
                    event = decode_event(record)
                except ValidationError as e:
                    logger.warning(f"Skipping undecodable award event: {e.error_count()} errors")
                    continue
                if isinstance(event, UnrecognizedEvent):
                    unrecognized += 1
                    logger.debug(f"Unrecognized award event type={event.type} provider={event.provider}")
                yield event

            if unrecognized:
                logger.info(f"Award stream carried {unrecognized} unrecognized events")

    async def stream_offers(
        self,
        params: AwardSearchParams,
        carriers: Sequence[str],
    ) -> AsyncIterator[RawAwardOffer]:
        async for event in self.stream_events(params, carriers):
            for offer in event_offers(event, self._converter):
                yield offer

    async def fetch_awards(
        self,
        params: AwardSearchParams,
        carriers: Sequence[str],
    ) -> dict[str, list[RawAwardOffer]]:
        """Consume the whole stream and return offers keyed by carrier code."""
        offers = [offer async for offer in self.stream_offers(params, carriers)]
        logger.info(f"Award stream complete for {', '.join(carriers)}: {len(offers)} offers")
        return route_offers(offers)

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

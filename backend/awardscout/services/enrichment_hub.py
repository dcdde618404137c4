"""Enrichment hub — owns the scheduler for one search session and collects its results."""

import logging
from collections.abc import Collection, Sequence

from awardscout.schemas.award import RawAwardOffer
from awardscout.schemas.itinerary import Itinerary
from awardscout.schemas.search import AwardSearchParams
from awardscout.services.enrichment_scheduler import (
    AwardFetcher,
    EnrichmentProgress,
    EnrichmentScheduler,
)
from awardscout.services.mileage_valuation import dedupe_offers

logger = logging.getLogger(__name__)


class EnrichmentHub:
    """Publishes enrichment results by carrier code for the current session."""

    def __init__(
        self,
        client: AwardFetcher,
        batch_size: int | None = None,
        batch_delay: float | None = None,
    ):
        self._client = client
        kwargs = {}
        if batch_size is not None:
            kwargs["batch_size"] = batch_size
        if batch_delay is not None:
            kwargs["batch_delay"] = batch_delay
        self.scheduler = EnrichmentScheduler(
            client,
            on_enrichment=self._on_enrichment,
            on_progress=self._on_progress,
            **kwargs,
        )
        self._offers: dict[str, list[RawAwardOffer]] = {}
        self._progress: EnrichmentProgress = self.scheduler.progress()
        self._search_params: AwardSearchParams | None = None

    @property
    def has_session(self) -> bool:
        return self._search_params is not None

    @property
    def latest_progress(self) -> EnrichmentProgress:
        return self._progress

    def start_search(
        self,
        itineraries: Sequence[Itinerary],
        search_params: AwardSearchParams,
        visible_ids: Collection[str] = (),
    ) -> int:
        """Begin a new session; results from any previous session are dropped."""
        self.scheduler.reset()
        self._offers = {}
        self._search_params = search_params
        return self.scheduler.enqueue(itineraries, search_params, visible_ids)

    def add_itineraries(
        self,
        itineraries: Sequence[Itinerary],
        visible_ids: Collection[str] = (),
    ) -> int:
        """Add another page of results to the current session."""
        if self._search_params is None:
            raise RuntimeError("No active enrichment session")
        return self.scheduler.enqueue(itineraries, self._search_params, visible_ids)

    def update_visibility(self, visible_ids: Collection[str]) -> bool:
        return self.scheduler.update_visibility(visible_ids)

    def offers_for(self, carrier_code: str) -> list[RawAwardOffer]:
        return list(self._offers.get(carrier_code.upper(), []))

    def carriers(self) -> list[str]:
        return sorted(self._offers)

    def _on_enrichment(self, carrier_code: str, offers: list[RawAwardOffer]) -> None:
        merged = dedupe_offers([*self._offers.get(carrier_code, []), *offers])
        self._offers[carrier_code] = merged
        logger.debug(f"Published {len(offers)} offers for {carrier_code} ({len(merged)} total)")

    def _on_progress(self, progress: EnrichmentProgress) -> None:
        self._progress = progress

    def cache_stats(self) -> dict:
        stats = getattr(self._client, "stats", None)
        return stats() if stats is not None else {}

    async def close(self) -> None:
        self.scheduler.reset()
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()

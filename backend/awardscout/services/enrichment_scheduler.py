"""Enrichment scheduler — visibility-first, batched award enrichment.

Itineraries visible on screen are fetched before hidden ones. One batch of
up to ``batch_size`` itineraries is in flight at a time, and batches are
spaced by a fixed delay to bound the request rate to the award provider.

All queue and set mutation happens in synchronous sections on the event
loop, so callers may enqueue, update visibility or reset while a batch is
awaiting the provider.
"""

import asyncio
import logging
from collections.abc import Callable, Collection, Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

from awardscout.config import settings
from awardscout.data.airlines import is_carrier_code
from awardscout.schemas.award import RawAwardOffer
from awardscout.schemas.itinerary import Itinerary
from awardscout.schemas.search import AwardSearchParams

logger = logging.getLogger(__name__)

VISIBLE_PRIORITY = 1
HIDDEN_PRIORITY = 2


class AwardFetcher(Protocol):
    async def fetch_awards(
        self,
        params: AwardSearchParams,
        carriers: Sequence[str],
    ) -> dict[str, list[RawAwardOffer]]: ...


@dataclass
class EnrichmentWorkItem:
    itinerary_id: str
    carrier_code: str
    is_visible: bool
    priority: int
    itinerary: Itinerary

    def set_visibility(self, visible: bool) -> bool:
        """Update visibility and priority. Returns True if the priority changed."""
        if visible == self.is_visible:
            return False
        self.is_visible = visible
        self.priority = VISIBLE_PRIORITY if visible else HIDDEN_PRIORITY
        return True


@dataclass(frozen=True)
class EnrichmentProgress:
    total: int
    completed: int
    in_progress: frozenset[str]
    failed: frozenset[str]


@dataclass(frozen=True)
class SchedulerStatus:
    queue_size: int
    enriched_count: int
    in_progress_count: int
    failed_count: int
    is_processing: bool


EnrichmentCallback = Callable[[str, list[RawAwardOffer]], None]
ProgressCallback = Callable[[EnrichmentProgress], None]


class EnrichmentScheduler:
    """Queues itineraries for award lookup and drives batched fetches."""

    def __init__(
        self,
        client: AwardFetcher,
        on_enrichment: EnrichmentCallback | None = None,
        on_progress: ProgressCallback | None = None,
        batch_size: int = settings.enrichment_batch_size,
        batch_delay: float = settings.enrichment_batch_delay_seconds,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self._client = client
        self._on_enrichment = on_enrichment
        self._on_progress = on_progress
        self._batch_size = batch_size
        self._batch_delay = batch_delay

        self._queue: list[EnrichmentWorkItem] = []
        self._queued: set[str] = set()
        self._enriched: set[str] = set()
        self._in_progress: set[str] = set()
        self._failed: set[str] = set()

        self._search_params: AwardSearchParams | None = None
        self._session = 0
        self._worker: asyncio.Task | None = None
        self._batch_active = False

    # ─── Public API ───

    def enqueue(
        self,
        itineraries: Iterable[Itinerary],
        search_params: AwardSearchParams,
        visible_ids: Collection[str] = (),
    ) -> int:
        """
        Queue itineraries for enrichment and start processing if idle.

        Itineraries already seen this session (queued, in flight, enriched
        or failed) are skipped, as are those whose first segment has no
        two-letter carrier code. Returns the number of items added.
        """
        self._search_params = search_params
        visible = set(visible_ids)

        added = 0
        for itinerary in itineraries:
            itinerary_id = itinerary.id
            if self._is_known(itinerary_id):
                continue

            carrier_code = itinerary.operating_carrier
            if not is_carrier_code(carrier_code):
                logger.debug(f"Skipping {itinerary_id}: invalid carrier code {carrier_code!r}")
                continue

            is_visible = itinerary_id in visible
            self._queue.append(EnrichmentWorkItem(
                itinerary_id=itinerary_id,
                carrier_code=carrier_code,
                is_visible=is_visible,
                priority=VISIBLE_PRIORITY if is_visible else HIDDEN_PRIORITY,
                itinerary=itinerary,
            ))
            self._queued.add(itinerary_id)
            added += 1

        self._sort_queue()
        logger.info(f"Enrichment queue: added {added} itineraries, queue size {len(self._queue)}")

        self._notify_progress()
        self._ensure_worker()
        return added

    def update_visibility(self, visible_ids: Collection[str]) -> bool:
        """Re-prioritise queued items. Returns True if the queue was reordered."""
        visible = set(visible_ids)
        changed = False
        for item in self._queue:
            if item.set_visibility(item.itinerary_id in visible):
                changed = True

        if changed:
            self._sort_queue()
            logger.info(f"Enrichment queue: visibility updated, {len(visible)} itineraries visible")
        return changed

    def reset(self) -> None:
        """Start a new session: drop all state and abandon any in-flight batch."""
        self._session += 1
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
        self._worker = None

        self._queue.clear()
        self._queued.clear()
        self._enriched.clear()
        self._in_progress.clear()
        self._failed.clear()
        self._search_params = None
        self._batch_active = False
        logger.info("Enrichment scheduler reset")
        self._notify_progress()

    def status(self) -> SchedulerStatus:
        return SchedulerStatus(
            queue_size=len(self._queue),
            enriched_count=len(self._enriched),
            in_progress_count=len(self._in_progress),
            failed_count=len(self._failed),
            is_processing=self._batch_active,
        )

    def progress(self) -> EnrichmentProgress:
        total = len(self._enriched) + len(self._in_progress) + len(self._failed) + len(self._queue)
        return EnrichmentProgress(
            total=total,
            completed=len(self._enriched),
            in_progress=frozenset(self._in_progress),
            failed=frozenset(self._failed),
        )

    def queued_ids(self) -> list[str]:
        """Queued itinerary ids in dispatch order."""
        return [item.itinerary_id for item in self._queue]

    async def wait_idle(self) -> None:
        """Wait until the queue has drained and no batch is running."""
        while True:
            worker = self._worker
            if worker is None or worker.done():
                return
            await asyncio.wait([worker])

    # ─── Internals ───

    def _is_known(self, itinerary_id: str) -> bool:
        return (
            itinerary_id in self._queued
            or itinerary_id in self._in_progress
            or itinerary_id in self._enriched
            or itinerary_id in self._failed
        )

    def _sort_queue(self) -> None:
        # list.sort is stable: arrival order is kept within a priority tier
        self._queue.sort(key=lambda item: item.priority)

    def _ensure_worker(self) -> None:
        if not self._queue:
            return
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(self._session))

    async def _run(self, session: int) -> None:
        while self._queue and session == self._session:
            await self._process_batch(session)
            if session != self._session:
                return
            if self._queue and self._batch_delay > 0:
                await asyncio.sleep(self._batch_delay)

        if session == self._session:
            logger.info(f"Enrichment queue drained: {len(self._enriched)} enriched, {len(self._failed)} failed")

    async def _process_batch(self, session: int) -> None:
        batch = self._queue[:self._batch_size]
        del self._queue[:self._batch_size]
        for item in batch:
            self._queued.discard(item.itinerary_id)
            self._in_progress.add(item.itinerary_id)

        carriers = list(dict.fromkeys(item.carrier_code for item in batch))
        self._batch_active = True
        self._notify_progress()
        logger.info(f"Enrichment batch: {len(batch)} itineraries, carriers {', '.join(carriers)}")

        results: dict[str, list[RawAwardOffer]] | None = None
        error: Exception | None = None
        try:
            if self._search_params is None:
                raise RuntimeError("No search parameters available")
            results = await self._client.fetch_awards(self._search_params, carriers)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e

        if session != self._session:
            logger.info("Discarding enrichment results from a superseded session")
            return

        self._batch_active = False
        if error is not None or results is None:
            logger.error(f"Enrichment batch failed for {', '.join(carriers)}: {error}")
            for item in batch:
                self._in_progress.discard(item.itinerary_id)
                self._failed.add(item.itinerary_id)
        else:
            for item in batch:
                self._in_progress.discard(item.itinerary_id)
                self._enriched.add(item.itinerary_id)
            self._publish(carriers, results)
            logger.info(f"Enrichment batch complete, {len(self._enriched)} itineraries enriched")

        self._notify_progress()

    def _publish(self, carriers: list[str], results: dict[str, list[RawAwardOffer]]) -> None:
        if self._on_enrichment is None:
            return
        for carrier in carriers:
            offers = results.get(carrier) or []
            if not offers:
                continue
            try:
                self._on_enrichment(carrier, offers)
            except Exception:
                logger.exception(f"Enrichment callback failed for {carrier}")

    def _notify_progress(self) -> None:
        if self._on_progress is None:
            return
        try:
            self._on_progress(self.progress())
        except Exception:
            logger.exception("Progress callback failed")

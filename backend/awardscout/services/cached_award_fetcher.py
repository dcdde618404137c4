"""Award fetcher with a request-cache layer in front of the provider."""

import logging
from collections.abc import Sequence
from typing import Any

from awardscout.schemas.award import RawAwardOffer
from awardscout.schemas.search import AwardSearchParams
from awardscout.services.enrichment_scheduler import AwardFetcher
from awardscout.services.request_cache import RedisRequestCache, RequestCache

logger = logging.getLogger(__name__)


class CachedAwardFetcher:
    """
    Reuses award results for an identical search within the cache TTL.

    Results are cached per search with one sub-entry per carrier code, so a
    batch only asks the provider for the carriers it has not seen yet.
    A carrier the provider returned nothing for is cached as an empty list.
    """

    def __init__(self, client: AwardFetcher, cache: RequestCache | RedisRequestCache):
        self._client = client
        self._cache = cache
        self.hits = 0
        self.misses = 0

    async def _lookup(self, params: AwardSearchParams, carrier: str) -> list[RawAwardOffer] | None:
        if isinstance(self._cache, RedisRequestCache):
            cached = await self._cache.get(params, sub_key=carrier)
        else:
            cached = self._cache.get(params, sub_key=carrier)
        if cached is None:
            return None
        return [RawAwardOffer.model_validate(o) for o in cached]

    async def _store(self, params: AwardSearchParams, carrier: str, offers: list[RawAwardOffer]):
        payload = [o.model_dump(mode="json") for o in offers]
        if isinstance(self._cache, RedisRequestCache):
            await self._cache.set_sub_result(params, carrier, payload)
        else:
            self._cache.set_sub_result(params, carrier, payload)

    async def fetch_awards(
        self,
        params: AwardSearchParams,
        carriers: Sequence[str],
    ) -> dict[str, list[RawAwardOffer]]:
        results: dict[str, list[RawAwardOffer]] = {}
        missing: list[str] = []
        for carrier in carriers:
            cached = await self._lookup(params, carrier)
            if cached is None:
                missing.append(carrier)
            else:
                results[carrier] = cached

        self.hits += len(carriers) - len(missing)
        self.misses += len(missing)
        if not missing:
            logger.debug(f"Award cache hit for {', '.join(carriers)}")
            return results

        fetched = await self._client.fetch_awards(params, missing)
        for carrier, offers in fetched.items():
            results[carrier] = [*results.get(carrier, []), *offers]
        for carrier in missing:
            await self._store(params, carrier, fetched.get(carrier, []))
        return results

    def stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {"hits": self.hits, "misses": self.misses}
        if isinstance(self._cache, RequestCache):
            stats.update(self._cache.stats())
        return stats

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()
        if isinstance(self._cache, RedisRequestCache):
            await self._cache.close()

"""Tests for the cache layer in front of the award provider."""

from datetime import date

import pytest

from awardscout.schemas.search import AwardSearchParams, SearchSlice
from awardscout.services.cached_award_fetcher import CachedAwardFetcher
from awardscout.services.request_cache import RequestCache


@pytest.mark.asyncio
async def test_repeat_search_is_served_from_cache(fake_client_cls, make_offer, search_params):
    offer = make_offer(carrier_code="QF", flight_number="QF11")
    client = fake_client_cls(results={"QF": [offer]})
    fetcher = CachedAwardFetcher(client, RequestCache())

    first = await fetcher.fetch_awards(search_params, ["QF", "AA"])
    second = await fetcher.fetch_awards(search_params, ["QF", "AA"])

    assert client.calls == [["QF", "AA"]]
    assert first == {"QF": [offer]}
    assert set(second) == {"QF", "AA"}
    assert [o.model_dump() for o in second["QF"]] == [offer.model_dump()]
    assert second["AA"] == []


@pytest.mark.asyncio
async def test_only_uncached_carriers_are_fetched(fake_client_cls, make_offer, search_params):
    client = fake_client_cls(results={"QF": [make_offer(carrier_code="QF")]})
    fetcher = CachedAwardFetcher(client, RequestCache())

    await fetcher.fetch_awards(search_params, ["QF"])
    await fetcher.fetch_awards(search_params, ["QF", "UA"])

    assert client.calls == [["QF"], ["UA"]]
    assert fetcher.stats() == {"hits": 1, "misses": 2, "total_keys": 1, "total_sub_entries": 2}


@pytest.mark.asyncio
async def test_different_search_is_not_shared(fake_client_cls, search_params):
    client = fake_client_cls()
    fetcher = CachedAwardFetcher(client, RequestCache())
    other = AwardSearchParams(
        slices=[SearchSlice(origins=["MEL"], destinations=["LAX"], depart_date=date(2025, 11, 3))],
        cabin="BUSINESS",
    )

    await fetcher.fetch_awards(search_params, ["QF"])
    await fetcher.fetch_awards(other, ["QF"])

    assert len(client.calls) == 2


@pytest.mark.asyncio
async def test_provider_failure_is_not_cached(fake_client_cls, search_params):
    client = fake_client_cls(error=RuntimeError("provider down"))
    cache = RequestCache()
    fetcher = CachedAwardFetcher(client, cache)

    with pytest.raises(RuntimeError):
        await fetcher.fetch_awards(search_params, ["QF"])

    assert cache.stats()["total_keys"] == 0

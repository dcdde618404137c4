"""Tests for RequestCache and its Redis-backed variant."""

from datetime import date

import pytest

from awardscout.config import settings
from awardscout.schemas.search import AwardSearchParams, FakeRoundTripRequest, SearchPageRequest, SearchSlice
from awardscout.services import request_cache as request_cache_module
from awardscout.services.request_cache import (
    TTL_SEARCH_PAGES,
    RedisRequestCache,
    RequestCache,
    build_request_cache,
    make_cache_key,
)

MINUTE = 60


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FakeRedis:
    """Minimal stand-in for a redis.asyncio client."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.expiry: dict[str, int] = {}
        self.closed = False

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.expiry[key] = ex

    async def ttl(self, key):
        return self.expiry.get(key, -2)

    async def delete(self, key):
        self.store.pop(key, None)

    async def aclose(self):
        self.closed = True


class BrokenRedis(FakeRedis):
    async def get(self, key):
        raise ConnectionError("connection reset")

    async def set(self, key, value, ex=None):
        raise ConnectionError("connection reset")


def _frt(return_airports=("JFK", "LAX"), **overrides) -> FakeRoundTripRequest:
    fields = {
        "origin": "SYD",
        "destination": "SFO",
        "return_date": date(2025, 11, 17),
        "return_airports": list(return_airports),
    }
    fields.update(overrides)
    return FakeRoundTripRequest(**fields)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cache(clock):
    return RequestCache(ttl_seconds=30 * MINUTE, clock=clock)


class TestCacheKey:
    def test_list_order_does_not_affect_key(self):
        assert make_cache_key({"return_airports": ["JFK", "LAX"]}) == make_cache_key(
            {"return_airports": ["LAX", "JFK"]}
        )

    def test_nested_and_model_lists_are_normalised(self):
        a = _frt(("JFK", "LAX"), booking_classes=["J", "C"])
        b = _frt(("LAX", "JFK"), booking_classes=["C", "J"])

        assert make_cache_key(a) == make_cache_key(b)

    def test_field_values_change_key(self):
        assert make_cache_key(_frt(cabin="BUSINESS")) != make_cache_key(_frt(cabin="COACH"))

    def test_model_and_mapping_serialise_alike(self):
        request = _frt()

        assert make_cache_key(request) == make_cache_key(request.model_dump(mode="json"))

    def test_slice_order_is_significant(self):
        outbound = SearchSlice(origins=["SYD"], destinations=["LAX"], depart_date=date(2025, 11, 3))
        inbound = SearchSlice(origins=["LAX"], destinations=["SYD"], depart_date=date(2025, 11, 17))

        forward = AwardSearchParams(slices=[outbound, inbound])
        reversed_trip = AwardSearchParams(slices=[inbound, outbound])

        assert make_cache_key(forward) != make_cache_key(reversed_trip)


class TestRequestCache:
    def test_hit_before_ttl_miss_after(self, cache, clock):
        cache.set(_frt(), {"JFK": [1], "LAX": [2]})

        clock.advance(29 * MINUTE)
        assert cache.get(_frt()) == {"JFK": [1], "LAX": [2]}

        clock.advance(2 * MINUTE)
        assert cache.get(_frt()) is None

    def test_expired_entry_is_deleted_on_read(self, cache, clock):
        cache.set(_frt(), {"JFK": [1]})
        clock.advance(31 * MINUTE)

        assert cache.get(_frt(), sub_key="JFK") is None
        assert cache.stats() == {"total_keys": 0, "total_sub_entries": 0}

    def test_lookup_with_reordered_request(self, cache):
        cache.set(_frt(("JFK", "LAX")), {"JFK": [1]})

        assert cache.get(_frt(("LAX", "JFK")), sub_key="JFK") == [1]

    def test_sub_key_lookup(self, cache):
        cache.set(_frt(), {"JFK": ["a"], "LAX": ["b"]})

        assert cache.get(_frt(), sub_key="LAX") == ["b"]
        assert cache.get(_frt(), sub_key="BOS") is None

    def test_miss_for_unknown_request(self, cache):
        assert cache.get(_frt()) is None

    def test_set_overwrites_with_fresh_timestamp(self, cache, clock):
        cache.set(_frt(), {"JFK": [1]})
        clock.advance(20 * MINUTE)
        cache.set(_frt(), {"LAX": [2]})
        clock.advance(20 * MINUTE)

        assert cache.get(_frt()) == {"LAX": [2]}

    def test_sub_result_keeps_entry_timestamp(self, cache, clock):
        page_request = SearchPageRequest(origin="SYD", destination="LAX", depart_date=date(2025, 11, 3))
        cache.set_sub_result(page_request, "1", ["page one"])
        clock.advance(20 * MINUTE)
        cache.set_sub_result(page_request, "2", ["page two"])

        assert cache.cached_sub_keys(page_request) == ["1", "2"]

        clock.advance(11 * MINUTE)
        assert cache.get(page_request, sub_key="2") is None
        assert cache.cached_sub_keys(page_request) == []

    def test_search_pages_use_longer_ttl(self, clock):
        pages = RequestCache(ttl_seconds=TTL_SEARCH_PAGES, clock=clock)
        page_request = SearchPageRequest(origin="SYD", destination="LAX", depart_date=date(2025, 11, 3))
        pages.set(page_request, {"1": ["page one"]})

        clock.advance(45 * MINUTE)
        assert pages.get(page_request, sub_key="1") == ["page one"]

        clock.advance(16 * MINUTE)
        assert pages.get(page_request) is None

    def test_clear_and_stats(self, cache):
        cache.set(_frt(), {"JFK": [1], "LAX": [2]})
        cache.set(_frt(origin="MEL"), {"JFK": [3]})

        assert cache.stats() == {"total_keys": 2, "total_sub_entries": 3}

        cache.clear(_frt())
        assert cache.get(_frt()) is None
        assert cache.stats()["total_keys"] == 1

        cache.clear_all()
        assert cache.stats() == {"total_keys": 0, "total_sub_entries": 0}


class TestRedisRequestCache:
    @pytest.mark.asyncio
    async def test_round_trip_with_expiry(self):
        client = FakeRedis()
        cache = RedisRequestCache(ttl_seconds=1800, client=client)

        assert await cache.set(_frt(), {"JFK": [1]}) is True
        [key] = client.store

        assert key.startswith("reqcache:")
        assert client.expiry[key] == 1800
        assert await cache.get(_frt(("LAX", "JFK"))) == {"JFK": [1]}
        assert await cache.get(_frt(), sub_key="JFK") == [1]

    @pytest.mark.asyncio
    async def test_sub_result_keeps_remaining_ttl(self):
        client = FakeRedis()
        cache = RedisRequestCache(ttl_seconds=1800, client=client)
        await cache.set(_frt(), {"JFK": [1]})
        [key] = client.store
        client.expiry[key] = 600

        assert await cache.set_sub_result(_frt(), "LAX", [2]) is True

        assert client.expiry[key] == 600
        assert await cache.get(_frt()) == {"JFK": [1], "LAX": [2]}

    @pytest.mark.asyncio
    async def test_errors_degrade_to_miss(self):
        cache = RedisRequestCache(client=BrokenRedis())

        assert await cache.get(_frt()) is None
        assert await cache.set(_frt(), {"JFK": [1]}) is False

    @pytest.mark.asyncio
    async def test_unreachable_server_disables_cache(self, monkeypatch):
        class Unreachable(FakeRedis):
            async def ping(self):
                raise ConnectionError("refused")

        monkeypatch.setattr(request_cache_module.redis, "from_url", lambda *a, **kw: Unreachable())
        cache = RedisRequestCache(redis_url="redis://cache.invalid:6379/0")

        assert await cache.get(_frt()) is None
        assert await cache.set(_frt(), {}) is False

    @pytest.mark.asyncio
    async def test_clear_and_close(self):
        client = FakeRedis()
        cache = RedisRequestCache(client=client)
        await cache.set(_frt(), {"JFK": [1]})

        assert await cache.clear(_frt()) is True
        assert client.store == {}

        await cache.close()
        assert client.closed is True


def test_backend_selection(monkeypatch):
    assert isinstance(build_request_cache(), RequestCache)

    monkeypatch.setattr(settings, "request_cache_backend", "redis")
    assert isinstance(build_request_cache(), RedisRequestCache)

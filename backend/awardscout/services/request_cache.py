"""Request cache — TTL-keyed store for expensive derived search results.

Entries are keyed by a canonical serialisation of the request, so two
requests that differ only in the order of list fields share one entry.
TTL is absolute from write time and checked lazily on read.
"""

import json
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import redis.asyncio as redis
from pydantic import BaseModel

from awardscout.config import settings

logger = logging.getLogger(__name__)

TTL_REQUEST_RESULTS = settings.request_cache_ttl_seconds  # 30 minutes
TTL_SEARCH_PAGES = settings.search_cache_ttl_seconds      # 1 hour


def _canonical(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(k): _canonical(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        items = [_canonical(v) for v in value]
        # Lists of records (e.g. slices) are ordered; scalar lists are sets.
        if any(isinstance(v, (dict, list)) for v in items):
            return items
        return sorted(items, key=lambda v: json.dumps(v, default=str))
    return value


def make_cache_key(params: BaseModel | Mapping[str, Any]) -> str:
    """Serialise request params into an order-independent cache key."""
    if isinstance(params, BaseModel):
        data = params.model_dump(mode="json")
    else:
        data = dict(params)
    return json.dumps(_canonical(data), sort_keys=True, default=str, separators=(",", ":"))


@dataclass
class CacheEntry:
    created_at: float
    results: dict[str, Any] = field(default_factory=dict)


class RequestCache:
    """In-memory request cache with lazy expiry."""

    def __init__(
        self,
        ttl_seconds: float = TTL_REQUEST_RESULTS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    def _live_entry(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        age = self._clock() - entry.created_at
        if age > self.ttl_seconds:
            logger.info(f"Request cache expired (age: {round(age)}s): {key[:100]}")
            del self._entries[key]
            return None
        return entry

    def get(self, params: BaseModel | Mapping[str, Any], sub_key: str | None = None) -> Any | None:
        """
        Return the cached payload for ``params``, or one sub-entry of it.

        Returns None on miss, on expiry, or when ``sub_key`` is absent.
        """
        key = make_cache_key(params)
        entry = self._live_entry(key)
        if entry is None:
            logger.debug(f"Request cache miss: {key[:100]}")
            return None
        if sub_key is None:
            logger.debug(f"Request cache hit: {key[:100]}")
            return entry.results
        result = entry.results.get(sub_key)
        if result is not None:
            logger.debug(f"Request cache hit for {sub_key}: {key[:100]}")
        return result

    def set(self, params: BaseModel | Mapping[str, Any], results: Mapping[str, Any]) -> None:
        """Store the full payload, replacing any prior entry for the same request."""
        key = make_cache_key(params)
        self._entries[key] = CacheEntry(created_at=self._clock(), results=dict(results))
        logger.debug(f"Request cache set ({len(results)} sub-entries): {key[:100]}")

    def set_sub_result(self, params: BaseModel | Mapping[str, Any], sub_key: str, result: Any) -> None:
        """Add one sub-entry to a live entry, keeping its original timestamp."""
        key = make_cache_key(params)
        entry = self._live_entry(key)
        if entry is None:
            entry = CacheEntry(created_at=self._clock())
            self._entries[key] = entry
        entry.results[sub_key] = result

    def cached_sub_keys(self, params: BaseModel | Mapping[str, Any]) -> list[str]:
        entry = self._live_entry(make_cache_key(params))
        if entry is None:
            return []
        return sorted(entry.results)

    def clear(self, params: BaseModel | Mapping[str, Any]) -> None:
        self._entries.pop(make_cache_key(params), None)

    def clear_all(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, int]:
        return {
            "total_keys": len(self._entries),
            "total_sub_entries": sum(len(e.results) for e in self._entries.values()),
        }


class RedisRequestCache:
    """Redis-backed variant with the same key function. Expiry is delegated to Redis."""

    def __init__(
        self,
        redis_url: str = settings.redis_url,
        ttl_seconds: int = TTL_REQUEST_RESULTS,
        namespace: str = "reqcache",
        client: redis.Redis | None = None,
    ):
        self.ttl_seconds = ttl_seconds
        self._redis_url = redis_url
        self._namespace = namespace
        self._redis = client

    async def _get_redis(self) -> redis.Redis | None:
        if self._redis is None:
            try:
                self._redis = redis.from_url(
                    self._redis_url,
                    encoding="utf-8",
                    decode_responses=True,
                )
                await self._redis.ping()
            except Exception as e:
                logger.warning(f"Redis unavailable, request cache disabled: {e}")
                self._redis = None
                return None
        return self._redis

    def _key(self, params: BaseModel | Mapping[str, Any]) -> str:
        return f"{self._namespace}:{make_cache_key(params)}"

    async def get(self, params: BaseModel | Mapping[str, Any], sub_key: str | None = None) -> Any | None:
        """Get a cached payload. Returns None on miss or error."""
        try:
            r = await self._get_redis()
            if r is None:
                return None
            raw = await r.get(self._key(params))
            if raw is None:
                return None
            results = json.loads(raw)
        except Exception as e:
            logger.warning(f"Request cache read failed: {e}")
            return None
        if sub_key is None:
            return results
        return results.get(sub_key)

    async def set(self, params: BaseModel | Mapping[str, Any], results: Mapping[str, Any]) -> bool:
        """Store a payload with TTL. Returns False on error."""
        try:
            r = await self._get_redis()
            if r is None:
                return False
            await r.set(self._key(params), json.dumps(dict(results), default=str), ex=self.ttl_seconds)
            return True
        except Exception as e:
            logger.warning(f"Request cache write failed: {e}")
            return False

    async def set_sub_result(self, params: BaseModel | Mapping[str, Any], sub_key: str, result: Any) -> bool:
        """Merge one sub-entry into the stored payload without extending its expiry."""
        try:
            r = await self._get_redis()
            if r is None:
                return False
            key = self._key(params)
            raw = await r.get(key)
            results = json.loads(raw) if raw else {}
            results[sub_key] = result
            remaining = await r.ttl(key) if raw else -1
            ttl = remaining if remaining and remaining > 0 else self.ttl_seconds
            await r.set(key, json.dumps(results, default=str), ex=ttl)
            return True
        except Exception as e:
            logger.warning(f"Request cache write failed: {e}")
            return False

    async def clear(self, params: BaseModel | Mapping[str, Any]) -> bool:
        try:
            r = await self._get_redis()
            if r is None:
                return False
            await r.delete(self._key(params))
            return True
        except Exception:
            return False

    async def close(self):
        if self._redis:
            await self._redis.aclose()
            self._redis = None


def build_request_cache(
    ttl_seconds: int = TTL_REQUEST_RESULTS,
    namespace: str = "reqcache",
) -> RequestCache | RedisRequestCache:
    """Pick the configured cache backend."""
    if settings.request_cache_backend == "redis":
        return RedisRequestCache(ttl_seconds=ttl_seconds, namespace=namespace)
    return RequestCache(ttl_seconds=ttl_seconds)

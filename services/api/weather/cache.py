"""
Weather cache — key/value store with per-entry TTL.

Two interchangeable backends sit behind one contract:

  InMemoryCacheStore   process-local dict, expiry checked lazily on read
  RedisCacheStore      redis.asyncio client, expiry delegated to SET ... EX

The backend is picked once at startup (settings.cache_backend).

Values are opaque serialised-JSON strings; TTLs are whole seconds.

Graceful degradation: the public get/set/delete/clear never raise. Any
backend failure is logged and turned into a miss (get) or a no-op (the
rest), so a lookup never fails because the cache is down.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from services.api.weather.errors import CacheUnavailable

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: str
    expires_at: float  # epoch seconds


class CacheStore(ABC):
    """
    Cache capability: get, set, delete, clear.

    Subclasses implement the underscore methods and may raise freely;
    the public methods here absorb every failure.
    """

    backend_name = "abstract"

    async def get(self, key: str) -> str | None:
        """Return the cached value for key, or None on miss / unavailable."""
        try:
            value = await self._get(key)
        except Exception:
            logger.warning("Weather cache GET failed for key=%s", key, exc_info=True)
            return None
        if value is None:
            logger.debug("Weather cache miss: %s", key)
        else:
            logger.debug("Weather cache hit: %s", key)
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        """Store value under key for ttl_seconds. Best-effort."""
        try:
            await self._set(key, value, int(ttl_seconds))
            logger.debug("Weather cached: key=%s ttl=%ds", key, ttl_seconds)
        except Exception:
            logger.warning("Weather cache SET failed for key=%s", key, exc_info=True)

    async def delete(self, key: str) -> None:
        """Evict a single entry. Best-effort."""
        try:
            await self._delete(key)
            logger.debug("Weather cache invalidated: %s", key)
        except Exception:
            logger.warning("Weather cache DELETE failed for key=%s", key, exc_info=True)

    async def clear(self) -> None:
        """Drop every entry. Best-effort."""
        try:
            await self._clear()
        except Exception:
            logger.warning("Weather cache CLEAR failed", exc_info=True)

    @abstractmethod
    async def _get(self, key: str) -> str | None: ...

    @abstractmethod
    async def _set(self, key: str, value: str, ttl_seconds: int) -> None: ...

    @abstractmethod
    async def _delete(self, key: str) -> None: ...

    @abstractmethod
    async def _clear(self) -> None: ...


class InMemoryCacheStore(CacheStore):
    """
    Dict-backed cache for single-process deployments and tests.

    No size bound and no background sweep: an entry past its expiry is
    treated as absent and removed on the next read of its key.
    """

    backend_name = "memory"

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._clock = clock

    def __len__(self) -> int:
        return len(self._entries)

    async def _get(self, key: str) -> str | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() >= entry.expires_at:
            self._entries.pop(key, None)
            return None
        return entry.value

    async def _set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._entries[key] = CacheEntry(value=value, expires_at=self._clock() + ttl_seconds)

    async def _delete(self, key: str) -> None:
        self._entries.pop(key, None)

    async def _clear(self) -> None:
        self._entries.clear()


class RedisCacheStore(CacheStore):
    """
    Redis-backed cache.

    Usage:
        cache = RedisCacheStore(redis.asyncio.from_url(url, decode_responses=True))
        raw = await cache.get("current:tokyo:metric")
    """

    backend_name = "redis"

    def __init__(self, redis) -> None:
        """
        Args:
            redis: An async Redis client (redis.asyncio compatible).
                   May be None — every operation then degrades to a miss / no-op.
        """
        self._redis = redis

    def _client(self):
        if self._redis is None:
            raise CacheUnavailable("Redis client not configured")
        return self._redis

    async def _get(self, key: str) -> str | None:
        raw = await self._client().get(key)
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return raw

    async def _set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self._client().set(key, value, ex=ttl_seconds)

    async def _delete(self, key: str) -> None:
        await self._client().delete(key)

    async def _clear(self) -> None:
        await self._client().flushdb()


def create_cache_store(
    backend: str,
    redis=None,
    clock: Callable[[], float] = time.time,
) -> CacheStore:
    """Build the cache backend named by settings.cache_backend."""
    if backend == "redis":
        return RedisCacheStore(redis)
    if backend == "memory":
        return InMemoryCacheStore(clock=clock)
    raise ValueError(f"Unknown cache backend: {backend!r}")

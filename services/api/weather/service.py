"""
WeatherService — read-through cache in front of OpenWeatherMap, with city
popularity tracking riding along every lookup.

Budget: the free tier is rate-limited, so repeat lookups are served from
cache:
  current conditions  TTL 300s   key current:{city}[,{country}]:{units}
  forecast            TTL 900s   key forecast:{city}[,{country}]:{units}

Lookup flow (get_current / get_forecast):
  1. Build the cache key (case- and whitespace-insensitive).
  2. Cache read. Cache failures already surface as a miss.
  3. Hit: decode, record the search without bumping the count, return
     cache=True. A corrupt entry is evicted and treated as a miss.
  4. Miss: call upstream through BackoffFetcher.
  5. Success: write-through (best-effort), record the search with a count
     bump, return cache=False.
  6. Failure: the typed error from BackoffFetcher propagates. No fallback
     payload is synthesised.

lookup_city runs both kinds concurrently and records popularity once for the
pair; a failure in either half cancels the other.

Concurrent identical lookups may both miss and both call upstream; the
later cache write wins and either payload is valid for the TTL window.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx

from services.api.cities.store import CityRecord, CityStore
from services.api.weather.backoff import BackoffFetcher
from services.api.weather.cache import CacheStore
from services.api.weather.client import OpenWeatherMapClient
from services.api.weather.errors import LookupTimeout, UpstreamError
from services.api.weather.keys import (
    DEFAULT_UNITS,
    KIND_CURRENT,
    KIND_FORECAST,
    build_cache_key,
    display_name,
)
from services.api.weather.popularity import PopularityTracker

logger = logging.getLogger(__name__)

_CURRENT_TTL_S = 300
_FORECAST_TTL_S = 900
_LOOKUP_TIMEOUT_S = 25.0


@dataclass
class FetchResult:
    payload: dict[str, Any]
    cache: bool

    def to_dict(self) -> dict[str, Any]:
        """Provider payload with the cache flag merged in."""
        return {**self.payload, "cache": self.cache}


@dataclass
class CityLookup:
    city: str
    country: str | None
    state: str | None
    current: FetchResult
    forecast: FetchResult

    def to_dict(self) -> dict[str, Any]:
        return {
            "city": self.city,
            "country": self.country,
            "state": self.state,
            "current": self.current.to_dict(),
            "forecast": self.forecast.to_dict(),
        }


def _payload_country(kind: str, payload: dict[str, Any]) -> str | None:
    """
    Country code reported by the provider.

    /weather carries it at sys.country, /forecast at city.country.
    """
    section = payload.get("sys" if kind == KIND_CURRENT else "city")
    if isinstance(section, dict):
        country = section.get("country")
        if isinstance(country, str) and country:
            return country
    return None


def _decode(raw: str) -> dict[str, Any] | None:
    """Decode a cached value; None means the entry is unusable."""
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        return None
    return payload if isinstance(payload, dict) else None


class WeatherService:
    """
    Usage:
        service = WeatherService(
            client=OpenWeatherMapClient(api_key="..."),
            cache=InMemoryCacheStore(),
            store=InMemoryCityStore(),
        )
        result = await service.get_current("London", "GB")
        result.cache  # False on first call, True within 300s
    """

    def __init__(
        self,
        client: OpenWeatherMapClient,
        cache: CacheStore,
        store: CityStore,
        fetcher: BackoffFetcher | None = None,
        tracker: PopularityTracker | None = None,
        current_ttl_s: int = _CURRENT_TTL_S,
        forecast_ttl_s: int = _FORECAST_TTL_S,
        lookup_timeout_s: float = _LOOKUP_TIMEOUT_S,
        default_units: str = DEFAULT_UNITS,
        suggest_min_query_length: int = 2,
    ) -> None:
        self._client = client
        self._cache = cache
        self._store = store
        self._fetcher = fetcher or BackoffFetcher()
        self._tracker = tracker or PopularityTracker(store)
        self.current_ttl_s = current_ttl_s
        self.forecast_ttl_s = forecast_ttl_s
        self.lookup_timeout_s = lookup_timeout_s
        self.default_units = default_units
        self.suggest_min_query_length = suggest_min_query_length

    @classmethod
    def from_settings(cls, settings, client, cache, store, clock=None) -> "WeatherService":
        """Wire a service from a Settings instance."""
        fetcher = BackoffFetcher(
            max_retries=settings.weather_max_retries,
            base_delay=settings.weather_retry_base_delay_s,
            timeout_s=settings.weather_api_timeout_s,
        )
        tracker = PopularityTracker(store, clock=clock) if clock else PopularityTracker(store)
        return cls(
            client=client,
            cache=cache,
            store=store,
            fetcher=fetcher,
            tracker=tracker,
            current_ttl_s=settings.weather_current_ttl_s,
            forecast_ttl_s=settings.weather_forecast_ttl_s,
            lookup_timeout_s=settings.city_lookup_timeout_s,
            default_units=settings.weather_default_units,
            suggest_min_query_length=settings.suggest_min_query_length,
        )

    # -- Weather lookups -----------------------------------------------------

    async def get_current(
        self, city: str, country: str | None = None, units: str | None = None
    ) -> FetchResult:
        """Current conditions for a city, served from cache for up to 5 minutes."""
        return await self._read_through(
            KIND_CURRENT, city, country, units, self._client.current, self.current_ttl_s
        )

    async def get_forecast(
        self, city: str, country: str | None = None, units: str | None = None
    ) -> FetchResult:
        """Forecast for a city, served from cache for up to 15 minutes."""
        return await self._read_through(
            KIND_FORECAST, city, country, units, self._client.forecast, self.forecast_ttl_s
        )

    async def lookup_city(
        self,
        city: str,
        country: str | None = None,
        units: str | None = None,
        timeout_s: float | None = None,
    ) -> CityLookup:
        """
        Current conditions and forecast together, bounded by one ceiling.

        Counts as a single search: popularity is recorded once, after both
        halves succeed, and only bumps the count if either half went upstream.
        A failing half cancels the other.

        Raises:
            LookupTimeout: both lookups did not finish within timeout_s.
            WeatherServiceError: either lookup failed.
        """
        ceiling = timeout_s or self.lookup_timeout_s
        current_task = asyncio.ensure_future(self._read_through(
            KIND_CURRENT, city, country, units, self._client.current, self.current_ttl_s,
            track=False,
        ))
        forecast_task = asyncio.ensure_future(self._read_through(
            KIND_FORECAST, city, country, units, self._client.forecast, self.forecast_ttl_s,
            track=False,
        ))
        tasks = (current_task, forecast_task)

        try:
            await asyncio.wait(tasks, timeout=ceiling, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            unfinished = [task for task in tasks if not task.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)

        failures = [
            task.exception() for task in tasks
            if not task.cancelled() and task.exception() is not None
        ]
        if failures:
            raise failures[0]
        if any(task.cancelled() for task in tasks):
            logger.warning("City lookup for %r exceeded %.1fs ceiling", city, ceiling)
            raise LookupTimeout(ceiling)

        current, forecast = current_task.result(), forecast_task.result()
        inferred_state = _payload_country(KIND_CURRENT, current.payload) or _payload_country(
            KIND_FORECAST, forecast.payload
        )
        record = await self._tracker.record(
            city,
            country,
            is_cache_hit=current.cache and forecast.cache,
            state=inferred_state,
        )

        return CityLookup(
            city=current.payload.get("name") or display_name(city),
            country=inferred_state,
            state=record.state if record is not None else inferred_state,
            current=current,
            forecast=forecast,
        )

    async def _read_through(
        self,
        kind: str,
        city: str,
        country: str | None,
        units: str | None,
        request: Callable[[str, str | None, str], Awaitable[httpx.Response]],
        ttl_s: int,
        track: bool = True,
    ) -> FetchResult:
        units = (units or self.default_units).strip().lower()
        key = build_cache_key(kind, city, country, units)

        cached = await self._cache.get(key)
        if cached is not None:
            payload = _decode(cached)
            if payload is not None:
                if track:
                    await self._tracker.record(
                        city, country, is_cache_hit=True, state=_payload_country(kind, payload)
                    )
                return FetchResult(payload=payload, cache=True)
            logger.warning("Corrupt weather cache entry at key=%s; refetching", key)
            await self._cache.delete(key)

        response = await self._fetcher.fetch(lambda: request(city, country, units), city=city)
        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError(f"Weather provider returned invalid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise UpstreamError("Weather provider returned an unexpected payload shape")

        await self._cache.set(key, json.dumps(payload), ttl_s)
        if track:
            await self._tracker.record(
                city, country, is_cache_hit=False, state=_payload_country(kind, payload)
            )
        return FetchResult(payload=payload, cache=False)

    # -- City directory ------------------------------------------------------

    async def suggest_cities(self, query: str | None, limit: int = 10) -> list[CityRecord]:
        """Cities matching query, most searched first. Short queries yield nothing."""
        if not query or len(query.strip()) < self.suggest_min_query_length:
            return []
        return await self._store.search_cities(query.strip(), limit)

    async def popular_cities(self, limit: int = 10) -> list[CityRecord]:
        return await self._store.list_by_popularity(limit)

    async def recent_cities(self, limit: int = 10) -> list[CityRecord]:
        return await self._store.list_by_recency(limit)

    async def add_city(self, name: str, state: str | None = None) -> tuple[CityRecord, bool]:
        """
        Register a city without counting it as a search.

        Returns (record, created). An existing city is returned untouched.
        """
        name = display_name(name)
        if not name:
            raise ValueError("City name is required")

        existing = await self._store.find_city_by_name(name)
        if existing is not None:
            return existing, False

        state = (state or "").strip() or None
        record = await self._store.upsert_city(name, state, increment=0)
        return record, True

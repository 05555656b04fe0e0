"""
Weather data access package.

OpenWeatherMap behind a read-through cache (in-memory or Redis) with
bounded retry, plus city popularity tracking on every lookup.
"""

from services.api.weather.backoff import BackoffFetcher
from services.api.weather.cache import (
    CacheStore,
    InMemoryCacheStore,
    RedisCacheStore,
    create_cache_store,
)
from services.api.weather.client import OpenWeatherMapClient
from services.api.weather.popularity import PopularityTracker
from services.api.weather.service import CityLookup, FetchResult, WeatherService

__all__ = [
    "BackoffFetcher",
    "CacheStore",
    "CityLookup",
    "FetchResult",
    "InMemoryCacheStore",
    "OpenWeatherMapClient",
    "PopularityTracker",
    "RedisCacheStore",
    "WeatherService",
    "create_cache_store",
]

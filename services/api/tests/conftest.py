"""
Shared test fixtures for the Skycast API test suite.

Provides:
- a controllable clock so TTL and timestamp tests never sleep
- an httpx.MockTransport-backed OpenWeatherMap upstream that counts calls
- WeatherService wired with in-memory cache + city store
- async FastAPI test client (no external services needed)
"""

import os
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

# Ensure test env vars before any app imports
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DATABASE_URL", "")
os.environ.setdefault("CACHE_BACKEND", "memory")
os.environ.setdefault("OPENWEATHERMAP_API_KEY", "test-key-123")
os.environ.setdefault("SENTRY_DSN", "")

from services.api.cities.store import InMemoryCityStore  # noqa: E402
from services.api.weather.backoff import BackoffFetcher  # noqa: E402
from services.api.weather.cache import InMemoryCacheStore  # noqa: E402
from services.api.weather.client import OpenWeatherMapClient  # noqa: E402
from services.api.weather.popularity import PopularityTracker  # noqa: E402
from services.api.weather.service import WeatherService  # noqa: E402

OWM_BASE = "https://owm.test/data/2.5"


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, start: float = 1_760_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------------------------------------------------------------------------
# Payload factories
# ---------------------------------------------------------------------------

def make_owm_current(name: str = "London", country: str = "GB", temp: float = 14.2) -> dict[str, Any]:
    """Factory for OpenWeatherMap /weather response dicts."""
    return {
        "weather": [{"id": 803, "main": "Clouds", "description": "broken clouds"}],
        "main": {"temp": temp, "feels_like": temp - 1.5, "humidity": 72},
        "sys": {"country": country},
        "name": name,
        "cod": 200,
    }


def make_owm_forecast(name: str = "London", country: str = "GB") -> dict[str, Any]:
    """Factory for OpenWeatherMap /forecast response dicts."""
    return {
        "cod": "200",
        "cnt": 2,
        "list": [
            {"dt": 1760004000, "main": {"temp": 13.1}, "weather": [{"id": 500, "main": "Rain"}]},
            {"dt": 1760014800, "main": {"temp": 12.4}, "weather": [{"id": 801, "main": "Clouds"}]},
        ],
        "city": {"name": name, "country": country},
    }


class FakeUpstream:
    """
    OpenWeatherMap stand-in mounted on httpx.MockTransport.

    Records every request. Responses default to 200 with factory payloads;
    queue overrides per endpoint with `respond(endpoint, *responses)`.
    """

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self._queued: dict[str, list[httpx.Response | Exception]] = {
            "weather": [],
            "forecast": [],
        }

    def respond(self, endpoint: str, *responses: httpx.Response | Exception) -> "FakeUpstream":
        for response in responses:
            self._queued[endpoint].append(response)
        return self

    def calls(self, endpoint: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path.endswith(f"/{endpoint}")]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        endpoint = request.url.path.rsplit("/", 1)[-1]
        city = request.url.params.get("q", "").split(",")[0]
        if self._queued[endpoint]:
            queued = self._queued[endpoint].pop(0)
            if isinstance(queued, Exception):
                raise queued
            return queued
        if endpoint == "weather":
            return httpx.Response(200, json=make_owm_current(name=city.title() or "London"))
        return httpx.Response(200, json=make_owm_forecast(name=city.title() or "London"))


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def mock_redis():
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.set = AsyncMock()
    redis.delete = AsyncMock()
    redis.flushdb = AsyncMock()
    return redis


@pytest.fixture
def upstream():
    return FakeUpstream()


@pytest.fixture
async def owm_client(upstream):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(upstream.handler))
    client = OpenWeatherMapClient(api_key="test-key-123", base_url=OWM_BASE, http_client=http_client)
    yield client
    await http_client.aclose()


@pytest.fixture
def cache(clock):
    return InMemoryCacheStore(clock=clock)


@pytest.fixture
def city_store():
    return InMemoryCityStore()


@pytest.fixture
def sleep_calls():
    """AsyncMock standing in for asyncio.sleep; inspect .await_args_list for delays."""
    return AsyncMock()


@pytest.fixture
def fetcher(sleep_calls):
    return BackoffFetcher(max_retries=2, base_delay=1.0, timeout_s=10.0, sleep=sleep_calls)


@pytest.fixture
def weather_service(owm_client, cache, city_store, fetcher, clock):
    return WeatherService(
        client=owm_client,
        cache=cache,
        store=city_store,
        fetcher=fetcher,
        tracker=PopularityTracker(city_store, clock=clock),
    )


@pytest.fixture
async def app(weather_service, cache, city_store):
    """FastAPI app with the test WeatherService injected (lifespan not run)."""
    from services.api.main import app as _app
    from services.api.config import settings

    _app.state.settings = settings
    _app.state.cache = cache
    _app.state.city_store = city_store
    _app.state.weather_service = weather_service
    return _app


@pytest.fixture
async def client(app):
    """Async HTTP client bound to the test app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

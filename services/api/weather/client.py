"""
OpenWeatherMap HTTP client.

Two read-only endpoints:
  GET {base}/weather   current conditions
  GET {base}/forecast  5 day / 3 hour forecast

Both take {q: "city[,country]", appid, units}. Responses are returned raw;
status handling and retries belong to BackoffFetcher.
"""

from __future__ import annotations

import httpx

from services.api.weather.errors import UpstreamError
from services.api.weather.keys import DEFAULT_UNITS, build_query

_OWM_BASE = "https://api.openweathermap.org/data/2.5"


class OpenWeatherMapClient:
    """
    Holds the API key and an httpx.AsyncClient.

    Passed explicitly into WeatherService; never a module global.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = _OWM_BASE,
        timeout_s: float = 10.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            api_key:     OpenWeatherMap API key (OPENWEATHERMAP_API_KEY env var).
            base_url:    API root, without trailing slash.
            timeout_s:   httpx timeout for an owned client.
            http_client: Shared client. When omitted the instance owns one
                         and closes it in aclose().
        """
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout_s)

    async def current(self, city: str, country: str | None = None, units: str | None = None) -> httpx.Response:
        return await self._get("weather", city, country, units)

    async def forecast(self, city: str, country: str | None = None, units: str | None = None) -> httpx.Response:
        return await self._get("forecast", city, country, units)

    async def _get(self, endpoint: str, city: str, country: str | None, units: str | None) -> httpx.Response:
        if not self._api_key:
            raise UpstreamError("OPENWEATHERMAP_API_KEY not set")
        return await self._http.get(
            f"{self._base_url}/{endpoint}",
            params={
                "q": build_query(city, country),
                "appid": self._api_key,
                "units": units or DEFAULT_UNITS,
            },
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

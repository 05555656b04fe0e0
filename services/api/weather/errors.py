"""
Typed errors raised by the weather data access layer.

Every upstream failure reaches the caller as exactly one of these, after
retries are exhausted. CacheUnavailable is raised inside cache backends only
and is always absorbed by the CacheStore wrapper.
"""

from __future__ import annotations

import asyncio

import httpx


class WeatherServiceError(Exception):
    """Base class. ``code`` and ``status_code`` drive the API error envelope."""

    code = "WEATHER_ERROR"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CityNotFound(WeatherServiceError):
    code = "CITY_NOT_FOUND"
    status_code = 404

    def __init__(self, city: str):
        super().__init__(f'City "{city}" not found')
        self.city = city


class RateLimited(WeatherServiceError):
    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, message: str = "Weather provider rate limit exceeded", retry_after: int | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class UpstreamUnavailable(WeatherServiceError):
    code = "UPSTREAM_UNAVAILABLE"
    status_code = 503

    def __init__(self, upstream_status: int):
        super().__init__(f"Weather provider unavailable (HTTP {upstream_status})")
        self.upstream_status = upstream_status


class UpstreamTimeout(WeatherServiceError):
    code = "UPSTREAM_TIMEOUT"
    status_code = 504

    def __init__(self, timeout_s: float):
        super().__init__(f"Weather provider did not respond within {timeout_s:g}s")
        self.timeout_s = timeout_s


class UpstreamError(WeatherServiceError):
    code = "UPSTREAM_ERROR"
    status_code = 502


class LookupTimeout(WeatherServiceError):
    """The whole current + forecast lookup exceeded the request ceiling."""

    code = "REQUEST_TIMEOUT"
    status_code = 408

    def __init__(self, timeout_s: float):
        super().__init__(f"Request timeout: weather data took longer than {timeout_s:g}s to fetch")
        self.timeout_s = timeout_s


class CacheUnavailable(Exception):
    """Cache backend unreachable or misbehaving. Never leaves the cache layer."""


def _retry_after(response: httpx.Response) -> int | None:
    value = response.headers.get("retry-after")
    if value and value.isdigit():
        return int(value)
    return None


def classify_upstream_error(exc: BaseException, city: str, timeout_s: float) -> WeatherServiceError:
    """Map a failed upstream call onto the error taxonomy."""
    if isinstance(exc, WeatherServiceError):
        return exc

    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status == 404:
            return CityNotFound(city)
        if status == 429:
            return RateLimited(retry_after=_retry_after(exc.response))
        if status >= 500:
            return UpstreamUnavailable(status)
        return UpstreamError(f"Weather provider returned HTTP {status}: {exc.response.text[:200]}")

    if isinstance(exc, (httpx.TimeoutException, asyncio.TimeoutError)):
        return UpstreamTimeout(timeout_s)

    return UpstreamError(f"Weather provider request failed: {exc}")

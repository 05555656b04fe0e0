"""
Bounded retry with exponential backoff for single upstream calls.

Policy (defaults):
  attempts     1 + max_retries = 3
  delays       base_delay * 2**attempt -> 1s, 2s
  per-call     timeout_s = 10s, enforced around each attempt
  retried      HTTP 5xx, timeouts, transport errors
  not retried  HTTP 4xx (client errors burn quota and never heal)

Retry delays are cooperative (asyncio.sleep), so other lookups keep running
while one is backing off. The loop is explicit: attempt counter plus computed
delay, no recursion.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

import httpx

from services.api.weather.errors import WeatherServiceError, classify_upstream_error

logger = logging.getLogger(__name__)

RequestFn = Callable[[], Awaitable[httpx.Response]]


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code >= 500
    return isinstance(exc, (httpx.TransportError, asyncio.TimeoutError))


class BackoffFetcher:
    """
    Wraps one upstream call with bounded retry.

    Usage:
        fetcher = BackoffFetcher()
        response = await fetcher.fetch(lambda: client.current("Tokyo"), city="Tokyo")
    """

    def __init__(
        self,
        max_retries: int = 2,
        base_delay: float = 1.0,
        timeout_s: float = 10.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.timeout_s = timeout_s
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt: int) -> float:
        """Delay after the given zero-based failed attempt."""
        return self.base_delay * (2 ** attempt)

    async def fetch(self, request_fn: RequestFn, city: str = "") -> httpx.Response:
        """
        Run request_fn until it yields a 2xx response or attempts run out.

        Raises:
            WeatherServiceError subclass classified from the last failure.
        """
        last_exc: BaseException | None = None

        for attempt in range(self.max_attempts):
            try:
                response = await asyncio.wait_for(request_fn(), timeout=self.timeout_s)
                response.raise_for_status()
                return response
            except WeatherServiceError:
                raise
            except Exception as exc:
                last_exc = exc
                if not _is_retryable(exc):
                    logger.warning(
                        "Upstream attempt %d/%d for city=%r not retryable: %s",
                        attempt + 1, self.max_attempts, city, _describe(exc),
                    )
                    break
                if attempt < self.max_attempts - 1:
                    delay = self.delay_for(attempt)
                    logger.warning(
                        "Upstream attempt %d/%d failed for city=%r: %s. Retrying in %.1fs",
                        attempt + 1, self.max_attempts, city, _describe(exc), delay,
                    )
                    await self._sleep(delay)
                else:
                    logger.error(
                        "All %d upstream attempts failed for city=%r: %s",
                        self.max_attempts, city, _describe(exc),
                    )

        raise classify_upstream_error(last_exc, city, self.timeout_s) from last_exc


def _describe(exc: BaseException) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    if isinstance(exc, asyncio.TimeoutError):
        return "timeout"
    return repr(exc)

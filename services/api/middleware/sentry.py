"""
Sentry instrumentation for the FastAPI service.
Strips the OpenWeatherMap API key from captured URLs and breadcrumbs.
"""

import re
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

from services.api.config import settings

_APPID_RE = re.compile(r"(appid=)[^&\s]+", re.IGNORECASE)


def _scrub(value: Any) -> Any:
    if isinstance(value, str):
        return _APPID_RE.sub(r"\1[FILTERED]", value)
    return value


def _strip_sensitive_data(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    """before_send hook: remove appid query values from breadcrumbs and request data."""
    if "breadcrumbs" in event:
        for breadcrumb in event["breadcrumbs"].get("values", []):
            data = breadcrumb.get("data", {})
            if isinstance(data, dict):
                for key in ("url", "http.query"):
                    if key in data:
                        data[key] = _scrub(data[key])
            if "message" in breadcrumb:
                breadcrumb["message"] = _scrub(breadcrumb["message"])
    request = event.get("request", {})
    if isinstance(request, dict):
        for key in ("url", "query_string"):
            if key in request:
                request[key] = _scrub(request[key])
    return event


def setup_sentry() -> bool:
    """Initialise Sentry when a DSN is configured. Returns True if enabled."""
    if not settings.sentry_dsn:
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.environment,
        release=f"{settings.app_name}@{settings.app_version}",
        traces_sample_rate=settings.sentry_traces_sample_rate,
        before_send=_strip_sensitive_data,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        send_default_pii=False,
    )
    return True

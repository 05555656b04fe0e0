"""
Skycast FastAPI service — cached OpenWeatherMap lookups and city popularity.

Entrypoint: uvicorn services.api.main:app --host 0.0.0.0 --port 8000
"""

import logging
import uuid
from contextlib import asynccontextmanager

import httpx
import redis.asyncio as aioredis
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.responses import JSONResponse

from services.api.cities.store import InMemoryCityStore, SqlCityStore
from services.api.config import settings
from services.api.middleware.cors import setup_cors
from services.api.middleware.sentry import setup_sentry
from services.api.routers import cities, health
from services.api.weather.cache import create_cache_store
from services.api.weather.client import OpenWeatherMapClient
from services.api.weather.errors import RateLimited, WeatherServiceError
from services.api.weather.service import WeatherService

logger = logging.getLogger(__name__)


async def _connect_redis():
    """Redis client for the cache, or None when unreachable."""
    try:
        client = aioredis.from_url(
            settings.redis_url,
            decode_responses=True,
            socket_connect_timeout=5,
        )
        await client.ping()
        return client
    except Exception:
        # Cache degrades gracefully to the in-memory backend
        logger.warning("Redis unreachable at startup; using in-memory weather cache", exc_info=True)
        return None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    setup_sentry()

    redis_client = await _connect_redis() if settings.cache_backend == "redis" else None
    cache = create_cache_store("redis" if redis_client is not None else "memory", redis=redis_client)

    # City storage — SQL when configured, process memory otherwise
    from services.api.db.engine import create_engine, create_schema

    sa_engine = None
    store = InMemoryCityStore()
    if settings.database_url:
        try:
            sa_engine = create_engine()
            await create_schema(sa_engine)
            store = SqlCityStore(
                async_sessionmaker(sa_engine, expire_on_commit=False),
                dialect=sa_engine.dialect.name,
            )
        except Exception as e:
            logger.warning(f"City database failed to init, using in-memory store: {e}")

    http_client = httpx.AsyncClient(timeout=settings.weather_api_timeout_s)
    owm_client = OpenWeatherMapClient(
        api_key=settings.openweathermap_api_key,
        base_url=settings.openweathermap_base_url,
        http_client=http_client,
    )
    if not settings.openweathermap_api_key:
        logger.warning("OPENWEATHERMAP_API_KEY not set; weather lookups will fail")

    app.state.settings = settings
    app.state.redis = redis_client
    app.state.cache = cache
    app.state.city_store = store
    app.state.weather_service = WeatherService.from_settings(settings, owm_client, cache, store)

    yield

    await http_client.aclose()
    if sa_engine:
        await sa_engine.dispose()
    if redis_client:
        await redis_client.aclose()


app = FastAPI(
    title="Skycast API",
    version=settings.app_version,
    docs_url="/docs" if settings.environment == "development" else None,
    redoc_url=None,
    lifespan=lifespan,
)

app.include_router(health.router)
app.include_router(cities.router)

# CORS (needs to be outermost to handle preflight)
setup_cors(app)


# Request ID injection
@app.middleware("http")
async def request_envelope_middleware(request: Request, call_next) -> Response:
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


# -- Exception Handlers --

def _error_response(request: Request, status_code: int, code: str, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "error": {"code": code, "message": message},
            "requestId": getattr(request.state, "request_id", str(uuid.uuid4())),
        },
        headers=headers,
    )


@app.exception_handler(WeatherServiceError)
async def weather_error_handler(request: Request, exc: WeatherServiceError) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimited) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    return _error_response(request, exc.status_code, exc.code, exc.message, headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(request, 422, "VALIDATION_ERROR", str(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return _error_response(request, 404, "NOT_FOUND", "Resource not found.")
    return _error_response(request, exc.status_code, "HTTP_ERROR", str(exc.detail))


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc) -> JSONResponse:
    return _error_response(request, 500, "INTERNAL_ERROR", "An unexpected error occurred.")

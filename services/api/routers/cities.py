"""
City endpoints — weather search, suggestions, registration, rankings.

  GET  /cities/search    current + forecast for a city (25s ceiling)
  GET  /cities/suggest   autocomplete, most searched first
  POST /cities/add       register a city without counting a search
  GET  /cities/popular   by searchCount
  GET  /cities/recent    by lastSearchedAt

Typed weather errors propagate to the WeatherServiceError handler in main,
which renders the error envelope.
"""

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel, Field

router = APIRouter(prefix="/cities", tags=["cities"])


class AddCityRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    state: str | None = Field(None, max_length=100)


def _envelope(request: Request, data, **extra) -> dict:
    return {"success": True, "data": data, **extra, "requestId": request.state.request_id}


@router.get("/search")
async def search_city(
    request: Request,
    city: str = Query(..., min_length=1, max_length=100, description="City name"),
    country: str | None = Query(None, max_length=60, description="ISO country code"),
    units: str | None = Query(None, pattern=r"^(standard|metric|imperial)$"),
) -> dict:
    weather_service = request.app.state.weather_service
    lookup = await weather_service.lookup_city(city, country, units)
    return _envelope(request, lookup.to_dict())


@router.get("/suggest")
async def suggest_cities(
    request: Request,
    query: str | None = Query(None, max_length=100),
    limit: int | None = Query(None, ge=1, le=100),
) -> dict:
    weather_service = request.app.state.weather_service
    limit = limit or request.app.state.settings.suggest_default_limit
    cities = await weather_service.suggest_cities(query, limit)
    return _envelope(request, [c.to_dict() for c in cities])


@router.post("/add")
async def add_city(request: Request, body: AddCityRequest) -> dict:
    weather_service = request.app.state.weather_service
    try:
        record, created = await weather_service.add_city(body.name, body.state)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    message = "City added successfully" if created else "City already exists"
    return _envelope(request, record.to_dict(), message=message)


@router.get("/popular")
async def popular_cities(request: Request, limit: int = Query(10, ge=1, le=100)) -> dict:
    cities = await request.app.state.weather_service.popular_cities(limit)
    return _envelope(request, [c.to_dict() for c in cities])


@router.get("/recent")
async def recent_cities(request: Request, limit: int = Query(10, ge=1, le=100)) -> dict:
    cities = await request.app.state.weather_service.recent_cities(limit)
    return _envelope(request, [c.to_dict() for c in cities])

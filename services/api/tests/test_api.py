"""
API envelope and endpoint tests.

Tests:
- Health check and requestId on every response
- /cities/search happy path, cache flag, typed error mapping
- /cities/suggest, /cities/add, /cities/popular, /cities/recent
"""

import httpx
import pytest


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

class TestHealthEndpoint:
    """GET /health returns envelope with status, version and cache backend."""

    @pytest.mark.asyncio
    async def test_health_envelope_shape(self, client):
        response = await client.get("/health")
        body = response.json()
        assert response.status_code == 200
        assert body["success"] is True
        assert body["data"]["status"] == "healthy"
        assert body["data"]["cache"] == "memory"
        assert "version" in body["data"]

    @pytest.mark.asyncio
    async def test_custom_request_id_header(self, client):
        custom_id = "test-req-12345"
        response = await client.get("/health", headers={"x-request-id": custom_id})
        assert response.headers["x-request-id"] == custom_id
        assert response.json()["requestId"] == custom_id

    @pytest.mark.asyncio
    async def test_404_error_envelope(self, client):
        response = await client.get("/nonexistent-route")
        body = response.json()
        assert response.status_code == 404
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_FOUND"
        assert "requestId" in body


# ---------------------------------------------------------------------------
# /cities/search
# ---------------------------------------------------------------------------

class TestCitySearch:
    @pytest.mark.asyncio
    async def test_search_returns_current_and_forecast(self, client):
        response = await client.get("/cities/search", params={"city": "london", "country": "GB"})
        body = response.json()

        assert response.status_code == 200
        assert body["success"] is True
        assert body["data"]["city"] == "London"
        assert body["data"]["country"] == "GB"
        assert body["data"]["state"] == "GB"
        assert body["data"]["current"]["cache"] is False
        assert body["data"]["forecast"]["cache"] is False

    @pytest.mark.asyncio
    async def test_second_search_served_from_cache(self, client, upstream):
        await client.get("/cities/search", params={"city": "london"})
        response = await client.get("/cities/search", params={"city": " LONDON "})
        body = response.json()

        assert body["data"]["current"]["cache"] is True
        assert body["data"]["forecast"]["cache"] is True
        assert len(upstream.calls("weather")) == 1

    @pytest.mark.asyncio
    async def test_city_required(self, client):
        response = await client.get("/cities/search")
        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    @pytest.mark.asyncio
    async def test_invalid_units_rejected(self, client):
        response = await client.get("/cities/search", params={"city": "Paris", "units": "kelvin"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_city_not_found_maps_to_404(self, client, upstream):
        upstream.respond("weather", httpx.Response(404))
        response = await client.get("/cities/search", params={"city": "Atlantis"})
        body = response.json()

        assert response.status_code == 404
        assert body["success"] is False
        assert body["error"]["code"] == "CITY_NOT_FOUND"
        assert body["error"]["message"] == 'City "Atlantis" not found'

    @pytest.mark.asyncio
    async def test_rate_limit_maps_to_429_with_retry_after(self, client, upstream):
        upstream.respond("weather", httpx.Response(429, headers={"Retry-After": "30"}))
        response = await client.get("/cities/search", params={"city": "Paris"})

        assert response.status_code == 429
        assert response.headers["retry-after"] == "30"
        assert response.json()["error"]["code"] == "RATE_LIMITED"

    @pytest.mark.asyncio
    async def test_upstream_outage_maps_to_503(self, client, upstream):
        upstream.respond("weather", *[httpx.Response(503)] * 3)
        response = await client.get("/cities/search", params={"city": "Paris"})
        assert response.status_code == 503
        assert response.json()["error"]["code"] == "UPSTREAM_UNAVAILABLE"


# ---------------------------------------------------------------------------
# City directory
# ---------------------------------------------------------------------------

class TestCityDirectory:
    @pytest.mark.asyncio
    async def test_suggest_short_query_empty(self, client):
        response = await client.get("/cities/suggest", params={"query": "p"})
        assert response.json()["data"] == []

    @pytest.mark.asyncio
    async def test_suggest_after_search(self, client):
        await client.get("/cities/search", params={"city": "paris"})
        response = await client.get("/cities/suggest", params={"query": "par"})
        data = response.json()["data"]

        assert [c["name"] for c in data] == ["Paris"]
        assert data[0]["searchCount"] == 1  # one search, not one per half

    @pytest.mark.asyncio
    async def test_add_city(self, client):
        response = await client.post("/cities/add", json={"name": " lisbon ", "state": "PT"})
        body = response.json()

        assert response.status_code == 200
        assert body["message"] == "City added successfully"
        assert body["data"]["name"] == "Lisbon"
        assert body["data"]["searchCount"] == 0

    @pytest.mark.asyncio
    async def test_add_existing_city(self, client):
        await client.post("/cities/add", json={"name": "Lisbon"})
        response = await client.post("/cities/add", json={"name": "LISBON"})
        assert response.json()["message"] == "City already exists"

    @pytest.mark.asyncio
    async def test_add_blank_city_rejected(self, client):
        response = await client.post("/cities/add", json={"name": "   "})
        assert response.status_code == 400
        assert response.json()["success"] is False

    @pytest.mark.asyncio
    async def test_popular_and_recent(self, client, clock):
        await client.get("/cities/search", params={"city": "Oslo"})
        clock.advance(30)
        await client.get("/cities/search", params={"city": "Bergen"})
        clock.advance(30)
        await client.get("/cities/search", params={"city": "Bergen"})  # cached

        popular = (await client.get("/cities/popular", params={"limit": 5})).json()["data"]
        recent = (await client.get("/cities/recent", params={"limit": 1})).json()["data"]

        assert [c["name"] for c in popular] == ["Bergen", "Oslo"]
        assert [c["searchCount"] for c in popular] == [1, 1]
        assert [c["name"] for c in recent] == ["Bergen"]

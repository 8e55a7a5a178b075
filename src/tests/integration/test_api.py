"""Integration tests for the gateway API."""

import asyncio
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from tiergate.app import app


@pytest.fixture
async def client(service, memory_store):
    """Create test client wired to a fresh in-memory gateway."""
    with patch("tiergate.app.get_service", return_value=service):
        with patch("tiergate.app.get_store", return_value=memory_store):
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                yield ac


class TestGatewayFlow:
    """End-to-end flows through the HTTP boundary."""

    @pytest.mark.asyncio
    async def test_restricted_then_unrestricted(self, client, clock):
        """Three restricted requests, then a privileged unrestricted one."""
        statuses = []
        for _ in range(3):
            response = await client.post(
                "/v1/gateway/authorize",
                headers={"X-API-Key": "free_demo"},
                json={"useRealHardware": False},
            )
            statuses.append(response.status_code)
            clock.advance(3)

        assert statuses == [200, 200, 429]
        assert "Limit: 2 requests" in response.json()["error"]

        response = await client.post(
            "/v1/gateway/authorize",
            headers={"X-API-Key": "ent_demo"},
            json={"useRealHardware": True},
        )

        assert response.status_code == 200
        assert response.json()["effectivePrivileged"] is True
        assert response.headers["x-api-tier"] == "Enterprise"

    @pytest.mark.asyncio
    async def test_minute_window_recovers(self, client, clock):
        for _ in range(2):
            await client.post("/v1/gateway/authorize", headers={"X-API-Key": "free_demo"})
        blocked = await client.post("/v1/gateway/authorize", headers={"X-API-Key": "free_demo"})
        assert blocked.status_code == 429

        clock.advance(60)
        response = await client.post("/v1/gateway/authorize", headers={"X-API-Key": "free_demo"})

        assert response.status_code == 200
        assert response.headers["x-ratelimit-remaining"] == "97"

        usage = await client.get("/v1/gateway/usage", headers={"X-API-Key": "free_demo"})
        windows = {w["window"]: w["count"] for w in usage.json()["windows"]}
        assert windows == {"day": 3, "hour": 3, "minute": 1}

    @pytest.mark.asyncio
    async def test_blocked_key_does_not_affect_others(self, client):
        for _ in range(3):
            await client.post("/v1/gateway/authorize", headers={"X-API-Key": "free_one"})

        response = await client.post("/v1/gateway/authorize", headers={"X-API-Key": "free_two"})

        assert response.status_code == 200
        assert response.headers["x-ratelimit-remaining"] == "99"

    @pytest.mark.asyncio
    async def test_concurrent_requests_same_key(self, client):
        """Concurrent requests for one key never exceed the minute quota."""
        responses = await asyncio.gather(
            *[
                client.post("/v1/gateway/authorize", headers={"X-API-Key": "free_burst"})
                for _ in range(10)
            ]
        )

        statuses = sorted(r.status_code for r in responses)
        assert statuses == [200, 200] + [429] * 8

    @pytest.mark.asyncio
    async def test_denied_capability_consumes_quota(self, client):
        denied = await client.post(
            "/v1/gateway/authorize",
            headers={"X-API-Key": "free_demo"},
            json={"useRealHardware": True},
        )
        assert denied.status_code == 403

        usage = await client.get("/v1/gateway/usage", headers={"X-API-Key": "free_demo"})

        assert usage.json()["tier"] == "Free"
        assert usage.json()["windows"][2]["count"] == 1

    @pytest.mark.asyncio
    async def test_invalid_flag_type(self, client):
        response = await client.post(
            "/v1/gateway/authorize",
            headers={"X-API-Key": "free_demo"},
            json={"useRealHardware": [1, 2]},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "INVALID_PARAMETERS"


class TestMetricsEndpoint:
    """Tests for metrics endpoint."""

    @pytest.mark.asyncio
    async def test_metrics(self, client):
        await client.post("/v1/gateway/authorize", headers={"X-API-Key": "pro_metrics"})

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert 'tiergate_decisions_total{tier="Pro",outcome="proceed"}' in response.text

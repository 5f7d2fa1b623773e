"""Tests for health and error responses."""

import pytest
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient) -> None:
    """Test health check endpoint."""
    response = await client.get("/api/v1/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "version" in data


@pytest.mark.asyncio
async def test_detailed_health_check(client: AsyncClient) -> None:
    response = await client.get("/api/v1/health/detailed")

    assert response.status_code == 200
    data = response.json()
    assert data["database"] == "healthy"
    assert data["redis"] == "disabled"
    assert data["reminders"] == "disabled"


@pytest.mark.asyncio
async def test_ping(client: AsyncClient) -> None:
    response = await client.get("/api/v1/ping")

    assert response.json() == {"message": "pong"}


@pytest.mark.asyncio
async def test_validation_errors_are_structured(client: AsyncClient) -> None:
    response = await client.post("/api/v1/appointments/", json={"location": "Clinic A"})

    assert response.status_code == 422
    data = response.json()
    assert data["error"] == "ValidationError"
    assert data["details"]
    assert data["path"].endswith("/api/v1/appointments/")


@pytest.mark.asyncio
async def test_responses_carry_request_id(client: AsyncClient) -> None:
    response = await client.get("/api/v1/ping", headers={"X-Request-ID": "abc123"})

    assert response.headers["X-Request-ID"] == "abc123"
    assert "X-Process-Time" in response.headers


@pytest.mark.asyncio
async def test_metrics_endpoint(client: AsyncClient) -> None:
    await client.get("/api/v1/ping")

    response = await client.get("/metrics")

    assert response.status_code == 200
    assert "http_requests_total" in response.text

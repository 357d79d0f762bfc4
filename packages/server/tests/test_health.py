"""
Health check, API root and security header tests.
"""

import pytest
from httpx import AsyncClient

from teamhub_api.core.middleware import SECURITY_HEADERS


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    """Health endpoint should return status ok inside the envelope."""
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"success": True, "data": {"status": "ok"}}


@pytest.mark.asyncio
async def test_ready_check_with_memory_broker(client: AsyncClient):
    """Readiness only needs the database when Redis is not the broker."""
    response = await client.get("/ready")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["status"] == "ready"
    assert data["checks"] == {"database": "ok"}


@pytest.mark.asyncio
async def test_api_root(client: AsyncClient):
    response = await client.get("/api/v1/")
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["api"] == "v1"
    assert "/tenants/{tenantId}/chat" in data["endpoints"]


@pytest.mark.asyncio
async def test_security_headers_present(client: AsyncClient):
    response = await client.get("/health")
    for header, value in SECURITY_HEADERS.items():
        assert response.headers[header] == value

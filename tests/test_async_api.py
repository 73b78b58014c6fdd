# tests/test_async_api.py
import pytest
from httpx import ASGITransport, AsyncClient

from clinicdesk.main import app


@pytest.fixture
async def async_client(client):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.mark.asyncio
async def test_health_reports_database(async_client: AsyncClient):
    response = await async_client.get("/api/v1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] == "ok"
    assert data["environment"] == "test"


@pytest.mark.asyncio
async def test_create_client_async(async_client: AsyncClient, owner_headers, client_payload):
    response = await async_client.post("/api/v1/clients", json=client_payload(1), headers=owner_headers)
    assert response.status_code == 201
    data = response.json()
    assert data["first_name"] == "Jane"
    assert data["email"] == "jane1@example.com"

    listing = await async_client.get("/api/v1/clients", headers=owner_headers)
    assert listing.json()["total"] == 1

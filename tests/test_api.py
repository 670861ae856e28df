"""
Tests for the analytics REST API
Runs the FastAPI app in-process against the in-memory test database
"""

import pytest
from httpx import ASGITransport, AsyncClient
from slowapi.middleware import SlowAPIMiddleware

from api_server import app
from config import config
from src.api.rate_limit import limiter
from src.database.engine import get_session

from helpers import T_ADDR, T_OTHER, days_after


API_KEY = "test-analytics-key"
HEADERS = {"X-API-Key": API_KEY}


@pytest.fixture
async def client(session_maker, monkeypatch):
    monkeypatch.setattr(config, "ANALYTICS_API_KEY", API_KEY)

    async def override_session():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _create_wallet(client, address=T_ADDR, project_id=None):
    if project_id is None:
        response = await client.post("/api/analytics/projects", json={"name": "API"}, headers=HEADERS)
        project_id = response.json()["id"]
    response = await client.post(
        f"/api/analytics/projects/{project_id}/wallets",
        json={"address": address, "created_at": days_after(0).isoformat()},
        headers=HEADERS,
    )
    assert response.status_code == 201
    return response.json()


# ===========================
# Health & auth
# ===========================


@pytest.mark.asyncio
async def test_health_endpoints(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}

    response = await client.get("/api/health")
    assert response.json()["status"] == "ok"


@pytest.mark.asyncio
async def test_missing_and_invalid_key(client):
    response = await client.get("/api/analytics/wallets/1/adoption")
    assert response.status_code == 401

    response = await client.get("/api/analytics/wallets/1/adoption", headers={"X-API-Key": "wrong"})
    assert response.status_code == 401


# ===========================
# Error mapping
# ===========================


@pytest.mark.asyncio
async def test_unknown_wallet_is_404(client):
    response = await client.get("/api/analytics/wallets/999/adoption", headers=HEADERS)

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "not_found"
    assert body["details"] == {"wallet_id": 999}


@pytest.mark.asyncio
async def test_invalid_range_is_400(client):
    response = await client.post(
        "/api/analytics/cohorts/range",
        json={"start": "2026-02-01", "end": "2026-01-01"},
        headers=HEADERS,
    )

    assert response.status_code == 400
    assert response.json()["error"] == "validation_error"


@pytest.mark.asyncio
async def test_empty_cohort_comparison_is_422(client):
    response = await client.post(
        "/api/analytics/cohorts/range",
        json={"start": "2026-01-05", "end": "2026-01-05"},
        headers=HEADERS,
    )
    cohort_id = response.json()[0]["id"]

    response = await client.get(f"/api/analytics/cohorts/{cohort_id}/new-vs-returning", headers=HEADERS)
    assert response.status_code == 422
    assert response.json()["error"] == "insufficient_data"


# ===========================
# Flows
# ===========================


@pytest.mark.asyncio
async def test_register_ingest_and_track_adoption(client):
    wallet = await _create_wallet(client)
    await _create_wallet(client, address=T_OTHER, project_id=wallet["project_id"])

    response = await client.get(f"/api/analytics/wallets/{wallet['id']}/adoption", headers=HEADERS)
    assert response.json()["current_stage"] == "created"

    response = await client.post(
        "/api/analytics/transactions",
        json={"transactions": [{
            "txid": "apitx1",
            "timestamp": days_after(1).isoformat(),
            "fee": 1000,
            "inputs": [{"address": T_ADDR, "value": 1_000_000}],
            "outputs": [{"address": T_OTHER, "value": 999_000}],
        }]},
        headers=HEADERS,
    )
    assert response.status_code == 200
    assert response.json()["succeeded"] == 2

    response = await client.post(f"/api/analytics/wallets/{wallet['id']}/adoption/update", headers=HEADERS)
    assert [s["stage"] for s in response.json()["newly_achieved"]] == ["first_tx"]

    response = await client.get(
        f"/api/analytics/projects/{wallet['project_id']}/adoption/funnel", headers=HEADERS
    )
    stages = {s["stage"]: s["wallets"] for s in response.json()["stages"]}
    assert stages["created"] == 2
    assert stages["first_tx"] == 1


@pytest.mark.asyncio
async def test_bulk_productivity_partial_failure(client):
    wallet = await _create_wallet(client)

    response = await client.post(
        "/api/analytics/productivity/bulk",
        json={"wallet_ids": [wallet["id"], 4242]},
        headers=HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["succeeded"] == 1
    assert body["failed"] == 1

    response = await client.get(
        f"/api/analytics/projects/{wallet['project_id']}/productivity/summary", headers=HEADERS
    )
    assert response.json()["scored_wallets"] == 1


@pytest.mark.asyncio
async def test_conversion_report_on_new_project(client):
    wallet = await _create_wallet(client)

    response = await client.get(
        f"/api/analytics/projects/{wallet['project_id']}/conversion/report", headers=HEADERS
    )

    assert response.status_code == 200
    assert response.json()["status"] == "insufficient_data"


@pytest.mark.asyncio
async def test_request_validation(client):
    response = await client.post("/api/analytics/productivity/bulk", json={"wallet_ids": []}, headers=HEADERS)
    assert response.status_code == 422

    response = await client.get("/api/analytics/retention/yearly/heatmap", headers=HEADERS)
    assert response.status_code == 422


def test_global_rate_limit_is_enforced():
    assert any(m.cls is SlowAPIMiddleware for m in app.user_middleware)
    assert app.state.limiter is limiter
    assert limiter._default_limits
    # ingest keeps its own tighter limit on the same limiter
    assert "src.api.analytics.ingest_transactions" in limiter._route_limits

"""
API endpoint tests
"""

import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock
from datetime import timedelta
from uuid import uuid4
from api.main import app
from api.dependencies import get_db, get_orchestrator
from core.config import settings
from core.exceptions import SourceRegistryError
from refresh.orchestrator import RefreshOrchestrator


def make_client(session_factory, orchestrator, monkeypatch):
    monkeypatch.setattr(settings, "REFRESH_SCHEDULER_ENABLED", False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    return TestClient(app)


@pytest.fixture
def client(session_factory, seeded, fake_client, clock, monkeypatch):
    """Create test client with database and orchestrator overrides"""
    orchestrator = RefreshOrchestrator(
        session_factory,
        {fake_client.provider: fake_client},
        horizon_days=2,
        ttl=timedelta(hours=6),
        max_workers=1,
        clock=clock,
    )

    with make_client(session_factory, orchestrator, monkeypatch) as test_client:
        yield test_client

    app.dependency_overrides.clear()


def test_root_endpoint(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["endpoints"]["run"] == "/refresh/run"


def test_health_before_any_refresh(client):
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["database_connected"] is True
    assert data["total_records"] == 0
    assert data["last_cycle_status"] is None


def test_run_refresh_returns_report(client):
    response = client.post("/refresh/run")

    assert response.status_code == 200
    data = response.json()
    assert [unit["status"] for unit in data["units"]] == ["saved", "saved"]
    assert [unit["window"]["check_in"] for unit in data["units"]] == ["2025-03-02", "2025-03-03"]
    assert data["units"][0]["points"][0]["room_type"] == "Deluxe King"
    assert float(data["units"][0]["points"][0]["rate"]) == 199.0


def test_run_refresh_within_ttl_skips(client, fake_client):
    client.post("/refresh/run")
    response = client.post("/refresh/run")

    assert [unit["status"] for unit in response.json()["units"]] == ["skipped", "skipped"]
    assert len(fake_client.calls) == 2


def test_run_refresh_horizon_override(client):
    response = client.post("/refresh/run?horizon_days=1")

    assert len(response.json()["units"]) == 1
    assert response.json()["horizon_days"] == 1


def test_run_refresh_rejects_negative_horizon(client):
    response = client.post("/refresh/run?horizon_days=-1")

    assert response.status_code == 422


def test_health_after_refresh(client):
    client.post("/refresh/run")

    data = client.get("/health").json()

    assert data["status"] == "healthy"
    assert data["record_counts"] == {"saved": 2}
    assert data["last_cycle_status"] == "success"


def test_records_listing_and_filters(client, seeded):
    client.post("/refresh/run")

    response = client.get("/refresh/records?page=1&page_size=1")
    assert response.status_code == 200
    data = response.json()
    assert len(data["items"]) == 1
    assert data["pagination"]["total_items"] == 2
    assert data["pagination"]["has_next"] is True

    saved = client.get("/refresh/records?status=saved").json()
    assert saved["pagination"]["total_items"] == 2
    assert saved["filters_applied"] == {"status": "saved"}

    by_hotel = client.get(f"/refresh/records?hotel_id={seeded['hotel'].id}").json()
    assert all(item["hotel_id"] == str(seeded["hotel"].id) for item in by_hotel["items"])

    other = client.get("/refresh/records?provider=Other").json()
    assert other["items"] == []


def test_record_points(client):
    client.post("/refresh/run")
    record = client.get("/refresh/records").json()["items"][0]

    response = client.get(f"/refresh/records/{record['id']}/points")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "saved"
    assert [point["room_type"] for point in data["points"]] == ["Deluxe King"]


def test_record_points_not_found(client):
    response = client.get(f"/refresh/records/{uuid4()}/points")

    assert response.status_code == 404


def test_cycle_runs(client):
    client.post("/refresh/run")

    runs = client.get("/refresh/runs").json()

    assert len(runs) == 1
    assert runs[0]["status"] == "success"
    assert runs[0]["units_saved"] == 2


def test_request_id_header(client):
    response = client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    assert "X-API-Latency-ms" in response.headers


def test_registry_failure_returns_503(session_factory, monkeypatch):
    orchestrator = MagicMock()
    orchestrator.run_cycle = AsyncMock(side_effect=SourceRegistryError("registry unavailable"))

    with make_client(session_factory, orchestrator, monkeypatch) as test_client:
        response = test_client.post("/refresh/run")

    app.dependency_overrides.clear()

    assert response.status_code == 503
    assert response.json()["detail"] == "registry unavailable"

"""Test main application functionality."""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from codementor.config import settings
from codementor.database import DatabaseManager, db_manager
from codementor.main import build_collaboration_core, create_app, lifespan


@pytest.mark.integration
async def test_health_check(client):
    """Test health check endpoint."""
    response = await client.get("/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert data["service"] == "CodeMentor"
    assert data["version"] == settings.app_version
    assert data["database"]["status"] == "healthy"
    assert data["collaboration"] == {"live_rooms": 0, "connections": 0}


@pytest.mark.integration
async def test_metrics_endpoint(client):
    response = await client.get("/metrics")
    assert response.status_code == 200
    assert "text/plain" in response.headers["content-type"]
    assert "http_requests_total" in response.text


@pytest.mark.integration
async def test_cors_headers(client):
    response = await client.get("/health", headers={"Origin": "http://localhost:3000"})
    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"


@pytest.mark.unit
def test_app_creation():
    """Test FastAPI app creation."""
    app = create_app()

    assert app.title == "CodeMentor"
    assert app.state.collaboration_lifecycle.registry is app.state.room_registry
    paths = {route.path for route in app.routes}
    assert "/collaboration-hub" in paths
    assert "/api/v1/collaboration/sessions" in paths
    assert "/api/v1/game/leaderboard" in paths
    assert "/api/v1/dashboard/stats" in paths
    assert "/api/v1/roadmaps/{roadmap_id}/enroll" in paths


@pytest.mark.unit
def test_apps_do_not_share_rooms():
    first, second = create_app(), create_app()
    assert first.state.room_registry is not second.state.room_registry


@pytest.mark.integration
async def test_error_handling(test_engine):
    """Test global error handling."""
    test_app = create_app()

    @test_app.get("/test-error")
    async def test_error_endpoint():
        raise ValueError("Test error")

    transport = ASGITransport(app=test_app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/test-error")

    assert response.status_code == 500
    assert response.json()["error"] == "Internal Server Error"
    assert "detail" not in response.json()


@pytest.mark.unit
async def test_lifespan_events():
    """Test application lifespan events."""
    app = FastAPI()
    lifecycle = build_collaboration_core(app)

    with patch.object(db_manager, "engine", None), \
         patch.object(db_manager, "initialize", new_callable=AsyncMock) as mock_init, \
         patch.object(db_manager, "close", new_callable=AsyncMock) as mock_close, \
         patch.object(lifecycle, "wait_for_pending_writes", new_callable=AsyncMock) as mock_wait:

        async with lifespan(app):
            mock_init.assert_awaited_once()

        mock_wait.assert_awaited_once()
        mock_close.assert_awaited_once()


@pytest.mark.integration
async def test_database_manager_lifecycle(tmp_path):
    manager = DatabaseManager()
    assert (await manager.health_check())["status"] == "disabled"

    await manager.initialize(f"sqlite+aiosqlite:///{tmp_path / 'health.db'}")
    await manager.create_all()
    assert (await manager.health_check())["status"] == "healthy"

    await manager.close()
    assert manager.engine is None

    with pytest.raises(RuntimeError):
        async with manager.get_session():
            pass

"""Tests de la API HTTP (health, ready, reload, stats)."""

import httpx
import pytest
from fastapi.testclient import TestClient

import level_bridge.bridge as bridge_module
import level_bridge.endpoints.health as health_module
from level_bridge.bridge import Bridge
from level_bridge.main import app

from conftest import FakeConfigStore, FakeReadingStore, FakeTargetStore, FakeTransport


@pytest.fixture
def config_store(make_subscription):
    return FakeConfigStore([make_subscription("p1", "tanks/1", store_history=True)])


@pytest.fixture
def running_bridge(monkeypatch, make_settings, config_store, mqtt_client_factory):
    b = Bridge(
        make_settings(),
        config_store=config_store,
        reading_store=FakeReadingStore(),
        target_store=FakeTargetStore(),
        transport=FakeTransport(),
        client_factory=mqtt_client_factory,
    )
    b.start(periodic=False)
    monkeypatch.setattr(bridge_module, "_bridge", b)
    yield b
    b.stop()


@pytest.fixture
def client():
    # Sin context manager: no corre el lifespan (no arranca el bridge real)
    return TestClient(app)


# =============================================================================
# HEALTH
# =============================================================================

class TestHealthEndpoints:

    def test_health_without_bridge(self, client, monkeypatch):
        monkeypatch.setattr(bridge_module, "_bridge", None)
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "bridge": None}

    def test_health_with_bridge(self, client, running_bridge):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert body["bridge"]["running"] is True

    def test_ping(self, client):
        assert client.get("/ping").json()["message"] == "pong"

    def test_ready(self, client, running_bridge, monkeypatch, sqlite_engine):
        monkeypatch.setattr(health_module, "get_engine", lambda: sqlite_engine)
        response = client.get("/ready")
        assert response.status_code == 200
        assert response.json() == {"status": "ready"}

    def test_not_ready_when_db_down(self, client, running_bridge, monkeypatch):
        def broken():
            raise RuntimeError("db down")

        monkeypatch.setattr(health_module, "get_engine", broken)
        response = client.get("/ready")
        assert response.status_code == 503

    def test_not_ready_without_bridge(self, client, monkeypatch, sqlite_engine):
        monkeypatch.setattr(health_module, "get_engine", lambda: sqlite_engine)
        monkeypatch.setattr(bridge_module, "_bridge", None)
        assert client.get("/ready").status_code == 503


# =============================================================================
# BRIDGE CONTROL
# =============================================================================

class TestBridgeEndpoints:

    def test_reload(self, client, running_bridge, config_store, make_subscription):
        config_store.subscriptions.append(make_subscription("p2", "tanks/2", store_history=True))

        response = client.post("/bridge/reload")

        assert response.status_code == 200
        body = response.json()
        assert body["ok"] is True
        assert body["sync"]["entities"] == 2
        assert body["sync"]["subscribed"] == 1

    def test_reload_failure_is_500(self, client, running_bridge, config_store):
        config_store.fail_list = True
        response = client.post("/bridge/reload")
        assert response.status_code == 500
        assert response.json()["detail"] == "reload failed"

    def test_reload_without_bridge_is_503(self, client, monkeypatch):
        monkeypatch.setattr(bridge_module, "_bridge", None)
        assert client.post("/bridge/reload").status_code == 503

    def test_stats(self, client, running_bridge):
        response = client.get("/bridge/stats")
        assert response.status_code == 200
        body = response.json()
        assert body["running"] is True
        assert body["entities"] == 1
        assert body["last_sync"]["ok"] is True
        assert body["workers"]["workers"] == 0

    @pytest.mark.asyncio
    async def test_stats_async_client(self, running_bridge):
        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
            response = await ac.get("/bridge/stats")
        assert response.status_code == 200
        assert response.json()["connections"] == 1

"""Tests for the health endpoint."""

from __future__ import annotations

from atlas_api.session import AtlasSession
from atlas_dedup.blacklist import Blacklist
from tests.conftest import FakeStore


class TestHealth:
    def test_healthy_when_cache_loaded(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "healthy"
        assert body["cache_loaded"] is True
        assert body["snapshot_size"] == 6
        assert body["blacklist_size"] == 0
        assert body["background_tasks"] == 0
        assert body["generative_enabled"] is True
        assert body["places_enabled"] is False
        assert body["version"] == "0.1.0"

    def test_started_at_and_uptime(self, client):
        body = client.get("/api/health").json()
        assert body["started_at"] == "2026-02-24T00:00:00+00:00"
        assert body["uptime_seconds"] > 0

    def test_degraded_before_cache_load(self, app, client, tmp_path):
        app.state.session = AtlasSession.build(store=FakeStore(), blacklist=Blacklist(tmp_path / "bl.json"))
        resp = client.get("/api/health")
        assert resp.status_code == 503
        assert resp.json()["status"] == "degraded"
        assert resp.json()["cache_loaded"] is False

    def test_health_is_public(self, client):
        assert client.get("/api/health").status_code == 200

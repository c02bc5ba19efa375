"""Tests for the service endpoints exposed by wa_leads/main.py."""

import pytest
from fastapi.testclient import TestClient

from wa_leads.__version__ import __build_date__, __commit_sha__, __version__
from wa_leads.main import app


@pytest.fixture
def client():
    """Create a test client for the FastAPI app."""
    return TestClient(app)


class TestHealthEndpoint:
    def test_health_returns_ok_status(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


class TestVersionEndpoint:
    def test_version_matches_package_version(self, client):
        """Version endpoint reports the package metadata."""
        resp = client.get("/api/version")
        assert resp.status_code == 200
        data = resp.json()
        assert data["version"] == __version__
        assert data["build_date"] == __build_date__
        assert data["commit_sha"] == __commit_sha__


class TestMetricsEndpoint:
    def test_metrics_exposes_prometheus_text(self, client):
        client.get("/api/health")
        resp = client.get("/api/metrics")
        assert resp.status_code == 200
        assert "http_request" in resp.text


class TestRouting:
    def test_webhook_and_admin_routes_are_mounted(self):
        paths = {route.path for route in app.routes}
        assert "/webhooks/whatsapp" in paths
        assert "/api/tenants/{tenant_id}/tree" in paths
        assert "/api/tenants/{tenant_id}/conversations" in paths
        assert "/api/tenants/{tenant_id}/conversations/{slug}" in paths

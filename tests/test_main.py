"""
Tests for the application wiring: root, metrics, error envelopes and page shells.
"""

import json

import pytest
from fastapi import Request
from fastapi.testclient import TestClient

from app.config import settings
from app.exceptions import DashboardError
from app.main import app, dashboard_error_handler


@pytest.fixture
def page_client() -> TestClient:
    return TestClient(app, follow_redirects=False)


class TestRootAndMetrics:
    def test_root(self, page_client):
        body = page_client.get("/").json()
        assert body["service"] == "LensCherry Billing Dashboard"
        assert body["status"] == "running"

    def test_metrics_exposition(self, page_client):
        response = page_client.get("/metrics")
        assert response.status_code == 200
        assert "dashboard_" in response.text

    def test_metrics_can_be_disabled(self, page_client, monkeypatch):
        monkeypatch.setattr(settings, "metrics_enabled", False)

        response = page_client.get("/metrics")

        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}


class TestErrorEnvelope:
    def test_unknown_route_uses_error_key(self, page_client):
        response = page_client.get("/api/billing/nope")
        assert response.status_code == 404
        assert response.json() == {"error": "Not Found"}

    @pytest.mark.asyncio
    async def test_unhandled_dashboard_error_is_generic_500(self):
        request = Request({"type": "http", "method": "GET", "path": "/api/billing/stats", "headers": []})

        response = await dashboard_error_handler(request, DashboardError("boom"))

        assert response.status_code == 500
        assert json.loads(response.body) == {"error": "Internal server error"}


class TestPageShells:
    """Dashboard pages behind the session gate."""

    def test_login_page_submits_json_with_captcha_header(self, page_client):
        response = page_client.get("/billing/login")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        html = response.text
        assert 'data-endpoint="/api/auth/sign-in/email"' in html
        assert "action=" not in html
        assert '"content-type": "application/json"' in html
        assert '"x-captcha-response":' in html
        assert "JSON.stringify" in html

    def test_pages_need_cookie(self, page_client):
        response = page_client.get("/billing/storage")
        assert response.status_code == 302
        assert response.headers["location"] == "/billing/login"

    @pytest.mark.parametrize(
        ("path", "endpoint"),
        [
            ("/billing", "/api/billing/stats"),
            ("/billing/users", "/api/billing/users"),
            ("/billing/users/user-1", "/api/billing/users/user-1"),
            ("/billing/gallery", "/api/billing/gallery"),
            ("/billing/gallery/photo-1", "/api/billing/gallery/photo-1"),
            ("/billing/storage", "/api/billing/storage"),
            ("/billing/activity", "/api/billing/activity"),
            ("/billing/analytics", "/api/billing/stats"),
        ],
    )
    def test_page_names_its_data_endpoint(self, page_client, path, endpoint):
        page_client.cookies.set("vesperion.session_token", "tok.sig")

        response = page_client.get(path)

        assert response.status_code == 200
        assert f'data-endpoint="{endpoint}"' in response.text

    def test_user_supplied_ids_are_escaped(self, page_client):
        page_client.cookies.set("vesperion.session_token", "tok.sig")

        response = page_client.get('/billing/users/"><script>')

        assert "<script>" not in response.text

"""
Unit tests for health, authentication and settings routes.
"""

import uuid
from unittest.mock import patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from catalog_pilot.config import settings
from catalog_pilot.middleware import RateLimitMiddleware


class TestHealthEndpoint:
    """Tests for the health endpoints."""

    def test_health_check_returns_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["service"] == "catalog-pilot"

    def test_api_health_check(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "running"


class TestAuthentication:
    """Tests for identity resolution on /api routes."""

    def test_requires_auth(self, client):
        response = client.get("/api/products")
        assert response.status_code == 401

    def test_invalid_token_rejected(self, client):
        response = client.get("/api/products", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_identity_headers_ignored_by_default(self, client):
        response = client.get("/api/products", headers={"x-user-id": "user-1"})
        assert response.status_code == 401

    def test_identity_headers_when_trusted(self, client):
        with patch.object(settings, "trust_identity_headers", True):
            response = client.get(
                "/api/company",
                headers={"x-user-id": "dev-user", "x-user-email": "dev@example.com"},
            )
        assert response.status_code == 200
        assert response.json()["subscription_plan"] == "trial"

    def test_first_request_provisions_trial_company(self, client, auth_headers):
        response = client.get("/api/company", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "owner"
        assert data["subscription_plan"] == "trial"
        assert data["product_limit"] == 5
        assert data["product_count"] == 0

        team = client.get("/api/team", headers=auth_headers).json()
        assert len(team) == 1
        assert team[0]["id"] == "user-1"
        assert team[0]["role"] == "owner"


class TestSettingsAPI:
    """Tests for BigCommerce credential settings."""

    def test_no_settings_returns_null(self, client, auth_headers):
        response = client.get("/api/settings", headers=auth_headers)
        assert response.status_code == 200
        assert response.json() is None

    def test_save_and_get_masks_token(self, client, auth_headers):
        response = client.post(
            "/api/settings",
            json={
                "store_hash": "abc123",
                "access_token": "secret-token-value",
                "client_id": "client-1",
                "show_stock": True,
            },
            headers=auth_headers,
        )
        assert response.status_code == 200
        assert response.json()["access_token"].endswith("alue")
        assert "secret" not in response.json()["access_token"]

        data = client.get("/api/settings", headers=auth_headers).json()
        assert data["store_hash"] == "abc123"
        assert data["client_id"] == "client-1"
        assert data["show_stock"] is True
        assert data["last_sync_at"] is None

    def test_save_requires_fields(self, client, auth_headers):
        response = client.post("/api/settings", json={"store_hash": "abc123"}, headers=auth_headers)
        assert response.status_code == 422

    def test_connection_test_uses_stored_credentials(self, client, auth_headers, configured_company, fake_bc):
        with patch("catalog_pilot.routes.settings.BigCommerceClient", new=fake_bc):
            response = client.post("/api/settings/test", headers=auth_headers)
        assert response.status_code == 200
        assert response.json()["success"] is True
        assert fake_bc.credentials == ("abc123", "secret-token-value", "client-1")

    def test_connection_test_without_settings(self, client, auth_headers):
        response = client.post("/api/settings/test", headers=auth_headers)
        assert response.status_code == 400

    def test_settings_are_per_company(self, client, auth_headers, configured_company, token_for):
        other = {"Authorization": f"Bearer {token_for('user-2', 'other@example.com')}"}
        response = client.get("/api/settings", headers=other)
        assert response.status_code == 200
        assert response.json() is None


class TestRateLimit:
    """Tests for the per-caller rate limit."""

    @pytest.fixture
    def limited_client(self):
        limited_app = FastAPI()
        limited_app.add_middleware(RateLimitMiddleware, requests_per_minute=2)

        @limited_app.get("/api/ping")
        async def ping():
            return {"ok": True}

        @limited_app.get("/api/health")
        async def health():
            return {"status": "healthy"}

        with TestClient(limited_app) as test_client:
            yield test_client

    def test_limit_per_caller(self, limited_client):
        headers = {"Authorization": f"Bearer {uuid.uuid4()}"}
        first = limited_client.get("/api/ping", headers=headers)
        assert first.headers["X-RateLimit-Remaining"] == "1"
        assert limited_client.get("/api/ping", headers=headers).status_code == 200

        blocked = limited_client.get("/api/ping", headers=headers)
        assert blocked.status_code == 429
        assert blocked.headers["Retry-After"] == "60"

        other = {"Authorization": f"Bearer {uuid.uuid4()}"}
        assert limited_client.get("/api/ping", headers=other).status_code == 200

    def test_health_is_exempt(self, limited_client):
        for _ in range(5):
            assert limited_client.get("/api/health").status_code == 200

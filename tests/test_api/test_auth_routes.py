"""
API tests for health, login, logout and profile endpoints.

Requests go through the FastAPI TestClient with the application lifespan
running against a temporary database.
"""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from brother_nature import __version__
from brother_nature.api.server import create_app
from brother_nature.config import config
from brother_nature.db import connection as db_connection
from tests.constants import TEST_PASSWORD
from tests.fakes import transient

# ============================================================================
# HEALTH
# ============================================================================


@pytest.mark.api
def test_root_reports_version(test_client):
    response = test_client.get("/")

    assert response.status_code == 200
    assert response.json() == {"message": "Brother Nature Core API", "version": __version__}


@pytest.mark.api
def test_health_reports_worker_and_chain(test_client, users):
    response = test_client.get("/health")

    data = response.json()
    assert response.status_code == 200
    assert data["status"] == "ok"
    assert data["chain_connected"] is True
    assert data["reward_worker_running"] is True
    assert data["reward_backlog"] == 0
    assert data["active_sessions"] == 0


@pytest.mark.api
def test_lifespan_survives_unreachable_ledger(fake_chain, app_services, users):
    fake_chain.connect_error = transient("no route to host")

    with TestClient(create_app(config, services=app_services)) as client:
        data = client.get("/health").json()

    assert data["chain_connected"] is False
    assert data["reward_worker_running"] is True


# ============================================================================
# LOGIN / LOGOUT
# ============================================================================


@pytest.mark.api
@pytest.mark.auth
class TestLogin:
    def test_login_returns_token_and_profile(self, test_client, users):
        response = test_client.post(
            "/auth/login", json={"username": "alice", "password": TEST_PASSWORD}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["token"]
        assert data["user"] == {
            "id": users["alice"],
            "username": "alice",
            "role": "user",
            "walletAddress": None,
        }

    def test_wrong_password(self, test_client, users):
        response = test_client.post("/auth/login", json={"username": "alice", "password": "nope"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid username or password"

    def test_blank_username(self, test_client, users):
        response = test_client.post("/auth/login", json={"username": " ", "password": "x"})

        assert response.status_code == 400

    def test_token_works_until_logout(self, test_client, users):
        token = test_client.post(
            "/auth/login", json={"username": "sage", "password": TEST_PASSWORD}
        ).json()["token"]
        headers = {"Authorization": f"Bearer {token}"}

        me = test_client.get("/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json()["role"] == "steward"

        logout = test_client.post("/auth/logout", headers=headers)
        assert logout.json() == {"success": True, "message": "Goodbye, sage!"}

        assert test_client.get("/auth/me", headers=headers).status_code == 401


@pytest.mark.api
@pytest.mark.auth
class TestBearerToken:
    def test_missing_header(self, test_client, users):
        response = test_client.get("/auth/me")

        assert response.status_code == 401
        assert response.json()["detail"] == "Missing bearer token"

    def test_wrong_scheme(self, test_client, users):
        response = test_client.get("/auth/me", headers={"Authorization": "Basic abc"})

        assert response.status_code == 401

    def test_unknown_token(self, test_client, users):
        response = test_client.get("/auth/me", headers={"Authorization": "Bearer nope"})

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid or expired session"


@pytest.mark.api
def test_storage_failure_is_generic_500(test_client, users, auth_headers):
    headers = auth_headers("alice")

    with patch.object(db_connection, "get_connection", side_effect=Exception("db error")):
        response = test_client.get("/auth/me", headers=headers)

    assert response.status_code == 500
    assert response.json() == {"error": "internal_error", "message": "Internal server error"}

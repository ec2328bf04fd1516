"""
tests/test_api_auth.py -- Integration tests for the auth routes.

These tests exercise the full stack: FastAPI routing -> bearer extraction ->
TokenAuthenticator.authorize -> UserStore -> response model serialization.

Coverage:
  - Login: valid credentials 200 with token + no-store, bad password / unknown email 401
  - Login marks the user online
  - Bearer transport: missing header, wrong scheme, garbage, expired -> uniform 401
  - Valid credential for a deleted/unknown subject -> 401 (same body)
  - /auth/user returns the profile; /auth/validate reports validity
  - Logout flips presence offline but the credential keeps working
  - Demo login: enabled -> first parent; disabled -> 404
  - Login rate limit: 429 with Retry-After once LOGIN_RATE_LIMIT is spent
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from auth.store import UserStore
from auth.tokens import TokenAuthenticator
from conftest import TEST_SECRET, FakeClock
from core.config import get_settings

UNAUTHORIZED_BODY = {"error": {"code": "unauthorized", "message": "Authentication failed.", "detail": None}}


class TestLogin:
    def test_login_valid_credentials(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "leader@example.org", "password": "leaderpass123"})
        assert resp.status_code == 200, resp.text
        assert resp.headers["Cache-Control"] == "no-store"
        data = resp.json()
        assert data["user"]["email"] == "leader@example.org"
        assert data["user"]["role"] == "leader"
        assert "hashed_password" not in data["user"]
        assert data["token"].count(".") == 2
        assert data["token_type"] == "bearer"
        assert data["expires_in"] == 86400

    def test_login_token_works_on_protected_route(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        token = client.post(
            "/api/v1/auth/login", json={"email": "parent@example.org", "password": "parentpass123"}
        ).json()["token"]
        resp = client.get("/api/v1/auth/user", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200
        assert resp.json()["email"] == "parent@example.org"

    def test_login_email_is_case_insensitive(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "LEADER@example.org", "password": "leaderpass123"})
        assert resp.status_code == 200

    def test_login_marks_user_online(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, store = api_client
        client.post("/api/v1/auth/login", json={"email": "dual@example.org", "password": "dualpass123"})
        user = store.get_by_email("dual@example.org")
        assert user.is_online is True
        assert user.last_seen

    def test_login_wrong_password(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "leader@example.org", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"
        assert resp.headers["Cache-Control"] == "no-store"

    def test_login_unknown_email_same_error(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "nobody@example.org", "password": "whatever"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "bad_credentials"

    def test_login_missing_fields_is_422(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        resp = client.post("/api/v1/auth/login", json={"email": "leader@example.org"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestBearerTransport:
    def test_missing_header(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        resp = client.get("/api/v1/auth/user")
        assert resp.status_code == 401
        assert resp.json() == UNAUTHORIZED_BODY
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    def test_wrong_scheme(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, tokens, _store = api_client
        resp = client.get("/api/v1/auth/user", headers={"Authorization": f"Token {tokens['parent@example.org']}"})
        assert resp.status_code == 401

    def test_garbage_token(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        resp = client.get("/api/v1/auth/user", headers={"Authorization": "Bearer a.b"})
        assert resp.status_code == 401
        assert resp.json() == UNAUTHORIZED_BODY

    def test_forged_signature(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, tokens, _store = api_client
        token = tokens["parent@example.org"]
        forged = token[:-1] + ("A" if token[-1] != "A" else "B")
        resp = client.get("/api/v1/auth/user", headers={"Authorization": f"Bearer {forged}"})
        assert resp.status_code == 401
        assert resp.json() == UNAUTHORIZED_BODY

    def test_expired_token(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, store = api_client
        parent = store.get_by_email("parent@example.org")
        past = FakeClock(now=1_000_000)
        expired = TokenAuthenticator(get_settings().secret_key, clock=past).issue(parent.id)
        resp = client.get("/api/v1/auth/user", headers={"Authorization": f"Bearer {expired}"})
        assert resp.status_code == 401
        assert resp.json() == UNAUTHORIZED_BODY

    def test_token_signed_with_other_secret(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, store = api_client
        parent = store.get_by_email("parent@example.org")
        foreign = TokenAuthenticator(TEST_SECRET).issue(parent.id)
        resp = client.get("/api/v1/auth/user", headers={"Authorization": f"Bearer {foreign}"})
        assert resp.status_code == 401

    def test_unknown_subject_same_401_body(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        authenticator = client.app.state.authenticator
        ghost = authenticator.issue("no-such-user-id")
        resp = client.get("/api/v1/auth/user", headers={"Authorization": f"Bearer {ghost}"})
        assert resp.status_code == 401
        assert resp.json() == UNAUTHORIZED_BODY


class TestCurrentUserAndValidate:
    def test_current_user_profile(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, tokens, _store = api_client
        resp = client.get("/api/v1/auth/user", headers={"Authorization": f"Bearer {tokens['exec@example.org']}"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["name"] == "Hana Executive"
        assert data["role"] == "executive"
        assert data["is_executive"] is True

    def test_validate_valid(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, tokens, _store = api_client
        resp = client.get(
            "/api/v1/auth/validate", headers={"Authorization": f"Bearer {tokens['leader@example.org']}"}
        )
        assert resp.status_code == 200
        assert resp.json() == {"valid": True}

    def test_validate_without_header(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        resp = client.get("/api/v1/auth/validate")
        assert resp.status_code == 401
        assert resp.json() == {"valid": False}

    def test_validate_invalid(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        resp = client.get("/api/v1/auth/validate", headers={"Authorization": "Bearer x.y.z"})
        assert resp.status_code == 401
        assert resp.json() == {"valid": False}


class TestLogout:
    def test_logout_marks_offline_but_credential_survives(
        self, api_client: tuple[TestClient, dict, UserStore]
    ) -> None:
        client, _tokens, store = api_client
        token = client.post(
            "/api/v1/auth/login", json={"email": "leader@example.org", "password": "leaderpass123"}
        ).json()["token"]
        headers = {"Authorization": f"Bearer {token}"}

        resp = client.post("/api/v1/auth/logout", headers=headers)
        assert resp.status_code == 200
        assert resp.json() == {"success": True}
        assert store.get_by_email("leader@example.org").is_online is False

        # No revocation: the credential is still accepted until it expires.
        assert client.get("/api/v1/auth/validate", headers=headers).json() == {"valid": True}
        assert client.get("/api/v1/auth/user", headers=headers).status_code == 200

    def test_logout_requires_auth(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        assert client.post("/api/v1/auth/logout").status_code == 401


class TestDemoLogin:
    def test_demo_login_returns_first_parent(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        resp = client.post("/api/v1/demo-login")
        assert resp.status_code == 200, resp.text
        data = resp.json()
        assert data["user"]["email"] == "parent@example.org"
        assert data["message"] == "Demo login successful"
        assert client.get("/api/v1/auth/validate", headers={"Authorization": f"Bearer {data['token']}"}).status_code == 200

    def test_demo_login_disabled_is_404(self, api_client: tuple[TestClient, dict, UserStore]) -> None:
        client, _tokens, _store = api_client
        original = client.app.state.settings
        client.app.state.settings = original.model_copy(update={"demo_login_enabled": False})
        try:
            resp = client.post("/api/v1/demo-login")
        finally:
            client.app.state.settings = original
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "not_found"


def test_health_no_auth_required(api_client: tuple[TestClient, dict, UserStore]) -> None:
    client, _tokens, _store = api_client
    resp = client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


@pytest.fixture
def tight_login_limit(monkeypatch):
    """Drop LOGIN_RATE_LIMIT to 2/minute with fresh counters for one test."""
    monkeypatch.setenv("LOGIN_RATE_LIMIT", "2/minute")
    get_settings.cache_clear()
    limiter.reset()
    yield
    limiter.reset()
    get_settings.cache_clear()


def test_login_rate_limited_with_retry_after(
    api_client: tuple[TestClient, dict, UserStore], tight_login_limit
) -> None:
    client, _tokens, _store = api_client
    bad = {"email": "leader@example.org", "password": "wrong"}
    statuses = [client.post("/api/v1/auth/login", json=bad).status_code for _ in range(3)]
    assert statuses == [401, 401, 429]

    resp = client.post("/api/v1/auth/login", json={"email": "leader@example.org", "password": "leaderpass123"})
    assert resp.status_code == 429
    assert resp.json()["error"]["code"] == "rate_limited"
    assert int(resp.headers["Retry-After"]) > 0

"""
tests/conftest.py -- Shared test fixtures for the scout portal.

This module provides:
  - FakeClock: settable unix-seconds clock for expiry and debounce tests
  - store: a fresh in-memory UserStore per test
  - authenticator: TokenAuthenticator on a FakeClock, no presence tracking
  - api_client: TestClient over the real app with a patched lifespan

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool and
plain :memory: databases are per-connection.

SECRET_KEY must be set before any api/ import: api/main.py reads settings at
import time to configure middleware, and a missing key is fatal by design.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any api/ or core/ import.
os.environ.setdefault("SECRET_KEY", "test-secret-key-0123456789abcdef0123456789")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("DEMO_LOGIN_ENABLED", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import User
from auth.presence import PresenceTracker
from auth.store import UserStore
from auth.tokens import TokenAuthenticator, hash_password
from core.config import get_settings

TEST_SECRET = "unit-test-secret-abcdefghijklmnopqrstuvwxyz"
T0 = 1_700_000_000


class FakeClock:
    """Callable clock returning a settable unix timestamp."""

    def __init__(self, now: float = T0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def authenticator(clock: FakeClock) -> TokenAuthenticator:
    return TokenAuthenticator(TEST_SECRET, clock=clock)


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------

# Members seeded into the API test database: (email, name, role, flags, password)
SEED_USERS = [
    ("exec@example.org", "Hana Executive", "executive", {"is_executive": True}, "execpass123"),
    ("leader@example.org", "Sami Leader", "leader", {"is_leader": True}, "leaderpass123"),
    ("parent@example.org", "Amal Parent", "parent", {"is_parent": True}, "parentpass123"),
    ("dual@example.org", "Fatima Dual", "parent", {"is_parent": True, "is_leader": True}, "dualpass123"),
]


def _patch_lifespan(user_store: UserStore, authenticator: TokenAuthenticator):
    """Return a lifespan that wires test objects into app.state instead of the real DB."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = get_settings()
        app.state.user_store = user_store
        app.state.authenticator = authenticator
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, dict[str, str], UserStore], None, None]:
    """Yield (client, tokens_by_email, store) for API integration tests.

    Each module gets its own shared-memory DB (named after the module) so
    presence writes and created users do not leak between modules.
    """
    settings = get_settings()
    db_name = request.module.__name__.replace(".", "_")
    user_store = UserStore(f"sqlite:///file:test_auth_{db_name}?mode=memory&cache=shared&uri=true")
    presence = PresenceTracker(user_store.touch_presence, interval_seconds=settings.presence_interval_seconds)
    authenticator = TokenAuthenticator.from_settings(settings, presence=presence)

    tokens: dict[str, str] = {}
    for email, name, role, flags, password in SEED_USERS:
        uid = user_store.create_user(
            User(email=email, name=name, role=role, hashed_password=hash_password(password), **flags)
        )
        tokens[email] = authenticator.issue(uid)

    app.router.lifespan_context = _patch_lifespan(user_store, authenticator)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, tokens, user_store

    user_store.close()

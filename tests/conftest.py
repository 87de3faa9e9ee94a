"""
tests/conftest.py -- Shared test fixtures for AuthGate.

This module provides:
  - settings / store / notifier / service: unit-level building blocks
  - make_user(): insert an account directly (verified, 2FA on, admin, ...)
  - api_client: TestClient over the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. Each fixture instance gets its own uuid-suffixed name so tests never
see each other's users.

ENVIRONMENT must be set before any api/ import so get_settings() (used for
CORS at import time) auto-generates SECRET_KEY instead of raising.
"""

from __future__ import annotations

import os
import re
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from urllib.parse import parse_qs, urlparse

# CRITICAL: Set ENVIRONMENT before any api/core import.
os.environ.setdefault("ENVIRONMENT", "test")

import pytest
from fastapi.testclient import TestClient

from api.main import app, build_auth_service
from auth.models import User
from auth.service import AuthService
from auth.store import UserStore
from auth.tokens import hash_password
from core.config import Settings

TEST_SECRET = "test-secret-key-0123456789abcdef-0123456789"
PASSWORD = "longpass1"


class RecordingNotifier:
    """Notifier fake: keeps every message instead of sending it."""

    def __init__(self) -> None:
        self.sent: list[dict] = []

    def send(self, to: str, subject: str, html: str) -> None:
        self.sent.append({"to": to, "subject": subject, "html": html})

    def last_token(self) -> str:
        """Pull the ?token= value out of the most recent verification link."""
        href = re.search(r'href="([^"]+)"', self.sent[-1]["html"]).group(1)
        return parse_qs(urlparse(href).query)["token"][0]


def _memory_url() -> str:
    return f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(
        environment="test",
        secret_key=TEST_SECRET,
        frontend_url="http://frontend.test",
        token_expire_seconds=3600,
        cookie_expire_days=7,
    )


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore(_memory_url())
    yield s
    s.close()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(settings: Settings, store: UserStore, notifier: RecordingNotifier) -> AuthService:
    return build_auth_service(settings, store, notifier=notifier)


@pytest.fixture
def make_user(store: UserStore):
    """Factory: insert a user straight into the store and return its id."""

    def _make(
        email: str = "ann@example.com",
        *,
        name: str = "Ann",
        password: str = PASSWORD,
        role: str = "user",
        verified: bool = True,
        two_factor_secret: str | None = None,
        two_factor_enabled: bool = False,
    ) -> int:
        return store.create_user(
            User(
                name=name,
                email=email,
                hashed_password=hash_password(password),
                role=role,
                is_email_verified=verified,
                two_factor_secret=two_factor_secret,
                two_factor_enabled=two_factor_enabled,
            )
        )

    return _make


# ---------------------------------------------------------------------------
# HTTP fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, store: UserStore, service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and service into app.state so routes hit isolated
    in-memory data and the recording notifier instead of SMTP.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.user_store = store
        app.state.auth_service = service
        yield

    return test_lifespan


@pytest.fixture
def api_client(
    settings: Settings, store: UserStore, service: AuthService
) -> Generator[TestClient, None, None]:
    """TestClient over the real app, real routes and real dependencies."""
    app.router.lifespan_context = _patch_lifespan(settings, store, service)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client

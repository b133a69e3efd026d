"""
tests/conftest.py -- Shared test fixtures for the storefront auth tests.

This module provides:
  - make_store(): isolated named shared-memory UserStore per test/module
  - FakeClock: injectable clock so expiry tests never sleep
  - RecordingDispatcher: EmailDispatcher that records instead of sending
  - _patch_lifespan(): wires a test store + dispatcher into app.state through
    the same build_components() the real lifespan uses
  - api_client: module-scoped TestClient, yields (client, store, dispatcher)
  - client: the same TestClient with an empty cookie jar for each test

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any project import so
get_settings() auto-generates SECRET_KEY and hashing stays fast.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

# CRITICAL: Set before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, build_components
from auth.passwords import PasswordHasher
from auth.store import UserStore
from auth.tokens import SessionTokenCodec
from core.config import get_settings
from mail.dispatcher import EmailDeliveryError

TEST_SECRET = "test-secret-key-that-is-at-least-32-characters"
STRONG_PASSWORD = "Abc12345!"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_store(db_suffix: str | None = None) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so tests don't share
                   state. A random one is used when omitted.
    """
    name = db_suffix or uuid.uuid4().hex
    return UserStore(db_url=f"sqlite:///file:test_auth_{name}?mode=memory&cache=shared&uri=true")


class FakeClock:
    """Callable returning a fixed, manually advanced UTC time."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class SentEmail:
    to_address: str
    token: str
    frontend_base_url: str


class RecordingDispatcher:
    """EmailDispatcher double. Set .fail = True to simulate an SMTP outage."""

    def __init__(self) -> None:
        self.sent: list[SentEmail] = []
        self.fail = False

    async def send_password_reset_email(self, to_address: str, token: str, frontend_base_url: str) -> None:
        if self.fail:
            raise EmailDeliveryError("connection refused")
        self.sent.append(SentEmail(to_address, token, frontend_base_url))

    def last_token_for(self, address: str) -> str:
        return [m for m in self.sent if m.to_address == address][-1].token


def _patch_lifespan(store: UserStore, dispatcher: RecordingDispatcher):
    """Return an async context manager that replaces the real lifespan.

    Builds the real component graph around the test store and the recording
    dispatcher, so routes run unchanged but never touch disk or SMTP.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        build_components(app, get_settings(), store, dispatcher)
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = make_store()
    yield s
    s.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hasher() -> PasswordHasher:
    return PasswordHasher(rounds=4)


@pytest.fixture
def secret_key() -> str:
    return TEST_SECRET


@pytest.fixture
def codec(secret_key: str, clock: FakeClock) -> SessionTokenCodec:
    return SessionTokenCodec(secret_key, lifetime=timedelta(days=1), clock=clock)


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    """Per-IP counters are process-global; start every test with a clean slate."""
    limiter.reset()


# ---------------------------------------------------------------------------
# Module-scoped fixtures -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, UserStore, RecordingDispatcher], None, None]:
    """Yield (client, store, dispatcher) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so
    tests hit real route handlers but use an isolated in-memory store.
    """
    user_store = make_store(request.module.__name__.rsplit(".", 1)[-1])
    outbox = RecordingDispatcher()

    app.router.lifespan_context = _patch_lifespan(user_store, outbox)

    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client, user_store, outbox

    user_store.close()


@pytest.fixture
def client(api_client) -> TestClient:
    """The module's TestClient with no cookies left over from earlier tests."""
    test_client, _, outbox = api_client
    test_client.cookies.clear()
    outbox.fail = False
    return test_client

"""
tests/conftest.py -- Shared test fixtures for the Inkpress auth core.

This module provides:
  - settings: a Settings instance with fixed secrets and bcrypt cost 4
  - clock: a controllable clock injected into every service
  - store / auth: an isolated in-memory AuthStore and the full service graph
  - api_client: TestClient wired to an isolated store via a patched lifespan

Design: the API fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread.

bcrypt cost 4 is the library minimum; it keeps the suite fast while still
exercising the real hashing code.
"""

from __future__ import annotations

import asyncio
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.orchestrator import AuthOrchestrator
from auth.store import AuthStore
from core.config import Settings

ACCESS_SECRET = "a" * 16 + "access-secret-for-tests-only"
REFRESH_SECRET = "r" * 16 + "refresh-secret-for-tests-only"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def make_settings(**overrides) -> Settings:
    values = {
        "access_token_secret": ACCESS_SECRET,
        "refresh_token_secret": REFRESH_SECRET,
        "access_token_ttl_minutes": 15,
        "refresh_token_ttl_days": 7,
        "bcrypt_rounds": 4,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> Generator[AuthStore, None, None]:
    s = AuthStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def auth(settings: Settings, store: AuthStore, clock: FakeClock) -> AuthOrchestrator:
    return AuthOrchestrator.from_settings(settings, store, clock=clock)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, store: AuthStore):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and settings into app.state so routes never read the
    environment or touch the on-disk database. The purge_task is a long
    sleeping coroutine so shutdown's .cancel() has a real Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = settings
        app.state.store = store
        app.state.auth = AuthOrchestrator.from_settings(settings, store)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, AuthOrchestrator], None, None]:
    """Yield (client, orchestrator) for API integration tests.

    One client per test module. Tests register their own identities with
    unique emails so they do not depend on execution order.
    """
    settings = make_settings()
    store = AuthStore(f"sqlite:///file:test_auth_{id(settings)}?mode=memory&cache=shared&uri=true")
    app.router.lifespan_context = _patch_lifespan(settings, store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, app.state.auth

    store.close()

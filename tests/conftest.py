"""
tests/conftest.py -- Shared test fixtures for the MotorGhar auth core.

This module provides:
  - FrozenClock: a controllable "now" injected into stores, SessionManager,
    and MemoryTokenBlacklist so expiry can be tested without sleeping
  - unit fixtures: settings, in-memory stores, blacklist, services, make_user
  - api_client: TestClient over the real app with a patched lifespan

Design: the api_client fixture uses named shared-memory SQLite URIs (not plain
:memory:) because TestClient runs route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. Unit fixtures run on one thread, so plain :memory: is enough.

bcrypt cost is 4 in every fixture; production never goes below 10.

The DEBUG env var must be set before any auth/api import so get_settings()
auto-generates JWT_SECRET in dev mode rather than raising ValidationError.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate JWT_SECRET in dev mode instead of raising.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from auth.models import Role, User
from auth.passwords import hash_password
from auth.rbac import RBACService
from auth.revocation import MemoryTokenBlacklist
from auth.service import AuthService
from auth.sessions import SessionManager
from auth.store import SessionStore, UserStore
from core.config import Settings

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
TEST_ROUNDS = 4
TEST_PASSWORD = "correct-horse-battery"


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


def make_settings(**overrides) -> Settings:
    values = {"debug": True, "jwt_secret": TEST_SECRET}
    values.update(overrides)
    return Settings(**values)


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def user_store(clock) -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:", clock=clock)
    yield store
    store.close()


@pytest.fixture
def session_store(clock) -> Generator[SessionStore, None, None]:
    store = SessionStore("sqlite:///:memory:", clock=clock)
    yield store
    store.close()


@pytest.fixture
def blacklist(clock) -> MemoryTokenBlacklist:
    return MemoryTokenBlacklist(clock=clock)


@pytest.fixture
def session_manager(session_store, settings, clock) -> SessionManager:
    return SessionManager(
        session_store,
        max_sessions_per_user=settings.session_max_per_user,
        session_ttl_seconds=settings.session_ttl_seconds,
        clock=clock,
    )


@pytest.fixture
def auth_service(user_store, session_manager, blacklist, settings) -> AuthService:
    return AuthService(user_store, session_manager, blacklist, settings, password_rounds=TEST_ROUNDS)


@pytest.fixture
def rbac(user_store) -> RBACService:
    return RBACService(user_store)


@pytest.fixture
def make_user(user_store):
    """Factory: make_user(email, role=OWNER, is_active=True, password=TEST_PASSWORD) -> User."""

    def _make(
        email: str = "owner@motorghar.com",
        role: Role = Role.OWNER,
        is_active: bool = True,
        password: str = TEST_PASSWORD,
        name: str = "Test User",
    ) -> User:
        uid = user_store.create_user(
            User(
                email=email,
                name=name,
                password_hash=hash_password(password, TEST_ROUNDS),
                role=role,
                is_active=is_active,
            )
        )
        return user_store.find_by_id(uid)

    return _make


# ---------------------------------------------------------------------------
# API fixture
# ---------------------------------------------------------------------------


def _make_api_stores(db_suffix: str) -> tuple[UserStore, SessionStore]:
    """Create named shared-memory SQLite stores for one test module."""
    db_url = f"sqlite:///file:test_motorghar_{db_suffix}?mode=memory&cache=shared&uri=true"
    return UserStore(db_url=db_url), SessionStore(db_url=db_url)


def _patch_lifespan(state: SimpleNamespace):
    """Return an async context manager that replaces the real lifespan.

    Wires pre-built test services into app.state so routes see isolated test
    DBs and the in-memory blacklist. The reap_task is a long-sleeping
    coroutine so shutdown can cancel a real asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = state.user_store
        app.state.session_store = state.session_store
        app.state.blacklist = state.blacklist
        app.state.session_manager = state.session_manager
        app.state.auth_service = state.auth_service
        app.state.rbac = state.rbac
        app.state.reap_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.reap_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[SimpleNamespace, None, None]:
    """Yield a namespace with the TestClient, the stores, and two seeded users.

    Users (password TEST_PASSWORD for both):
      admin@motorghar.com  ADMIN
      owner@motorghar.com  OWNER
    """
    user_store, session_store = _make_api_stores(request.module.__name__.rsplit(".", 1)[-1])
    settings = make_settings(session_max_per_user=3)
    blacklist = MemoryTokenBlacklist()
    session_manager = SessionManager(
        session_store,
        max_sessions_per_user=settings.session_max_per_user,
        session_ttl_seconds=settings.session_ttl_seconds,
    )
    state = SimpleNamespace(
        user_store=user_store,
        session_store=session_store,
        blacklist=blacklist,
        session_manager=session_manager,
        auth_service=AuthService(user_store, session_manager, blacklist, settings, password_rounds=TEST_ROUNDS),
        rbac=RBACService(user_store),
    )
    state.admin_id = user_store.create_user(
        User(
            email="admin@motorghar.com",
            name="Admin",
            password_hash=hash_password(TEST_PASSWORD, TEST_ROUNDS),
            role=Role.ADMIN,
        )
    )
    state.owner_id = user_store.create_user(
        User(
            email="owner@motorghar.com",
            name="Owner",
            password_hash=hash_password(TEST_PASSWORD, TEST_ROUNDS),
            role=Role.OWNER,
        )
    )

    app.router.lifespan_context = _patch_lifespan(state)
    limiter.reset()

    with TestClient(app, raise_server_exceptions=True) as client:
        state.client = client
        yield state

    session_store.close()
    user_store.close()

"""
tests/conftest.py -- Shared test fixtures for Rolegate integration tests.

This module provides:
  - _make_test_env(): builds isolated in-memory stores and services
  - _patch_lifespan(): wires those services into app.state, bypassing real startup
  - api_env: module-scoped TestClient plus stores and a seeded admin/viewer pair
  - api: function-scoped view of api_env with the cookie jar cleared

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync work in a thread pool. Plain :memory: DBs are
per-connection and would present a blank schema to each worker thread.

The DEBUG env var must be set before any app import so get_settings()
auto-generates SECRET_KEY in dev mode rather than raising ValueError.
"""

from __future__ import annotations

import asyncio
import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set DEBUG before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.bootstrap import seed_default_roles
from auth.models import Role, User
from auth.permissions import PermissionResolver
from auth.sessions import SessionManager
from auth.store import RoleStore, SessionStore, UserStore, create_db_engine
from auth.tokens import hash_password
from core.config import get_settings

PASSWORD = "correct-horse-1"


@dataclass
class ApiEnv:
    client: TestClient
    user_store: UserStore
    role_store: RoleStore
    session_store: SessionStore
    manager: SessionManager
    admin_id: int
    admin_token: str
    viewer_id: int
    viewer_token: str

    def make_user(
        self,
        username: str,
        roles: list[str] | None = None,
        permissions: list[str] | None = None,
    ) -> tuple[int, str]:
        """Create a user holding the named roles and log it in. Returns (id, token)."""
        role_ids = [r.id for r in self.role_store.get_by_names(roles or [])]
        uid = self.user_store.create_user(
            User(
                name=f"{username} name",
                username=username,
                email=f"{username}@example.com",
                hashed_password=hash_password(PASSWORD),
                role_ids=role_ids,
                permissions=permissions or [],
            )
        )
        return uid, self.manager.issue(f"{username}@example.com", PASSWORD)

    def make_role(self, name: str, permissions: list[str]) -> int:
        existing = self.role_store.get_by_name(name)
        if existing is not None:
            return existing.id
        return self.role_store.create_role(Role(name=name, permissions=permissions))


def auth_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_env(db_suffix: str) -> tuple[UserStore, RoleStore, SessionStore, SessionManager]:
    """Create isolated named shared-memory stores and a SessionManager over them.

    Args:
        db_suffix: Unique string appended to the DB name so test modules don't
                   share state.
    """
    settings = get_settings()
    engine = create_db_engine(f"sqlite:///file:test_rolegate_{db_suffix}?mode=memory&cache=shared&uri=true")
    users = UserStore(engine)
    roles = RoleStore(engine)
    sessions = SessionStore(engine, ttl_seconds=settings.token_expire_seconds)
    manager = SessionManager(
        users, roles, sessions, secret_key=settings.secret_key, ttl_seconds=settings.token_expire_seconds
    )
    seed_default_roles(roles)
    return users, roles, sessions, manager


def _patch_lifespan(users: UserStore, roles: RoleStore, sessions: SessionStore, manager: SessionManager):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown has a real
    asyncio.Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        app.state.settings = settings
        app.state.user_store = users
        app.state.role_store = roles
        app.state.session_store = sessions
        app.state.session_manager = manager
        app.state.permission_resolver = PermissionResolver(api_prefix=settings.api_prefix)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_env(request) -> Generator[ApiEnv, None, None]:
    """Yield an ApiEnv for the calling test module.

    Seeds an admin (role "admin" -> admin_granted) and a viewer (role
    "viewer" -> viewer), both logged in through the real SessionManager so
    their tokens have live session rows.
    """
    users, roles, sessions, manager = _make_test_env(request.module.__name__.rsplit(".", 1)[-1])
    roles.create_role(Role(name="viewer", permissions=["viewer"]))

    app.router.lifespan_context = _patch_lifespan(users, roles, sessions, manager)

    with TestClient(app, raise_server_exceptions=True) as client:
        env = ApiEnv(
            client=client,
            user_store=users,
            role_store=roles,
            session_store=sessions,
            manager=manager,
            admin_id=0,
            admin_token="",
            viewer_id=0,
            viewer_token="",
        )
        env.admin_id, env.admin_token = env.make_user("rootadmin", roles=["admin"])
        env.viewer_id, env.viewer_token = env.make_user("plainviewer", roles=["viewer"])
        yield env

    users.engine.dispose()


@pytest.fixture
def api(api_env: ApiEnv) -> Generator[ApiEnv, None, None]:
    """api_env with an empty cookie jar, so one test's login never authenticates the next."""
    api_env.client.cookies.clear()
    yield api_env
    api_env.client.cookies.clear()

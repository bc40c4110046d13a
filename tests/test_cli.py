"""Tests for the admin CLI in main.py, run against a throwaway SQLite file."""

from unittest.mock import patch

import pytest
from sqlalchemy import text

from auth.models import Session
from auth.store import RoleStore, SessionStore, UserStore, create_db_engine
from auth.tokens import verify_password
from main import main


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture
def stores(db_url):
    engine = create_db_engine(db_url)
    yield UserStore(engine), RoleStore(engine), SessionStore(engine, ttl_seconds=60)
    engine.dispose()


def test_seed_roles_is_idempotent(db_url, stores, capsys):
    assert main(["--database-url", db_url, "seed-roles"]) == 0
    assert "admin" in capsys.readouterr().out
    assert main(["--database-url", db_url, "seed-roles"]) == 0
    assert "already present" in capsys.readouterr().out
    _, roles, _ = stores
    assert [r.name for r in roles.list_roles()] == ["admin", "guest"]


def test_create_user_with_role(db_url, stores):
    main(["--database-url", db_url, "seed-roles"])
    rc = main(
        [
            "--database-url", db_url, "create-user",
            "--name", "Ada Admin", "--username", "adaadmin", "--email", "ada@example.com",
            "--password", "long-enough-pw", "--role", "admin",
        ]
    )
    assert rc == 0
    users, roles, _ = stores
    user = users.get_by_email("ada@example.com")
    assert user is not None
    assert user.role_ids == [roles.get_by_name("admin").id]
    assert verify_password("long-enough-pw", user.hashed_password)


def test_create_user_prompts_for_password(db_url, stores):
    main(["--database-url", db_url, "seed-roles"])
    with patch("main.getpass.getpass", return_value="prompted-password"):
        rc = main(
            ["--database-url", db_url, "create-user", "--name", "Guest User", "--username", "guestuser",
             "--email", "guest@example.com"]
        )
    assert rc == 0
    users, roles, _ = stores
    user = users.get_by_email("guest@example.com")
    assert user.role_ids == [roles.get_by_name("guest").id]
    assert verify_password("prompted-password", user.hashed_password)


def test_create_user_unknown_role(db_url, stores, capsys):
    rc = main(
        ["--database-url", db_url, "create-user", "--name", "Nobody Here", "--username", "nobody",
         "--email", "nobody@example.com", "--password", "long-enough-pw", "--role", "missing"]
    )
    assert rc == 1
    assert "Unknown role(s): missing" in capsys.readouterr().out
    assert stores[0].list_users() == []


def test_create_user_short_password(db_url, stores):
    main(["--database-url", db_url, "seed-roles"])
    rc = main(
        ["--database-url", db_url, "create-user", "--name", "Short Pass", "--username", "shortpass",
         "--email", "short@example.com", "--password", "short"]
    )
    assert rc == 1


def test_purge_sessions(db_url, stores, capsys):
    _, _, sessions = stores
    sessions.create(Session(token="stale", user_id=1))
    sessions.create(Session(token="fresh", user_id=1))
    with sessions.engine.begin() as conn:
        conn.execute(
            text("UPDATE sessions SET created_at = :old WHERE token = 'stale'"),
            {"old": "2000-01-01T00:00:00.000000+00:00"},
        )
    assert main(["--database-url", db_url, "purge-sessions"]) == 0
    assert "Removed 1 expired session(s)." in capsys.readouterr().out
    assert sessions.find_valid("fresh") is not None

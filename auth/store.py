"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
UserStore, RoleStore and SessionStore are the repositories; the _row_to_*
functions are the mappers. Services and routes never touch SQL directly.

All three stores share one Engine built by create_db_engine(). The engine
owns the connection pool; each store method opens a short-lived connection,
so a request never holds a connection across await points.

Security:
  All queries use bound parameters. No f-strings in SQL.

Document shape:
  users.role_ids and users.permissions, and roles.permissions, are JSON
  lists. Role references are ids only -- loading the Role rows is an explicit
  second query (RoleStore.get_many), never an implicit join.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlalchemy import JSON, Boolean, Column, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Engine

from auth.models import Role, Session, User

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False),
    Column("username", String(50), nullable=False, unique=True),
    Column("email", String(100), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role_ids", JSON, nullable=False, default=list),
    Column("permissions", JSON, nullable=False, default=list),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_roles = Table(
    "roles",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False, unique=True),
    Column("permissions", JSON, nullable=False, default=list),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", Text, nullable=False, unique=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("revoked", Boolean, nullable=False, default=False),
    Column("created_at", String(32), nullable=False, index=True),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    """Build the shared Engine and create any missing tables."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(moment: datetime) -> str:
    # Fixed-width timestamps so string comparison in SQL orders correctly.
    return moment.isoformat(timespec="microseconds")


def _now_iso() -> str:
    return _iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records (the credential store).

    Usage:
        engine = create_db_engine("sqlite:///rolegate.db")
        users = UserStore(engine)
        uid = users.create_user(User(name="Ada Admin", username="ada", email="ada@example.com",
                                     hashed_password=hash_password("secret123")))
        user = users.get_by_email("ada@example.com")
    """

    # Columns update_user() accepts. Everything else is rejected with ValueError.
    _MUTABLE_FIELDS: set = {"name", "username", "email", "hashed_password", "role_ids", "permissions"}

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the username or email already
        exists. Routes translate that into a 409.
        """
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    username=user.username,
                    email=user.email,
                    hashed_password=user.hashed_password,
                    role_ids=list(user.role_ids),
                    permissions=list(user.permissions),
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by exact email. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == email)).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users ordered by username."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.username)).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        Returns True if a row was updated, False if user_id was not found.
        Raises IntegrityError on a duplicate username or email.
        """
        unknown = set(fields) - self._MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if deleted, False if not found.

        Sessions owned by the user are left to expire; authenticate() fails
        for them because the user no longer loads.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_users.delete().where(_users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def count_with_role(self, role_id: int) -> int:
        """Return how many users reference role_id.

        role_ids is a JSON list, so the containment check runs in Python rather
        than relying on a dialect-specific JSON operator.
        """
        with self.engine.connect() as conn:
            rows = conn.execute(select(_users.c.role_ids)).fetchall()
        return sum(1 for r in rows if role_id in (r.role_ids or []))


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleStore:
    """Repository for Role records."""

    _MUTABLE_FIELDS: set = {"name", "permissions"}

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_role(self, role: Role) -> int:
        """Insert a role and return its ID. Raises IntegrityError on a duplicate name."""
        now = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _roles.insert().values(
                    name=role.name,
                    permissions=list(role.permissions),
                    created_at=now,
                    updated_at=now,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, role_id: int) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.id == role_id)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_by_name(self, name: str) -> Role | None:
        with self.engine.connect() as conn:
            row = conn.execute(_roles.select().where(_roles.c.name == name)).fetchone()
        return _row_to_role(row) if row is not None else None

    def get_by_names(self, names: list[str]) -> list[Role]:
        """Return the roles whose names are in names. Missing names are simply absent."""
        if not names:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(_roles.select().where(_roles.c.name.in_(names)).order_by(_roles.c.id)).fetchall()
        return [_row_to_role(r) for r in rows]

    def get_many(self, role_ids: list[int]) -> list[Role]:
        """Resolve role ids to Role records, preserving the order of role_ids.

        Ids with no matching row (dangling references) are skipped.
        """
        if not role_ids:
            return []
        with self.engine.connect() as conn:
            rows = conn.execute(_roles.select().where(_roles.c.id.in_(role_ids))).fetchall()
        by_id = {r.id: _row_to_role(r) for r in rows}
        return [by_id[rid] for rid in role_ids if rid in by_id]

    def list_roles(self) -> list[Role]:
        with self.engine.connect() as conn:
            rows = conn.execute(_roles.select().order_by(_roles.c.name)).fetchall()
        return [_row_to_role(r) for r in rows]

    def update_role(self, role_id: int, **fields) -> bool:
        """Update name and/or permissions. Returns False if role_id was not found."""
        unknown = set(fields) - self._MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown role fields: {unknown!r}")
        fields["updated_at"] = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(_roles.update().where(_roles.c.id == role_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_role(self, role_id: int) -> bool:
        """Delete a role. Callers must check UserStore.count_with_role() first."""
        with self.engine.connect() as conn:
            result = conn.execute(_roles.delete().where(_roles.c.id == role_id))
            conn.commit()
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class SessionStore:
    """Repository for issued session tokens.

    A row is live while revoked is false and created_at is younger than
    ttl_seconds. Expired rows are unreachable through find_valid() even before
    purge_expired() physically removes them.
    """

    def __init__(self, engine: Engine, ttl_seconds: int = 3600) -> None:
        self.engine = engine
        self.ttl_seconds = ttl_seconds

    def _cutoff(self) -> str:
        return _iso(datetime.now(timezone.utc) - timedelta(seconds=self.ttl_seconds))

    def create(self, session: Session) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.insert().values(
                    token=session.token,
                    user_id=session.user_id,
                    revoked=session.revoked,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def find_valid(self, token: str) -> Session | None:
        """Return the live session for this exact token string, or None."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _sessions.select().where(
                    (_sessions.c.token == token)
                    & (_sessions.c.revoked == False)  # noqa: E712 -- SQL expression, not a Python comparison
                    & (_sessions.c.created_at > self._cutoff())
                )
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def revoke(self, token: str) -> bool:
        """Delete the live row for token. Returns True only if a row was removed."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _sessions.delete().where(
                    (_sessions.c.token == token) & (_sessions.c.revoked == False)  # noqa: E712
                )
            )
            conn.commit()
        return result.rowcount > 0

    def purge_expired(self) -> int:
        """Delete rows older than the TTL. Returns the number of rows removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.created_at <= self._cutoff()))
            conn.commit()
        return result.rowcount


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        username=row.username,
        email=row.email,
        hashed_password=row.hashed_password,
        role_ids=list(row.role_ids or []),
        permissions=list(row.permissions or []),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_role(row) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        permissions=list(row.permissions or []),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> Session:
    return Session(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        revoked=bool(row.revoked),
        created_at=row.created_at,
    )

"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services
do the work; these only own the domain shape.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class Role:
    """A named bundle of permission strings.

    Users reference roles by id; roles are never embedded in user rows.
    """

    name: str
    permissions: list[str] = field(default_factory=list)
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class User:
    """Represents an identity in Rolegate.

    role_ids is what the store persists. roles is filled in by the explicit
    role join in SessionManager.authenticate() (or UserStore callers that need
    it) and stays empty otherwise.

    permissions is the direct override set: when non-empty it replaces the
    role-derived permissions entirely for authorization.

    hashed_password is never serialized outward -- API response models omit it.
    """

    name: str
    username: str
    email: str
    hashed_password: str = ""
    role_ids: list[int] = field(default_factory=list)
    permissions: list[str] = field(default_factory=list)
    roles: list[Role] = field(default_factory=list)
    id: int | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Session:
    """An issued session token tracked server-side for revocation.

    Rows are append-only: created at login, deleted at logout, purged after
    the TTL. revoked exists for stores that mark instead of delete.
    """

    token: str
    user_id: int
    revoked: bool = False
    id: int | None = None
    created_at: str | None = None

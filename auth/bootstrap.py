"""
auth/bootstrap.py -- Default roles every deployment starts with.

"guest" is the role new accounts get when none is named; "admin" carries the
base permission that every policy entry accepts. Seeding is idempotent: only
missing roles are created and existing ones are never modified.
"""

from __future__ import annotations

import logging

from auth.models import Role
from auth.store import RoleStore

logger = logging.getLogger("rolegate.auth.bootstrap")

DEFAULT_ROLE = "guest"

DEFAULT_ROLES: tuple[Role, ...] = (
    Role(name="admin", permissions=["admin_granted"]),
    Role(name=DEFAULT_ROLE, permissions=[]),
)


def seed_default_roles(roles: RoleStore) -> list[str]:
    """Create any missing default roles. Returns the names that were created."""
    created: list[str] = []
    for role in DEFAULT_ROLES:
        if roles.get_by_name(role.name) is None:
            roles.create_role(Role(name=role.name, permissions=list(role.permissions)))
            created.append(role.name)
    if created:
        logger.info("Seeded default roles: %s", ", ".join(created))
    return created

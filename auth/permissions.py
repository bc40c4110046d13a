"""
auth/permissions.py -- Permission Resolver: the allow/deny decision per request.

The policy table maps each HTTP method to a scope and a base permission set.
The resource module is read from the URL at decision time, so one table
covers every module: GET /api/v1/users requires any of
{"admin_granted", "users_read"}, DELETE /api/v1/roles/3 any of
{"admin_granted", "roles_delete"}, and a new module needs no code here, only
permission strings following the <module>_<scope> convention.

Effective permissions are override-not-union: a user's own permission list,
when non-empty, replaces everything its roles would grant.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from auth.models import User
from core.errors import ServiceError

logger = logging.getLogger("rolegate.auth.permissions")


class Scope(str, Enum):
    READ = "read"
    WRITE = "write"
    UPDATE = "update"
    DELETE = "delete"


class Decision(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


@dataclass(frozen=True)
class PolicyEntry:
    method: str
    scope: Scope
    permissions: frozenset[str]


POLICY: tuple[PolicyEntry, ...] = (
    PolicyEntry("GET", Scope.READ, frozenset({"admin_granted"})),
    PolicyEntry("POST", Scope.WRITE, frozenset({"admin_granted"})),
    PolicyEntry("PATCH", Scope.UPDATE, frozenset({"admin_granted"})),
    PolicyEntry("DELETE", Scope.DELETE, frozenset({"admin_granted"})),
)


class PermissionResolver:
    """Decides whether a user may perform an HTTP method on a resource path.

    Usage:
        resolver = PermissionResolver()
        resolver.decide(user, "GET", "/api/v1/users/7")  # Decision.ALLOW or Decision.DENY
    """

    def __init__(self, policy: tuple[PolicyEntry, ...] = POLICY, api_prefix: str = "/api/v1") -> None:
        self._policy = {entry.method: entry for entry in policy}
        self.api_prefix = "/" + api_prefix.strip("/")

    def resource_module(self, path: str) -> str | None:
        """Return the first path segment after the API prefix, or None.

        "/api/v1/users/123?x=1" -> "users". Paths outside the prefix, or the
        bare prefix itself, have no module.
        """
        path = path.split("?", 1)[0]
        if path != self.api_prefix and not path.startswith(self.api_prefix + "/"):
            return None
        segment = path[len(self.api_prefix) :].lstrip("/").split("/", 1)[0]
        return segment or None

    def required_permissions(self, method: str, path: str) -> set[str] | None:
        """Return the permissions any one of which grants the request.

        None means the method has no policy entry -- the caller must deny.
        """
        entry = self._policy.get(method.upper())
        if entry is None:
            return None
        required = set(entry.permissions)
        module = self.resource_module(path)
        if module is not None:
            required.add(f"{module}_{entry.scope.value}")
        return required

    @staticmethod
    def effective_permissions(user: User) -> set[str]:
        """The user's own permissions if it has any, else the union over its roles."""
        if user.permissions:
            return set(user.permissions)
        merged: set[str] = set()
        for role in user.roles:
            merged.update(role.permissions)
        return merged

    def decide(self, user: User, method: str, path: str) -> Decision:
        """ALLOW iff the user holds at least one required permission.

        Unknown methods fail closed. Unexpected errors are raised as
        ServiceError INTERNAL rather than being read as a denial.
        """
        try:
            required = self.required_permissions(method, path)
            if required is None:
                logger.info("No policy for method %s; denying user_id=%s", method, user.id)
                return Decision.DENY
            granted = required & self.effective_permissions(user)
        except Exception as exc:
            logger.exception("Permission resolution failed for %s %s", method, path)
            raise ServiceError.internal("Permission validation failed") from exc

        if granted:
            return Decision.ALLOW
        logger.info("Denied %s %s for user_id=%s (required any of %s)", method, path, user.id, sorted(required))
        return Decision.DENY

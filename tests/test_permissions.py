"""Unit tests for auth/permissions.py -- the PermissionResolver decision.

Covers:
- Resource module extraction from request paths
- Required set = base permissions + <module>_<scope>
- Effective set: direct overrides replace role permissions; roles are unioned
- OR semantics: any one matching permission allows
- Unknown methods fail closed
- Unexpected errors surface as INTERNAL, never as DENY
"""

from unittest.mock import patch

import pytest

from auth.models import Role, User
from auth.permissions import POLICY, Decision, PermissionResolver, Scope
from core.errors import ErrorKind, ServiceError


def _user(roles: list[list[str]] | None = None, permissions: list[str] | None = None) -> User:
    return User(
        id=1,
        name="Test User",
        username="tester",
        email="tester@example.com",
        roles=[Role(name=f"r{i}", permissions=p) for i, p in enumerate(roles or [])],
        permissions=permissions or [],
    )


@pytest.fixture
def resolver() -> PermissionResolver:
    return PermissionResolver()


class TestResourceModule:
    @pytest.mark.parametrize(
        ("path", "module"),
        [
            ("/api/v1/users", "users"),
            ("/api/v1/users/", "users"),
            ("/api/v1/users/123", "users"),
            ("/api/v1/roles/7/extra", "roles"),
            ("/api/v1/users?page=2", "users"),
            ("/api/v1", None),
            ("/api/v1/", None),
            ("/api/v10/users", None),
            ("/elsewhere/users", None),
        ],
    )
    def test_module_from_path(self, resolver, path, module):
        assert resolver.resource_module(path) == module

    def test_custom_prefix(self):
        assert PermissionResolver(api_prefix="api/v2/").resource_module("/api/v2/orders/1") == "orders"


class TestRequiredPermissions:
    def test_policy_covers_the_four_methods(self):
        assert {e.method: e.scope for e in POLICY} == {
            "GET": Scope.READ,
            "POST": Scope.WRITE,
            "PATCH": Scope.UPDATE,
            "DELETE": Scope.DELETE,
        }

    def test_get_users(self, resolver):
        assert resolver.required_permissions("GET", "/api/v1/users") == {"admin_granted", "users_read"}

    def test_delete_user(self, resolver):
        assert resolver.required_permissions("DELETE", "/api/v1/users/1") == {"admin_granted", "users_delete"}

    def test_method_is_case_insensitive(self, resolver):
        assert resolver.required_permissions("patch", "/api/v1/roles/1") == {"admin_granted", "roles_update"}

    def test_unknown_method_has_no_policy(self, resolver):
        assert resolver.required_permissions("PUT", "/api/v1/users/1") is None

    def test_policy_table_is_not_mutated(self, resolver):
        resolver.required_permissions("GET", "/api/v1/users")
        resolver.required_permissions("GET", "/api/v1/roles")
        assert resolver.required_permissions("GET", "/api/v1/roles") == {"admin_granted", "roles_read"}


class TestEffectivePermissions:
    def test_union_of_roles_deduplicated(self):
        user = _user(roles=[["a", "b"], ["b", "c"]])
        assert PermissionResolver.effective_permissions(user) == {"a", "b", "c"}

    def test_override_replaces_roles(self):
        user = _user(roles=[["admin_granted"]], permissions=["users_read"])
        assert PermissionResolver.effective_permissions(user) == {"users_read"}

    def test_no_roles_no_permissions(self):
        assert PermissionResolver.effective_permissions(_user()) == set()


class TestDecide:
    def test_admin_role_reads_users(self, resolver):
        user = _user(roles=[["admin_granted"]])
        assert resolver.decide(user, "GET", "/api/v1/users") is Decision.ALLOW

    def test_viewer_cannot_delete_user(self, resolver):
        user = _user(roles=[["viewer"]])
        assert resolver.decide(user, "DELETE", "/api/v1/users/1") is Decision.DENY

    def test_module_permission_alone_is_enough(self, resolver):
        user = _user(roles=[["users_read"]])
        assert resolver.decide(user, "GET", "/api/v1/users/9") is Decision.ALLOW

    def test_module_permission_does_not_leak_to_other_modules(self, resolver):
        user = _user(roles=[["users_read"]])
        assert resolver.decide(user, "GET", "/api/v1/roles") is Decision.DENY

    def test_module_permission_does_not_leak_to_other_scopes(self, resolver):
        user = _user(roles=[["users_read"]])
        assert resolver.decide(user, "PATCH", "/api/v1/users/9") is Decision.DENY

    def test_override_denies_even_when_roles_would_allow(self, resolver):
        user = _user(roles=[["admin_granted"]], permissions=["roles_read"])
        assert resolver.decide(user, "GET", "/api/v1/users") is Decision.DENY
        assert resolver.decide(user, "GET", "/api/v1/roles") is Decision.ALLOW

    def test_unknown_method_fails_closed(self, resolver):
        user = _user(roles=[["admin_granted"]])
        assert resolver.decide(user, "PUT", "/api/v1/users/1") is Decision.DENY

    def test_unexpected_failure_is_internal(self, resolver):
        user = _user(roles=[["admin_granted"]])
        with patch.object(PermissionResolver, "effective_permissions", side_effect=RuntimeError("boom")):
            with pytest.raises(ServiceError) as exc:
                resolver.decide(user, "GET", "/api/v1/users")
        assert exc.value.kind is ErrorKind.INTERNAL

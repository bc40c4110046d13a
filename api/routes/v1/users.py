"""
api/routes/v1/users.py -- User management REST endpoints.

Routes:
  POST   /api/v1/users        -- create user (users_write or admin_granted)
  GET    /api/v1/users        -- list users (users_read or admin_granted)
  GET    /api/v1/users/{id}   -- user detail (users_read or admin_granted)
  PATCH  /api/v1/users/{id}   -- update user (users_update or admin_granted)
  DELETE /api/v1/users/{id}   -- delete user (users_delete or admin_granted)

Every route is authenticated, then authorized by the PermissionResolver. The
permission strings above are not configured here -- the resolver derives them
from the method and the "users" path segment.

Self-protection:
  PATCH with a roles field on your own id is a self-demotion and DELETE of
  your own id a self-deletion. Both are 409 and are checked before the
  permission decision, so they fire whatever the caller's permissions are.

Role references in request bodies are role names; _resolve_roles() turns them
into ids and fails with 404 if any name is unknown.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.models import MessageResponse, UserCreate, UserPatch, UserResponse
from auth.bootstrap import DEFAULT_ROLE
from auth.dependencies import authorize, get_current_user, require_permission
from auth.models import Role, User
from auth.store import RoleStore, UserStore
from auth.tokens import hash_password
from core.errors import ErrorCode, ServiceError

router = APIRouter()


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    current_user: User = Depends(require_permission),
) -> UserResponse:
    """Create a user. With no roles given the account gets the guest role."""
    user_store: UserStore = request.app.state.user_store
    role_store: RoleStore = request.app.state.role_store

    roles = _resolve_roles(role_store, body.roles or [DEFAULT_ROLE])
    new_user = User(
        name=body.name,
        username=body.username,
        email=body.email,
        hashed_password=hash_password(body.password),
        role_ids=[r.id for r in roles],
        permissions=body.permissions,
    )
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        raise ServiceError.conflict("A user with that username or email already exists") from exc

    created = _get_user_or_404(user_store, user_id)
    created.roles = roles
    return UserResponse.from_user(created)


@router.get("/users", response_model=list[UserResponse])
def list_users(
    request: Request,
    current_user: User = Depends(require_permission),
) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    role_store: RoleStore = request.app.state.role_store

    users = user_store.list_users()
    # One role query for the whole page instead of one per user.
    role_ids = sorted({rid for u in users for rid in u.role_ids})
    by_id = {r.id: r for r in role_store.get_many(role_ids)}
    for u in users:
        u.roles = [by_id[rid] for rid in u.role_ids if rid in by_id]
    return [UserResponse.from_user(u) for u in users]


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(require_permission),
) -> UserResponse:
    user_store: UserStore = request.app.state.user_store
    role_store: RoleStore = request.app.state.role_store

    user = _get_user_or_404(user_store, user_id)
    user.roles = role_store.get_many(user.role_ids)
    return UserResponse.from_user(user)


@router.patch("/users/{user_id}", response_model=UserResponse)
def update_user(
    request: Request,
    user_id: int,
    body: UserPatch,
    current_user: User = Depends(get_current_user),
) -> UserResponse:
    """Update a user's profile, password, roles or direct permissions."""
    if user_id == current_user.id and body.roles is not None:
        raise ServiceError.conflict("You cannot change your own roles", ErrorCode.SELF_DEMOTION)
    authorize(request, current_user)

    user_store: UserStore = request.app.state.user_store
    role_store: RoleStore = request.app.state.role_store
    _get_user_or_404(user_store, user_id)

    updates: dict = {}
    for field in ("name", "username", "email", "permissions"):
        value = getattr(body, field)
        if value is not None:
            updates[field] = value
    if body.password is not None:
        updates["hashed_password"] = hash_password(body.password)
    if body.roles is not None:
        updates["role_ids"] = [r.id for r in _resolve_roles(role_store, body.roles)]

    if not updates:
        raise ServiceError.validation([{"field": "body", "message": "No fields to update"}])

    try:
        user_store.update_user(user_id, **updates)
    except IntegrityError as exc:
        raise ServiceError.conflict("A user with that username or email already exists") from exc

    updated = _get_user_or_404(user_store, user_id)
    updated.roles = role_store.get_many(updated.role_ids)
    return UserResponse.from_user(updated)


@router.delete("/users/{user_id}", response_model=MessageResponse)
def delete_user(
    request: Request,
    user_id: int,
    current_user: User = Depends(get_current_user),
) -> MessageResponse:
    if user_id == current_user.id:
        raise ServiceError.conflict("You cannot delete your own account", ErrorCode.SELF_DELETION)
    authorize(request, current_user)

    user_store: UserStore = request.app.state.user_store
    if not user_store.delete_user(user_id):
        raise ServiceError.not_found("User not found", ErrorCode.USER_NOT_FOUND)
    return MessageResponse(message="User deleted successfully")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_user_or_404(user_store: UserStore, user_id: int) -> User:
    user = user_store.get_by_id(user_id)
    if user is None:
        raise ServiceError.not_found("User not found", ErrorCode.USER_NOT_FOUND)
    return user


def _resolve_roles(role_store: RoleStore, names: list[str]) -> list[Role]:
    """Map role names to Role records. Every name must exist."""
    roles = role_store.get_by_names(names)
    if len(roles) != len(set(names)):
        raise ServiceError.not_found("Role not found", ErrorCode.DOCUMENTS_NOT_FOUND)
    return roles

"""
api/routes/v1/roles.py -- Role management REST endpoints.

Routes:
  POST   /api/v1/roles        -- create role (roles_write or admin_granted)
  GET    /api/v1/roles        -- list roles (roles_read or admin_granted)
  GET    /api/v1/roles/{id}   -- role detail (roles_read or admin_granted)
  PATCH  /api/v1/roles/{id}   -- rename / replace permissions (roles_update or admin_granted)
  DELETE /api/v1/roles/{id}   -- delete role (roles_delete or admin_granted)

A role that any user still references cannot be deleted (409 ROLE_IN_USE).
Renames and permission changes take effect on each holder's next request,
since authentication re-reads roles every time.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.exc import IntegrityError

from api.models import MessageResponse, RoleCreate, RolePatch, RoleResponse
from auth.dependencies import require_permission
from auth.models import Role, User
from auth.store import RoleStore, UserStore
from core.errors import ErrorCode, ServiceError

router = APIRouter()


@router.post("/roles", response_model=RoleResponse, status_code=201)
def create_role(
    request: Request,
    body: RoleCreate,
    current_user: User = Depends(require_permission),
) -> RoleResponse:
    role_store: RoleStore = request.app.state.role_store
    try:
        role_id = role_store.create_role(Role(name=body.name, permissions=body.permissions))
    except IntegrityError as exc:
        raise ServiceError.conflict("A role with that name already exists") from exc
    return RoleResponse.from_role(_get_role_or_404(role_store, role_id))


@router.get("/roles", response_model=list[RoleResponse])
def list_roles(
    request: Request,
    current_user: User = Depends(require_permission),
) -> list[RoleResponse]:
    role_store: RoleStore = request.app.state.role_store
    return [RoleResponse.from_role(r) for r in role_store.list_roles()]


@router.get("/roles/{role_id}", response_model=RoleResponse)
def get_role(
    request: Request,
    role_id: int,
    current_user: User = Depends(require_permission),
) -> RoleResponse:
    role_store: RoleStore = request.app.state.role_store
    return RoleResponse.from_role(_get_role_or_404(role_store, role_id))


@router.patch("/roles/{role_id}", response_model=RoleResponse)
def update_role(
    request: Request,
    role_id: int,
    body: RolePatch,
    current_user: User = Depends(require_permission),
) -> RoleResponse:
    role_store: RoleStore = request.app.state.role_store
    _get_role_or_404(role_store, role_id)

    updates = body.model_dump(exclude_none=True)
    if not updates:
        raise ServiceError.validation([{"field": "body", "message": "No fields to update"}])
    try:
        role_store.update_role(role_id, **updates)
    except IntegrityError as exc:
        raise ServiceError.conflict("A role with that name already exists") from exc
    return RoleResponse.from_role(_get_role_or_404(role_store, role_id))


@router.delete("/roles/{role_id}", response_model=MessageResponse)
def delete_role(
    request: Request,
    role_id: int,
    current_user: User = Depends(require_permission),
) -> MessageResponse:
    """Delete a role nobody holds any more."""
    role_store: RoleStore = request.app.state.role_store
    user_store: UserStore = request.app.state.user_store

    _get_role_or_404(role_store, role_id)
    holders = user_store.count_with_role(role_id)
    if holders:
        raise ServiceError.conflict(f"Role is assigned to {holders} user(s)", ErrorCode.ROLE_IN_USE)
    role_store.delete_role(role_id)
    return MessageResponse(message="Role deleted successfully")


def _get_role_or_404(role_store: RoleStore, role_id: int) -> Role:
    role = role_store.get_by_id(role_id)
    if role is None:
        raise ServiceError.not_found("Role not found")
    return role

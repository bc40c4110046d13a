"""
api/routes/v1/auth.py -- Session endpoints.

Routes:
  POST /api/v1/auth/register   -- create an account with the guest role (public)
  POST /api/v1/auth/login      -- email/password login; sets the access_token cookie (public)
  POST /api/v1/auth/logout     -- revokes the session and clears the cookie (requires auth)
  GET  /api/v1/auth/me         -- current user with roles (requires auth)

Security:
  SessionManager.issue() equalizes timing and returns one error for unknown
  email and wrong password -- use it, never inline the lookup + compare.
  Cache-Control: no-store on login responses so the token is never cached.

These routes authenticate but do not go through the PermissionResolver: every
signed-in user may log out and read their own profile.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

from api.models import LoginRequest, LoginResponse, MessageResponse, RegisterRequest, UserResponse
from auth.bootstrap import DEFAULT_ROLE
from auth.dependencies import extract_token, get_current_user
from auth.models import User
from auth.sessions import SessionManager
from auth.store import RoleStore, UserStore
from auth.tokens import clear_auth_cookie, hash_password, set_auth_cookie
from core.errors import ErrorCode, ServiceError

router = APIRouter()


@router.post("/auth/register", response_model=UserResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> UserResponse:
    """Create a new account holding only the default guest role."""
    user_store: UserStore = request.app.state.user_store
    role_store: RoleStore = request.app.state.role_store

    guest = role_store.get_by_name(DEFAULT_ROLE)
    if guest is None:
        raise ServiceError.not_found("Role not found", ErrorCode.DOCUMENTS_NOT_FOUND)

    new_user = User(
        name=body.name,
        username=body.username,
        email=body.email,
        hashed_password=hash_password(body.password),
        role_ids=[guest.id],
    )
    try:
        user_id = user_store.create_user(new_user)
    except IntegrityError as exc:
        raise ServiceError.conflict("A user with that username or email already exists") from exc

    created = user_store.get_by_id(user_id)
    created.roles = [guest]
    return UserResponse.from_user(created)


@router.post("/auth/login", response_model=LoginResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; set the access_token cookie."""
    manager: SessionManager = request.app.state.session_manager
    settings = request.app.state.settings

    token = manager.issue(body.email, body.password)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(
            message="Login successful",
            token=token,
            expires_in=manager.ttl_seconds,
        ).model_dump(),
    )
    set_auth_cookie(resp, token, expire_seconds=manager.ttl_seconds, secure=settings.secure_cookies)
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request, current_user: User = Depends(get_current_user)) -> JSONResponse:
    """Revoke the current session and clear the cookie."""
    manager: SessionManager = request.app.state.session_manager
    settings = request.app.state.settings

    manager.revoke(extract_token(request))
    resp = JSONResponse(content=MessageResponse(message="Logout successful").model_dump())
    clear_auth_cookie(resp, secure=settings.secure_cookies)
    return resp


@router.get("/auth/me", response_model=UserResponse)
def me(current_user: User = Depends(get_current_user)) -> UserResponse:
    """Return the authenticated user, roles included."""
    return UserResponse.from_user(current_user)

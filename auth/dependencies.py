"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Two token sources are checked in priority order:
  1. JWT cookie ("access_token") -- set by POST /auth/login.
  2. Authorization: Bearer <token> header -- API clients that keep the token.

get_current_user() authenticates through the SessionManager on app.state and
attaches the user to request.state.user. require_permission() adds the
PermissionResolver decision. authorize() is the same decision as a plain
call, for routes that must run their own checks between the two steps.

Both services are read from app.state, where the lifespan put them. Failures
are raised as ServiceError; api/main.py maps them to status codes.

Layer rule: auth/dependencies.py may import from fastapi because it is part
of the FastAPI dependency injection system. No imports from api/.
"""

from __future__ import annotations

from fastapi import Depends, Request

from auth.models import User
from auth.permissions import Decision, PermissionResolver
from auth.sessions import SessionManager
from auth.tokens import COOKIE_NAME
from core.errors import ServiceError


def extract_token(request: Request) -> str | None:
    """Return the session token from the cookie, or the Bearer header as fallback."""
    token = request.cookies.get(COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:].strip()
    return token or None


def get_current_user(request: Request) -> User:
    """Require authentication. Raises ServiceError UNAUTHORIZED if the request is not authenticated.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: User = Depends(get_current_user)): ...
    """
    manager: SessionManager = request.app.state.session_manager
    user = manager.authenticate(extract_token(request))
    request.state.user = user
    return user


def authorize(request: Request, user: User) -> None:
    """Raise ServiceError FORBIDDEN unless user may perform this request's method on its path."""
    resolver: PermissionResolver = request.app.state.permission_resolver
    decision = resolver.decide(user, request.method, request.url.path)
    if decision is not Decision.ALLOW:
        raise ServiceError.forbidden()


def require_permission(request: Request, user: User = Depends(get_current_user)) -> User:
    """Require authentication and a permission matching the method and resource module.

    Use as a FastAPI dependency:
        @router.get("/users")
        async def route(user: User = Depends(require_permission)): ...
    """
    authorize(request, user)
    return user

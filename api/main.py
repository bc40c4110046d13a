"""
api/main.py -- FastAPI application entry point for Rolegate.

Run with:  uvicorn asgi:app --reload

Middleware stack (outermost to innermost):
  1. TrustedHostMiddleware -- rejects requests with unexpected Host headers
  2. CORSMiddleware        -- adds CORS headers (with credentials, for the cookie)
  3. log_requests          -- one access-log line per request

Lifespan builds every long-lived object once -- Settings, the Engine, the three
stores, SessionManager, PermissionResolver -- and stores them on app.state.
Routes and dependencies read them from there; nothing is a module-level
singleton. Shutdown cancels the session purge task and disposes the Engine.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException

from api.models import ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.roles import router as roles_router
from api.routes.v1.users import router as users_router
from auth.bootstrap import seed_default_roles
from auth.permissions import PermissionResolver
from auth.sessions import SessionManager
from auth.store import RoleStore, SessionStore, UserStore, create_db_engine
from core.config import get_settings
from core.errors import ErrorCode, ServiceError

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("rolegate.api")

_settings = get_settings()

# ---------------------------------------------------------------------------
# Background purge task
# ---------------------------------------------------------------------------


async def _purge_loop(app: FastAPI, interval_seconds: int) -> None:
    """Delete expired session rows every interval_seconds.

    Expired rows are already unreachable through SessionStore.find_valid();
    this only keeps the table small. CancelledError from task.cancel() during
    shutdown propagates out of asyncio.sleep and unwinds the coroutine.
    """
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            app.state.session_manager.purge_expired()
        except SQLAlchemyError:
            logger.exception("Session purge failed; retrying in %ds", interval_seconds)


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the stores and services on startup; tear them down on shutdown."""
    settings = get_settings()
    logger.info("Rolegate API starting up")

    engine = create_db_engine(settings.database_url)
    app.state.settings = settings
    app.state.engine = engine
    app.state.user_store = UserStore(engine)
    app.state.role_store = RoleStore(engine)
    app.state.session_store = SessionStore(engine, ttl_seconds=settings.token_expire_seconds)
    app.state.session_manager = SessionManager(
        app.state.user_store,
        app.state.role_store,
        app.state.session_store,
        secret_key=settings.secret_key,
        ttl_seconds=settings.token_expire_seconds,
    )
    app.state.permission_resolver = PermissionResolver(api_prefix=settings.api_prefix)
    if settings.seed_default_roles:
        seed_default_roles(app.state.role_store)
    logger.info("Auth initialized (session ttl=%ds)", settings.token_expire_seconds)

    app.state.purge_task = asyncio.create_task(_purge_loop(app, settings.session_purge_interval_seconds))

    yield

    app.state.purge_task.cancel()
    engine.dispose()
    logger.info("Rolegate API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Rolegate API",
    description="Users, roles, and cookie-session authentication with per-module permissions.",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=_settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Content-Type", "Authorization"],
    max_age=3600,
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
# ---------------------------------------------------------------------------

app.include_router(auth_router, prefix=_settings.api_prefix, tags=["Auth"])
app.include_router(users_router, prefix=_settings.api_prefix, tags=["Users"])
app.include_router(roles_router, prefix=_settings.api_prefix, tags=["Roles"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# Every handler returns the same {message, errorCode, errors?} envelope so
# API clients can parse errors uniformly.
# ---------------------------------------------------------------------------


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Map a typed service failure to its HTTP status.

    Internal failures keep their generic message; the cause was already
    logged where it was wrapped.
    """
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 400 with one {field, message} entry per failed constraint."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"),
            "message": err.get("msg", "Invalid value"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(status_code=400, content=ServiceError.validation(errors).to_dict())


_HTTP_ERROR_CODES: dict[int, ErrorCode] = {
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.DOCUMENT_NOT_FOUND,
    405: ErrorCode.METHOD_NOT_ALLOWED,
}


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Wrap framework HTTP errors (404 on unknown routes, 405, ...) in the same envelope."""
    code = _HTTP_ERROR_CODES.get(exc.status_code)
    if code is None:
        code = ErrorCode.VALIDATION_ERROR if exc.status_code < 500 else ErrorCode.INTERNAL_SERVER_ERROR
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(message=str(exc.detail), errorCode=int(code)).model_dump(exclude_none=True),
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception goes to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ServiceError.internal().to_dict(),
    )


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# ---------------------------------------------------------------------------


@app.get(f"{_settings.api_prefix}/health", tags=["Health"])
@app.get(f"{_settings.api_prefix}/healthy", tags=["Health"], include_in_schema=False)
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)

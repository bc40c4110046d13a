"""
auth/sessions.py -- Session Manager: login, per-request authentication, logout.

One SessionManager is built in the application lifespan from the three stores
and the signing key, then shared through app.state. It holds no per-request
state, so concurrent requests need no locking: each login inserts its own
session row and logout deletes exactly one.

Failure policy:
  issue()        -> ServiceError INVALID_CREDENTIALS, identical for unknown
                    email and wrong password.
  authenticate() -> ServiceError UNAUTHORIZED for every token problem
                    (missing, malformed, bad signature, expired, revoked,
                    never issued, owner gone). Data-store failures become
                    ServiceError INTERNAL so the boundary answers 500, not 401.
  revoke()       -> bool, never raises for unknown tokens.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from jose import ExpiredSignatureError, JWTError
from sqlalchemy.exc import SQLAlchemyError

from auth.models import Session, User
from auth.store import RoleStore, SessionStore, UserStore
from auth.tokens import burn_password_check, create_access_token, decode_access_token, verify_password
from core.errors import ErrorCode, ServiceError

logger = logging.getLogger("rolegate.auth")


class SessionManager:
    """Issues, validates and revokes session tokens."""

    def __init__(
        self,
        users: UserStore,
        roles: RoleStore,
        sessions: SessionStore,
        secret_key: str,
        ttl_seconds: int = 3600,
    ) -> None:
        self.users = users
        self.roles = roles
        self.sessions = sessions
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds

    def issue(self, email: str, password: str) -> str:
        """Verify credentials and return a freshly signed, persisted session token.

        bcrypt runs whether or not the email exists, so response time does not
        reveal which emails are registered.
        """
        user = self.users.get_by_email(email)
        if user is None:
            burn_password_check(password)
            logger.info("Login failed: unknown email")
            raise ServiceError.invalid_credentials()
        if not verify_password(password, user.hashed_password):
            logger.info("Login failed: bad password for user_id=%s", user.id)
            raise ServiceError.invalid_credentials()

        token = create_access_token(user.id, self._secret_key, self.ttl_seconds)
        self.sessions.create(Session(token=token, user_id=user.id))
        logger.info("Session issued for user_id=%s", user.id)
        return token

    def authenticate(self, token: str | None) -> User:
        """Return the token's owner with roles loaded, or raise UNAUTHORIZED."""
        if not token:
            raise ServiceError.unauthorized()

        try:
            claims = decode_access_token(token, self._secret_key)
        except ExpiredSignatureError as exc:
            raise ServiceError.unauthorized("Session expired", ErrorCode.TOKEN_EXPIRED) from exc
        except JWTError as exc:
            raise ServiceError.unauthorized("Invalid credentials") from exc

        try:
            user_id = int(claims["sub"])
        except (TypeError, ValueError) as exc:
            raise ServiceError.unauthorized("Invalid credentials") from exc

        try:
            session = self.sessions.find_valid(token)
            if session is None or session.user_id != user_id:
                raise ServiceError.unauthorized("Invalid credentials")
            user = self.users.get_by_id(user_id)
            if user is None:
                raise ServiceError.unauthorized("Invalid credentials")
            user.roles = self.roles.get_many(user.role_ids)
        except SQLAlchemyError as exc:
            logger.exception("Session lookup failed")
            raise ServiceError.internal("Token verification failed") from exc
        return user

    def revoke(self, token: str) -> bool:
        """End the session for token. Returns False if there was nothing to end."""
        revoked = self.sessions.revoke(token)
        if revoked:
            logger.info("Session revoked")
        return revoked

    def purge_expired(self) -> int:
        removed = self.sessions.purge_expired()
        if removed:
            logger.info("Purged %d expired sessions", removed)
        return removed

"""
auth/tokens.py -- JWT, password hashing, and cookie utilities.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry sub (user id as a string), iat,
       exp, and a random jti. The jti keeps two logins in the same second from
       minting byte-identical tokens, which would collide in the sessions
       table. decode_access_token() raises jose's JWTError family; the
       SessionManager turns every variant into an authentication failure.

  Passwords: bcrypt, used directly. _DUMMY_HASH enables timing equalization
       in SessionManager.issue() so response time does not reveal whether an
       email exists.

  Keys: the signing key is passed in by the caller. Nothing here reads
       settings -- the lifespan builds the SessionManager with the key.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

import bcrypt
from jose import JWTError, jwt

ALGORITHM = "HS256"
COOKIE_NAME = "access_token"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes. The API caps passwords at 100
    characters; longer multi-byte inputs are truncated by bcrypt itself.
    """
    return bcrypt.hashpw(plain.encode("utf-8")[:72], bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. A malformed stored hash is a
    mismatch, not an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8")[:72], hashed.encode("utf-8"))
    except ValueError:
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("rolegate_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a full bcrypt check against a throwaway hash and discard the result."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, secret_key: str, expire_seconds: int = 3600) -> str:
    """Encode a signed JWT whose subject is the user id, expiring in expire_seconds."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + timedelta(seconds=expire_seconds),
        "jti": secrets.token_hex(16),
    }
    return jwt.encode(payload, secret_key, algorithm=ALGORITHM)


def decode_access_token(token: str, secret_key: str) -> dict:
    """Verify signature and expiry and return the claims.

    Raises jose.ExpiredSignatureError for an expired token and jose.JWTError
    for anything else (bad signature, malformed, wrong algorithm). A token
    without a sub claim is rejected with JWTError as well.
    """
    payload = jwt.decode(token, secret_key, algorithms=[ALGORITHM])
    if not payload.get("sub"):
        raise JWTError("Token has no subject")
    return payload


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_auth_cookie(response, token: str, expire_seconds: int = 3600, secure: bool = False) -> None:
    """Write the session token as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie.
    samesite="none": the cookie travels on cross-site requests so a separately
        hosted frontend can call the API. Browsers only honour SameSite=None
        together with Secure, so production must set SECURE_COOKIES=true.
    max_age: matches the JWT expiry so both expire together.
    """
    response.set_cookie(
        COOKIE_NAME,
        value=token,
        httponly=True,
        samesite="none",
        secure=secure,
        max_age=expire_seconds,
    )


def clear_auth_cookie(response, secure: bool = False) -> None:
    response.delete_cookie(COOKIE_NAME, httponly=True, samesite="none", secure=secure)

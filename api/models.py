"""
API request and response models for Rolegate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Response models never carry a password hash: UserResponse has no such field,
so it cannot leak even if a handler forgets to strip it.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Role, User

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"

_Email = Annotated[str, Field(max_length=100, pattern=EMAIL_PATTERN)]
_Password = Annotated[str, Field(min_length=8, max_length=100)]
_Name = Annotated[str, Field(min_length=5, max_length=100)]
_Username = Annotated[str, Field(min_length=5, max_length=50)]
_Permission = Annotated[str, Field(min_length=1, max_length=100)]


def _dedupe(values: list) -> list[str]:
    """Drop duplicate strings while preserving order.

    Non-list input and non-string items are passed through untouched so
    Pydantic reports the type error.
    """
    if not isinstance(values, list):
        return values
    seen: set[str] = set()
    result: list = []
    for v in values:
        if not isinstance(v, str):
            result.append(v)
            continue
        s = v.strip()
        if s not in seen:
            seen.add(s)
            result.append(s)
    return result


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: _Email
    password: _Password


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    token: str
    expires_in: int


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register.

    Self-registration cannot pick roles; new accounts always start as guest.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: _Name
    username: _Username
    email: _Email
    password: _Password


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /api/v1/users.

    roles are role names, resolved to ids by the route. Omitted or empty means
    the default guest role.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: _Name
    username: _Username
    email: _Email
    password: _Password
    roles: list[str] = Field(default_factory=list, max_length=20)
    permissions: list[_Permission] = Field(default_factory=list, max_length=100)

    @field_validator("roles", "permissions", mode="before")
    @classmethod
    def dedupe(cls, values: list) -> list[str]:
        return _dedupe(values or [])


class UserPatch(BaseModel):
    """Request body for PATCH /api/v1/users/{id}. Every field is optional.

    Sending roles for your own account is rejected as self-demotion, even if
    the list is unchanged.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[_Name] = None
    username: Optional[_Username] = None
    email: Optional[_Email] = None
    password: Optional[_Password] = None
    roles: Optional[list[str]] = Field(default=None, max_length=20)
    permissions: Optional[list[_Permission]] = Field(default=None, max_length=100)

    @field_validator("roles", "permissions", mode="before")
    @classmethod
    def dedupe(cls, values: Optional[list]) -> Optional[list[str]]:
        return None if values is None else _dedupe(values)


class RoleResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    permissions: list[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            permissions=list(role.permissions),
            created_at=role.created_at or "",
            updated_at=role.updated_at or "",
        )


class UserResponse(BaseModel):
    """Outward view of a user. roles is populated only where the route loaded them."""

    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    username: str
    email: str
    roles: list[RoleResponse]
    permissions: list[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            name=user.name,
            username=user.username,
            email=user.email,
            roles=[RoleResponse.from_role(r) for r in user.roles],
            permissions=list(user.permissions),
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


# ---------------------------------------------------------------------------
# Roles
# ---------------------------------------------------------------------------


class RoleCreate(BaseModel):
    """Request body for POST /api/v1/roles."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=2, max_length=50)
    permissions: list[_Permission] = Field(default_factory=list, max_length=100)

    @field_validator("permissions", mode="before")
    @classmethod
    def dedupe(cls, values: list) -> list[str]:
        return _dedupe(values or [])


class RolePatch(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    permissions: Optional[list[_Permission]] = Field(default=None, max_length=100)

    @field_validator("permissions", mode="before")
    @classmethod
    def dedupe(cls, values: Optional[list]) -> Optional[list[str]]:
        return None if values is None else _dedupe(values)


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class FieldError(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    message: str


class ErrorResponse(BaseModel):
    """Envelope for every error response.

    errorCode is the stable numeric code from core.errors.ErrorCode. errors
    is present only when there is detail to report (validation failures).
    """

    model_config = ConfigDict(frozen=True)

    message: str
    errorCode: int
    errors: Optional[list[FieldError]] = None


class HealthResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str

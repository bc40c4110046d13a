"""
core/errors.py -- The single failure type raised by Rolegate services.

Every expected failure is a ServiceError tagged with an ErrorKind. The kind
decides the HTTP status (STATUS_BY_KIND); the ErrorCode is the stable numeric
code clients switch on. Services raise, the API boundary in api/main.py maps.
Nothing below the boundary knows about HTTP status codes except through this
table.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from __future__ import annotations

from enum import Enum, IntEnum
from typing import Any


class ErrorKind(str, Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    INTERNAL = "internal"


class ErrorCode(IntEnum):
    DOCUMENT_NOT_FOUND = 1001
    DOCUMENTS_NOT_FOUND = 1002
    DOCUMENT_ALREADY_EXISTS = 1011
    ROLE_IN_USE = 1012
    TOKEN_EXPIRED = 2002
    INTERNAL_SERVER_ERROR = 3001
    UNAUTHORIZED = 4001
    FORBIDDEN = 4002
    INVALID_CREDENTIALS = 4003
    USER_NOT_FOUND = 6001
    SELF_DEMOTION = 7001
    SELF_DELETION = 7002
    VALIDATION_ERROR = 10001
    METHOD_NOT_ALLOWED = 10002


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.INVALID_CREDENTIALS: 401,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.CONFLICT: 409,
    ErrorKind.VALIDATION: 400,
    ErrorKind.INTERNAL: 500,
}


def status_for(kind: ErrorKind) -> int:
    """Return the HTTP status for an error kind. Raises KeyError on an unmapped kind."""
    return STATUS_BY_KIND[kind]


class ServiceError(Exception):
    """A typed, expected failure.

    message is safe to show to clients. details is an optional structured
    payload (e.g. the field list of a validation failure) and is serialized
    as the "errors" member of the response envelope.
    """

    def __init__(self, kind: ErrorKind, message: str, code: ErrorCode, details: Any = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code
        self.details = details

    def __repr__(self) -> str:
        return f"ServiceError(kind={self.kind.value!r}, code={int(self.code)}, message={self.message!r})"

    @property
    def status_code(self) -> int:
        return status_for(self.kind)

    def to_dict(self) -> dict:
        body: dict = {"message": self.message, "errorCode": int(self.code)}
        if self.details:
            body["errors"] = self.details
        return body

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def invalid_credentials(cls) -> ServiceError:
        # One message for "no such user" and "wrong password" alike.
        return cls(ErrorKind.INVALID_CREDENTIALS, "Invalid credentials", ErrorCode.INVALID_CREDENTIALS)

    @classmethod
    def unauthorized(cls, message: str = "Authentication required", code: ErrorCode = ErrorCode.UNAUTHORIZED) -> ServiceError:
        return cls(ErrorKind.UNAUTHORIZED, message, code)

    @classmethod
    def forbidden(cls, message: str = "Insufficient permissions") -> ServiceError:
        return cls(ErrorKind.FORBIDDEN, message, ErrorCode.FORBIDDEN)

    @classmethod
    def not_found(cls, message: str, code: ErrorCode = ErrorCode.DOCUMENT_NOT_FOUND) -> ServiceError:
        return cls(ErrorKind.NOT_FOUND, message, code)

    @classmethod
    def conflict(cls, message: str, code: ErrorCode = ErrorCode.DOCUMENT_ALREADY_EXISTS) -> ServiceError:
        return cls(ErrorKind.CONFLICT, message, code)

    @classmethod
    def validation(cls, errors: list[dict]) -> ServiceError:
        return cls(ErrorKind.VALIDATION, "Validation failed", ErrorCode.VALIDATION_ERROR, errors)

    @classmethod
    def internal(cls, message: str = "Internal Server Error") -> ServiceError:
        return cls(ErrorKind.INTERNAL, message, ErrorCode.INTERNAL_SERVER_ERROR)

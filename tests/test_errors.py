"""Unit tests for core/errors.py -- status mapping and the response envelope."""

import pytest

from core.errors import STATUS_BY_KIND, ErrorCode, ErrorKind, ServiceError, status_for


def test_every_kind_has_a_status():
    assert set(STATUS_BY_KIND) == set(ErrorKind)


@pytest.mark.parametrize(
    ("error", "status"),
    [
        (ServiceError.invalid_credentials(), 401),
        (ServiceError.unauthorized(), 401),
        (ServiceError.forbidden(), 403),
        (ServiceError.not_found("Role not found"), 404),
        (ServiceError.conflict("dup"), 409),
        (ServiceError.validation([{"field": "email", "message": "bad"}]), 400),
        (ServiceError.internal(), 500),
    ],
)
def test_constructor_status(error, status):
    assert error.status_code == status
    assert status_for(error.kind) == status


def test_envelope_without_details():
    assert ServiceError.forbidden().to_dict() == {
        "message": "Insufficient permissions",
        "errorCode": ErrorCode.FORBIDDEN.value,
    }


def test_envelope_with_field_errors():
    body = ServiceError.validation([{"field": "password", "message": "too short"}]).to_dict()
    assert body["errorCode"] == 10001
    assert body["errors"] == [{"field": "password", "message": "too short"}]

"""
Name: ErpError to HTTP Mapping Tests

Responsibilities:
  - Each taxonomy code maps to its RFC 7807 factory status
  - Field errors flatten into errors[]
  - 401 carries WWW-Authenticate; unmapped codes fall through to 500
"""

import pytest

from erp.api.exception_handlers import to_http_exception
from erp.crosscutting.error_responses import ErrorCode
from erp.crosscutting.exceptions import (
    ConflictError,
    ErpError,
    ForbiddenError,
    NotFoundError,
    PreconditionFailedError,
    UnauthenticatedError,
    ValidationError,
)

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "exc, status, code",
    [
        (UnauthenticatedError(), 401, ErrorCode.UNAUTHENTICATED),
        (ForbiddenError(), 403, ErrorCode.FORBIDDEN),
        (NotFoundError("Customer", "c-1"), 404, ErrorCode.NOT_FOUND),
        (ConflictError("Email already in use"), 409, ErrorCode.CONFLICT),
        (PreconditionFailedError("Invoice is already void"), 412, ErrorCode.PRECONDITION_FAILED),
    ],
)
def test_taxonomy_status(exc, status, code):
    app_exc = to_http_exception(exc)

    assert app_exc.status_code == status
    assert app_exc.code == code
    assert app_exc.detail == exc.message


def test_validation_errors_are_flattened():
    exc = ValidationError("Invalid input", field_errors={"email": ["Field cannot be null"]})

    app_exc = to_http_exception(exc)

    assert app_exc.status_code == 422
    assert app_exc.errors == [{"field": "email", "msg": "Field cannot be null"}]


def test_unauthenticated_asks_for_bearer():
    app_exc = to_http_exception(UnauthenticatedError())
    assert app_exc.headers == {"WWW-Authenticate": "Bearer"}


def test_unmapped_code_has_no_http_mapping():
    assert to_http_exception(ErpError("boom")) is None

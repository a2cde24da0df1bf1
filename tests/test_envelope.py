# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

import httpx
import pytest

from coreason_keycloak.envelope import GENERIC_ERROR_MESSAGE, STATUS_MAPPING, ApiResponse, ResponseStatus, error_response
from coreason_keycloak.exceptions import (
    CacheLockError,
    ConfigMissingError,
    CoreasonKeycloakError,
    ErrorKind,
    MalformedTokenError,
    ProviderRejectedError,
    SigningKeyNotFoundError,
    TokenExpiredError,
    TransportError,
    UnauthorizedError,
    UnsupportedAlgorithmError,
)


def test_every_kind_is_mapped() -> None:
    assert set(STATUS_MAPPING) == set(ErrorKind)


def test_ok_envelope() -> None:
    response = ApiResponse.ok({"email": "alice@coreason.ai"})
    assert response.model_dump() == {
        "status": ResponseStatus.OK,
        "message": "",
        "data": {"email": "alice@coreason.ai"},
    }


@pytest.mark.parametrize(
    ("exc", "status_code"),
    [
        (UnauthorizedError(), 401),
        (TokenExpiredError("Token has expired"), 401),
        (SigningKeyNotFoundError("Signing key 'k' not found in the cached key set"), 401),
        (MalformedTokenError("Token is not a compact JWS"), 400),
        (UnsupportedAlgorithmError("Algorithm 'HS256' is not supported"), 400),
    ],
)
def test_recoverable_errors_pass_message_through(exc: CoreasonKeycloakError, status_code: int) -> None:
    code, body = error_response(exc)
    assert code == status_code
    assert body.status == ResponseStatus.ERROR
    assert body.message == str(exc)
    assert body.data is None


@pytest.mark.parametrize(
    ("exc", "status_code"),
    [
        (ProviderRejectedError(500, "java.lang.NullPointerException at org.keycloak..."), 502),
        (TransportError(httpx.ConnectError("connect to 10.0.0.12:8443 refused")), 503),
        (CacheLockError("failed to acquire read lock on signing key cache"), 500),
        (ConfigMissingError("KEYCLOAK_CLIENT_SECRET"), 500),
    ],
)
def test_fatal_errors_hide_details(exc: CoreasonKeycloakError, status_code: int) -> None:
    code, body = error_response(exc)
    assert code == status_code
    assert body.status == ResponseStatus.ERROR
    assert body.message == GENERIC_ERROR_MESSAGE


def test_foreign_exception_is_internal_error() -> None:
    code, body = error_response(RuntimeError("stack trace with secrets"))
    assert code == 500
    assert body.message == GENERIC_ERROR_MESSAGE


def test_envelope_serializes_status_as_string() -> None:
    _, body = error_response(UnauthorizedError())
    assert body.model_dump(mode="json") == {"status": "ERROR", "message": "unauthorized access", "data": None}

# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/coreason_identity

"""
Success/error envelope and status mapping for HTTP boundaries.

This package never writes HTTP responses. A gateway turns results into
`ApiResponse.ok(...)` and failures into `error_response(exc)`, which hides
internal detail for fatal kinds and passes the message through for
recoverable ones.
"""

from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict

from coreason_keycloak.exceptions import CoreasonKeycloakError, ErrorKind

GENERIC_ERROR_MESSAGE = "unexpected error occurred"


class ResponseStatus(StrEnum):
    OK = "OK"
    ERROR = "ERROR"


class ApiResponse(BaseModel):
    """
    Discriminated envelope returned to HTTP clients.

    Attributes:
        status (ResponseStatus): OK or ERROR.
        message (str): Human readable message; empty on success.
        data (Any): Result payload on success.
    """

    model_config = ConfigDict(frozen=True)

    status: ResponseStatus = ResponseStatus.OK
    message: str = ""
    data: Any = None

    @classmethod
    def ok(cls, data: Any = None, message: str = "") -> "ApiResponse":
        return cls(status=ResponseStatus.OK, message=message, data=data)

    @classmethod
    def error(cls, message: str) -> "ApiResponse":
        return cls(status=ResponseStatus.ERROR, message=message)


# kind -> (HTTP status, whether the exception message may reach the client)
STATUS_MAPPING: dict[ErrorKind, tuple[int, bool]] = {
    ErrorKind.UNAUTHORIZED: (401, True),
    ErrorKind.INVALID_TOKEN: (401, True),
    ErrorKind.SIGNING_KEY_NOT_FOUND: (401, True),
    ErrorKind.MALFORMED_TOKEN: (400, True),
    ErrorKind.UNSUPPORTED_ALGORITHM: (400, True),
    ErrorKind.PROVIDER_REJECTED: (502, False),
    ErrorKind.TRANSPORT_ERROR: (503, False),
    ErrorKind.CACHE_LOCK_FAILURE: (500, False),
    ErrorKind.CONFIG_MISSING: (500, False),
}


def error_response(exc: BaseException) -> tuple[int, ApiResponse]:
    """
    Maps an exception to an HTTP status code and an error envelope.

    Args:
        exc: Any exception; non-package exceptions are treated as internal errors.

    Returns:
        tuple[int, ApiResponse]: The status code and the body to send.
    """
    if not isinstance(exc, CoreasonKeycloakError):
        return 500, ApiResponse.error(GENERIC_ERROR_MESSAGE)

    status_code, expose = STATUS_MAPPING[exc.kind]
    return status_code, ApiResponse.error(str(exc) if expose else GENERIC_ERROR_MESSAGE)

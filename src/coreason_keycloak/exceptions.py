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
Custom exceptions for the coreason-keycloak package.

Every failure raised by this package is a `CoreasonKeycloakError` whose `kind`
belongs to the closed `ErrorKind` set. HTTP boundaries should branch on `kind`
(see `coreason_keycloak.envelope`) rather than on exception messages.
"""

from enum import StrEnum
from typing import ClassVar


class ErrorKind(StrEnum):
    UNAUTHORIZED = "unauthorized"
    PROVIDER_REJECTED = "provider_rejected"
    TRANSPORT_ERROR = "transport_error"
    UNSUPPORTED_ALGORITHM = "unsupported_algorithm"
    MALFORMED_TOKEN = "malformed_token"
    SIGNING_KEY_NOT_FOUND = "signing_key_not_found"
    INVALID_TOKEN = "invalid_token"
    CACHE_LOCK_FAILURE = "cache_lock_failure"
    CONFIG_MISSING = "config_missing"


class CoreasonKeycloakError(Exception):
    """Base exception for all coreason-keycloak errors."""

    kind: ClassVar[ErrorKind]


class UnauthorizedError(CoreasonKeycloakError):
    """Raised when the identity provider rejects the supplied credentials (HTTP 401)."""

    kind = ErrorKind.UNAUTHORIZED

    def __init__(self, message: str = "unauthorized access") -> None:
        super().__init__(message)


class ProviderRejectedError(CoreasonKeycloakError):
    """
    Raised when the identity provider answers with an unexpected status code.

    Attributes:
        status_code (int): The HTTP status returned by the provider.
        body (str): The raw response body, kept for the caller's retry decision.
    """

    kind = ErrorKind.PROVIDER_REJECTED

    def __init__(self, status_code: int, body: str) -> None:
        super().__init__(f"response error with status code: {status_code}")
        self.status_code = status_code
        self.body = body


class TransportError(CoreasonKeycloakError):
    """
    Raised when the request never produced a usable response
    (DNS, connection, timeout, oversized or undecodable body).

    Attributes:
        cause (BaseException): The underlying failure.
    """

    kind = ErrorKind.TRANSPORT_ERROR

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"request error: {cause}")
        self.cause = cause


class OversizedResponseError(CoreasonKeycloakError):
    """Raised when an HTTP response is too large. Surfaces as the cause of a TransportError."""

    kind = ErrorKind.TRANSPORT_ERROR


class UnsupportedAlgorithmError(CoreasonKeycloakError):
    """Raised when a token is signed with anything other than RS256."""

    kind = ErrorKind.UNSUPPORTED_ALGORITHM


class MalformedTokenError(CoreasonKeycloakError):
    """Raised when a token cannot be parsed or its claims do not fit the requested shape."""

    kind = ErrorKind.MALFORMED_TOKEN


class SigningKeyNotFoundError(CoreasonKeycloakError):
    """Raised when the token's key id is not in the current key set snapshot."""

    kind = ErrorKind.SIGNING_KEY_NOT_FOUND


class InvalidTokenError(CoreasonKeycloakError):
    """Raised when the token is invalid (expired, bad signature, bad claim)."""

    kind = ErrorKind.INVALID_TOKEN


class TokenExpiredError(InvalidTokenError):
    """Raised when the provided token has expired."""


class SignatureVerificationError(InvalidTokenError):
    """Raised when the token's signature cannot be verified."""


class CacheLockError(CoreasonKeycloakError):
    """
    Raised when exclusive access to a shared cache cannot be obtained.
    Treat as a broken in-process invariant, not as an empty cache.
    """

    kind = ErrorKind.CACHE_LOCK_FAILURE


class ConfigMissingError(CoreasonKeycloakError):
    """
    Raised when a required configuration value is absent.

    Attributes:
        name (str): The environment variable that is missing.
    """

    kind = ErrorKind.CONFIG_MISSING

    def __init__(self, name: str) -> None:
        super().__init__(f"{name} not found")
        self.name = name

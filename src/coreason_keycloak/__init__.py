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
Client-side Keycloak integration: token acquisition, signing-key caching and
bearer token verification for realm-based identity providers.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .client import KeycloakClient
from .config import KeycloakConfig
from .envelope import ApiResponse, ResponseStatus, error_response
from .exceptions import (
    CacheLockError,
    ConfigMissingError,
    CoreasonKeycloakError,
    ErrorKind,
    InvalidTokenError,
    MalformedTokenError,
    ProviderRejectedError,
    SigningKeyNotFoundError,
    TransportError,
    UnauthorizedError,
    UnsupportedAlgorithmError,
)
from .key_cache import KeySetCache
from .models import (
    ClientCredentialsGrant,
    IntrospectionResult,
    PasswordGrant,
    RefreshTokenGrant,
    TokenClaims,
    TokenResponse,
    UserRecord,
)
from .token_client import TokenClient
from .verifier import JWTVerifier

__all__ = [
    "ApiResponse",
    "CacheLockError",
    "ClientCredentialsGrant",
    "ConfigMissingError",
    "CoreasonKeycloakError",
    "ErrorKind",
    "IntrospectionResult",
    "InvalidTokenError",
    "JWTVerifier",
    "KeySetCache",
    "KeycloakClient",
    "KeycloakConfig",
    "MalformedTokenError",
    "PasswordGrant",
    "ProviderRejectedError",
    "RefreshTokenGrant",
    "ResponseStatus",
    "SigningKeyNotFoundError",
    "TokenClaims",
    "TokenClient",
    "TokenResponse",
    "TransportError",
    "UnauthorizedError",
    "UnsupportedAlgorithmError",
    "UserRecord",
    "error_response",
]

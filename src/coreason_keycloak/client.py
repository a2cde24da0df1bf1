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
KeycloakClient facade composing token acquisition, key caching, verification
and user provisioning for one realm.
"""

import re
from typing import Any

import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from pydantic import SecretStr

from coreason_keycloak.config import KeycloakConfig
from coreason_keycloak.exceptions import MalformedTokenError, SigningKeyNotFoundError
from coreason_keycloak.key_cache import KeySetCache
from coreason_keycloak.models import (
    ClientCredentialsGrant,
    Credentials,
    IntrospectionResult,
    PasswordGrant,
    RefreshTokenGrant,
    SigningKey,
    TokenClaims,
    TokenRequest,
    TokenResponse,
    UserRecord,
)
from coreason_keycloak.provisioner import UserProvisioner
from coreason_keycloak.snapshot import SnapshotCache
from coreason_keycloak.token_client import TokenClient
from coreason_keycloak.verifier import ClaimsT, JWTVerifier, read_unverified_header

BEARER_PATTERN = re.compile(r"^Bearer\s+(\S+)$")


class KeycloakClient:
    """
    The entry point for services integrating with a realm.

    Handles the HTTP client lifecycle via async context manager. Credentials
    and endpoints are fixed at construction.

    Attributes:
        config (KeycloakConfig): The immutable configuration.
        credentials (Credentials): The instance's client credentials.
        endpoints (Endpoints): The realm endpoints.
    """

    def __init__(self, config: KeycloakConfig, client: httpx.AsyncClient | None = None) -> None:
        """
        Initialize the KeycloakClient.

        Args:
            config: The configuration object.
            client: External async client (optional, not closed by this instance).
        """
        self.config = config
        self.credentials = config.credentials
        self.endpoints = config.endpoints
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=config.http_timeout)

        # Instrument the client for distributed tracing
        HTTPXClientInstrumentor().instrument_client(self._client)

        self.token_client = TokenClient(
            self._client, self.credentials, self.endpoints, max_response_bytes=config.max_response_bytes
        )
        self.key_cache = KeySetCache(
            self._client,
            self.endpoints.certs_endpoint,
            lock_timeout=config.cache_lock_timeout,
            max_response_bytes=config.max_response_bytes,
        )
        self.verifier = JWTVerifier(self.key_cache, pii_salt=config.pii_salt, leeway=config.clock_skew_leeway)
        self.provisioner = UserProvisioner(
            self._client, self.token_client, max_response_bytes=config.max_response_bytes
        )
        self._token_cache: SnapshotCache[TokenResponse] = SnapshotCache("client token", config.cache_lock_timeout)

    @classmethod
    def from_env(cls, client: httpx.AsyncClient | None = None) -> "KeycloakClient":
        """
        Builds a client from `KEYCLOAK_*` environment variables.

        Raises:
            ConfigMissingError: If a required variable is absent.
        """
        return cls(KeycloakConfig.from_env(), client=client)

    async def __aenter__(self) -> "KeycloakClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._internal_client:
            await self._client.aclose()

    async def get_token(self, request: TokenRequest) -> TokenResponse:
        """
        Exchanges any supported grant using the instance credentials.

        Raises:
            UnauthorizedError: On HTTP 401.
            ProviderRejectedError: On any other non-200 status.
            TransportError: On network failure.
        """
        return await self.token_client.exchange(request)

    async def login(self, username: str, password: str, scope: str | None = None) -> TokenResponse:
        """Resource-owner password login."""
        return await self.token_client.exchange(
            PasswordGrant(username=username, password=SecretStr(password), scope=scope)
        )

    async def renew(self, refresh_token: str) -> TokenResponse:
        """Exchanges a refresh token for a new token pair."""
        return await self.token_client.exchange(RefreshTokenGrant(refresh_token=SecretStr(refresh_token)))

    async def get_service_token(self, client_id: str, client_secret: str) -> TokenResponse:
        """
        Client-credentials token for a different (downstream) client.

        The given credentials are used for this call only; the instance's own
        credentials are untouched.
        """
        override = Credentials(client_id=client_id, client_secret=SecretStr(client_secret))
        return await self.token_client.exchange(ClientCredentialsGrant(), credentials=override)

    async def load_client_token(self) -> TokenResponse:
        """
        Obtains a client-credentials token and stores it as the cached token.

        Raises:
            CacheLockError: If the token cache lock cannot be acquired.
        """
        token = await self.token_client.exchange(ClientCredentialsGrant())
        self._token_cache.write(token)
        return token

    def cached_token(self) -> TokenResponse | None:
        """
        Returns:
            TokenResponse | None: The token stored by `load_client_token`, if any.
        """
        return self._token_cache.read()

    async def introspect(self, token: str) -> IntrospectionResult:
        return await self.token_client.introspect(token)

    async def refresh_keys(self) -> None:
        """Fetches the realm's signing keys and replaces the cached key set."""
        await self.key_cache.refresh()

    def lookup_key(self, kid: str) -> SigningKey | None:
        return self.key_cache.lookup(kid)

    async def verify(self, token: str, claims_type: type[ClaimsT] = TokenClaims) -> ClaimsT:  # type: ignore[assignment]
        """
        Verifies `token` against the cached key set.

        With the default configuration this never touches the network. When
        `refresh_keys_on_miss` is enabled, an unknown key id triggers one
        rate-limited key refresh followed by a single retry.

        Args:
            token: The raw JWT.
            claims_type: The pydantic model to decode the payload into.

        Returns:
            ClaimsT: The verified claims.
        """
        try:
            return self.verifier.verify(token, claims_type)
        except SigningKeyNotFoundError:
            if not self.config.refresh_keys_on_miss:
                raise
            kid = read_unverified_header(token.strip())["kid"]
            if not await self.key_cache.refresh_for_unknown_kid(kid, self.config.key_refresh_cooldown):
                raise
            return self.verifier.verify(token, claims_type)

    async def verify_authorization_header(
        self,
        auth_header: str,
        claims_type: type[ClaimsT] = TokenClaims,  # type: ignore[assignment]
    ) -> ClaimsT:
        """
        Verifies the token carried in an `Authorization: Bearer <token>` header value.

        Raises:
            MalformedTokenError: If the header is missing or not a Bearer credential.
        """
        if not auth_header:
            raise MalformedTokenError("Missing Authorization header.")

        match = BEARER_PATTERN.match(auth_header.strip())
        if not match:
            raise MalformedTokenError("Invalid Authorization header format. Must start with 'Bearer '.")

        return await self.verify(match.group(1), claims_type)

    async def register_user(self, user: UserRecord) -> None:
        await self.provisioner.register(user)

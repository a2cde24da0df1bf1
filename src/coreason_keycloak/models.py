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
Data models for the coreason-keycloak package.
"""

import time
from collections.abc import Iterator, Mapping
from types import MappingProxyType
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    SecretStr,
    ValidationError,
    field_serializer,
    field_validator,
)


class Credentials(BaseModel):
    """
    OAuth2 client credentials. Immutable for the lifetime of a client.

    Attributes:
        client_id (str): The confidential client's identifier.
        client_secret (SecretStr): The client secret. Protected from logging.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    client_id: str
    client_secret: SecretStr


class Endpoints(BaseModel):
    """
    Realm-scoped endpoints, derived once from the base URL and realm name.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    token_endpoint: str
    certs_endpoint: str
    introspect_endpoint: str
    admin_endpoint: str

    @classmethod
    def for_realm(cls, url: str, realm: str) -> "Endpoints":
        base = url.rstrip("/")
        oidc = f"{base}/realms/{realm}/protocol/openid-connect"
        return cls(
            token_endpoint=f"{oidc}/token",
            certs_endpoint=f"{oidc}/certs",
            introspect_endpoint=f"{oidc}/token/introspect",
            admin_endpoint=f"{base}/admin/realms/{realm}",
        )

    @property
    def users_endpoint(self) -> str:
        return f"{self.admin_endpoint}/users"


class _Grant(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    grant_type: str
    scope: str | None = None

    def _grant_fields(self) -> dict[str, str]:
        return {}

    def to_form(self, credentials: Credentials) -> dict[str, str]:
        """
        Renders the form-encoded body of a token request.

        Args:
            credentials: The client credentials to inject.

        Returns:
            dict[str, str]: The form fields, including client id and secret.
        """
        form = {
            "grant_type": self.grant_type,
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret.get_secret_value(),
        }
        form.update(self._grant_fields())
        if self.scope:
            form["scope"] = self.scope
        return form


class PasswordGrant(_Grant):
    """Resource-owner password grant."""

    grant_type: Literal["password"] = "password"
    username: str
    password: SecretStr

    def _grant_fields(self) -> dict[str, str]:
        return {"username": self.username, "password": self.password.get_secret_value()}


class ClientCredentialsGrant(_Grant):
    """Client credentials grant. Carries no grant-specific fields."""

    grant_type: Literal["client_credentials"] = "client_credentials"


class RefreshTokenGrant(_Grant):
    """Refresh token grant."""

    grant_type: Literal["refresh_token"] = "refresh_token"
    refresh_token: SecretStr

    def _grant_fields(self) -> dict[str, str]:
        return {"refresh_token": self.refresh_token.get_secret_value()}


TokenRequest = Annotated[
    PasswordGrant | ClientCredentialsGrant | RefreshTokenGrant,
    Field(discriminator="grant_type"),
]


class TokenResponse(BaseModel):
    """
    Response from the token endpoint. Token values are opaque to this package.

    Attributes:
        access_token (str): The access token issued by the provider.
        refresh_token (str | None): The refresh token, absent for client credentials grants.
        expires_in (int): Lifetime of the access token in seconds.
        refresh_expires_in (int): Lifetime of the refresh token in seconds.
        token_type (str): The type of the token (e.g. "Bearer").
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = Field(..., repr=False)
    refresh_token: str | None = Field(default=None, repr=False)
    expires_in: int
    refresh_expires_in: int = 0
    token_type: str
    id_token: str | None = Field(default=None, repr=False)
    scope: str | None = None


class IntrospectionResult(BaseModel):
    """
    Response from the introspection endpoint. Provider-specific fields are preserved.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    active: bool
    username: str | None = None
    client_id: str | None = None
    exp: int | None = None


class SigningKey(BaseModel):
    """One RSA public key as published in the realm's JWKS (base64url components)."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    kid: str
    n: str
    e: str
    kty: str = "RSA"
    alg: str | None = None
    use: str | None = None


class JWKSDocument(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    keys: list[dict[str, Any]]


class KeySet:
    """
    Immutable snapshot of the realm's signing keys, indexed by key id.

    Only RSA signature keys are retained; encryption keys published in the
    same document are skipped.
    """

    __slots__ = ("_keys", "fetched_at")

    def __init__(self, keys: Mapping[str, SigningKey], fetched_at: float | None = None) -> None:
        self._keys = MappingProxyType(dict(keys))
        self.fetched_at = time.time() if fetched_at is None else fetched_at

    @classmethod
    def from_jwks(cls, document: JWKSDocument) -> "KeySet":
        keys: dict[str, SigningKey] = {}
        for raw in document.keys:
            if raw.get("kty") != "RSA" or raw.get("use") == "enc":
                continue
            if not all(raw.get(field) for field in ("kid", "n", "e")):
                continue
            try:
                key = SigningKey.model_validate(raw)
            except ValidationError:
                # Non-string components cannot be used as a JWK
                continue
            keys[key.kid] = key
        return cls(keys)

    def get(self, kid: str) -> SigningKey | None:
        return self._keys.get(kid)

    @property
    def kids(self) -> frozenset[str]:
        return frozenset(self._keys)

    def __contains__(self, kid: object) -> bool:
        return kid in self._keys

    def __iter__(self) -> Iterator[SigningKey]:
        return iter(self._keys.values())

    def __len__(self) -> int:
        return len(self._keys)

    def __repr__(self) -> str:
        return f"KeySet(kids={sorted(self._keys)!r}, fetched_at={self.fetched_at!r})"


class TokenClaims(BaseModel):
    """
    Minimum claim shape of a realm-issued access token. Additional claims are kept.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    iat: int = Field(..., ge=0)
    exp: int = Field(..., ge=0)
    azp: str
    given_name: str
    family_name: str
    email: str


class UserCredential(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    credential_type: str = Field(default="password", alias="type")
    value: SecretStr
    temporary: bool = False

    @field_serializer("value")
    def reveal_value(self, value: SecretStr) -> str:
        # The admin API needs the clear value; repr and str stay masked.
        return value.get_secret_value()


class UserRecord(BaseModel):
    """
    User representation sent to the administrative API.

    Field names follow Python conventions; the wire format uses the provider's
    camelCase aliases (`firstName`, `lastName`).
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "firstName": "Alice",
                "lastName": "Smith",
                "username": "alice",
                "email": "alice@coreason.ai",
                "attributes": {},
                "enabled": True,
                "credentials": [{"type": "password", "value": "********", "temporary": False}],
            }
        },
    )

    first_name: str = Field(..., alias="firstName")
    last_name: str = Field(..., alias="lastName")
    username: str
    email: EmailStr
    attributes: dict[str, list[str]] = Field(default_factory=dict)
    enabled: bool = True
    credentials: list[UserCredential] = Field(default_factory=list)

    @field_validator("attributes", mode="before")
    @classmethod
    def ensure_list_values(cls, v: Any) -> Any:
        """Wraps single string attribute values into lists, as the provider expects."""
        if isinstance(v, dict):
            return {key: [value] if isinstance(value, str) else value for key, value in v.items()}
        return v

    @classmethod
    def with_password(
        cls,
        first_name: str,
        last_name: str,
        username: str,
        email: str,
        password: str,
        temporary: bool = False,
    ) -> "UserRecord":
        return cls(
            first_name=first_name,
            last_name=last_name,
            username=username,
            email=email,
            credentials=[UserCredential(value=SecretStr(password), temporary=temporary)],
        )

    def to_representation(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

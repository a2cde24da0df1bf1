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
Configuration for the coreason-keycloak package.
"""

from typing import Any

from pydantic import Field, SecretStr, ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from coreason_keycloak.exceptions import ConfigMissingError
from coreason_keycloak.models import Credentials, Endpoints

ENV_PREFIX = "KEYCLOAK_"

# Checked in this order so the first absent variable is the one reported.
REQUIRED_FIELDS = ("client_id", "client_secret", "realm", "url")


class KeycloakConfig(BaseSettings):
    """
    Configuration settings for coreason-keycloak. Immutable once constructed.

    Attributes:
        client_id (str): The confidential client's identifier.
        client_secret (SecretStr): The confidential client's secret.
        realm (str): The realm name.
        url (str): Base URL of the identity provider (e.g. https://auth.coreason.ai).
        http_timeout (float): Timeout in seconds for all provider network operations.
        unsafe_local_dev (bool): Allows plain HTTP provider URLs. Local testing only.
        pii_salt (SecretStr): Salt for anonymizing subjects in logs/traces.
        clock_skew_leeway (int): Acceptable clock skew in seconds for `exp`.
        cache_lock_timeout (float): Seconds to wait for exclusive cache access before failing.
        max_response_bytes (int): Upper bound on any provider response body.
        refresh_keys_on_miss (bool): Refresh the key set once when a token names an unknown key id.
        key_refresh_cooldown (float): Minimum seconds between on-miss key refreshes.
    """

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        case_sensitive=False,
        frozen=True,
    )

    client_id: str = Field(..., min_length=1)
    client_secret: SecretStr
    realm: str = Field(..., min_length=1)
    unsafe_local_dev: bool = False
    url: str = Field(..., min_length=1)
    http_timeout: float = Field(default=10.0, gt=0, description="Timeout in seconds for all IdP network operations.")
    pii_salt: SecretStr = SecretStr("coreason-unsafe-default-salt")
    clock_skew_leeway: int = Field(default=0, ge=0)
    cache_lock_timeout: float = Field(default=1.0, gt=0)
    max_response_bytes: int = Field(default=1_000_000, gt=0)
    refresh_keys_on_miss: bool = False
    key_refresh_cooldown: float = Field(default=30.0, ge=0)

    @field_validator("client_secret")
    @classmethod
    def require_secret(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value():
            raise ValueError("client_secret must not be empty")
        return v

    @field_validator("url", mode="after")
    @classmethod
    def validate_https(cls, v: str, info: ValidationInfo) -> str:
        """
        Ensures that the provider URL uses HTTPS, unless strictly opted out for local dev.
        """
        v = v.strip().rstrip("/")
        if v.startswith("http://") and not info.data.get("unsafe_local_dev", False):
            raise ValueError("HTTPS is required for production. Set 'unsafe_local_dev=True' only for local testing.")
        if not v.startswith(("https://", "http://")):
            raise ValueError(f"Provider URL must be absolute, got '{v}'")
        return v

    @classmethod
    def from_env(cls, **overrides: Any) -> "KeycloakConfig":
        """
        Builds the configuration from `KEYCLOAK_*` environment variables.

        Args:
            **overrides: Explicit values that take precedence over the environment.

        Returns:
            KeycloakConfig: The validated configuration.

        Raises:
            ConfigMissingError: If a required variable is absent or empty.
            pydantic.ValidationError: If a present value is invalid.
        """
        try:
            return cls(**overrides)
        except ValidationError as e:
            missing = {
                str(error["loc"][0])
                for error in e.errors()
                if error["loc"]
                and (
                    error["type"] in ("missing", "string_too_short")
                    or (error["loc"][0] == "client_secret" and error["type"] == "value_error")
                )
            }
            for name in REQUIRED_FIELDS:
                if name in missing:
                    raise ConfigMissingError(f"{ENV_PREFIX}{name.upper()}") from e
            raise

    @property
    def credentials(self) -> Credentials:
        return Credentials(client_id=self.client_id, client_secret=self.client_secret)

    @property
    def endpoints(self) -> Endpoints:
        return Endpoints.for_realm(self.url, self.realm)

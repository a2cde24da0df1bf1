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
JWTVerifier component for validating RS256 bearer tokens against cached signing keys.
"""

from typing import Any, Protocol, TypeVar, cast

from authlib.common.encoding import json_loads, to_bytes, urlsafe_b64decode
from authlib.jose import JsonWebKey, JsonWebToken
from authlib.jose.errors import BadSignatureError, DecodeError, ExpiredTokenError, JoseError
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import BaseModel, SecretStr, ValidationError

from coreason_keycloak.exceptions import (
    CoreasonKeycloakError,
    InvalidTokenError,
    MalformedTokenError,
    SignatureVerificationError,
    SigningKeyNotFoundError,
    TokenExpiredError,
    UnsupportedAlgorithmError,
)
from coreason_keycloak.models import SigningKey, TokenClaims
from coreason_keycloak.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)

ClaimsT = TypeVar("ClaimsT", bound=BaseModel)

SUPPORTED_ALGORITHM = "RS256"


class SigningKeyLookup(Protocol):
    """Anything that resolves a key id against a local key set without network access."""

    def lookup(self, kid: str) -> SigningKey | None: ...


def read_unverified_header(token: str) -> dict[str, Any]:
    """
    Decodes the JOSE header of a compact JWS without checking the signature.

    Raises:
        MalformedTokenError: If the token is not three dot-separated segments
            or the header is not a base64url-encoded JSON object.
    """
    segments = token.split(".")
    if len(segments) != 3 or not segments[0]:
        raise MalformedTokenError("Token is not a compact JWS (expected three segments)")
    try:
        header = json_loads(urlsafe_b64decode(to_bytes(segments[0])))
    except ValueError as e:
        raise MalformedTokenError(f"Token header is not valid base64url JSON: {e}") from e
    if not isinstance(header, dict):
        raise MalformedTokenError("Token header is not a JSON object")
    return header


class JWTVerifier:
    """
    Verifies RS256 tokens using only the current key set snapshot.

    No network access happens here: a token whose `kid` is not cached fails
    with `SigningKeyNotFoundError` until someone refreshes the key set.

    Attributes:
        keys (SigningKeyLookup): Source of signing keys, usually a `KeySetCache`.
        leeway (int): Acceptable clock skew in seconds.
    """

    def __init__(self, keys: SigningKeyLookup, pii_salt: SecretStr, leeway: int = 0) -> None:
        """
        Initialize the JWTVerifier.

        Args:
            keys: The key lookup, usually a `KeySetCache`.
            pii_salt: Salt for anonymizing subjects in logs and spans.
            leeway: Acceptable clock skew in seconds. Defaults to 0.
        """
        self.keys = keys
        self.pii_salt = pii_salt
        self.leeway = leeway
        self.jwt = JsonWebToken([SUPPORTED_ALGORITHM])

    def verify(self, token: str, claims_type: type[ClaimsT] = TokenClaims) -> ClaimsT:  # type: ignore[assignment]
        """
        Verifies the signature and expiry of `token` and decodes its claims.

        Emits an OpenTelemetry span `keycloak.verify_token`.

        Args:
            token: The raw JWT (without the "Bearer " prefix).
            claims_type: The pydantic model to decode the payload into.

        Returns:
            ClaimsT: The verified claims.

        Raises:
            UnsupportedAlgorithmError: If the header's `alg` is not RS256.
            MalformedTokenError: If the token cannot be parsed, has no `kid`,
                or its payload does not fit `claims_type`.
            SigningKeyNotFoundError: If `kid` is not in the current key set.
            TokenExpiredError: If the token has expired.
            SignatureVerificationError: If the signature does not validate.
            InvalidTokenError: For any other claim or JOSE failure.
            CacheLockError: If the key cache lock cannot be acquired.
        """
        with tracer.start_as_current_span("keycloak.verify_token") as span:
            try:
                claims = self._verify(token.strip(), claims_type)
            except CoreasonKeycloakError as e:
                logger.warning(f"Token verification failed ({e.kind}): {e}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            subject = getattr(claims, "sub", None) or "unknown"
            user_hash = anonymize(str(subject), self.pii_salt.get_secret_value())
            logger.info(f"Token verified for user {user_hash}")
            span.set_attribute("enduser.id", user_hash)
            span.set_status(Status(StatusCode.OK))
            return claims

    def _verify(self, token: str, claims_type: type[ClaimsT]) -> ClaimsT:
        header = read_unverified_header(token)

        alg = header.get("alg")
        if alg != SUPPORTED_ALGORITHM:
            raise UnsupportedAlgorithmError(f"Algorithm {alg!r} is not supported")

        kid = header.get("kid")
        if not kid or not isinstance(kid, str):
            raise MalformedTokenError("Token header does not specify a key id (kid)")

        signing_key = self.keys.lookup(kid)
        if signing_key is None:
            raise SigningKeyNotFoundError(f"Signing key {kid!r} not found in the cached key set")

        try:
            public_key = JsonWebKey.import_key({"kty": "RSA", "n": signing_key.n, "e": signing_key.e})
        except (ValueError, TypeError, JoseError) as e:
            raise InvalidTokenError(f"Cached signing key {kid!r} is unusable: {e}") from e

        try:
            jwt_any = cast("Any", self.jwt)
            decoded = jwt_any.decode(token, public_key, claims_options={"exp": {"essential": True}})
            decoded.validate(leeway=self.leeway)
        except ExpiredTokenError as e:
            raise TokenExpiredError(f"Token has expired: {e}") from e
        except BadSignatureError as e:
            raise SignatureVerificationError(f"Invalid signature: {e}") from e
        except DecodeError as e:
            raise MalformedTokenError(f"Token could not be decoded: {e}") from e
        except JoseError as e:
            raise InvalidTokenError(f"Token validation failed: {e}") from e

        try:
            return claims_type.model_validate(dict(decoded))
        except ValidationError as e:
            raise MalformedTokenError(f"Token claims do not match {claims_type.__name__}: {e}") from e

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
TokenClient component for OAuth 2.0 grant exchanges and token introspection.
"""

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from coreason_keycloak.exceptions import UnauthorizedError
from coreason_keycloak.models import Credentials, Endpoints, IntrospectionResult, TokenRequest, TokenResponse
from coreason_keycloak.transport import DEFAULT_MAX_RESPONSE_BYTES, ensure_status, parse_model, send
from coreason_keycloak.utils.logger import logger

tracer = trace.get_tracer(__name__)

FORM_HEADERS = {"Content-Type": "application/x-www-form-urlencoded"}


class TokenClient:
    """
    Talks to the realm's token and introspection endpoints.

    Results are returned to the caller; nothing is cached here.

    Attributes:
        credentials (Credentials): Default client credentials injected into every request.
        endpoints (Endpoints): The realm endpoints.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        credentials: Credentials,
        endpoints: Endpoints,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
    ) -> None:
        self.client = client
        self.credentials = credentials
        self.endpoints = endpoints
        self.max_response_bytes = max_response_bytes

    async def exchange(self, request: TokenRequest, credentials: Credentials | None = None) -> TokenResponse:
        """
        Exchanges a grant for tokens.

        Args:
            request: The grant to exchange.
            credentials: Client credentials to use instead of the instance's own, for this call only.

        Returns:
            TokenResponse: The issued tokens.

        Raises:
            UnauthorizedError: If the provider answers 401.
            ProviderRejectedError: For any other non-200 status.
            TransportError: On network failure or an undecodable body.
        """
        creds = credentials or self.credentials
        with tracer.start_as_current_span("keycloak.exchange") as span:
            span.set_attribute("oauth.grant_type", request.grant_type)
            span.set_attribute("oauth.client_id", creds.client_id)
            try:
                response = await send(
                    self.client,
                    "POST",
                    self.endpoints.token_endpoint,
                    max_bytes=self.max_response_bytes,
                    data=request.to_form(creds),
                    headers=FORM_HEADERS,
                )
                if response.status_code == 401:
                    logger.warning(f"Token request ({request.grant_type}) rejected as unauthorized")
                    raise UnauthorizedError()
                ensure_status(response, 200)
                token = parse_model(response, TokenResponse)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            span.set_status(Status(StatusCode.OK))
            logger.debug(f"Token issued via {request.grant_type} grant, expires in {token.expires_in}s")
            return token

    async def introspect(self, token: str) -> IntrospectionResult:
        """
        Asks the provider whether `token` is currently active.

        An expired or unparseable token is reported as `active=False`, not as an error.

        Raises:
            ProviderRejectedError: If the provider does not answer 200.
            TransportError: On network failure or an undecodable body.
        """
        form = {
            "token": token,
            "client_id": self.credentials.client_id,
            "client_secret": self.credentials.client_secret.get_secret_value(),
        }
        with tracer.start_as_current_span("keycloak.introspect") as span:
            try:
                response = await send(
                    self.client,
                    "POST",
                    self.endpoints.introspect_endpoint,
                    max_bytes=self.max_response_bytes,
                    data=form,
                    headers=FORM_HEADERS,
                )
                ensure_status(response, 200)
                result = parse_model(response, IntrospectionResult)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            span.set_attribute("oauth.token.active", result.active)
            span.set_status(Status(StatusCode.OK))
            return result

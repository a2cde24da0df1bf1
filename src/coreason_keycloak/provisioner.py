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
UserProvisioner component for creating users through the realm's admin API.
"""

import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from coreason_keycloak.models import ClientCredentialsGrant, UserRecord
from coreason_keycloak.token_client import TokenClient
from coreason_keycloak.transport import DEFAULT_MAX_RESPONSE_BYTES, ensure_status, send
from coreason_keycloak.utils.logger import logger

tracer = trace.get_tracer(__name__)


class UserProvisioner:
    """
    Creates users. Every call authenticates with a freshly issued
    client-credentials token; no cached token is reused.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        token_client: TokenClient,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
    ) -> None:
        self.client = client
        self.token_client = token_client
        self.max_response_bytes = max_response_bytes

    async def register(self, user: UserRecord) -> None:
        """
        Creates `user` in the realm.

        Args:
            user: The user representation to create.

        Raises:
            UnauthorizedError: If the client credentials are rejected.
            ProviderRejectedError: If the admin API does not answer 201 (e.g. 409 on a duplicate).
            TransportError: On network failure.
        """
        with tracer.start_as_current_span("keycloak.register_user") as span:
            try:
                token = await self.token_client.exchange(ClientCredentialsGrant())
                response = await send(
                    self.client,
                    "POST",
                    self.token_client.endpoints.users_endpoint,
                    max_bytes=self.max_response_bytes,
                    json=user.to_representation(),
                    headers={"Authorization": f"Bearer {token.access_token}"},
                )
                ensure_status(response, 201)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            span.set_status(Status(StatusCode.OK))
            logger.info("User registered in realm")

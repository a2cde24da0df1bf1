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
HTTP glue between httpx and the coreason-keycloak error taxonomy.

All provider calls go through `send`, which reads the body with a size limit
and converts every `httpx.HTTPError` into a `TransportError`. Status and body
interpretation are explicit (`ensure_status`, `parse_model`) so that each
lower-layer failure maps to exactly one error kind.
"""

import json
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from coreason_keycloak.exceptions import OversizedResponseError, ProviderRejectedError, TransportError
from coreason_keycloak.utils.logger import logger

DEFAULT_MAX_RESPONSE_BYTES = 1_000_000

ModelT = TypeVar("ModelT", bound=BaseModel)


class ProviderResponse(BaseModel):
    """
    A fully read provider response.

    Attributes:
        status_code (int): The HTTP status code.
        content (bytes): The raw (decoded transfer-encoding) body.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int
    content: bytes

    @property
    def text(self) -> str:
        return self.content.decode("utf-8", errors="replace")

    def json_body(self) -> Any:
        return json.loads(self.content)


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    max_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
    **kwargs: Any,
) -> ProviderResponse:
    """
    Sends a request and reads the response body with DoS protection.

    Args:
        client: The async HTTP client to use.
        method: The HTTP method.
        url: The absolute URL.
        max_bytes: Maximum accepted body size in bytes.
        **kwargs: Passed through to `httpx.AsyncClient.stream` (data, json, headers...).

    Returns:
        ProviderResponse: The status code and body.

    Raises:
        TransportError: On network failure or when the body exceeds `max_bytes`.
    """
    try:
        async with client.stream(method, url, **kwargs) as response:
            content_length = response.headers.get("Content-Length")
            if content_length and content_length.isdigit() and int(content_length) > max_bytes:
                raise OversizedResponseError(f"Response from {url} too large ({content_length} bytes)")

            content = bytearray()
            async for chunk in response.aiter_bytes():
                content.extend(chunk)
                if len(content) > max_bytes:
                    raise OversizedResponseError(f"Response from {url} exceeded {max_bytes} bytes")

            return ProviderResponse(status_code=response.status_code, content=bytes(content))
    except OversizedResponseError as e:
        logger.error(f"Rejected oversized response: {e}")
        raise TransportError(e) from e
    except httpx.HTTPError as e:
        logger.error(f"{method} {url} failed: {type(e).__name__}: {e}")
        raise TransportError(e) from e


def ensure_status(response: ProviderResponse, expected: int) -> None:
    """
    Raises:
        ProviderRejectedError: If the response status is not `expected`.
    """
    if response.status_code != expected:
        raise ProviderRejectedError(response.status_code, response.text)


def parse_model(response: ProviderResponse, model: type[ModelT]) -> ModelT:
    """
    Decodes a JSON body into `model`.

    Raises:
        TransportError: If the body is not JSON or does not match the model.
    """
    try:
        return model.model_validate(response.json_body())
    except (ValueError, ValidationError) as e:
        logger.error(f"Undecodable {model.__name__} body from provider: {e}")
        raise TransportError(e) from e

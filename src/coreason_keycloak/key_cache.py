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
KeySetCache component for fetching and caching the realm's signing keys.
"""

import math
import time

import anyio
import httpx
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from coreason_keycloak.models import JWKSDocument, KeySet, SigningKey
from coreason_keycloak.snapshot import SnapshotCache
from coreason_keycloak.transport import DEFAULT_MAX_RESPONSE_BYTES, ensure_status, parse_model, send
from coreason_keycloak.utils.logger import logger

tracer = trace.get_tracer(__name__)


class KeySetCache:
    """
    Caches the realm's JWKS as an immutable `KeySet` snapshot.

    Refresh is explicit: nothing here fetches on a timer or on a lookup miss.
    Concurrent `refresh()` calls each fetch independently and the last one to
    finish wins; readers always see one complete key set.

    Attributes:
        certs_endpoint (str): The realm's JWKS URL.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        certs_endpoint: str,
        lock_timeout: float = 1.0,
        max_response_bytes: int = DEFAULT_MAX_RESPONSE_BYTES,
    ) -> None:
        """
        Initialize the KeySetCache.

        Args:
            client: The async HTTP client to use for requests.
            certs_endpoint: The realm's certs (JWKS) URL.
            lock_timeout: Seconds to wait for exclusive cache access.
            max_response_bytes: Upper bound on the JWKS response size.
        """
        self.client = client
        self.certs_endpoint = certs_endpoint
        self.max_response_bytes = max_response_bytes
        self._snapshot: SnapshotCache[KeySet] = SnapshotCache("signing key", lock_timeout)
        self._last_refresh: float = -math.inf
        self._miss_lock: anyio.Lock | None = None

    async def refresh(self) -> None:
        """
        Fetches the published key set and swaps it in.

        The previous snapshot is kept if the fetch fails.

        Raises:
            TransportError: On network failure or an undecodable body.
            ProviderRejectedError: If the provider does not answer 200.
            CacheLockError: If the cache lock cannot be acquired.
        """
        with tracer.start_as_current_span("keycloak.refresh_keys") as span:
            try:
                response = await send(self.client, "GET", self.certs_endpoint, max_bytes=self.max_response_bytes)
                ensure_status(response, 200)
                key_set = KeySet.from_jwks(parse_model(response, JWKSDocument))
                self._snapshot.write(key_set)
            except Exception as e:
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, str(e)))
                raise

            self._last_refresh = time.monotonic()
            span.set_attribute("keycloak.key_count", len(key_set))
            span.set_status(Status(StatusCode.OK))
            logger.info(f"Loaded {len(key_set)} signing key(s) from {self.certs_endpoint}")

    def snapshot(self) -> KeySet | None:
        """
        Returns:
            KeySet | None: The current key set, or None if never refreshed.
        """
        return self._snapshot.read()

    def lookup(self, kid: str) -> SigningKey | None:
        """
        Pure read of the current snapshot. Never fetches.

        Args:
            kid: The key identifier from a token header.

        Returns:
            SigningKey | None: The key, or None if the cache is empty or the id unknown.
        """
        key_set = self._snapshot.read()
        if key_set is None:
            return None
        return key_set.get(kid)

    async def refresh_for_unknown_kid(self, kid: str, cooldown: float) -> bool:
        """
        Refreshes once on behalf of a token naming an unknown key id.

        Calls are serialized; a caller that waited on another caller's refresh
        reuses its result. Refreshes closer together than `cooldown` seconds
        are skipped so unauthenticated traffic cannot hammer the provider.

        Args:
            kid: The key identifier that was not found.
            cooldown: Minimum seconds since the last refresh.

        Returns:
            bool: Whether `kid` is known after the call.
        """
        if self._miss_lock is None:
            self._miss_lock = anyio.Lock()

        async with self._miss_lock:
            if self.lookup(kid) is not None:
                return True

            if time.monotonic() - self._last_refresh < cooldown:
                logger.warning("Signing key refresh cooldown active. Not refreshing for unknown key id.")
                return False

            logger.info("Unknown signing key id, refreshing key set")
            # Failed attempts count towards the cooldown too
            self._last_refresh = time.monotonic()
            await self.refresh()
            return self.lookup(kid) is not None

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
Atomic-swap holder for shared, immutable cache values.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Generic, TypeVar

from coreason_keycloak.exceptions import CacheLockError
from coreason_keycloak.utils.logger import logger

T = TypeVar("T")


class SnapshotCache(Generic[T]):
    """
    Holds at most one immutable value that is replaced wholesale.

    Readers get the current value or None, never a partially written one. The
    lock only guards the reference swap, so critical sections never await and
    are safe from both threads and async tasks. Failure to obtain the lock
    within `lock_timeout` raises `CacheLockError` instead of reporting an
    empty cache.

    This is a plain mutex, not a reader/writer lock: readers take turns, but
    each holds the lock only for a reference copy. A contended acquire blocks
    the calling thread, and with it the event loop, for at most `lock_timeout`
    seconds, so async callers should keep that value small.

    Attributes:
        name (str): Label used in logs and errors.
        lock_timeout (float): Seconds to wait for the lock.
    """

    def __init__(self, name: str, lock_timeout: float = 1.0) -> None:
        self.name = name
        self.lock_timeout = lock_timeout
        self._lock = threading.Lock()
        self._value: T | None = None

    @contextmanager
    def _exclusive(self, operation: str) -> Iterator[None]:
        if not self._lock.acquire(timeout=self.lock_timeout):
            logger.error(f"Failed to acquire {operation} lock on {self.name} cache within {self.lock_timeout}s")
            raise CacheLockError(f"failed to acquire {operation} lock on {self.name} cache")
        try:
            yield
        finally:
            self._lock.release()

    def read(self) -> T | None:
        """
        Returns:
            T | None: The current snapshot, or None if never populated.

        Raises:
            CacheLockError: If the lock cannot be acquired.
        """
        with self._exclusive("read"):
            return self._value

    def write(self, value: T) -> None:
        """
        Replaces the snapshot.

        Raises:
            CacheLockError: If the lock cannot be acquired.
        """
        with self._exclusive("write"):
            self._value = value

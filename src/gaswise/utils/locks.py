"""Concurrency control for per-entity state transitions.

Provides per-key locking so every mutation of one swap is applied as a single
atomic unit, while unrelated swaps proceed in parallel.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable, Optional

logger = logging.getLogger(__name__)


class LockTimeoutError(Exception):
    """Raised when a lock cannot be acquired within the timeout period."""

    pass


class KeyedLocks:
    """Registry of asyncio locks keyed by entity id.

    Example:
        locks = KeyedLocks()
        async with locks.hold(swap_id, operation="complete"):
            state = store[swap_id]
            ...
    """

    def __init__(self, timeout: Optional[float] = 30.0):
        """Initialize the registry.

        Args:
            timeout: Default maximum time to wait for a lock (None = wait forever)
        """
        self.timeout = timeout
        self._locks: dict[Hashable, asyncio.Lock] = {}
        # Tasks holding or waiting on each key; the lock is dropped at zero.
        self._users: dict[Hashable, int] = {}

    def get(self, key: Hashable) -> asyncio.Lock:
        """Get or create the lock for a key.

        No await happens between the lookup and the insert, so two tasks on
        the same event loop always share one lock per key.
        """
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(
        self,
        key: Hashable,
        timeout: Optional[float] = None,
        operation: str = "operation",
    ) -> AsyncIterator[None]:
        """Hold exclusive access to a key for the duration of the block.

        Args:
            key: Entity id to lock
            timeout: Maximum time to wait (defaults to the registry timeout)
            operation: Description for logging

        Raises:
            LockTimeoutError: If the lock is not acquired in time
        """
        lock = self.get(key)
        timeout = self.timeout if timeout is None else timeout
        self._users[key] = self._users.get(key, 0) + 1

        try:
            try:
                if timeout:
                    await asyncio.wait_for(lock.acquire(), timeout=timeout)
                else:
                    await lock.acquire()
            except asyncio.TimeoutError:
                logger.warning(f"Lock timeout for {key} after {timeout}s: {operation}")
                raise LockTimeoutError(f"Could not acquire lock for {key} within {timeout}s")

            logger.debug(f"Lock acquired for {key}: {operation}")
            try:
                yield
            finally:
                lock.release()
                logger.debug(f"Lock released for {key}: {operation}")
        finally:
            self._release_user(key)

    def _release_user(self, key: Hashable) -> None:
        remaining = self._users.get(key, 1) - 1
        if remaining > 0:
            self._users[key] = remaining
            return
        self._users.pop(key, None)
        self._locks.pop(key, None)

    def is_locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def clear(self) -> None:
        """Clear all locks (useful for testing)."""
        self._locks.clear()
        self._users.clear()

    def __len__(self) -> int:
        return len(self._locks)

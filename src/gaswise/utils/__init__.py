"""Utility modules for gaswise."""

from gaswise.utils.locks import KeyedLocks, LockTimeoutError

__all__ = ["KeyedLocks", "LockTimeoutError"]

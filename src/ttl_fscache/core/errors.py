from __future__ import annotations


class FSCacheError(Exception):
    """Base error for the file system cache."""


class ConfigurationError(FSCacheError, ValueError):
    """Raised at construction when an option is invalid."""


class InvalidStateError(FSCacheError, RuntimeError):
    """Raised when the eviction queue's links are inconsistent."""


class QueueDestroyedError(InvalidStateError):
    """Raised when a destroyed queue is used again."""

"""Core module for the TTL eviction queue and its error types."""

from .errors import ConfigurationError, FSCacheError, InvalidStateError, QueueDestroyedError
from .models import Entry, EvictionCallback
from .queue import TTLEvictionQueue

__all__ = [
    # Queue
    "TTLEvictionQueue",
    "Entry",
    "EvictionCallback",
    # Errors
    "FSCacheError",
    "ConfigurationError",
    "InvalidStateError",
    "QueueDestroyedError",
]

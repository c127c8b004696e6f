"""ttl_fscache

A disk-backed TTL cache. Byte payloads are stored one file per key under a
cache directory and deleted automatically once their TTL runs out, driven by
a single-timer FIFO eviction queue.
"""

from .cache import AsyncCodec, DiskCache, DualCodec, EncodedCache, build_codec, hash_key
from .core import (
    ConfigurationError,
    Entry,
    EvictionCallback,
    FSCacheError,
    InvalidStateError,
    QueueDestroyedError,
    TTLEvictionQueue,
)
from .storage import FileSystem, InMemoryFileSystem, LocalFileSystem
from .utils import CacheConfig, parse_duration

__all__ = [
    "DiskCache",
    "EncodedCache",
    "AsyncCodec",
    "DualCodec",
    "build_codec",
    "hash_key",
    "TTLEvictionQueue",
    "Entry",
    "EvictionCallback",
    "FileSystem",
    "LocalFileSystem",
    "InMemoryFileSystem",
    "CacheConfig",
    "parse_duration",
    "FSCacheError",
    "ConfigurationError",
    "InvalidStateError",
    "QueueDestroyedError",
]

__version__ = "0.1.0"

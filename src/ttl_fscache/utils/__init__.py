"""Configuration helpers."""

from .config import HASH_LENGTH, CacheConfig, ErrorHandler
from .duration import Duration, parse_duration

__all__ = [
    "CacheConfig",
    "Duration",
    "ErrorHandler",
    "HASH_LENGTH",
    "parse_duration",
]

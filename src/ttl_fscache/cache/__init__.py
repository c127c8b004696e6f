from .codec import AsyncCodec, DualCodec, build_codec
from .disk_cache import DiskCache, hash_key
from .encoded import EncodedCache

__all__ = [
    "DiskCache",
    "EncodedCache",
    "AsyncCodec",
    "DualCodec",
    "build_codec",
    "hash_key",
]

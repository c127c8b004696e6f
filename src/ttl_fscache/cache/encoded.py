from __future__ import annotations

import logging
import typing as t

from ..core.errors import ConfigurationError
from ..monitoring.metrics import fscache_requests_total
from .codec import AsyncCodec, DualCodec, resolve
from .disk_cache import DiskCache

_logger = logging.getLogger(__name__)

V = t.TypeVar("V")


class EncodedCache(t.Generic[V]):
    """Stores values instead of bytes on top of a :class:`DiskCache`.

    On a miss the codec generates the value, which is returned right away
    while its encoded form is written back in the background. Write-back
    failures go to the disk cache's error handler.
    """

    def __init__(self, cache: DiskCache, codec: AsyncCodec[V]) -> None:
        self._cache = cache
        self._codec = codec
        self._sync_codec: t.Optional[DualCodec[V]] = codec if isinstance(codec, DualCodec) else None

    @property
    def cache(self) -> DiskCache:
        return self._cache

    @property
    def supports_sync(self) -> bool:
        return self._sync_codec is not None

    async def get(self, key: str) -> V:
        raw = await self._cache.get(key, fallback=False)
        if raw is not None:
            return await resolve(self._codec.decode(raw))

        value = await resolve(self._codec.generate(key))
        fscache_requests_total.inc(result="generated")
        self._cache.spawn_background(self._write_back(key, value))
        return value

    async def set(self, key: str, value: V) -> None:
        data = await resolve(self._codec.encode(value))
        await self._cache.set(key, data)

    def get_sync(self, key: str) -> V:
        codec = self._require_sync()
        raw = self._cache.get_sync(key, fallback=False)
        if raw is not None:
            return codec.decode_sync(raw)

        value = codec.generate_sync(key)
        fscache_requests_total.inc(result="generated")
        try:
            self._cache.set_sync(key, codec.encode_sync(value))
        except Exception as exc:  # noqa: BLE001 - write-back is best effort
            self._cache.report_error(exc)
        return value

    def set_sync(self, key: str, value: V) -> None:
        codec = self._require_sync()
        self._cache.set_sync(key, codec.encode_sync(value))

    def remove(self, key: str) -> bool:
        return self._cache.remove(key)

    async def clear(self) -> t.List[str]:
        return await self._cache.clear()

    async def _write_back(self, key: str, value: V) -> None:
        try:
            data = await resolve(self._codec.encode(value))
            await self._cache.set(key, data)
        except Exception as exc:  # noqa: BLE001 - routed to the error handler
            self._cache.report_error(exc)
        else:
            _logger.debug("Wrote generated value for %r back to the cache", key)

    def _require_sync(self) -> DualCodec[V]:
        if self._sync_codec is None:
            raise ConfigurationError(
                "blocking access needs generate_sync, encode_sync and decode_sync codec hooks"
            )
        return self._sync_codec

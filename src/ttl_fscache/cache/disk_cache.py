from __future__ import annotations

import asyncio
import dataclasses
import hashlib
import inspect
import logging
import os
import re
import time
import typing as t

from ..core.models import ClockFn, Entry
from ..core.queue import TTLEvictionQueue, running_loop
from ..monitoring.metrics import (
    fscache_background_errors_total,
    fscache_evictions_total,
    fscache_requests_total,
    fscache_write_latency_seconds,
)
from ..storage import FileSystem, LocalFileSystem
from ..utils.config import HASH_LENGTH, CacheConfig

_logger = logging.getLogger(__name__)

_HASH_NAME = re.compile(rf"^[0-9a-f]{{{HASH_LENGTH}}}$")

Generator = t.Callable[[str], t.Optional[bytes]]
AsyncGenerator = t.Callable[[str], t.Union[t.Optional[bytes], t.Awaitable[t.Optional[bytes]]]]


def hash_key(key: t.Union[str, bytes]) -> str:
    """SHA-256 hex digest used as the file name for ``key``."""
    raw = key.encode("utf-8") if isinstance(key, str) else bytes(key)
    return hashlib.sha256(raw).hexdigest()


def _log_error(exc: BaseException) -> None:
    _logger.error("Background cache operation failed: %s", exc, exc_info=exc)


class DiskCache:
    """Byte cache on disk with TTL-based deletion.

    Each key is stored in ``<base_path>/<sha256(key)>``. Reads and writes
    refresh the entry's TTL in a :class:`TTLEvictionQueue`; when an entry
    expires the queue calls back and the file is unlinked.

    Options come from ``config`` (a :class:`CacheConfig`) and/or keyword
    arguments with the same names. Unless ``skip_initial_scan`` is set, the
    directory is scanned synchronously in the constructor; otherwise call
    :meth:`init_async` (or enter the cache with ``async with``).
    """

    def __init__(
        self,
        config: t.Optional[CacheConfig] = None,
        *,
        generator: t.Optional[Generator] = None,
        generator_async: t.Optional[AsyncGenerator] = None,
        filesystem: t.Optional[FileSystem] = None,
        clock: t.Optional[ClockFn] = None,
        wall_clock: t.Optional[ClockFn] = None,
        loop: t.Optional[asyncio.AbstractEventLoop] = None,
        **options: t.Any,
    ) -> None:
        if config is None:
            config = CacheConfig.from_dict(options)
        elif options:
            config = dataclasses.replace(config, **options)
        self.config = config
        self.ttl = config.resolve_ttl()
        self.cache_path = config.resolve_base_path()

        self._error_handler = config.error_handler or _log_error
        self._generator = generator
        self._generator_async = generator_async
        self._fs = filesystem or LocalFileSystem()
        self._clock: ClockFn = clock or time.monotonic
        self._wall_clock: ClockFn = wall_clock or time.time

        self._queue = TTLEvictionQueue(self.ttl, self._on_evict, clock=self._clock, loop=loop)
        # hash -> (write token, bytes) for writes still in flight.
        self._pending: t.Dict[str, t.Tuple[object, bytes]] = {}
        self._tasks: t.Set[asyncio.Future] = set()
        self._evict_reason = "expired"
        self._initialized = False

        if not config.skip_initial_scan:
            self.init()

    # -- introspection -------------------------------------------------

    @property
    def queue(self) -> TTLEvictionQueue:
        return self._queue

    def entries(self) -> t.Iterator[Entry]:
        return self._queue.entries()

    def path_for(self, key: t.Union[str, bytes]) -> str:
        return os.path.join(self.cache_path, hash_key(key))

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, (str, bytes)):
            return False
        return hash_key(key) in self._queue

    def __len__(self) -> int:
        return len(self._queue)

    # -- bootstrap -----------------------------------------------------

    def init(self) -> int:
        """Create the cache directory or load existing files into the queue.

        Returns the number of files now tracked.
        """
        try:
            names = self._fs.list_dir_sync(self.cache_path)
        except FileNotFoundError:
            self._fs.make_dirs_sync(self.cache_path)
            self._initialized = True
            return 0

        stamps: t.List[t.Tuple[float, str]] = []
        for name in self._cache_file_names(names):
            try:
                stamps.append((self._fs.access_time_sync(os.path.join(self.cache_path, name)), name))
            except FileNotFoundError:
                _logger.debug("Cache file %s vanished during scan", name)
        loaded = self._load(stamps)
        self._catch_up()
        return loaded

    async def init_async(self) -> int:
        try:
            names = await self._fs.list_dir(self.cache_path)
        except FileNotFoundError:
            await self._fs.make_dirs(self.cache_path)
            self._initialized = True
            return 0

        stamps: t.List[t.Tuple[float, str]] = []
        for name in self._cache_file_names(names):
            try:
                stamps.append((await self._fs.access_time(os.path.join(self.cache_path, name)), name))
            except FileNotFoundError:
                _logger.debug("Cache file %s vanished during scan", name)
        loaded = self._load(stamps)
        self._catch_up()
        return loaded

    def _cache_file_names(self, names: t.Iterable[str]) -> t.Iterator[str]:
        for name in names:
            if _HASH_NAME.match(name):
                yield name
            else:
                _logger.warning("Skipping unexpected file %r in cache directory %s", name, self.cache_path)

    def _load(self, stamps: t.List[t.Tuple[float, str]]) -> int:
        # Oldest access first, so the queue stays sorted by expiration.
        stamps.sort(key=lambda item: item[0])
        offset = self._clock() - self._wall_clock()
        for atime, name in stamps:
            self._queue.append(name, atime + self.ttl + offset)
        self._initialized = True
        _logger.debug("Loaded %d cache files from %s", len(stamps), self.cache_path)
        return len(stamps)

    # -- reads ---------------------------------------------------------

    async def get(self, key: t.Union[str, bytes], *, fallback: bool = True) -> t.Optional[bytes]:
        """Return the cached bytes, or ``None`` (or the async generator's result) on a miss."""
        self._catch_up()
        hashed = hash_key(key)
        pending = self._pending.get(hashed)
        if pending is not None:
            self._queue.append(hashed)
            fscache_requests_total.inc(result="pending")
            return pending[1]

        try:
            data = await self._fs.read(os.path.join(self.cache_path, hashed))
        except FileNotFoundError:
            fscache_requests_total.inc(result="miss")
            if fallback and self._generator_async is not None:
                result = self._generator_async(self._as_text(key))
                if inspect.isawaitable(result):
                    result = await result
                return result
            return None

        self._queue.append(hashed)
        fscache_requests_total.inc(result="hit")
        return data

    def get_sync(self, key: t.Union[str, bytes], *, fallback: bool = True) -> t.Optional[bytes]:
        self._catch_up()
        hashed = hash_key(key)
        pending = self._pending.get(hashed)
        if pending is not None:
            self._queue.append(hashed)
            fscache_requests_total.inc(result="pending")
            return pending[1]

        try:
            data = self._fs.read_sync(os.path.join(self.cache_path, hashed))
        except FileNotFoundError:
            fscache_requests_total.inc(result="miss")
            if fallback and self._generator is not None:
                return self._generator(self._as_text(key))
            return None

        self._queue.append(hashed)
        fscache_requests_total.inc(result="hit")
        return data

    # -- writes --------------------------------------------------------

    async def set(self, key: t.Union[str, bytes], data: bytes) -> None:
        """Write ``data`` and restart its TTL.

        Until the write settles, reads of ``key`` are served from memory.
        """
        self._catch_up()
        hashed = hash_key(key)
        payload = bytes(data)
        token = object()
        self._queue.append(hashed)
        self._pending[hashed] = (token, payload)
        started = time.perf_counter()
        try:
            await self._fs.write(os.path.join(self.cache_path, hashed), payload)
        finally:
            current = self._pending.get(hashed)
            if current is not None and current[0] is token:
                del self._pending[hashed]
            fscache_write_latency_seconds.observe(time.perf_counter() - started)

        if current is None and hashed not in self._queue and not self._queue.destroyed:
            # Removed or cleared while the write was in flight.
            await self._unlink(hashed)

    def set_sync(self, key: t.Union[str, bytes], data: bytes) -> None:
        self._catch_up()
        hashed = hash_key(key)
        self._queue.append(hashed)
        started = time.perf_counter()
        try:
            self._fs.write_sync(os.path.join(self.cache_path, hashed), bytes(data))
        finally:
            fscache_write_latency_seconds.observe(time.perf_counter() - started)

    def remove(self, key: t.Union[str, bytes]) -> bool:
        """Drop ``key``; its file is unlinked through the eviction callback."""
        hashed = hash_key(key)
        self._pending.pop(hashed, None)
        self._evict_reason = "removed"
        try:
            return self._queue.delete(hashed, emit_callback=True)
        finally:
            self._evict_reason = "expired"

    async def clear(self) -> t.List[str]:
        """Forget every entry and delete its file; returns the removed hashes.

        Unlink failures go to the error handler.
        """
        hashes = self._queue.clear(emit_callback=False)
        self._pending.clear()
        fscache_evictions_total.inc(len(hashes), reason="cleared")
        results = await asyncio.gather(
            *(self._fs.unlink(os.path.join(self.cache_path, hashed)) for hashed in hashes),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                self.report_error(result)
        return hashes

    def clear_sync(self) -> t.List[str]:
        hashes = self._queue.clear(emit_callback=False)
        self._pending.clear()
        fscache_evictions_total.inc(len(hashes), reason="cleared")
        for hashed in hashes:
            try:
                self._fs.unlink_sync(os.path.join(self.cache_path, hashed))
            except Exception as exc:  # noqa: BLE001 - routed to the error handler
                self.report_error(exc)
        return hashes

    # -- background work -----------------------------------------------

    def report_error(self, exc: BaseException) -> None:
        fscache_background_errors_total.inc(type=type(exc).__name__)
        self._error_handler(exc)

    def spawn_background(self, coro: t.Coroutine[t.Any, t.Any, t.Any]) -> asyncio.Future:
        """Run ``coro`` as a tracked task; :meth:`aclose` waits for it."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _on_evict(self, hashed: str) -> None:
        fscache_evictions_total.inc(reason=self._evict_reason)
        _logger.debug("Evicting cache file %s (%s)", hashed, self._evict_reason)
        if running_loop() is None:
            self._unlink_sync(hashed)
        else:
            self.spawn_background(self._unlink(hashed))

    async def _unlink(self, hashed: str) -> None:
        if hashed in self._queue:
            # Re-added after eviction was scheduled; the new file must stay.
            return
        try:
            await self._fs.unlink(os.path.join(self.cache_path, hashed))
        except FileNotFoundError:
            _logger.warning("Cache file %s was already gone at eviction", hashed)
        except Exception as exc:  # noqa: BLE001 - routed to the error handler
            self.report_error(exc)

    def _unlink_sync(self, hashed: str) -> None:
        try:
            self._fs.unlink_sync(os.path.join(self.cache_path, hashed))
        except FileNotFoundError:
            _logger.warning("Cache file %s was already gone at eviction", hashed)
        except Exception as exc:  # noqa: BLE001 - routed to the error handler
            self.report_error(exc)

    def _catch_up(self) -> None:
        # Entries added without a loop, or armed on a closed one, have no live timer.
        if not self._queue.destroyed:
            self._queue.catch_up()

    @staticmethod
    def _as_text(key: t.Union[str, bytes]) -> str:
        return key if isinstance(key, str) else bytes(key).decode("utf-8", "replace")

    # -- lifecycle -----------------------------------------------------

    def destroy(self) -> None:
        """Cancel the eviction timer and forget all entries; files stay on disk."""
        self._queue.destroy()

    async def aclose(self) -> None:
        """Wait for background unlinks and write-backs, then :meth:`destroy`."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self.destroy()

    def __enter__(self) -> "DiskCache":
        return self

    def __exit__(self, *exc_info: t.Any) -> None:
        self.destroy()

    async def __aenter__(self) -> "DiskCache":
        if not self._initialized:
            await self.init_async()
        return self

    async def __aexit__(self, *exc_info: t.Any) -> None:
        await self.aclose()

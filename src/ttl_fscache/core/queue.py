from __future__ import annotations

import asyncio
import logging
import time
import typing as t

from .errors import ConfigurationError, InvalidStateError, QueueDestroyedError
from .models import ClockFn, Entry, EvictionCallback

_logger = logging.getLogger(__name__)

_NIL = -1


def running_loop() -> t.Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class TTLEvictionQueue:
    """FIFO queue of keys ordered by expiration, driven by one timer.

    Every key expires ``ttl`` seconds after its last ``append``. Because the
    TTL is fixed, appending at the tail keeps the sequence sorted by
    expiration, so only the head ever needs a scheduled callback. Entries
    live in a slot arena (parallel lists addressed by integer handles) with a
    key -> handle index, which gives O(1) append, delete and touch.

    The timer is scheduled on ``loop`` or, when omitted, on whichever asyncio
    loop is running when the head changes. Without a running loop no timer is
    armed; callers use :meth:`catch_up` to evict overdue entries and re-arm
    on the loop they run in.
    """

    def __init__(
        self,
        ttl: float,
        on_evict: t.Optional[EvictionCallback] = None,
        *,
        clock: t.Optional[ClockFn] = None,
        loop: t.Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        if ttl < 0:
            raise ConfigurationError(f"ttl must be non-negative, got {ttl!r}")
        self._ttl = float(ttl)
        self._on_evict = on_evict
        self._clock: ClockFn = clock or time.monotonic
        self._loop = loop

        # Slot arena; a released slot has key None and goes on the free list.
        self._keys: t.List[t.Optional[str]] = []
        self._expires: t.List[float] = []
        self._prev: t.List[int] = []
        self._next: t.List[int] = []
        self._free: t.List[int] = []
        self._index: t.Dict[str, int] = {}
        self._head = _NIL
        self._tail = _NIL

        self._timer: t.Optional[asyncio.TimerHandle] = None
        self._timer_loop: t.Optional[asyncio.AbstractEventLoop] = None
        self._stopped = False
        self._evicting = False
        self._destroyed = False

    # -- introspection -------------------------------------------------

    @property
    def ttl(self) -> float:
        return self._ttl

    @property
    def head(self) -> t.Optional[Entry]:
        return self._view(self._head)

    @property
    def tail(self) -> t.Optional[Entry]:
        return self._view(self._tail)

    @property
    def timer_pending(self) -> bool:
        return self._timer_live()

    @property
    def stopped(self) -> bool:
        return self._stopped

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def __iter__(self) -> t.Iterator[Entry]:
        return self.entries()

    def __repr__(self) -> str:
        chain = "->".join(entry.key for entry in self.entries())
        return f"<TTLEvictionQueue ttl={self._ttl} size={len(self)} [{chain}]>"

    def expires_at(self, key: str) -> t.Optional[float]:
        handle = self._index.get(key)
        return None if handle is None else self._expires[handle]

    def entries(self) -> t.Iterator[Entry]:
        """Yield live entries from head to tail.

        Each call starts a fresh walk. Links are followed lazily, so mutations
        made while iterating are visible; iteration stops early if the entry
        last yielded was removed in the meantime.
        """
        handle = self._head
        while handle != _NIL:
            key = self._keys[handle]
            if key is None:
                return
            yield Entry(key, self._expires[handle])
            if handle >= len(self._keys) or self._keys[handle] != key:
                return
            handle = self._next[handle]

    # -- mutation ------------------------------------------------------

    def append(self, key: str, expires_at: t.Optional[float] = None) -> None:
        """Insert ``key`` at the tail, or refresh it if already present.

        ``expires_at`` overrides ``now + ttl``; callers supplying overrides
        must append them in non-decreasing order to keep the queue sorted.
        """
        self._ensure_alive()
        expires = self._clock() + self._ttl if expires_at is None else float(expires_at)

        handle = self._index.get(key)
        if handle is not None:
            if handle == self._tail:
                prev = self._prev[handle]
                if prev == _NIL or self._expires[prev] <= expires:
                    # Touch: the re-inserted node would land in the same slot.
                    self._expires[handle] = expires
                    if handle == self._head:
                        self._rearm()
                    return
            self._unlink(handle, emit_callback=False)

        handle = self._alloc(key, expires)
        self._index[key] = handle
        if self._head == _NIL:
            self._head = self._tail = handle
            self._rearm()
            return

        if self._tail == _NIL:
            raise InvalidStateError("tail is unset on a non-empty queue")
        self._next[self._tail] = handle
        self._prev[handle] = self._tail
        self._tail = handle
        if not self._timer_live():
            self._rearm()

    def delete(self, key: str, emit_callback: bool = True) -> bool:
        """Remove ``key``; returns whether it was present."""
        self._ensure_alive()
        handle = self._index.get(key)
        if handle is None:
            return False
        self._unlink(handle, emit_callback)
        return True

    def delete_head(self, emit_callback: bool = True) -> bool:
        """Evict the head entry; returns whether the queue is still non-empty."""
        self._ensure_alive()
        handle = self._head
        if handle == _NIL:
            raise InvalidStateError("head is unset")
        key = self._keys[handle]
        if key is None:
            raise InvalidStateError("head points at a released slot")
        del self._index[key]

        nxt = self._next[handle]
        if nxt != _NIL:
            if self._prev[nxt] != handle:
                raise InvalidStateError(f"entry after head {key!r} does not link back to it")
            self._prev[nxt] = _NIL
            self._head = nxt
        else:
            self._head = self._tail = _NIL
        self._release(handle)
        self._rearm()

        if emit_callback:
            self._emit(key)
        return self._head != _NIL

    def evict_expired(self) -> int:
        """Evict every entry whose expiration is due; returns how many."""
        self._ensure_alive()
        count = 0
        now = self._clock()
        self._evicting = True
        try:
            while self._head != _NIL and self._expires[self._head] <= now:
                self.delete_head(emit_callback=True)
                count += 1
        finally:
            self._evicting = False
            self._rearm()
        return count

    def catch_up(self) -> int:
        """Evict overdue entries and arm a timer on the current loop if none is live.

        Covers entries added while no loop was running and timers left on a
        loop that has since closed. Does nothing while stopped.
        """
        self._ensure_alive()
        if self._stopped:
            return 0
        if self._head != _NIL and self._expires[self._head] <= self._clock():
            return self.evict_expired()
        if not self._timer_live():
            self._rearm()
        return 0

    def clear(self, emit_callback: bool = True) -> t.List[str]:
        """Remove every entry and return their keys in queue order."""
        self._ensure_alive()
        keys = [entry.key for entry in self.entries()]
        self._reset()
        self._cancel_timer()
        if emit_callback:
            for key in keys:
                self._emit(key)
        return keys

    def stop(self) -> None:
        """Cancel the pending timer; entries keep their expirations."""
        self._stopped = True
        self._cancel_timer()

    def start(self) -> None:
        """Resume eviction, arming a timer for the head if none is pending."""
        self._ensure_alive()
        self._stopped = False
        if not self._timer_live():
            self._rearm()

    def destroy(self) -> None:
        """Cancel the timer and release every entry. The queue is unusable afterwards."""
        if self._destroyed:
            return
        self._cancel_timer()
        self._reset()
        self._destroyed = True
        self._on_evict = None

    # -- internals -----------------------------------------------------

    def _unlink(self, handle: int, emit_callback: bool) -> None:
        if handle == self._head:
            self.delete_head(emit_callback)
            return

        key = self._keys[handle]
        if key is None:
            raise InvalidStateError("index points at a released slot")
        prev = self._prev[handle]
        if prev == _NIL:
            raise InvalidStateError(f"entry {key!r} has no predecessor")
        del self._index[key]

        if handle == self._tail:
            self._next[prev] = _NIL
            self._tail = prev
        else:
            nxt = self._next[handle]
            if nxt == _NIL:
                raise InvalidStateError(f"entry {key!r} has no successor")
            self._next[prev] = nxt
            self._prev[nxt] = prev
        self._release(handle)

        if emit_callback:
            self._emit(key)

    def _alloc(self, key: str, expires: float) -> int:
        if self._free:
            handle = self._free.pop()
            self._keys[handle] = key
            self._expires[handle] = expires
            self._prev[handle] = _NIL
            self._next[handle] = _NIL
            return handle
        self._keys.append(key)
        self._expires.append(expires)
        self._prev.append(_NIL)
        self._next.append(_NIL)
        return len(self._keys) - 1

    def _release(self, handle: int) -> None:
        self._keys[handle] = None
        self._prev[handle] = _NIL
        self._next[handle] = _NIL
        self._free.append(handle)

    def _reset(self) -> None:
        self._keys.clear()
        self._expires.clear()
        self._prev.clear()
        self._next.clear()
        self._free.clear()
        self._index.clear()
        self._head = self._tail = _NIL

    def _emit(self, key: str) -> None:
        if self._on_evict is not None:
            self._on_evict(key)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
            self._timer_loop = None

    def _timer_live(self) -> bool:
        loop = self._timer_loop
        if self._timer is None or loop is None or loop.is_closed():
            return False
        if self._loop is None:
            # Unpinned timers belong to whichever loop is running now.
            current = running_loop()
            return current is None or current is loop
        return True

    def _rearm(self) -> None:
        # Sole place a timer gets scheduled.
        if self._evicting:
            return
        self._cancel_timer()
        if self._head == _NIL or self._stopped or self._destroyed:
            return
        loop = self._loop or running_loop()
        if loop is None:
            _logger.debug("No event loop available; eviction timer not armed")
            return
        delay = self._expires[self._head] - self._clock()
        self._timer = loop.call_later(max(delay, 0.0), self._on_timer)
        self._timer_loop = loop

    def _on_timer(self) -> None:
        self._timer = None
        self._timer_loop = None
        if self._destroyed or self._head == _NIL:
            return
        self._evicting = True
        try:
            # The armed head is evicted even if the timer fired early.
            self.delete_head(emit_callback=True)
            now = self._clock()
            while self._head != _NIL and self._expires[self._head] <= now:
                self.delete_head(emit_callback=True)
        finally:
            self._evicting = False
            self._rearm()

    def _ensure_alive(self) -> None:
        if self._destroyed:
            raise QueueDestroyedError("queue has been destroyed")

    def _view(self, handle: int) -> t.Optional[Entry]:
        if handle == _NIL:
            return None
        key = self._keys[handle]
        if key is None:
            raise InvalidStateError("queue end points at a released slot")
        return Entry(key, self._expires[handle])

"""Shared fixtures and fakes for unit tests."""

from __future__ import annotations

import typing as t

import pytest

from ttl_fscache.cache import DiskCache
from ttl_fscache.storage import InMemoryFileSystem

WALL_NOW = 1_700_000_000.0


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTimerHandle:
    def __init__(self, when: float, callback: t.Callable[[], None]) -> None:
        self.when = when
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeLoop:
    """Stands in for an asyncio loop; only ``call_later`` is used by the queue."""

    def __init__(self, clock: FakeClock) -> None:
        self.clock = clock
        self.handles: t.List[FakeTimerHandle] = []

    def call_later(self, delay: float, callback: t.Callable[[], None]) -> FakeTimerHandle:
        handle = FakeTimerHandle(self.clock.now + delay, callback)
        self.handles.append(handle)
        return handle

    def is_closed(self) -> bool:
        return False

    @property
    def live(self) -> t.List[FakeTimerHandle]:
        return [h for h in self.handles if not h.cancelled]

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every live timer that comes due."""
        target = self.clock.now + seconds
        while True:
            due = sorted((h for h in self.live if h.when <= target), key=lambda h: h.when)
            if not due:
                break
            handle = due[0]
            handle.cancelled = True  # a fired handle is spent
            self.clock.now = max(self.clock.now, handle.when)
            handle.callback()
        self.clock.now = target


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_loop(clock):
    return FakeLoop(clock)


@pytest.fixture
def memory_fs():
    return InMemoryFileSystem(clock=lambda: WALL_NOW)


@pytest.fixture
def errors():
    """Collects exceptions passed to a cache error handler."""
    return []


@pytest.fixture
def make_cache(memory_fs, clock, errors):
    """Build a DiskCache over the in-memory file system with a fake clock."""
    created: t.List[DiskCache] = []

    def _make(**options: t.Any) -> DiskCache:
        options.setdefault("base_path", "/cache")
        options.setdefault("ttl", 60)
        options.setdefault("error_handler", errors.append)
        options.setdefault("filesystem", memory_fs)
        options.setdefault("clock", clock)
        options.setdefault("wall_clock", lambda: WALL_NOW)
        cache = DiskCache(**options)
        created.append(cache)
        return cache

    yield _make
    for cache in created:
        cache.destroy()

"""Unit tests for TTLEvictionQueue."""

import asyncio

import pytest

from ttl_fscache.core.errors import ConfigurationError, InvalidStateError, QueueDestroyedError
from ttl_fscache.core.queue import TTLEvictionQueue


def keys_of(queue):
    return [entry.key for entry in queue.entries()]


class TestConstruction:
    def test_negative_ttl_rejected(self):
        with pytest.raises(ConfigurationError):
            TTLEvictionQueue(-1)

    def test_zero_ttl_allowed(self, clock, fake_loop):
        queue = TTLEvictionQueue(0, clock=clock, loop=fake_loop)
        queue.append("a")
        assert queue.head.expires_at == clock.now

    def test_empty_queue(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        assert len(queue) == 0
        assert queue.head is None
        assert queue.tail is None
        assert not queue.timer_pending
        assert list(queue.entries()) == []


class TestOrdering:
    def test_append_order_is_fifo(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        for key in ["a", "b", "c", "d"]:
            queue.append(key)
            clock.advance(1)

        assert keys_of(queue) == ["a", "b", "c", "d"]
        stamps = [entry.expires_at for entry in queue.entries()]
        assert stamps == sorted(stamps)
        assert queue.head.key == "a"
        assert queue.tail.key == "d"

    def test_reappend_moves_to_tail_without_callback(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        for key in ["a", "b", "c"]:
            queue.append(key)
        clock.advance(2)

        queue.append("b")

        assert keys_of(queue) == ["a", "c", "b"]
        assert queue.expires_at("b") == clock.now + 10
        assert evicted == []

    def test_touch_tail_updates_in_place(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        queue.append("a")
        queue.append("b")
        clock.advance(3)

        queue.append("b")

        assert keys_of(queue) == ["a", "b"]
        assert queue.tail.expires_at == clock.now + 10
        assert evicted == []
        assert len(queue) == 2

    def test_touch_sole_entry_rearms_timer(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        queue.append("a")
        first = fake_loop.live[0]
        clock.advance(5)

        queue.append("a")

        assert first.cancelled
        assert len(fake_loop.live) == 1
        assert fake_loop.live[0].when == clock.now + 10

    def test_reappend_head_promotes_next(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        queue.append("a")
        clock.advance(1)
        queue.append("b")
        clock.advance(1)

        queue.append("a")

        assert keys_of(queue) == ["b", "a"]
        assert len(fake_loop.live) == 1
        assert fake_loop.live[0].when == queue.expires_at("b")

    def test_override_expiry(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        queue.append("a", clock.now + 1)
        queue.append("b", clock.now + 2)
        assert queue.expires_at("a") == clock.now + 1
        assert fake_loop.live[0].when == clock.now + 1


class TestDelete:
    def test_delete_missing_returns_false(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        assert queue.delete("nope") is False

    def test_delete_interior(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        for key in ["a", "b", "c"]:
            queue.append(key)

        assert queue.delete("b") is True
        assert keys_of(queue) == ["a", "c"]
        assert "b" not in queue
        assert evicted == ["b"]

    def test_delete_tail_retargets_tail(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        for key in ["a", "b", "c"]:
            queue.append(key)

        queue.delete("c")

        assert queue.tail.key == "b"
        queue.append("d")
        assert keys_of(queue) == ["a", "b", "d"]

    def test_quiet_delete_skips_callback(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        queue.append("a")
        queue.append("b")

        assert queue.delete("a", emit_callback=False) is True
        assert evicted == []
        assert keys_of(queue) == ["b"]

    def test_delete_head_rearms_for_next(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        queue.append("a")
        clock.advance(4)
        queue.append("b")

        queue.delete("a")

        assert len(fake_loop.live) == 1
        assert fake_loop.live[0].when == queue.expires_at("b")

    def test_delete_last_entry_cancels_timer(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        queue.append("a")

        queue.delete("a")

        assert not queue.timer_pending
        assert fake_loop.live == []
        assert queue.head is None and queue.tail is None

    def test_delete_head_on_empty_queue_raises(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        with pytest.raises(InvalidStateError):
            queue.delete_head()

    def test_delete_head_reports_remaining(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        queue.append("a")
        queue.append("b")

        assert queue.delete_head() is True
        assert queue.delete_head(emit_callback=False) is False
        assert evicted == ["a"]

    def test_slots_are_reused(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        for round_ in range(50):
            queue.append(f"k{round_}")
            queue.delete(f"k{round_}")
        queue.append("last")
        assert len(queue._keys) == 1
        assert keys_of(queue) == ["last"]


class TestTimer:
    def test_single_timer_for_many_entries(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        for i in range(100):
            queue.append(f"k{i}")
            clock.advance(0.01)

        assert len(fake_loop.live) == 1
        assert fake_loop.live[0].when == queue.head.expires_at

    def test_expiration_evicts_in_order(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        queue.append("a")
        clock.advance(1)
        queue.append("b")
        clock.advance(1)
        queue.append("c")

        fake_loop.advance(8.5)
        assert evicted == ["a"]
        assert queue.head.key == "b"

        fake_loop.advance(10)
        assert evicted == ["a", "b", "c"]
        assert len(queue) == 0
        assert not queue.timer_pending

    def test_not_evicted_before_ttl(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        queue.append("a")
        fake_loop.advance(9)
        assert evicted == []
        fake_loop.advance(1)
        assert evicted == ["a"]

    def test_touch_postpones_eviction(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        queue.append("a")
        queue.append("b")
        fake_loop.advance(6)
        queue.append("a")

        fake_loop.advance(5)
        assert evicted == ["b"]
        fake_loop.advance(5)
        assert evicted == ["b", "a"]

    def test_late_timer_evicts_due_entries_in_one_pass(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(1, evicted.append, clock=clock, loop=fake_loop)
        for key in ["a", "b", "c"]:
            queue.append(key)
        handle = fake_loop.live[0]

        clock.advance(5)
        handle.cancelled = True
        handle.callback()

        assert evicted == ["a", "b", "c"]
        assert fake_loop.live == []

    def test_timer_evicts_head_even_when_early(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        queue.append("a")
        queue.append("b")
        handle = fake_loop.live[0]
        handle.cancelled = True

        handle.callback()

        assert evicted == ["a"]
        assert len(fake_loop.live) == 1

    def test_overdue_override_fires_immediately(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        queue.append("old", clock.now - 5)
        assert fake_loop.live[0].when == clock.now
        fake_loop.advance(0)
        assert evicted == ["old"]

    def test_stop_and_start(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        queue.append("a")

        queue.stop()
        assert not queue.timer_pending
        queue.append("b")
        assert not queue.timer_pending
        fake_loop.advance(20)
        assert evicted == []
        assert keys_of(queue) == ["a", "b"]

        queue.start()
        assert queue.timer_pending
        fake_loop.advance(0)
        assert evicted == ["a", "b"]

    def test_no_timer_without_loop(self, clock):
        queue = TTLEvictionQueue(10, clock=clock)
        queue.append("a")
        assert not queue.timer_pending

    def test_evict_expired(self, clock):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock)
        queue.append("a")
        clock.advance(5)
        queue.append("b")
        clock.advance(5)

        assert queue.evict_expired() == 1
        assert evicted == ["a"]
        assert keys_of(queue) == ["b"]

    @pytest.mark.asyncio
    async def test_uses_running_loop(self):
        evicted = []
        queue = TTLEvictionQueue(0.05, evicted.append)
        try:
            queue.append("a")
            assert queue.timer_pending
            await asyncio.sleep(0.15)
            assert evicted == ["a"]
            assert not queue.timer_pending
        finally:
            queue.destroy()


class TestClearAndDestroy:
    def test_clear_returns_keys_in_order(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        for key in ["a", "b", "c"]:
            queue.append(key)

        assert queue.clear() == ["a", "b", "c"]
        assert evicted == ["a", "b", "c"]
        assert len(queue) == 0
        assert not queue.timer_pending
        assert fake_loop.live == []

    def test_clear_quietly(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        queue.append("a")
        assert queue.clear(emit_callback=False) == ["a"]
        assert evicted == []

    def test_queue_usable_after_clear(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        queue.append("a")
        queue.clear()
        queue.append("b")
        assert keys_of(queue) == ["b"]
        assert queue.timer_pending

    def test_destroy_is_terminal(self, clock, fake_loop):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock, loop=fake_loop)
        queue.append("a")

        queue.destroy()
        queue.destroy()

        assert fake_loop.live == []
        assert len(queue) == 0
        assert evicted == []
        with pytest.raises(QueueDestroyedError):
            queue.append("b")
        with pytest.raises(QueueDestroyedError):
            queue.start()


class TestEntries:
    def test_entries_restartable(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        queue.append("a")
        queue.append("b")
        assert keys_of(queue) == keys_of(queue) == ["a", "b"]

    def test_entries_are_lazy(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        queue.append("a")
        walk = queue.entries()
        queue.append("b")
        assert [entry.key for entry in walk] == ["a", "b"]

    def test_walk_follows_live_links_after_slot_reuse(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        for key in ["a", "b", "c"]:
            queue.append(key)
        walk = queue.entries()
        assert next(walk).key == "a"

        queue.delete("b")
        queue.append("d")

        assert [entry.key for entry in walk] == ["c", "d"]

    def test_walk_stops_when_current_entry_removed(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        for key in ["a", "b", "c"]:
            queue.append(key)
        walk = queue.entries()
        assert next(walk).key == "a"

        queue.delete("b")
        queue.delete("a")
        queue.append("d")

        assert list(walk) == []

    def test_walk_stops_after_destroy(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        queue.append("a")
        queue.append("b")
        walk = queue.entries()
        next(walk)

        queue.destroy()

        assert list(walk) == []


class TestCatchUp:
    def test_evicts_overdue_entries_without_loop(self, clock):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock)
        queue.append("a")
        queue.append("b")
        clock.advance(10)

        assert queue.catch_up() == 2
        assert evicted == ["a", "b"]

    def test_noop_while_stopped(self, clock):
        evicted = []
        queue = TTLEvictionQueue(10, evicted.append, clock=clock)
        queue.append("a")
        queue.stop()
        clock.advance(20)

        assert queue.catch_up() == 0
        assert evicted == []

    def test_keeps_live_timer(self, clock, fake_loop):
        queue = TTLEvictionQueue(10, clock=clock, loop=fake_loop)
        queue.append("a")
        handle = fake_loop.live[0]

        assert queue.catch_up() == 0
        assert fake_loop.live == [handle]

    def test_raises_when_destroyed(self, clock):
        queue = TTLEvictionQueue(10, clock=clock)
        queue.destroy()
        with pytest.raises(QueueDestroyedError):
            queue.catch_up()

    def test_arms_timer_when_entries_predate_the_loop(self, clock):
        queue = TTLEvictionQueue(10, clock=clock)
        queue.append("a")

        async def resume():
            queue.catch_up()
            return queue.timer_pending

        try:
            assert asyncio.run(resume())
        finally:
            queue.destroy()

    def test_timer_on_closed_loop_is_replaced(self, clock):
        queue = TTLEvictionQueue(10, clock=clock)

        async def add(key):
            queue.append(key)
            return queue.timer_pending

        try:
            assert asyncio.run(add("a"))
            assert not queue.timer_pending
            assert asyncio.run(add("b"))
        finally:
            queue.destroy()

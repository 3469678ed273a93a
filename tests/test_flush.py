"""Tests for the pending tally and the flush scheduler."""

import asyncio
import threading

import pytest

from ratecounter.lib.flush import FlushScheduler
from ratecounter.lib.sliding_window import create_store
from ratecounter.lib.tally import PendingTally


class TestPendingTally:
    """Tests for PendingTally."""

    def test_drain_returns_and_resets(self):
        tally = PendingTally()
        tally.increment()
        tally.increment(4)

        assert tally.value == 5
        assert tally.drain() == 5
        assert tally.value == 0
        assert tally.drain() == 0

    def test_concurrent_increments_are_not_lost(self):
        tally = PendingTally()

        def worker():
            for _ in range(1000):
                tally.increment()

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert tally.drain() == 8000


class TestFlushScheduler:
    """Tests for FlushScheduler."""

    def test_flush_moves_tally_into_store(self, clock):
        store = create_store("ring", 60)
        tally = PendingTally()
        scheduler = FlushScheduler(store, tally, clock=clock)
        before = store.total(clock())

        for _ in range(25):
            tally.increment()
        recorded = scheduler.flush()

        assert recorded == 25
        assert tally.value == 0
        assert store.total(clock()) == before + 25

    def test_empty_flush_still_advances_window(self, clock):
        store = create_store("ring", 60)
        tally = PendingTally()
        scheduler = FlushScheduler(store, tally, clock=clock)
        tally.increment(3)
        scheduler.flush()

        clock.advance(61)
        scheduler.flush()

        assert store.last_update == clock()
        assert store.total(clock()) == 0

    @pytest.mark.asyncio
    async def test_concurrent_callers_then_flush(self, clock):
        store = create_store("sparse", 60)
        tally = PendingTally()
        scheduler = FlushScheduler(store, tally, clock=clock)

        async def caller():
            tally.increment()

        await asyncio.gather(*(caller() for _ in range(50)))
        scheduler.flush()

        assert store.total(clock()) == 50

    @pytest.mark.asyncio
    async def test_background_task_flushes_periodically(self, clock):
        store = create_store("sparse", 60)
        tally = PendingTally()
        scheduler = FlushScheduler(store, tally, interval=0.01, clock=clock)

        await scheduler.start()
        assert scheduler.running
        tally.increment(7)
        await asyncio.sleep(0.1)
        await scheduler.stop()

        assert not scheduler.running
        assert tally.value == 0
        assert store.total(clock()) == 7

    @pytest.mark.asyncio
    async def test_stop_without_start_is_safe(self, clock):
        scheduler = FlushScheduler(create_store("ring", 60), PendingTally(), clock=clock)
        await scheduler.stop()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_periodic_snapshot_errors_do_not_stop_the_loop(self, clock):
        calls = []

        async def on_snapshot():
            calls.append(clock())
            raise OSError("disk full")

        scheduler = FlushScheduler(
            create_store("ring", 60),
            PendingTally(),
            interval=0.01,
            clock=clock,
            on_snapshot=on_snapshot,
            snapshot_interval=0.02,
        )

        await scheduler.start()
        await asyncio.sleep(0.2)
        assert scheduler.running
        await scheduler.stop()

        assert len(calls) >= 2

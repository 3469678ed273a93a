"""Periodic flush of the pending tally into the window store."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from ratecounter.lib.sliding_window import WindowStore
from ratecounter.lib.tally import PendingTally

logger = logging.getLogger(__name__)


class FlushScheduler:
    """Drains a :class:`PendingTally` into a :class:`WindowStore` on a fixed period.

    The scheduler is the only writer of the store. It records on every tick,
    including empty ones, so the window keeps moving with the wall clock.

    Args:
        store: The window store to record into.
        tally: The tally incremented by request handlers.
        interval: Seconds between flush ticks.
        clock: Returns the current wall-clock time in epoch seconds.
        on_snapshot: Coroutine function invoked every *snapshot_interval*.
        snapshot_interval: Seconds between snapshots; 0 disables them.
    """

    def __init__(
        self,
        store: WindowStore,
        tally: PendingTally,
        interval: float = 0.01,
        clock: Callable[[], float] = time.time,
        on_snapshot: Callable[[], Awaitable[None]] | None = None,
        snapshot_interval: float = 0.0,
    ) -> None:
        self.store = store
        self.tally = tally
        self.interval = interval
        self.clock = clock
        self.on_snapshot = on_snapshot
        self.snapshot_interval = snapshot_interval
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def flush(self) -> int:
        """Run a single tick. Returns the number of requests recorded."""
        delta = self.tally.drain()
        self.store.record(self.clock(), delta)
        return delta

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _run(self) -> None:
        loop = asyncio.get_running_loop()
        next_snapshot = loop.time() + self.snapshot_interval
        while True:
            await asyncio.sleep(self.interval)
            self.flush()
            if self.on_snapshot and self.snapshot_interval > 0 and loop.time() >= next_snapshot:
                next_snapshot = loop.time() + self.snapshot_interval
                try:
                    await self.on_snapshot()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.warning("Periodic snapshot failed", exc_info=True)

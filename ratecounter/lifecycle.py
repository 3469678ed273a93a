"""Start/stop glue for the request counter.

On start the persisted window (if any) is loaded and fast-forwarded to the
present; while running the flush scheduler drains the tally into the store;
on stop the scheduler is cancelled before the final snapshot is written.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

from ratecounter.config import Settings
from ratecounter.lib import observability
from ratecounter.lib.exceptions import SnapshotError
from ratecounter.lib.flush import FlushScheduler
from ratecounter.lib.sliding_window import WindowStore, create_store
from ratecounter.lib.snapshot import load_store, write_snapshot
from ratecounter.lib.tally import PendingTally

logger = logging.getLogger(__name__)


def restore_or_create(settings: Settings, clock: Callable[[], float] = time.time) -> WindowStore:
    """Return the persisted store reconciled to *clock()*, or a fresh one.

    A missing or unusable snapshot is never fatal.
    """
    def fresh() -> WindowStore:
        return create_store(settings.strategy, settings.window_seconds)

    if not settings.persist:
        return fresh()

    path = settings.output_file
    if not path.exists():
        logger.info("No counter snapshot at %s, starting with an empty window", path)
        return fresh()

    with observability.span("snapshot.load", path=str(path)):
        try:
            store = load_store(path, settings.strategy, settings.window_seconds)
        except SnapshotError as exc:
            logger.warning("Ignoring counter snapshot %s: %s", path, exc)
            return fresh()

    store.reconcile(clock())
    logger.info("Restored %s window of %ss from %s", store.strategy, store.window, path)
    return store


class CounterLifecycle:
    """Owns the store, the tally and the flush scheduler for one application."""

    def __init__(
        self,
        settings: Settings,
        store: WindowStore,
        tally: PendingTally | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.store = store
        self.tally = tally if tally is not None else PendingTally()
        self.clock = clock
        self.scheduler = FlushScheduler(
            store,
            self.tally,
            interval=settings.flush_interval,
            clock=clock,
            on_snapshot=self.save if settings.persist else None,
            snapshot_interval=settings.snapshot_interval,
        )
        self._pending_save: asyncio.Future | None = None

    @classmethod
    def open(cls, settings: Settings, clock: Callable[[], float] = time.time) -> CounterLifecycle:
        return cls(settings, restore_or_create(settings, clock), clock=clock)

    def flush(self) -> int:
        return self.scheduler.flush()

    async def _wait_for_pending_save(self) -> None:
        """Let a write whose caller was cancelled finish before the next one."""
        pending, self._pending_save = self._pending_save, None
        if pending is None:
            return
        try:
            await pending
        except SnapshotError:
            logger.warning("Earlier counter snapshot write failed", exc_info=True)

    async def save(self) -> None:
        """Write the current window to the configured snapshot file.

        The write runs in a worker thread that cancellation cannot stop, so it
        is kept until it finishes and awaited before any later write.

        Raises:
            SnapshotError: The snapshot could not be written.
        """
        await self._wait_for_pending_save()
        path = self.settings.output_file
        with observability.span("snapshot.save", path=str(path)):
            self._pending_save = asyncio.ensure_future(
                asyncio.to_thread(write_snapshot, path, self.store)
            )
            await asyncio.shield(self._pending_save)
        self._pending_save = None
        logger.debug("Saved counter snapshot to %s", path)

    async def startup(self) -> None:
        await self.scheduler.start()

    async def shutdown(self) -> None:
        await self.scheduler.stop()
        self.scheduler.flush()

        if not self.settings.persist:
            return

        self.store.compact(self.clock())
        try:
            await self.save()
        except SnapshotError:
            logger.error("Could not persist counter snapshot", exc_info=True)
        else:
            logger.info("Persisted counter snapshot to %s", self.settings.output_file)

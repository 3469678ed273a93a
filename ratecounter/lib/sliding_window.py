"""Sliding window request counters bucketed by whole seconds.

Two interchangeable strategies share the :class:`WindowStore` interface:

- ``ring``: :class:`FixedRingStore`, a fixed ring of W slots indexed by
  ``second % W``. O(1) record, O(W) total, needs :meth:`reconcile` after a
  restart so downtime is treated as elapsed time.
- ``sparse``: :class:`SparseMapStore`, lazily created entries keyed by
  ``second % W`` that are filtered for staleness on every read. No reconcile
  step is needed.

All timestamps are wall-clock epoch seconds so persisted state stays
meaningful across process restarts.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal

Strategy = Literal["ring", "sparse"]


def walk_back(start: int, steps: int, size: int) -> list[int]:
    """Return the slots visited walking backward from *start* for *steps* steps.

    The walk includes *start* itself and wraps from slot 0 to ``size - 1``.
    At most *size* slots are returned since any further step revisits a slot.
    """
    steps = max(0, min(steps, size))
    return [(start - i) % size for i in range(steps)]


class WindowStore(ABC):
    """Per-second request counts covering the trailing *window* seconds.

    Mutated by a single writer (the flush scheduler) and read concurrently by
    request handlers; every access goes through one lock.
    """

    strategy: Strategy

    def __init__(self, window: int = 60) -> None:
        if window < 1:
            raise ValueError(f"Window must be at least 1 second, got {window}")
        self.window = window
        self.last_update = 0.0
        self._lock = threading.Lock()

    def _clamp(self, now: float) -> float:
        # A clock that moved backward is treated as no time having passed.
        return now if now >= self.last_update else self.last_update

    @abstractmethod
    def record(self, slot_time: float, delta: int = 1) -> None:
        """Add *delta* events observed at *slot_time*."""

    @abstractmethod
    def total(self, now: float) -> int:
        """Return the number of events within the window ending at *now*."""

    def reconcile(self, now: float) -> None:
        """Bring restored state in line with the wall clock at *now*."""

    def compact(self, now: float) -> None:
        """Drop state that can no longer contribute to any total."""

    @abstractmethod
    def describe(self) -> str:
        """Return a compact, comma separated view of the buckets."""


class FixedRingStore(WindowStore):
    """A ring of *window* slots, one per second of the window.

    Slot ``i`` always holds the count for the most recent second ``s`` not
    after ``last_second`` with ``s % window == i``. Whenever the ring moves
    forward, the slots it skips are zeroed so no slot can surface a count
    from an older rotation.
    """

    strategy = "ring"

    def __init__(self, window: int = 60) -> None:
        super().__init__(window)
        self.counts = [0] * window
        self.last_second = 0

    @classmethod
    def from_counts(cls, counts: list[int], last_update: float) -> FixedRingStore:
        store = cls(len(counts))
        store.counts = list(counts)
        store.last_update = last_update
        store.last_second = int(last_update)
        return store

    @property
    def current_slot(self) -> int:
        return self.last_second % self.window

    def _move_to(self, second: int) -> None:
        shift = second - self.last_second
        if abs(shift) >= self.window:
            self.counts = [0] * self.window
        elif shift > 0:
            for slot in walk_back(second % self.window, shift, self.window):
                self.counts[slot] = 0
        # A short backward step keeps the counts; slots after *second* are
        # then read as older seconds and expire within one window.
        self.last_second = second

    def record(self, slot_time: float, delta: int = 1) -> None:
        with self._lock:
            self._move_to(int(slot_time))
            self.counts[self.current_slot] += delta
            self.last_update = slot_time

    def total(self, now: float) -> int:
        with self._lock:
            now_second = max(int(self._clamp(now)), self.last_second)
            lag = now_second - self.last_second
            if lag >= self.window:
                return 0
            total = 0
            for slot, count in enumerate(self.counts):
                age = lag + (self.last_second - slot) % self.window
                if age < self.window:
                    total += count
            return total

    def reconcile(self, now: float) -> None:
        """Zero the slots for every second that passed since the last write.

        An idle period of a full window or more clears the ring; a shorter one
        walks back from the current second, wrapping at slot 0, so older data
        that is still inside the window survives.
        """
        with self._lock:
            now = self._clamp(now)
            self._move_to(int(now))
            self.last_update = now

    def snapshot_counts(self) -> tuple[list[int], int, float]:
        with self._lock:
            return list(self.counts), self.current_slot, self.last_update

    def describe(self) -> str:
        with self._lock:
            return ",".join(str(count) for count in self.counts)


@dataclass
class Entry:
    """Count for a single second and the time it was last written."""

    count: int
    last_update: float


class SparseMapStore(WindowStore):
    """Lazily populated entries keyed by ``second % window``.

    Entries are never cleared eagerly: an entry counts toward the total
    while ``now - entry.last_update <= window``, and a stale entry is
    replaced the next time its key is written.
    """

    strategy = "sparse"

    def __init__(self, window: int = 60) -> None:
        super().__init__(window)
        self.entries: dict[int, Entry] = {}

    @classmethod
    def from_entries(
        cls, window: int, entries: dict[int, Entry], last_update: float
    ) -> SparseMapStore:
        store = cls(window)
        store.entries = dict(entries)
        store.last_update = last_update
        return store

    def _is_stale(self, entry: Entry, now: float) -> bool:
        return now - entry.last_update > self.window

    def _rebase(self, slot_time: float) -> None:
        # The clock moved backward: a jump of a full window or more discards
        # everything, a shorter one treats newer entries as written now.
        if self.last_update - slot_time >= self.window:
            self.entries.clear()
            return
        for entry in self.entries.values():
            if entry.last_update > slot_time:
                entry.last_update = slot_time

    def record(self, slot_time: float, delta: int = 1) -> None:
        with self._lock:
            if slot_time < self.last_update:
                self._rebase(slot_time)
            second = int(slot_time)
            key = second % self.window
            entry = self.entries.get(key)
            if entry is not None and int(entry.last_update) == second:
                entry.count += delta
                entry.last_update = slot_time
            elif delta:
                self.entries[key] = Entry(count=delta, last_update=slot_time)
            self.last_update = slot_time

    def total(self, now: float) -> int:
        with self._lock:
            now = self._clamp(now)
            return sum(
                entry.count
                for entry in self.entries.values()
                if not self._is_stale(entry, now)
            )

    def reconcile(self, now: float) -> None:
        # Staleness is evaluated per entry on read.
        pass

    def compact(self, now: float) -> None:
        with self._lock:
            now = self._clamp(now)
            stale_keys = [
                key for key, entry in self.entries.items() if self._is_stale(entry, now)
            ]
            for key in stale_keys:
                del self.entries[key]

    def snapshot_entries(self) -> tuple[dict[int, Entry], float]:
        with self._lock:
            return (
                {key: Entry(e.count, e.last_update) for key, e in self.entries.items()},
                self.last_update,
            )

    def describe(self) -> str:
        with self._lock:
            return ",".join(
                f"{key}:{self.entries[key].count}" for key in sorted(self.entries)
            )


STORES: dict[str, type[WindowStore]] = {
    FixedRingStore.strategy: FixedRingStore,
    SparseMapStore.strategy: SparseMapStore,
}


def create_store(strategy: str = "sparse", window: int = 60) -> WindowStore:
    """Instantiate an empty store for *strategy*."""
    try:
        store_cls = STORES[strategy]
    except KeyError:
        raise ValueError(
            f"Unknown window strategy '{strategy}': expected one of {sorted(STORES)}"
        ) from None
    return store_cls(window)

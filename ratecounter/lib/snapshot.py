"""JSON snapshots of a window store.

A snapshot is written at shutdown (and periodically while running) and read
once at startup. Reading never trusts the file: anything that fails to parse
or validate raises :class:`SnapshotFormatError` so callers can fall back to a
fresh store.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import (
    BaseModel,
    FiniteFloat,
    Field,
    NonNegativeInt,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from ratecounter.lib.exceptions import SnapshotError, SnapshotFormatError
from ratecounter.lib.sliding_window import (
    Entry,
    FixedRingStore,
    SparseMapStore,
    WindowStore,
)


class RingSnapshot(BaseModel):
    """Serialized :class:`FixedRingStore`."""

    strategy: Literal["ring"] = "ring"
    window: int = Field(ge=1)
    time_requests: list[NonNegativeInt]
    current_slot: NonNegativeInt
    last_update: FiniteFloat

    @model_validator(mode="after")
    def check_ring_shape(self) -> RingSnapshot:
        if len(self.time_requests) != self.window:
            raise ValueError(
                f"Expected {self.window} slots, got {len(self.time_requests)}"
            )
        if self.current_slot >= self.window:
            raise ValueError(f"Slot {self.current_slot} outside window {self.window}")
        if int(self.last_update) % self.window != self.current_slot:
            raise ValueError(
                f"Slot {self.current_slot} does not match last update {self.last_update}"
            )
        return self


class SparseEntrySnapshot(BaseModel):
    slot: NonNegativeInt
    value: NonNegativeInt
    last_update: FiniteFloat


class SparseSnapshot(BaseModel):
    """Serialized :class:`SparseMapStore`."""

    strategy: Literal["sparse"] = "sparse"
    window: int = Field(ge=1)
    time_entries: list[SparseEntrySnapshot] = []
    last_update: FiniteFloat

    @model_validator(mode="after")
    def check_slots(self) -> SparseSnapshot:
        seen: set[int] = set()
        for entry in self.time_entries:
            if entry.slot >= self.window:
                raise ValueError(f"Slot {entry.slot} outside window {self.window}")
            if entry.slot in seen:
                raise ValueError(f"Duplicate slot {entry.slot}")
            seen.add(entry.slot)
        return self


Snapshot = Annotated[Union[RingSnapshot, SparseSnapshot], Field(discriminator="strategy")]

_snapshot_adapter: TypeAdapter[RingSnapshot | SparseSnapshot] = TypeAdapter(Snapshot)


def dump_store(store: WindowStore) -> RingSnapshot | SparseSnapshot:
    """Capture a point-in-time snapshot of *store*."""
    if isinstance(store, FixedRingStore):
        counts, current_slot, last_update = store.snapshot_counts()
        return RingSnapshot(
            window=store.window,
            time_requests=counts,
            current_slot=current_slot,
            last_update=last_update,
        )
    if isinstance(store, SparseMapStore):
        entries, last_update = store.snapshot_entries()
        return SparseSnapshot(
            window=store.window,
            time_entries=[
                SparseEntrySnapshot(slot=slot, value=e.count, last_update=e.last_update)
                for slot, e in sorted(entries.items())
            ],
            last_update=last_update,
        )
    raise TypeError(f"Cannot snapshot {type(store).__name__}")


def restore_store(snapshot: RingSnapshot | SparseSnapshot) -> WindowStore:
    """Rebuild a store from *snapshot*. The caller is expected to reconcile it."""
    if isinstance(snapshot, RingSnapshot):
        return FixedRingStore.from_counts(snapshot.time_requests, snapshot.last_update)
    return SparseMapStore.from_entries(
        snapshot.window,
        {
            e.slot: Entry(count=e.value, last_update=e.last_update)
            for e in snapshot.time_entries
        },
        snapshot.last_update,
    )


def encode(snapshot: RingSnapshot | SparseSnapshot) -> bytes:
    return _snapshot_adapter.dump_json(snapshot)


def decode(raw: bytes | str) -> RingSnapshot | SparseSnapshot:
    try:
        return _snapshot_adapter.validate_json(raw)
    except ValidationError as exc:
        raise SnapshotFormatError(f"Invalid snapshot: {exc}") from exc


def read_snapshot(path: Path) -> RingSnapshot | SparseSnapshot:
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise SnapshotError(f"Could not read snapshot {path}: {exc}") from exc
    return decode(raw)


def write_snapshot(path: Path, store: WindowStore) -> None:
    """Atomically replace *path* with a snapshot of *store*."""
    data = encode(dump_store(store))
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
    except OSError as exc:
        raise SnapshotError(f"Could not write snapshot {path}: {exc}") from exc


def load_store(path: Path, strategy: str, window: int) -> WindowStore:
    """Read *path* and restore it, requiring the configured strategy and window.

    Raises:
        SnapshotError: The file could not be read.
        SnapshotFormatError: The contents are invalid or were written with a
            different strategy or window.
    """
    snapshot = read_snapshot(path)
    if snapshot.strategy != strategy:
        raise SnapshotFormatError(
            f"Snapshot uses strategy '{snapshot.strategy}', configured '{strategy}'"
        )
    if snapshot.window != window:
        raise SnapshotFormatError(
            f"Snapshot covers {snapshot.window} seconds, configured {window}"
        )
    return restore_store(snapshot)

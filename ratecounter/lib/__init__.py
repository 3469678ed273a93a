from ratecounter.lib.sliding_window import (
    FixedRingStore,
    SparseMapStore,
    WindowStore,
    create_store,
    walk_back,
)
from ratecounter.lib.tally import PendingTally

__all__ = [
    "FixedRingStore",
    "SparseMapStore",
    "WindowStore",
    "PendingTally",
    "create_store",
    "walk_back",
]

"""Hot-path request tally drained periodically into the window store."""

import threading


class PendingTally:
    """Counts requests that have not been flushed into the window store yet."""

    def __init__(self) -> None:
        self._value = 0
        self._lock = threading.Lock()

    @property
    def value(self) -> int:
        return self._value

    def increment(self, amount: int = 1) -> None:
        with self._lock:
            self._value += amount

    def drain(self) -> int:
        """Return the pending count and reset it to zero in one step."""
        with self._lock:
            value, self._value = self._value, 0
            return value

class RateCounterError(Exception):
    """Base class for ratecounter errors."""


class SnapshotError(RateCounterError):
    """A snapshot could not be read from or written to disk."""


class SnapshotFormatError(SnapshotError):
    """A snapshot was readable but its contents are unusable."""

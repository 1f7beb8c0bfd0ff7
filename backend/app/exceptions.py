"""Exception hierarchy for the recent-items backend."""


class RecentCacheError(Exception):
    """Base class for errors raised by this package."""


class StorageError(RecentCacheError):
    """A durable store operation could not be completed."""

    def __init__(self, message: str, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key

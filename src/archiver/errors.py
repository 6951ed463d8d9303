"""
Exception taxonomy for the archiver.

``FetchFailed`` and ``PersistFailed`` abort the current channel's run;
callers may simply re-run later because every write is an idempotent
upsert and the cursor is derived from what was actually stored.
"""

from __future__ import annotations


class ArchiverError(Exception):
    """Base class for every error raised by the archiver core."""


class MalformedTimestamp(ArchiverError, ValueError):
    """A Slack ``ts`` value could not be parsed (or rendered)."""


class PageSizeExceeded(ArchiverError, ValueError):
    """Requested page size is outside ``1..MAX_PAGE_SIZE``."""


class FetchFailed(ArchiverError):
    """The history query failed at the transport or API level."""

    def __init__(self, channel_id: str, cause: BaseException) -> None:
        super().__init__(f"fetch failed for channel {channel_id}: {cause}")
        self.channel_id = channel_id
        self.cause = cause


class PersistFailed(ArchiverError):
    """The storage engine rejected a write or a cursor query."""

    def __init__(self, operation: str, cause: BaseException) -> None:
        super().__init__(f"{operation} failed: {cause}")
        self.operation = operation
        self.cause = cause

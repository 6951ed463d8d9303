"""
Per-channel sync position, derived from archived data.

There is no cursor table.  The resume point for a channel is always the
newest timestamp stored for it, so a crash between pages can never leave
a cursor pointing past what was actually written.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

logger = logging.getLogger("archiver.cursor")

# One microsecond past the epoch.  A non-empty ``oldest`` makes Slack page
# forward from the very first message instead of returning the newest page.
BEGINNING_OF_TIME = 1

DEFAULT_EDIT_WINDOW_MINUTES = 60


def minutes_to_micros(minutes: float) -> int:
    return int(minutes * 60 * 1_000_000)


def compute_start(last: Optional[int], edit_window_micros: int) -> int:
    """Lower bound for the first history query of a run.

    A channel with nothing archived starts at :data:`BEGINNING_OF_TIME`.
    Otherwise the query starts ``edit_window_micros`` before the newest
    archived message so that recent edits are fetched again and overwrite
    their originals.
    """
    if last is None:
        return BEGINNING_OF_TIME
    return max(BEGINNING_OF_TIME, last - edit_window_micros)


class CursorStore:
    """Read-only view of the archive answering "where did we stop?".

    Args:
        store: Anything exposing ``get_last_timestamp(channel_id)``,
               normally :class:`archiver.message_store.MessageStore`.
    """

    def __init__(self, store: Any) -> None:
        self._store = store

    async def last_timestamp(self, channel_id: str) -> Optional[int]:
        """Return the newest archived timestamp, or ``None`` on first run."""
        last = await self._store.get_last_timestamp(channel_id)
        if last is None:
            logger.debug("No archived messages for channel %s yet", channel_id)
        return last

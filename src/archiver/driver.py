"""
Per-channel incremental sync.

A run for one channel walks this state machine::

    IDLE -> COMPUTE_START -> FETCHING_PAGE -> PERSISTING_BATCH
                                   ^                |
                                   +--- has_more ---+--> DONE

Pages are fetched and persisted strictly in sequence: page N+1 is only
requested once page N is written, because its lower bound is the newest
``ts`` of page N.  Any FetchFailed/PersistFailed aborts the channel;
rows already written stay, and the next run resumes from them.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple

from archiver.cursor import (
    DEFAULT_EDIT_WINDOW_MINUTES,
    CursorStore,
    compute_start,
    minutes_to_micros,
)
from archiver.errors import MalformedTimestamp
from archiver.fetcher import MAX_PAGE_SIZE, validate_page_size
from archiver.messages import FeedMessage, MessageRecord
from archiver.timestamps import micros_to_slack_ts

logger = logging.getLogger("archiver.driver")

DEFAULT_EDIT_WINDOW_MICROS = minutes_to_micros(DEFAULT_EDIT_WINDOW_MINUTES)


class SyncState(enum.Enum):
    IDLE = "idle"
    COMPUTE_START = "compute_start"
    FETCHING_PAGE = "fetching_page"
    PERSISTING_BATCH = "persisting_batch"
    DONE = "done"


@dataclass
class ChannelSyncResult:
    """Outcome of one channel run."""

    channel_id: str
    start_cursor: int
    initial_sync: bool
    cursor: Optional[int] = None
    pages: int = 0
    fetched: int = 0
    persisted: int = 0
    skipped: int = 0
    stalled: bool = False
    interrupted: bool = False


class ChannelSyncDriver:
    """Pulls new (and recently edited) messages of a channel into the store.

    Args:
        fetcher: :class:`archiver.fetcher.PageFetcher` or compatible.
        store: :class:`archiver.message_store.MessageStore` or compatible.
        cursors: Cursor view over ``store``; built from it when omitted.
        edit_window_micros: How far before the newest archived message
            each run starts re-fetching.  ``0`` disables edit capture.
        page_size: Messages per history query, at most 1000.

    Raises:
        PageSizeExceeded: If ``page_size`` is out of range.
        ValueError: If ``edit_window_micros`` is negative.
    """

    def __init__(
        self,
        fetcher: Any,
        store: Any,
        cursors: Optional[CursorStore] = None,
        edit_window_micros: int = DEFAULT_EDIT_WINDOW_MICROS,
        page_size: int = MAX_PAGE_SIZE,
    ) -> None:
        if edit_window_micros < 0:
            raise ValueError(f"edit_window_micros must be >= 0, got {edit_window_micros}")
        self._fetcher = fetcher
        self._store = store
        self._cursors = cursors or CursorStore(store)
        self._edit_window_micros = edit_window_micros
        self._page_size = validate_page_size(page_size)
        self.state = SyncState.IDLE

    def _transition(self, state: SyncState) -> None:
        logger.debug("State %s -> %s", self.state.value, state.value)
        self.state = state

    async def sync_channel(
        self,
        channel_id: str,
        stop_event: Optional[threading.Event] = None,
    ) -> ChannelSyncResult:
        """Run the fetch / persist loop for one channel until it is caught up.

        Args:
            channel_id: Slack channel id.
            stop_event: Optional shutdown flag, checked between pages.

        Raises:
            FetchFailed: If a history query fails.
            PersistFailed: If the store rejects a read or write.
        """
        self.state = SyncState.IDLE
        self._transition(SyncState.COMPUTE_START)
        last = await self._cursors.last_timestamp(channel_id)
        lower_bound = compute_start(last, self._edit_window_micros)
        result = ChannelSyncResult(
            channel_id=channel_id,
            start_cursor=lower_bound,
            initial_sync=last is None,
        )
        logger.info(
            "Archiving channel %s from %s (%s)",
            channel_id,
            micros_to_slack_ts(lower_bound),
            "initial sync" if last is None else "incremental",
        )

        while True:
            self._transition(SyncState.FETCHING_PAGE)
            page = await self._fetcher.fetch(channel_id, lower_bound, self._page_size)
            result.pages += 1
            result.fetched += len(page.messages)
            if not page.messages:
                break

            # Page is newest first; its head is the next lower bound.
            newest = self._newest_timestamp(channel_id, page.messages)
            if newest is not None and (result.cursor is None or newest > result.cursor):
                result.cursor = newest

            self._transition(SyncState.PERSISTING_BATCH)
            persisted, skipped = await self._persist_page(channel_id, page.messages)
            result.persisted += persisted
            result.skipped += skipped
            logger.debug(
                "Channel %s page %d: %d fetched, %d persisted, %d skipped",
                channel_id,
                result.pages,
                len(page.messages),
                persisted,
                skipped,
            )

            if not page.has_more:
                break
            if newest is None or newest <= lower_bound:
                logger.warning(
                    "Pagination stalled for channel %s at %s; finishing channel early",
                    channel_id,
                    micros_to_slack_ts(lower_bound),
                )
                result.stalled = True
                break
            if stop_event is not None and stop_event.is_set():
                logger.info("Shutdown requested; stopping channel %s after page %d", channel_id, result.pages)
                result.interrupted = True
                break
            lower_bound = newest

        self._transition(SyncState.DONE)
        return result

    @staticmethod
    def _newest_timestamp(channel_id: str, messages: List[FeedMessage]) -> Optional[int]:
        head = messages[0]
        try:
            return head.timestamp
        except MalformedTimestamp:
            logger.warning(
                "Newest message of page has malformed ts=%r (channel %s)",
                head.ts,
                channel_id,
            )
            return None

    async def _persist_page(
        self,
        channel_id: str,
        messages: List[FeedMessage],
    ) -> Tuple[int, int]:
        """Write the page oldest-first.  Returns ``(persisted, skipped)``."""
        records: List[MessageRecord] = []
        skipped = 0
        for message in reversed(messages):
            try:
                record = message.as_record(channel_id)
            except MalformedTimestamp:
                logger.warning(
                    "Skipping message with malformed ts=%r in channel %s",
                    message.ts,
                    channel_id,
                )
                skipped += 1
                continue
            if record is None:
                skipped += 1
                continue
            records.append(record)

        persisted = await self._store.store_messages_batch(records)
        return persisted, skipped

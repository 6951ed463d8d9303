"""
Archive progress reporting for journalctl output.

``ChannelProgress`` times one channel run and ``PassProgress`` aggregates
a whole pass; both log human-readable lines with message rates.
"""

from __future__ import annotations

import logging
import time

from archiver.driver import ChannelSyncResult

logger = logging.getLogger("archiver.progress")


def _format_duration(seconds: float) -> str:
    """Format a duration in seconds to a human-readable string.

    Examples: ``"45s"``, ``"2m 30s"``, ``"1h 15m"``.
    """
    if seconds < 0:
        return "0s"
    total = int(seconds)
    if total < 60:
        return f"{total}s"
    minutes, secs = divmod(total, 60)
    if minutes < 60:
        return f"{minutes}m {secs}s" if secs else f"{minutes}m"
    hours, mins = divmod(minutes, 60)
    return f"{hours}h {mins}m" if mins else f"{hours}h"


class ChannelProgress:
    """Tracks one channel run.

    Args:
        channel_index: 1-based position of the channel in this pass.
        total_channels: Number of channels in the pass.
        channel_name: Display name, e.g. ``general``.
    """

    def __init__(self, channel_index: int, total_channels: int, channel_name: str) -> None:
        self.channel_index = channel_index
        self.total_channels = total_channels
        self.channel_name = channel_name
        self.pages = 0
        self.fetched = 0
        self.persisted = 0
        self._start = time.monotonic()

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._start

    @property
    def rate(self) -> float:
        """Messages fetched per second."""
        elapsed = self.elapsed_seconds
        if elapsed <= 0:
            return 0.0
        return self.fetched / elapsed

    def update(self, result: ChannelSyncResult) -> None:
        self.pages += result.pages
        self.fetched += result.fetched
        self.persisted += result.persisted

    def log_complete(self) -> None:
        logger.info(
            '  Completed %d/%d: "#%s" | %d fetched, %d persisted over %d pages in %s (%.1f msg/s)',
            self.channel_index,
            self.total_channels,
            self.channel_name,
            self.fetched,
            self.persisted,
            self.pages,
            _format_duration(self.elapsed_seconds),
            self.rate,
        )


class PassProgress:
    """Aggregates channel runs across one archive pass."""

    def __init__(self, total_channels: int) -> None:
        self.total_channels = total_channels
        self.fetched = 0
        self.persisted = 0
        self.channels_completed = 0
        self.channels_failed = 0
        self._start = time.monotonic()

    @property
    def elapsed_seconds(self) -> float:
        return time.monotonic() - self._start

    def update_from_channel(self, channel: ChannelProgress) -> None:
        self.fetched += channel.fetched
        self.persisted += channel.persisted
        self.channels_completed += 1

    def record_failure(self) -> None:
        self.channels_failed += 1

    def log_pass_progress(self) -> None:
        logger.info(
            "  Pass: %d/%d channels done (%d failed) | %d fetched, %d persisted | %s",
            self.channels_completed,
            self.total_channels,
            self.channels_failed,
            self.fetched,
            self.persisted,
            _format_duration(self.elapsed_seconds),
        )

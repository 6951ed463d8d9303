"""
Archiver entry point — connects to Slack (read-only), lists channels and
incrementally archives each selected channel into PostgreSQL.

Runs either once (``sync_interval_seconds = 0``, e.g. from a systemd
timer or cron) or as a long-lived service.

Key behaviours:
    - Loads configuration from ``/etc/slack-archiver/settings.toml``.
    - All Slack access goes through ``ReadOnlySlackClient``.
    - Channels are archived one at a time; a failure in one channel is
      logged and audited, then the pass moves on to the next channel.
    - Handles SIGTERM / SIGINT for graceful shutdown.
"""

from __future__ import annotations

import asyncio
import logging
import os
import random
import signal
import sys
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import toml

from archiver.channels import list_channels, select_channels
from archiver.cursor import DEFAULT_EDIT_WINDOW_MINUTES, minutes_to_micros
from archiver.driver import ChannelSyncDriver
from archiver.errors import FetchFailed, PersistFailed
from archiver.fetcher import MAX_PAGE_SIZE, PageFetcher, validate_page_size
from archiver.message_store import MessageStore
from archiver.progress import ChannelProgress, PassProgress
from archiver.slack_client import ReadOnlySlackClient
from archiver.timestamps import micros_to_slack_ts
from shared.audit import AuditLogger
from shared.db import get_connection_pool, health_check, init_database, optimize_database
from shared.secrets import get_secret

logger = logging.getLogger("archiver.main")

_DEFAULT_CONFIG_PATH = Path(
    os.environ.get("SLACK_ARCHIVER_CONFIG", "/etc/slack-archiver/settings.toml")
)
_DEFAULT_AUDIT_LOG_PATH = Path("/var/log/slack-archiver/audit.log")

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


def load_config(path: Path = _DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """Load and validate settings from a TOML file.

    Raises:
        FileNotFoundError: If the config file does not exist.
        KeyError: If required keys are missing.
    """
    config = toml.load(path)
    if "database" not in config:
        raise KeyError("Missing required config key: database")
    return config


@dataclass
class ArchiverSettings:
    """Validated ``[archiver]`` section."""

    edit_window_minutes: float = DEFAULT_EDIT_WINDOW_MINUTES
    page_size: int = MAX_PAGE_SIZE
    channels: List[str] = field(default_factory=list)
    exclude_channels: List[str] = field(default_factory=list)
    include_archived: bool = False
    rate_limit_seconds: float = 1.0
    sync_interval_seconds: float = 0.0
    audit_log_path: Path = _DEFAULT_AUDIT_LOG_PATH

    @property
    def edit_window_micros(self) -> int:
        return minutes_to_micros(self.edit_window_minutes)


def settings_from_config(config: Dict[str, Any]) -> ArchiverSettings:
    """Build :class:`ArchiverSettings` from the parsed TOML.

    Raises:
        PageSizeExceeded: If ``page_size`` is above the Slack maximum.
        ValueError: If ``edit_window_minutes`` is negative.
    """
    section = config.get("archiver", {})
    edit_window = float(section.get("edit_window_minutes", DEFAULT_EDIT_WINDOW_MINUTES))
    if edit_window < 0:
        raise ValueError(f"edit_window_minutes must be >= 0, got {edit_window}")

    return ArchiverSettings(
        edit_window_minutes=edit_window,
        page_size=validate_page_size(int(section.get("page_size", MAX_PAGE_SIZE))),
        channels=[str(c) for c in section.get("channels", [])],
        exclude_channels=[str(c) for c in section.get("exclude_channels", [])],
        include_archived=bool(section.get("include_archived", False)),
        rate_limit_seconds=max(0.0, float(section.get("rate_limit_seconds", 1.0))),
        sync_interval_seconds=max(0.0, float(section.get("sync_interval_seconds", 0.0))),
        audit_log_path=Path(section.get("audit_log_path", _DEFAULT_AUDIT_LOG_PATH)),
    )


# ---------------------------------------------------------------------------
# Rate limiting helper
# ---------------------------------------------------------------------------


async def rate_limit_delay(seconds: float = 1.0) -> None:
    """Sleep between channels to stay clear of Slack's tier-3 rate limits."""
    delay = max(0.0, seconds) + random.uniform(0.1, 1.5)
    await _sleep_with_shutdown(delay)


# ---------------------------------------------------------------------------
# Sync pass
# ---------------------------------------------------------------------------


@dataclass
class PassResult:
    """Totals for one archive pass."""

    channels_synced: int = 0
    fetched: int = 0
    persisted: int = 0
    failed_channels: List[str] = field(default_factory=list)


async def sync_once(
    client: Any,
    store: MessageStore,
    audit: AuditLogger,
    settings: ArchiverSettings,
) -> PassResult:
    """Run a single archive pass over every selected channel.

    Args:
        client: The read-only Slack client.
        store: Message storage backend.
        audit: Audit logger instance.
        settings: Validated archiver settings.

    Returns:
        Pass totals, including the ids of channels whose run failed.
    """
    result = PassResult()
    if _shutdown_event.is_set():
        logger.info("Shutdown already requested; skipping archive pass start.")
        return result

    channels = await list_channels(client, include_archived=settings.include_archived)
    selected = select_channels(channels, settings.channels, settings.exclude_channels)

    await audit.log(
        "archiver",
        "sync_pass_start",
        {
            "total_channels": len(channels),
            "selected_channels": len(selected),
            "edit_window_minutes": settings.edit_window_minutes,
            "page_size": settings.page_size,
        },
        success=True,
    )

    driver = ChannelSyncDriver(
        PageFetcher(client),
        store,
        edit_window_micros=settings.edit_window_micros,
        page_size=settings.page_size,
    )
    pass_progress = PassProgress(total_channels=len(selected))

    for idx, channel in enumerate(selected):
        if _shutdown_event.is_set():
            logger.info(
                "Shutdown requested; stopping archive pass after %d/%d channels.",
                idx,
                len(selected),
            )
            break

        channel_id, channel_name = channel["id"], channel["name"]
        logger.info("Archiving channel %d/%d: #%s (%s)", idx + 1, len(selected), channel_name, channel_id)
        progress = ChannelProgress(idx + 1, len(selected), channel_name)

        try:
            await store.update_channel_metadata(channel_id, channel_name)
            outcome = await driver.sync_channel(channel_id, stop_event=_shutdown_event)
        except (FetchFailed, PersistFailed) as exc:
            logger.exception("Archiving channel #%s (%s) failed", channel_name, channel_id)
            result.failed_channels.append(channel_id)
            pass_progress.record_failure()
            await audit.log(
                "archiver",
                "sync_channel",
                {
                    "channel_id": channel_id,
                    "channel_name": channel_name,
                    "error": str(exc),
                },
                success=False,
            )
        else:
            progress.update(outcome)
            progress.log_complete()
            pass_progress.update_from_channel(progress)
            result.channels_synced += 1
            result.fetched += outcome.fetched
            result.persisted += outcome.persisted
            await audit.log(
                "archiver",
                "sync_channel",
                {
                    "channel_id": channel_id,
                    "channel_name": channel_name,
                    "initial_sync": outcome.initial_sync,
                    "start_ts": micros_to_slack_ts(outcome.start_cursor),
                    "cursor_ts": (
                        micros_to_slack_ts(outcome.cursor)
                        if outcome.cursor is not None
                        else None
                    ),
                    "pages": outcome.pages,
                    "fetched": outcome.fetched,
                    "persisted": outcome.persisted,
                    "skipped": outcome.skipped,
                    "stalled": outcome.stalled,
                    "elapsed_seconds": round(progress.elapsed_seconds, 1),
                },
                success=True,
            )

        if idx + 1 < len(selected):
            await rate_limit_delay(settings.rate_limit_seconds)

    pass_progress.log_pass_progress()
    return result


# ---------------------------------------------------------------------------
# Graceful shutdown
# ---------------------------------------------------------------------------

_shutdown_event: threading.Event = threading.Event()


async def _sleep_with_shutdown(seconds: float) -> bool:
    """Sleep for up to ``seconds`` while remaining responsive to shutdown."""
    remaining = max(0.0, seconds)
    while remaining > 0:
        if _shutdown_event.is_set():
            return True
        tick = min(0.5, remaining)
        await asyncio.sleep(tick)
        remaining -= tick
    return _shutdown_event.is_set()


def _handle_signal(sig: int, frame: Any) -> None:
    """Signal handler — sets the shutdown event so the main loop exits cleanly."""
    logger.info("Received signal %s, initiating graceful shutdown...", sig)
    _shutdown_event.set()


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


async def main() -> int:
    """Top-level async entry point.  Returns the process exit code."""
    config = load_config()
    settings = settings_from_config(config)
    token = get_secret("slack-api-token")

    pool = await get_connection_pool(config["database"])
    try:
        if not await health_check(pool):
            logger.error("Database is not responding; aborting.")
            return 1
        await init_database(pool)

        store = MessageStore(pool)
        audit = AuditLogger(pool, log_path=settings.audit_log_path)

        async with ReadOnlySlackClient(token) as client:
            identity = await client.auth_test()
            logger.info("Authenticated as %s in team %s", identity.get("user"), identity.get("team"))
            await audit.log("archiver", "startup", {"team_id": identity.get("team_id")}, success=True)

            pass_number = 0
            exit_code = 0
            while not _shutdown_event.is_set():
                pass_number += 1
                try:
                    outcome = await sync_once(client, store, audit, settings)
                    await optimize_database(pool)
                except Exception:
                    logger.exception("Error during archive pass")
                    await audit.log("archiver", "sync_pass", {"error": "see logs"}, success=False)
                    exit_code = 1
                else:
                    logger.info(
                        "Archive pass #%d complete: %d channels, %d persisted, %d failed",
                        pass_number,
                        outcome.channels_synced,
                        outcome.persisted,
                        len(outcome.failed_channels),
                    )
                    await audit.log(
                        "archiver",
                        "sync_pass",
                        {
                            "pass_number": pass_number,
                            "channels_synced": outcome.channels_synced,
                            "fetched": outcome.fetched,
                            "persisted": outcome.persisted,
                            "failed_channels": outcome.failed_channels,
                        },
                        success=not outcome.failed_channels,
                    )
                    exit_code = 1 if outcome.failed_channels else 0

                if settings.sync_interval_seconds <= 0:
                    break
                await _sleep_with_shutdown(settings.sync_interval_seconds)
            return exit_code
    finally:
        await pool.close()
        logger.info("Archiver shut down cleanly.")


def run() -> None:
    """Synchronous entry point (console script, ``python -m archiver.main`` or systemd)."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )

    signal.signal(signal.SIGTERM, _handle_signal)
    signal.signal(signal.SIGINT, _handle_signal)

    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()

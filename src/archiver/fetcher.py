"""
Page fetcher — one ``conversations.history`` query per call.

The fetcher is deliberately thin: it validates the page size, issues a
single request and hands the page back exactly as Slack ordered it
(newest first).  Reordering, cursor handling and retries all belong to
the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List

import httpx

from archiver.errors import FetchFailed, PageSizeExceeded
from archiver.messages import FeedMessage, parse_message
from archiver.slack_client import SlackApiError
from archiver.timestamps import micros_to_slack_ts

logger = logging.getLogger("archiver.fetcher")

# Largest ``limit`` conversations.history accepts.
MAX_PAGE_SIZE = 1000


@dataclass
class Page:
    """One batch of history.

    ``messages[0]`` is the newest entry.  ``has_more`` is ``True`` when
    further pages remain beyond this one.
    """

    messages: List[FeedMessage] = field(default_factory=list)
    has_more: bool = False


def validate_page_size(page_size: int) -> int:
    """Return ``page_size`` unchanged or raise :class:`PageSizeExceeded`."""
    if page_size > MAX_PAGE_SIZE:
        raise PageSizeExceeded(
            f"page_size={page_size} exceeds the Slack maximum of {MAX_PAGE_SIZE}"
        )
    if page_size < 1:
        raise PageSizeExceeded(f"page_size must be at least 1, got {page_size}")
    return page_size


class PageFetcher:
    """Wraps the history query of a :class:`ReadOnlySlackClient`.

    Args:
        client: Client exposing ``conversations_history``.
    """

    def __init__(self, client: Any) -> None:
        self._client = client

    async def fetch(self, channel_id: str, oldest: int, page_size: int) -> Page:
        """Fetch the page of messages closest to, and newer than, ``oldest``.

        Args:
            channel_id: Slack channel id (``C0123...``).
            oldest: Lower time bound in integer micros.
            page_size: Messages per page, at most :data:`MAX_PAGE_SIZE`.

        Raises:
            PageSizeExceeded: If ``page_size`` is out of range.
            FetchFailed: On any transport, API or response-shape error.
        """
        validate_page_size(page_size)
        oldest_ts = micros_to_slack_ts(oldest)
        logger.debug("History query channel=%s oldest=%s limit=%d", channel_id, oldest_ts, page_size)

        try:
            response = await self._client.conversations_history(
                channel=channel_id,
                oldest=oldest_ts,
                limit=page_size,
            )
        except (httpx.HTTPError, SlackApiError) as exc:
            raise FetchFailed(channel_id, exc) from exc

        raw_messages = response.get("messages") or []
        if not isinstance(raw_messages, list):
            raise FetchFailed(
                channel_id,
                TypeError(f"'messages' is {type(raw_messages).__name__}, expected list"),
            )

        messages = [parse_message(raw) for raw in raw_messages if isinstance(raw, dict)]
        has_more = bool(response.get("has_more") or False)
        logger.debug(
            "Got %d messages for channel=%s (has_more=%s)",
            len(messages),
            channel_id,
            has_more,
        )
        return Page(messages=messages, has_more=has_more)

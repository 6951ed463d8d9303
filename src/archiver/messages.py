"""
Message variants returned by ``conversations.history`` and the stored
record type.

Slack tags every non-standard event with a ``subtype`` (``channel_join``,
``bot_message``, ``message_changed`` ...).  Only the plain user-authored
message, which has no subtype, carries a body we archive.  Every variant
carries ``ts``, so the cursor can be read from any of them through the
shared :attr:`FeedMessage.timestamp` accessor.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional

from archiver.timestamps import slack_ts_to_micros

logger = logging.getLogger("archiver.messages")

STANDARD_SUBTYPE = "standard"

# Subtypes we know about and deliberately discard.  Anything else is still
# parsed as an EventMessage; the set only decides how loudly we log it.
KNOWN_EVENT_SUBTYPES: FrozenSet[str] = frozenset(
    {
        "bot_message",
        "channel_archive",
        "channel_join",
        "channel_leave",
        "channel_name",
        "channel_purpose",
        "channel_topic",
        "channel_unarchive",
        "file_comment",
        "file_mention",
        "file_share",
        "group_archive",
        "group_join",
        "group_leave",
        "group_name",
        "group_purpose",
        "group_topic",
        "group_unarchive",
        "me_message",
        "message_changed",
        "message_deleted",
        "message_replied",
        "pinned_item",
        "reply_broadcast",
        "thread_broadcast",
        "unpinned_item",
    }
)


@dataclass(frozen=True)
class MessageRecord:
    """One archived row, keyed by ``(channel_id, timestamp)``."""

    channel_id: str
    timestamp: int
    author: str
    body: str


@dataclass(frozen=True)
class FeedMessage:
    """Common shape of every history entry."""

    subtype: str
    ts: Optional[str] = None
    user: Optional[str] = None

    @property
    def timestamp(self) -> Optional[int]:
        """``ts`` as integer micros, or ``None`` when the entry has none.

        Raises:
            MalformedTimestamp: If ``ts`` is present but unparseable.
        """
        if self.ts is None:
            return None
        return slack_ts_to_micros(self.ts)

    @property
    def text_body(self) -> Optional[str]:
        return None

    def as_record(self, channel_id: str) -> Optional[MessageRecord]:
        """Build the row to persist, or ``None`` if this entry is filtered out."""
        body = self.text_body
        if body is None or self.user is None:
            return None
        timestamp = self.timestamp
        if timestamp is None:
            return None
        return MessageRecord(
            channel_id=channel_id,
            timestamp=timestamp,
            author=self.user,
            body=body,
        )


@dataclass(frozen=True)
class StandardMessage(FeedMessage):
    """Plain user-authored text message."""

    text: Optional[str] = None

    @property
    def text_body(self) -> Optional[str]:
        return self.text


@dataclass(frozen=True)
class EventMessage(FeedMessage):
    """Joins, topic changes, bot posts, edit/delete events, etc."""


_VARIANTS = {
    STANDARD_SUBTYPE: StandardMessage,
}


def parse_message(raw: Dict[str, Any]) -> FeedMessage:
    """Turn one raw history entry into its variant.

    Parsing never fails: a bad ``ts`` only surfaces when the timestamp is
    read, so one broken entry cannot take down a whole page.
    """
    subtype = raw.get("subtype") or STANDARD_SUBTYPE
    variant = _VARIANTS.get(subtype, EventMessage)
    if variant is EventMessage and subtype not in KNOWN_EVENT_SUBTYPES:
        logger.debug("Unrecognised message subtype %r treated as event", subtype)

    kwargs: Dict[str, Any] = {
        "subtype": subtype,
        "ts": raw.get("ts"),
        "user": raw.get("user"),
    }
    if variant is StandardMessage:
        kwargs["text"] = raw.get("text")
    return variant(**kwargs)

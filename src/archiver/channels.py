"""
Channel discovery and selection.

Lists the channels visible to the token and narrows them down to the ones
configured for archiving (``archiver.channels`` / ``archiver.exclude_channels``
in settings.toml).  Each selected channel is then synced independently.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List

logger = logging.getLogger("archiver.channels")


async def list_channels(client: Any, include_archived: bool = False) -> List[Dict[str, str]]:
    """Return ``{"id", "name"}`` pairs for every visible channel.

    Entries missing either field are ignored.
    """
    raw_channels = await client.conversations_list(exclude_archived=not include_archived)
    channels: List[Dict[str, str]] = []
    for raw in raw_channels:
        channel_id = raw.get("id")
        name = raw.get("name")
        if not channel_id or not name:
            logger.debug("Ignoring channel entry without id/name: %r", raw)
            continue
        channels.append({"id": str(channel_id), "name": str(name)})
    logger.info("Found %d channels", len(channels))
    return channels


def select_channels(
    channels: List[Dict[str, str]],
    include: Iterable[str] = (),
    exclude: Iterable[str] = (),
) -> List[Dict[str, str]]:
    """Filter channels by name or id.

    Args:
        channels: Output of :func:`list_channels`.
        include: Names or ids to archive.  Empty means every channel.
        exclude: Names or ids to skip; wins over ``include``.
    """
    include_set = {value.lstrip("#") for value in include}
    exclude_set = {value.lstrip("#") for value in exclude}

    selected = []
    for channel in channels:
        keys = {channel["id"], channel["name"]}
        if include_set and not keys & include_set:
            continue
        if keys & exclude_set:
            logger.info("Excluding channel %s (%s)", channel["name"], channel["id"])
            continue
        selected.append(channel)

    missing = include_set - {c["id"] for c in channels} - {c["name"] for c in channels}
    if missing:
        logger.warning("Configured channels not found: %s", ", ".join(sorted(missing)))

    logger.info("Selected %d of %d channels", len(selected), len(channels))
    return selected

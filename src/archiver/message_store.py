"""
PostgreSQL message storage for the archiver.

Uses ``asyncpg`` for async database access.  All queries use parameterized
placeholders ($1, $2, ...) — **never** string interpolation — to prevent
SQL injection.

Writes are upserts keyed by ``(channel_id, ts)``: fetching the same
message again (an overlap re-fetch, or the page boundary message) simply
rewrites the row, so an edited message replaces its original.  The
newest ``ts`` per channel doubles as the sync cursor; there is no
separate cursor table.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

import asyncpg

from archiver.errors import PersistFailed
from archiver.messages import MessageRecord

logger = logging.getLogger("archiver.message_store")

_UPSERT_SQL = """
    INSERT INTO messages (channel_id, ts, author, body)
    VALUES ($1, $2, $3, $4)
    ON CONFLICT (channel_id, ts)
    DO UPDATE SET
        author = EXCLUDED.author,
        body = EXCLUDED.body
"""

_LAST_TS_SQL = """
    SELECT ts
    FROM messages
    WHERE channel_id = $1
    ORDER BY ts DESC
    LIMIT 1
"""

_UPSERT_CHANNEL_SQL = """
    INSERT INTO channels (channel_id, name, updated_at)
    VALUES ($1, $2, NOW())
    ON CONFLICT (channel_id)
    DO UPDATE SET
        name = EXCLUDED.name,
        updated_at = NOW()
    WHERE channels.name IS DISTINCT FROM EXCLUDED.name
"""

_STORAGE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


def _record_params(record: MessageRecord) -> tuple:
    return (record.channel_id, record.timestamp, record.author, record.body)


class MessageStore:
    """Manages message persistence in PostgreSQL.

    Args:
        pool: An ``asyncpg`` connection pool (created via
              :func:`shared.db.get_connection_pool`).
    """

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    async def store_message(self, record: MessageRecord) -> None:
        """Upsert a single message.  An existing key is overwritten, never an error."""
        try:
            await self._pool.execute(_UPSERT_SQL, *_record_params(record))
        except _STORAGE_ERRORS as exc:
            raise PersistFailed("store_message", exc) from exc
        logger.debug("Stored channel_id=%s ts=%d", record.channel_id, record.timestamp)

    async def store_messages_batch(self, records: Sequence[MessageRecord]) -> int:
        """Upsert records on one connection, in the order given.

        Returns:
            Number of records written (new or replaced).
        """
        if not records:
            return 0

        try:
            async with self._pool.acquire() as conn:
                await conn.executemany(
                    _UPSERT_SQL,
                    [_record_params(record) for record in records],
                )
        except _STORAGE_ERRORS as exc:
            raise PersistFailed("store_messages_batch", exc) from exc

        logger.debug("Batch upsert: %d rows", len(records))
        return len(records)

    async def update_channel_metadata(self, channel_id: str, name: str) -> None:
        """Upsert channel metadata from the listing step."""
        try:
            await self._pool.execute(_UPSERT_CHANNEL_SQL, channel_id, name)
        except _STORAGE_ERRORS as exc:
            raise PersistFailed("update_channel_metadata", exc) from exc

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    async def get_last_timestamp(self, channel_id: str) -> Optional[int]:
        """Return the newest ``ts`` (integer micros) archived for a channel.

        Returns:
            The maximum timestamp, or ``None`` if the channel has never
            been archived.
        """
        try:
            value = await self._pool.fetchval(_LAST_TS_SQL, channel_id)
        except _STORAGE_ERRORS as exc:
            raise PersistFailed("get_last_timestamp", exc) from exc
        return int(value) if value is not None else None

    async def get_messages(
        self,
        channel_id: str,
        since: Optional[int] = None,
        until: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[MessageRecord]:
        """Return archived messages of a channel in ascending time order.

        Args:
            channel_id: Channel to read.
            since: Inclusive lower bound in integer micros.
            until: Inclusive upper bound in integer micros.
            limit: Maximum number of rows (oldest first).
        """
        conditions = ["channel_id = $1"]
        params: List[Any] = [channel_id]
        if since is not None:
            params.append(since)
            conditions.append(f"ts >= ${len(params)}")
        if until is not None:
            params.append(until)
            conditions.append(f"ts <= ${len(params)}")

        sql = (
            "SELECT channel_id, ts, author, body FROM messages WHERE "
            + " AND ".join(conditions)
            + " ORDER BY ts ASC"
        )
        if limit is not None:
            params.append(limit)
            sql += f" LIMIT ${len(params)}"

        try:
            rows = await self._pool.fetch(sql, *params)
        except _STORAGE_ERRORS as exc:
            raise PersistFailed("get_messages", exc) from exc

        return [
            MessageRecord(
                channel_id=row["channel_id"],
                timestamp=int(row["ts"]),
                author=row["author"],
                body=row["body"],
            )
            for row in rows
        ]

    async def get_sync_stats(self) -> Dict[str, Any]:
        """Return summary statistics for monitoring."""
        try:
            async with self._pool.acquire() as conn:
                total_messages = await conn.fetchval("SELECT COUNT(*) FROM messages")
                total_channels = await conn.fetchval(
                    "SELECT COUNT(DISTINCT channel_id) FROM messages"
                )
                newest = await conn.fetchval("SELECT MAX(ts) FROM messages")
                oldest = await conn.fetchval("SELECT MIN(ts) FROM messages")
        except _STORAGE_ERRORS as exc:
            raise PersistFailed("get_sync_stats", exc) from exc

        return {
            "total_messages": total_messages or 0,
            "total_channels": total_channels or 0,
            "newest_ts": int(newest) if newest is not None else None,
            "oldest_ts": int(oldest) if oldest is not None else None,
        }

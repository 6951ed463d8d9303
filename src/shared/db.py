"""
Database helpers — connection pool management, schema initialisation,
and health checks.

Uses ``asyncpg`` for async PostgreSQL access.  The schema is small:

- ``messages``: archived Slack messages keyed by ``(channel_id, ts)``,
  where ``ts`` is the Slack timestamp as integer microseconds.
- ``channels``: channel id -> name, refreshed on every pass.
- ``audit_log``: structured audit events.

There is intentionally no sync-state table; the newest ``ts`` per channel
is the cursor.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import asyncpg

logger = logging.getLogger("shared.db")

_SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS messages (
        channel_id  TEXT   NOT NULL,
        ts          BIGINT NOT NULL,
        author      TEXT   NOT NULL,
        body        TEXT,
        PRIMARY KEY (channel_id, ts)
    )
    """,
    # Backs the per-run "newest ts for channel" query and ordered range reads.
    """
    CREATE INDEX IF NOT EXISTS idx_messages_channel_ts
    ON messages (channel_id, ts)
    """,
    """
    CREATE TABLE IF NOT EXISTS channels (
        channel_id  TEXT PRIMARY KEY,
        name        TEXT NOT NULL,
        updated_at  TIMESTAMPTZ DEFAULT NOW()
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS audit_log (
        id        BIGSERIAL PRIMARY KEY,
        timestamp TIMESTAMPTZ DEFAULT NOW(),
        service   TEXT NOT NULL,
        action    TEXT NOT NULL,
        details   JSONB,
        success   BOOLEAN NOT NULL
    )
    """,
)


# ---------------------------------------------------------------------------
# Connection pool
# ---------------------------------------------------------------------------


async def get_connection_pool(config: Dict[str, Any]) -> asyncpg.Pool:
    """Create and return an ``asyncpg`` connection pool.

    Args:
        config: The ``[database]`` section.  Either ``dsn``, or ``host``,
                ``port``, ``database``, ``user`` and ``password``; plus
                optional ``min_size`` / ``max_size``.

    Raises:
        asyncpg.PostgresError: If the connection cannot be established.
        OSError: If the server is unreachable.
    """
    min_size = int(config.get("min_size", 1))
    max_size = int(config.get("max_size", 4))
    if config.get("dsn"):
        pool = await asyncpg.create_pool(
            dsn=config["dsn"], min_size=min_size, max_size=max_size
        )
        logger.info("Database pool created from DSN")
        return pool

    pool = await asyncpg.create_pool(
        host=config.get("host"),
        port=config.get("port", 5432),
        database=config.get("database"),
        user=config.get("user"),
        password=config.get("password"),
        min_size=min_size,
        max_size=max_size,
    )
    logger.info(
        "Database pool created: %s@%s/%s",
        config.get("user"),
        config.get("host") or "localhost",
        config.get("database"),
    )
    return pool


# ---------------------------------------------------------------------------
# Schema initialisation
# ---------------------------------------------------------------------------


async def init_database(pool: asyncpg.Pool) -> None:
    """Create tables and indexes if they do not exist.

    Executed once at service startup.  Idempotent (uses IF NOT EXISTS).
    """
    async with pool.acquire() as conn:
        async with conn.transaction():
            for statement in _SCHEMA_STATEMENTS:
                await conn.execute(statement)
    logger.info("Database schema ready")


async def optimize_database(pool: asyncpg.Pool) -> None:
    """Refresh planner statistics for the message table after a pass."""
    await pool.execute("ANALYZE messages")


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------


async def health_check(pool: asyncpg.Pool) -> bool:
    """Verify the database is reachable and responsive.

    Returns:
        ``True`` if a simple query succeeds, ``False`` otherwise.
    """
    try:
        async with pool.acquire() as conn:
            result = await conn.fetchval("SELECT 1;")
            return result == 1
    except (asyncpg.PostgresError, OSError):
        logger.exception("Database health check failed")
        return False

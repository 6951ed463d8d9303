"""
Structured audit logging — writes archive events to both a JSON Lines
file and the PostgreSQL ``audit_log`` table.

Every pass and every channel run is recorded with a timestamp, service
name, action, details dict, and success flag.  Audit failures are logged
and swallowed: they must never abort an archive run.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import asyncpg

logger = logging.getLogger("shared.audit")

_DEFAULT_LOG_PATH = Path("/var/log/slack-archiver/audit.log")
_INSERT_AUDIT_SQL = (
    "INSERT INTO audit_log (service, action, details, success) "
    "VALUES ($1, $2, $3::jsonb, $4)"
)


class AuditLogger:
    """Audit logger that writes to both file and database.

    Args:
        pool: ``asyncpg`` connection pool (needs INSERT on ``audit_log``),
              or ``None`` to write the file only.
        log_path: Path to the JSON Lines audit log file.
    """

    def __init__(
        self,
        pool: Optional[asyncpg.Pool],
        log_path: Path = _DEFAULT_LOG_PATH,
    ) -> None:
        self._pool = pool
        self._log_path = Path(log_path)

    def _append_line(self, line: str) -> None:
        try:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._log_path, "a", encoding="utf-8") as handle:
                handle.write(line)
        except OSError:
            logger.exception("Failed to write audit log file")

    async def log(
        self,
        service: str,
        action: str,
        details: Optional[Dict[str, Any]] = None,
        success: bool = True,
    ) -> None:
        """Record an audit event.

        Args:
            service: Originating service (``"archiver"``).
            action: Action identifier (``"startup"``, ``"sync_pass_start"``,
                    ``"sync_channel"``, ``"sync_pass"``).
            details: Arbitrary JSON-serialisable metadata.
            success: Whether the action succeeded.
        """
        details_payload = details or {}
        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": service,
            "action": action,
            "details": details_payload,
            "success": success,
        }
        self._append_line(json.dumps(event, default=str) + "\n")

        if self._pool is None:
            return
        try:
            await self._pool.execute(
                _INSERT_AUDIT_SQL,
                service,
                action,
                json.dumps(details_payload, default=str),
                success,
            )
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError):
            logger.exception("Failed to write audit log to database")

"""
ReadOnlySlackClient — allowlisted gateway to the Slack Web API.

Every Web API call goes through :meth:`ReadOnlySlackClient.call`, which
rejects any method that is not on an explicit allowlist of read
operations.  Attempts to call anything else (``chat.postMessage``,
``chat.update``, ``chat.delete`` ...) raise PermissionError and are logged
as a security event.

Design principles:
    - Default-deny: anything not in ALLOWED_METHODS is rejected.
    - No retries: transport errors and ``ok: false`` replies propagate to
      the caller, which decides whether to re-run.
    - Audit trail: every call (allowed or blocked) is logged with the
      method name and a timestamp.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, FrozenSet, List, Optional

import httpx

logger = logging.getLogger("archiver.slack_client")

SLACK_API_BASE = "https://slack.com/api"

# ---------------------------------------------------------------------------
# Allowed methods — read-only Web API operations.
# Do NOT add chat.*, reactions.*, pins.*, files.upload or any method that
# mutates workspace state.
# ---------------------------------------------------------------------------
ALLOWED_METHODS: FrozenSet[str] = frozenset(
    {
        # Identity check at startup
        "auth.test",
        # Message retrieval
        "conversations.history",
        # Channel listing
        "conversations.list",
    }
)


class SlackApiError(Exception):
    """Slack answered with ``ok: false``.

    Attributes:
        method: Web API method that was called.
        error: Slack's error code (``channel_not_found``, ``ratelimited`` ...).
    """

    def __init__(self, method: str, error: str, response: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(f"Slack API error from {method}: {error}")
        self.method = method
        self.error = error
        self.response = response or {}


class ReadOnlySlackClient:
    """Async, read-only Slack Web API client.

    Usage::

        async with ReadOnlySlackClient(token) as client:
            identity = await client.auth_test()
            page = await client.conversations_history("C0123", oldest="0000000000.000001")

    Args:
        token: Bot or user token with ``channels:history`` and
               ``channels:read`` scopes.
        base_url: Web API root; overridable for tests.
        timeout: Per-request timeout in seconds.
        transport: Optional ``httpx`` transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        token: str,
        base_url: str = SLACK_API_BASE,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"Bearer {token}"},
            timeout=timeout,
            transport=transport,
        )

    # ----- async context manager ------------------------------------------

    async def __aenter__(self) -> "ReadOnlySlackClient":
        logger.info("ReadOnlySlackClient opened.")
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()
        logger.info("ReadOnlySlackClient closed.")

    # ----- gateway --------------------------------------------------------

    async def call(self, method: str, **params: Any) -> Dict[str, Any]:
        """Invoke an allowlisted Web API method and return the JSON body.

        ``None`` parameters are dropped before the request is sent.

        Raises:
            PermissionError: If ``method`` is not in ``ALLOWED_METHODS``.
            httpx.HTTPError: On transport failures and non-2xx responses
                (including HTTP 429 rate limiting).
            SlackApiError: If Slack replies with ``ok: false``.
        """
        if method not in ALLOWED_METHODS:
            logger.critical(
                "BLOCKED  | method=%-25s ts=%s  — PermissionError raised",
                method,
                time.time(),
            )
            raise PermissionError(
                f"ReadOnlySlackClient: access to '{method}' is denied. "
                f"Only these methods are permitted: {sorted(ALLOWED_METHODS)}"
            )

        logger.debug("ALLOWED  | method=%-25s ts=%s", method, time.time())
        query = {key: value for key, value in params.items() if value is not None}
        response = await self._http.get(f"/{method}", params=query)
        response.raise_for_status()

        try:
            data = response.json()
        except ValueError as exc:
            raise SlackApiError(method, "invalid_json") from exc
        if not isinstance(data, dict):
            raise SlackApiError(method, f"unexpected_json_type: {type(data).__name__}")
        if not data.get("ok", False):
            raise SlackApiError(method, str(data.get("error", "unknown_error")), data)
        return data

    # ----- convenience wrappers -------------------------------------------

    async def auth_test(self) -> Dict[str, Any]:
        return await self.call("auth.test")

    async def conversations_history(
        self,
        channel: str,
        oldest: Optional[str] = None,
        latest: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> Dict[str, Any]:
        """One page of channel history.

        Slack returns ``messages`` newest first.  When only ``oldest`` is
        given, the page holds the messages closest to ``oldest``, which is
        what lets callers page forward through history.
        """
        return await self.call(
            "conversations.history",
            channel=channel,
            oldest=oldest,
            latest=latest,
            limit=limit,
        )

    async def conversations_list(
        self,
        types: str = "public_channel",
        exclude_archived: bool = True,
        limit: int = 200,
    ) -> List[Dict[str, Any]]:
        """Return every channel visible to the token, following pagination."""
        channels: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        while True:
            data = await self.call(
                "conversations.list",
                types=types,
                exclude_archived="true" if exclude_archived else "false",
                limit=min(limit, 1000),
                cursor=cursor,
            )
            channels.extend(data.get("channels") or [])
            cursor = (data.get("response_metadata") or {}).get("next_cursor") or None
            if not cursor:
                break
        return channels

    # ----- informational --------------------------------------------------

    def __repr__(self) -> str:
        return (
            f"<ReadOnlySlackClient "
            f"base_url={self._http.base_url} "
            f"allowed={sorted(ALLOWED_METHODS)}>"
        )

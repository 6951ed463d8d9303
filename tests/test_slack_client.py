"""
Unit tests for ReadOnlySlackClient.

Verifies that the client only reaches allowlisted read methods, passes
query parameters through, and surfaces Slack and HTTP errors unchanged.
HTTP is served by ``httpx.MockTransport``.
"""

import httpx
import pytest

from archiver.slack_client import ALLOWED_METHODS, ReadOnlySlackClient, SlackApiError


class _Recorder:
    """MockTransport handler that records requests and replays responses."""

    def __init__(self, *responses):
        self.requests = []
        self._responses = list(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            return httpx.Response(200, json={"ok": True})
        return self._responses.pop(0)


def _client(handler) -> ReadOnlySlackClient:
    return ReadOnlySlackClient(
        "xoxb-test",
        base_url="https://slack.test/api",
        transport=httpx.MockTransport(handler),
    )


# ---------------------------------------------------------------------------
# Test: ALLOWED_METHODS is immutable
# ---------------------------------------------------------------------------

class TestAllowedMethodsImmutability:
    def test_allowed_methods_is_frozenset(self):
        assert isinstance(ALLOWED_METHODS, frozenset), \
            "ALLOWED_METHODS must be a frozenset to prevent runtime modification"

    def test_cannot_add_to_allowed_methods(self):
        with pytest.raises(AttributeError):
            ALLOWED_METHODS.add("chat.postMessage")

    def test_allowed_methods_contains_expected_count(self):
        """
        If this changes, someone added or removed a method -- which should
        be a deliberate, reviewed change.
        """
        assert ALLOWED_METHODS == {
            "auth.test",
            "conversations.history",
            "conversations.list",
        }


# ---------------------------------------------------------------------------
# Test: write methods are blocked
# ---------------------------------------------------------------------------

class TestBlockedMethods:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", [
        "chat.postMessage",
        "chat.update",
        "chat.delete",
        "chat.scheduleMessage",
        "conversations.archive",
        "conversations.kick",
        "conversations.setTopic",
        "conversations.info",
        "pins.add",
        "reactions.add",
        "files.upload",
        "",
        "Conversations.History",
    ])
    async def test_method_raises_permission_error(self, method):
        recorder = _Recorder()
        async with _client(recorder) as client:
            with pytest.raises(PermissionError) as exc_info:
                await client.call(method)

        assert "denied" in str(exc_info.value).lower()
        assert recorder.requests == []


# ---------------------------------------------------------------------------
# Test: allowed calls
# ---------------------------------------------------------------------------

class TestAllowedCalls:
    @pytest.mark.asyncio
    async def test_history_request_shape(self):
        recorder = _Recorder(httpx.Response(200, json={"ok": True, "messages": [], "has_more": False}))
        async with _client(recorder) as client:
            data = await client.conversations_history("C1", oldest="0000000000.000001", limit=1000)

        assert data["messages"] == []
        request = recorder.requests[0]
        assert request.method == "GET"
        assert request.url.path == "/api/conversations.history"
        assert request.url.params["channel"] == "C1"
        assert request.url.params["oldest"] == "0000000000.000001"
        assert request.url.params["limit"] == "1000"
        assert "latest" not in request.url.params
        assert request.headers["Authorization"] == "Bearer xoxb-test"

    @pytest.mark.asyncio
    async def test_auth_test(self):
        recorder = _Recorder(httpx.Response(200, json={"ok": True, "user": "archiver", "team_id": "T1"}))
        async with _client(recorder) as client:
            identity = await client.auth_test()
        assert identity["team_id"] == "T1"

    @pytest.mark.asyncio
    async def test_conversations_list_follows_cursor(self):
        recorder = _Recorder(
            httpx.Response(200, json={
                "ok": True,
                "channels": [{"id": "C1", "name": "general"}],
                "response_metadata": {"next_cursor": "abc"},
            }),
            httpx.Response(200, json={
                "ok": True,
                "channels": [{"id": "C2", "name": "random"}],
                "response_metadata": {"next_cursor": ""},
            }),
        )
        async with _client(recorder) as client:
            channels = await client.conversations_list()

        assert [c["id"] for c in channels] == ["C1", "C2"]
        assert "cursor" not in recorder.requests[0].url.params
        assert recorder.requests[1].url.params["cursor"] == "abc"
        assert recorder.requests[0].url.params["exclude_archived"] == "true"


# ---------------------------------------------------------------------------
# Test: errors
# ---------------------------------------------------------------------------

class TestErrors:
    @pytest.mark.asyncio
    async def test_not_ok_raises_slack_api_error(self):
        recorder = _Recorder(httpx.Response(200, json={"ok": False, "error": "channel_not_found"}))
        async with _client(recorder) as client:
            with pytest.raises(SlackApiError) as exc_info:
                await client.conversations_history("C404")

        assert exc_info.value.error == "channel_not_found"
        assert exc_info.value.method == "conversations.history"

    @pytest.mark.asyncio
    async def test_rate_limit_raises_http_error(self):
        recorder = _Recorder(httpx.Response(429, headers={"Retry-After": "30"}))
        async with _client(recorder) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.conversations_history("C1")

    @pytest.mark.asyncio
    async def test_non_object_body(self):
        recorder = _Recorder(httpx.Response(200, json=["unexpected"]))
        async with _client(recorder) as client:
            with pytest.raises(SlackApiError):
                await client.auth_test()

    @pytest.mark.asyncio
    async def test_no_retry_on_failure(self):
        recorder = _Recorder(httpx.Response(503), httpx.Response(200, json={"ok": True}))
        async with _client(recorder) as client:
            with pytest.raises(httpx.HTTPStatusError):
                await client.auth_test()
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        recorder = _Recorder(httpx.Response(200, text="<html>gateway timeout</html>"))
        async with _client(recorder) as client:
            with pytest.raises(SlackApiError) as exc_info:
                await client.conversations_history("C1")

        assert exc_info.value.error == "invalid_json"

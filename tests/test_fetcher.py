"""
Unit tests for PageFetcher: page size validation, ordering, has_more
handling and error mapping.
"""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from archiver.errors import FetchFailed, PageSizeExceeded
from archiver.fetcher import MAX_PAGE_SIZE, PageFetcher, validate_page_size
from archiver.messages import EventMessage, StandardMessage
from archiver.slack_client import ReadOnlySlackClient, SlackApiError


@pytest.fixture
def mock_client():
    client = MagicMock()
    client.conversations_history = AsyncMock(return_value={"ok": True, "messages": []})
    return client


class TestValidatePageSize:
    def test_cap_is_allowed(self):
        assert validate_page_size(MAX_PAGE_SIZE) == 1000

    def test_above_cap_raises(self):
        with pytest.raises(PageSizeExceeded):
            validate_page_size(1001)

    def test_zero_raises(self):
        with pytest.raises(PageSizeExceeded):
            validate_page_size(0)


class TestFetch:
    @pytest.mark.asyncio
    async def test_query_parameters(self, mock_client):
        fetcher = PageFetcher(mock_client)
        await fetcher.fetch("C1", 1_700_000_000_000_001, 200)

        mock_client.conversations_history.assert_awaited_once_with(
            channel="C1",
            oldest="1700000000.000001",
            limit=200,
        )

    @pytest.mark.asyncio
    async def test_preserves_descending_order(self, mock_client):
        """The first element of the page must stay the newest one."""
        mock_client.conversations_history.return_value = {
            "ok": True,
            "messages": [
                {"ts": "1700000003.000000", "user": "U1", "text": "c"},
                {"ts": "1700000002.000000", "subtype": "channel_join", "user": "U2"},
                {"ts": "1700000001.000000", "user": "U1", "text": "a"},
            ],
            "has_more": True,
        }
        page = await PageFetcher(mock_client).fetch("C1", 1, 1000)

        assert [m.ts for m in page.messages] == [
            "1700000003.000000",
            "1700000002.000000",
            "1700000001.000000",
        ]
        assert isinstance(page.messages[0], StandardMessage)
        assert isinstance(page.messages[1], EventMessage)
        assert page.has_more is True

    @pytest.mark.asyncio
    async def test_missing_has_more_means_false(self, mock_client):
        mock_client.conversations_history.return_value = {
            "ok": True,
            "messages": [{"ts": "1700000001.000000", "user": "U1", "text": "a"}],
        }
        page = await PageFetcher(mock_client).fetch("C1", 1, 1000)
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_missing_messages_is_empty_page(self, mock_client):
        mock_client.conversations_history.return_value = {"ok": True}
        page = await PageFetcher(mock_client).fetch("C1", 1, 1000)
        assert page.messages == []
        assert page.has_more is False

    @pytest.mark.asyncio
    async def test_oversized_page_rejected_before_request(self, mock_client):
        with pytest.raises(PageSizeExceeded):
            await PageFetcher(mock_client).fetch("C1", 1, 1500)
        mock_client.conversations_history.assert_not_called()


class TestFetchFailures:
    @pytest.mark.asyncio
    async def test_api_error_becomes_fetch_failed(self, mock_client):
        cause = SlackApiError("conversations.history", "channel_not_found")
        mock_client.conversations_history.side_effect = cause

        with pytest.raises(FetchFailed) as exc_info:
            await PageFetcher(mock_client).fetch("C1", 1, 1000)

        assert exc_info.value.cause is cause
        assert exc_info.value.channel_id == "C1"
        assert exc_info.value.__cause__ is cause

    @pytest.mark.asyncio
    async def test_transport_error_becomes_fetch_failed(self, mock_client):
        mock_client.conversations_history.side_effect = httpx.ConnectTimeout("timed out")

        with pytest.raises(FetchFailed):
            await PageFetcher(mock_client).fetch("C1", 1, 1000)

    @pytest.mark.asyncio
    async def test_fetch_is_not_retried(self, mock_client):
        mock_client.conversations_history.side_effect = httpx.ReadError("reset")

        with pytest.raises(FetchFailed):
            await PageFetcher(mock_client).fetch("C1", 1, 1000)
        assert mock_client.conversations_history.await_count == 1

    @pytest.mark.asyncio
    async def test_bad_messages_shape(self, mock_client):
        mock_client.conversations_history.return_value = {"ok": True, "messages": "nope"}

        with pytest.raises(FetchFailed):
            await PageFetcher(mock_client).fetch("C1", 1, 1000)

    @pytest.mark.asyncio
    async def test_non_json_reply_becomes_fetch_failed(self):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, text="<html>gateway</html>")
        )
        async with ReadOnlySlackClient("xoxb-test", transport=transport) as client:
            with pytest.raises(FetchFailed) as exc_info:
                await PageFetcher(client).fetch("C1", 1, 1000)

        assert isinstance(exc_info.value.cause, SlackApiError)
        assert exc_info.value.cause.error == "invalid_json"

"""Tests for Slack API helpers, the paced post queue and the event sink."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest
import tenacity
from conftest import wait_until

from src.core.session import SessionEvent, SessionInfo
from src.interfaces.slack.messages import (
    WAITING_TEXT,
    format_event,
    format_start_banner,
    format_status,
    format_tool_lines,
)
from src.interfaces.slack.sink import SlackEventSink
from src.interfaces.slack.slack_api import (
    ChannelPostQueue,
    _slack_api_with_retry,
    split_message,
)


class TestRetry:
    """Test Slack API retry on timeouts."""

    @pytest.mark.asyncio
    async def test_retries_timeouts_then_succeeds(self):
        call = AsyncMock(side_effect=[asyncio.TimeoutError(), {"ok": True}])
        retrying = _slack_api_with_retry.retry_with(wait=tenacity.wait_none())

        result = await retrying(call, channel="C1", text="hi")

        assert result == {"ok": True}
        assert call.await_count == 2

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self):
        call = AsyncMock(side_effect=TimeoutError())
        retrying = _slack_api_with_retry.retry_with(wait=tenacity.wait_none())

        with pytest.raises(TimeoutError):
            await retrying(call)

        assert call.await_count == 3

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self):
        call = AsyncMock(side_effect=ValueError("bad"))

        with pytest.raises(ValueError):
            await _slack_api_with_retry(call)

        assert call.await_count == 1


class TestSplitMessage:
    """Test message splitting for Slack's length limit."""

    def test_short_message_unchanged(self):
        assert split_message("hello", limit=100) == ["hello"]

    def test_splits_at_paragraph(self):
        text = "a" * 60 + "\n\n" + "b" * 60

        assert split_message(text, limit=100) == ["a" * 60, "b" * 60]

    def test_hard_split_without_boundaries(self):
        chunks = split_message("x" * 250, limit=100)

        assert chunks == ["x" * 96, "x" * 96, "x" * 58]

    def test_code_block_is_closed_and_reopened(self):
        text = "intro\n```\n" + "line\n" * 40 + "```"

        chunks = split_message(text, limit=100)

        assert len(chunks) > 1
        assert all(len(chunk) <= 100 for chunk in chunks)
        assert all(chunk.count("```") == 2 for chunk in chunks)
        assert chunks[1].startswith("```\nline")
        assert chunks[-1].endswith("line\n```")


class TestChannelPostQueue:
    """Test per-channel paced posting."""

    @pytest.mark.asyncio
    async def test_calls_run_in_order(self):
        queue = ChannelPostQueue(interval=0)
        seen = []

        def make(i):
            async def call():
                await asyncio.sleep(0.01 if i == 0 else 0)
                seen.append(i)

            return call

        await asyncio.gather(*(queue.post("C1", make(i)) for i in range(3)))

        assert seen == [0, 1, 2]
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_same_channel_is_paced(self):
        queue = ChannelPostQueue(interval=0.05)
        times = []

        async def call():
            times.append(asyncio.get_running_loop().time())

        await asyncio.gather(queue.post("C1", call), queue.post("C1", call))

        assert times[1] - times[0] >= 0.045
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_channels_do_not_wait_on_each_other(self):
        queue = ChannelPostQueue(interval=0.5)
        seen = []

        async def call(name):
            seen.append(name)

        await queue.post("C1", lambda: call("C1"))
        await asyncio.wait_for(queue.post("C2", lambda: call("C2")), timeout=0.2)

        assert seen == ["C1", "C2"]
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_failed_call_does_not_block_queue(self):
        queue = ChannelPostQueue(interval=0)
        seen = []

        async def failing():
            raise RuntimeError("rate_limited")

        async def ok():
            seen.append("ok")

        await queue.post("C1", failing)
        await queue.post("C1", ok)

        assert seen == ["ok"]
        assert queue.pending("C1") == 0
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_idle_worker_is_released(self):
        queue = ChannelPostQueue(interval=0)
        seen = []

        async def call():
            seen.append(True)

        await queue.post("C1", call)
        await wait_until(lambda: queue.channels() == [])

        await queue.post("C1", call)

        assert seen == [True, True]
        await wait_until(lambda: queue.channels() == [])
        await queue.shutdown()

    @pytest.mark.asyncio
    async def test_shutdown_drains_pending_posts(self):
        queue = ChannelPostQueue(interval=0.01)
        seen = []

        async def call():
            seen.append(True)

        posts = [asyncio.create_task(queue.post("C1", call)) for _ in range(3)]
        await asyncio.sleep(0)
        await queue.shutdown(timeout=1.0)

        await asyncio.gather(*posts)
        assert seen == [True, True, True]


class TestSlackEventSink:
    """Test event delivery to Slack."""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.chat_postMessage = AsyncMock(return_value={"ok": True})
        return client

    @pytest.mark.asyncio
    async def test_text_event_is_formatted(self, client):
        sink = SlackEventSink(client, "C1", ChannelPostQueue(interval=0))

        await sink.deliver(SessionEvent.text("## Done\nSee [PR](https://x.test/1)"))

        client.chat_postMessage.assert_awaited_once_with(
            channel="C1", text="*Done*\nSee <https://x.test/1|PR>", unfurl_links=False
        )

    @pytest.mark.asyncio
    async def test_long_text_is_split_in_order(self, client):
        sink = SlackEventSink(client, "C1", ChannelPostQueue(interval=0))

        await sink.deliver(SessionEvent.text("a" * 2000 + "\n\n" + "b" * 2000))

        texts = [call.kwargs["text"] for call in client.chat_postMessage.call_args_list]
        assert texts == ["a" * 2000, "b" * 2000]

    @pytest.mark.asyncio
    async def test_post_failure_is_contained(self, client):
        client.chat_postMessage.side_effect = RuntimeError("channel_not_found")
        sink = SlackEventSink(client, "C1", ChannelPostQueue(interval=0))

        await sink.deliver(SessionEvent.waiting())

        client.chat_postMessage.assert_awaited_once()
        assert sink.channel_id == "C1"


class TestMessages:
    """Test Slack message text for events and command replies."""

    def test_tool_lines_get_emoji(self):
        assert format_tool_lines("Bash: `ls`\nRead: `/a.py`\nmcp__x__y") == (
            ":computer: Bash: `ls`\n:page_facing_up: Read: `/a.py`\n:wrench: mcp__x__y"
        )

    def test_event_rendering(self):
        assert format_event(SessionEvent.waiting()) == WAITING_TEXT
        assert format_event(SessionEvent.error("boom")) == ":x: *Error:* boom"
        assert (
            format_event(SessionEvent.heartbeat("Still working (2m elapsed)"))
            == ":hourglass_flowing_sand: _Still working (2m elapsed)_"
        )
        assert format_event(SessionEvent.text("   ")) == ""

    def test_start_banner(self):
        assert format_start_banner(None, None) == ":rocket: *Starting session...*"
        assert format_start_banner("/srv/app", "check <main>") == (
            ":rocket: *Starting session in `/srv/app`...*\n> check &lt;main&gt;"
        )

    def test_status(self):
        info = SessionInfo(
            started_at=datetime(2024, 5, 1, 9, 30, 0),
            message_count=3,
            cwd="/srv/app",
            waiting_for_input=False,
        )

        assert format_status(info) == (
            ":bar_chart: *Active session*\n"
            "Started: 2024-05-01 09:30:00\n"
            "Messages: 3\n"
            "Working dir: `/srv/app`\n"
            "State: working"
        )

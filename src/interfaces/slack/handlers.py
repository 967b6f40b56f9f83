# src/interfaces/slack/handlers.py
"""Event handlers for the Slack bridge.

Every channel message goes through SlackBridge.handle_message:
- explicit commands (!new, !end, !status) are executed directly
- in a channel without a session, any message starts one
- in a channel with a session, end/status intents are honoured and
  everything else is routed to the agent (accepted or queued)

Session output is posted through a per-channel paced queue by
SlackEventSink.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from slack_sdk.errors import SlackApiError

from src.core.commands import (
    EndSessionCommand,
    NewSessionCommand,
    StatusCommand,
    is_command,
    is_end_intent,
    is_status_intent,
    parse_command,
    parse_start_request,
)
from src.core.session import (
    InvalidWorkingDirectoryError,
    SendResult,
    SessionExistsError,
    SessionManager,
)
from src.interfaces.slack.messages import (
    ACCEPTED_TEXT,
    NO_SESSION_TEXT,
    NO_SESSION_TO_END_TEXT,
    QUEUED_TEXT,
    SESSION_ENDED_TEXT,
    SESSION_EXISTS_TEXT,
    format_directory_not_found,
    format_start_banner,
    format_status,
)
from src.interfaces.slack.sink import SlackEventSink
from src.interfaces.slack.slack_api import ChannelPostQueue, _slack_api_with_retry
from src.utils.logging import set_channel_id

logger = logging.getLogger(__name__)


def _is_user_message(event: dict[str, Any]) -> bool:
    """Filter out edits, joins, bot posts (including our own) and empty events."""
    if event.get("subtype") or event.get("bot_id"):
        return False
    return bool((event.get("text") or "").strip())


class SlackBridge:
    """Routes Slack channel messages to a SessionManager."""

    def __init__(
        self,
        manager: SessionManager,
        post_queue: ChannelPostQueue,
        client: Any,
    ) -> None:
        """Initialize the bridge.

        Args:
            manager: Session manager owning every channel's session.
            post_queue: Paced queue used for session output.
            client: Slack AsyncWebClient used by session sinks.
        """
        self._manager = manager
        self._post_queue = post_queue
        self._client = client

    def register(self, app: Any) -> None:
        """Register the message listener on a Bolt AsyncApp."""

        async def on_message(event: dict[str, Any], say: Callable) -> None:
            await self.handle_message(event, say)

        app.event("message")(on_message)

    async def _reply(self, say: Callable, text: str) -> None:
        try:
            await _slack_api_with_retry(say, text)
        except (TimeoutError, asyncio.TimeoutError, SlackApiError):
            logger.warning("Failed to send reply to Slack")

    async def handle_message(self, event: dict[str, Any], say: Callable) -> None:
        """Handle a channel message event."""
        if not _is_user_message(event):
            return

        channel_id = str(event.get("channel"))
        text = event["text"].strip()
        set_channel_id(channel_id)

        if is_command(text):
            command = parse_command(text)
            if isinstance(command, NewSessionCommand):
                await self.start(channel_id, command, say)
            elif isinstance(command, EndSessionCommand):
                await self.end(channel_id, say)
            elif isinstance(command, StatusCommand):
                await self.status(channel_id, say)
            return

        if not self._manager.has_active_session(channel_id):
            await self.start(channel_id, parse_start_request(text), say)
            return

        if is_end_intent(text):
            await self.end(channel_id, say)
            return

        if is_status_intent(text):
            await self.status(channel_id, say)
            return

        await self.route(channel_id, text, say)

    async def start(self, channel_id: str, command: NewSessionCommand, say: Callable) -> None:
        if self._manager.has_active_session(channel_id):
            await self._reply(say, SESSION_EXISTS_TEXT)
            return

        try:
            self._manager.resolve_working_directory(command.cwd)
        except InvalidWorkingDirectoryError as e:
            await self._reply(say, format_directory_not_found(e.path))
            return

        await self._reply(say, format_start_banner(command.cwd, command.prompt))

        sink = SlackEventSink(self._client, channel_id, self._post_queue)
        try:
            self._manager.start_session(channel_id, command.prompt, sink.deliver, command.cwd)
        except SessionExistsError:
            await self._reply(say, SESSION_EXISTS_TEXT)
        except InvalidWorkingDirectoryError as e:
            await self._reply(say, format_directory_not_found(e.path))

    async def end(self, channel_id: str, say: Callable) -> None:
        if not self._manager.end_session(channel_id):
            await self._reply(say, NO_SESSION_TO_END_TEXT)
            return
        await self._reply(say, SESSION_ENDED_TEXT)

    async def status(self, channel_id: str, say: Callable) -> None:
        info = self._manager.get_session_info(channel_id)
        if info is None:
            await self._reply(say, NO_SESSION_TEXT)
            return
        await self._reply(say, format_status(info))

    async def route(self, channel_id: str, text: str, say: Callable) -> None:
        result = self._manager.send_message(channel_id, text)
        logger.info("Message %s: %s", result.value, text[:80])

        if result is SendResult.QUEUED:
            await self._reply(say, QUEUED_TEXT)
        elif result is SendResult.ACCEPTED:
            await self._reply(say, ACCEPTED_TEXT)
        else:
            await self._reply(say, NO_SESSION_TEXT)

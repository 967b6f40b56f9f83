"""Slack delivery of session events."""

import logging
from typing import Any

from src.core.session import EventType, SessionEvent
from src.interfaces.slack.messages import format_event
from src.interfaces.slack.slack_api import (
    ChannelPostQueue,
    _slack_api_with_retry,
    split_message,
)

logger = logging.getLogger(__name__)


class SlackEventSink:
    """Posts a channel's session events through its paced post queue.

    ``deliver`` is the session callback: it returns once every chunk of
    the event has been posted (or has failed and been logged).
    """

    def __init__(self, client: Any, channel_id: str, post_queue: ChannelPostQueue) -> None:
        self._client = client
        self._channel_id = channel_id
        self._post_queue = post_queue

    @property
    def channel_id(self) -> str:
        return self._channel_id

    async def deliver(self, event: SessionEvent) -> None:
        text = format_event(event)
        if not text:
            return
        unfurl = event.type is not EventType.TEXT
        for chunk in split_message(text):
            await self._post_queue.post(self._channel_id, self._poster(chunk, unfurl))

    def _poster(self, text: str, unfurl: bool):
        async def _post() -> None:
            await _slack_api_with_retry(
                self._client.chat_postMessage,
                channel=self._channel_id,
                text=text,
                unfurl_links=unfurl,
            )

        return _post

# src/core/session/models.py
"""Session data model for channel-bound agent conversations.

This module defines the Session dataclass (one per Slack channel), the
events a session emits towards its channel, and the small value types
returned by the session manager.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from src.core.engine.protocol import CancellationHandle

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    """Lifecycle state of a session.

    STARTING -> RUNNING_TURN | IDLE; IDLE -> RUNNING_TURN on new input;
    RUNNING_TURN -> RUNNING_TURN (queued input) | IDLE on completion;
    any -> ENDED on explicit end or fatal error.
    """

    STARTING = "starting"
    RUNNING_TURN = "running_turn"
    IDLE = "idle"
    ENDED = "ended"


class EventType(str, Enum):
    """Normalized event vocabulary delivered to a channel."""

    TEXT = "text"
    TOOL_USE = "tool_use"
    WAITING = "waiting"
    HEARTBEAT = "heartbeat"
    ERROR = "error"


class SendResult(str, Enum):
    """Outcome of routing a user message to a channel's session."""

    ACCEPTED = "accepted"
    QUEUED = "queued"
    NO_SESSION = "no_session"


@dataclass(frozen=True)
class SessionEvent:
    """A single event emitted by a session.

    Attributes:
        type: Event kind.
        content: Text payload (empty for WAITING).
    """

    type: EventType
    content: str = ""

    @classmethod
    def text(cls, content: str) -> SessionEvent:
        return cls(EventType.TEXT, content)

    @classmethod
    def tool_use(cls, content: str) -> SessionEvent:
        return cls(EventType.TOOL_USE, content)

    @classmethod
    def waiting(cls) -> SessionEvent:
        return cls(EventType.WAITING)

    @classmethod
    def heartbeat(cls, content: str = "") -> SessionEvent:
        return cls(EventType.HEARTBEAT, content)

    @classmethod
    def error(cls, message: str) -> SessionEvent:
        return cls(EventType.ERROR, message)


EventCallback = Callable[[SessionEvent], Awaitable[None]]


@dataclass(frozen=True)
class SessionInfo:
    """Read-only snapshot of a session for status displays."""

    started_at: datetime
    message_count: int
    cwd: str
    waiting_for_input: bool


@dataclass
class Session:
    """A persistent binding between a channel and one agent conversation.

    Attributes:
        channel_id: Slack channel the session belongs to.
        cwd: Working directory bound at creation.
        callback: Async callable receiving every SessionEvent.
        started_at: Creation time.
        state: Current SessionState.
        agent_session_token: Engine resumption handle, set once.
        pending_input: At most one queued user message.
        message_count: Number of turns started.
        turn_handle: Cancellation handle of the in-flight turn.
        turn_task: asyncio task running the in-flight turn.
        active: False once the session was ended or failed.
    """

    channel_id: str
    cwd: str
    callback: EventCallback
    started_at: datetime = field(default_factory=datetime.now)
    state: SessionState = SessionState.STARTING
    agent_session_token: str | None = None
    pending_input: str | None = None
    message_count: int = 0
    turn_handle: CancellationHandle | None = None
    turn_task: asyncio.Task | None = field(default=None, repr=False)
    active: bool = True
    _emit_lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def capture_token(self, token: str | None) -> bool:
        """Record the engine's resumption token if none is set yet.

        Returns:
            True if the token was stored by this call.
        """
        if not token or self.agent_session_token is not None:
            return False
        self.agent_session_token = token
        logger.info("Got session token %s", token)
        return True

    def info(self) -> SessionInfo:
        return SessionInfo(
            started_at=self.started_at,
            message_count=self.message_count,
            cwd=self.cwd,
            waiting_for_input=self.state is SessionState.IDLE,
        )

    async def emit(self, event: SessionEvent) -> None:
        """Deliver an event through the callback, in emission order.

        Events of an inactive session are dropped. Delivery failures are
        logged and never propagate into the turn.
        """
        async with self._emit_lock:
            if not self.active:
                logger.debug("Dropping %s event for ended session", event.type.value)
                return
            try:
                await self.callback(event)
            except Exception:
                logger.exception("Failed to deliver %s event", event.type.value)

"""Session registry and turn sequencer.

One SessionManager owns every channel's Session. It decides whether an
incoming message starts a turn or is queued, and after each turn either
resumes with the queued message or returns the session to idle.

All state transitions happen synchronously on the event loop, with no
suspension point between a check and the matching update, so a message
racing a turn completion is seen by exactly one of the two paths.

Example:
    >>> manager = SessionManager(ClaudeCodeEngine())
    >>> manager.start_session("C123", "fix the failing test", sink.deliver)
    >>> manager.send_message("C123", "also update the changelog")
    <SendResult.QUEUED: 'queued'>
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterator

from src.config import Settings, settings
from src.core.engine.protocol import EngineProtocol
from src.core.session.driver import TurnDriver, TurnOutcome
from src.core.session.models import (
    EventCallback,
    SendResult,
    Session,
    SessionEvent,
    SessionInfo,
    SessionState,
)
from src.utils.logging import set_channel_id

logger = logging.getLogger(__name__)


class SessionError(Exception):
    """Base class for session lifecycle errors."""


class SessionExistsError(SessionError):
    """A session is already running in the channel."""

    def __init__(self, channel_id: str) -> None:
        super().__init__(f"Session already active in {channel_id}")
        self.channel_id = channel_id


class InvalidWorkingDirectoryError(SessionError):
    """The requested working directory does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Directory not found: {path}")
        self.path = path


class EmptyPromptError(SessionError, ValueError):
    """A prompt was empty or only whitespace."""

    def __init__(self, channel_id: str) -> None:
        super().__init__(f"Empty prompt for {channel_id}")
        self.channel_id = channel_id


class SessionRegistry:
    """Channel ID to Session map with at most one session per channel."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def __contains__(self, channel_id: object) -> bool:
        return channel_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(list(self._sessions.values()))

    def get(self, channel_id: str) -> Session | None:
        return self._sessions.get(channel_id)

    def add(self, session: Session) -> bool:
        """Insert a session unless its channel already has one.

        Returns:
            True if ``session`` is now the channel's session.
        """
        return self._sessions.setdefault(session.channel_id, session) is session

    def remove(self, channel_id: str, session: Session | None = None) -> Session | None:
        """Remove the channel's session.

        Args:
            channel_id: Channel to clear.
            session: If given, only remove when it is still the channel's
                session (a newer session in the same channel is left alone).

        Returns:
            The removed session, or None.
        """
        current = self._sessions.get(channel_id)
        if current is None or (session is not None and current is not session):
            return None
        del self._sessions[channel_id]
        return current

    def channels(self) -> list[str]:
        return list(self._sessions)


class SessionManager:
    """Owns the per-channel sessions and sequences their turns."""

    def __init__(
        self,
        engine: EngineProtocol,
        config: Settings | None = None,
        registry: SessionRegistry | None = None,
        driver: TurnDriver | None = None,
    ) -> None:
        self._config = config or settings
        self._registry = registry or SessionRegistry()
        self._driver = driver or TurnDriver(engine, self._registry, self._config)

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    def has_active_session(self, channel_id: str) -> bool:
        return channel_id in self._registry

    def active_channels(self) -> list[str]:
        return self._registry.channels()

    def get_session_info(self, channel_id: str) -> SessionInfo | None:
        session = self._registry.get(channel_id)
        return session.info() if session else None

    def resolve_working_directory(self, cwd: str | None) -> str:
        """Resolve the working directory for a new session.

        Raises:
            InvalidWorkingDirectoryError: An explicit ``cwd`` does not exist.
        """
        if not cwd:
            return self._config.default_working_directory
        resolved = os.path.expanduser(cwd)
        if not os.path.isdir(resolved):
            raise InvalidWorkingDirectoryError(resolved)
        return resolved

    def start_session(
        self,
        channel_id: str,
        initial_prompt: str | None,
        callback: EventCallback,
        cwd: str | None = None,
    ) -> Session:
        """Create the channel's session, optionally starting its first turn.

        Args:
            channel_id: Slack channel ID.
            initial_prompt: First prompt; without one the session starts idle.
            callback: Async callable receiving the session's events.
            cwd: Working directory override. Must exist.

        Returns:
            The new Session.

        Raises:
            InvalidWorkingDirectoryError: ``cwd`` is not an existing directory.
            SessionExistsError: The channel already has a session.
            EmptyPromptError: ``initial_prompt`` is given but blank.
        """
        if initial_prompt is not None and not initial_prompt.strip():
            raise EmptyPromptError(channel_id)
        resolved = self.resolve_working_directory(cwd)
        session = Session(channel_id=channel_id, cwd=resolved, callback=callback)
        if not self._registry.add(session):
            raise SessionExistsError(channel_id)
        logger.info("[%s] Session created in %s", channel_id, resolved)

        if initial_prompt:
            self._start_turn(session, initial_prompt)
        else:
            session.state = SessionState.IDLE
        return session

    def send_message(self, channel_id: str, text: str) -> SendResult:
        """Route a user message to the channel's session.

        Returns:
            NO_SESSION if the channel has no session, QUEUED if a turn is
            running (replacing any earlier queued message), or ACCEPTED if
            the session was idle and a turn has started.

        Raises:
            EmptyPromptError: ``text`` is empty or only whitespace.
        """
        if not text.strip():
            raise EmptyPromptError(channel_id)
        session = self._registry.get(channel_id)
        if session is None:
            return SendResult.NO_SESSION

        if session.state is not SessionState.IDLE:
            if session.pending_input is not None:
                logger.info("[%s] Replacing queued message", channel_id)
            session.pending_input = text
            return SendResult.QUEUED

        self._start_turn(session, text)
        return SendResult.ACCEPTED

    def end_session(self, channel_id: str) -> bool:
        """End the channel's session and cancel its in-flight turn.

        Returns:
            True if a session was ended, False if there was none.
        """
        session = self._registry.remove(channel_id)
        if session is None:
            return False
        session.active = False
        session.state = SessionState.ENDED
        session.pending_input = None
        if session.turn_handle is not None:
            session.turn_handle.cancel()
        logger.info("[%s] Session ended", channel_id)
        return True

    def end_all_sessions(self) -> None:
        for channel_id in self._registry.channels():
            self.end_session(channel_id)

    async def shutdown(self, timeout: float = 5.0) -> None:
        """End every session and wait for in-flight turns to unwind.

        Args:
            timeout: Seconds to wait before cancelling remaining turn tasks.
        """
        tasks = [
            s.turn_task for s in self._registry if s.turn_task and not s.turn_task.done()
        ]
        self.end_all_sessions()
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %d turn(s) that did not stop in time", len(pending))

    def _start_turn(self, session: Session, prompt: str) -> None:
        session.state = SessionState.RUNNING_TURN
        session.turn_task = asyncio.create_task(
            self._run_turns(session, prompt), name=f"turn-{session.channel_id}"
        )

    async def _run_turns(self, session: Session, prompt: str) -> None:
        """Run turns back to back while queued input keeps arriving."""
        set_channel_id(session.channel_id)
        next_prompt: str | None = prompt
        while next_prompt is not None:
            outcome = await self._driver.run_turn(session, next_prompt)
            if outcome is TurnOutcome.FAILED or not session.active:
                return
            next_prompt = self._take_next_prompt(session)

        await session.emit(SessionEvent.waiting())

    def _take_next_prompt(self, session: Session) -> str | None:
        # Runs without awaiting: atomic with respect to send_message
        if session.pending_input is not None:
            queued, session.pending_input = session.pending_input, None
            logger.info("Resuming with queued message: %s", queued[:80])
            return queued
        session.state = SessionState.IDLE
        return None

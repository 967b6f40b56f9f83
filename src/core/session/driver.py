"""Agent turn driver.

Drives exactly one conversational turn: invokes the engine, normalizes its
stream into SessionEvents and paces them towards the session's channel.

Pacing rules:
- Text fragments accumulate and are posted once the stream has been quiet
  for ``flush_delay_ms``.
- Buffered text is always flushed before a tool event and at completion.
- Consecutive identical tool descriptions are reported once.
- Optionally, tool descriptions arriving within ``tool_batch_window_ms`` of
  each other are posted as one multi-line event.
- While nothing has been posted for ``heartbeat_interval_s``, a heartbeat
  event is emitted on that interval.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from src.config import Settings, settings
from src.core.engine.protocol import (
    CancellationHandle,
    EngineOptions,
    EngineProtocol,
    TurnCancelledError,
)
from src.core.session.models import Session, SessionEvent, SessionState
from src.core.session.timers import DeferredAction
from src.core.session.tool_format import describe_tool_use

if TYPE_CHECKING:
    from src.core.session.manager import SessionRegistry

logger = logging.getLogger(__name__)


class TurnOutcome(str, Enum):
    """How a turn ended."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class PacingConfig:
    """Output pacing parameters, in seconds."""

    flush_delay: float = 1.2
    tool_batch_window: float = 0.0
    heartbeat_interval: float = 120.0

    @classmethod
    def from_settings(cls, config: Settings) -> PacingConfig:
        return cls(
            flush_delay=config.flush_delay_ms / 1000,
            tool_batch_window=config.tool_batch_window_ms / 1000,
            heartbeat_interval=config.heartbeat_interval_s,
        )


def _format_elapsed(seconds: float) -> str:
    seconds = int(seconds)
    if seconds < 60:
        return f"{seconds}s"
    minutes, seconds = divmod(seconds, 60)
    return f"{minutes}m {seconds}s" if seconds else f"{minutes}m"


class TurnOutput:
    """Buffers one turn's output and paces its delivery to the session."""

    def __init__(self, session: Session, pacing: PacingConfig) -> None:
        self._session = session
        self._pacing = pacing
        self._text = ""
        self._tools: list[str] = []
        self._last_tool = ""
        self._started = time.monotonic()
        self._flush_lock = asyncio.Lock()
        self._text_timer = DeferredAction(pacing.flush_delay, self.flush_text)
        self._tool_timer = DeferredAction(pacing.tool_batch_window, self.flush_tools)
        self._closed = False
        self._heartbeat: DeferredAction | None = None
        if pacing.heartbeat_interval > 0:
            self._heartbeat = DeferredAction(pacing.heartbeat_interval, self._beat)

    def start(self) -> None:
        if self._heartbeat:
            self._heartbeat.arm()

    def close(self) -> None:
        self._closed = True
        self._text_timer.cancel()
        self._tool_timer.cancel()
        if self._heartbeat:
            self._heartbeat.cancel()

    async def add_text(self, fragment: str) -> None:
        if self._tools:
            await self.flush_tools()
        self._text += fragment
        self._text_timer.arm()

    async def add_tool(self, description: str) -> None:
        await self.flush_text()
        if description == self._last_tool:
            logger.debug("Suppressing repeated tool event: %s", description)
            return
        self._last_tool = description

        if self._pacing.tool_batch_window <= 0:
            await self._deliver(SessionEvent.tool_use(description))
            return
        self._tools.append(description)
        if not self._tool_timer.armed:
            self._tool_timer.arm()

    async def flush_text(self) -> None:
        self._text_timer.cancel()
        async with self._flush_lock:
            if not self._text.strip():
                return
            text, self._text = self._text.strip(), ""
            await self._deliver(SessionEvent.text(text))

    async def flush_tools(self) -> None:
        self._tool_timer.cancel()
        async with self._flush_lock:
            if not self._tools:
                return
            tools, self._tools = self._tools, []
            await self._deliver(SessionEvent.tool_use("\n".join(tools)))

    async def flush_all(self) -> None:
        await self.flush_text()
        await self.flush_tools()

    async def _deliver(self, event: SessionEvent) -> None:
        await self._session.emit(event)
        self._rearm_heartbeat()

    async def _beat(self) -> None:
        if self._closed:
            return
        elapsed = _format_elapsed(time.monotonic() - self._started)
        await self._session.emit(SessionEvent.heartbeat(f"Still working ({elapsed} elapsed)"))
        self._rearm_heartbeat()

    def _rearm_heartbeat(self) -> None:
        # A delivery still in flight when the turn closed must not restart the timer
        if self._heartbeat and not self._closed:
            self._heartbeat.arm()


class TurnDriver:
    """Runs single turns of a session against an engine.

    The driver never decides what happens after a successful turn; it
    reports the outcome and leaves the handoff to the SessionManager.
    """

    def __init__(
        self,
        engine: EngineProtocol,
        registry: SessionRegistry,
        config: Settings | None = None,
    ) -> None:
        self._engine = engine
        self._registry = registry
        self._config = config or settings

    def _build_options(self, session: Session) -> EngineOptions:
        config = self._config
        return EngineOptions(
            cwd=session.cwd,
            resume_token=session.agent_session_token,
            continue_most_recent=config.claude_continue and not session.agent_session_token,
            skip_approvals=config.claude_skip_permissions,
            model=config.claude_model or None,
        )

    async def run_turn(self, session: Session, prompt: str) -> TurnOutcome:
        """Run one turn of ``session`` with ``prompt``.

        Args:
            session: Session that owns the turn.
            prompt: Non-empty user prompt.

        Returns:
            The TurnOutcome. On FAILED the error event has already been
            emitted and the session removed from the registry.
        """
        handle = CancellationHandle()
        session.turn_handle = handle
        session.state = SessionState.RUNNING_TURN
        session.message_count += 1

        options = self._build_options(session)
        if options.resume_token:
            logger.info('Turn started: "%s" (resume %s...)', prompt[:80], options.resume_token[:8])
        else:
            logger.info('Turn started: "%s"', prompt[:80])

        output = TurnOutput(session, PacingConfig.from_settings(self._config))
        output.start()
        stream = self._engine.invoke(prompt, options, handle)
        try:
            async for message in stream:
                if not session.active:
                    break
                await self._handle_event(session, output, message)
            await output.flush_all()
        except TurnCancelledError:
            logger.info("Turn cancelled")
            return TurnOutcome.CANCELLED
        except Exception as e:
            if not session.active or handle.cancelled:
                logger.info("Turn stopped after session end: %s", e)
                return TurnOutcome.CANCELLED
            logger.error("Turn error: %s", e)
            await self._fail(session, output, str(e) or e.__class__.__name__)
            return TurnOutcome.FAILED
        finally:
            output.close()
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                try:
                    await aclose()
                except Exception:
                    logger.debug("Engine stream close failed", exc_info=True)
            if session.turn_handle is handle:
                session.turn_handle = None

        if not session.active or handle.cancelled:
            return TurnOutcome.CANCELLED
        return TurnOutcome.COMPLETED

    async def _handle_event(self, session: Session, output: TurnOutput, message: Any) -> None:
        if not isinstance(message, dict):
            logger.debug("Ignoring malformed engine event: %r", message)
            return

        token = message.get("session_id")
        if isinstance(token, str):
            session.capture_token(token)

        kind = message.get("type")
        if kind == "assistant":
            body = message.get("message")
            content = body.get("content") if isinstance(body, dict) else None
            for block in content if isinstance(content, list) else []:
                if not isinstance(block, dict):
                    continue
                block_type = block.get("type")
                if block_type == "text":
                    text = block.get("text")
                    if isinstance(text, str) and text:
                        await output.add_text(text)
                elif block_type == "tool_use":
                    await output.add_tool(describe_tool_use(block))
        elif kind == "result":
            await output.flush_all()
            cost = message.get("total_cost_usd")
            cost_label = f"${cost:.4f}" if isinstance(cost, (int, float)) else "?"
            if message.get("is_error"):
                logger.warning(
                    "Turn complete with engine error %s (cost: %s)",
                    message.get("subtype", "?"),
                    cost_label,
                )
            else:
                logger.info("Turn complete (cost: %s)", cost_label)
        elif kind == "system":
            pass
        else:
            logger.debug("Ignoring engine event type %r", kind)

    async def _fail(self, session: Session, output: TurnOutput, message: str) -> None:
        await output.flush_all()
        await session.emit(SessionEvent.error(message))
        session.active = False
        session.state = SessionState.ENDED
        session.pending_input = None
        self._registry.remove(session.channel_id, session)

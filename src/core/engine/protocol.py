"""Engine port for agent invocations.

The session layer depends on these contracts rather than on a concrete
engine. An engine turns one prompt into an async stream of raw event
dicts (Claude Code ``stream-json`` shape) and stops when the supplied
CancellationHandle is cancelled.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EngineError(Exception):
    """The engine failed to run or finish a turn."""


class TurnCancelledError(Exception):
    """The turn's stream ended because its handle was cancelled."""


class CancellationHandle:
    """Cancellation capability for one in-flight turn.

    Callbacks registered with add_callback run exactly once, when cancel()
    is first called (or immediately, if the handle is already cancelled).
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        if self._event.is_set():
            return
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Cancellation callback failed")

    def add_callback(self, callback: Callable[[], None]) -> None:
        if self._event.is_set():
            callback()
        else:
            self._callbacks.append(callback)

    async def wait(self) -> None:
        await self._event.wait()


@dataclass(frozen=True)
class EngineOptions:
    """Per-turn invocation options.

    Attributes:
        cwd: Working directory the agent runs in.
        resume_token: Conversation to resume, if any.
        continue_most_recent: Continue the most recent conversation in cwd
            (only meaningful without a resume token).
        skip_approvals: Run without any approval prompts.
        model: Optional model override.
    """

    cwd: str
    resume_token: str | None = None
    continue_most_recent: bool = False
    skip_approvals: bool = False
    model: str | None = None


class EngineProtocol(Protocol):
    """A streaming agent engine."""

    def invoke(
        self,
        prompt: str,
        options: EngineOptions,
        handle: CancellationHandle,
    ) -> AsyncIterator[dict[str, Any]]:
        """Run one turn, yielding raw engine events.

        Raises:
            TurnCancelledError: The handle was cancelled mid-stream.
            EngineError: The turn failed for any other reason.
        """
        ...

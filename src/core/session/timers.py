"""Cancellable deferred actions for output pacing."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class DeferredAction:
    """Run an async action once a deadline passes, unless cancelled first.

    arm() always cancels a pending deadline before scheduling a new one, so
    at most one deadline is outstanding. Once the deadline passes the action
    is detached from the timer: cancel() and arm() no longer interrupt it,
    which lets an action call code that also cancels or re-arms the timer.

    Example:
        >>> flush = DeferredAction(1.2, flush_text)
        >>> flush.arm()  # (re)start the quiet period
        >>> flush.cancel()  # text was flushed some other way
    """

    def __init__(self, delay: float, action: Callable[[], Awaitable[None]]) -> None:
        self.delay = delay
        self._action = action
        self._task: asyncio.Task | None = None

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self, delay: float | None = None) -> None:
        self.cancel()
        self._task = asyncio.create_task(self._fire(self.delay if delay is None else delay))

    def cancel(self) -> None:
        task = self._task
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        self._task = None

    async def _fire(self, delay: float) -> None:
        await asyncio.sleep(delay)
        # Past the deadline the action runs to completion; cancel() no longer reaches it
        if self._task is asyncio.current_task():
            self._task = None
        try:
            await self._action()
        except Exception:
            logger.exception("Deferred action failed")

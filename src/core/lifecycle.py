# src/core/lifecycle.py
"""Process lifetime of the bridge's long-lived components.

The Slack post queue and the session manager outlive any single message.
They are registered here in dependency order, and stopped in the opposite
order when the Socket Mode connection goes away: sessions end first, then
their last posts drain.

Example:
    >>> lifecycle = LifecycleManager()
    >>> lifecycle.register("slack_posts", post_queue)
    >>> lifecycle.register("sessions", session_manager)
    >>> await lifecycle.startup()
    >>> # ... Socket Mode handler runs ...
    >>> await lifecycle.shutdown()
"""

import inspect
import logging
from typing import Any

logger = logging.getLogger(__name__)


async def _maybe_await(method: Any) -> None:
    result = method()
    if inspect.isawaitable(result):
        await result


def _start_method(component: Any) -> Any:
    return getattr(component, "start", None) or getattr(component, "startup", None)


class LifecycleManager:
    """Starts components in registration order and stops them in reverse.

    A component needs a shutdown() method; start() or startup() is
    optional. Either may be a plain or an async method.
    """

    def __init__(self) -> None:
        self._registered: list[tuple[str, Any]] = []
        self._running: list[tuple[str, Any]] = []

    def register(self, name: str, component: Any) -> None:
        self._registered.append((name, component))
        logger.debug("Registered %s", name)

    async def startup(self) -> None:
        """Start every registered component. A second call is a no-op."""
        if self._running:
            return
        for name, component in self._registered:
            start = _start_method(component)
            if start is not None:
                logger.info("Starting %s", name)
                await _maybe_await(start)
            self._running.append((name, component))
        logger.info("Bridge components started: %s", ", ".join(n for n, _ in self._running))

    async def shutdown(self) -> None:
        """Stop running components, newest first.

        A component failing to stop is logged and the rest still stop.
        """
        while self._running:
            name, component = self._running.pop()
            logger.info("Stopping %s", name)
            try:
                await _maybe_await(component.shutdown)
            except Exception as e:
                logger.error("Error stopping %s: %s", name, e)
        logger.info("Bridge components stopped")

    @property
    def is_started(self) -> bool:
        return bool(self._running)

    @property
    def component_count(self) -> int:
        return len(self._registered)

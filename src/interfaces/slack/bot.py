# src/interfaces/slack/bot.py
"""Slack bot entry point with AsyncApp and AsyncSocketModeHandler.

Wires the Claude Code engine, the session manager and the paced Slack
post queue together, and ties their lifetime to the Socket Mode
connection: on shutdown every session is ended and queued posts drain.

Commands: !new [--dir /path] <task> | !end | !status | or just talk naturally
"""

import asyncio
import logging
import signal

from dotenv import load_dotenv
from slack_bolt.adapter.socket_mode.async_handler import AsyncSocketModeHandler
from slack_bolt.async_app import AsyncApp

from src.config import Settings, settings
from src.core.engine import ClaudeCodeEngine
from src.core.lifecycle import LifecycleManager
from src.core.session import SessionManager
from src.interfaces.slack.handlers import SlackBridge
from src.interfaces.slack.slack_api import ChannelPostQueue
from src.utils.logging import configure_logging

# Load .env into the process environment so the claude CLI inherits it too
load_dotenv()

logger = logging.getLogger(__name__)


def create_bot(
    config: Settings | None = None,
) -> tuple[AsyncApp, AsyncSocketModeHandler, LifecycleManager]:
    """Create and wire the Slack bot.

    Args:
        config: Settings to use. Defaults to the process-wide settings.

    Returns:
        Tuple of (AsyncApp, AsyncSocketModeHandler, LifecycleManager).
    """
    config = config or settings

    app = AsyncApp(token=config.slack_bot_token)
    post_queue = ChannelPostQueue(interval=config.slack_post_interval_s)
    manager = SessionManager(ClaudeCodeEngine(binary=config.claude_binary), config)
    SlackBridge(manager, post_queue, app.client).register(app)

    lifecycle = LifecycleManager()
    lifecycle.register("slack_posts", post_queue)
    lifecycle.register("sessions", manager)

    handler = AsyncSocketModeHandler(app, config.slack_app_token)
    return app, handler, lifecycle


async def start_bot(config: Settings | None = None) -> None:
    """Start the Slack bot with Socket Mode and run until cancelled."""
    _, handler, lifecycle = create_bot(config)
    await lifecycle.startup()

    current = asyncio.current_task()
    loop = asyncio.get_running_loop()
    sigterm_installed = False
    if current is not None:
        try:
            loop.add_signal_handler(signal.SIGTERM, current.cancel)
            sigterm_installed = True
        except (NotImplementedError, RuntimeError):
            pass

    logger.info("Starting Claude Code Slack bridge with Socket Mode...")
    try:
        await handler.start_async()
    except asyncio.CancelledError:
        logger.info("Received shutdown signal")
    finally:
        await lifecycle.shutdown()
        await handler.close_async()
        if sigterm_installed:
            loop.remove_signal_handler(signal.SIGTERM)
        logger.info("Slack bridge stopped")


def main() -> None:
    """Entry point with graceful shutdown handling."""
    configure_logging(settings.log_level, settings.log_format)

    try:
        asyncio.run(start_bot())
    except KeyboardInterrupt:
        logger.info("Shutdown complete")


if __name__ == "__main__":
    main()

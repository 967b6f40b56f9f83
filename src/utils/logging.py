# src/utils/logging.py
"""Structured logging with JSON format and channel correlation support.

Provides:
- JSON-formatted log output for structured logging
- Channel correlation ID via ContextVar, so every line logged while a
  session turn runs carries the Slack channel it belongs to
- Centralized logger configuration for the bot entry point
"""

import json
import logging
from contextvars import ContextVar
from typing import Any

# Channel correlation ID for tracking session activity across async tasks
channel_id_var: ContextVar[str] = ContextVar("channel_id", default="")


def set_channel_id(channel_id: str) -> None:
    """Set the channel correlation ID for the current context.

    Tasks created afterwards inherit the value, so setting it before a
    turn task is spawned tags everything that turn logs.

    Args:
        channel_id: Slack channel identifier.
    """
    channel_id_var.set(channel_id)


def get_channel_id() -> str:
    """Get the channel correlation ID for the current context.

    Returns:
        Current channel ID, or empty string if not set.
    """
    return channel_id_var.get()


class ChannelContextFilter(logging.Filter):
    """Attach the current channel ID to every record as ``record.channel``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.channel = get_channel_id() or "-"
        return True


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Outputs log records as JSON with timestamp, level, logger name,
    message, and the channel ID when one is set.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON.

        Args:
            record: Log record to format.

        Returns:
            JSON-formatted log string.
        """
        log_data: dict[str, Any] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        channel_id = get_channel_id()
        if channel_id:
            log_data["channel"] = channel_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Configure root logging for the application.

    Args:
        level: Logging level name (e.g. "INFO", "DEBUG").
        fmt: "json" for StructuredFormatter output, anything else for
            plain text lines tagged with the channel.
    """
    handler = logging.StreamHandler()
    handler.addFilter(ChannelContextFilter())
    if fmt == "json":
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - [%(channel)s] %(message)s"
            )
        )
    logging.root.handlers = [handler]
    logging.root.setLevel(level.upper())

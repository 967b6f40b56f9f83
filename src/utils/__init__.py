"""Utility functions for the Slack coding-agent bridge."""

from src.utils.logging import (
    configure_logging,
    get_channel_id,
    set_channel_id,
)
from src.utils.slack_formatter import format_for_slack

__all__ = [
    "configure_logging",
    "format_for_slack",
    "get_channel_id",
    "set_channel_id",
]

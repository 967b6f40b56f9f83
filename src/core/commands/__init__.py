"""Bridge command and chat-intent parsing."""

from src.core.commands.parser import (
    BridgeCommand,
    EndSessionCommand,
    NewSessionCommand,
    StatusCommand,
    extract_path,
    is_command,
    is_end_intent,
    is_status_intent,
    parse_command,
    parse_start_request,
    strip_start_preamble,
)

__all__ = [
    "BridgeCommand",
    "EndSessionCommand",
    "NewSessionCommand",
    "StatusCommand",
    "extract_path",
    "is_command",
    "is_end_intent",
    "is_status_intent",
    "parse_command",
    "parse_start_request",
    "strip_start_preamble",
]

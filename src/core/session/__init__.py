"""Per-channel agent sessions: data model, turn driver and sequencer."""

from src.core.session.driver import PacingConfig, TurnDriver, TurnOutcome
from src.core.session.manager import (
    EmptyPromptError,
    InvalidWorkingDirectoryError,
    SessionError,
    SessionExistsError,
    SessionManager,
    SessionRegistry,
)
from src.core.session.models import (
    EventCallback,
    EventType,
    SendResult,
    Session,
    SessionEvent,
    SessionInfo,
    SessionState,
)
from src.core.session.tool_format import describe_tool_use

__all__ = [
    "EmptyPromptError",
    "EventCallback",
    "EventType",
    "InvalidWorkingDirectoryError",
    "PacingConfig",
    "SendResult",
    "Session",
    "SessionError",
    "SessionEvent",
    "SessionExistsError",
    "SessionInfo",
    "SessionManager",
    "SessionRegistry",
    "SessionState",
    "TurnDriver",
    "TurnOutcome",
    "describe_tool_use",
]

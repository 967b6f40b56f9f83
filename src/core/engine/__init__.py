"""Agent engine port and the Claude Code CLI implementation."""

from src.core.engine.claude_cli import ClaudeCodeEngine
from src.core.engine.protocol import (
    CancellationHandle,
    EngineError,
    EngineOptions,
    EngineProtocol,
    TurnCancelledError,
)

__all__ = [
    "CancellationHandle",
    "ClaudeCodeEngine",
    "EngineError",
    "EngineOptions",
    "EngineProtocol",
    "TurnCancelledError",
]

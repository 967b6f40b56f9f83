# tests/conftest.py
"""Shared pytest fixtures for all test modules.

Provides common fixtures for:
- Fast pacing settings (short debounce, no heartbeat, no post interval)
- A scripted fake engine producing Claude-style stream events
- A recording event sink
"""

import asyncio
import sys
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest

# Ensure src is in path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.config import Settings  # noqa: E402
from src.core.engine.protocol import (  # noqa: E402
    CancellationHandle,
    EngineOptions,
    TurnCancelledError,
)
from src.core.session.models import EventType, SessionEvent  # noqa: E402

# Script step: block until the turn's handle is cancelled
WAIT_FOR_CANCEL = object()


def text_event(text: str, session_id: str | None = None) -> dict[str, Any]:
    event: dict[str, Any] = {
        "type": "assistant",
        "message": {"content": [{"type": "text", "text": text}]},
    }
    if session_id:
        event["session_id"] = session_id
    return event


def tool_event(name: str, **tool_input: Any) -> dict[str, Any]:
    return {
        "type": "assistant",
        "message": {
            "content": [{"type": "tool_use", "id": "tool_1", "name": name, "input": tool_input}]
        },
    }


def init_event(session_id: str) -> dict[str, Any]:
    return {"type": "system", "subtype": "init", "session_id": session_id}


def result_event(session_id: str | None = "sess-1", cost: float = 0.0123) -> dict[str, Any]:
    event: dict[str, Any] = {
        "type": "result",
        "subtype": "success",
        "is_error": False,
        "total_cost_usd": cost,
    }
    if session_id:
        event["session_id"] = session_id
    return event


class ScriptedEngine:
    """Fake engine replaying one script per invocation.

    Script steps:
        dict / other objects  yielded as engine events
        int / float           sleep that many seconds
        asyncio.Event         wait until the event is set
        BaseException         raised
        WAIT_FOR_CANCEL       block until the handle is cancelled
    """

    def __init__(self, *scripts: list[Any]) -> None:
        self.scripts = list(scripts)
        self.calls: list[tuple[str, EngineOptions]] = []
        self.handles: list[CancellationHandle] = []
        self.started = asyncio.Event()

    @property
    def prompts(self) -> list[str]:
        return [prompt for prompt, _ in self.calls]

    async def invoke(
        self,
        prompt: str,
        options: EngineOptions,
        handle: CancellationHandle,
    ) -> AsyncIterator[Any]:
        self.calls.append((prompt, options))
        self.handles.append(handle)
        self.started.set()
        script = self.scripts.pop(0) if self.scripts else [result_event()]
        for step in script:
            if handle.cancelled:
                raise TurnCancelledError("cancelled")
            if step is WAIT_FOR_CANCEL:
                await handle.wait()
                raise TurnCancelledError("cancelled")
            if isinstance(step, (int, float)):
                await asyncio.sleep(step)
            elif isinstance(step, asyncio.Event):
                await step.wait()
            elif isinstance(step, BaseException):
                raise step
            else:
                yield step
        if handle.cancelled:
            raise TurnCancelledError("cancelled")


class RecordingSink:
    """Collects delivered session events in order.

    With ``delay`` each delivery takes that long, like a slow Slack post.
    """

    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.events: list[SessionEvent] = []

    async def deliver(self, event: SessionEvent) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.events.append(event)

    @property
    def types(self) -> list[EventType]:
        return [event.type for event in self.events]

    def of_type(self, event_type: EventType) -> list[str]:
        return [event.content for event in self.events if event.type is event_type]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Poll until predicate() is true or fail after timeout."""
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)


async def settle(session) -> None:
    """Wait for the session's turn task (and any turn it hands off to)."""
    while session.turn_task is not None and not session.turn_task.done():
        await session.turn_task


@pytest.fixture
def fast_settings(tmp_path) -> Settings:
    """Settings with short pacing intervals for deterministic tests."""
    return Settings(
        _env_file=None,
        claude_work_dir=str(tmp_path),
        claude_continue=False,
        claude_skip_permissions=False,
        flush_delay_ms=50,
        tool_batch_window_ms=0,
        heartbeat_interval_s=0,
        slack_post_interval_s=0,
    )


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()

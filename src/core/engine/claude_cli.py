"""Claude Code CLI engine.

Runs ``claude -p <prompt> --output-format stream-json`` as a subprocess and
yields each JSON line as a raw event dict.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from src.core.engine.protocol import (
    CancellationHandle,
    EngineError,
    EngineOptions,
    TurnCancelledError,
)

logger = logging.getLogger(__name__)

STDOUT_LIMIT = 10 * 1024 * 1024
KILL_TIMEOUT = 5.0
MAX_DIAGNOSTIC_LINES = 20


def parse_stream_line(line: bytes | str) -> dict[str, Any] | None:
    """Decode one stream-json line.

    Args:
        line: Raw line from the CLI's stdout.

    Returns:
        The decoded event, or None for blank, non-JSON or non-object lines.
    """
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line:
        return None
    try:
        event = json.loads(line)
    except json.JSONDecodeError:
        return None
    return event if isinstance(event, dict) else None


class SubprocessTransport:
    """Owns the CLI process for a single invocation."""

    def __init__(self) -> None:
        self.process: asyncio.subprocess.Process | None = None

    async def start(self, cmd: list[str], *, cwd: str) -> asyncio.StreamReader:
        self.process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            stdin=asyncio.subprocess.DEVNULL,
            cwd=cwd,
            limit=STDOUT_LIMIT,
        )
        if self.process.stdout is None:
            raise EngineError("Subprocess stdout missing")
        return self.process.stdout

    async def wait(self) -> int:
        if not self.process:
            return 0
        await self.process.wait()
        return int(self.process.returncode or 0)

    def terminate(self) -> None:
        if self.process and self.process.returncode is None:
            try:
                self.process.terminate()
            except ProcessLookupError:
                pass

    async def terminate_and_kill(self, timeout: float = KILL_TIMEOUT) -> None:
        """Terminate the process, wait, then force-kill if still alive."""
        proc = self.process
        if not proc or proc.returncode is not None:
            return
        self.terminate()
        try:
            await asyncio.wait_for(proc.wait(), timeout=timeout)
        except (asyncio.TimeoutError, ProcessLookupError):
            logger.warning("Process %s did not exit after SIGTERM, sending SIGKILL", proc.pid)
            try:
                proc.kill()
            except ProcessLookupError:
                pass


class ClaudeCodeEngine:
    """Engine backed by the Claude Code CLI."""

    def __init__(self, binary: str = "claude") -> None:
        self.binary = binary

    def build_command(self, prompt: str, options: EngineOptions) -> list[str]:
        """Build the claude command line."""
        cmd = [
            self.binary,
            "-p", prompt,
            "--output-format", "stream-json",
            "--verbose",
        ]
        if options.resume_token:
            cmd.extend(["--resume", options.resume_token])
        elif options.continue_most_recent:
            cmd.append("--continue")
        if options.skip_approvals:
            cmd.extend(["--permission-mode", "bypassPermissions"])
        if options.model:
            cmd.extend(["--model", options.model])
        return cmd

    async def invoke(
        self,
        prompt: str,
        options: EngineOptions,
        handle: CancellationHandle,
    ) -> AsyncIterator[dict[str, Any]]:
        """Run one turn, yielding raw stream-json events."""
        if handle.cancelled:
            raise TurnCancelledError("Turn cancelled before start")

        transport = SubprocessTransport()
        cmd = self.build_command(prompt, options)
        try:
            stdout = await transport.start(cmd, cwd=options.cwd)
        except FileNotFoundError as e:
            raise EngineError(f"Claude CLI not found: {self.binary}") from e
        except OSError as e:
            raise EngineError(f"Failed to start Claude CLI: {e}") from e

        handle.add_callback(transport.terminate)
        saw_result = False
        non_json_lines: list[str] = []

        try:
            async for raw in stdout:
                event = parse_stream_line(raw)
                if event is None:
                    text = raw.decode("utf-8", errors="replace").strip()
                    if text and len(non_json_lines) < MAX_DIAGNOSTIC_LINES:
                        non_json_lines.append(text)
                    continue
                if event.get("type") == "result":
                    saw_result = True
                yield event

            returncode = await transport.wait()
        finally:
            await transport.terminate_and_kill()

        if handle.cancelled:
            raise TurnCancelledError("Turn cancelled")

        if returncode != 0 and not saw_result:
            detail = "\n".join(non_json_lines) or "no output"
            raise EngineError(f"Claude exited with code {returncode}: {detail}")

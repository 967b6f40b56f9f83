"""Message text for the Slack bridge.

Maps session events and command outcomes to Slack mrkdwn strings, with
an emoji per tool family for tool progress lines.
"""

from src.core.session import EventType, SessionEvent, SessionInfo
from src.utils.slack_formatter import escape_mrkdwn, format_for_slack

TOOL_EMOJI = {
    "bash": ":computer:",
    "read": ":page_facing_up:",
    "write": ":pencil2:",
    "edit": ":pencil2:",
    "grep": ":mag:",
    "glob": ":mag:",
    "web": ":globe_with_meridians:",
    "task": ":brain:",
    "todo": ":ballot_box_with_check:",
}
DEFAULT_TOOL_EMOJI = ":wrench:"

WAITING_TEXT = ":speech_balloon: _Waiting for your reply..._"
QUEUED_TEXT = (
    ":hourglass_flowing_sand: _Claude is still working. Your message is queued "
    "and will be sent when this turn finishes._"
)
ACCEPTED_TEXT = ":hourglass_flowing_sand: _Working on it..._"
SESSION_EXISTS_TEXT = (
    ":warning: Active session already running here. Type `!end` to close it first."
)
SESSION_ENDED_TEXT = ":octagonal_sign: Session ended."
NO_SESSION_TO_END_TEXT = "No active session here."
NO_SESSION_TEXT = "No active session. Start one with `!new <task>`"


def _get_tool_emoji(description: str) -> str:
    """Get emoji for a tool description line.

    Args:
        description: Line starting with the tool name, e.g. "Bash: `ls`".

    Returns:
        Slack emoji code for the tool, or :wrench: as default.
    """
    tool_name = description.split(":", 1)[0].lower()
    for key, emoji in TOOL_EMOJI.items():
        if key in tool_name:
            return emoji
    return DEFAULT_TOOL_EMOJI


def format_tool_lines(content: str) -> str:
    """Prefix every tool description line with its emoji."""
    return "\n".join(
        f"{_get_tool_emoji(line)} {line}" for line in content.splitlines() if line.strip()
    )


def format_event(event: SessionEvent) -> str:
    """Render a session event as Slack text.

    Args:
        event: Event emitted by a session.

    Returns:
        Slack mrkdwn text; empty when there is nothing to post.
    """
    if event.type is EventType.TEXT:
        return format_for_slack(event.content)
    if event.type is EventType.TOOL_USE:
        return format_tool_lines(event.content)
    if event.type is EventType.WAITING:
        return WAITING_TEXT
    if event.type is EventType.HEARTBEAT:
        detail = event.content or "Still working..."
        return f":hourglass_flowing_sand: _{detail}_"
    if event.type is EventType.ERROR:
        return f":x: *Error:* {event.content}"
    return ""


def format_start_banner(cwd: str | None, prompt: str | None) -> str:
    dir_label = f" in `{cwd}`" if cwd else ""
    task_label = f"\n> {escape_mrkdwn(prompt)}" if prompt else ""
    return f":rocket: *Starting session{dir_label}...*{task_label}"


def format_status(info: SessionInfo) -> str:
    state = "waiting for input" if info.waiting_for_input else "working"
    return (
        ":bar_chart: *Active session*\n"
        f"Started: {info.started_at.strftime('%Y-%m-%d %H:%M:%S')}\n"
        f"Messages: {info.message_count}\n"
        f"Working dir: `{info.cwd}`\n"
        f"State: {state}"
    )


def format_directory_not_found(path: str) -> str:
    return f":x: Directory not found: `{path}`"

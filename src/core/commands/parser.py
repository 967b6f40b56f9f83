"""Pure function-based parser for bridge commands and chat intents.

Explicit commands:
    !new [--dir <path>] [task]   start a session, optionally in a directory
    !end                         end the channel's session
    !status                      show the channel's session

Without an explicit command, plain messages are read as intents: any
message in a channel without a session starts one (a path mentioned in
the message becomes its working directory), and "end the session" /
"what's the status" style phrases act on a running one.
"""

import os
import re
from dataclasses import dataclass

COMMAND_RE = re.compile(r"^!(new|end|status)\b", re.IGNORECASE)
_NEW_RE = re.compile(r"^!new(?:\s+(.*))?$", re.IGNORECASE | re.DOTALL)
_DIR_FLAG_RE = re.compile(r"^--dir\s+(\S+)(?:\s+(.+))?$", re.DOTALL)

# "directory of ~/x", "working dir /x", "in ~/x", "with /x", "from ~/x"
_CONNECTOR_PATH_RE = re.compile(
    r"\b(?:(?:(?:working\s+)?(?:directory|dir|folder))\s+(?:of\s+)?|(?:in|with|from)\s+)"
    r"(~/\S+|/\S+)",
    re.IGNORECASE,
)
_BARE_PATH_RE = re.compile(r"(~/\S+|/(?![\s,.])\S+)")

_START_PREAMBLE_RE = re.compile(
    r"^(please\s+)?((start|create|open|launch|spin up|begin)\s+(a\s+)?(new\s+)?"
    r"(claude(\s+code)?\s+)?(session|instance)\s*(and\s+)?)",
    re.IGNORECASE,
)
_THEN_RE = re.compile(r"^\s*(then\s+)?", re.IGNORECASE)

# Requires "session" or "claude" to avoid false positives like "stop the server"
END_INTENT_RE = re.compile(
    r"\b(end|stop|kill|close|quit)\s+(the\s+)?(session|claude)\b", re.IGNORECASE
)
STATUS_INTENT_RE = re.compile(
    r"^!?status\??$"
    r"|^session\s+status\??$"
    r"|\bwhat(?:'s|\s+is)\s+(?:the\s+)?(?:session\s+)?status\b",
    re.IGNORECASE,
)


@dataclass
class NewSessionCommand:
    """Start a session.

    Attributes:
        cwd: Working directory override (home-expanded), or None.
        prompt: Initial task, or None to start idle.
    """

    cwd: str | None = None
    prompt: str | None = None


@dataclass
class EndSessionCommand:
    """End the channel's session."""


@dataclass
class StatusCommand:
    """Report the channel's session."""


BridgeCommand = NewSessionCommand | EndSessionCommand | StatusCommand


def _expand_home(path: str) -> str:
    return os.path.expanduser(path) if path.startswith("~") else path


def _squeeze(text: str) -> str:
    return re.sub(r"\s{2,}", " ", text).strip()


def is_command(text: str) -> bool:
    """Check whether text starts with an explicit bridge command."""
    return bool(COMMAND_RE.match(text.strip()))


def parse_command(text: str) -> BridgeCommand | None:
    """Parse an explicit bridge command.

    Args:
        text: Raw message text.

    Returns:
        The parsed command, or None if the text is not a (well-formed)
        bridge command.

    Examples:
        >>> parse_command("!new --dir /srv/app fix the login bug")
        NewSessionCommand(cwd='/srv/app', prompt='fix the login bug')

        >>> parse_command("!new")
        NewSessionCommand(cwd=None, prompt=None)

        >>> parse_command("!end")
        EndSessionCommand()

        >>> parse_command("hello") is None
        True
    """
    text = text.strip()

    match = _NEW_RE.match(text)
    if match:
        raw_args = (match.group(1) or "").strip()
        cwd = None
        dir_match = _DIR_FLAG_RE.match(raw_args)
        if dir_match:
            cwd = _expand_home(dir_match.group(1))
            raw_args = (dir_match.group(2) or "").strip()
        return NewSessionCommand(cwd=cwd, prompt=raw_args or None)

    lowered = text.lower()
    if lowered == "!end":
        return EndSessionCommand()
    if lowered == "!status":
        return StatusCommand()
    return None


def extract_path(text: str) -> tuple[str | None, str]:
    """Pull a directory path out of a natural-language message.

    Connector phrases ("in ~/repo", "working directory of /srv/app") are
    preferred over bare paths; the matched phrase is removed from the text.

    Args:
        text: Raw message text.

    Returns:
        Tuple of (home-expanded path or None, remaining text).

    Examples:
        >>> extract_path("fix the tests in /srv/app please")
        ('/srv/app', 'fix the tests please')

        >>> extract_path("just chat")
        (None, 'just chat')
    """
    for pattern in (_CONNECTOR_PATH_RE, _BARE_PATH_RE):
        match = pattern.search(text)
        if match:
            rest = _squeeze(text.replace(match.group(0), "", 1))
            return _expand_home(match.group(1)), rest
    return None, text


def strip_start_preamble(text: str) -> str | None:
    """Remove "start a new claude session and ..." style prefixes.

    Args:
        text: Message text with any path already removed.

    Returns:
        The task prompt, or None when nothing but the preamble was given.
    """
    prompt = _START_PREAMBLE_RE.sub("", text, count=1)
    prompt = _THEN_RE.sub("", prompt, count=1).strip()
    return prompt or None


def parse_start_request(text: str) -> NewSessionCommand:
    """Read a plain message sent to a channel without a session.

    Examples:
        >>> parse_start_request("start a new session in ~/proj and run the tests")
        NewSessionCommand(cwd='/home/me/proj', prompt='run the tests')
    """
    cwd, rest = extract_path(text)
    return NewSessionCommand(cwd=cwd, prompt=strip_start_preamble(rest))


def is_end_intent(text: str) -> bool:
    return bool(END_INTENT_RE.search(text))


def is_status_intent(text: str) -> bool:
    return bool(STATUS_INTENT_RE.search(text.strip()))

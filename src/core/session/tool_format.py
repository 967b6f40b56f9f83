"""Human-readable one-line descriptions of agent tool invocations."""

from typing import Any

MAX_TOOL_DETAIL_LEN = 100

# Input fields that best describe what a tool call does, in priority order
SALIENT_INPUT_KEYS = (
    "command",
    "file_path",
    "path",
    "pattern",
    "url",
    "query",
    "description",
    "prompt",
)


def _clean_label(value: object, *, max_len: int = MAX_TOOL_DETAIL_LEN) -> str | None:
    if not isinstance(value, str):
        return None
    s = " ".join(value.split())
    if not s:
        return None
    if len(s) > max_len:
        return s[: max_len - 3] + "..."
    return s


def salient_input(tool_input: Any) -> str | None:
    """Pick the most descriptive string field of a tool's input.

    Well-known keys win; otherwise the first non-empty string field in
    input order is used.

    Args:
        tool_input: The tool_use block's ``input`` value.

    Returns:
        The cleaned, length-bounded value, or None if no string field exists.
    """
    if not isinstance(tool_input, dict):
        return None
    for key in SALIENT_INPUT_KEYS:
        label = _clean_label(tool_input.get(key))
        if label:
            return label
    for value in tool_input.values():
        label = _clean_label(value)
        if label:
            return label
    return None


def describe_tool_use(block: dict[str, Any]) -> str:
    """Describe a ``tool_use`` content block in one line.

    Args:
        block: Assistant content block with ``name`` and ``input``.

    Returns:
        ``"Name: `detail`"``, or just the name when the input has no
        string field.

    Examples:
        >>> describe_tool_use({"name": "Bash", "input": {"command": "ls -la"}})
        'Bash: `ls -la`'

        >>> describe_tool_use({"name": "TodoWrite", "input": {"todos": []}})
        'TodoWrite'
    """
    name = str(block.get("name") or "unknown")
    detail = salient_input(block.get("input"))
    if detail:
        detail = detail.replace("`", "'")
        return f"{name}: `{detail}`"
    return name

# src/utils/slack_formatter.py
"""Convert Claude's Markdown output to Slack mrkdwn.

Slack supports only a subset of Markdown. Conversions applied:
- Code fences: ```lang -> ``` (Slack ignores the language)
- Bold: **text** -> *text*
- Headings: ## Heading -> *Heading* (Slack has no headings)
- Links: [text](url) -> <url|text>
- Horizontal rules: --- -> a box-drawing line
- Runs of 3+ newlines collapse to a single blank line

Fenced blocks and inline code are left untouched.
"""

import re

HORIZONTAL_RULE = "─────────────────"

_FENCE_RE = re.compile(r"```[\s\S]*?```")
_INLINE_CODE_RE = re.compile(r"`[^`\n]+`")
_PLACEHOLDER = "\x00CODE{}\x00"


def format_for_slack(text: str) -> str:
    """Convert Markdown text to Slack mrkdwn.

    Args:
        text: Markdown text as produced by the agent.

    Returns:
        Slack mrkdwn text, stripped of surrounding whitespace.
    """
    if not text:
        return ""

    protected: list[str] = []

    def protect(match: re.Match) -> str:
        protected.append(match.group(0))
        return _PLACEHOLDER.format(len(protected) - 1)

    # Unclosed fences (mid-stream output) only lose their language tag
    result = re.sub(r"```[\w+-]*\n", "```\n", text)
    result = _FENCE_RE.sub(protect, result)
    result = _INLINE_CODE_RE.sub(protect, result)

    result = re.sub(r"\[([^\]]+)\]\(([^)\s]+)\)", r"<\2|\1>", result)
    result = re.sub(r"^#{1,6}\s+(.+?)\s*#*$", r"*\1*", result, flags=re.MULTILINE)
    result = re.sub(r"\*\*(.+?)\*\*", r"*\1*", result)
    result = re.sub(r"__(.+?)__", r"*\1*", result)
    result = re.sub(r"^(?:-{3,}|\*{3,}|_{3,})$", HORIZONTAL_RULE, result, flags=re.MULTILINE)
    result = re.sub(r"\n{3,}", "\n\n", result)

    for i, code in enumerate(protected):
        result = result.replace(_PLACEHOLDER.format(i), code)

    return result.strip()


def escape_mrkdwn(text: str) -> str:
    """Escape the characters Slack treats as control sequences.

    Args:
        text: Text that may contain special characters.

    Returns:
        Text with &, < and > escaped.
    """
    text = text.replace("&", "&amp;")
    text = text.replace("<", "&lt;")
    text = text.replace(">", "&gt;")
    return text

"""Tests for tool invocation descriptions."""

from src.core.session.tool_format import MAX_TOOL_DETAIL_LEN, describe_tool_use, salient_input


class TestDescribeToolUse:
    """Test one-line tool descriptions."""

    def test_command(self):
        block = {"name": "Bash", "input": {"command": "npm test", "description": "Run tests"}}

        assert describe_tool_use(block) == "Bash: `npm test`"

    def test_file_path(self):
        block = {"name": "Edit", "input": {"file_path": "/repo/src/app.py", "old_string": "x"}}

        assert describe_tool_use(block) == "Edit: `/repo/src/app.py`"

    def test_priority_order(self):
        tool_input = {"prompt": "summarize", "url": "https://example.com", "pattern": "*.md"}

        assert salient_input(tool_input) == "*.md"

    def test_falls_back_to_first_string_field(self):
        block = {"name": "mcp__db__run", "input": {"limit": 10, "sql": "select 1"}}

        assert describe_tool_use(block) == "mcp__db__run: `select 1`"

    def test_no_string_input_gives_bare_name(self):
        assert describe_tool_use({"name": "TodoWrite", "input": {"todos": []}}) == "TodoWrite"
        assert describe_tool_use({"name": "Task"}) == "Task"

    def test_missing_name(self):
        assert describe_tool_use({"input": {"command": "ls"}}) == "unknown: `ls`"

    def test_long_detail_is_truncated(self):
        block = {"name": "Bash", "input": {"command": "echo " + "x" * 300}}

        detail = describe_tool_use(block)[len("Bash: `") : -1]

        assert len(detail) == MAX_TOOL_DETAIL_LEN
        assert detail.endswith("...")

    def test_whitespace_is_collapsed_and_backticks_replaced(self):
        block = {"name": "Bash", "input": {"command": "git log\n  --oneline `pwd`"}}

        assert describe_tool_use(block) == "Bash: `git log --oneline 'pwd'`"

    def test_blank_preferred_key_is_skipped(self):
        assert salient_input({"command": "   ", "path": "/srv"}) == "/srv"
        assert salient_input("not a dict") is None

"""Tests for settings and channel-tagged logging."""

import asyncio
import json
import logging

import pytest

from src.config import Settings
from src.utils.logging import (
    ChannelContextFilter,
    StructuredFormatter,
    configure_logging,
    get_channel_id,
    set_channel_id,
)


def _record(message: str = "hello") -> logging.LogRecord:
    return logging.LogRecord("src.test", logging.INFO, __file__, 1, message, None, None)


class TestSettings:
    """Test environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        for name in ("FLUSH_DELAY_MS", "HEARTBEAT_INTERVAL_S", "CLAUDE_WORK_DIR"):
            monkeypatch.delenv(name, raising=False)

        config = Settings(_env_file=None)

        assert config.flush_delay_ms == 1200
        assert config.tool_batch_window_ms == 0
        assert config.heartbeat_interval_s == 120.0
        assert config.claude_binary == "claude"

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("CLAUDE_WORK_DIR", str(tmp_path))
        monkeypatch.setenv("CLAUDE_CONTINUE", "true")
        monkeypatch.setenv("FLUSH_DELAY_MS", "500")

        config = Settings(_env_file=None)

        assert config.default_working_directory == str(tmp_path)
        assert config.claude_continue is True
        assert config.flush_delay_ms == 500

    def test_default_working_directory_falls_back_to_cwd(self, monkeypatch, tmp_path):
        monkeypatch.delenv("CLAUDE_WORK_DIR", raising=False)
        monkeypatch.chdir(tmp_path)

        assert Settings(_env_file=None).default_working_directory == str(tmp_path)


class TestChannelLogging:
    """Test channel correlation in log output."""

    @pytest.mark.asyncio
    async def test_channel_id_is_task_local(self):
        async def tagged(channel_id):
            set_channel_id(channel_id)
            await asyncio.sleep(0)
            return get_channel_id()

        results = await asyncio.gather(tagged("C1"), tagged("C2"))

        assert results == ["C1", "C2"]

    @pytest.mark.asyncio
    async def test_structured_formatter_includes_channel(self):
        async def format_in_channel():
            set_channel_id("C42")
            return json.loads(StructuredFormatter().format(_record()))

        data = await asyncio.create_task(format_in_channel())

        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["channel"] == "C42"

    def test_filter_marks_records_without_channel(self):
        record = _record()

        assert ChannelContextFilter().filter(record) is True
        assert record.channel == "-"

    def test_configure_logging(self):
        original_handlers = logging.root.handlers[:]
        original_level = logging.root.level
        try:
            configure_logging("debug", "json")

            assert logging.root.level == logging.DEBUG
            assert isinstance(logging.root.handlers[0].formatter, StructuredFormatter)
        finally:
            logging.root.handlers = original_handlers
            logging.root.setLevel(original_level)

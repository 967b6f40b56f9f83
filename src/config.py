# src/config.py
"""Application configuration using pydantic-settings.

Provides a centralized Settings class for all environment variables.
Claude flags keep the CLAUDE_* names used by existing deployments.
"""

import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    All settings are loaded from .env file and environment variables.
    Environment variables take precedence over .env file values.
    """

    # Slack Integration
    slack_bot_token: str = ""
    slack_app_token: str = ""

    # Claude Code engine
    claude_work_dir: str = ""  # Default cwd for new sessions
    claude_continue: bool = False  # Continue most recent conversation on new sessions
    claude_skip_permissions: bool = False  # Bypass all approval prompts
    claude_binary: str = "claude"
    claude_model: str = ""

    # Output pacing
    flush_delay_ms: int = 1200  # Quiet period before buffered text is posted
    tool_batch_window_ms: int = 0  # 0 disables tool batching
    heartbeat_interval_s: float = 120.0  # 0 disables heartbeats
    slack_post_interval_s: float = 1.0  # Minimum gap between posts per channel

    # Logging
    log_level: str = "INFO"
    log_format: str = "text"  # "text" or "json"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore unknown env vars
        case_sensitive=False,  # Allow case-insensitive env var names
    )

    @property
    def default_working_directory(self) -> str:
        """Get the working directory for sessions started without --dir.

        Returns:
            CLAUDE_WORK_DIR if set, otherwise the process working directory.
        """
        return self.claude_work_dir or os.getcwd()


# Singleton instance - import this in your code
settings = Settings()

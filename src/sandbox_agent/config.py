"""Configuration management for sandbox-agent."""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from sandbox_agent.errors import ConfigurationError

DEFAULT_ALLOWED_TOOLS = [
    "Read",
    "Write",
    "Edit",
    "Bash",
    "Grep",
    "Glob",
    "WebSearch",
    "WebFetch",
    "TodoWrite",
    "Task",
]


class Settings(BaseSettings):
    """Application settings.

    The sandbox launcher sets ``WORKSPACE_DIR``, ``CALLBACK_URL`` and
    ``RESUME_SESSION_ID`` without a prefix, so those three accept both forms.
    """

    model_config = SettingsConfigDict(
        env_prefix="SANDBOX_AGENT_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Sandbox
    workspace_dir: Path = Field(
        default_factory=Path.cwd,
        validation_alias=AliasChoices("SANDBOX_AGENT_WORKSPACE_DIR", "WORKSPACE_DIR", "workspace_dir"),
        description="Working directory the agent runs in",
    )
    callback_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SANDBOX_AGENT_CALLBACK_URL", "CALLBACK_URL", "callback_url"),
        description="Orchestrator endpoint notified when the session ends",
    )
    resume_session_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("SANDBOX_AGENT_RESUME_SESSION_ID", "RESUME_SESSION_ID", "resume_session_id"),
        description="Session to resume when process_start carries none",
    )

    # Execution engine
    engine_command: str = Field(default="claude", description="Agent CLI executable")
    max_turns: int = Field(default=50, description="Maximum agent turns per session")
    permission_mode: str = Field(default="bypassPermissions", description="Agent CLI permission mode")
    allowed_tools: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_TOOLS))

    # Completion
    flush_command: str = Field(default="sync", description="Command that flushes the workspace volume")
    flush_timeout_seconds: float = Field(default=10.0)
    callback_timeout_seconds: float = Field(default=30.0)

    # Client
    api_base: str = Field(default="http://localhost:3000", description="Orchestrator base URL")
    request_timeout_seconds: float = Field(default=30.0)
    poll_interval_seconds: float = Field(default=2.0)
    drain_limit: int = Field(default=10, description="Extra polls allowed after a terminal status")

    log_level: str = Field(default="INFO", description="Log level")

    @field_validator("callback_url", "resume_session_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def validate_client(self) -> None:
        if self.poll_interval_seconds <= 0:
            raise ConfigurationError("poll_interval_seconds must be positive")
        if self.drain_limit < 0:
            raise ConfigurationError("drain_limit must not be negative")


def get_settings(**overrides: object) -> Settings:
    """Build settings from environment, ``.env`` and explicit overrides."""

    return Settings(**overrides)  # type: ignore[arg-type]

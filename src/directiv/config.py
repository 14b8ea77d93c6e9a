"""Configuration management for Directiv."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Annotated
import os

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from .automation.terminal import TERMINAL_EMULATORS


class DirectivSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    log_level: str = Field(default="INFO", validation_alias="DIRECTIV_LOG_LEVEL")
    workspace_paths: Annotated[tuple[Path, ...], NoDecode] = Field(
        default=(), validation_alias="DIRECTIV_WORKSPACE_PATHS"
    )
    terminal: str = Field(default="ghostty", validation_alias="DIRECTIV_TERMINAL")
    editor: str = Field(default="code", validation_alias="DIRECTIV_EDITOR")
    agent_command: str = Field(default="claude", validation_alias="DIRECTIV_AGENT_COMMAND")
    skill: str | None = Field(default=None, validation_alias="DIRECTIV_SKILL")

    linear_api_key: str | None = Field(default=None, validation_alias="LINEAR_API_KEY")
    linear_team_ids: Annotated[tuple[str, ...], NoDecode] = Field(
        default=(), validation_alias="DIRECTIV_LINEAR_TEAMS"
    )
    started_status_name: str = Field(default="In Progress", validation_alias="DIRECTIV_STARTED_STATUS")
    github_token: str | None = Field(default=None, validation_alias="GITHUB_TOKEN")

    external_refresh_seconds: float = Field(default=60.0, validation_alias="DIRECTIV_EXTERNAL_REFRESH")
    local_refresh_seconds: float = Field(default=5.0, validation_alias="DIRECTIV_LOCAL_REFRESH")
    local_refresh_slow_seconds: float = Field(default=10.0, validation_alias="DIRECTIV_LOCAL_REFRESH_SLOW")
    ready_timeout_ms: int = Field(default=10_000, validation_alias="DIRECTIV_READY_TIMEOUT_MS")
    rate_limit_notice_seconds: float = Field(default=10.0, validation_alias="DIRECTIV_RATE_LIMIT_NOTICE")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "DIRECTIV_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("workspace_paths", mode="before")
    @classmethod
    def _parse_workspace_paths(cls, value):
        if value is None or value == "":
            return ()
        if isinstance(value, (list, tuple)):
            return tuple(Path(str(item)) for item in value)
        if isinstance(value, str):
            parts = [part.strip() for part in value.split(os.pathsep) if part.strip()]
            return tuple(Path(part) for part in parts)
        raise TypeError("DIRECTIV_WORKSPACE_PATHS must be a list of paths or a path-separated string")

    @field_validator("linear_team_ids", mode="before")
    @classmethod
    def _parse_team_ids(cls, value):
        if value is None or value == "":
            return ()
        if isinstance(value, str):
            return tuple(part.strip() for part in value.split(",") if part.strip())
        if isinstance(value, (list, tuple)):
            return tuple(str(item).strip() for item in value if str(item).strip())
        raise TypeError("DIRECTIV_LINEAR_TEAMS must be a comma-separated string or a list")

    @field_validator("terminal")
    @classmethod
    def _validate_terminal(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in TERMINAL_EMULATORS:
            raise ValueError(f"DIRECTIV_TERMINAL must be one of {', '.join(TERMINAL_EMULATORS)}")
        return normalized

    @field_validator(
        "external_refresh_seconds",
        "local_refresh_seconds",
        "local_refresh_slow_seconds",
        "rate_limit_notice_seconds",
    )
    @classmethod
    def _validate_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("Refresh intervals must be > 0")
        return value

    @field_validator("ready_timeout_ms")
    @classmethod
    def _validate_ready_timeout(cls, value: int) -> int:
        if value < 1:
            raise ValueError("DIRECTIV_READY_TIMEOUT_MS must be >= 1")
        return value


@lru_cache(maxsize=1)
def get_settings() -> DirectivSettings:
    """Return cached settings instance."""

    settings = DirectivSettings()
    settings.workspace_paths = tuple(path.expanduser().resolve() for path in settings.workspace_paths)
    return settings


__all__ = ["DirectivSettings", "get_settings"]

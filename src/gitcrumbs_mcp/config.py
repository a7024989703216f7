"""Configuration management for the gitcrumbs MCP client."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GitcrumbsSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    binary: str = Field(default="gitcrumbs", validation_alias="GITCRUMBS_PATH")
    repo_path: Path | None = Field(default=None, validation_alias="GITCRUMBS_REPO_PATH")
    snapshot_after: int = Field(default=90, validation_alias="GITCRUMBS_SNAPSHOT_AFTER")
    restore_purge_default: bool = Field(default=False, validation_alias="GITCRUMBS_RESTORE_PURGE")
    terminal_columns: int = Field(default=10000, validation_alias="GITCRUMBS_TERMINAL_COLUMNS")
    preferences_path: Path = Field(
        default=Path("~/.config/gitcrumbs-mcp/preferences.yaml"),
        validation_alias="GITCRUMBS_PREFERENCES_PATH",
    )
    required_version: str | None = Field(default=None, validation_alias="GITCRUMBS_REQUIRED_VERSION")
    log_level: str = Field(default="INFO", validation_alias="GITCRUMBS_LOG_LEVEL")

    @field_validator("binary")
    @classmethod
    def _normalize_binary(cls, value: str) -> str:
        normalized = value.strip()
        return normalized or "gitcrumbs"

    @field_validator("repo_path", "required_version", mode="before")
    @classmethod
    def _blank_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "GITCRUMBS_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("snapshot_after")
    @classmethod
    def _validate_snapshot_after(cls, value: int) -> int:
        if value < 1:
            raise ValueError("GITCRUMBS_SNAPSHOT_AFTER must be >= 1")
        return value

    @field_validator("terminal_columns")
    @classmethod
    def _validate_terminal_columns(cls, value: int) -> int:
        if value < 80:
            raise ValueError("GITCRUMBS_TERMINAL_COLUMNS must be >= 80")
        return value


@lru_cache(maxsize=1)
def get_settings() -> GitcrumbsSettings:
    """Return cached settings instance."""

    settings = GitcrumbsSettings()
    settings.preferences_path = settings.preferences_path.expanduser().resolve()
    if settings.repo_path is not None:
        settings.repo_path = settings.repo_path.expanduser().resolve()
    return settings


__all__ = ["GitcrumbsSettings", "get_settings"]

"""Models for persisted per-repository preferences."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator


class TrackingPreference(str, Enum):
    """Whether tracking should start on its own when a repository is opened."""

    AUTO = "auto"
    NEVER = "never"
    UNSET = "unset"


class PreferenceDocument(BaseModel):
    """On-disk shape of the preference file."""

    version: int = Field(default=1, description="Schema version of the preference file.")
    tracking: dict[str, TrackingPreference] = Field(
        default_factory=dict,
        description="Tracking preference keyed by repository key.",
    )
    repositories: dict[str, str] = Field(
        default_factory=dict,
        description="Absolute repository path for each key, kept for readability.",
    )

    @field_validator("tracking", "repositories", mode="before")
    @classmethod
    def _ensure_mapping(cls, value: Any):  # type: ignore[override]
        if value is None:
            return {}
        if isinstance(value, dict):
            return value
        raise ValueError("Preference sections must be mappings")


__all__ = ["PreferenceDocument", "TrackingPreference"]

"""Per-repository preference storage."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Any, Protocol

import yaml
from pydantic import ValidationError

from .models import PreferenceDocument, TrackingPreference

logger = logging.getLogger(__name__)


class PreferenceLoadError(RuntimeError):
    """Raised when the preference file cannot be read or validated."""


class PreferenceBackend(Protocol):
    """Persistence boundary for :class:`PreferenceStore`."""

    def load(self) -> dict[str, Any] | None:
        ...

    def save(self, document: dict[str, Any]) -> None:
        ...


class YamlPreferenceBackend:
    """Stores preferences in a YAML file."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any] | None:
        if not self._path.exists():
            return None
        try:
            document = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise PreferenceLoadError(f"Failed to parse YAML in {self._path}: {exc}") from exc
        if document is not None and not isinstance(document, dict):
            raise PreferenceLoadError(f"Preference file {self._path} must contain a mapping")
        return document

    def save(self, document: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(yaml.safe_dump(document, sort_keys=True), encoding="utf-8")


class InMemoryPreferenceBackend:
    """Keeps preferences for the lifetime of the process only."""

    def __init__(self, document: dict[str, Any] | None = None) -> None:
        self.document = document
        self.saves = 0

    def load(self) -> dict[str, Any] | None:
        return self.document

    def save(self, document: dict[str, Any]) -> None:
        self.document = document
        self.saves += 1


def repository_key(repo_path: str | Path) -> str:
    """Stable key for a repository: a short SHA-256 of its resolved absolute path."""

    resolved = str(Path(repo_path).expanduser().resolve())
    return hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:16]


class PreferenceStore:
    """Key-value store of :class:`TrackingPreference` per repository."""

    def __init__(self, backend: PreferenceBackend) -> None:
        self._backend = backend
        self._document: PreferenceDocument | None = None

    def _ensure_loaded(self) -> PreferenceDocument:
        if self._document is None:
            raw = self._backend.load()
            try:
                self._document = PreferenceDocument.model_validate(raw or {})
            except ValidationError as exc:
                raise PreferenceLoadError(f"Preference validation error: {exc}") from exc
        return self._document

    def get(self, repo_path: str | Path) -> TrackingPreference:
        document = self._ensure_loaded()
        return document.tracking.get(repository_key(repo_path), TrackingPreference.UNSET)

    def set(self, repo_path: str | Path, preference: TrackingPreference) -> None:
        document = self._ensure_loaded()
        key = repository_key(repo_path)
        if preference is TrackingPreference.UNSET:
            document.tracking.pop(key, None)
            document.repositories.pop(key, None)
        else:
            document.tracking[key] = preference
            document.repositories[key] = str(Path(repo_path).expanduser().resolve())
        self._backend.save(document.model_dump(mode="json"))
        logger.debug("Tracking preference saved", extra={"repo_key": key, "preference": preference.value})


__all__ = [
    "InMemoryPreferenceBackend",
    "PreferenceBackend",
    "PreferenceLoadError",
    "PreferenceStore",
    "YamlPreferenceBackend",
    "repository_key",
]

"""Per-repository preference models and storage exports."""

from .models import PreferenceDocument, TrackingPreference
from .store import (
    InMemoryPreferenceBackend,
    PreferenceBackend,
    PreferenceLoadError,
    PreferenceStore,
    YamlPreferenceBackend,
    repository_key,
)

__all__ = [
    "InMemoryPreferenceBackend",
    "PreferenceBackend",
    "PreferenceDocument",
    "PreferenceLoadError",
    "PreferenceStore",
    "TrackingPreference",
    "YamlPreferenceBackend",
    "repository_key",
]

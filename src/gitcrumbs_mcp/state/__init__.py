"""Timeline and diff state owned by a gitcrumbs session."""

from .diff import DiffState
from .timeline import TimelineState

__all__ = ["DiffState", "TimelineState"]

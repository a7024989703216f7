"""Data models for snapshots, diffs and the timeline view."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Union


class ChangeKind(str, Enum):
    ADDED = "A"
    MODIFIED = "M"
    DELETED = "D"

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]

    @classmethod
    def from_category(cls, category: str) -> "ChangeKind | None":
        """Map a diff-table category cell (``Added``/``Modified``/``Deleted``) to a kind."""

        return _CATEGORIES.get(category.strip().lower())


_KIND_LABELS = {
    ChangeKind.ADDED: "added",
    ChangeKind.MODIFIED: "modified",
    ChangeKind.DELETED: "deleted",
}
_CATEGORIES = {"added": ChangeKind.ADDED, "modified": ChangeKind.MODIFIED, "deleted": ChangeKind.DELETED}


@dataclass(frozen=True, slots=True)
class Snapshot:
    id: int
    created_text: str = ""
    created_at: datetime | None = None
    label: str | None = None
    branch: str | None = None
    summary: str | None = None
    restored_from_id: int | None = None

    @property
    def display_name(self) -> str:
        return self.label or f"#{self.id}"

    @property
    def identifier(self) -> str:
        """The handle gitcrumbs accepts for this snapshot: its label if set, else its id."""

        return self.label or str(self.id)

    def with_label(self, label: str | None) -> "Snapshot":
        return replace(self, label=label)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "created_text": self.created_text,
            "branch": self.branch,
            "summary": self.summary,
            "restored_from_id": self.restored_from_id,
        }


@dataclass(frozen=True, slots=True)
class DiffChange:
    path: str
    kind: ChangeKind

    def to_dict(self) -> dict[str, str]:
        return {"path": self.path, "kind": self.kind.label}


@dataclass(frozen=True, slots=True)
class TimelineView:
    """Published state of the timeline: snapshots newest first plus the cursor."""

    snapshots: tuple[Snapshot, ...] = field(default_factory=tuple)
    current_id: int | None = None

    @property
    def current(self) -> Snapshot | None:
        if self.current_id is None:
            return None
        return self.find(self.current_id)

    def find(self, snapshot_id: int) -> Snapshot | None:
        for snapshot in self.snapshots:
            if snapshot.id == snapshot_id:
                return snapshot
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "current_id": self.current_id,
            "snapshots": [snapshot.to_dict() for snapshot in self.snapshots],
        }


@dataclass(frozen=True, slots=True)
class RawId:
    value: int


@dataclass(frozen=True, slots=True)
class Reference:
    """An object that carries a snapshot id under one of the accepted field names."""

    snapshot_id: int | None = None
    id: int | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Reference":
        snapshot_id = data.get("snapshot_id", data.get("snapshotId"))
        return cls(
            snapshot_id=snapshot_id if _is_id(snapshot_id) else None,
            id=data.get("id") if _is_id(data.get("id")) else None,
        )


SnapshotRef = Union[RawId, Reference]


def _is_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0


def coerce_snapshot_id(ref: SnapshotRef | Snapshot | int | None) -> int | None:
    """Resolve any accepted snapshot reference to an id, or ``None``."""

    if isinstance(ref, RawId):
        return ref.value if _is_id(ref.value) else None
    if isinstance(ref, Reference):
        if _is_id(ref.snapshot_id):
            return ref.snapshot_id
        return ref.id if _is_id(ref.id) else None
    if isinstance(ref, Snapshot):
        return ref.id
    if _is_id(ref):
        return ref  # type: ignore[return-value]
    return None


__all__ = [
    "ChangeKind",
    "DiffChange",
    "RawId",
    "Reference",
    "Snapshot",
    "SnapshotRef",
    "TimelineView",
    "coerce_snapshot_id",
]

"""Background tracking process supervision."""

from .policy import Confirm, StartupOutcome, apply_startup_policy, decide_tracking
from .supervisor import SNAPSHOT_SENTINEL, SnapshotCreated, TrackState, TrackSupervisor

__all__ = [
    "Confirm",
    "SNAPSHOT_SENTINEL",
    "SnapshotCreated",
    "StartupOutcome",
    "TrackState",
    "TrackSupervisor",
    "apply_startup_policy",
    "decide_tracking",
]

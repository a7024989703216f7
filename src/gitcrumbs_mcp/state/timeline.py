"""Timeline state reconciled from ``gitcrumbs timeline`` and ``gitcrumbs status``."""

from __future__ import annotations

import logging
from pathlib import Path

from ..cli.runner import CommandRunner
from ..events import EventEmitter
from ..models import Snapshot, TimelineView
from ..parsing import parse_cursor_id, parse_snapshot_table

logger = logging.getLogger(__name__)


class TimelineState:
    """Known snapshots (newest first) and the cursor position.

    ``reconcile`` replaces the whole view on every call. When reconciles
    overlap, only the most recently started one publishes; older results are
    dropped.
    """

    def __init__(self) -> None:
        self._view = TimelineView()
        self._generation = 0
        self.changed: EventEmitter[TimelineView] = EventEmitter("timeline.changed")

    @property
    def view(self) -> TimelineView:
        return self._view

    @property
    def snapshots(self) -> tuple[Snapshot, ...]:
        return self._view.snapshots

    @property
    def current_id(self) -> int | None:
        return self._view.current_id

    async def reconcile(self, runner: CommandRunner, repo_path: str | Path | None) -> TimelineView:
        self._generation += 1
        generation = self._generation
        try:
            view = await self._load(runner, repo_path)
        except Exception:
            logger.exception("Timeline refresh failed", extra={"repo_path": str(repo_path)})
            view = TimelineView()

        if generation != self._generation:
            logger.debug("Dropping superseded timeline refresh", extra={"generation": generation})
            return self._view

        self._view = view
        self.changed.emit(view)
        return view

    async def _load(self, runner: CommandRunner, repo_path: str | Path | None) -> TimelineView:
        if not repo_path:
            return TimelineView()

        listing = await runner.run(["timeline"], repo_path)
        if not listing.ok:
            logger.warning(
                "gitcrumbs timeline failed",
                extra={"returncode": listing.returncode, "stderr": listing.stderr.strip()[:400]},
            )
            return TimelineView()
        snapshots = parse_snapshot_table(listing.stdout)

        status = await runner.run(["status"], repo_path)
        current_id = parse_cursor_id(status.stdout)

        snapshots.sort(key=lambda snapshot: snapshot.id, reverse=True)
        # The list and the status are separate calls; a cursor the list has not seen yet is dropped.
        if current_id is not None and all(snapshot.id != current_id for snapshot in snapshots):
            current_id = None
        return TimelineView(snapshots=tuple(snapshots), current_id=current_id)


__all__ = ["TimelineState"]

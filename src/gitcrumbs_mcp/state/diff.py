"""Diff state between two user-selected snapshots."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from pathlib import Path

from ..cli.runner import CommandFailedError, CommandResult, CommandRunner, RepositoryNotConfiguredError
from ..events import EventEmitter
from ..files import build_path_candidates
from ..models import ChangeKind, DiffChange, Snapshot, SnapshotRef, coerce_snapshot_id
from ..parsing import parse_diff_table

logger = logging.getLogger(__name__)

RepoPathProvider = Callable[[], "str | Path | None"]


class DiffState:
    """Selected pair (A, B) and the categorized changes between them.

    ``set_a``/``set_b`` schedule a reload on the running loop. A reload for a
    pair that is already loading is absorbed, and a result is only applied if
    its request is still the active one when it arrives.
    """

    def __init__(self, runner: CommandRunner, repo_path: RepoPathProvider) -> None:
        self._runner = runner
        self._repo_path = repo_path
        self.a: int | None = None
        self.b: int | None = None
        self.loading = False
        self.load_key: str | None = None
        self._changes: list[DiffChange] = []
        self._request = 0
        self._loading_task: asyncio.Task[tuple[DiffChange, ...]] | None = None
        self._tasks: set[asyncio.Task[tuple[DiffChange, ...]]] = set()
        self.changed: EventEmitter[DiffState] = EventEmitter("diff.changed")
        self.errors: EventEmitter[CommandFailedError] = EventEmitter("diff.errors")

    @property
    def changes(self) -> tuple[DiffChange, ...]:
        return tuple(self._changes)

    @property
    def pair(self) -> tuple[int | None, int | None]:
        return self.a, self.b

    def count(self, kind: ChangeKind) -> int:
        return sum(1 for change in self._changes if change.kind is kind)

    def changes_of(self, kind: ChangeKind) -> list[DiffChange]:
        return [change for change in self._changes if change.kind is kind]

    def set_a(self, ref: SnapshotRef | Snapshot | int | None) -> asyncio.Task[tuple[DiffChange, ...]]:
        self.a = coerce_snapshot_id(ref)
        return self._schedule_reload()

    def set_b(self, ref: SnapshotRef | Snapshot | int | None) -> asyncio.Task[tuple[DiffChange, ...]]:
        self.b = coerce_snapshot_id(ref)
        return self._schedule_reload()

    def clear(self) -> None:
        self.a = None
        self.b = None
        self._changes = []
        self.load_key = None
        self.loading = False
        self._request += 1
        self.changed.emit(self)

    async def wait_idle(self) -> None:
        """Wait for reloads scheduled by ``set_a``/``set_b`` to settle."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def reload(self) -> tuple[DiffChange, ...]:
        repo = self._repo_path()
        if self.a is None or self.b is None or not repo:
            self._changes = []
            self.load_key = None
            self.loading = False
            self._request += 1
            self.changed.emit(self)
            return ()

        key = f"{self.a}:{self.b}"
        if self.loading and self.load_key == key and self._loading_task is not None:
            return await asyncio.shield(self._loading_task)

        self._request += 1
        request = self._request
        a, b = self.a, self.b
        self.loading = True
        self.load_key = key
        self._changes = []
        self.changed.emit(self)

        self._loading_task = asyncio.get_running_loop().create_task(self._load(request, a, b, key, repo))
        return await self._loading_task

    async def _load(self, request: int, a: int, b: int, key: str, repo: "str | Path") -> tuple[DiffChange, ...]:
        try:
            result = await self._runner.run(["diff", str(a), str(b), "--all"], repo)
        except Exception:
            if request == self._request:
                self.loading = False
                self.changed.emit(self)
            raise

        if request != self._request:
            logger.debug("Dropping diff for superseded selection", extra={"pair": key})
            return tuple(self._changes)

        self.loading = False
        if not result.ok:
            self._changes = []
            error = CommandFailedError(f"gitcrumbs diff {a} {b} failed.", result)
            self.changed.emit(self)
            self.errors.emit(error)
            raise error

        self._changes = parse_diff_table(result.stdout)
        self.changed.emit(self)
        return tuple(self._changes)

    async def file_patch(self, rel_path: str) -> CommandResult:
        """Return the unified patch for one file between A and B.

        Path spellings are tried in turn; the first successful result wins,
        otherwise the last result is returned for the caller to show.
        """

        if self.a is None or self.b is None:
            raise ValueError("Select Snapshot A and B first.")
        repo = self._repo_path()
        if not repo:
            raise RepositoryNotConfiguredError("Open a repository first.")

        result: CommandResult | None = None
        for candidate in build_path_candidates(rel_path, repo):
            result = await self._runner.run(["diff", str(self.a), str(self.b), "-f", candidate], repo)
            if result.ok:
                return result
        if result is None:
            raise ValueError("Could not determine file path to diff.")
        return result

    def _schedule_reload(self) -> asyncio.Task[tuple[DiffChange, ...]]:
        task = asyncio.get_running_loop().create_task(self.reload())
        self._tasks.add(task)
        task.add_done_callback(self._reload_finished)
        return task

    def _reload_finished(self, task: asyncio.Task[tuple[DiffChange, ...]]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.warning("Diff reload failed: %s", error)


__all__ = ["DiffState"]

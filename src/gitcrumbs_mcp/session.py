"""The coordinating context that ties runner, state and tracking together."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from .cli.runner import (
    CommandFailedError,
    CommandResult,
    CommandRunner,
    RepositoryNotConfiguredError,
    parse_version,
)
from .config import GitcrumbsSettings
from .files import FilePair, write_file_pair
from .models import Snapshot, SnapshotRef, TimelineView, coerce_snapshot_id
from .preferences import PreferenceStore, TrackingPreference, YamlPreferenceBackend
from .repository import repo_display_name
from .state import DiffState, TimelineState
from .tracking import Confirm, SnapshotCreated, StartupOutcome, TrackSupervisor, apply_startup_policy

logger = logging.getLogger(__name__)


class GitcrumbsSession:
    """One repository context: a timeline, a diff selection and a tracker.

    User actions that change the repository (snapshot, restore, next,
    previous, rename) raise :class:`CommandFailedError` on a nonzero exit and
    refresh the timeline on success.
    """

    def __init__(
        self,
        runner: CommandRunner,
        preferences: PreferenceStore,
        *,
        repo_path: str | Path | None = None,
        snapshot_after: int = 90,
        restore_purge_default: bool = False,
    ) -> None:
        self.runner = runner
        self.preferences = preferences
        self._repo_path = str(Path(repo_path).expanduser()) if repo_path else None
        self._restore_purge_default = restore_purge_default
        self.timeline = TimelineState()
        self.diff = DiffState(runner, lambda: self._repo_path)
        self.supervisor = TrackSupervisor(runner, lambda: self._repo_path, snapshot_after=snapshot_after)
        self._refreshes: set[asyncio.Task[TimelineView]] = set()
        self._unsubscribe = self.supervisor.snapshot_created.subscribe(self._on_snapshot_created)

    @classmethod
    def from_settings(
        cls,
        settings: GitcrumbsSettings,
        *,
        runner: CommandRunner | None = None,
        preferences: PreferenceStore | None = None,
        repo_path: str | Path | None = None,
    ) -> "GitcrumbsSession":
        return cls(
            runner or CommandRunner(settings.binary, columns=settings.terminal_columns),
            preferences or PreferenceStore(YamlPreferenceBackend(settings.preferences_path)),
            repo_path=repo_path or settings.repo_path,
            snapshot_after=settings.snapshot_after,
            restore_purge_default=settings.restore_purge_default,
        )

    @property
    def repo_path(self) -> str | None:
        return self._repo_path

    @property
    def repo_name(self) -> str:
        return repo_display_name(self._repo_path)

    def _require_repo(self) -> str:
        if not self._repo_path:
            raise RepositoryNotConfiguredError("Open a repository first.")
        return self._repo_path

    async def refresh(self) -> TimelineView:
        return await self.timeline.reconcile(self.runner, self._repo_path)

    def _on_snapshot_created(self, event: SnapshotCreated) -> None:
        logger.info("Tracker created a snapshot", extra={"snapshot_id": event.snapshot_id})
        task = asyncio.get_running_loop().create_task(self.refresh())
        self._refreshes.add(task)
        task.add_done_callback(self._refreshes.discard)

    async def _run_action(self, args: list[str], failure_message: str) -> CommandResult:
        repo = self._require_repo()
        result = await self.runner.run(args, repo)
        if not result.ok:
            raise CommandFailedError(failure_message, result)
        await self.refresh()
        return result

    async def snapshot_now(self) -> CommandResult:
        return await self._run_action(["snapshot"], "Failed to create snapshot.")

    async def restore(self, ref: SnapshotRef | Snapshot | int, *, purge: bool | None = None) -> CommandResult:
        snapshot_id = coerce_snapshot_id(ref)
        if snapshot_id is None:
            raise ValueError("A snapshot id is required to restore.")
        if purge is None:
            purge = self._restore_purge_default
        args = ["restore", str(snapshot_id), "--purge" if purge else "--no-purge"]
        return await self._run_action(args, f"Failed to restore snapshot {snapshot_id}.")

    async def next(self) -> CommandResult:
        return await self._run_action(["next"], "Failed to move to the next snapshot.")

    async def previous(self) -> CommandResult:
        return await self._run_action(["previous"], "Failed to move to the previous snapshot.")

    async def rename(self, target: SnapshotRef | Snapshot | int | str, new_label: str) -> CommandResult:
        """Relabel a snapshot addressed by id, label or snapshot object."""

        label = new_label.strip()
        if not label:
            raise ValueError("Label cannot be empty")
        if isinstance(target, str):
            identifier = target.strip()
        elif isinstance(target, Snapshot):
            identifier = target.identifier
        else:
            snapshot_id = coerce_snapshot_id(target)
            identifier = str(snapshot_id) if snapshot_id is not None else ""
        if not identifier:
            raise ValueError("A snapshot id or label is required to rename.")
        return await self._run_action(["rename", identifier, label], "Failed to rename snapshot.")

    async def open_file_pair(self, rel_path: str, a: int | None = None, b: int | None = None) -> FilePair:
        """Extract ``rel_path`` at A and B (defaulting to the diff selection) for a side-by-side view."""

        repo = self._require_repo()
        if a is None or b is None:
            a, b = self.diff.pair
        if a is None or b is None:
            raise ValueError("Select Snapshot A and B first.")
        if not rel_path.strip():
            raise ValueError("Could not determine file path to diff.")
        return await write_file_pair(self.runner, repo, a, b, rel_path)

    async def start_tracking(self, *, remember: bool = True) -> bool:
        """Start tracking; an explicit request records ``auto`` for this repository."""

        repo = self._require_repo()
        if remember:
            self.preferences.set(repo, TrackingPreference.AUTO)
        return await self.supervisor.start()

    def stop_tracking(self, *, remember: bool = True) -> bool:
        """Stop tracking; an explicit request records ``never`` for this repository."""

        if remember and self._repo_path:
            self.preferences.set(self._repo_path, TrackingPreference.NEVER)
        return self.supervisor.stop()

    async def startup(self, *, confirm: Confirm | None = None) -> StartupOutcome:
        outcome = await apply_startup_policy(
            self.runner, self.supervisor, self.preferences, self._repo_path, confirm=confirm
        )
        await self.refresh()
        return outcome

    async def select_repository(
        self,
        repo_path: str | Path,
        *,
        confirm: Confirm | None = None,
        init_git_repo: bool = False,
    ) -> StartupOutcome:
        """Switch to another repository, stopping the tracker of the current one first."""

        if self.supervisor.is_running:
            logger.info(
                "Stopping the tracker before switching repository",
                extra={"repo_path": str(repo_path)},
            )
            self.supervisor.stop()
        await self.supervisor.wait_closed()

        self._repo_path = str(Path(repo_path).expanduser().resolve())
        self.diff.clear()
        try:
            outcome = await apply_startup_policy(
                self.runner,
                self.supervisor,
                self.preferences,
                self._repo_path,
                confirm=confirm,
                init_git_repo=init_git_repo,
            )
        finally:
            await self.refresh()
        return outcome

    async def cli_version(self) -> str | None:
        result = await self.runner.version(self._repo_path or Path.cwd())
        if not result.ok:
            return None
        return parse_version(result.stdout)

    async def aclose(self) -> None:
        """Stop tracking without touching preferences and settle pending refreshes."""

        self._unsubscribe()
        await self.supervisor.aclose()
        await self.diff.wait_idle()
        if self._refreshes:
            await asyncio.gather(*list(self._refreshes), return_exceptions=True)


__all__ = ["GitcrumbsSession"]

"""Tool registration for the gitcrumbs MCP server."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from fastmcp import FastMCP

from ..cli.runner import CommandResult
from ..models import ChangeKind, RawId
from ..session import GitcrumbsSession
from ..state import DiffState

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 2000


@dataclass(slots=True)
class ToolHandles:
    timeline: Any
    snapshot_now: Any
    restore_snapshot: Any
    next_snapshot: Any
    previous_snapshot: Any
    rename_snapshot: Any
    select_diff_a: Any
    select_diff_b: Any
    clear_diff_selection: Any
    diff_changes: Any
    file_patch: Any
    open_file_pair: Any
    start_tracking: Any
    stop_tracking: Any
    tracking_status: Any
    select_repository: Any


def _action_summary(result: CommandResult) -> dict[str, Any]:
    return {
        "returncode": result.returncode,
        "output_preview": result.stdout[:_PREVIEW_CHARS],
    }


def _diff_summary(diff: DiffState, kind: ChangeKind | None = None) -> dict[str, Any]:
    changes = diff.changes_of(kind) if kind is not None else list(diff.changes)
    return {
        "a": diff.a,
        "b": diff.b,
        "loading": diff.loading,
        "counts": {item.label: diff.count(item) for item in ChangeKind},
        "changes": [change.to_dict() for change in changes],
    }


def _parse_kind(kind: str | None) -> ChangeKind | None:
    if kind is None or not kind.strip():
        return None
    normalized = kind.strip().lower()
    for item in ChangeKind:
        if normalized in (item.label, item.value.lower()):
            return item
    raise ValueError(f"Unknown change kind '{kind}'; expected added, modified or deleted")


def register_tools(server: FastMCP, *, session: GitcrumbsSession) -> ToolHandles:
    """Register the gitcrumbs MCP tools on the server."""

    async def _timeline(refresh: bool = True) -> dict[str, Any]:
        """Return the snapshot timeline, newest first, with the cursor snapshot."""

        view = await session.refresh() if refresh else session.timeline.view
        return {
            "repository": session.repo_path,
            "repository_name": session.repo_name,
            **view.to_dict(),
        }

    async def _snapshot_now() -> dict[str, Any]:
        result = await session.snapshot_now()
        logger.info("Snapshot requested", extra={"repo_path": session.repo_path})
        return {**_action_summary(result), "current_id": session.timeline.current_id}

    async def _restore_snapshot(snapshot_id: int, purge: bool | None = None) -> dict[str, Any]:
        """Restore the working tree to ``snapshot_id``; ``purge`` removes untracked files."""

        result = await session.restore(RawId(snapshot_id), purge=purge)
        logger.info("Snapshot restored", extra={"snapshot_id": snapshot_id, "purge": purge})
        return {**_action_summary(result), "current_id": session.timeline.current_id}

    async def _next_snapshot() -> dict[str, Any]:
        result = await session.next()
        return {**_action_summary(result), "current_id": session.timeline.current_id}

    async def _previous_snapshot() -> dict[str, Any]:
        result = await session.previous()
        return {**_action_summary(result), "current_id": session.timeline.current_id}

    async def _rename_snapshot(target: str, new_label: str) -> dict[str, Any]:
        """Relabel the snapshot addressed by ``target`` (an id or an existing label)."""

        result = await session.rename(target, new_label)
        return {**_action_summary(result), "label": new_label.strip()}

    tool_timeline = server.tool(
        name="timeline",
        description=(
            "List gitcrumbs snapshots for the active repository, newest first, including "
            "labels, branches, summaries and which snapshot the working tree is at."
        ),
    )(_timeline)

    tool_snapshot = server.tool(
        name="snapshot_now",
        description="Create a gitcrumbs snapshot of the working tree immediately.",
    )(_snapshot_now)

    tool_restore = server.tool(
        name="restore_snapshot",
        description=(
            "Restore the working tree to a snapshot. Set purge to delete files that are "
            "not part of the snapshot; omit it to use the configured default."
        ),
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Restoring overwrites uncommitted changes in the working tree",
            }
        },
    )(_restore_snapshot)

    tool_next = server.tool(
        name="next_snapshot",
        description="Move the working tree forward to the next snapshot in the timeline.",
    )(_next_snapshot)

    tool_previous = server.tool(
        name="previous_snapshot",
        description="Move the working tree back to the previous snapshot in the timeline.",
    )(_previous_snapshot)

    tool_rename = server.tool(
        name="rename_snapshot",
        description="Set a new label on a snapshot addressed by id or by its current label.",
    )(_rename_snapshot)

    async def _select_diff_a(snapshot_id: int) -> dict[str, Any]:
        """Choose snapshot A of the diff pair and load changes when B is set."""

        await session.diff.set_a(RawId(snapshot_id))
        return _diff_summary(session.diff)

    async def _select_diff_b(snapshot_id: int) -> dict[str, Any]:
        await session.diff.set_b(RawId(snapshot_id))
        return _diff_summary(session.diff)

    def _clear_diff_selection() -> dict[str, Any]:
        session.diff.clear()
        return _diff_summary(session.diff)

    async def _diff_changes(kind: str | None = None, reload: bool = False) -> dict[str, Any]:
        """Return changed files between A and B, optionally filtered by kind."""

        parsed = _parse_kind(kind)
        if reload:
            await session.diff.reload()
        else:
            await session.diff.wait_idle()
        return _diff_summary(session.diff, parsed)

    async def _file_patch(path: str) -> dict[str, Any]:
        result = await session.diff.file_patch(path)
        return {
            "path": path,
            "a": session.diff.a,
            "b": session.diff.b,
            "returncode": result.returncode,
            "patch": result.stdout,
            "stderr": result.stderr,
        }

    async def _open_file_pair(path: str, a: int | None = None, b: int | None = None) -> dict[str, Any]:
        """Write the file as of A and B to disk for an external side-by-side viewer."""

        pair = await session.open_file_pair(path, a, b)
        return {"left": str(pair.left), "right": str(pair.right), "title": pair.title}

    tool_select_a = server.tool(
        name="select_diff_a",
        description="Select snapshot A for comparison. Changes load once both A and B are set.",
    )(_select_diff_a)

    tool_select_b = server.tool(
        name="select_diff_b",
        description="Select snapshot B for comparison. Changes load once both A and B are set.",
    )(_select_diff_b)

    tool_clear = server.tool(
        name="clear_diff_selection",
        description="Clear the selected A/B snapshots and the loaded changes.",
    )(_clear_diff_selection)

    tool_diff = server.tool(
        name="diff_changes",
        description=(
            "List files added, modified or deleted between snapshot A and B. Pass kind "
            "to filter and reload to run the diff again."
        ),
    )(_diff_changes)

    tool_patch = server.tool(
        name="file_patch",
        description="Show the unified patch for one file between snapshot A and B.",
    )(_file_patch)

    tool_pair = server.tool(
        name="open_file_pair",
        description=(
            "Extract a file as of snapshot A and B into the repository's .git/gitcrumbs "
            "folder and return both paths for a side-by-side comparison."
        ),
    )(_open_file_pair)

    def _tracking_status() -> dict[str, Any]:
        repo = session.repo_path
        return {
            "repository": repo,
            "state": session.supervisor.state.value,
            "running": session.supervisor.is_running,
            "snapshot_after": session.supervisor.snapshot_after,
            "preference": session.preferences.get(repo).value if repo else None,
        }

    async def _start_tracking() -> dict[str, Any]:
        started = await session.start_tracking()
        return {"started": started, **_tracking_status()}

    def _stop_tracking() -> dict[str, Any]:
        stopped = session.stop_tracking()
        return {"stopped": stopped, **_tracking_status()}

    async def _select_repository(
        path: str,
        init_git: bool = False,
        track: bool | None = None,
    ) -> dict[str, Any]:
        """Point the server at another repository.

        ``track`` answers the start-tracking question for repositories without a
        stored preference; leaving it unset defers the decision.
        """

        async def _confirm(_message: str) -> bool | None:
            return track

        outcome = await session.select_repository(path, confirm=_confirm, init_git_repo=init_git)
        return {
            "outcome": outcome.value,
            "repository": session.repo_path,
            "snapshots": len(session.timeline.snapshots),
            "tracking": session.supervisor.is_running,
        }

    tool_start = server.tool(
        name="start_tracking",
        description=(
            "Start background snapshotting for the active repository and remember the "
            "choice for future sessions."
        ),
    )(_start_tracking)

    tool_stop = server.tool(
        name="stop_tracking",
        description="Stop background snapshotting and remember the choice for future sessions.",
    )(_stop_tracking)

    tool_status = server.tool(
        name="tracking_status",
        description="Report whether background tracking runs for the active repository.",
    )(_tracking_status)

    tool_select_repo = server.tool(
        name="select_repository",
        description=(
            "Switch to another repository folder. gitcrumbs is initialised there if needed; "
            "set init_git to create a git repository first."
        ),
    )(_select_repository)

    return ToolHandles(
        timeline=tool_timeline,
        snapshot_now=tool_snapshot,
        restore_snapshot=tool_restore,
        next_snapshot=tool_next,
        previous_snapshot=tool_previous,
        rename_snapshot=tool_rename,
        select_diff_a=tool_select_a,
        select_diff_b=tool_select_b,
        clear_diff_selection=tool_clear,
        diff_changes=tool_diff,
        file_patch=tool_patch,
        open_file_pair=tool_pair,
        start_tracking=tool_start,
        stop_tracking=tool_stop,
        tracking_status=tool_status,
        select_repository=tool_select_repo,
    )


__all__ = ["register_tools", "ToolHandles"]

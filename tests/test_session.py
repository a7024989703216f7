from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from gitcrumbs_mcp.cli.runner import (
    CommandFailedError,
    CommandResult,
    FakeCommandRunner,
    FakeProcessHandle,
    RepositoryNotConfiguredError,
)
from gitcrumbs_mcp.models import RawId, Snapshot
from gitcrumbs_mcp.preferences import InMemoryPreferenceBackend, PreferenceStore, TrackingPreference
from gitcrumbs_mcp.session import GitcrumbsSession
from gitcrumbs_mcp.tracking import StartupOutcome


TIMELINE = "│ 1 │ base │ 2024-05-01 10:00:00 │ main │ one │ │\n│ 2 │ │ 2024-05-01 10:05:00 │ main │ two │ │\n"


def ok(stdout: str = "", raw: bytes = b"") -> CommandResult:
    return CommandResult(args=(), returncode=0, stdout=stdout, stderr="", raw_stdout=raw)


def failed(stderr: str = "error") -> CommandResult:
    return CommandResult(args=(), returncode=1, stdout="", stderr=stderr)


def make_session(repo, responses=None, *, handles=None, **kwargs) -> tuple[GitcrumbsSession, FakeCommandRunner]:
    defaults = {
        "rev-parse": ok("true\n"),
        "timeline": ok(TIMELINE),
        "status": ok("Cursor snapshot id: 2\n"),
    }
    defaults.update(responses or {})
    runner = FakeCommandRunner(defaults, handles=handles)
    session = GitcrumbsSession(runner, PreferenceStore(InMemoryPreferenceBackend()), repo_path=repo, **kwargs)
    return session, runner


def test_actions_require_a_repository() -> None:
    session, runner = make_session(None)

    with pytest.raises(RepositoryNotConfiguredError):
        asyncio.run(session.snapshot_now())
    assert runner.invocations == []


def test_snapshot_now_refreshes_timeline(tmp_path: Path) -> None:
    session, runner = make_session(tmp_path)

    asyncio.run(session.snapshot_now())

    assert runner.invocations == [("snapshot",), ("timeline",), ("status",)]
    assert [snapshot.id for snapshot in session.timeline.snapshots] == [2, 1]
    assert session.timeline.current_id == 2


def test_failed_action_raises_without_refresh(tmp_path: Path) -> None:
    session, runner = make_session(tmp_path, {"next": failed("already at newest")})

    with pytest.raises(CommandFailedError) as excinfo:
        asyncio.run(session.next())

    assert "already at newest" in excinfo.value.detail
    assert runner.invocations == [("next",)]


def test_restore_uses_purge_flags(tmp_path: Path) -> None:
    session, runner = make_session(tmp_path, restore_purge_default=True)

    async def scenario() -> None:
        await session.restore(RawId(1))
        await session.restore(Snapshot(id=2), purge=False)

    asyncio.run(scenario())

    restores = [call for call in runner.invocations if call[0] == "restore"]
    assert restores == [("restore", "1", "--purge"), ("restore", "2", "--no-purge")]


def test_restore_rejects_invalid_reference(tmp_path: Path) -> None:
    session, _ = make_session(tmp_path)

    with pytest.raises(ValueError):
        asyncio.run(session.restore(RawId(-3)))


def test_rename_prefers_label_and_validates(tmp_path: Path) -> None:
    session, runner = make_session(tmp_path)

    async def scenario() -> None:
        await session.rename(Snapshot(id=1, label="base"), "  baseline ")
        await session.rename(RawId(2), "second")
        await session.rename("base", "renamed")

    asyncio.run(scenario())

    renames = [call for call in runner.invocations if call[0] == "rename"]
    assert renames == [
        ("rename", "base", "baseline"),
        ("rename", "2", "second"),
        ("rename", "base", "renamed"),
    ]

    with pytest.raises(ValueError):
        asyncio.run(session.rename(RawId(2), "   "))


def test_previous_moves_back(tmp_path: Path) -> None:
    session, runner = make_session(tmp_path)

    asyncio.run(session.previous())

    assert runner.invocations[0] == ("previous",)


def test_open_file_pair_writes_both_sides(tmp_path: Path) -> None:
    session, runner = make_session(
        tmp_path,
        {"show-file": [ok("left\n", b"left\n"), failed("not present in snapshot")]},
    )

    pair = asyncio.run(session.open_file_pair("docs/guide.md", 1, 2))

    assert pair.left.read_bytes() == b"left\n"
    assert pair.right.read_bytes() == b""
    assert pair.left.is_relative_to(tmp_path / ".git" / "gitcrumbs")
    assert pair.title == "docs/guide.md (A:1 ↔ B:2)"
    assert ("show-file", "1", "docs/guide.md") in runner.invocations


def test_open_file_pair_requires_selection(tmp_path: Path) -> None:
    session, _ = make_session(tmp_path)

    with pytest.raises(ValueError):
        asyncio.run(session.open_file_pair("a.txt"))


def test_explicit_start_and_stop_record_preference(tmp_path: Path) -> None:
    async def scenario():
        session, _ = make_session(tmp_path, handles=[FakeProcessHandle()])
        started = await session.start_tracking()
        after_start = session.preferences.get(tmp_path)
        stopped = session.stop_tracking()
        after_stop = session.preferences.get(tmp_path)
        await session.aclose()
        return started, after_start, stopped, after_stop

    started, after_start, stopped, after_stop = asyncio.run(scenario())

    assert started and stopped
    assert after_start is TrackingPreference.AUTO
    assert after_stop is TrackingPreference.NEVER


def test_tracker_snapshot_triggers_refresh(tmp_path: Path) -> None:
    async def scenario():
        handle = FakeProcessHandle()
        session, runner = make_session(tmp_path, handles=[handle])
        await session.start_tracking()
        handle.feed_stdout("Snapshot created: #3")
        handle.finish(0)
        await session.supervisor.wait_closed()
        await session.aclose()
        return runner

    runner = asyncio.run(scenario())

    assert ("timeline",) in runner.invocations


def test_startup_applies_stored_preference(tmp_path: Path) -> None:
    async def scenario():
        session, runner = make_session(tmp_path, handles=[FakeProcessHandle()])
        session.preferences.set(tmp_path, TrackingPreference.AUTO)
        outcome = await session.startup()
        running = session.supervisor.is_running
        await session.aclose()
        return session, outcome, running

    session, outcome, running = asyncio.run(scenario())

    assert outcome is StartupOutcome.TRACKING_STARTED
    assert running
    assert len(session.timeline.snapshots) == 2
    assert session.preferences.get(tmp_path) is TrackingPreference.AUTO


def test_select_repository_stops_tracker_and_keeps_preference(tmp_path: Path) -> None:
    first_repo = tmp_path / "first"
    second_repo = tmp_path / "second"
    first_repo.mkdir()
    second_repo.mkdir()

    async def scenario():
        first_handle = FakeProcessHandle()
        session, _ = make_session(first_repo, handles=[first_handle])
        await session.start_tracking()
        await session.diff.set_a(1)
        outcome = await session.select_repository(second_repo)
        result = (
            outcome,
            first_handle.signals,
            session.preferences.get(first_repo),
            session.repo_path,
            session.diff.pair,
            session.supervisor.is_running,
        )
        await session.aclose()
        return result

    outcome, signals, first_pref, repo_path, pair, running = asyncio.run(scenario())

    assert outcome is StartupOutcome.DEFERRED
    assert signals == ["terminate"]
    assert first_pref is TrackingPreference.AUTO
    assert repo_path == str(second_repo.resolve())
    assert pair == (None, None)
    assert not running


def test_select_repository_with_confirmation_starts_tracking(tmp_path: Path) -> None:
    async def confirm(_message: str) -> bool:
        return True

    async def scenario():
        session, runner = make_session(None, handles=[FakeProcessHandle()])
        outcome = await session.select_repository(tmp_path, confirm=confirm)
        running = session.supervisor.is_running
        await session.aclose()
        return session, outcome, running

    session, outcome, running = asyncio.run(scenario())

    assert outcome is StartupOutcome.TRACKING_STARTED
    assert running
    assert session.preferences.get(tmp_path) is TrackingPreference.AUTO


def test_cli_version(tmp_path: Path) -> None:
    session, _ = make_session(tmp_path, {"--version": ok("gitcrumbs, version 1.2.3\n")})

    assert asyncio.run(session.cli_version()) == "1.2.3"


def test_aclose_does_not_touch_preferences(tmp_path: Path) -> None:
    async def scenario():
        session, _ = make_session(tmp_path, handles=[FakeProcessHandle()])
        await session.start_tracking(remember=False)
        await session.aclose()
        return session

    session = asyncio.run(scenario())

    assert session.preferences.get(tmp_path) is TrackingPreference.UNSET
    assert not session.supervisor.is_running

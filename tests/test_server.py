from __future__ import annotations

import asyncio
import json
from pathlib import Path

from gitcrumbs_mcp import __version__
from gitcrumbs_mcp.cli.runner import CommandResult, FakeCommandRunner
from gitcrumbs_mcp.config import GitcrumbsSettings
from gitcrumbs_mcp.preferences import InMemoryPreferenceBackend, PreferenceStore, TrackingPreference
from gitcrumbs_mcp.server import build_status, check_cli, create_server
from gitcrumbs_mcp.session import GitcrumbsSession


def ok(stdout: str = "") -> CommandResult:
    return CommandResult(args=(), returncode=0, stdout=stdout, stderr="")


def make_session(repo: Path, version: str = "gitcrumbs 0.5.0\n") -> GitcrumbsSession:
    runner = FakeCommandRunner(
        {
            "--version": ok(version),
            "rev-parse": ok("true\n"),
            "timeline": ok("│ 1 │ │ 2024-05-01 10:00:00 │ main │ one │ │\n"),
            "status": ok("Cursor snapshot id: 1\n"),
        }
    )
    return GitcrumbsSession(runner, PreferenceStore(InMemoryPreferenceBackend()), repo_path=repo)


def make_settings(tmp_path: Path, **overrides) -> GitcrumbsSettings:
    return GitcrumbsSettings(
        GITCRUMBS_PREFERENCES_PATH=str(tmp_path / "prefs.yaml"),
        GITCRUMBS_REPO_PATH=str(tmp_path),
        **overrides,
    )


def test_create_server_registers_tools(tmp_path: Path) -> None:
    session = make_session(tmp_path)

    server = create_server(make_settings(tmp_path), session=session)

    assert getattr(server, "session") is session
    handles = getattr(server, "tool_handles")
    assert handles.timeline is not None
    assert handles.select_repository is not None


def test_check_cli_reports_version(tmp_path: Path) -> None:
    session = make_session(tmp_path)

    metadata = asyncio.run(check_cli(session, make_settings(tmp_path)))

    assert metadata["available"] is True
    assert metadata["version"] == "0.5.0"
    assert metadata["compatible"] is None


def test_check_cli_flags_old_versions(tmp_path: Path) -> None:
    session = make_session(tmp_path, version="gitcrumbs 0.4.9\n")
    settings = make_settings(tmp_path, GITCRUMBS_REQUIRED_VERSION="0.5.0")

    metadata = asyncio.run(check_cli(session, settings))

    assert metadata["compatible"] is False


def test_check_cli_reports_missing_binary(tmp_path: Path) -> None:
    runner = FakeCommandRunner(
        {"--version": CommandResult(args=(), returncode=127, stdout="", stderr="Failed to run gitcrumbs")}
    )
    session = GitcrumbsSession(runner, PreferenceStore(InMemoryPreferenceBackend()), repo_path=tmp_path)

    metadata = asyncio.run(check_cli(session, make_settings(tmp_path)))

    assert metadata["available"] is False
    assert metadata["error"] == "Failed to run gitcrumbs"


def test_build_status_summarizes_session(tmp_path: Path) -> None:
    session = make_session(tmp_path)
    session.preferences.set(tmp_path, TrackingPreference.NEVER)
    asyncio.run(session.refresh())

    payload = build_status(session, make_settings(tmp_path), {"available": True, "version": "0.5.0"})

    assert payload["server_version"] == __version__
    assert payload["repository"]["snapshots"] == 1
    assert payload["repository"]["current_id"] == 1
    assert payload["tracking"]["state"] == "stopped"
    assert payload["tracking"]["preference"] == "never"
    assert payload["gitcrumbs"]["version"] == "0.5.0"
    json.dumps(payload)

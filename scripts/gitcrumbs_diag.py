"""gitcrumbs MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

from gitcrumbs_mcp.cli.runner import CommandRunner, serialize_result
from gitcrumbs_mcp.config import GitcrumbsSettings
from gitcrumbs_mcp.parsing import parse_cursor_id, parse_diff_table, parse_snapshot_table
from gitcrumbs_mcp.state import TimelineState


def load_runner(settings: GitcrumbsSettings) -> CommandRunner:
    return CommandRunner(settings.binary, columns=settings.terminal_columns)


def _repo(args: argparse.Namespace, settings: GitcrumbsSettings) -> Path:
    if args.repo:
        return Path(args.repo).expanduser().resolve()
    return settings.repo_path or Path.cwd()


def cmd_timeline(args: argparse.Namespace) -> None:
    settings = GitcrumbsSettings()
    runner = load_runner(settings)
    view = asyncio.run(TimelineState().reconcile(runner, _repo(args, settings)))
    if args.json:
        print(json.dumps(view.to_dict(), indent=2))
        return
    for snapshot in view.snapshots:
        marker = "*" if snapshot.id == view.current_id else " "
        print(f"{marker} {snapshot.id:>4} {snapshot.display_name} [{snapshot.branch or '-'}] {snapshot.summary or ''}")


def cmd_status(args: argparse.Namespace) -> None:
    settings = GitcrumbsSettings()
    runner = load_runner(settings)
    repo = _repo(args, settings)

    async def _collect():
        return await runner.version(repo), await runner.run(["status"], repo)

    version, status = asyncio.run(_collect())
    payload = {
        "repository": str(repo),
        "binary": runner.resolve(repo),
        "version": json.loads(serialize_result(version)),
        "status": json.loads(serialize_result(status)),
        "cursor_id": parse_cursor_id(status.stdout) if status.ok else None,
    }
    print(json.dumps(payload, indent=2))
    if not status.ok:
        raise SystemExit(1)


def cmd_diff(args: argparse.Namespace) -> None:
    settings = GitcrumbsSettings()
    runner = load_runner(settings)
    repo = _repo(args, settings)
    result = asyncio.run(runner.run(["diff", str(args.a), str(args.b), "--all"], repo))
    if not result.ok:
        print(serialize_result(result))
        raise SystemExit(1)
    print(json.dumps([change.to_dict() for change in parse_diff_table(result.stdout)], indent=2))


def cmd_parse_table(args: argparse.Namespace) -> None:
    """Parse captured CLI output, useful for checking table layouts offline."""

    text = Path(args.path).read_text(encoding="utf-8") if args.path else sys.stdin.read()
    if args.kind == "diff":
        payload = [change.to_dict() for change in parse_diff_table(text)]
    else:
        payload = [snapshot.to_dict() for snapshot in parse_snapshot_table(text)]
    print(json.dumps(payload, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="gitcrumbs MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_timeline = sub.add_parser("timeline", help="List snapshots as the server sees them")
    p_timeline.add_argument("--repo")
    p_timeline.add_argument("--json", action="store_true", help="Output JSON")
    p_timeline.set_defaults(func=cmd_timeline)

    p_status = sub.add_parser("status", help="Show binary, version and cursor for a repository")
    p_status.add_argument("--repo")
    p_status.set_defaults(func=cmd_status)

    p_diff = sub.add_parser("diff", help="List changes between two snapshots")
    p_diff.add_argument("a", type=int)
    p_diff.add_argument("b", type=int)
    p_diff.add_argument("--repo")
    p_diff.set_defaults(func=cmd_diff)

    p_parse = sub.add_parser("parse-table", help="Parse saved timeline or diff output")
    p_parse.add_argument("kind", choices=("timeline", "diff"))
    p_parse.add_argument("path", nargs="?", help="File to read; stdin when omitted")
    p_parse.set_defaults(func=cmd_parse_table)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()

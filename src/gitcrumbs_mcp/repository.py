"""Repository checks used before gitcrumbs is pointed at a folder."""

from __future__ import annotations

import logging
from pathlib import Path

from .cli.runner import CommandFailedError, CommandRunner

logger = logging.getLogger(__name__)


def repo_display_name(repo_path: str | Path | None) -> str:
    """Human-friendly name for a repository: its folder name."""

    if not repo_path:
        return "(unknown repo)"
    return Path(repo_path).name or str(repo_path)


async def is_git_repo(runner: CommandRunner, repo_path: str | Path | None) -> bool:
    if not repo_path:
        return False
    result = await runner.run_raw("git", ["rev-parse", "--is-inside-work-tree"], repo_path)
    return result.ok and "true" in result.stdout.strip().lower()


async def is_initialised(runner: CommandRunner, repo_path: str | Path) -> bool:
    """gitcrumbs counts as initialised when ``status`` succeeds."""

    result = await runner.run(["status"], repo_path)
    return result.ok


async def init_git(runner: CommandRunner, repo_path: str | Path) -> None:
    result = await runner.run_raw("git", ["init"], repo_path)
    if not result.ok:
        raise CommandFailedError(f'Failed to run "git init" in {repo_display_name(repo_path)}.', result)
    logger.info("Initialised git repository", extra={"repo_path": str(repo_path)})


async def ensure_initialised(runner: CommandRunner, repo_path: str | Path) -> bool:
    """Run ``gitcrumbs init`` if needed; returns True when it ran."""

    if await is_initialised(runner, repo_path):
        return False
    result = await runner.run(["init"], repo_path)
    if not result.ok:
        raise CommandFailedError(
            f"Failed to initialise gitcrumbs in repository {repo_display_name(repo_path)}.",
            result,
        )
    logger.info("Initialised gitcrumbs", extra={"repo_path": str(repo_path)})
    return True


__all__ = ["ensure_initialised", "init_git", "is_git_repo", "is_initialised", "repo_display_name"]

"""What happens to tracking when a repository is opened."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from pathlib import Path

from ..cli.runner import CommandRunner
from ..preferences import PreferenceStore, TrackingPreference
from ..repository import ensure_initialised, init_git, is_git_repo, repo_display_name
from .supervisor import TrackSupervisor

logger = logging.getLogger(__name__)

Confirm = Callable[[str], Awaitable["bool | None"]]


class StartupOutcome(str, Enum):
    NO_REPOSITORY = "no_repository"
    NOT_GIT_REPO = "not_git_repo"
    TRACKING_STARTED = "tracking_started"
    DISABLED = "disabled"
    DECLINED = "declined"
    DEFERRED = "deferred"


async def decide_tracking(
    supervisor: TrackSupervisor,
    preferences: PreferenceStore,
    repo_path: str | Path,
    *,
    confirm: Confirm | None = None,
) -> StartupOutcome:
    """Apply the stored preference, asking once when there is none.

    ``auto`` starts tracking, ``never`` leaves it off, and an unset preference
    is resolved through ``confirm``: yes stores ``auto`` and starts, no stores
    ``never``, and no answer keeps it unset.
    """

    preference = preferences.get(repo_path)
    if preference is TrackingPreference.AUTO:
        await supervisor.start()
        return StartupOutcome.TRACKING_STARTED
    if preference is TrackingPreference.NEVER:
        return StartupOutcome.DISABLED

    answer = None
    if confirm is not None:
        answer = await confirm(
            f"Gitcrumbs initialised for repository {repo_display_name(repo_path)}. Start tracking now?"
        )
    if answer is True:
        preferences.set(repo_path, TrackingPreference.AUTO)
        await supervisor.start()
        return StartupOutcome.TRACKING_STARTED
    if answer is False:
        preferences.set(repo_path, TrackingPreference.NEVER)
        return StartupOutcome.DECLINED
    return StartupOutcome.DEFERRED


async def apply_startup_policy(
    runner: CommandRunner,
    supervisor: TrackSupervisor,
    preferences: PreferenceStore,
    repo_path: str | Path | None,
    *,
    confirm: Confirm | None = None,
    init_git_repo: bool = False,
) -> StartupOutcome:
    """Prepare ``repo_path`` for gitcrumbs and start tracking according to preference.

    A folder that is not a git repository is left alone unless
    ``init_git_repo`` is set. gitcrumbs itself is initialised automatically;
    a failing ``init`` raises :class:`CommandFailedError`.
    """

    if not repo_path:
        return StartupOutcome.NO_REPOSITORY

    if not await is_git_repo(runner, repo_path):
        if not init_git_repo:
            logger.info(
                "%s is not a Git repository", repo_display_name(repo_path), extra={"repo_path": str(repo_path)}
            )
            return StartupOutcome.NOT_GIT_REPO
        await init_git(runner, repo_path)

    await ensure_initialised(runner, repo_path)
    return await decide_tracking(supervisor, preferences, repo_path, confirm=confirm)


__all__ = ["Confirm", "StartupOutcome", "apply_startup_policy", "decide_tracking"]

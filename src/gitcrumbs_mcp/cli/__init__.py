"""gitcrumbs CLI orchestration utilities."""

from .runner import (
    CommandFailedError,
    CommandNotFoundError,
    CommandResult,
    CommandRunner,
    CommandRunnerError,
    ProcessHandle,
    RepositoryNotConfiguredError,
)

__all__ = [
    "CommandFailedError",
    "CommandNotFoundError",
    "CommandResult",
    "CommandRunner",
    "CommandRunnerError",
    "ProcessHandle",
    "RepositoryNotConfiguredError",
]

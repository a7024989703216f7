"""Async runner for the gitcrumbs CLI."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator, Iterable, Mapping, Sequence

from .utils import DEFAULT_TERMINAL_COLUMNS, sanitize_environment, strip_ansi

logger = logging.getLogger(__name__)

NOT_FOUND_RETURNCODE = 127

# Tables are rendered with a very wide terminal hint, so a single line can be long.
_STREAM_LIMIT = 1024 * 1024

_VERSION_PATTERN = re.compile(r"(\d+\.\d+\.\d+)")


class CommandRunnerError(RuntimeError):
    """Base class for gitcrumbs runner errors."""


class CommandNotFoundError(CommandRunnerError):
    """Raised when a background gitcrumbs process cannot be spawned."""


class RepositoryNotConfiguredError(CommandRunnerError):
    """Raised when an operation needs a repository path and none is configured."""


class CommandFailedError(CommandRunnerError):
    """Raised by callers that treat a nonzero gitcrumbs exit as a failure."""

    def __init__(self, message: str, result: "CommandResult") -> None:
        super().__init__(message)
        self.result = result

    @property
    def detail(self) -> str:
        """Full exit code, stdout and stderr for a "show details" view."""

        result = self.result
        return f"Exit {result.returncode}\n\nSTDOUT:\n{result.stdout}\n\nSTDERR:\n{result.stderr}"


@dataclass(slots=True)
class CommandResult:
    """Holds the outcome of a gitcrumbs CLI invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    raw_stdout: bytes = b""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


async def _iter_lines(stream: asyncio.StreamReader | None) -> AsyncIterator[str]:
    if stream is None:
        return
    while True:
        chunk = await stream.readline()
        if not chunk:
            return
        yield strip_ansi(chunk.decode("utf-8", errors="replace")).rstrip("\r\n")


class ProcessHandle:
    """A long-lived gitcrumbs process whose output is streamed line by line."""

    def __init__(self, process: asyncio.subprocess.Process, args: tuple[str, ...]) -> None:
        self._process = process
        self._args = args

    @property
    def args(self) -> tuple[str, ...]:
        return self._args

    @property
    def pid(self) -> int | None:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    def stdout_lines(self) -> AsyncIterator[str]:
        return _iter_lines(self._process.stdout)

    def stderr_lines(self) -> AsyncIterator[str]:
        return _iter_lines(self._process.stderr)

    async def wait(self) -> int:
        """Wait until the process has closed and return its exit code."""

        return await self._process.wait()

    def terminate(self) -> None:
        if self._process.returncode is not None:
            return
        try:
            self._process.terminate()
        except ProcessLookupError:
            pass

    def kill(self) -> None:
        if self._process.returncode is not None:
            return
        try:
            self._process.kill()
        except ProcessLookupError:
            pass


class CommandRunner:
    """Execute gitcrumbs CLI commands asynchronously."""

    def __init__(
        self,
        binary: str | Path = "gitcrumbs",
        *,
        columns: int = DEFAULT_TERMINAL_COLUMNS,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._binary = str(binary)
        self._columns = columns
        self._extra_env = dict(env or {})
        self._resolved: dict[str, str] = {}

    @property
    def binary(self) -> str:
        return self._binary

    def resolve(self, cwd: str | Path) -> str:
        """Return the executable used for ``cwd``, looking it up once per directory."""

        key = str(Path(cwd))
        cached = self._resolved.get(key)
        if cached is not None:
            return cached

        resolved = self._lookup(Path(cwd)) or self._binary
        self._resolved[key] = resolved
        logger.info("Using gitcrumbs binary", extra={"binary": resolved, "cwd": key})
        return resolved

    def _lookup(self, cwd: Path) -> str | None:
        candidate = Path(self._binary).expanduser()
        if candidate.is_absolute() or len(candidate.parts) > 1:
            if not candidate.is_absolute():
                candidate = cwd / candidate
            if candidate.is_file() and os.access(candidate, os.X_OK):
                return str(candidate)
            return None
        return shutil.which(self._binary)

    def _environment(self) -> dict[str, str]:
        return sanitize_environment(self._extra_env, columns=self._columns)

    async def run(self, args: Sequence[str], cwd: str | Path) -> CommandResult:
        """Run gitcrumbs to completion; a nonzero exit is returned, not raised."""

        return await self._invoke(self.resolve(cwd), args, cwd)

    async def run_raw(self, binary: str, args: Sequence[str], cwd: str | Path) -> CommandResult:
        """Run another executable (such as ``git``) with the same environment rules."""

        return await self._invoke(binary, args, cwd)

    async def version(self, cwd: str | Path) -> CommandResult:
        return await self.run(["--version"], cwd)

    async def run_background(self, args: Sequence[str], cwd: str | Path) -> ProcessHandle:
        """Start gitcrumbs without waiting for it to exit."""

        binary = self.resolve(cwd)
        cmd = [binary, *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._environment(),
                limit=_STREAM_LIMIT,
            )
        except OSError as exc:
            raise CommandNotFoundError(f"Failed to run {binary}: {exc}") from exc
        return ProcessHandle(process, tuple(cmd))

    async def _invoke(self, binary: str, args: Sequence[str], cwd: str | Path) -> CommandResult:
        cmd = [binary, *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=self._environment(),
            )
        except OSError as exc:
            return CommandResult(
                args=tuple(cmd),
                returncode=NOT_FOUND_RETURNCODE,
                stdout="",
                stderr=f"Failed to run {binary}: {exc}",
            )
        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = strip_ansi(stdout_bytes.decode("utf-8", errors="replace"))
        stderr = strip_ansi(stderr_bytes.decode("utf-8", errors="replace"))
        return CommandResult(
            args=tuple(cmd),
            returncode=process.returncode if process.returncode is not None else 0,
            stdout=stdout,
            stderr=stderr,
            raw_stdout=stdout_bytes,
        )


class FakeProcessHandle(ProcessHandle):
    """Test double for a streaming process; lines are fed by the test."""

    def __init__(self, args: Iterable[str] = ("track",)) -> None:  # type: ignore[override]
        self._args = tuple(args)
        self._stdout: asyncio.Queue[str | None] = asyncio.Queue()
        self._stderr: asyncio.Queue[str | None] = asyncio.Queue()
        self._closed = asyncio.Event()
        self._returncode: int | None = None
        self.signals: list[str] = []

    @property
    def pid(self) -> int | None:  # type: ignore[override]
        return None

    @property
    def returncode(self) -> int | None:  # type: ignore[override]
        return self._returncode

    def feed_stdout(self, line: str) -> None:
        self._stdout.put_nowait(line)

    def feed_stderr(self, line: str) -> None:
        self._stderr.put_nowait(line)

    def finish(self, returncode: int = 0) -> None:
        if self._returncode is not None:
            return
        self._returncode = returncode
        self._stdout.put_nowait(None)
        self._stderr.put_nowait(None)
        self._closed.set()

    async def _drain(self, queue: asyncio.Queue[str | None]) -> AsyncIterator[str]:
        while True:
            line = await queue.get()
            if line is None:
                return
            yield line

    def stdout_lines(self) -> AsyncIterator[str]:  # type: ignore[override]
        return self._drain(self._stdout)

    def stderr_lines(self) -> AsyncIterator[str]:  # type: ignore[override]
        return self._drain(self._stderr)

    async def wait(self) -> int:  # type: ignore[override]
        await self._closed.wait()
        return self._returncode if self._returncode is not None else 0

    def terminate(self) -> None:  # type: ignore[override]
        self.signals.append("terminate")
        self.finish(-15)

    def kill(self) -> None:  # type: ignore[override]
        self.signals.append("kill")
        self.finish(-9)


class FakeCommandRunner(CommandRunner):
    """Test double that simulates gitcrumbs CLI responses.

    ``responses`` is either an ordered list consumed one invocation at a time,
    or a mapping from command name (the first argument) to one result or a list
    of results; the last result for a command is reused once the list runs out.
    """

    def __init__(  # type: ignore[override]
        self,
        responses: Iterable[CommandResult] | Mapping[str, CommandResult | Sequence[CommandResult]] | None = None,
        *,
        handles: Iterable[ProcessHandle] | None = None,
        binary: str = "gitcrumbs",
    ) -> None:
        super().__init__(binary)
        self._ordered: list[CommandResult] = []
        self._by_command: dict[str, list[CommandResult]] = {}
        if isinstance(responses, Mapping):
            for command, value in responses.items():
                items = [value] if isinstance(value, CommandResult) else list(value)
                self._by_command[command] = items
        else:
            self._ordered = list(responses or [])
        self._handles = list(handles or [])
        self._invocations: list[tuple[str, ...]] = []
        self._background: list[tuple[str, ...]] = []

    def resolve(self, cwd: str | Path) -> str:
        return self._binary

    def _next_response(self, args: tuple[str, ...]) -> CommandResult:
        if self._by_command:
            queue = self._by_command.get(args[0] if args else "")
            if queue:
                return queue.pop(0) if len(queue) > 1 else queue[0]
        elif self._ordered:
            return self._ordered.pop(0)
        return CommandResult(args=args, returncode=0, stdout="", stderr="")

    async def _invoke(self, binary: str, args: Sequence[str], cwd: str | Path) -> CommandResult:  # type: ignore[override]
        call = tuple(args)
        self._invocations.append(call)
        return self._next_response(call)

    async def run_background(self, args: Sequence[str], cwd: str | Path) -> ProcessHandle:  # type: ignore[override]
        self._background.append(tuple(args))
        if not self._handles:
            raise CommandNotFoundError(f"Failed to run {self._binary}: no fake process queued")
        return self._handles.pop(0)

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations

    @property
    def background_invocations(self) -> list[tuple[str, ...]]:
        return self._background


def parse_version(text: str) -> str | None:
    """Extract an ``X.Y.Z`` version from ``gitcrumbs --version`` output."""

    match = _VERSION_PATTERN.search(text)
    return match.group(1) if match else None


def serialize_result(result: CommandResult) -> str:
    """Serialize a command result for diagnostics output."""

    return json.dumps(
        {
            "args": list(result.args),
            "returncode": result.returncode,
            "stdout": result.stdout,
            "stderr": result.stderr,
        }
    )

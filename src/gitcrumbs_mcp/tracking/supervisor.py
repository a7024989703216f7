"""Lifecycle of the background ``gitcrumbs track`` process."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..cli.runner import CommandRunner, CommandRunnerError, ProcessHandle, RepositoryNotConfiguredError
from ..events import EventEmitter

logger = logging.getLogger(__name__)

SNAPSHOT_SENTINEL = "Snapshot created:"

_CREATED_ID = re.compile(r"Snapshot created:\s*#?(\d+)")
_REAP_TIMEOUT = 5.0


async def _drain(lines: AsyncIterator[str]) -> None:
    async for _ in lines:
        pass


class TrackState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


@dataclass(frozen=True, slots=True)
class SnapshotCreated:
    """A sentinel line seen on the tracker's stdout."""

    line: str
    snapshot_id: int | None


class TrackSupervisor:
    """Starts, watches and stops the tracking process.

    ``running_changed`` fires ``True`` once the process is up and ``False``
    exactly once when it goes away, whether it was stopped or exited on its
    own. ``snapshot_created`` fires once per stdout line containing the
    sentinel.
    """

    def __init__(
        self,
        runner: CommandRunner,
        repo_path: Callable[[], "str | Path | None"],
        *,
        snapshot_after: int = 90,
        sentinel: str = SNAPSHOT_SENTINEL,
    ) -> None:
        self._runner = runner
        self._repo_path = repo_path
        self._snapshot_after = snapshot_after
        self._sentinel = sentinel
        self._state = TrackState.STOPPED
        self._handle: ProcessHandle | None = None
        self._watcher: asyncio.Task[None] | None = None
        self.running_changed: EventEmitter[bool] = EventEmitter("tracking.running")
        self.snapshot_created: EventEmitter[SnapshotCreated] = EventEmitter("tracking.snapshot_created")

    @property
    def state(self) -> TrackState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is TrackState.RUNNING

    @property
    def snapshot_after(self) -> int:
        return self._snapshot_after

    async def start(self) -> bool:
        """Launch ``track``; returns False if tracking was already starting or running."""

        if self._state in (TrackState.STARTING, TrackState.RUNNING):
            return False
        repo = self._repo_path()
        if not repo:
            raise RepositoryNotConfiguredError("Open a repository first.")

        self._state = TrackState.STARTING
        args = ["track", "--snapshot-after", str(self._snapshot_after)]
        try:
            handle = await self._runner.run_background(args, repo)
        except CommandRunnerError:
            self._state = TrackState.STOPPED
            raise

        if self._state is not TrackState.STARTING:
            # stop() arrived while the process was being spawned.
            handle.terminate()
            self._state = TrackState.STOPPED
            self._watcher = asyncio.get_running_loop().create_task(self._discard(handle))
            return False

        self._handle = handle
        self._state = TrackState.RUNNING
        logger.info(
            "Tracking started",
            extra={"repo_path": str(repo), "snapshot_after": self._snapshot_after, "pid": handle.pid},
        )
        self.running_changed.emit(True)
        self._watcher = asyncio.get_running_loop().create_task(self._watch(handle))
        return True

    def stop(self) -> bool:
        """Terminate the tracking process; returns False when nothing was running."""

        handle = self._handle
        if handle is None:
            if self._state is TrackState.STARTING:
                self._state = TrackState.STOPPING
            return False

        self._state = TrackState.STOPPING
        handle.terminate()
        self._handle = None
        self._state = TrackState.STOPPED
        logger.info("Tracking stopped", extra={"pid": handle.pid})
        self.running_changed.emit(False)
        return True

    async def wait_closed(self) -> None:
        """Wait until the output of the most recent process has been drained."""

        if self._watcher is not None:
            await asyncio.gather(self._watcher, return_exceptions=True)

    async def aclose(self) -> None:
        self.stop()
        await self.wait_closed()

    async def _watch(self, handle: ProcessHandle) -> None:
        returncode: int | None = None
        try:
            await asyncio.gather(self._pump_stdout(handle), self._pump_stderr(handle))
            returncode = await handle.wait()
        except Exception:
            logger.exception("Lost the tracking output; terminating the tracker", extra={"pid": handle.pid})
            handle.terminate()
            returncode = await self._reap(handle)
        finally:
            self._closed(handle, returncode)

    async def _reap(self, handle: ProcessHandle) -> int | None:
        try:
            return await asyncio.wait_for(handle.wait(), timeout=_REAP_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning("Tracker did not exit after terminate; killing it", extra={"pid": handle.pid})
            handle.kill()
            return None

    async def _discard(self, handle: ProcessHandle) -> None:
        try:
            await asyncio.gather(_drain(handle.stdout_lines()), _drain(handle.stderr_lines()))
        except Exception:
            logger.warning("Could not drain a cancelled tracker", extra={"pid": handle.pid}, exc_info=True)
        await self._reap(handle)

    async def _pump_stdout(self, handle: ProcessHandle) -> None:
        async for line in handle.stdout_lines():
            text = line.strip()
            if not text:
                continue
            logger.debug("[gitcrumbs track] %s", text)
            if self._sentinel in text:
                match = _CREATED_ID.search(text)
                self.snapshot_created.emit(
                    SnapshotCreated(line=text, snapshot_id=int(match.group(1)) if match else None)
                )

    async def _pump_stderr(self, handle: ProcessHandle) -> None:
        async for line in handle.stderr_lines():
            text = line.strip()
            if text:
                logger.warning("[gitcrumbs track][stderr] %s", text)

    def _closed(self, handle: ProcessHandle, returncode: int | None) -> None:
        if self._handle is not handle:
            return
        self._handle = None
        self._state = TrackState.STOPPED
        logger.info("Tracking process exited", extra={"returncode": returncode})
        self.running_changed.emit(False)


__all__ = ["SNAPSHOT_SENTINEL", "SnapshotCreated", "TrackState", "TrackSupervisor"]

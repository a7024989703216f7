"""FastMCP server bootstrap for gitcrumbs."""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from fastmcp import Context, FastMCP

from . import __version__
from .cli.runner import CommandRunnerError, parse_version
from .config import GitcrumbsSettings, get_settings
from .preferences import PreferenceLoadError
from .session import GitcrumbsSession
from .tools import register_tools

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for the gitcrumbs server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _version_tuple(version: str) -> tuple[int, ...]:
    return tuple(int(part) for part in version.split(".") if part.isdigit())


async def check_cli(session: GitcrumbsSession, settings: GitcrumbsSettings) -> dict[str, Any]:
    """Probe ``gitcrumbs --version`` and compare it with the required version, if any."""

    metadata: dict[str, Any] = {
        "binary": settings.binary,
        "available": False,
        "version": None,
        "required_version": settings.required_version,
        "compatible": None,
        "error": None,
    }
    result = await session.runner.version(session.repo_path or Path.cwd())
    if not result.ok:
        metadata["error"] = result.stderr.strip() or f"gitcrumbs --version exited with {result.returncode}"
        return metadata

    metadata["available"] = True
    metadata["version"] = parse_version(result.stdout) or result.stdout.strip()
    if settings.required_version:
        compatible = _version_tuple(str(metadata["version"])) >= _version_tuple(settings.required_version)
        metadata["compatible"] = compatible
        if not compatible:
            logger.warning(
                "gitcrumbs is older than the required version",
                extra={"version": metadata["version"], "required_version": settings.required_version},
            )
    return metadata


def build_status(
    session: GitcrumbsSession,
    settings: GitcrumbsSettings,
    cli_metadata: dict[str, Any],
) -> dict[str, Any]:
    """Summarize the runtime state reported by the status resource."""

    repo = session.repo_path
    preference: str | None = None
    preference_error: str | None = None
    if repo:
        try:
            preference = session.preferences.get(repo).value
        except PreferenceLoadError as exc:
            preference_error = str(exc)

    view = session.timeline.view
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server_version": __version__,
        "log_level": settings.log_level,
        "gitcrumbs": dict(cli_metadata),
        "repository": {
            "path": repo,
            "name": session.repo_name,
            "snapshots": len(view.snapshots),
            "current_id": view.current_id,
        },
        "tracking": {
            "state": session.supervisor.state.value,
            "running": session.supervisor.is_running,
            "snapshot_after": session.supervisor.snapshot_after,
            "preference": preference,
            "preference_error": preference_error,
        },
        "diff": {
            "a": session.diff.a,
            "b": session.diff.b,
            "loading": session.diff.loading,
            "changes": len(session.diff.changes),
        },
    }


def create_server(
    settings: Optional[GitcrumbsSettings] = None,
    session: GitcrumbsSession | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with its tools and status resource."""

    settings = settings or get_settings()
    session = session or GitcrumbsSession.from_settings(settings, repo_path=settings.repo_path or Path.cwd())

    cli_metadata: dict[str, Any] = {
        "binary": settings.binary,
        "available": None,
        "version": None,
        "required_version": settings.required_version,
        "compatible": None,
        "error": None,
    }

    @asynccontextmanager
    async def lifespan(_server: FastMCP):
        cli_metadata.update(await check_cli(session, settings))
        try:
            outcome = await session.startup()
            logger.info(
                "Repository opened",
                extra={"repo_path": session.repo_path, "outcome": outcome.value},
            )
        except CommandRunnerError as exc:
            logger.warning("Repository startup failed: %s", exc, extra={"repo_path": session.repo_path})
        try:
            yield {"session": session}
        finally:
            await session.aclose()

    server = FastMCP(
        name="gitcrumbs MCP",
        version=__version__,
        instructions=(
            "gitcrumbs keeps a timeline of working-tree snapshots for a git repository. "
            "Use the provided tools to list and restore snapshots, compare two snapshots, "
            "and control background tracking."
        ),
        lifespan=lifespan,
    )

    handles = register_tools(server, session=session)

    @server.resource(
        "resource://gitcrumbs/status",
        name="gitcrumbs_status",
        title="gitcrumbs MCP Status",
        description="Provides the current repository, timeline and tracking state.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing runtime state."""

        payload = build_status(session, settings, cli_metadata)
        payload["request_id"] = getattr(context, "request_id", None)
        return json.dumps(payload)

    setattr(server, "session", session)
    setattr(server, "cli_metadata", cli_metadata)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the gitcrumbs MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logger.info(
        "Launching gitcrumbs MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "repo_path": getattr(server, "session").repo_path,
        },
    )
    server.run()


if __name__ == "__main__":
    main()

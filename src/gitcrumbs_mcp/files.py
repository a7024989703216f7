"""Per-file helpers: snapshot file extraction and path normalisation."""

from __future__ import annotations

import asyncio
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from .cli.runner import CommandRunner

PAIR_DIRECTORY = Path(".git") / "gitcrumbs" / "diffs"

_ILLEGAL_FILENAME_CHARS = re.compile(r'[:*?"<>|]')
_ODD_WHITESPACE = re.compile(r"[\u00a0\u2000-\u200b]")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class FilePair:
    left: Path
    right: Path
    title: str


def sanitize_relative_path(rel_path: str) -> str:
    """Keep the directory structure of ``rel_path`` but make it safe as a local file name."""

    cleaned = _ILLEGAL_FILENAME_CHARS.sub("_", rel_path.replace("\\", "/"))
    parts = [part for part in PurePosixPath(cleaned).parts if part not in ("/", "..", ".")]
    return "/".join(parts) or "_"


def build_path_candidates(rel_path: str, repo_root: str | Path) -> list[str]:
    """Spellings of ``rel_path`` gitcrumbs may accept, most literal first, without duplicates."""

    clean = _WHITESPACE.sub(" ", _ODD_WHITESPACE.sub(" ", rel_path)).strip()
    posix = clean.replace("\\", "/").lstrip("/")
    if not posix:
        return []
    normalized = posixpath.normpath(posix)
    with_dot = normalized if normalized.startswith("./") else f"./{normalized}"
    absolute = posixpath.join(str(repo_root).replace("\\", "/"), normalized)

    candidates: list[str] = []
    for candidate in (clean, posix, normalized, with_dot, absolute):
        if candidate and candidate not in candidates:
            candidates.append(candidate)
    return candidates


async def write_file_pair(
    runner: CommandRunner,
    repo_root: str | Path,
    a: int,
    b: int,
    rel_path: str,
) -> FilePair:
    """Write ``rel_path`` as of snapshots ``a`` and ``b`` to two files under the repository's git dir.

    A side whose ``show-file`` fails is written empty, so added or deleted
    files still compare against nothing.
    """

    base = Path(repo_root) / PAIR_DIRECTORY / f"{a}-{b}"
    sanitized = sanitize_relative_path(rel_path)
    left = base / f"{sanitized}.left"
    right = base / f"{sanitized}.right"
    left.parent.mkdir(parents=True, exist_ok=True)

    first, second = await asyncio.gather(
        runner.run(["show-file", str(a), rel_path], repo_root),
        runner.run(["show-file", str(b), rel_path], repo_root),
    )
    left.write_bytes(first.raw_stdout if first.ok else b"")
    right.write_bytes(second.raw_stdout if second.ok else b"")

    return FilePair(left=left, right=right, title=f"{rel_path} (A:{a} ↔ B:{b})")


__all__ = ["FilePair", "build_path_candidates", "sanitize_relative_path", "write_file_pair"]

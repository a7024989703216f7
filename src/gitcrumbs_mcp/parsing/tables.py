"""Parsers for the bordered tables printed by the gitcrumbs CLI.

gitcrumbs renders ``timeline`` and ``diff`` output for humans: box-drawn
tables whose cells may wrap onto extra visual lines. Parsing is a small state
machine per table kind:

* a line that does not start with a vertical border glyph is a border or
  separator and is ignored;
* cells are split on the glyph the line opens with, so a ``│`` table keeps
  ASCII ``|`` inside its cells;
* surplus cells are folded back into the free-text column (summary or file
  list), and a line with too few cells is dropped;
* a line whose key cell is a non-negative integer starts a new logical row,
  flushing the row in progress;
* any other line continues the row in progress (or is dropped when idle);
* the end of input flushes the last row.

Nothing here raises for malformed input; unrecognised lines just yield fewer
rows.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime

from ..cli.utils import strip_ansi
from ..models import ChangeKind, DiffChange, Snapshot

BORDER_GLYPHS = ("|", "│")
NO_FILES_PLACEHOLDER = "(none)"

_INTEGER = re.compile(r"^\d+$")
_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_ONLY = re.compile(r"^\d{2}:\d{2}:\d{2}$")
_CREATED_LIKE = re.compile(r"^(\d{4}-\d{2}-\d{2}|\d{2}:\d{2}:\d{2}$)")
_WHITESPACE = re.compile(r"\s+")
_CURSOR = re.compile(r"Cursor snapshot id:\s*(\d+)", re.IGNORECASE)

_TIMESTAMP_FORMATS = ("%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S", "%Y-%m-%d")


def _split_row(line: str) -> tuple[str, list[str]] | None:
    body = line.strip()
    if not body or body[0] not in BORDER_GLYPHS:
        return None
    glyph = body[0]
    parts = body.split(glyph)[1:]
    if body.endswith(glyph) and parts:
        parts = parts[:-1]
    return glyph, parts


def _fold(glyph: str, parts: list[str]) -> str:
    return glyph.join(parts).strip()


def split_cells(line: str) -> list[str] | None:
    """Split one bordered line into trimmed cells, or ``None`` for non-data lines."""

    row = _split_row(line)
    if row is None:
        return None
    return [part.strip() for part in row[1]]


def _join_fragments(parts: list[str]) -> str | None:
    joined = _WHITESPACE.sub(" ", " ".join(parts)).strip()
    return joined or None


def parse_timestamp(text: str) -> datetime | None:
    """Parse a created cell with second precision; date-only values map to midnight."""

    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


@dataclass(slots=True)
class _SnapshotCells:
    id: str
    label: str
    created: str
    branch: str
    summary: str
    resumed: str


def _snapshot_columns(cells: list[str]) -> int | None:
    """Pick the layout for a row-start line: 6 columns, or 5 without a label."""

    if len(cells) == 5:
        return 5
    if len(cells) < 5:
        return None
    # Surplus cells come from "|" inside the summary; the created cell tells
    # the two layouts apart.
    if not cells[2] or _CREATED_LIKE.match(cells[2]):
        return 6
    if _CREATED_LIKE.match(cells[1]):
        return 5
    return 6


def _snapshot_cells(glyph: str, parts: list[str], columns: int | None) -> _SnapshotCells | None:
    if columns is None or len(parts) < columns:
        return None
    cells = [part.strip() for part in parts]
    summary = _fold(glyph, parts[columns - 2 : -1])
    # Current layout: #, Label, Created, Branch, Summary, Resumed-From
    if columns == 6:
        identifier, label, created, branch = cells[:4]
        return _SnapshotCells(identifier, label, created, branch, summary, cells[-1])
    # Older layout without a label column
    identifier, created, branch = cells[:3]
    return _SnapshotCells(identifier, "", created, branch, summary, cells[-1])


@dataclass(slots=True)
class _SnapshotRowInProgress:
    id: int
    label_parts: list[str] = field(default_factory=list)
    branch_parts: list[str] = field(default_factory=list)
    summary_parts: list[str] = field(default_factory=list)
    created: str | None = None
    has_time: bool = False
    resumed: int | None = None

    def add_fragments(self, cells: _SnapshotCells) -> None:
        for parts, fragment in (
            (self.label_parts, cells.label),
            (self.branch_parts, cells.branch),
            (self.summary_parts, cells.summary),
        ):
            if fragment:
                parts.append(fragment)
        if self.resumed is None and _INTEGER.match(cells.resumed):
            self.resumed = int(cells.resumed)

    def set_created(self, fragment: str) -> None:
        self.created = fragment
        self.has_time = not _DATE_ONLY.match(fragment)

    def merge_created(self, fragment: str) -> None:
        if not fragment:
            return
        if self.created is None:
            self.set_created(fragment)
        elif not self.has_time and _TIME_ONLY.match(fragment):
            self.created = f"{self.created} {fragment}"
            self.has_time = True

    def finish(self) -> Snapshot:
        created_text = self.created or ""
        return Snapshot(
            id=self.id,
            created_text=created_text,
            created_at=parse_timestamp(created_text),
            label=_join_fragments(self.label_parts),
            branch=_join_fragments(self.branch_parts),
            summary=_join_fragments(self.summary_parts),
            restored_from_id=self.resumed,
        )


class SnapshotTableParser:
    """Accumulates ``gitcrumbs timeline`` lines into :class:`Snapshot` records."""

    def __init__(self) -> None:
        self._row: _SnapshotRowInProgress | None = None
        self._rows: list[Snapshot] = []
        self._columns: int | None = None

    def feed(self, line: str) -> None:
        row = _split_row(line)
        if row is None or not row[1]:
            return
        glyph, parts = row
        if _INTEGER.match(parts[0].strip()):
            columns = _snapshot_columns([part.strip() for part in parts])
            shaped = _snapshot_cells(glyph, parts, columns)
            if shaped is not None:
                self._columns = columns
                self._start_row(shaped)
        elif self._row is not None:
            shaped = _snapshot_cells(glyph, parts, self._columns)
            if shaped is not None:
                self._continue_row(shaped)

    def finish(self) -> list[Snapshot]:
        self._flush()
        self._columns = None
        rows, self._rows = self._rows, []
        return rows

    def _start_row(self, cells: _SnapshotCells) -> None:
        self._flush()
        row = _SnapshotRowInProgress(id=int(cells.id))
        if cells.created:
            row.set_created(cells.created)
        row.add_fragments(cells)
        self._row = row

    def _continue_row(self, cells: _SnapshotCells) -> None:
        assert self._row is not None
        self._row.merge_created(cells.created)
        self._row.add_fragments(cells)

    def _flush(self) -> None:
        if self._row is not None:
            self._rows.append(self._row.finish())
            self._row = None


@dataclass(slots=True)
class _DiffRowInProgress:
    kind: ChangeKind
    count: int
    file_parts: list[str] = field(default_factory=list)

    def finish(self) -> list[DiffChange]:
        files = " ".join(self.file_parts).strip()
        if self.count == 0 or not files or files == NO_FILES_PLACEHOLDER:
            return []
        return [
            DiffChange(path=name.strip(), kind=self.kind)
            for name in files.split(",")
            if name.strip()
        ]


class DiffTableParser:
    """Accumulates ``gitcrumbs diff --all`` lines into :class:`DiffChange` records."""

    def __init__(self) -> None:
        self._row: _DiffRowInProgress | None = None
        self._changes: list[DiffChange] = []

    def feed(self, line: str) -> None:
        row = _split_row(line)
        if row is None or len(row[1]) < 3:
            return
        glyph, parts = row
        category, count = parts[0].strip(), parts[1].strip()
        files = _fold(glyph, parts[2:])
        kind = ChangeKind.from_category(category)
        if kind is not None and _INTEGER.match(count):
            self._flush()
            self._row = _DiffRowInProgress(kind=kind, count=int(count))
            if files:
                self._row.file_parts.append(files)
        elif not category and not count and files and self._row is not None:
            self._row.file_parts.append(files)

    def finish(self) -> list[DiffChange]:
        self._flush()
        changes, self._changes = self._changes, []
        return changes

    def _flush(self) -> None:
        if self._row is not None:
            self._changes.extend(self._row.finish())
            self._row = None


def parse_snapshot_table(text: str) -> list[Snapshot]:
    """Parse ``gitcrumbs timeline`` output into snapshots, in input order."""

    parser = SnapshotTableParser()
    for line in strip_ansi(text).splitlines():
        parser.feed(line)
    return parser.finish()


def parse_diff_table(text: str) -> list[DiffChange]:
    """Parse ``gitcrumbs diff --all`` output into one change per listed file."""

    parser = DiffTableParser()
    for line in strip_ansi(text).splitlines():
        parser.feed(line)
    return parser.finish()


def parse_cursor_id(text: str) -> int | None:
    """Return the id from a ``Cursor snapshot id: N`` status line, if any."""

    match = _CURSOR.search(strip_ansi(text))
    return int(match.group(1)) if match else None


__all__ = [
    "DiffTableParser",
    "SnapshotTableParser",
    "parse_cursor_id",
    "parse_diff_table",
    "parse_snapshot_table",
    "parse_timestamp",
    "split_cells",
]

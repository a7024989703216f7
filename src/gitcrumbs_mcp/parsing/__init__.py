"""Parsers for gitcrumbs CLI output."""

from .tables import (
    DiffTableParser,
    SnapshotTableParser,
    parse_cursor_id,
    parse_diff_table,
    parse_snapshot_table,
)

__all__ = [
    "DiffTableParser",
    "SnapshotTableParser",
    "parse_cursor_id",
    "parse_diff_table",
    "parse_snapshot_table",
]

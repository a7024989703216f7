from __future__ import annotations

from datetime import datetime
import textwrap

from gitcrumbs_mcp.models import ChangeKind, DiffChange
from gitcrumbs_mcp.parsing import (
    DiffTableParser,
    parse_cursor_id,
    parse_diff_table,
    parse_snapshot_table,
)
from gitcrumbs_mcp.parsing.tables import parse_timestamp, split_cells


TIMELINE_WITH_LABELS = textwrap.dedent(
    """
    ┏━━━━┳━━━━━━━━━┳━━━━━━━━━━━━━━━━━━━━━┳━━━━━━━━┳━━━━━━━━━━━━━━━━━━━━┳━━━━━━━━━━━━━━┓
    ┃ #  ┃ Label   ┃ Created             ┃ Branch ┃ Summary            ┃ Resumed From ┃
    ┡━━━━╇━━━━━━━━━╇━━━━━━━━━━━━━━━━━━━━━╇━━━━━━━━╇━━━━━━━━━━━━━━━━━━━━╇━━━━━━━━━━━━━━┩
    │ 1  │ initial │ 2024-05-01 10:00:00 │ main   │ first snapshot     │              │
    │ 2  │         │ 2024-05-01 10:05:00 │ main   │ edited readme and  │ 1            │
    │    │         │                     │        │ added docs folder  │              │
    │ 3  │ wip     │ 2024-05-01 10:10:00 │ topic  │ A:1 M:2 D:0        │              │
    └────┴─────────┴─────────────────────┴────────┴────────────────────┴──────────────┘
    """
)


def test_three_row_table_with_wrapped_summary() -> None:
    snapshots = parse_snapshot_table(TIMELINE_WITH_LABELS)

    assert [snapshot.id for snapshot in snapshots] == [1, 2, 3]
    first, second, third = snapshots
    assert first.label == "initial"
    assert first.created_at == datetime(2024, 5, 1, 10, 0, 0)
    assert first.restored_from_id is None
    assert second.label is None
    assert second.summary == "edited readme and added docs folder"
    assert second.restored_from_id == 1
    assert third.branch == "topic"
    assert third.label == "wip"


def test_legacy_five_column_layout() -> None:
    text = textwrap.dedent(
        """
        | #  | Created             | Branch | Summary | Resumed From |
        |----|---------------------|--------|---------|--------------|
        | 7  | 2024-06-02 08:30:15 | dev    | tweak   | 4            |
        | 8  | 2024-06-02 08:31:00 | dev    | more    |              |
        """
    )

    snapshots = parse_snapshot_table(text)

    assert [(s.id, s.label, s.branch, s.restored_from_id) for s in snapshots] == [
        (7, None, "dev", 4),
        (8, None, "dev", None),
    ]
    assert snapshots[0].created_text == "2024-06-02 08:30:15"


def test_wrapped_created_cell_merges_date_and_time() -> None:
    text = (
        "│ 4 │ nightly │ 2024-05-03 │ main │ long │   │\n"
        "│   │         │ 09:15:42   │      │ run  │   │\n"
        "│   │         │ 11:00:00   │      │      │   │\n"
    )

    (snapshot,) = parse_snapshot_table(text)

    assert snapshot.created_text == "2024-05-03 09:15:42"
    assert snapshot.created_at == datetime(2024, 5, 3, 9, 15, 42)
    assert snapshot.summary == "long run"


def test_created_cell_filled_from_continuation_when_missing() -> None:
    text = "│ 5 │ │ │ main │ s │ │\n│ │ │ 2024-05-04 12:00:00 │ │ │ │\n"

    (snapshot,) = parse_snapshot_table(text)

    assert snapshot.created_text == "2024-05-04 12:00:00"


def test_continuation_sets_resumed_from_only_once() -> None:
    text = "│ 9 │ │ 2024-05-04 │ main │ s │ │\n│ │ │ │ │ │ 3 │\n│ │ │ │ │ │ 4 │\n"

    (snapshot,) = parse_snapshot_table(text)

    assert snapshot.restored_from_id == 3


def test_label_fragments_are_joined_and_whitespace_collapsed() -> None:
    text = "│ 11 │ release   candidate │ 2024-05-04 │ main │ s │ │\n│ │ one │ │ │ │ │\n"

    (snapshot,) = parse_snapshot_table(text)

    assert snapshot.label == "release candidate one"


def test_lines_before_first_row_and_unknown_layouts_are_ignored() -> None:
    text = (
        "│   │ orphan │ │ │ │ │\n"
        "│ 1 │ two │ cells │\n"
        "Some banner text\n"
        "│ 2 │ │ 2024-01-01 │ main │ ok │ │\n"
    )

    snapshots = parse_snapshot_table(text)

    assert [snapshot.id for snapshot in snapshots] == [2]


def test_empty_timeline_yields_nothing() -> None:
    assert parse_snapshot_table("") == []
    assert parse_snapshot_table("No snapshots yet.\n") == []


def test_ansi_codes_do_not_break_rows() -> None:
    text = "\x1b[1m│ 3 │ │ 2024-01-01 10:00:00 │ main │ colored │ │\x1b[0m\n"

    (snapshot,) = parse_snapshot_table(text)

    assert snapshot.summary == "colored"


def test_split_cells_handles_both_border_glyphs() -> None:
    assert split_cells("| a | b |") == ["a", "b"]
    assert split_cells("│ a │ b │") == ["a", "b"]
    assert split_cells("+---+---+") is None
    assert split_cells("plain") is None


def test_parse_timestamp_variants() -> None:
    assert parse_timestamp("2024-05-01T10:00:00") == datetime(2024, 5, 1, 10, 0, 0)
    assert parse_timestamp("2024-05-01") == datetime(2024, 5, 1)
    assert parse_timestamp("yesterday") is None


DIFF_TABLE = textwrap.dedent(
    """
    ┏━━━━━━━━━━┳━━━━━━━┳━━━━━━━━━━━━━━━━━━━━━━━━┓
    ┃ Category ┃ Count ┃ Files                  ┃
    ┡━━━━━━━━━━╇━━━━━━━╇━━━━━━━━━━━━━━━━━━━━━━━━┩
    │ Added    │ 2     │ a.txt, b.txt           │
    │ Modified │ 3     │ src/app.py, README.md, │
    │          │       │ docs/index.md          │
    │ Deleted  │ 0     │ (none)                 │
    └──────────┴───────┴────────────────────────┘
    """
)


def test_diff_table_rows_become_changes() -> None:
    changes = parse_diff_table(DIFF_TABLE)

    assert changes == [
        DiffChange(path="a.txt", kind=ChangeKind.ADDED),
        DiffChange(path="b.txt", kind=ChangeKind.ADDED),
        DiffChange(path="src/app.py", kind=ChangeKind.MODIFIED),
        DiffChange(path="README.md", kind=ChangeKind.MODIFIED),
        DiffChange(path="docs/index.md", kind=ChangeKind.MODIFIED),
    ]


def test_diff_single_added_row() -> None:
    changes = parse_diff_table("| Added | 2 | a.txt, b.txt |")

    assert [(change.path, change.kind) for change in changes] == [
        ("a.txt", ChangeKind.ADDED),
        ("b.txt", ChangeKind.ADDED),
    ]


def test_diff_zero_count_and_placeholder_yield_nothing() -> None:
    assert parse_diff_table("| Deleted | 0 | stale.txt |") == []
    assert parse_diff_table("| Modified | 1 | (none) |") == []
    assert parse_diff_table("| Added | 1 |  |") == []


def test_diff_ignores_unknown_categories_and_bad_counts() -> None:
    text = "| Renamed | 1 | x.txt |\n| Added | many | y.txt |\n| Added | 1 | z.txt |\n"

    assert parse_diff_table(text) == [DiffChange(path="z.txt", kind=ChangeKind.ADDED)]


def test_diff_parser_can_be_fed_incrementally() -> None:
    parser = DiffTableParser()
    parser.feed("│ Deleted │ 1 │ old.txt │")

    assert parser.finish() == [DiffChange(path="old.txt", kind=ChangeKind.DELETED)]
    assert parser.finish() == []


def test_parse_cursor_id() -> None:
    assert parse_cursor_id("Repository: /tmp/repo\nCursor snapshot id: 12\n") == 12
    assert parse_cursor_id("cursor SNAPSHOT id:7") == 7
    assert parse_cursor_id("Cursor snapshot id: none") is None
    assert parse_cursor_id("") is None


def test_ascii_pipe_inside_box_drawn_cells_is_kept() -> None:
    text = (
        "│ 1 │ │ 2024-05-01 10:00:00 │ main │ init      │ │\n"
        "│ 2 │ │ 2024-05-01 10:05:00 │ main │ edit a.py │ │\n"
        "│ 3 │ │ 2024-05-01 10:10:00 │ main │ fix x | y │ │\n"
        "│   │ │                     │      │ more text │ │\n"
    )

    snapshots = parse_snapshot_table(text)

    assert [(s.id, s.summary) for s in snapshots] == [
        (1, "init"),
        (2, "edit a.py"),
        (3, "fix x | y more text"),
    ]


def test_surplus_cells_fold_into_summary_for_ascii_tables() -> None:
    text = (
        "| 4 | wip | 2024-05-01 10:00:00 | main | a | b | 2 |\n"
        "| 7 | 2024-06-02 08:30:15 | dev | left | right | |\n"
    )

    first, second = parse_snapshot_table(text)

    assert (first.label, first.summary, first.restored_from_id) == ("wip", "a | b", 2)
    assert (second.label, second.branch, second.summary) == (None, "dev", "left | right")


def test_diff_file_names_containing_pipes() -> None:
    assert parse_diff_table("│ Added │ 2 │ a|b.txt, c.txt │") == [
        DiffChange(path="a|b.txt", kind=ChangeKind.ADDED),
        DiffChange(path="c.txt", kind=ChangeKind.ADDED),
    ]
    assert parse_diff_table("| Deleted | 1 | x|y.txt |") == [
        DiffChange(path="x|y.txt", kind=ChangeKind.DELETED),
    ]

"""Tests for working-tree grouping.

Tests cover:
- Numstat rename path normalization
- Porcelain status row parsing
- Staged/unstaged/untracked classification with per-path counts
"""

import unittest

from hunksync.domain.working_tree import (
    FileChangeType,
    StatusEntry,
    WorkingTreeEntry,
    build_groups,
    normalize_numstat_path,
    parse_numstat_by_path,
    parse_status_entries,
)


class TestNumstatPaths(unittest.TestCase):
    """Tests for numstat path normalization."""

    def test_plain_path(self):
        self.assertEqual(normalize_numstat_path(" src/app.py "), "src/app.py")

    def test_arrow_rename(self):
        self.assertEqual(parse_numstat_by_path("5\t0\told.txt => new.txt\n"), {"new.txt": (5, 0)})

    def test_brace_rename(self):
        self.assertEqual(normalize_numstat_path("a/{old => new}/b"), "a/new/b")

    def test_brace_rename_at_start(self):
        self.assertEqual(normalize_numstat_path("{lib => src}/util.py"), "src/util.py")

    def test_binary_counts_are_zero(self):
        self.assertEqual(parse_numstat_by_path("-\t-\tlogo.png"), {"logo.png": (0, 0)})


class TestParseStatusEntries(unittest.TestCase):
    """Tests for parse_status_entries."""

    def test_rows(self):
        output = "M  staged.py\n M unstaged.py\nMM both.py\n?? notes.txt\nR  old.txt -> new.txt\n"

        entries = parse_status_entries(output)

        self.assertEqual(
            entries,
            [
                StatusEntry("M", " ", "staged.py"),
                StatusEntry(" ", "M", "unstaged.py"),
                StatusEntry("M", "M", "both.py"),
                StatusEntry("?", "?", "notes.txt"),
                StatusEntry("R", " ", "new.txt"),
            ],
        )

    def test_short_and_blank_rows_skipped(self):
        self.assertEqual(parse_status_entries("\nM \n\n"), [])


class TestBuildGroups(unittest.TestCase):
    """Tests for build_groups."""

    def test_classification_and_counts(self):
        entries = parse_status_entries("MM both.py\nA  added.py\n D gone.py\n?? notes.txt\n")
        staged_stats = {"both.py": (3, 1), "added.py": (10, 0)}
        unstaged_stats = {"both.py": (2, 2), "gone.py": (0, 7)}

        groups = build_groups(entries, staged_stats, unstaged_stats)

        self.assertEqual(
            groups.staged,
            [
                WorkingTreeEntry("both.py", 3, 1, FileChangeType.MODIFIED),
                WorkingTreeEntry("added.py", 10, 0, FileChangeType.ADDED),
            ],
        )
        self.assertEqual(
            groups.unstaged,
            [
                WorkingTreeEntry("both.py", 2, 2, FileChangeType.MODIFIED),
                WorkingTreeEntry("gone.py", 0, 7, FileChangeType.DELETED),
            ],
        )
        self.assertEqual(groups.untracked, [WorkingTreeEntry("notes.txt", 0, 0, FileChangeType.ADDED)])

    def test_renamed_entry(self):
        groups = build_groups(parse_status_entries("R  a.txt -> b.txt\n"), {"b.txt": (0, 0)}, {})

        self.assertEqual(groups.staged[0].change_type, FileChangeType.RENAMED)
        self.assertEqual(groups.staged[0].path, "b.txt")

    def test_to_dict_omits_unset_is_new(self):
        groups = build_groups(parse_status_entries("M  a.py\n?? b.py\n"), {}, {})

        data = groups.to_dict()

        self.assertNotIn("is_new", data["staged"][0])
        self.assertNotIn("is_new", data["untracked"][0])


if __name__ == "__main__":
    unittest.main()

"""Tests for HunkCorrelator.

Tests cover:
- Signature matching with a single candidate
- Tie-breaking between identical edits by exact and nearest position
- Classification priority (unstaged > staged > untracked)
- Restricting diffs to one file
"""

import unittest

from hunksync.domain.diff import Hunk, HunkLine, DiffLineType, parse_hunks
from hunksync.services.hunk_correlator import (
    HunkCorrelator,
    HunkHeaderEntry,
    HunkState,
    find_matching_header,
)


def make_entry(signature: str, old_start: int, new_start: int) -> HunkHeaderEntry:
    return HunkHeaderEntry(
        signature=signature,
        old_start=old_start,
        new_start=new_start,
        header=f"@@ -{old_start},0 +{new_start},1 @@",
    )


def make_added_hunk(text: str, old_start: int, new_start: int, file_path: str = "a.py") -> Hunk:
    return Hunk(
        header=f"@@ -{old_start},0 +{new_start},1 @@",
        old_start=old_start,
        old_count=0,
        new_start=new_start,
        new_count=1,
        lines=(HunkLine(text=text, raw=f"+{text}", line_type=DiffLineType.ADDED, new_line_number=new_start),),
        file_path=file_path,
    )


# ============================================================
# find_matching_header
# ============================================================


class TestFindMatchingHeader(unittest.TestCase):
    """Tests for find_matching_header."""

    def test_no_candidate(self):
        self.assertIsNone(find_matching_header([make_entry("+a", 1, 1)], "+b", 1, 1))

    def test_single_candidate_wins_regardless_of_position(self):
        entries = [make_entry("+a", 100, 200), make_entry("+b", 1, 1)]

        self.assertEqual(find_matching_header(entries, "+a", 1, 1), "@@ -100,0 +200,1 @@")

    def test_exact_position_breaks_tie(self):
        entries = [make_entry("+pass", 3, 4), make_entry("+pass", 10, 12), make_entry("+pass", 20, 23)]

        self.assertEqual(find_matching_header(entries, "+pass", 10, 12), "@@ -10,0 +12,1 @@")

    def test_nearest_position_when_no_exact(self):
        entries = [make_entry("+pass", 3, 4), make_entry("+pass", 20, 23)]

        # |3-18| + |4-20| = 31, |20-18| + |23-20| = 5
        self.assertEqual(find_matching_header(entries, "+pass", 18, 20), "@@ -20,0 +23,1 @@")

    def test_equal_distance_picks_earliest(self):
        entries = [make_entry("+pass", 5, 5), make_entry("+pass", 15, 15)]

        self.assertEqual(find_matching_header(entries, "+pass", 10, 10), "@@ -5,0 +5,1 @@")


# ============================================================
# HunkCorrelator
# ============================================================


class TestHunkCorrelator(unittest.TestCase):
    """Tests for HunkCorrelator classification."""

    def test_unstaged_wins_over_staged(self):
        hunk = make_added_hunk("x = 1", 3, 4)
        correlator = HunkCorrelator.from_hunks(staged=[hunk], unstaged=[hunk])

        match = correlator.classify(hunk)

        self.assertEqual(match.state, HunkState.UNSTAGED)
        self.assertEqual(match.staged_header, hunk.header)
        self.assertEqual(match.unstaged_header, hunk.header)

    def test_staged_only(self):
        hunk = make_added_hunk("x = 1", 3, 4)
        correlator = HunkCorrelator.from_hunks(staged=[hunk], unstaged=[])

        match = correlator.classify(hunk)

        self.assertEqual(match.state, HunkState.STAGED)
        self.assertIsNone(match.unstaged_header)

    def test_untracked_when_in_neither(self):
        correlator = HunkCorrelator.from_hunks(staged=[], unstaged=[make_added_hunk("y", 1, 1)])

        match = correlator.classify(make_added_hunk("x", 1, 1))

        self.assertEqual(match.state, HunkState.UNTRACKED)
        self.assertEqual(match.to_dict(), {"state": "untracked", "staged_header": None, "unstaged_header": None})

    def test_staged_view_renumbers_same_edit(self):
        # Combined diff shows the edit at +12; the staged diff numbers it +10
        combined = make_added_hunk("return result", 10, 12)
        staged = make_added_hunk("return result", 10, 10)
        correlator = HunkCorrelator.from_hunks(staged=[staged], unstaged=[])

        self.assertEqual(correlator.classify(combined).staged_header, "@@ -10,0 +10,1 @@")

    def test_from_diffs_filters_by_file(self):
        staged_diff = (
            "diff --git a/a.py b/a.py\n"
            "@@ -1,0 +2,1 @@\n"
            "+same\n"
            "diff --git a/b.py b/b.py\n"
            "@@ -1,0 +2,1 @@\n"
            "+same\n"
        )
        correlator = HunkCorrelator.from_diffs(staged_diff, "", file_path="b.py")

        self.assertEqual(len(correlator.staged), 1)
        self.assertEqual(correlator.unstaged, [])

    def test_classify_all_keeps_order(self):
        hunks = parse_hunks("@@ -1,0 +2,1 @@\n+a\n@@ -5,0 +7,1 @@\n+b\n")
        correlator = HunkCorrelator.from_hunks(staged=[hunks[1]], unstaged=[hunks[0]])

        states = [m.state for m in correlator.classify_all(hunks)]

        self.assertEqual(states, [HunkState.UNSTAGED, HunkState.STAGED])


if __name__ == "__main__":
    unittest.main()

"""Tests for DiffCaptureService.

Tests cover:
- Working-tree capture per scope, including synthesized untracked diffs
- Oversized and non-UTF-8 untracked files
- File grouping with numstat joins and the is_new check against HEAD
- Commit range, single commit and history parsing
- File content reads and error propagation
"""

import asyncio
import tempfile
import unittest
from pathlib import Path

from git_fakes import calls_with_prefix, fail, make_runner, ok

from hunksync.domain.diff import DiffStats, parse_hunks
from hunksync.domain.settings import SyncSettings
from hunksync.domain.working_tree import FileChangeType, WorkingTreeScope
from hunksync.infrastructure.git.runner import GitCommandError
from hunksync.services.diff_capture import (
    ContentRef,
    DiffCaptureService,
    FileTooLargeError,
    parse_commit_log,
    untracked_file_diff,
)

TRACKED_DIFF = """diff --git a/app.py b/app.py
index 1111111..2222222 100644
--- a/app.py
+++ b/app.py
@@ -3 +3 @@ def main():
-    return 1
+    return 2
"""


def make_service(routes: dict, settings: SyncSettings | None = None):
    runner = make_runner(routes)
    return DiffCaptureService(runner, settings), runner


class TempRepoTestCase(unittest.TestCase):
    """Provides a scratch directory standing in for a workspace."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def write(self, name: str, content: str | bytes) -> None:
        target = self.root / name
        target.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            target.write_bytes(content)
        else:
            target.write_text(content)


# ============================================================
# Working tree
# ============================================================


class TestWorkingTreeDiff(TempRepoTestCase):
    """Tests for DiffCaptureService.working_tree_diff."""

    def base_routes(self, untracked: str = "notes.txt\n") -> dict:
        return {
            ("rev-parse", "HEAD"): ok("abc123\n"),
            ("diff", "--color=never"): ok(TRACKED_DIFF),
            ("diff", "--name-only"): ok("app.py\n"),
            ("diff", "--shortstat"): ok(" 1 file changed, 1 insertion(+), 1 deletion(-)\n"),
            ("ls-files", "--others"): ok(untracked),
        }

    def test_all_scope_includes_untracked_file(self):
        self.write("notes.txt", "".join(f"line {i}\n" for i in range(10)))
        service, _ = make_service(self.base_routes())

        result = asyncio.run(service.working_tree_diff(str(self.root), WorkingTreeScope.ALL))

        self.assertEqual(result.stats, DiffStats(additions=11, deletions=1, files_changed=2))
        self.assertEqual(result.changed_files, ("app.py", "notes.txt"))
        self.assertEqual(result.before_hash, "abc123")
        self.assertIn("diff --git a/notes.txt b/notes.txt\nnew file mode 100644", result.diff_text)

        hunks = parse_hunks(result.diff_text)
        self.assertEqual(len(hunks), 2)
        self.assertEqual(hunks[1].file_path, "notes.txt")
        self.assertEqual(hunks[1].header, "@@ -0,0 +1,10 @@")
        self.assertEqual(len(hunks[1].lines), 10)

    def test_zero_context_flags_and_head_range(self):
        service, runner = make_service(self.base_routes(untracked=""))

        asyncio.run(service.working_tree_diff(str(self.root), WorkingTreeScope.ALL))

        request = calls_with_prefix(runner, "diff", "--color=never")[0]
        self.assertIn("--unified=0", request.argv)
        self.assertEqual(request.argv[-1], "HEAD")
        self.assertEqual(request.cwd, str(self.root))

    def test_staged_scope_uses_cached(self):
        service, runner = make_service(self.base_routes())

        result = asyncio.run(service.working_tree_diff(str(self.root), WorkingTreeScope.STAGED))

        request = calls_with_prefix(runner, "diff", "--color=never")[0]
        self.assertEqual(request.argv[-2:], ("--cached", "HEAD"))
        self.assertEqual(result.changed_files, ("app.py",))
        self.assertEqual(calls_with_prefix(runner, "ls-files"), [])

    def test_unstaged_scope_has_no_range(self):
        service, runner = make_service(self.base_routes())

        asyncio.run(service.working_tree_diff(str(self.root), WorkingTreeScope.UNSTAGED))

        request = calls_with_prefix(runner, "diff", "--color=never")[0]
        self.assertEqual(request.argv[-1], "--dst-prefix=b/")

    def test_untracked_scope(self):
        self.write("a.txt", "one\ntwo")
        self.write("empty.txt", "")
        service, runner = make_service(self.base_routes(untracked="a.txt\nempty.txt\n"))

        result = asyncio.run(service.working_tree_diff(str(self.root), WorkingTreeScope.UNTRACKED))

        self.assertEqual(result.stats, DiffStats(additions=2, deletions=0, files_changed=2))
        self.assertIn("\\ No newline at end of file", result.diff_text)
        self.assertIn("+++ b/empty.txt", result.diff_text)
        self.assertEqual(calls_with_prefix(runner, "diff"), [])

    def test_untracked_lines_split_on_newline_only(self):
        self.write("ctl.txt", b"a\x0cb\nc\rd\n\x1ce\n")
        service, _ = make_service(self.base_routes(untracked="ctl.txt\n"))

        result = asyncio.run(service.working_tree_diff(str(self.root), WorkingTreeScope.UNTRACKED))

        self.assertEqual(result.stats.additions, 3)
        self.assertIn("@@ -0,0 +1,3 @@\n+a\x0cb\n+c\rd\n+\x1ce\n", result.diff_text)

    def test_oversized_untracked_file_skipped(self):
        self.write("big.log", "x" * 100 + "\n")
        service, _ = make_service(
            self.base_routes(untracked="big.log\n"), SyncSettings(max_untracked_file_bytes=16)
        )

        with self.assertLogs("hunksync.services.diff_capture", level="WARNING"):
            result = asyncio.run(service.working_tree_diff(str(self.root), WorkingTreeScope.ALL))

        self.assertNotIn("big.log", result.diff_text)
        self.assertEqual(result.changed_files, ("app.py", "big.log"))
        self.assertEqual(result.stats.files_changed, 1)

    def test_non_utf8_untracked_file_skipped(self):
        self.write("blob.bin", b"\xff\xfe\x00\x01")
        service, _ = make_service(self.base_routes(untracked="blob.bin\n"))

        with self.assertLogs("hunksync.services.diff_capture", level="WARNING"):
            result = asyncio.run(service.working_tree_diff(str(self.root), WorkingTreeScope.ALL))

        self.assertNotIn("blob.bin b/blob.bin", result.diff_text)
        self.assertEqual(result.stats.additions, 1)

    def test_untracked_listing_failure_is_tolerated(self):
        routes = self.base_routes()
        routes[("ls-files", "--others")] = fail("fatal: not a git repository")
        service, _ = make_service(routes)

        with self.assertLogs("hunksync.services.diff_capture", level="WARNING"):
            result = asyncio.run(service.working_tree_diff(str(self.root), WorkingTreeScope.ALL))

        self.assertEqual(result.changed_files, ("app.py",))

    def test_tracked_diff_failure_raises(self):
        routes = self.base_routes()
        routes[("diff", "--color=never")] = fail("fatal: bad revision 'HEAD'")
        service, _ = make_service(routes)

        with self.assertRaises(GitCommandError):
            asyncio.run(service.working_tree_diff(str(self.root), WorkingTreeScope.ALL))


class TestWorkingDiffStats(TempRepoTestCase):
    """Tests for DiffCaptureService.working_diff_stats."""

    def test_adds_untracked_line_counts(self):
        self.write("new.txt", "a\nb\nc\n")
        service, _ = make_service(
            {
                ("diff", "--shortstat"): ok(" 2 files changed, 4 insertions(+), 1 deletion(-)\n"),
                ("ls-files", "--others"): ok("new.txt\n"),
            }
        )

        stats = asyncio.run(service.working_diff_stats(str(self.root)))

        self.assertEqual(stats, DiffStats(additions=7, deletions=1, files_changed=3))


# ============================================================
# File groups
# ============================================================


class TestFileGroups(TempRepoTestCase):
    """Tests for DiffCaptureService.file_groups."""

    def test_groups_with_counts_and_is_new(self):
        self.write("notes.txt", "1\n2\n3\n4\n")
        service, runner = make_service(
            {
                ("status", "--porcelain=v1"): ok(
                    "M  staged.py\n M unstaged.py\nA  new.py\nA  readded.py\nR  old.txt -> new.txt\n?? notes.txt\n"
                ),
                ("diff", "--cached", "--numstat"): ok(
                    "3\t1\tstaged.py\n5\t0\tnew.py\n2\t0\treadded.py\n0\t0\told.txt => new.txt\n"
                ),
                ("diff", "--numstat"): ok("4\t2\tunstaged.py\n"),
                ("cat-file", "-e", "HEAD:new.py"): fail("fatal: path 'new.py' does not exist in 'HEAD'"),
                ("cat-file", "-e", "HEAD:readded.py"): ok(),
            }
        )

        groups = asyncio.run(service.file_groups(str(self.root)))

        staged = {e.path: e for e in groups.staged}
        self.assertEqual((staged["staged.py"].additions, staged["staged.py"].deletions), (3, 1))
        self.assertIsNone(staged["staged.py"].is_new)
        self.assertTrue(staged["new.py"].is_new)
        self.assertFalse(staged["readded.py"].is_new)
        self.assertEqual(staged["new.txt"].change_type, FileChangeType.RENAMED)

        self.assertEqual([(e.path, e.additions, e.deletions) for e in groups.unstaged], [("unstaged.py", 4, 2)])
        self.assertEqual([(e.path, e.additions, e.is_new) for e in groups.untracked], [("notes.txt", 4, None)])
        self.assertEqual(len(calls_with_prefix(runner, "cat-file")), 2)

    def test_unreadable_untracked_counts_zero(self):
        service, _ = make_service(
            {
                ("status", "--porcelain=v1"): ok("?? missing.txt\n"),
                ("diff", "--cached", "--numstat"): ok(""),
                ("diff", "--numstat"): ok(""),
            }
        )

        with self.assertLogs("hunksync.services.diff_capture", level="WARNING"):
            groups = asyncio.run(service.file_groups(str(self.root)))

        self.assertEqual(groups.untracked[0].additions, 0)


class TestFileDiff(TempRepoTestCase):
    """Tests for DiffCaptureService.file_diff."""

    def test_staged_and_unstaged_argv(self):
        service, runner = make_service({("diff",): ok("")})

        asyncio.run(service.file_diff(str(self.root), "src/a.py", WorkingTreeScope.STAGED))
        asyncio.run(service.file_diff(str(self.root), "src/a.py", WorkingTreeScope.UNSTAGED))

        staged, unstaged = [c.args[0] for c in runner.run.call_args_list]
        self.assertEqual(staged.argv[:3], ("git", "diff", "--cached"))
        self.assertEqual(staged.argv[-3:], ("HEAD", "--", "src/a.py"))
        self.assertNotIn("--cached", unstaged.argv)
        self.assertEqual(unstaged.argv[-2:], ("--", "src/a.py"))
        self.assertIn("--unified=0", unstaged.argv)

    def test_rejects_other_scopes(self):
        service, _ = make_service({})

        with self.assertRaises(ValueError):
            asyncio.run(service.file_diff(str(self.root), "a.py", WorkingTreeScope.ALL))


# ============================================================
# Commits
# ============================================================


class TestCommitDiffs(TempRepoTestCase):
    """Tests for commit range, single commit and history capture."""

    def test_commit_range_resolves_head(self):
        service, runner = make_service(
            {
                ("diff", "--color=never"): ok(TRACKED_DIFF),
                ("diff", "--name-only"): ok("app.py\n"),
                ("diff", "--shortstat"): ok(" 1 file changed, 1 insertion(+), 1 deletion(-)\n"),
                ("rev-parse", "HEAD"): ok("def456\n"),
            }
        )

        result = asyncio.run(service.commit_range_diff(str(self.root), "abc123"))

        self.assertEqual(result.before_hash, "abc123")
        self.assertEqual(result.after_hash, "def456")
        self.assertIn("abc123..HEAD", calls_with_prefix(runner, "diff", "--color=never")[0].argv)

    def test_commit_range_explicit_end(self):
        service, runner = make_service({("diff",): ok("")})

        result = asyncio.run(service.commit_range_diff(str(self.root), "a1", "b2"))

        self.assertEqual(result.after_hash, "b2")
        self.assertEqual(calls_with_prefix(runner, "rev-parse"), [])

    def test_single_commit_uses_numstat(self):
        service, runner = make_service(
            {
                ("show", "--color=never"): ok(TRACKED_DIFF),
                ("show", "--name-only"): ok("app.py\nlogo.png\n"),
                ("show", "--numstat"): ok("1\t1\tapp.py\n-\t-\tlogo.png\n"),
            }
        )

        result = asyncio.run(service.single_commit_diff(str(self.root), " abc123 "))

        self.assertEqual(result.stats, DiffStats(additions=1, deletions=1, files_changed=2))
        self.assertEqual(result.after_hash, "abc123")
        self.assertIn("--format=", calls_with_prefix(runner, "show", "--color=never")[0].argv)

    def test_revision_subject(self):
        service, runner = make_service({("log", "-1"): ok("Fix parser\n")})

        self.assertEqual(asyncio.run(service.revision_subject(str(self.root), "abc")), "Fix parser")
        self.assertEqual(asyncio.run(service.revision_subject(str(self.root), "  ")), "")
        self.assertEqual(runner.run.await_count, 1)

    def test_commit_history(self):
        output = (
            "h1\x1fp1\x1fFix bug\x1f2024-01-02 10:00:00 +0000\x1fAlice\n"
            "\n"
            "3\t1\ta.py\n"
            "-\t-\tlogo.png\n"
            "\n"
            "h2\x1fp2 p3\x1fMerge branch\x1f2024-01-01 09:00:00 +0000\x1f\n"
        )
        service, runner = make_service({("log",): ok(output)}, SyncSettings(default_upstream="develop"))

        commits = asyncio.run(service.commit_history(str(self.root), limit=5))

        self.assertEqual(len(commits), 2)
        self.assertEqual(commits[0].hash, "h1")
        self.assertEqual(commits[0].author, "Alice")
        self.assertEqual(commits[0].stats, DiffStats(additions=3, deletions=1, files_changed=2))
        self.assertEqual(commits[1].parents, ("p2", "p3"))
        self.assertEqual(commits[1].author, "Unknown")
        self.assertEqual(commits[1].stats, DiffStats())
        argv = runner.run.call_args[0][0].argv
        self.assertIn("HEAD...develop", argv)
        self.assertEqual(argv[argv.index("-n") + 1], "5")

    def test_parse_commit_log_empty(self):
        self.assertEqual(parse_commit_log(""), [])


# ============================================================
# File content
# ============================================================


class TestFileContent(TempRepoTestCase):
    """Tests for DiffCaptureService.file_content."""

    def test_worktree_read(self):
        self.write("a.txt", "hello\n")
        service, runner = make_service({})

        content = asyncio.run(service.file_content(str(self.root), "a.txt", ContentRef.WORKTREE))

        self.assertEqual(content, "hello\n")
        runner.run.assert_not_awaited()

    def test_worktree_too_large(self):
        self.write("a.txt", "x" * 64)
        service, _ = make_service({})

        with self.assertRaises(FileTooLargeError):
            asyncio.run(service.file_content(str(self.root), "a.txt", ContentRef.WORKTREE, max_bytes=10))

    def test_index_and_head_objects(self):
        service, runner = make_service({("show",): ok("content\n")})

        asyncio.run(service.file_content(str(self.root), "a.txt", ContentRef.INDEX))
        asyncio.run(service.file_content(str(self.root), "a.txt", ContentRef.HEAD))

        objects = [c.args[0].argv[-1] for c in runner.run.call_args_list]
        self.assertEqual(objects, [":a.txt", "HEAD:a.txt"])

    def test_missing_object_raises(self):
        service, _ = make_service({("show",): fail("fatal: path 'a.txt' does not exist in 'HEAD'")})

        with self.assertRaises(GitCommandError):
            asyncio.run(service.file_content(str(self.root), "a.txt"))


class TestUntrackedFileDiff(unittest.TestCase):
    """Tests for untracked_file_diff."""

    def test_header_and_hunk(self):
        diff = untracked_file_diff("docs/a.md", "one\ntwo\n")

        self.assertEqual(
            diff,
            "diff --git a/docs/a.md b/docs/a.md\n"
            "new file mode 100644\n"
            "index 0000000..0000000\n"
            "--- /dev/null\n"
            "+++ b/docs/a.md\n"
            "@@ -0,0 +1,2 @@\n"
            "+one\n"
            "+two\n",
        )

    def test_empty_file_has_no_hunk(self):
        self.assertNotIn("@@", untracked_file_diff("empty.txt", ""))

    def test_control_characters_stay_inside_lines(self):
        diff = untracked_file_diff("a.txt", "x\ry\n\x0c\n")

        self.assertTrue(diff.endswith("@@ -0,0 +1,2 @@\n+x\ry\n+\x0c\n"))

    def test_trailing_carriage_return_without_newline(self):
        diff = untracked_file_diff("a.txt", "a\r")

        self.assertTrue(diff.endswith("@@ -0,0 +1,1 @@\n+a\r\n\\ No newline at end of file\n"))


if __name__ == "__main__":
    unittest.main()

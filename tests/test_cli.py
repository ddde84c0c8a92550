"""Tests for the hunksync command line.

Tests cover:
- parse-diff JSON and text output, with and without classification
- Argument validation and settings errors
- status, groups and diff against a scratch repository
"""

import io
import json
import shutil
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from hunksync.__main__ import main

DIFF = """diff --git a/app.py b/app.py
--- a/app.py
+++ b/app.py
@@ -3,0 +4,2 @@ def main():
+    setup()
+    run()
"""


def run_main(argv: list[str]) -> tuple[int, str, str]:
    with patch("sys.stdout", new_callable=io.StringIO) as out, patch("sys.stderr", new_callable=io.StringIO) as err:
        code = main(argv)
    return code, out.getvalue(), err.getvalue()


class TempDirTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.dir = Path(self._tmp.name)

    def tearDown(self):
        self._tmp.cleanup()

    def write(self, name: str, content: str) -> str:
        path = self.dir / name
        path.write_text(content)
        return str(path)


class TestParseDiffCommand(TempDirTestCase):
    """Tests for the parse-diff command."""

    def test_json_output(self):
        diff_file = self.write("change.diff", DIFF)

        code, out, _ = run_main(["parse-diff", "--input-file", diff_file])

        self.assertEqual(code, 0)
        hunks = json.loads(out)["hunks"]
        self.assertEqual(len(hunks), 1)
        self.assertEqual(hunks[0]["file_path"], "app.py")
        self.assertEqual(hunks[0]["new_count"], 2)
        self.assertEqual(
            [line["new_line_number"] for line in hunks[0]["lines"]],
            [4, 5],
        )
        self.assertNotIn("match", hunks[0])

    def test_classification_against_staged_diff(self):
        diff_file = self.write("change.diff", DIFF)
        staged_file = self.write("staged.diff", DIFF)

        code, out, _ = run_main(["parse-diff", "--input-file", diff_file, "--staged-diff", staged_file])

        self.assertEqual(code, 0)
        match = json.loads(out)["hunks"][0]["match"]
        self.assertEqual(match["state"], "staged")
        self.assertEqual(match["staged_header"], "@@ -3,0 +4,2 @@ def main():")

    def test_text_output(self):
        diff_file = self.write("change.diff", DIFF)

        code, out, _ = run_main(["parse-diff", "--input-file", diff_file, "--format", "text"])

        self.assertEqual(code, 0)
        self.assertIn("Total hunks: 1", out)
        self.assertIn("Hunk 1: app.py @@ -3,0 +4,2 @@ def main():", out)

    def test_empty_input(self):
        diff_file = self.write("empty.diff", "")

        code, out, _ = run_main(["parse-diff", "--input-file", diff_file, "--format", "text"])

        self.assertEqual(code, 0)
        self.assertIn("Empty diff", out)

    def test_missing_input_file(self):
        code, _, err = run_main(["parse-diff", "--input-file", str(self.dir / "missing.diff")])

        self.assertEqual(code, 1)
        self.assertIn("Failed to read diff", err)


class TestArgumentHandling(TempDirTestCase):
    """Tests for top-level argument and settings handling."""

    def test_no_command(self):
        code, _, _ = run_main([])

        self.assertEqual(code, 1)

    def test_invalid_settings_file(self):
        config = self.write("settings.yaml", "debounce_ms: -5\n")

        code, _, err = run_main(["--config", config, "parse-diff", "--input-file", config])

        self.assertEqual(code, 1)
        self.assertIn("Invalid settings", err)

    def test_stage_line_requires_one_target(self):
        code, out, _ = run_main(["stage-line", "a.py", "--added", "1", "--deleted", "2"])

        self.assertEqual(code, 1)
        self.assertIn("exactly one", out)


@unittest.skipUnless(shutil.which("git"), "git executable not available")
class TestRepositoryCommands(TempDirTestCase):
    """Commands that read a real repository."""

    def setUp(self):
        super().setUp()
        for args in (
            ["init", "-q"],
            ["config", "user.email", "dev@example.com"],
            ["config", "user.name", "Dev"],
            ["config", "commit.gpgsign", "false"],
        ):
            self.git(*args)
        self.write("app.py", "one\ntwo\n")
        self.git("add", "app.py")
        self.git("commit", "-q", "-m", "initial")
        self.write("app.py", "one\ntwo\nthree\n")
        self.write("notes.txt", "a\nb\n")

    def git(self, *args: str) -> None:
        subprocess.run(["git", *args], cwd=self.dir, check=True, capture_output=True)

    def test_status(self):
        code, out, _ = run_main(["status", "--repo-path", str(self.dir)])

        self.assertEqual(code, 0)
        data = json.loads(out)
        self.assertEqual(data["state"], "modified")
        self.assertEqual(data["modified"], 1)
        self.assertEqual(data["untracked"], 1)
        self.assertEqual((data["ahead"], data["behind"]), (0, 0))

    def test_groups(self):
        code, out, _ = run_main(["groups", "--repo-path", str(self.dir)])

        self.assertEqual(code, 0)
        data = json.loads(out)
        self.assertEqual([e["path"] for e in data["unstaged"]], ["app.py"])
        self.assertEqual(data["untracked"], [{"path": "notes.txt", "additions": 2, "deletions": 0, "type": "added"}])

    def test_working_tree_diff(self):
        code, out, _ = run_main(["diff", "--repo-path", str(self.dir)])

        self.assertEqual(code, 0)
        data = json.loads(out)
        self.assertEqual(data["changed_files"], ["app.py", "notes.txt"])
        self.assertEqual(data["stats"], {"additions": 3, "deletions": 0, "files_changed": 2})

    def test_status_missing_path(self):
        code, out, _ = run_main(["status", "--repo-path", str(self.dir / "nope")])

        self.assertEqual(code, 1)
        self.assertIn("not found", out)


if __name__ == "__main__":
    unittest.main()

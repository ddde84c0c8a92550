"""Zero-context patch synthesis.

Builds minimal unified-diff patches from parsed hunks so a single line or a
single hunk can be applied with ``git apply --unidiff-zero``. The patch text
is the same for every direction; staging, unstaging and restoring differ
only in the apply flags.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from hunksync.domain.diff import NO_NEWLINE_MARKER, DiffLineType, Hunk, HunkLine

_BINARY_PATTERN = re.compile(r"^Binary files .* differ$", re.MULTILINE)


class PatchError(Exception):
    """Raised when a patch cannot be synthesized from the given hunk."""

    pass


@dataclass(frozen=True)
class TargetLine:
    """Identifies one changed line for single-line staging.

    Only the number that applies to ``line_type`` is meaningful: the old
    number for deleted lines, the new number for added lines.
    """

    line_type: DiffLineType
    old_line_number: int | None = None
    new_line_number: int | None = None

    @classmethod
    def added(cls, new_line_number: int) -> TargetLine:
        return cls(DiffLineType.ADDED, new_line_number=new_line_number)

    @classmethod
    def deleted(cls, old_line_number: int) -> TargetLine:
        return cls(DiffLineType.DELETED, old_line_number=old_line_number)

    def matches(self, line: HunkLine) -> bool:
        if line.line_type != self.line_type:
            return False
        if self.old_line_number is not None and line.old_line_number == self.old_line_number:
            return True
        if self.new_line_number is not None and line.new_line_number == self.new_line_number:
            return True
        return False


def is_binary_diff(diff_text: str) -> bool:
    """Check for git's binary-file markers in diff output."""
    return bool(_BINARY_PATTERN.search(diff_text)) or "GIT binary patch" in diff_text


def find_hunk_for_line(hunks: list[Hunk], target: TargetLine) -> Hunk | None:
    """Return the first hunk containing the target line."""
    for hunk in hunks:
        if any(target.matches(line) for line in hunk.lines):
            return hunk
    return None


def _body(lines: list[HunkLine]) -> list[str]:
    body: list[str] = []
    for line in lines:
        body.append(line.raw)
        if line.no_newline:
            body.append(NO_NEWLINE_MARKER)
    return body


def _wrap(file_path: str, header: str, body: list[str]) -> str:
    return "\n".join(
        [
            f"diff --git a/{file_path} b/{file_path}",
            f"--- a/{file_path}",
            f"+++ b/{file_path}",
            header,
            *body,
            "",
        ]
    )


def single_line_patch(hunk: Hunk, target: TargetLine, file_path: str) -> str:
    """Build a zero-context patch touching exactly one line of a hunk.

    For a deleted line the header is ``@@ -<old>,1 +<new>,0 @@`` where
    ``<new>`` is the new-file position the line would have occupied. For an
    added line it is ``@@ -<old>,0 +<new>,1 @@``; an added line has no old
    number of its own, so ``<old>`` is the hunk's old start plus the number
    of non-added lines that precede it.

    Args:
        hunk: Parsed hunk that contains the target
        target: The line to extract
        file_path: Repository-relative path written into the patch headers

    Returns:
        Patch text ending with a newline

    Raises:
        PatchError: If the target line is not in the hunk
    """
    old_before = 0
    new_before = 0
    found: HunkLine | None = None
    for line in hunk.lines:
        if target.matches(line):
            found = line
            break
        if line.line_type != DiffLineType.ADDED:
            old_before += 1
        if line.line_type != DiffLineType.DELETED:
            new_before += 1

    if found is None:
        raise PatchError("Target line not found in hunk")

    if found.line_type == DiffLineType.DELETED:
        header = f"@@ -{found.old_line_number},1 +{hunk.new_start + new_before},0 @@"
    else:
        header = f"@@ -{hunk.old_start + old_before},0 +{found.new_line_number},1 @@"

    return _wrap(file_path, header, _body([found]))


def hunk_patch(hunk: Hunk, file_path: str) -> str:
    """Wrap a whole hunk, header verbatim, into an applicable patch."""
    return _wrap(file_path, hunk.header, _body(list(hunk.lines)))

"""Domain models for unified diff parsing.

Parse-once pattern: raw diff text produced by git is parsed into type-safe
models at the boundary. Provides HunkLine, Hunk, DiffStats and DiffResult
with factory methods for deterministic parsing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum


HUNK_HEADER_PATTERN = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")

# File-level metadata emitted by git between "diff --git" and the first hunk
_METADATA_PREFIXES = (
    "diff --git",
    "index ",
    "--- ",
    "+++ ",
    "old mode",
    "new mode",
    "new file mode",
    "deleted file mode",
    "similarity index",
    "dissimilarity index",
    "rename from",
    "rename to",
    "copy from",
    "copy to",
    "Binary files",
)

NO_NEWLINE_MARKER = "\\ No newline at end of file"


# ============================================================
# Domain Models
# ============================================================


class DiffLineType(Enum):
    """Type of line in a hunk body."""

    ADDED = "added"
    DELETED = "deleted"
    CONTEXT = "context"


@dataclass(frozen=True)
class HunkLine:
    """A single line from a hunk body with its old/new numbering.

    Attributes:
        text: The line content with the +/-/space marker stripped
        raw: The line exactly as it appeared in the diff, marker included
        line_type: Whether this is an added, deleted, or context line
        old_line_number: 1-based line in the old file (None for added lines)
        new_line_number: 1-based line in the new file (None for deleted lines)
        no_newline: The line is the last of its file and has no trailing newline
    """

    text: str
    raw: str
    line_type: DiffLineType
    old_line_number: int | None = None
    new_line_number: int | None = None
    no_newline: bool = False

    @property
    def is_changed(self) -> bool:
        """Check if this line represents a change (added or deleted)."""
        return self.line_type in (DiffLineType.ADDED, DiffLineType.DELETED)

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "type": self.line_type.value,
            "old_line_number": self.old_line_number,
            "new_line_number": self.new_line_number,
        }


@dataclass(frozen=True)
class Hunk:
    """A contiguous block of a unified diff with its own line-range header.

    Hunks are value objects: they are freely copyable and never mutated once
    parsed. ``old_count``/``new_count`` are the counts declared by the header.
    """

    header: str
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: tuple[HunkLine, ...] = ()
    file_path: str = ""

    # --------------------------------------------------------
    # Factory Methods
    # --------------------------------------------------------

    @classmethod
    def from_header(cls, header: str, file_path: str = "") -> Hunk | None:
        """Build an empty hunk from an ``@@ -a[,b] +c[,d] @@`` header.

        Omitted counts default to 1, as in git's own output.

        Returns:
            Hunk with no lines, or None if the header does not match
        """
        match = HUNK_HEADER_PATTERN.match(header)
        if not match:
            return None
        return cls(
            header=header,
            old_start=int(match.group(1)),
            old_count=int(match.group(2)) if match.group(2) is not None else 1,
            new_start=int(match.group(3)),
            new_count=int(match.group(4)) if match.group(4) is not None else 1,
            file_path=file_path,
        )

    def to_dict(self) -> dict:
        """Convert hunk to dictionary for JSON serialization."""
        return {
            "file_path": self.file_path,
            "header": self.header,
            "old_start": self.old_start,
            "old_count": self.old_count,
            "new_start": self.new_start,
            "new_count": self.new_count,
            "signature": self.signature,
            "lines": [line.to_dict() for line in self.lines],
        }

    # --------------------------------------------------------
    # Public API
    # --------------------------------------------------------

    @property
    def signature(self) -> str:
        """Content signature of the hunk's changed lines.

        Context lines are excluded so the same edit yields the same signature
        whether it was captured with zero or full context.
        """
        return hunk_signature(self.lines)


def hunk_signature(lines: tuple[HunkLine, ...] | list[HunkLine]) -> str:
    """Join the raw text of added/deleted lines, in order, one per row."""
    return "\n".join(line.raw for line in lines if line.is_changed)


# ============================================================
# Hunk Parser
# ============================================================


class _HunkBuilder:
    """Accumulates body lines for one hunk while tracking old/new counters."""

    def __init__(self, template: Hunk):
        self.template = template
        self.lines: list[HunkLine] = []
        self.old_line = template.old_start
        self.new_line = template.new_start
        self.old_remaining = template.old_count
        self.new_remaining = template.new_count

    @property
    def exhausted(self) -> bool:
        return self.old_remaining <= 0 and self.new_remaining <= 0

    def add(self, line: str) -> None:
        marker = line[:1]
        if marker == "+":
            self.lines.append(
                HunkLine(
                    text=line[1:],
                    raw=line,
                    line_type=DiffLineType.ADDED,
                    new_line_number=self.new_line,
                )
            )
            self.new_line += 1
            self.new_remaining -= 1
        elif marker == "-":
            self.lines.append(
                HunkLine(
                    text=line[1:],
                    raw=line,
                    line_type=DiffLineType.DELETED,
                    old_line_number=self.old_line,
                )
            )
            self.old_line += 1
            self.old_remaining -= 1
        else:
            # Context; git may strip the leading space of an empty context line
            self.lines.append(
                HunkLine(
                    text=line[1:] if marker == " " else line,
                    raw=line,
                    line_type=DiffLineType.CONTEXT,
                    old_line_number=self.old_line,
                    new_line_number=self.new_line,
                )
            )
            self.old_line += 1
            self.new_line += 1
            self.old_remaining -= 1
            self.new_remaining -= 1

    def mark_no_newline(self) -> None:
        if self.lines:
            self.lines[-1] = replace(self.lines[-1], no_newline=True)

    def build(self) -> Hunk:
        t = self.template
        return Hunk(
            header=t.header,
            old_start=t.old_start,
            old_count=t.old_count,
            new_start=t.new_start,
            new_count=t.new_count,
            lines=tuple(self.lines),
            file_path=t.file_path,
        )


def split_lines(text: str) -> list[str]:
    """Split on ``\\n`` only, dropping the empty element after a final newline.

    Unlike str.splitlines, carriage returns, form feeds and other Unicode
    line boundaries stay inside the line.
    """
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def _file_path_from_diff_header(line: str) -> str:
    match = re.match(r'diff --git "?a/([^"]*)"? "?b/([^"]*)"?', line)
    if not match:
        match = re.match(r"diff --git a/(.*?) b/(.*?)$", line)
    return match.group(2).strip() if match else ""


def parse_hunks(diff_text: str) -> list[Hunk]:
    """Parse unified diff text into an ordered list of hunks.

    Scans line by line. A hunk header starts a new hunk and closes the
    previous one. File metadata lines (``diff --git``, ``index``, ``---``,
    ``+++``, mode and rename lines) are discarded; ``diff --git`` also sets
    the file path recorded on subsequent hunks. Inside a hunk, ``+`` lines
    are added, ``-`` lines deleted, anything else context. The
    ``\\ No newline at end of file`` marker does not advance the counters;
    it sets ``no_newline`` on the line before it. Lines are split on
    ``\\n`` only, so a ``\\r`` or form feed inside a line is content.

    While a hunk still expects lines according to its header, every line is
    body content, so a deleted ``-- x`` line (``--- x`` in the diff) is not
    mistaken for a file header. Once the declared counts are consumed,
    metadata and blank separator lines are skipped.

    Args:
        diff_text: Raw output of git diff/show, any context depth

    Returns:
        Hunks in the order they appear
    """
    hunks: list[Hunk] = []
    current: _HunkBuilder | None = None
    current_file = ""

    for line in split_lines(diff_text):
        if line.startswith("@@"):
            template = Hunk.from_header(line, current_file)
            if template is not None:
                if current is not None:
                    hunks.append(current.build())
                current = _HunkBuilder(template)
                continue

        if line.startswith(NO_NEWLINE_MARKER[:2]):
            if current is not None:
                current.mark_no_newline()
            continue

        in_body = current is not None and not current.exhausted

        if not in_body and line.startswith(_METADATA_PREFIXES):
            if line.startswith("diff --git"):
                if current is not None:
                    hunks.append(current.build())
                    current = None
                current_file = _file_path_from_diff_header(line)
            continue

        if current is None:
            continue

        if not in_body and not line:
            continue

        current.add(line)

    if current is not None:
        hunks.append(current.build())

    return hunks


# ============================================================
# Diff statistics and results
# ============================================================


@dataclass(frozen=True)
class DiffStats:
    """Aggregate line and file counts for a diff."""

    additions: int = 0
    deletions: int = 0
    files_changed: int = 0

    # --------------------------------------------------------
    # Factory Methods
    # --------------------------------------------------------

    @classmethod
    def from_shortstat(cls, output: str) -> DiffStats:
        """Parse ``git diff --shortstat`` output.

        Example input: `` 3 files changed, 10 insertions(+), 2 deletions(-)``.
        Empty or whitespace-only output means no changes.
        """
        text = output.strip()
        if not text:
            return cls()

        files = re.search(r"(\d+)\s+files?\s+changed", text)
        additions = re.search(r"(\d+)\s+insertions?\(\+\)", text)
        deletions = re.search(r"(\d+)\s+deletions?\(-\)", text)
        return cls(
            additions=int(additions.group(1)) if additions else 0,
            deletions=int(deletions.group(1)) if deletions else 0,
            files_changed=int(files.group(1)) if files else 0,
        )

    @classmethod
    def from_numstat(cls, output: str) -> DiffStats:
        """Sum ``--numstat`` rows; binary files (``-``) count as 0/0."""
        additions = deletions = files = 0
        for line in output.splitlines():
            if not line.strip():
                continue
            parts = line.split("\t")
            if len(parts) < 3:
                continue
            additions += parse_numstat_count(parts[0])
            deletions += parse_numstat_count(parts[1])
            files += 1
        return cls(additions=additions, deletions=deletions, files_changed=files)

    def __add__(self, other: DiffStats) -> DiffStats:
        return DiffStats(
            additions=self.additions + other.additions,
            deletions=self.deletions + other.deletions,
            files_changed=self.files_changed + other.files_changed,
        )

    def to_dict(self) -> dict:
        return {
            "additions": self.additions,
            "deletions": self.deletions,
            "files_changed": self.files_changed,
        }


def parse_numstat_count(value: str) -> int:
    """Parse one numstat column; ``-`` (binary) and garbage become 0."""
    value = value.strip()
    if value == "-":
        return 0
    try:
        return int(value)
    except ValueError:
        return 0


@dataclass(frozen=True)
class DiffResult:
    """The result of one diff capture.

    Immutable. Results are never merged implicitly; use combine().
    """

    diff_text: str
    stats: DiffStats = field(default_factory=DiffStats)
    changed_files: tuple[str, ...] = ()
    before_hash: str | None = None
    after_hash: str | None = None

    # --------------------------------------------------------
    # Factory Methods
    # --------------------------------------------------------

    @classmethod
    def combine(cls, results: list[DiffResult]) -> DiffResult:
        """Concatenate diff text, union changed files and sum stats.

        ``files_changed`` of the combined result is the size of the file
        union, so a file present in two inputs is counted once.
        """
        combined_text = "\n\n".join(r.diff_text for r in results if r.diff_text).rstrip()
        files: list[str] = []
        seen: set[str] = set()
        additions = deletions = 0
        for result in results:
            for path in result.changed_files:
                if path not in seen:
                    seen.add(path)
                    files.append(path)
            additions += result.stats.additions
            deletions += result.stats.deletions
        return cls(
            diff_text=combined_text,
            stats=DiffStats(additions=additions, deletions=deletions, files_changed=len(files)),
            changed_files=tuple(files),
        )

    def to_dict(self) -> dict:
        return {
            "diff": self.diff_text,
            "stats": self.stats.to_dict(),
            "changed_files": list(self.changed_files),
            "before_hash": self.before_hash,
            "after_hash": self.after_hash,
        }


@dataclass(frozen=True)
class CommitInfo:
    """One commit from branch history with its numstat totals."""

    hash: str
    parents: tuple[str, ...]
    message: str
    date: str
    author: str
    stats: DiffStats = field(default_factory=DiffStats)

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "parents": list(self.parents),
            "message": self.message,
            "date": self.date,
            "author": self.author,
            "stats": self.stats.to_dict(),
        }

"""Domain models for working-tree file grouping.

Classifies porcelain short-status output into staged, unstaged and untracked
groups and joins per-path numstat counts onto each entry.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from hunksync.domain.diff import parse_numstat_count


class WorkingTreeScope(Enum):
    """Which slice of the working tree a diff capture covers."""

    ALL = "all"
    STAGED = "staged"
    UNSTAGED = "unstaged"
    UNTRACKED = "untracked"


class FileChangeType(Enum):
    """Kind of change recorded for a path."""

    ADDED = "added"
    DELETED = "deleted"
    MODIFIED = "modified"
    RENAMED = "renamed"

    @classmethod
    def from_status_code(cls, code: str) -> FileChangeType:
        """Map one porcelain status character to a change type.

        ``A`` is added, ``D`` deleted, ``R``/``C`` renamed; everything else
        (``M``, ``T``, ``U``...) is treated as modified.
        """
        if code == "A":
            return cls.ADDED
        if code == "D":
            return cls.DELETED
        if code in ("R", "C"):
            return cls.RENAMED
        return cls.MODIFIED


@dataclass(frozen=True)
class WorkingTreeEntry:
    """One path within a working-tree group.

    Attributes:
        path: Repository-relative path (destination path for renames)
        additions: Lines added
        deletions: Lines deleted
        change_type: Kind of change
        is_new: Only set for staged additions: True when the path does not
            exist in the last commit
    """

    path: str
    additions: int = 0
    deletions: int = 0
    change_type: FileChangeType = FileChangeType.MODIFIED
    is_new: bool | None = None

    def to_dict(self) -> dict:
        data = {
            "path": self.path,
            "additions": self.additions,
            "deletions": self.deletions,
            "type": self.change_type.value,
        }
        if self.is_new is not None:
            data["is_new"] = self.is_new
        return data


@dataclass
class WorkingTreeGroups:
    """Staged, unstaged and untracked entries, each in status order."""

    staged: list[WorkingTreeEntry] = field(default_factory=list)
    unstaged: list[WorkingTreeEntry] = field(default_factory=list)
    untracked: list[WorkingTreeEntry] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "staged": [e.to_dict() for e in self.staged],
            "unstaged": [e.to_dict() for e in self.unstaged],
            "untracked": [e.to_dict() for e in self.untracked],
        }


@dataclass(frozen=True)
class StatusEntry:
    """A parsed ``XY path`` row from ``git status --porcelain=v1``."""

    index_status: str
    worktree_status: str
    path: str

    @property
    def is_untracked(self) -> bool:
        return self.index_status == "?" and self.worktree_status == "?"


# ============================================================
# Parsers
# ============================================================


_BRACE_RENAME_PATTERN = re.compile(r"^(.*)\{.*=>\s*(.*)\}(.*)$")


def normalize_numstat_path(raw: str) -> str:
    """Collapse numstat rename syntax to the destination path.

    ``old.txt => new.txt`` becomes ``new.txt`` and ``a/{old => new}/b``
    becomes ``a/new/b``. Plain paths are returned trimmed.
    """
    text = raw.strip()
    if not text:
        return text

    brace = _BRACE_RENAME_PATTERN.match(text)
    if brace:
        return f"{brace.group(1)}{brace.group(2)}{brace.group(3)}".strip()

    arrow = text.rfind("=>")
    if arrow != -1:
        return text[arrow + 2 :].strip()
    return text


def parse_numstat_by_path(output: str) -> dict[str, tuple[int, int]]:
    """Parse ``--numstat`` output into ``{normalized_path: (additions, deletions)}``."""
    stats: dict[str, tuple[int, int]] = {}
    for line in output.strip().splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        path = normalize_numstat_path("\t".join(parts[2:]))
        if not path:
            continue
        stats[path] = (parse_numstat_count(parts[0]), parse_numstat_count(parts[1]))
    return stats


def parse_status_entries(output: str) -> list[StatusEntry]:
    """Parse porcelain v1 output into status entries.

    Rename rows (``R  old -> new``) report the destination path. Rows too
    short to carry a path are skipped.
    """
    entries: list[StatusEntry] = []
    for raw_line in output.split("\n"):
        line = raw_line.rstrip()
        if not line:
            continue

        if line.startswith("?? "):
            path = line[3:].strip()
            if path:
                entries.append(StatusEntry("?", "?", path))
            continue

        if len(line) < 4:
            continue

        path = line[3:].strip()
        if " -> " in path:
            path = path.split(" -> ")[-1].strip() or path
        entries.append(StatusEntry(line[0], line[1], path))
    return entries


def build_groups(
    entries: list[StatusEntry],
    staged_stats: dict[str, tuple[int, int]],
    unstaged_stats: dict[str, tuple[int, int]],
) -> WorkingTreeGroups:
    """Classify status entries into groups without touching the filesystem.

    Untracked entries get zero counts here; the caller fills in line counts
    and the ``is_new`` flag for staged additions.
    """
    groups = WorkingTreeGroups()
    for entry in entries:
        if entry.is_untracked:
            groups.untracked.append(
                WorkingTreeEntry(path=entry.path, change_type=FileChangeType.ADDED)
            )
            continue

        if entry.index_status != " ":
            additions, deletions = staged_stats.get(entry.path, (0, 0))
            groups.staged.append(
                WorkingTreeEntry(
                    path=entry.path,
                    additions=additions,
                    deletions=deletions,
                    change_type=FileChangeType.from_status_code(entry.index_status),
                )
            )
        if entry.worktree_status != " ":
            additions, deletions = unstaged_stats.get(entry.path, (0, 0))
            groups.unstaged.append(
                WorkingTreeEntry(
                    path=entry.path,
                    additions=additions,
                    deletions=deletions,
                    change_type=FileChangeType.from_status_code(entry.worktree_status),
                )
            )
    return groups

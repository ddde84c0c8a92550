"""Domain models for workspace status snapshots.

A StatusSnapshot is the summary a consumer shows for one workspace: dirty
counts, ahead/behind against the upstream branch, and a primary state
chosen by a strict priority order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum


class StatusState(Enum):
    """Primary (or secondary) state of a workspace."""

    CLEAN = "clean"
    MODIFIED = "modified"
    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"
    CONFLICT = "conflict"
    UNTRACKED = "untracked"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class PorcelainSummary:
    """Counts derived from ``git status --porcelain``.

    This is the cheap check: one fast process call that tells whether a
    cached snapshot is still current.
    """

    staged: int = 0
    modified: int = 0
    untracked: int = 0
    conflicted: int = 0

    # --------------------------------------------------------
    # Factory Methods
    # --------------------------------------------------------

    @classmethod
    def from_porcelain(cls, output: str) -> PorcelainSummary:
        """Count status rows by kind.

        ``??`` rows are untracked. Otherwise a non-blank first column counts
        as staged and a non-blank second column as modified. ``U`` in either
        column, ``AA`` and ``DD`` are conflicts.
        """
        staged = modified = untracked = conflicted = 0
        for line in output.split("\n"):
            if not line:
                continue
            if line.startswith("??"):
                untracked += 1
                continue
            if len(line) < 2:
                continue
            x, y = line[0], line[1]
            if x not in (" ", "?"):
                staged += 1
            if y not in (" ", "?"):
                modified += 1
            if x == "U" or y == "U" or (x == "A" and y == "A") or (x == "D" and y == "D"):
                conflicted += 1
        return cls(staged=staged, modified=modified, untracked=untracked, conflicted=conflicted)

    # --------------------------------------------------------
    # Public API
    # --------------------------------------------------------

    @property
    def has_uncommitted_changes(self) -> bool:
        return self.staged > 0 or self.modified > 0

    @property
    def has_untracked_files(self) -> bool:
        return self.untracked > 0

    @property
    def has_conflicts(self) -> bool:
        return self.conflicted > 0

    @property
    def has_changes(self) -> bool:
        return self.has_uncommitted_changes or self.has_untracked_files


@dataclass(frozen=True)
class AheadBehind:
    """Commit counts relative to the upstream branch."""

    ahead: int = 0
    behind: int = 0

    @classmethod
    def from_rev_list(cls, output: str) -> AheadBehind:
        """Parse ``git rev-list --left-right --count upstream...HEAD``.

        The output is ``<behind>\\t<ahead>``; anything unparseable is 0.
        """
        parts = output.strip().split("\t")
        behind = _parse_int(parts[0]) if parts else 0
        ahead = _parse_int(parts[1]) if len(parts) > 1 else 0
        return cls(ahead=ahead, behind=behind)


def _parse_int(value: str) -> int:
    match = re.match(r"\s*(\d+)", value)
    return int(match.group(1)) if match else 0


# ============================================================
# State derivation
# ============================================================


def derive_state(
    *,
    has_conflicts: bool,
    has_uncommitted_changes: bool,
    has_untracked_files: bool,
    ahead: int,
    behind: int,
) -> tuple[StatusState, tuple[StatusState, ...]]:
    """Pick the primary state and subordinate states.

    Priority: conflict > diverged > modified > ahead > behind > untracked >
    clean. Secondary states record conditions hidden by the primary one.

    Returns:
        Tuple of (primary state, secondary states)
    """
    secondary: list[StatusState] = []

    if has_conflicts:
        state = StatusState.CONFLICT
    elif ahead > 0 and behind > 0:
        state = StatusState.DIVERGED
    elif has_uncommitted_changes:
        state = StatusState.MODIFIED
        if ahead > 0:
            secondary.append(StatusState.AHEAD)
        if behind > 0:
            secondary.append(StatusState.BEHIND)
    elif ahead > 0:
        state = StatusState.AHEAD
        if has_untracked_files:
            secondary.append(StatusState.UNTRACKED)
    elif behind > 0:
        state = StatusState.BEHIND
        if has_untracked_files:
            secondary.append(StatusState.UNTRACKED)
    elif has_untracked_files:
        state = StatusState.UNTRACKED
    else:
        state = StatusState.CLEAN

    return state, tuple(secondary)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class StatusSnapshot:
    """Status of one workspace at one point in time.

    Every numeric field is explicit; zero is a valid value and means
    "none", never "unknown". Use the ``unknown`` factory for fetch failures.
    """

    state: StatusState
    staged: int = 0
    modified: int = 0
    untracked: int = 0
    conflicted: int = 0
    ahead: int = 0
    behind: int = 0
    additions: int = 0
    deletions: int = 0
    files_changed: int = 0
    commit_additions: int = 0
    commit_deletions: int = 0
    commit_files_changed: int = 0
    total_commits: int = 0
    has_uncommitted_changes: bool = False
    has_untracked_files: bool = False
    is_rebasing: bool = False
    secondary_states: tuple[StatusState, ...] = ()
    last_checked: str = field(default_factory=_now_iso)

    # --------------------------------------------------------
    # Factory Methods
    # --------------------------------------------------------

    @classmethod
    def unknown(cls) -> StatusSnapshot:
        return cls(state=StatusState.UNKNOWN)

    @classmethod
    def build(
        cls,
        summary: PorcelainSummary,
        counts: AheadBehind,
        *,
        additions: int = 0,
        deletions: int = 0,
        files_changed: int = 0,
        commit_additions: int = 0,
        commit_deletions: int = 0,
        commit_files_changed: int = 0,
        total_commits: int = 0,
        is_rebasing: bool = False,
    ) -> StatusSnapshot:
        """Assemble a snapshot from fetched parts, deriving the state."""
        state, secondary = derive_state(
            has_conflicts=summary.has_conflicts,
            has_uncommitted_changes=summary.has_uncommitted_changes,
            has_untracked_files=summary.has_untracked_files,
            ahead=counts.ahead,
            behind=counts.behind,
        )
        return cls(
            state=state,
            staged=summary.staged,
            modified=summary.modified,
            untracked=summary.untracked,
            conflicted=summary.conflicted,
            ahead=counts.ahead,
            behind=counts.behind,
            additions=additions,
            deletions=deletions,
            files_changed=files_changed,
            commit_additions=commit_additions,
            commit_deletions=commit_deletions,
            commit_files_changed=commit_files_changed,
            total_commits=total_commits,
            has_uncommitted_changes=summary.has_uncommitted_changes,
            has_untracked_files=summary.has_untracked_files,
            is_rebasing=is_rebasing,
            secondary_states=secondary,
        )

    # --------------------------------------------------------
    # Public API
    # --------------------------------------------------------

    @property
    def is_clean(self) -> bool:
        return (
            self.state != StatusState.UNKNOWN
            and not self.has_uncommitted_changes
            and not self.has_untracked_files
            and self.conflicted == 0
        )

    @property
    def is_ready_to_merge(self) -> bool:
        """Ahead of upstream with nothing uncommitted and nothing to pull."""
        return (
            self.ahead > 0
            and not self.has_uncommitted_changes
            and not self.has_untracked_files
            and self.behind == 0
        )

    def matches_summary(self, summary: PorcelainSummary) -> bool:
        """Compare the dirty flags and counts against a fresh porcelain summary."""
        cached_has_changes = self.has_uncommitted_changes or self.has_untracked_files
        if cached_has_changes != summary.has_changes:
            return False
        return (
            self.staged == summary.staged
            and self.modified == summary.modified
            and self.untracked == summary.untracked
            and self.conflicted == summary.conflicted
        )

    def with_ahead_behind(self, counts: AheadBehind) -> StatusSnapshot:
        """Copy with new ahead/behind counts and the state re-derived."""
        state, secondary = derive_state(
            has_conflicts=self.conflicted > 0,
            has_uncommitted_changes=self.has_uncommitted_changes,
            has_untracked_files=self.has_untracked_files,
            ahead=counts.ahead,
            behind=counts.behind,
        )
        return replace(
            self,
            ahead=counts.ahead,
            behind=counts.behind,
            state=state,
            secondary_states=secondary,
            last_checked=_now_iso(),
        )

    def to_dict(self) -> dict:
        """Convert snapshot to dictionary for JSON serialization."""
        return {
            "state": self.state.value,
            "staged": self.staged,
            "modified": self.modified,
            "untracked": self.untracked,
            "conflicted": self.conflicted,
            "clean": self.is_clean,
            "ahead": self.ahead,
            "behind": self.behind,
            "additions": self.additions,
            "deletions": self.deletions,
            "files_changed": self.files_changed,
            "is_ready_to_merge": self.is_ready_to_merge,
            "has_uncommitted_changes": self.has_uncommitted_changes,
            "has_untracked_files": self.has_untracked_files,
            "is_rebasing": self.is_rebasing,
            "secondary_states": [s.value for s in self.secondary_states],
            "commit_additions": self.commit_additions,
            "commit_deletions": self.commit_deletions,
            "commit_files_changed": self.commit_files_changed,
            "total_commits": self.total_commits,
            "last_checked": self.last_checked,
        }

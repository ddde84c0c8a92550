"""Hunk correlation across independently fetched diffs.

The staged and unstaged diffs of a file are captured separately and may
number the same edit differently. A hunk is matched across them by its
content signature, with its position used only to break ties between
identical edits.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from hunksync.domain.diff import Hunk, parse_hunks


class HunkState(Enum):
    """Where a hunk currently lives."""

    STAGED = "staged"
    UNSTAGED = "unstaged"
    UNTRACKED = "untracked"


@dataclass(frozen=True)
class HunkHeaderEntry:
    """Signature-indexed view of one hunk."""

    signature: str
    old_start: int
    new_start: int
    header: str

    @classmethod
    def from_hunk(cls, hunk: Hunk) -> HunkHeaderEntry:
        return cls(
            signature=hunk.signature,
            old_start=hunk.old_start,
            new_start=hunk.new_start,
            header=hunk.header,
        )


@dataclass(frozen=True)
class HunkMatch:
    """Classification of a hunk with the matching headers in each view."""

    state: HunkState
    staged_header: str | None = None
    unstaged_header: str | None = None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "staged_header": self.staged_header,
            "unstaged_header": self.unstaged_header,
        }


def find_matching_header(
    entries: list[HunkHeaderEntry],
    signature: str,
    old_start: int,
    new_start: int,
) -> str | None:
    """Return the header of the entry that best matches a signature and position.

    Candidates are the entries with exactly this signature. A single
    candidate wins outright. Among several, one at exactly
    ``(old_start, new_start)`` wins; otherwise the one with the smallest
    ``|Δold| + |Δnew|``, earliest first on ties.

    Returns:
        Header text, or None when no entry has the signature
    """
    candidates = [e for e in entries if e.signature == signature]
    if not candidates:
        return None
    if len(candidates) == 1:
        return candidates[0].header

    for candidate in candidates:
        if candidate.old_start == old_start and candidate.new_start == new_start:
            return candidate.header

    best = min(
        candidates,
        key=lambda c: abs(c.old_start - old_start) + abs(c.new_start - new_start),
    )
    return best.header


class HunkCorrelator:
    """Classifies hunks against the staged and unstaged views of a file."""

    def __init__(self, staged: list[HunkHeaderEntry], unstaged: list[HunkHeaderEntry]):
        self.staged = staged
        self.unstaged = unstaged

    # --------------------------------------------------------
    # Factory Methods
    # --------------------------------------------------------

    @classmethod
    def from_hunks(cls, staged: list[Hunk], unstaged: list[Hunk]) -> HunkCorrelator:
        return cls(
            staged=[HunkHeaderEntry.from_hunk(h) for h in staged],
            unstaged=[HunkHeaderEntry.from_hunk(h) for h in unstaged],
        )

    @classmethod
    def from_diffs(cls, staged_diff: str, unstaged_diff: str, file_path: str | None = None) -> HunkCorrelator:
        """Build from raw diff text, optionally restricted to one file."""
        staged = parse_hunks(staged_diff)
        unstaged = parse_hunks(unstaged_diff)
        if file_path is not None:
            staged = [h for h in staged if h.file_path == file_path]
            unstaged = [h for h in unstaged if h.file_path == file_path]
        return cls.from_hunks(staged, unstaged)

    # --------------------------------------------------------
    # Public API
    # --------------------------------------------------------

    def staged_header_for(self, hunk: Hunk) -> str | None:
        return find_matching_header(self.staged, hunk.signature, hunk.old_start, hunk.new_start)

    def unstaged_header_for(self, hunk: Hunk) -> str | None:
        return find_matching_header(self.unstaged, hunk.signature, hunk.old_start, hunk.new_start)

    def classify(self, hunk: Hunk) -> HunkMatch:
        """Classify a hunk from a freshly fetched combined diff.

        A hunk found in the unstaged view is unstaged (it still has work to
        stage even if an identical edit is also staged); otherwise one
        found in the staged view is staged; otherwise it is untracked.
        """
        staged_header = self.staged_header_for(hunk)
        unstaged_header = self.unstaged_header_for(hunk)

        if unstaged_header is not None:
            state = HunkState.UNSTAGED
        elif staged_header is not None:
            state = HunkState.STAGED
        else:
            state = HunkState.UNTRACKED

        return HunkMatch(state=state, staged_header=staged_header, unstaged_header=unstaged_header)

    def classify_all(self, hunks: list[Hunk]) -> list[HunkMatch]:
        return [self.classify(h) for h in hunks]

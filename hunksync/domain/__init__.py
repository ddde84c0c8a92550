"""Domain models for hunksync."""

from hunksync.domain.diff import (
    CommitInfo,
    DiffLineType,
    DiffResult,
    DiffStats,
    Hunk,
    HunkLine,
    hunk_signature,
    parse_hunks,
)
from hunksync.domain.settings import SyncSettings
from hunksync.domain.status import (
    AheadBehind,
    PorcelainSummary,
    StatusSnapshot,
    StatusState,
    derive_state,
)
from hunksync.domain.working_tree import (
    FileChangeType,
    WorkingTreeEntry,
    WorkingTreeGroups,
    WorkingTreeScope,
    normalize_numstat_path,
)
from hunksync.domain.workspace import Workspace, WorkspaceRegistry, WorkspaceResolver

__all__ = [
    "AheadBehind",
    "CommitInfo",
    "DiffLineType",
    "DiffResult",
    "DiffStats",
    "FileChangeType",
    "Hunk",
    "HunkLine",
    "PorcelainSummary",
    "StatusSnapshot",
    "StatusState",
    "SyncSettings",
    "WorkingTreeEntry",
    "WorkingTreeGroups",
    "WorkingTreeScope",
    "Workspace",
    "WorkspaceRegistry",
    "WorkspaceResolver",
    "derive_state",
    "hunk_signature",
    "normalize_numstat_path",
    "parse_hunks",
]

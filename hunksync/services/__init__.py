"""Services for hunksync.

Services encapsulate business logic and orchestrate domain models.
They receive dependencies via constructor injection.
"""

from hunksync.services.diff_capture import ContentRef, DiffCaptureService, FileTooLargeError
from hunksync.services.hunk_correlator import (
    HunkCorrelator,
    HunkHeaderEntry,
    HunkMatch,
    HunkState,
    find_matching_header,
)
from hunksync.services.staging import RestoreScope, StagingResult, StagingService
from hunksync.services.status_sync import RebaseKind, StatusListener, StatusSynchronizer

__all__ = [
    "ContentRef",
    "DiffCaptureService",
    "FileTooLargeError",
    "HunkCorrelator",
    "HunkHeaderEntry",
    "HunkMatch",
    "HunkState",
    "RebaseKind",
    "RestoreScope",
    "StagingResult",
    "StagingService",
    "StatusListener",
    "StatusSynchronizer",
    "find_matching_header",
]

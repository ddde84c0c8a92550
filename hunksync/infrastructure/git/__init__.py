"""Git process boundary and patch synthesis."""

from hunksync.infrastructure.git.patch import (
    PatchError,
    TargetLine,
    hunk_patch,
    is_binary_diff,
    single_line_patch,
)
from hunksync.infrastructure.git.runner import (
    GitCommandError,
    GitOperation,
    GitRequest,
    GitResponse,
    ProcessInvoker,
    SubprocessGitRunner,
)

__all__ = [
    "GitCommandError",
    "GitOperation",
    "GitRequest",
    "GitResponse",
    "PatchError",
    "ProcessInvoker",
    "SubprocessGitRunner",
    "TargetLine",
    "hunk_patch",
    "is_binary_diff",
    "single_line_patch",
]

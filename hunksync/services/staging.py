"""Staging service.

Stages, unstages and restores changes at line, hunk, file and repository
granularity. Line and hunk operations synthesize a zero-context patch and
apply it with ``git apply``; file and repository operations call git's
own add/reset/checkout.

Every public method returns a StagingResult and never raises.
"""

from __future__ import annotations

import logging
import tempfile
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Protocol

from hunksync.domain.diff import Hunk, parse_hunks
from hunksync.domain.working_tree import WorkingTreeScope
from hunksync.infrastructure.git.patch import (
    TargetLine,
    find_hunk_for_line,
    hunk_patch,
    is_binary_diff,
    single_line_patch,
)
from hunksync.infrastructure.git.runner import GitOperation, GitRequest, ProcessInvoker
from hunksync.services.diff_capture import DiffCaptureService

logger = logging.getLogger(__name__)

_APPLY_BASE = ("git", "apply", "--unidiff-zero", "--whitespace=nowarn")


@dataclass(frozen=True)
class StagingResult:
    """Outcome of a mutating operation."""

    success: bool
    error: str | None = None

    @classmethod
    def ok(cls) -> StagingResult:
        return cls(success=True)

    @classmethod
    def failure(cls, error: str) -> StagingResult:
        return cls(success=False, error=error)

    def to_dict(self) -> dict:
        data: dict = {"success": self.success}
        if self.error is not None:
            data["error"] = self.error
        return data


class RestoreScope(Enum):
    """Which copy of a hunk a restore discards."""

    STAGED = "staged"
    UNSTAGED = "unstaged"


class CacheInvalidator(Protocol):
    """Anything holding status that goes stale after a mutation."""

    def clear_cache(self, workspace_id: str) -> None:
        ...


class StagingService:
    """Applies stage/unstage/restore operations to one workspace at a time."""

    def __init__(
        self,
        runner: ProcessInvoker,
        diff_capture: DiffCaptureService,
        invalidator: CacheInvalidator | None = None,
    ):
        self.runner = runner
        self.diff_capture = diff_capture
        self.invalidator = invalidator

    # --------------------------------------------------------
    # Public API
    # --------------------------------------------------------

    async def stage_line(
        self,
        path: str,
        workspace_id: str,
        file_path: str,
        target: TargetLine,
        stage: bool = True,
    ) -> StagingResult:
        """Stage (or unstage) exactly one added or deleted line.

        Args:
            path: Workspace path
            workspace_id: Workspace whose status cache is invalidated on success
            file_path: Repository-relative file path
            target: The line to move between worktree and index
            stage: True to stage from the unstaged diff, False to unstage
                from the staged diff

        Returns:
            StagingResult
        """
        return await self._guarded(self._stage_line(path, workspace_id, file_path, target, stage))

    async def stage_hunk(
        self,
        path: str,
        workspace_id: str,
        file_path: str,
        hunk_header: str,
        stage: bool = True,
    ) -> StagingResult:
        """Stage (or unstage) the hunk whose header matches ``hunk_header``."""
        return await self._guarded(self._stage_hunk(path, workspace_id, file_path, hunk_header, stage))

    async def restore_hunk(
        self,
        path: str,
        workspace_id: str,
        file_path: str,
        hunk_header: str,
        scope: RestoreScope = RestoreScope.UNSTAGED,
    ) -> StagingResult:
        """Discard one hunk.

        An unstaged hunk is reverse-applied to the working tree. A staged
        hunk is first unstaged, then reverse-applied to the working tree. If
        the unstage fails nothing else is attempted. If the working-tree
        step fails after the unstage succeeded, that error is returned and
        the index keeps the unstaged state.
        """
        return await self._guarded(self._restore_hunk(path, workspace_id, file_path, hunk_header, scope))

    async def stage_file(self, path: str, workspace_id: str, file_path: str, stage: bool = True) -> StagingResult:
        """Stage (``add --all -- <file>``) or unstage (``reset -- <file>``) a whole file."""
        file_path = file_path.strip()
        if not file_path:
            return StagingResult.failure("File path is required")
        argv = ("git", "add", "--all", "--", file_path) if stage else ("git", "reset", "--", file_path)
        operation = "stage-file" if stage else "unstage-file"
        return await self._guarded(self._write(path, workspace_id, argv, operation))

    async def restore_file(self, path: str, workspace_id: str, file_path: str) -> StagingResult:
        """Discard unstaged changes to a file by checking it out from the index."""
        file_path = file_path.strip()
        if not file_path:
            return StagingResult.failure("File path is required")
        argv = ("git", "checkout", "--", file_path)
        return await self._guarded(self._write(path, workspace_id, argv, "restore-file"))

    async def stage_all(self, path: str, workspace_id: str, stage: bool = True) -> StagingResult:
        argv = ("git", "add", "--all") if stage else ("git", "reset")
        operation = "stage-all" if stage else "unstage-all"
        return await self._guarded(self._write(path, workspace_id, argv, operation))

    # --------------------------------------------------------
    # Operations
    # --------------------------------------------------------

    async def _stage_line(
        self, path: str, workspace_id: str, file_path: str, target: TargetLine, stage: bool
    ) -> StagingResult:
        scope = WorkingTreeScope.UNSTAGED if stage else WorkingTreeScope.STAGED
        diff_text = await self.diff_capture.file_diff(path, file_path, scope, workspace_id)

        if is_binary_diff(diff_text):
            return StagingResult.failure("Cannot stage individual lines of binary files")

        hunks = parse_hunks(diff_text)
        if not hunks:
            return StagingResult.failure("No changes found in diff")

        hunk = find_hunk_for_line(hunks, target)
        if hunk is None:
            return StagingResult.failure("Target line not found in diff")

        patch = single_line_patch(hunk, target, file_path)
        return await self._apply(
            path, workspace_id, patch, cached=True, reverse=not stage,
            operation="stage-line" if stage else "unstage-line",
        )

    async def _stage_hunk(
        self, path: str, workspace_id: str, file_path: str, hunk_header: str, stage: bool
    ) -> StagingResult:
        scope = WorkingTreeScope.UNSTAGED if stage else WorkingTreeScope.STAGED
        hunk, error = await self._locate_hunk(path, workspace_id, file_path, hunk_header, scope, "stage")
        if hunk is None:
            return StagingResult.failure(error)

        return await self._apply(
            path, workspace_id, hunk_patch(hunk, file_path), cached=True, reverse=not stage,
            operation="stage-hunk" if stage else "unstage-hunk",
        )

    async def _restore_hunk(
        self, path: str, workspace_id: str, file_path: str, hunk_header: str, scope: RestoreScope
    ) -> StagingResult:
        diff_scope = WorkingTreeScope.STAGED if scope == RestoreScope.STAGED else WorkingTreeScope.UNSTAGED
        hunk, error = await self._locate_hunk(path, workspace_id, file_path, hunk_header, diff_scope, "restore")
        if hunk is None:
            return StagingResult.failure(error)

        patch = hunk_patch(hunk, file_path)

        if scope == RestoreScope.STAGED:
            unstaged = await self._apply(
                path, workspace_id, patch, cached=True, reverse=True, operation="restore-hunk-unstage"
            )
            if not unstaged.success:
                return unstaged

        result = await self._apply(
            path, workspace_id, patch, cached=False, reverse=True, operation="restore-hunk-worktree"
        )
        if not result.success and scope == RestoreScope.STAGED:
            logger.warning(
                "Restore of staged hunk %s in %s left the index unstaged: %s",
                hunk_header, file_path, result.error,
            )
        return result

    # --------------------------------------------------------
    # Private Methods
    # --------------------------------------------------------

    async def _guarded(self, operation: Awaitable[StagingResult]) -> StagingResult:
        try:
            return await operation
        except Exception as e:
            logger.debug("Staging operation failed", exc_info=True)
            return StagingResult.failure(str(e) or "Unknown error occurred")

    async def _locate_hunk(
        self,
        path: str,
        workspace_id: str,
        file_path: str,
        hunk_header: str,
        scope: WorkingTreeScope,
        verb: str,
    ) -> tuple[Hunk | None, str]:
        diff_text = await self.diff_capture.file_diff(path, file_path, scope, workspace_id)

        if is_binary_diff(diff_text):
            return None, f"Cannot {verb} hunks of binary files"

        hunks = parse_hunks(diff_text)
        if not hunks:
            return None, "No changes found in diff"

        wanted = hunk_header.strip()
        for hunk in hunks:
            if hunk.header.strip() == wanted:
                return hunk, ""
        return None, "Target hunk not found in diff"

    async def _apply(
        self,
        path: str,
        workspace_id: str,
        patch: str,
        *,
        cached: bool,
        reverse: bool,
        operation: str,
    ) -> StagingResult:
        flags = (("--cached",) if cached else ()) + (("-R",) if reverse else ())
        with tempfile.TemporaryDirectory(prefix="hunksync-") as tmp_dir:
            patch_file = Path(tmp_dir) / "change.patch"
            patch_file.write_bytes(patch.encode("utf-8"))
            return await self._write(path, workspace_id, (*_APPLY_BASE, *flags, str(patch_file)), operation)

    async def _write(
        self, path: str, workspace_id: str, argv: tuple[str, ...], operation: str
    ) -> StagingResult:
        request = GitRequest(
            cwd=path,
            argv=argv,
            op=GitOperation.WRITE,
            workspace_id=workspace_id,
            meta={"source": "staging", "operation": operation},
        )
        response = await self.runner.run(request)
        if not response.ok:
            return StagingResult.failure(response.stderr or f"{argv[1]} failed")

        if self.invalidator is not None:
            self.invalidator.clear_cache(workspace_id)
        return StagingResult.ok()

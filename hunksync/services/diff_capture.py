"""Diff capture service.

Runs read-only git commands and turns their output into DiffResult,
WorkingTreeGroups and CommitInfo models. Untracked files, which git does
not diff, are rendered as synthesized "new file" diffs.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from enum import Enum
from pathlib import Path

from hunksync.domain.diff import NO_NEWLINE_MARKER, CommitInfo, DiffResult, DiffStats, split_lines
from hunksync.domain.settings import SyncSettings
from hunksync.domain.working_tree import (
    FileChangeType,
    WorkingTreeEntry,
    WorkingTreeGroups,
    WorkingTreeScope,
    build_groups,
    parse_numstat_by_path,
    parse_status_entries,
)
from hunksync.infrastructure.git.runner import (
    GitCommandError,
    GitOperation,
    GitRequest,
    GitResponse,
    ProcessInvoker,
)

logger = logging.getLogger(__name__)

_DIFF_FLAGS = ("--color=never", "--unified=0", "--src-prefix=a/", "--dst-prefix=b/")
_LOG_DELIMITER = "\x1f"


class FileTooLargeError(Exception):
    """Raised when file content exceeds the requested byte limit."""

    pass


class ContentRef(Enum):
    """Where to read file content from."""

    HEAD = "HEAD"
    INDEX = "INDEX"
    WORKTREE = "WORKTREE"


class DiffCaptureService:
    """Captures working-tree, commit and file-level diffs.

    Every method takes the workspace path explicitly; the service itself is
    stateless apart from its runner and settings.
    """

    def __init__(self, runner: ProcessInvoker, settings: SyncSettings | None = None):
        self.runner = runner
        self.settings = settings or SyncSettings()

    # --------------------------------------------------------
    # Working tree
    # --------------------------------------------------------

    async def working_tree_diff(
        self,
        path: str,
        scope: WorkingTreeScope = WorkingTreeScope.ALL,
        workspace_id: str | None = None,
    ) -> DiffResult:
        """Capture the uncommitted diff for one slice of the working tree.

        Args:
            path: Workspace path
            scope: ALL (tracked against HEAD plus untracked), STAGED (index
                against HEAD), UNSTAGED (worktree against index) or UNTRACKED
            workspace_id: Passed through to the runner

        Returns:
            DiffResult whose ``before_hash`` is the current HEAD commit

        Raises:
            GitCommandError: If a non-tolerated git read fails
        """
        before_hash = await self.current_commit_hash(path, workspace_id)

        if scope == WorkingTreeScope.UNTRACKED:
            untracked = await self._untracked_files(path, workspace_id)
            diff_text, additions, files = self._synthesize_untracked_diff(path, untracked)
            return DiffResult(
                diff_text=diff_text,
                stats=DiffStats(additions=additions, files_changed=files),
                changed_files=tuple(untracked),
                before_hash=before_hash,
            )

        if scope == WorkingTreeScope.STAGED:
            range_args: tuple[str, ...] = ("--cached", "HEAD")
        elif scope == WorkingTreeScope.UNSTAGED:
            range_args = ()
        else:
            range_args = ("HEAD",)

        tracked_diff = await self._read(
            path, ["diff", *_DIFF_FLAGS, *range_args], workspace_id, timeout_ms=self.settings.read_timeout_ms
        )
        names = await self._read(path, ["diff", "--name-only", "--color=never", *range_args], workspace_id)
        shortstat = await self._read(path, ["diff", "--shortstat", "--color=never", *range_args], workspace_id)

        tracked_files = _non_empty_lines(names)
        stats = DiffStats.from_shortstat(shortstat)

        if scope != WorkingTreeScope.ALL:
            return DiffResult(
                diff_text=tracked_diff.rstrip(),
                stats=stats,
                changed_files=tuple(tracked_files),
                before_hash=before_hash,
            )

        untracked = await self._untracked_files(path, workspace_id)
        untracked_diff, untracked_additions, untracked_count = self._synthesize_untracked_diff(path, untracked)
        diff_text = "\n\n".join(part for part in (tracked_diff.rstrip(), untracked_diff) if part).rstrip()

        return DiffResult(
            diff_text=diff_text,
            stats=stats + DiffStats(additions=untracked_additions, files_changed=untracked_count),
            changed_files=tuple(tracked_files + untracked),
            before_hash=before_hash,
        )

    async def file_groups(self, path: str, workspace_id: str | None = None) -> WorkingTreeGroups:
        """Group changed paths into staged, unstaged and untracked entries.

        Staged and unstaged entries carry numstat counts keyed by their
        normalized path. Untracked entries count the file's lines as
        additions (0 when the file is too large or unreadable). Staged
        additions are checked against HEAD to set ``is_new``.
        """
        status_out = await self._read(path, ["status", "--porcelain=v1"], workspace_id)
        staged_stats = parse_numstat_by_path(
            await self._read(path, ["diff", "--cached", "--numstat", "--color=never"], workspace_id)
        )
        unstaged_stats = parse_numstat_by_path(
            await self._read(path, ["diff", "--numstat", "--color=never"], workspace_id)
        )

        groups = build_groups(parse_status_entries(status_out), staged_stats, unstaged_stats)

        staged: list[WorkingTreeEntry] = []
        for entry in groups.staged:
            if entry.change_type == FileChangeType.ADDED:
                exists = await self._head_path_exists(path, entry.path, workspace_id)
                entry = replace(entry, is_new=not exists)
            staged.append(entry)
        groups.staged = staged

        groups.untracked = [
            WorkingTreeEntry(
                path=entry.path,
                additions=self._count_untracked_lines(path, entry.path),
                change_type=entry.change_type,
            )
            for entry in groups.untracked
        ]
        return groups

    async def working_diff_stats(self, path: str, workspace_id: str | None = None) -> DiffStats:
        """Quick stats for uncommitted work without building diff text."""
        shortstat = await self._read(path, ["diff", "--shortstat", "--color=never", "HEAD"], workspace_id)
        stats = DiffStats.from_shortstat(shortstat)
        additions = files = 0
        for file_path in await self._untracked_files(path, workspace_id):
            count = self._count_untracked_lines(path, file_path)
            additions += count
            files += 1
        return stats + DiffStats(additions=additions, files_changed=files)

    async def file_diff(
        self,
        path: str,
        file_path: str,
        scope: WorkingTreeScope,
        workspace_id: str | None = None,
    ) -> str:
        """Zero-context diff of one file, staged (index vs HEAD) or unstaged (worktree vs index)."""
        if scope == WorkingTreeScope.STAGED:
            args = ["diff", "--cached", *_DIFF_FLAGS, "HEAD", "--", file_path]
        elif scope == WorkingTreeScope.UNSTAGED:
            args = ["diff", *_DIFF_FLAGS, "--", file_path]
        else:
            raise ValueError(f"file_diff supports staged or unstaged scope, got {scope.value}")
        return await self._read(path, args, workspace_id, meta={"operation": "file-diff", "file": file_path})

    async def has_changes(self, path: str, workspace_id: str | None = None) -> bool:
        output = await self._read(path, ["status", "--porcelain"], workspace_id)
        return bool(output.strip())

    # --------------------------------------------------------
    # Commits
    # --------------------------------------------------------

    async def current_commit_hash(self, path: str, workspace_id: str | None = None) -> str:
        return (await self._read(path, ["rev-parse", "HEAD"], workspace_id)).strip()

    async def revision_subject(self, path: str, commit_hash: str, workspace_id: str | None = None) -> str:
        """Return the one-line subject of a commit, or "" for a blank hash."""
        commit = commit_hash.strip()
        if not commit:
            return ""
        output = await self._read(path, ["log", "-1", "--format=%s", commit], workspace_id)
        return output.strip()

    async def commit_range_diff(
        self,
        path: str,
        from_ref: str,
        to_ref: str | None = None,
        workspace_id: str | None = None,
    ) -> DiffResult:
        """Diff ``from_ref..to_ref``; ``to_ref`` defaults to HEAD, resolved to a hash."""
        to = to_ref or "HEAD"
        revision = f"{from_ref}..{to}"

        diff_text = await self._read(
            path, ["diff", *_DIFF_FLAGS, revision], workspace_id, timeout_ms=self.settings.read_timeout_ms
        )
        names = await self._read(path, ["diff", "--name-only", "--color=never", revision], workspace_id)
        shortstat = await self._read(path, ["diff", "--shortstat", "--color=never", revision], workspace_id)

        after_hash = await self.current_commit_hash(path, workspace_id) if to == "HEAD" else to
        return DiffResult(
            diff_text=diff_text,
            stats=DiffStats.from_shortstat(shortstat),
            changed_files=tuple(_non_empty_lines(names)),
            before_hash=from_ref,
            after_hash=after_hash,
        )

    async def single_commit_diff(self, path: str, commit_hash: str, workspace_id: str | None = None) -> DiffResult:
        """Diff one commit against its parent; stats come from numstat."""
        commit = commit_hash.strip()
        diff_text = await self._read(
            path,
            ["show", *_DIFF_FLAGS, "--format=", commit],
            workspace_id,
            timeout_ms=self.settings.read_timeout_ms,
        )
        names = await self._read(path, ["show", "--name-only", "--color=never", "--format=", commit], workspace_id)
        numstat = await self._read(path, ["show", "--numstat", "--color=never", "--format=", commit], workspace_id)
        return DiffResult(
            diff_text=diff_text,
            stats=DiffStats.from_numstat(numstat),
            changed_files=tuple(_non_empty_lines(names)),
            after_hash=commit,
        )

    async def commit_history(
        self,
        path: str,
        limit: int = 50,
        upstream: str | None = None,
        workspace_id: str | None = None,
    ) -> list[CommitInfo]:
        """List branch commits not on the upstream branch, newest first.

        Args:
            path: Workspace path
            limit: Maximum number of commits
            upstream: Upstream branch (defaults to the configured one)
            workspace_id: Passed through to the runner

        Returns:
            CommitInfo list in log order
        """
        upstream = upstream or self.settings.default_upstream
        log_format = _LOG_DELIMITER.join(["%H", "%P", "%s", "%ai", "%an"])
        output = await self._read(
            path,
            [
                "log",
                f"--format={log_format}",
                "--numstat",
                "-n",
                str(limit),
                "--cherry-pick",
                "--left-only",
                f"HEAD...{upstream}",
                "--",
            ],
            workspace_id,
            timeout_ms=self.settings.read_timeout_ms,
        )
        return parse_commit_log(output)

    # --------------------------------------------------------
    # File content
    # --------------------------------------------------------

    async def file_content(
        self,
        path: str,
        file_path: str,
        ref: ContentRef = ContentRef.HEAD,
        max_bytes: int | None = None,
        workspace_id: str | None = None,
    ) -> str:
        """Read a file as of HEAD, the index, or the working tree.

        Raises:
            FileTooLargeError: If the content exceeds ``max_bytes``
            GitCommandError: If git cannot resolve the object
            OSError: If the working-tree file cannot be read
        """
        limit = max_bytes if max_bytes and max_bytes > 0 else self.settings.max_untracked_file_bytes

        if ref == ContentRef.WORKTREE:
            data = (Path(path) / file_path).read_bytes()
            if len(data) > limit:
                raise FileTooLargeError(f"File too large ({len(data)} bytes)")
            return data.decode("utf-8", errors="replace")

        obj = f":{file_path}" if ref == ContentRef.INDEX else f"HEAD:{file_path}"
        content = await self._read(
            path, ["show", "--format=", obj], workspace_id, timeout_ms=self.settings.probe_timeout_ms
        )
        size = len(content.encode("utf-8"))
        if size > limit:
            raise FileTooLargeError(f"File too large ({size} bytes)")
        return content

    # --------------------------------------------------------
    # Private Methods
    # --------------------------------------------------------

    async def _run(
        self,
        path: str,
        args: list[str],
        workspace_id: str | None,
        timeout_ms: int | None = None,
        meta: dict | None = None,
    ) -> tuple[GitRequest, GitResponse]:
        request = GitRequest(
            cwd=path,
            argv=("git", *args),
            op=GitOperation.READ,
            workspace_id=workspace_id,
            timeout_ms=timeout_ms,
            meta=meta or {},
        )
        return request, await self.runner.run(request)

    async def _read(
        self,
        path: str,
        args: list[str],
        workspace_id: str | None,
        timeout_ms: int | None = None,
        meta: dict | None = None,
    ) -> str:
        request, response = await self._run(path, args, workspace_id, timeout_ms, meta)
        if not response.ok:
            raise GitCommandError(request, response)
        return response.stdout

    async def _head_path_exists(self, path: str, file_path: str, workspace_id: str | None) -> bool:
        # Non-zero exit is the expected answer for a brand-new file
        _, response = await self._run(
            path,
            ["cat-file", "-e", f"HEAD:{file_path}"],
            workspace_id,
            timeout_ms=self.settings.probe_timeout_ms,
        )
        return response.ok

    async def _untracked_files(self, path: str, workspace_id: str | None) -> list[str]:
        try:
            output = await self._read(path, ["ls-files", "--others", "--exclude-standard"], workspace_id)
        except GitCommandError as e:
            logger.warning("Could not list untracked files in %s: %s", path, e)
            return []
        return _non_empty_lines(output)

    def _read_untracked_text(self, root: str, file_path: str) -> str | None:
        full_path = Path(root) / file_path
        try:
            size = full_path.stat().st_size
            if size > self.settings.max_untracked_file_bytes:
                logger.warning("Skipping untracked file %s: %d bytes exceeds limit", file_path, size)
                return None
            return full_path.read_bytes().decode("utf-8")
        except UnicodeDecodeError:
            logger.warning("Skipping untracked file %s: not valid UTF-8", file_path)
        except OSError as e:
            logger.warning("Could not read untracked file %s: %s", file_path, e)
        return None

    def _count_untracked_lines(self, root: str, file_path: str) -> int:
        content = self._read_untracked_text(root, file_path)
        return len(split_lines(content)) if content else 0

    def _synthesize_untracked_diff(self, root: str, files: list[str]) -> tuple[str, int, int]:
        """Render untracked files as new-file diffs.

        Returns:
            Tuple of (diff text, total added lines, number of files rendered)
        """
        blocks: list[str] = []
        additions = 0
        for file_path in files:
            content = self._read_untracked_text(root, file_path)
            if content is None:
                continue
            blocks.append(untracked_file_diff(file_path, content))
            additions += len(split_lines(content))
        return "\n".join(blocks).rstrip(), additions, len(blocks)


# ============================================================
# Output parsers
# ============================================================


def untracked_file_diff(file_path: str, content: str) -> str:
    """Build a ``new file mode 100644`` diff adding every line of content."""
    lines = split_lines(content)
    parts = [
        f"diff --git a/{file_path} b/{file_path}",
        "new file mode 100644",
        "index 0000000..0000000",
        "--- /dev/null",
        f"+++ b/{file_path}",
    ]
    if lines:
        parts.append(f"@@ -0,0 +1,{len(lines)} @@")
        parts.extend(f"+{line}" for line in lines)
        if not content.endswith("\n"):
            parts.append(NO_NEWLINE_MARKER)
    return "\n".join(parts) + "\n"


def parse_commit_log(output: str) -> list[CommitInfo]:
    """Parse ``git log --format=<H,P,s,ai,an> --numstat`` output.

    Each commit is a delimiter-separated header row followed by optional
    blank lines and numstat rows.
    """
    commits: list[CommitInfo] = []
    lines = output.split("\n")
    i = 0
    while i < len(lines):
        header = lines[i]
        if _LOG_DELIMITER not in header:
            i += 1
            continue

        fields = header.split(_LOG_DELIMITER) + [""] * 5
        commit_hash, parents, message, date, author = fields[:5]
        i += 1

        while i < len(lines) and not lines[i].strip():
            i += 1
        numstat_rows: list[str] = []
        while i < len(lines) and lines[i].strip() and _LOG_DELIMITER not in lines[i]:
            numstat_rows.append(lines[i])
            i += 1

        commits.append(
            CommitInfo(
                hash=commit_hash.strip(),
                parents=tuple(parents.split()),
                message=message.strip(),
                date=date.strip(),
                author=author.strip() or "Unknown",
                stats=DiffStats.from_numstat("\n".join(numstat_rows)),
            )
        )
    return commits


def _non_empty_lines(output: str) -> list[str]:
    return [line.strip() for line in output.split("\n") if line.strip()]

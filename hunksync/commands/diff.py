"""Diff and groups commands.

Thin wrappers over DiffCaptureService for working-tree, commit and
commit-range diffs, plus the staged/unstaged/untracked file grouping.
"""

from __future__ import annotations

import asyncio
import sys

from hunksync.commands.common import create_services, print_json
from hunksync.domain.diff import DiffResult
from hunksync.domain.settings import SyncSettings
from hunksync.domain.working_tree import WorkingTreeScope
from hunksync.infrastructure.git.runner import GitCommandError


def cmd_diff(
    repo_path: str,
    settings: SyncSettings,
    scope: str = "all",
    commit: str | None = None,
    from_ref: str | None = None,
    to_ref: str | None = None,
    output_format: str = "json",
) -> int:
    """Capture a diff and print it.

    Precedence: ``commit`` (single commit), then ``from_ref`` (range), then
    the working tree in the given scope.

    Args:
        repo_path: Path to the git working copy
        settings: Loaded settings
        scope: all, staged, unstaged or untracked
        commit: Show a single commit against its parent
        from_ref: Start of a commit range
        to_ref: End of a commit range (default HEAD)
        output_format: 'json' for the full result, 'raw' for diff text only

    Returns:
        Exit code (0 for success, 1 for error)
    """
    services = create_services(repo_path, settings)
    capture = services.diff_capture
    path = str(services.workspace.path)

    try:
        if commit:
            result: DiffResult = asyncio.run(capture.single_commit_diff(path, commit))
        elif from_ref:
            result = asyncio.run(capture.commit_range_diff(path, from_ref, to_ref))
        else:
            result = asyncio.run(capture.working_tree_diff(path, WorkingTreeScope(scope)))
    except GitCommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if output_format == "raw":
        print(result.diff_text)
    else:
        print_json(result.to_dict())
    return 0


def cmd_groups(repo_path: str, settings: SyncSettings) -> int:
    """Print staged, unstaged and untracked file groups as JSON."""
    services = create_services(repo_path, settings)
    try:
        groups = asyncio.run(services.diff_capture.file_groups(str(services.workspace.path)))
    except GitCommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print_json(groups.to_dict())
    return 0

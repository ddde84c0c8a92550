"""Staging commands.

Each command runs one StagingService operation against a repository and
prints the ``{success, error}`` result as JSON.
"""

from __future__ import annotations

import asyncio

from hunksync.commands.common import CLI_WORKSPACE_ID, create_services, report_staging_result
from hunksync.domain.settings import SyncSettings
from hunksync.infrastructure.git.patch import TargetLine
from hunksync.services.staging import RestoreScope


def cmd_stage_line(
    repo_path: str,
    settings: SyncSettings,
    file_path: str,
    added_line: int | None = None,
    deleted_line: int | None = None,
    unstage: bool = False,
    dry_run: bool = False,
) -> int:
    """Stage or unstage one line.

    Args:
        repo_path: Path to the git working copy
        settings: Loaded settings
        file_path: Repository-relative file path
        added_line: New-file line number of an added line
        deleted_line: Old-file line number of a deleted line
        unstage: Move the line out of the index instead of into it
        dry_run: Report the git apply call without running it

    Returns:
        Exit code (0 for success, 1 for error)
    """
    if (added_line is None) == (deleted_line is None):
        print("Specify exactly one of --added or --deleted")
        return 1

    target = TargetLine.added(added_line) if added_line is not None else TargetLine.deleted(deleted_line)
    services = create_services(repo_path, settings, dry_run=dry_run)
    result = asyncio.run(
        services.staging.stage_line(
            str(services.workspace.path), CLI_WORKSPACE_ID, file_path, target, stage=not unstage
        )
    )
    return report_staging_result(result)


def cmd_stage_hunk(
    repo_path: str,
    settings: SyncSettings,
    file_path: str,
    hunk_header: str,
    unstage: bool = False,
    dry_run: bool = False,
) -> int:
    services = create_services(repo_path, settings, dry_run=dry_run)
    result = asyncio.run(
        services.staging.stage_hunk(
            str(services.workspace.path), CLI_WORKSPACE_ID, file_path, hunk_header, stage=not unstage
        )
    )
    return report_staging_result(result)


def cmd_restore_hunk(
    repo_path: str,
    settings: SyncSettings,
    file_path: str,
    hunk_header: str,
    scope: str = "unstaged",
    dry_run: bool = False,
) -> int:
    """Discard one staged or unstaged hunk."""
    services = create_services(repo_path, settings, dry_run=dry_run)
    result = asyncio.run(
        services.staging.restore_hunk(
            str(services.workspace.path), CLI_WORKSPACE_ID, file_path, hunk_header, RestoreScope(scope)
        )
    )
    return report_staging_result(result)


def cmd_stage_file(
    repo_path: str,
    settings: SyncSettings,
    file_path: str,
    unstage: bool = False,
    dry_run: bool = False,
) -> int:
    services = create_services(repo_path, settings, dry_run=dry_run)
    result = asyncio.run(
        services.staging.stage_file(str(services.workspace.path), CLI_WORKSPACE_ID, file_path, stage=not unstage)
    )
    return report_staging_result(result)


def cmd_restore_file(repo_path: str, settings: SyncSettings, file_path: str, dry_run: bool = False) -> int:
    services = create_services(repo_path, settings, dry_run=dry_run)
    result = asyncio.run(
        services.staging.restore_file(str(services.workspace.path), CLI_WORKSPACE_ID, file_path)
    )
    return report_staging_result(result)


def cmd_stage_all(repo_path: str, settings: SyncSettings, unstage: bool = False, dry_run: bool = False) -> int:
    services = create_services(repo_path, settings, dry_run=dry_run)
    result = asyncio.run(
        services.staging.stage_all(str(services.workspace.path), CLI_WORKSPACE_ID, stage=not unstage)
    )
    return report_staging_result(result)

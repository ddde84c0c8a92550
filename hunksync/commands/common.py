"""Shared wiring for CLI commands."""

from __future__ import annotations

import json
import sys
from dataclasses import dataclass
from pathlib import Path

from hunksync.domain.settings import SyncSettings
from hunksync.domain.workspace import Workspace, WorkspaceRegistry
from hunksync.infrastructure.git.runner import SubprocessGitRunner
from hunksync.services.diff_capture import DiffCaptureService
from hunksync.services.staging import StagingResult, StagingService
from hunksync.services.status_sync import StatusSynchronizer

CLI_WORKSPACE_ID = "cli"


@dataclass
class Services:
    """Services wired for a single repository path."""

    workspace: Workspace
    runner: SubprocessGitRunner
    diff_capture: DiffCaptureService
    synchronizer: StatusSynchronizer
    staging: StagingService


def create_services(
    repo_path: str,
    settings: SyncSettings | None = None,
    upstream: str | None = None,
    dry_run: bool = False,
) -> Services:
    settings = settings or SyncSettings()
    workspace = Workspace(id=CLI_WORKSPACE_ID, path=Path(repo_path).resolve(), upstream=upstream)
    runner = SubprocessGitRunner(dry_run=dry_run)
    diff_capture = DiffCaptureService(runner, settings)
    synchronizer = StatusSynchronizer(diff_capture, runner, WorkspaceRegistry([workspace]), settings)
    staging = StagingService(runner, diff_capture, invalidator=synchronizer)
    return Services(workspace, runner, diff_capture, synchronizer, staging)


def print_json(data) -> None:
    print(json.dumps(data, indent=2))


def report_staging_result(result: StagingResult) -> int:
    """Print a staging result and map it to an exit code."""
    print_json(result.to_dict())
    if not result.success:
        print(f"Error: {result.error}", file=sys.stderr)
        return 1
    return 0


def read_text(input_file: str | None) -> str:
    """Read from a file, or from stdin when no file is given."""
    if input_file:
        return Path(input_file).read_text()
    return sys.stdin.read()

"""Status command.

Fetches the status snapshot for one repository and prints it as JSON.
"""

from __future__ import annotations

import asyncio

from hunksync.commands.common import CLI_WORKSPACE_ID, create_services, print_json
from hunksync.domain.settings import SyncSettings
from hunksync.domain.status import StatusState


def cmd_status(repo_path: str, settings: SyncSettings, upstream: str | None = None) -> int:
    """Show ahead/behind, dirty counts and derived state.

    Args:
        repo_path: Path to the git working copy
        settings: Loaded settings
        upstream: Upstream branch (defaults to settings.default_upstream)

    Returns:
        Exit code (0 for success, 1 for error)
    """
    services = create_services(repo_path, settings, upstream)
    if not services.workspace.exists:
        print(f"Repository path not found: {repo_path}")
        return 1

    snapshot = asyncio.run(services.synchronizer.get_status(CLI_WORKSPACE_ID))
    if snapshot is None:
        print(f"Could not read status for {repo_path}")
        return 1

    print_json(snapshot.to_dict())
    return 0 if snapshot.state != StatusState.UNKNOWN else 1

"""Workspace identity and lookup.

Workspace bookkeeping (sessions, projects) lives outside this package. The
synchronizer only needs to turn a workspace id into a path and an upstream
branch, which is what WorkspaceResolver provides.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


@dataclass(frozen=True)
class Workspace:
    """A working copy tracked by the synchronizer."""

    id: str
    path: Path
    upstream: str | None = None

    @property
    def exists(self) -> bool:
        return self.path.is_dir()

    def git_dir(self) -> Path:
        """Resolve the git directory, following a ``.git`` file for linked worktrees."""
        dot_git = self.path / ".git"
        if dot_git.is_file():
            content = dot_git.read_text().strip()
            if content.startswith("gitdir:"):
                target = Path(content[len("gitdir:") :].strip())
                if not target.is_absolute():
                    target = self.path / target
                return target
        return dot_git


class WorkspaceResolver(Protocol):
    """Protocol for resolving workspace ids."""

    def get(self, workspace_id: str) -> Workspace | None:
        """Return the workspace, or None when it is unknown or closed."""
        ...


class WorkspaceRegistry:
    """In-memory WorkspaceResolver used by the CLI and tests."""

    def __init__(self, workspaces: list[Workspace] | None = None):
        self._workspaces: dict[str, Workspace] = {}
        for workspace in workspaces or []:
            self.add(workspace)

    def add(self, workspace: Workspace) -> None:
        self._workspaces[workspace.id] = workspace

    def remove(self, workspace_id: str) -> Workspace | None:
        return self._workspaces.pop(workspace_id, None)

    def get(self, workspace_id: str) -> Workspace | None:
        return self._workspaces.get(workspace_id)

    def ids(self) -> list[str]:
        return list(self._workspaces)

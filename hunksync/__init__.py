"""hunksync: line- and hunk-level staging and workspace status for git.

A layered package following:
- Domain Modeling: Parse-once pattern with type-safe models
- Services Pattern: Core services with dependency injection
- Infrastructure: A single async boundary to the git executable
- CLI Architecture: Single entry point dispatcher with explicit parameters

Usage:
    python -m hunksync <command> [options]
    hunksync <command> [options]

Structure:
    hunksync/
    ├── __main__.py          # Entry point dispatcher
    ├── domain/              # Domain models (parse-once pattern)
    │   ├── diff.py          # Hunk, HunkLine, DiffStats, DiffResult
    │   ├── working_tree.py  # WorkingTreeGroups, porcelain/numstat parsing
    │   ├── status.py        # StatusSnapshot, state priority
    │   ├── settings.py      # SyncSettings (YAML)
    │   └── workspace.py     # Workspace, WorkspaceResolver
    ├── infrastructure/      # External system interactions
    │   └── git/
    │       ├── runner.py    # ProcessInvoker, SubprocessGitRunner
    │       └── patch.py     # Zero-context patch synthesis
    ├── services/            # Business logic services
    │   ├── diff_capture.py
    │   ├── staging.py
    │   ├── hunk_correlator.py
    │   └── status_sync.py
    └── commands/            # Thin command orchestrators
"""

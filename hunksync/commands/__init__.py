"""CLI command implementations."""

from hunksync.commands.diff import cmd_diff, cmd_groups
from hunksync.commands.parse_diff import cmd_parse_diff
from hunksync.commands.stage import (
    cmd_restore_file,
    cmd_restore_hunk,
    cmd_stage_all,
    cmd_stage_file,
    cmd_stage_hunk,
    cmd_stage_line,
)
from hunksync.commands.status import cmd_status

__all__ = [
    "cmd_diff",
    "cmd_groups",
    "cmd_parse_diff",
    "cmd_restore_file",
    "cmd_restore_hunk",
    "cmd_stage_all",
    "cmd_stage_file",
    "cmd_stage_hunk",
    "cmd_stage_line",
    "cmd_status",
]

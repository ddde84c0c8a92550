#!/usr/bin/env python3
"""CLI entry point for hunksync.

Usage:
    python -m hunksync <command> [options]

Commands:
    status        Show status snapshot (state, ahead/behind, dirty counts)
    diff          Capture a working-tree, commit or commit-range diff
    groups        List staged, unstaged and untracked files
    parse-diff    Parse diff text into hunks with line numbers
    stage-line    Stage or unstage a single line
    stage-hunk    Stage or unstage a single hunk
    restore-hunk  Discard a staged or unstaged hunk
    stage-file    Stage or unstage a whole file
    restore-file  Discard unstaged changes to a file
    stage-all     Stage or unstage everything
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

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
from hunksync.domain.settings import SyncSettings


def _add_repo_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--repo-path",
        default=".",
        help="Path to the git working copy (default: current directory)",
    )


def _add_write_arguments(parser: argparse.ArgumentParser, with_unstage: bool = True) -> None:
    _add_repo_argument(parser)
    if with_unstage:
        parser.add_argument(
            "--unstage",
            action="store_true",
            help="Move changes out of the index instead of into it",
        )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report git write commands without running them",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hunksync",
        description="Line- and hunk-level staging and workspace status for git",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m hunksync status --repo-path ~/src/app --upstream develop
  python -m hunksync diff --scope staged
  git diff --unified=0 | python -m hunksync parse-diff --format text
  python -m hunksync stage-line src/app.py --added 12
  python -m hunksync restore-hunk src/app.py --header "@@ -4,2 +4,0 @@" --scope staged
        """,
    )
    parser.add_argument("--config", help="YAML settings file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # status command
    parser_status = subparsers.add_parser("status", help="Show workspace status")
    _add_repo_argument(parser_status)
    parser_status.add_argument("--upstream", help="Upstream branch (default from settings)")

    # diff command
    parser_diff = subparsers.add_parser("diff", help="Capture a diff")
    _add_repo_argument(parser_diff)
    parser_diff.add_argument(
        "--scope",
        choices=["all", "staged", "unstaged", "untracked"],
        default="all",
        help="Working-tree slice (default: all)",
    )
    parser_diff.add_argument("--commit", help="Show a single commit against its parent")
    parser_diff.add_argument("--from", dest="from_ref", help="Start of a commit range")
    parser_diff.add_argument("--to", dest="to_ref", help="End of a commit range (default: HEAD)")
    parser_diff.add_argument(
        "--format",
        choices=["json", "raw"],
        default="json",
        help="Output format (default: json)",
    )

    # groups command
    parser_groups = subparsers.add_parser("groups", help="List staged/unstaged/untracked files")
    _add_repo_argument(parser_groups)

    # parse-diff command
    parser_parse = subparsers.add_parser("parse-diff", help="Parse diff text into hunks")
    parser_parse.add_argument("--input-file", help="Path to diff file. If not provided, reads from stdin")
    parser_parse.add_argument(
        "--format",
        choices=["json", "text"],
        default="json",
        help="Output format (default: json)",
    )
    parser_parse.add_argument("--staged-diff", help="Staged diff used to classify hunks")
    parser_parse.add_argument("--unstaged-diff", help="Unstaged diff used to classify hunks")

    # stage-line command
    parser_line = subparsers.add_parser("stage-line", help="Stage or unstage one line")
    parser_line.add_argument("file", help="Repository-relative file path")
    parser_line.add_argument("--added", type=int, help="New-file line number of an added line")
    parser_line.add_argument("--deleted", type=int, help="Old-file line number of a deleted line")
    _add_write_arguments(parser_line)

    # stage-hunk command
    parser_hunk = subparsers.add_parser("stage-hunk", help="Stage or unstage one hunk")
    parser_hunk.add_argument("file", help="Repository-relative file path")
    parser_hunk.add_argument("--header", required=True, help="Hunk header, e.g. '@@ -3,0 +4,2 @@'")
    _add_write_arguments(parser_hunk)

    # restore-hunk command
    parser_restore = subparsers.add_parser("restore-hunk", help="Discard one hunk")
    parser_restore.add_argument("file", help="Repository-relative file path")
    parser_restore.add_argument("--header", required=True, help="Hunk header")
    parser_restore.add_argument(
        "--scope",
        choices=["staged", "unstaged"],
        default="unstaged",
        help="Which copy of the hunk to discard (default: unstaged)",
    )
    _add_write_arguments(parser_restore, with_unstage=False)

    # stage-file command
    parser_file = subparsers.add_parser("stage-file", help="Stage or unstage one file")
    parser_file.add_argument("file", help="Repository-relative file path")
    _add_write_arguments(parser_file)

    # restore-file command
    parser_restore_file = subparsers.add_parser("restore-file", help="Discard unstaged changes to a file")
    parser_restore_file.add_argument("file", help="Repository-relative file path")
    _add_write_arguments(parser_restore_file, with_unstage=False)

    # stage-all command
    parser_all = subparsers.add_parser("stage-all", help="Stage or unstage everything")
    _add_write_arguments(parser_all)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 1

    try:
        settings = SyncSettings.from_file(Path(args.config)) if args.config else SyncSettings()
    except (OSError, ValueError) as e:
        print(f"Invalid settings: {e}", file=sys.stderr)
        return 1

    # Route to command implementations with explicit parameters
    if args.command == "status":
        return cmd_status(repo_path=args.repo_path, settings=settings, upstream=args.upstream)

    elif args.command == "diff":
        return cmd_diff(
            repo_path=args.repo_path,
            settings=settings,
            scope=args.scope,
            commit=args.commit,
            from_ref=args.from_ref,
            to_ref=args.to_ref,
            output_format=args.format,
        )

    elif args.command == "groups":
        return cmd_groups(repo_path=args.repo_path, settings=settings)

    elif args.command == "parse-diff":
        return cmd_parse_diff(
            input_file=args.input_file,
            output_format=args.format,
            staged_file=args.staged_diff,
            unstaged_file=args.unstaged_diff,
        )

    elif args.command == "stage-line":
        return cmd_stage_line(
            repo_path=args.repo_path,
            settings=settings,
            file_path=args.file,
            added_line=args.added,
            deleted_line=args.deleted,
            unstage=args.unstage,
            dry_run=args.dry_run,
        )

    elif args.command == "stage-hunk":
        return cmd_stage_hunk(
            repo_path=args.repo_path,
            settings=settings,
            file_path=args.file,
            hunk_header=args.header,
            unstage=args.unstage,
            dry_run=args.dry_run,
        )

    elif args.command == "restore-hunk":
        return cmd_restore_hunk(
            repo_path=args.repo_path,
            settings=settings,
            file_path=args.file,
            hunk_header=args.header,
            scope=args.scope,
            dry_run=args.dry_run,
        )

    elif args.command == "stage-file":
        return cmd_stage_file(
            repo_path=args.repo_path,
            settings=settings,
            file_path=args.file,
            unstage=args.unstage,
            dry_run=args.dry_run,
        )

    elif args.command == "restore-file":
        return cmd_restore_file(
            repo_path=args.repo_path, settings=settings, file_path=args.file, dry_run=args.dry_run
        )

    elif args.command == "stage-all":
        return cmd_stage_all(
            repo_path=args.repo_path, settings=settings, unstage=args.unstage, dry_run=args.dry_run
        )

    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())

"""Parse diff command.

Reads raw diff text from stdin or a file and prints its hunks with per-line
old/new numbering. With staged/unstaged diffs supplied, each hunk is also
classified against them.
"""

from __future__ import annotations

import json
import sys

from hunksync.commands.common import read_text
from hunksync.domain.diff import Hunk, parse_hunks
from hunksync.services.hunk_correlator import HunkCorrelator


def cmd_parse_diff(
    input_file: str | None = None,
    output_format: str = "json",
    staged_file: str | None = None,
    unstaged_file: str | None = None,
) -> int:
    """Parse a diff and print structured hunks.

    Args:
        input_file: Diff to parse; reads stdin when None
        output_format: 'json' (default) or 'text'
        staged_file: Optional staged diff used to classify hunks
        unstaged_file: Optional unstaged diff used to classify hunks

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    # --------------------------------------------------------
    # 1. Read inputs
    # --------------------------------------------------------
    try:
        diff_text = read_text(input_file)
        staged_text = read_text(staged_file) if staged_file else ""
        unstaged_text = read_text(unstaged_file) if unstaged_file else ""
    except OSError as e:
        print(f"Failed to read diff: {e}", file=sys.stderr)
        return 1

    # --------------------------------------------------------
    # 2. Parse and classify
    # --------------------------------------------------------
    hunks = parse_hunks(diff_text)
    correlator = None
    if staged_file or unstaged_file:
        correlator = HunkCorrelator.from_diffs(staged_text, unstaged_text)

    # --------------------------------------------------------
    # 3. Output
    # --------------------------------------------------------
    if output_format == "text":
        print(format_hunks_as_text(hunks, correlator))
        return 0

    items = []
    for hunk in hunks:
        item = hunk.to_dict()
        if correlator is not None:
            item["match"] = correlator.classify(hunk).to_dict()
        items.append(item)
    print(json.dumps({"hunks": items}, indent=2))
    return 0


def format_hunks_as_text(hunks: list[Hunk], correlator: HunkCorrelator | None = None) -> str:
    """Human-readable listing with old/new line numbers in the gutter."""
    if not hunks:
        return "Empty diff (no hunks found)"

    lines = [f"Total hunks: {len(hunks)}", ""]
    for i, hunk in enumerate(hunks, 1):
        title = f"Hunk {i}: {hunk.file_path or '(unknown file)'} {hunk.header}"
        if correlator is not None:
            title += f" [{correlator.classify(hunk).state.value}]"
        lines.append(title)
        for line in hunk.lines:
            old = str(line.old_line_number) if line.old_line_number is not None else ""
            new = str(line.new_line_number) if line.new_line_number is not None else ""
            lines.append(f"  {old:>5} {new:>5} {line.raw}")
        lines.append("")
    return "\n".join(lines)

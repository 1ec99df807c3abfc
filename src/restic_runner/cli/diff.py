"""Diff command: Show changes between snapshots."""

import argparse
import logging

from ..core.diff import run_diff, select_filter
from .common import Invocation, add_filter_args, parse_command_args

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="restic-runner diff", add_help=False)
    parser.add_argument(
        "snapshots",
        nargs="*",
        metavar="ID",
        help="Snapshots to compare (default: the two most recent)",
    )
    add_filter_args(parser)
    return parser


def execute_diff(inv: Invocation) -> int:
    """Execute the diff command.

    Filter flags can be given before or after the command name.

    Args:
        inv: Command invocation

    Returns:
        Exit code
    """
    parsed = parse_command_args(create_parser(), inv)

    ids = parsed.snapshots
    for extra in ids[2:]:
        inv.ctx.error("diff compares two snapshots, ignoring: %s", extra)
    ids = ids[:2]

    args = inv.args
    if not ids and getattr(args, "snapshot", None):
        ids = [args.snapshot]

    diff_filter = select_filter(
        added=parsed.added or getattr(args, "added", False),
        modified=parsed.modified or getattr(args, "modified", False),
        removed=parsed.removed or getattr(args, "removed", False),
    )

    for line in run_diff(inv.engine, ids, inv.config.tag, diff_filter):
        print(line)

    return 0

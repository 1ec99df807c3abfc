"""Verify command: Restore and check a random sample of a snapshot."""

import argparse
import logging

from ..core.verify import DEFAULT_NUM_FILES, LATEST, verify_randomly
from .common import Invocation, parse_command_args

logger = logging.getLogger(__name__)


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="restic-runner verify-randomly", add_help=False
    )
    parser.add_argument(
        "num_files",
        nargs="?",
        metavar="N",
        help=f"Number of entries to verify (default: {DEFAULT_NUM_FILES})",
    )
    parser.add_argument(
        "--compare",
        action="store_true",
        help="Compare restored files with the live filesystem",
    )
    parser.add_argument(
        "--snapshot",
        metavar="ID",
        help="Snapshot to verify (default: latest)",
    )
    return parser


def _parse_num_files(inv: Invocation, value: str | None) -> int:
    if value is None:
        return DEFAULT_NUM_FILES
    try:
        num_files = int(value)
    except ValueError:
        num_files = 0
    if num_files < 1:
        inv.ctx.error(
            "Invalid number of files '%s', using %d", value, DEFAULT_NUM_FILES
        )
        return DEFAULT_NUM_FILES
    return num_files


def execute_verify(inv: Invocation) -> int:
    """Execute the verify-randomly command.

    Content mismatches are counted as errors but do not fail the command;
    only a failed restore does.

    Args:
        inv: Command invocation

    Returns:
        Exit code
    """
    parsed = parse_command_args(create_parser(), inv)
    args = inv.args

    num_files = _parse_num_files(inv, parsed.num_files)
    snapshot = parsed.snapshot or getattr(args, "snapshot", None) or LATEST
    compare = parsed.compare or getattr(args, "compare", False)

    report = verify_randomly(
        inv.ctx,
        inv.engine,
        snapshot=snapshot,
        tag=inv.config.tag,
        num_files=num_files,
        compare=compare,
    )

    logger.info(
        "Verified %d sampled entries of snapshot %s in %.1fs",
        len(report.sampled),
        report.snapshot_id,
        report.duration,
    )
    return 0

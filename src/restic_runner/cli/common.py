"""Shared CLI utilities and argument parsers."""

import argparse
from dataclasses import dataclass, field

from .. import RunnerError
from ..config import RunnerConfig
from ..core.context import RunContext
from ..engine import ResticEngine


class UsageError(RunnerError):
    """A command was invoked with unusable arguments."""

    pass


@dataclass
class Invocation:
    """Everything a command handler needs.

    Attributes:
        ctx: Run context (error counter, temporary resources)
        config: Resolved configuration
        engine: restic engine for the configured repository
        args: Parsed global options
        arguments: Arguments given after the command name
    """

    ctx: RunContext
    config: RunnerConfig
    engine: ResticEngine
    args: argparse.Namespace
    arguments: list[str] = field(default_factory=list)


def add_verbosity_args(parser: argparse.ArgumentParser) -> None:
    """Add verbosity-related arguments to a parser."""
    group = parser.add_argument_group("Output options")
    group.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )
    group.add_argument(
        "-q",
        "--quiet",
        action="store_true",
        help="Suppress non-essential output",
    )
    group.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug output",
    )


def add_filter_args(parser: argparse.ArgumentParser) -> None:
    """Add diff filter arguments to a parser."""
    group = parser.add_argument_group("Diff filters")
    group.add_argument(
        "--added",
        action="store_true",
        help="Only show added files",
    )
    group.add_argument(
        "--modified",
        action="store_true",
        help="Only show modified files",
    )
    group.add_argument(
        "--removed",
        action="store_true",
        help="Only show removed files",
    )


def get_log_level(args: argparse.Namespace) -> str:
    """Determine log level from parsed arguments.

    Args:
        args: Parsed command line arguments

    Returns:
        Log level string (DEBUG, INFO, WARNING, ERROR)
    """
    if getattr(args, "debug", False):
        return "DEBUG"
    elif getattr(args, "quiet", False):
        return "WARNING"
    elif getattr(args, "verbose", False):
        return "DEBUG"
    else:
        return "INFO"


def parse_command_args(
    parser: argparse.ArgumentParser, inv: Invocation
) -> argparse.Namespace:
    """Parse the arguments following a command.

    Unrecognized arguments are reported as soft errors and ignored.
    """
    parsed, unknown = parser.parse_known_args(inv.arguments)
    for arg in unknown:
        inv.ctx.error("Ignoring unrecognized argument: %s", arg)
    return parsed


def reject_arguments(inv: Invocation, command: str) -> None:
    """Report arguments given to a command that takes none."""
    for arg in inv.arguments:
        inv.ctx.error("%s takes no arguments, ignoring: %s", command, arg)

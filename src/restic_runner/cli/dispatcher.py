"""CLI dispatcher.

Resolves configuration, validates the requested command against the
fixed set of commands and runs it, reporting repository size and
duration at the end.
"""

import argparse
import contextlib
import getpass
import hashlib
import logging
import os
import tempfile
import time
from enum import Enum
from pathlib import Path
from typing import Callable

from filelock import FileLock

from .. import RunnerError, __util__
from ..__logger__ import add_file_handler, create_logger, remove_handler
from ..config import (
    ConfigLoadError,
    RunnerConfig,
    find_config_root,
    require_repository,
    resolve_config,
)
from ..core.context import RunContext
from ..engine import EngineError, ResticEngine
from .common import Invocation, add_filter_args, add_verbosity_args, get_log_level

logger = logging.getLogger(__name__)


class Command(Enum):
    """Commands understood by the runner."""

    BACKUP = "backup"
    CHECK = "check"
    DIFF = "diff"
    EXPIRE = "expire"
    INIT = "init"
    MOUNT = "mount"
    PASSTHROUGH = "passthrough"
    VERIFY_RANDOMLY = "verify-randomly"

    @property
    def locks_repository(self) -> bool:
        """Whether the command needs exclusive use of the repository."""
        return self in {Command.BACKUP, Command.CHECK, Command.EXPIRE, Command.INIT}


COMMAND_ALIASES = {"command": Command.PASSTHROUGH}


class UnknownCommandError(RunnerError):
    """The requested command is not one the runner knows."""

    pass


class DispatchState(Enum):
    """Progress of a single invocation."""

    START = "start"
    CONFIG_RESOLVED = "config-resolved"
    COMMAND_VALIDATED = "command-validated"
    EXECUTING = "executing"
    FINISHED = "finished"


def parse_command(name: str | None) -> Command:
    """Map a command name (or alias) to a Command.

    Raises:
        UnknownCommandError: If the name is not a known command
    """
    if not name:
        raise UnknownCommandError("No command specified")
    if name in COMMAND_ALIASES:
        return COMMAND_ALIASES[name]
    try:
        return Command(name)
    except ValueError:
        raise UnknownCommandError(f"Unknown command: {name}")


def create_parser() -> argparse.ArgumentParser:
    """Create the main argument parser."""
    commands = ", ".join([c.value for c in Command] + list(COMMAND_ALIASES))
    parser = argparse.ArgumentParser(
        prog="restic-runner",
        description="Run restic with layered repository and backup set configuration",
        epilog=f"commands: {commands}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    add_verbosity_args(parser)

    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="Show version and exit",
    )
    parser.add_argument(
        "--config-dir",
        metavar="DIR",
        help="Configuration root directory",
    )
    parser.add_argument(
        "-r",
        "--repo",
        metavar="NAME",
        help="Repository configuration to use",
    )
    parser.add_argument(
        "-s",
        "--set",
        metavar="NAME",
        help="Backup set configuration to use",
    )
    parser.add_argument(
        "-t",
        "--tag",
        metavar="TAG",
        help="Tag to use instead of the configured one",
    )
    parser.add_argument(
        "--snapshot",
        metavar="ID",
        help="Snapshot to operate on (diff, verify-randomly)",
    )
    parser.add_argument(
        "--compare",
        action="store_true",
        help="Compare restored files with the live filesystem (verify-randomly)",
    )
    add_filter_args(parser)

    parser.add_argument(
        "command",
        nargs="?",
        metavar="COMMAND",
        help="Command to run",
    )
    parser.add_argument(
        "arguments",
        nargs=argparse.REMAINDER,
        metavar="ARGS",
        help="Arguments for the command",
    )

    return parser


# Command handlers live in their own modules


def cmd_backup(inv: Invocation) -> int:
    """Execute backup command."""
    from .backup import execute_backup

    return execute_backup(inv)


def cmd_check(inv: Invocation) -> int:
    """Execute check command."""
    from .check import execute_check

    return execute_check(inv)


def cmd_diff(inv: Invocation) -> int:
    """Execute diff command."""
    from .diff import execute_diff

    return execute_diff(inv)


def cmd_expire(inv: Invocation) -> int:
    """Execute expire command."""
    from .expire import execute_expire

    return execute_expire(inv)


def cmd_init(inv: Invocation) -> int:
    """Execute init command."""
    from .init_cmd import execute_init

    return execute_init(inv)


def cmd_mount(inv: Invocation) -> int:
    """Execute mount command."""
    from .mount import execute_mount

    return execute_mount(inv)


def cmd_passthrough(inv: Invocation) -> int:
    """Execute passthrough command."""
    from .passthrough import execute_passthrough

    return execute_passthrough(inv)


def cmd_verify_randomly(inv: Invocation) -> int:
    """Execute verify-randomly command."""
    from .verify import execute_verify

    return execute_verify(inv)


HANDLERS: dict[Command, Callable[[Invocation], int]] = {
    Command.BACKUP: cmd_backup,
    Command.CHECK: cmd_check,
    Command.DIFF: cmd_diff,
    Command.EXPIRE: cmd_expire,
    Command.INIT: cmd_init,
    Command.MOUNT: cmd_mount,
    Command.PASSTHROUGH: cmd_passthrough,
    Command.VERIFY_RANDOMLY: cmd_verify_randomly,
}


def current_user() -> str:
    """Login name, or the numeric uid when no name can be determined."""
    try:
        return getpass.getuser()
    except (OSError, KeyError):
        return str(os.getuid())


def repository_lock_path(repository: str, lock_dir: Path | str | None = None) -> Path:
    """Per-user lock file for a repository."""
    digest = hashlib.sha1(repository.encode()).hexdigest()[:12]
    base = Path(lock_dir) if lock_dir else Path(tempfile.gettempdir())
    return base / f".restic-runner.{current_user()}.{digest}.lock"


class CommandDispatcher:
    """Runs one invocation from parsed arguments to exit code."""

    def __init__(
        self,
        args: argparse.Namespace,
        engine_factory: Callable[..., ResticEngine] = ResticEngine,
        temp_dir: Path | str | None = None,
    ) -> None:
        self.args = args
        self.engine_factory = engine_factory
        self.temp_dir = temp_dir
        self.state = DispatchState.START
        self.config: RunnerConfig | None = None
        self.command: Command | None = None
        self._log_handler: logging.Handler | None = None

    def run(self) -> int:
        """Run the invocation.

        Returns:
            Exit code: the number of errors reported
        """
        with RunContext(self.temp_dir) as ctx:
            try:
                self._run(ctx)
            except RunnerError as e:
                ctx.error("%s", e)
            except KeyboardInterrupt:
                ctx.error("Interrupted")
            finally:
                if self._log_handler is not None:
                    remove_handler(self._log_handler)
                    self._log_handler = None
            return ctx.errors

    def _open_log_file(self, path: str) -> None:
        try:
            self._log_handler = add_file_handler(path)
        except OSError as e:
            raise ConfigLoadError(f"Cannot open log file {path}: {e}")

    def _run(self, ctx: RunContext) -> None:
        args = self.args

        root = find_config_root(getattr(args, "config_dir", None))
        config, warnings = resolve_config(
            root,
            repo_name=getattr(args, "repo", None),
            set_name=getattr(args, "set", None),
            overrides={"tag": getattr(args, "tag", None)},
        )
        for warning in warnings:
            logger.warning("Config: %s", warning)
        self.config = config
        self.state = DispatchState.CONFIG_RESOLVED

        command = parse_command(getattr(args, "command", None))
        self.command = command
        self.state = DispatchState.COMMAND_VALIDATED

        if config.log_file:
            self._open_log_file(config.log_file)

        repository, password_file = require_repository(config)
        engine = self.engine_factory(
            repository,
            password_file,
            restic_binary=config.restic_binary,
            verbose=getattr(args, "verbose", False),
        )
        inv = Invocation(
            ctx=ctx,
            config=config,
            engine=engine,
            args=args,
            arguments=list(getattr(args, "arguments", None) or []),
        )

        size_before = None
        if config.du:
            size_before = __util__.repository_size_bytes(repository)

        logger.info(__util__.log_heading(f"{command.value} at {time.ctime()}"))
        started = time.monotonic()
        self.state = DispatchState.EXECUTING

        with self._lock(command, repository):
            status = HANDLERS[command](inv)

        if status != 0:
            raise EngineError(f"{command.value} failed with exit code {status}")

        self.state = DispatchState.FINISHED
        self._report(config, size_before, time.monotonic() - started, ctx)

    def _lock(self, command: Command, repository: str):
        if not command.locks_repository:
            return contextlib.nullcontext()
        lock_path = repository_lock_path(repository, self.temp_dir)
        logger.debug("Locking repository: %s", lock_path)
        return FileLock(lock_path)

    def _report(
        self,
        config: RunnerConfig,
        size_before: int | None,
        duration: float,
        ctx: RunContext,
    ) -> None:
        if config.du and config.repository:
            size_after = __util__.repository_size_bytes(config.repository)
            if size_before is not None and size_after is not None:
                logger.info(
                    "Repository size: %s (%s)",
                    __util__.format_size(size_after),
                    __util__.format_size_delta(size_after - size_before),
                )

        logger.info("Duration: %s", __util__.format_duration(duration))

        if ctx.errors:
            logger.warning("Finished with %d error(s)", ctx.errors)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for restic-runner CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.version:
        from .. import __version__

        print(f"restic-runner {__version__}")
        return 0

    if not args.command:
        print("No command specified. Use --help for usage information.")
        return 1

    create_logger(get_log_level(args))

    return CommandDispatcher(args).run()

"""Per-invocation run state.

Holds the error counter and the set of temporary paths that must be
removed however the run ends.
"""

import logging
import os
import shutil
import signal
import tempfile
from pathlib import Path

from .. import RunnerError

logger = logging.getLogger(__name__)

TEMP_PREFIX = "restic-runner-"

# Signals that end the run but still let cleanup happen
TERMINATING_SIGNALS = (signal.SIGTERM, signal.SIGHUP)


class TempResourceError(RunnerError):
    """A temporary file or directory could not be created."""

    pass


class Interrupted(RunnerError):
    """The run was terminated by a signal."""

    pass


class TempResources:
    """Ordered registry of temporary paths."""

    def __init__(self, base_dir: Path | str | None = None) -> None:
        self.base_dir = str(base_dir) if base_dir is not None else None
        self._paths: list[Path] = []

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def register(self, path: Path | str) -> Path:
        path = Path(path)
        self._paths.append(path)
        logger.debug("Registered temporary path: %s", path)
        return path

    def mkstemp(self, suffix: str = "") -> Path:
        """Create and register an empty temporary file."""
        try:
            fd, name = tempfile.mkstemp(
                prefix=TEMP_PREFIX, suffix=suffix, dir=self.base_dir
            )
        except OSError as e:
            raise TempResourceError(f"Cannot create temporary file: {e}")
        os.close(fd)
        return self.register(name)

    def mkdtemp(self, suffix: str = "") -> Path:
        """Create and register a temporary directory."""
        try:
            name = tempfile.mkdtemp(
                prefix=TEMP_PREFIX, suffix=suffix, dir=self.base_dir
            )
        except OSError as e:
            raise TempResourceError(f"Cannot create temporary directory: {e}")
        return self.register(name)

    def release(self, path: Path | str) -> None:
        """Remove a registered path now and forget about it."""
        path = Path(path)
        if path in self._paths:
            # Stays registered until removed, so an interrupted removal
            # is retried by cleanup()
            _remove(path)
            self._paths.remove(path)

    def cleanup(self) -> None:
        """Remove all registered paths, newest first."""
        while self._paths:
            _remove(self._paths[-1])
            self._paths.pop()


def _remove(path: Path) -> None:
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        else:
            path.unlink(missing_ok=True)
        logger.debug("Removed temporary path: %s", path)
    except OSError as e:
        logger.warning("Could not remove temporary path %s: %s", path, e)


class RunContext:
    """Error counter and temporary resources for one invocation.

    Used as a context manager: termination signals are turned into
    Interrupted exceptions while inside the block, and all temporary
    resources are removed on exit.
    """

    def __init__(self, temp_dir: Path | str | None = None) -> None:
        self.errors = 0
        self.resources = TempResources(temp_dir)
        self._saved_handlers: dict[int, object] = {}

    def error(self, msg: str, *args) -> None:
        """Report a soft error and count it."""
        self.errors += 1
        logger.error(msg, *args)

    def _on_signal(self, signum, frame) -> None:
        raise Interrupted(f"Terminated by {signal.Signals(signum).name}")

    def __enter__(self) -> "RunContext":
        for signum in TERMINATING_SIGNALS:
            self._saved_handlers[signum] = signal.signal(signum, self._on_signal)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        try:
            self.resources.cleanup()
        finally:
            for signum, handler in self._saved_handlers.items():
                signal.signal(signum, handler)
            self._saved_handlers.clear()
        return False

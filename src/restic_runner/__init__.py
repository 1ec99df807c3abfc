"""restic-runner: restic_runner/__init__.py."""


__version__ = "0.3.0"


class RunnerError(Exception):
    """Base class for errors that abort a runner invocation."""

    pass

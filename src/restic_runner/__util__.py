"""restic-runner: restic_runner/__util__.py
Formatting helpers and repository size measurement.
"""

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# restic backend prefixes that do not point at a local directory
REMOTE_BACKENDS = (
    "sftp:",
    "rest:",
    "s3:",
    "b2:",
    "azure:",
    "gs:",
    "swift:",
    "rclone:",
)

SIZE_UNITS = ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]


def log_heading(caption: str) -> str:
    """Format a log heading."""
    return f"--[ {caption} ]--"


def format_size(size: int | float) -> str:
    """Format a byte count as a human readable string (1024 based)."""
    value = float(size)
    for unit in SIZE_UNITS:
        if abs(value) < 1024 or unit == SIZE_UNITS[-1]:
            if unit == "B":
                return f"{int(value)} {unit}"
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} {SIZE_UNITS[-1]}"


def format_size_delta(delta: int) -> str:
    """Format a signed byte difference, e.g. '+1.5 MiB' or '-20 B'."""
    sign = "-" if delta < 0 else "+"
    return f"{sign}{format_size(abs(delta))}"


def format_duration(seconds: float) -> str:
    """Format a duration in seconds as e.g. '1h 02m 03s'."""
    total = int(round(seconds))
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes:02d}m {secs:02d}s"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def is_remote_repository(repository: str) -> bool:
    """Return True if the repository is not a local directory."""
    if repository.startswith("local:"):
        return False
    return repository.startswith(REMOTE_BACKENDS)


def repository_size_bytes(repository: str) -> int | None:
    """Measure the on-disk size of a local repository.

    Returns:
        Total size of all files in bytes, or None if the repository is
        remote or cannot be found.
    """
    if is_remote_repository(repository):
        logger.warning("Cannot measure size of remote repository: %s", repository)
        return None

    path = Path(repository.removeprefix("local:"))
    if not path.is_dir():
        logger.warning("Repository directory not found: %s", path)
        return None

    total = 0
    for dirpath, _dirnames, filenames in os.walk(path):
        for name in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, name)).st_size
            except OSError as e:
                logger.debug("Skipping %s: %s", name, e)
    return total

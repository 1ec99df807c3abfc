"""Exclusion policy for backups."""

import logging
from dataclasses import dataclass
from pathlib import Path

from ..config import RunnerConfig
from .context import TempResourceError, TempResources

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExcludeSet:
    """Exclusions handed to 'restic backup'.

    Attributes:
        exclude_file: File with one exclude pattern per line, if any
        markers: Exclude-if-present marker filenames, in configured order
    """

    exclude_file: Path | None
    markers: tuple[str, ...]


def write_exclude_file(patterns: tuple[str, ...], resources: TempResources) -> Path:
    """Write exclude patterns to a registered temporary file.

    Raises:
        TempResourceError: If the file cannot be created or written
    """
    path = resources.mkstemp(suffix=".excludes")
    try:
        path.write_text("".join(f"{pattern}\n" for pattern in patterns))
    except OSError as e:
        raise TempResourceError(f"Cannot write exclude file {path}: {e}")
    logger.debug("Wrote %d exclude pattern(s) to %s", len(patterns), path)
    return path


def build_exclude_set(config: RunnerConfig, resources: TempResources) -> ExcludeSet:
    exclude_file = None
    if config.exclude_patterns:
        exclude_file = write_exclude_file(config.exclude_patterns, resources)
    return ExcludeSet(
        exclude_file=exclude_file,
        markers=tuple(config.exclude_if_present),
    )

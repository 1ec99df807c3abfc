"""Backup command: Snapshot the configured paths."""

import logging

from ..config import ConfigLoadError
from ..core.excludes import build_exclude_set
from .common import Invocation, reject_arguments

logger = logging.getLogger(__name__)


def execute_backup(inv: Invocation) -> int:
    """Execute the backup command.

    Args:
        inv: Command invocation

    Returns:
        restic exit code
    """
    reject_arguments(inv, "backup")
    config = inv.config

    if not config.include_paths:
        raise ConfigLoadError("No include paths configured")

    excludes = build_exclude_set(config, inv.ctx.resources)

    logger.info("Backing up %d path(s)", len(config.include_paths))
    for path in config.include_paths:
        logger.debug("  Include: %s", path)
    if config.exclude_patterns:
        logger.debug("  %d exclude pattern(s)", len(config.exclude_patterns))
    for marker in excludes.markers:
        logger.debug("  Exclude if present: %s", marker)

    return inv.engine.backup(
        config.include_paths,
        exclude_file=excludes.exclude_file,
        exclude_if_present=excludes.markers,
        tag=config.tag,
    )

"""Expire command: Apply the retention policy."""

import logging

from ..config import ConfigLoadError
from .common import Invocation, reject_arguments

logger = logging.getLogger(__name__)


def execute_expire(inv: Invocation) -> int:
    """Execute the expire command.

    Forgets snapshots with the configured tag according to the keep
    policy and prunes unreferenced data.

    Args:
        inv: Command invocation

    Returns:
        restic exit code
    """
    reject_arguments(inv, "expire")
    config = inv.config

    if not config.keep_policy:
        raise ConfigLoadError("No keep policy configured")
    if not config.tag:
        raise ConfigLoadError("expire requires a tag")

    logger.info("Expiring snapshots tagged '%s'", config.tag)
    logger.info("  Keep policy: %s", " ".join(config.keep_policy))

    return inv.engine.forget(config.tag, config.keep_policy, prune=True)

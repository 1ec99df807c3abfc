"""Init command: Create the repository."""

import logging

from .common import Invocation, reject_arguments

logger = logging.getLogger(__name__)


def execute_init(inv: Invocation) -> int:
    """Execute the init command."""
    reject_arguments(inv, "init")
    logger.info("Initializing repository: %s", inv.config.repository)
    return inv.engine.init()

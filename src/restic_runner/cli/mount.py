"""Mount command: Browse the repository through FUSE."""

import logging
from pathlib import Path

from .. import RunnerError
from .common import Invocation, UsageError

logger = logging.getLogger(__name__)


class MountPointError(RunnerError):
    """The mount point does not exist or is not a directory."""

    pass


def execute_mount(inv: Invocation) -> int:
    """Execute the mount command.

    Blocks until the repository is unmounted.
    """
    if not inv.arguments:
        raise UsageError("mount requires a mount point")

    mount_point = Path(inv.arguments[0]).expanduser()
    for arg in inv.arguments[1:]:
        inv.ctx.error("mount takes one argument, ignoring: %s", arg)

    if not mount_point.is_dir():
        raise MountPointError(f"Mount point is not a directory: {mount_point}")

    logger.info("Mounting repository at %s", mount_point)
    return inv.engine.mount(mount_point)

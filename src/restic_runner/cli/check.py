"""Check command: Verify repository structure."""

from .common import Invocation, reject_arguments


def execute_check(inv: Invocation) -> int:
    """Execute the check command."""
    reject_arguments(inv, "check")
    return inv.engine.check()

"""Passthrough command: Run restic with arbitrary arguments."""

from .common import Invocation


def execute_passthrough(inv: Invocation) -> int:
    """Execute restic with the given arguments against the repository."""
    return inv.engine.passthrough(inv.arguments)

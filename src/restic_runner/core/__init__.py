"""Core runner logic: run state, exclusions, diffing and verification."""

from .context import Interrupted, RunContext, TempResourceError, TempResources
from .diff import DiffFilter, InsufficientSnapshotsError, run_diff, select_filter
from .excludes import ExcludeSet, build_exclude_set
from .verify import (
    EmptySampleError,
    SnapshotResolutionError,
    VerifyFailedError,
    VerifyReport,
    verify_randomly,
)

__all__ = [
    "RunContext",
    "TempResources",
    "TempResourceError",
    "Interrupted",
    "ExcludeSet",
    "build_exclude_set",
    "DiffFilter",
    "InsufficientSnapshotsError",
    "run_diff",
    "select_filter",
    "VerifyReport",
    "SnapshotResolutionError",
    "EmptySampleError",
    "VerifyFailedError",
    "verify_randomly",
]

"""Snapshot diffing with output filters.

Picks the pair of snapshots to compare and filters the lines of
'restic diff' by change type.
"""

import logging
from enum import Enum
from typing import Iterable, Iterator, Sequence

from .. import RunnerError

logger = logging.getLogger(__name__)


class InsufficientSnapshotsError(RunnerError):
    """Not enough snapshots exist to pick a pair to compare."""

    pass


class DiffFilter(Enum):
    """Which changes to show."""

    NONE = "none"
    ADDED = "added"
    MODIFIED = "modified"
    ADDED_OR_MODIFIED = "added-or-modified"
    REMOVED = "removed"


# Change markers at the start of 'restic diff' lines
ADDED_MARKER = "+"
MODIFIED_MARKER = "M"
REMOVED_MARKER = "-"


def select_filter(
    added: bool = False, modified: bool = False, removed: bool = False
) -> DiffFilter:
    """Pick the filter for the requested change types.

    Precedence: added and modified, added, modified, removed, none.
    """
    if added and modified:
        return DiffFilter.ADDED_OR_MODIFIED
    if added:
        return DiffFilter.ADDED
    if modified:
        return DiffFilter.MODIFIED
    if removed:
        return DiffFilter.REMOVED
    return DiffFilter.NONE


def apply_filter(lines: Iterable[str], diff_filter: DiffFilter) -> Iterator[str]:
    """Filter diff output lines.

    ADDED_OR_MODIFIED yields only the last token of each matching line (the
    path); the other filters yield matching lines unchanged.
    """
    if diff_filter is DiffFilter.NONE:
        yield from lines
        return

    markers = {
        DiffFilter.ADDED: (ADDED_MARKER,),
        DiffFilter.MODIFIED: (MODIFIED_MARKER,),
        DiffFilter.REMOVED: (REMOVED_MARKER,),
        DiffFilter.ADDED_OR_MODIFIED: (ADDED_MARKER, MODIFIED_MARKER),
    }[diff_filter]

    for line in lines:
        if not line.startswith(markers):
            continue
        if diff_filter is DiffFilter.ADDED_OR_MODIFIED:
            # NOTE: paths containing whitespace are truncated here
            tokens = line.split()
            if tokens:
                yield tokens[-1]
        else:
            yield line


def select_snapshots(
    engine, explicit_ids: Sequence[str], tag: str | None = None
) -> tuple[str, str]:
    """Choose the two snapshots to compare.

    Args:
        engine: ResticEngine used to list snapshots
        explicit_ids: Snapshot ids given by the caller (at most two are used)
        tag: Tag scoping the snapshot listing

    Returns:
        (older, newer) pair of snapshot ids; explicit ids keep their order

    Raises:
        InsufficientSnapshotsError: If a pair cannot be formed
    """
    if len(explicit_ids) >= 2:
        return explicit_ids[0], explicit_ids[1]

    snapshots = engine.list_snapshots(tag)
    scope = f" tagged '{tag}'" if tag else ""

    if len(explicit_ids) == 1:
        if not snapshots:
            raise InsufficientSnapshotsError(f"No snapshots{scope} found")
        return explicit_ids[0], snapshots[-1].id

    if len(snapshots) < 2:
        raise InsufficientSnapshotsError(
            f"Need at least 2 snapshots{scope} to diff, found {len(snapshots)}"
        )
    return snapshots[-2].id, snapshots[-1].id


def run_diff(
    engine,
    explicit_ids: Sequence[str],
    tag: str | None = None,
    diff_filter: DiffFilter = DiffFilter.NONE,
) -> Iterator[str]:
    """Diff two snapshots and yield the filtered output."""
    first, second = select_snapshots(engine, explicit_ids, tag)
    logger.info("Comparing snapshots %s and %s", first, second)
    if diff_filter is not DiffFilter.NONE:
        logger.debug("Filtering diff output: %s", diff_filter.value)
    yield from apply_filter(engine.diff(first, second), diff_filter)

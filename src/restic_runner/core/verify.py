"""Randomized restore verification.

Restores a random sample of paths from a snapshot into a scratch
directory and optionally compares them with the live filesystem:

- resolve: pick the snapshot (explicit id or the latest tagged one)
- sample: draw entries from the snapshot listing without replacement
- restore: one restic restore call limited to the sampled paths
- compare: byte-for-byte comparison against the live files
"""

import filecmp
import logging
import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from .. import RunnerError
from .context import RunContext

logger = logging.getLogger(__name__)

LATEST = "latest"
DEFAULT_NUM_FILES = 10


class SnapshotResolutionError(RunnerError):
    """The snapshot to verify could not be found."""

    pass


class EmptySampleError(RunnerError):
    """Nothing could be sampled from the snapshot."""

    pass


class VerifyFailedError(RunnerError):
    """Restoring the sampled paths failed."""

    pass


@dataclass
class VerifyReport:
    """Result of a verification run."""

    snapshot_id: str
    sampled: list[str] = field(default_factory=list)
    compared: int = 0
    mismatches: list[str] = field(default_factory=list)
    started_at: float = field(default_factory=time.time)
    completed_at: float = 0.0

    @property
    def passed(self) -> bool:
        return not self.mismatches

    @property
    def duration(self) -> float:
        if self.completed_at:
            return self.completed_at - self.started_at
        return time.time() - self.started_at


def resolve_snapshot(engine, snapshot: str = LATEST, tag: str | None = None) -> str:
    """Resolve 'latest' to the newest snapshot id for the tag.

    Raises:
        SnapshotResolutionError: If no snapshot matches
    """
    if snapshot and snapshot != LATEST:
        return snapshot

    snapshots = engine.list_snapshots(tag)
    if not snapshots:
        scope = f" tagged '{tag}'" if tag else ""
        raise SnapshotResolutionError(f"No snapshots{scope} found")
    return snapshots[-1].id


def sample_entries(
    entries: Sequence[str],
    num_files: int = DEFAULT_NUM_FILES,
    rng: random.Random | None = None,
) -> list[str]:
    """Draw distinct entries at random.

    A request for more entries than exist is clamped to the listing size.

    Raises:
        EmptySampleError: If there is nothing to sample
    """
    if not entries:
        raise EmptySampleError("Snapshot contains no entries")
    if num_files < 1:
        raise EmptySampleError(f"Cannot sample {num_files} entries")

    if num_files > len(entries):
        logger.warning(
            "Requested %d entries but snapshot only has %d; verifying all",
            num_files,
            len(entries),
        )
        num_files = len(entries)

    return (rng or random).sample(list(entries), num_files)


def restored_path(restore_dir: Path, snapshot_path: str) -> Path:
    """Location of a snapshot path inside the restore directory."""
    return restore_dir / snapshot_path.lstrip("/")


def compare_sample(
    ctx: RunContext, restore_dir: Path, samples: Sequence[str], report: VerifyReport
) -> None:
    """Compare restored samples against the live filesystem.

    Every mismatch is counted as a soft error; all samples are checked.
    """
    seen: set[Path] = set()

    for sample in samples:
        restored = restored_path(restore_dir, sample)
        live = Path(sample)

        if restored.is_symlink():
            logger.debug("Skipping symlink: %s", sample)
            continue
        elif restored.is_dir():
            pairs = [
                (path, live / path.relative_to(restored))
                for path in sorted(restored.rglob("*"))
                if path.is_file() and not path.is_symlink()
            ]
        elif restored.is_file():
            pairs = [(restored, live)]
        else:
            ctx.error("Not restored: %s", sample)
            report.mismatches.append(sample)
            continue

        for restored_file, live_file in pairs:
            if restored_file in seen:
                continue
            seen.add(restored_file)
            report.compared += 1

            if not live_file.is_file():
                ctx.error("Missing from live filesystem: %s", live_file)
                report.mismatches.append(str(live_file))
            elif not filecmp.cmp(restored_file, live_file, shallow=False):
                ctx.error("Restored file differs: %s", live_file)
                report.mismatches.append(str(live_file))
            else:
                logger.debug("Verified: %s", live_file)


def verify_randomly(
    ctx: RunContext,
    engine,
    snapshot: str = LATEST,
    tag: str | None = None,
    num_files: int = DEFAULT_NUM_FILES,
    compare: bool = False,
    rng: random.Random | None = None,
) -> VerifyReport:
    """Restore a random sample of a snapshot and optionally compare it.

    Args:
        ctx: Run context holding the error counter and temporary resources
        engine: ResticEngine for the repository
        snapshot: Snapshot id or 'latest'
        tag: Tag scoping the resolution of 'latest'
        num_files: Number of entries to sample
        compare: Compare restored files with the live filesystem
        rng: Random generator (for reproducible sampling)

    Returns:
        VerifyReport with the sample and any mismatches

    Raises:
        SnapshotResolutionError: If the snapshot cannot be resolved
        EmptySampleError: If nothing can be sampled
        VerifyFailedError: If restic fails to restore the sample
    """
    snapshot_id = resolve_snapshot(engine, snapshot, tag)
    report = VerifyReport(snapshot_id=snapshot_id)

    restore_dir = ctx.resources.mkdtemp(suffix="-verify")
    logger.info("Using temp directory: %s", restore_dir)

    try:
        entries = engine.list_entries(snapshot_id)
        report.sampled = sample_entries(entries, num_files, rng)
        logger.info(
            "Restoring %d of %d entries from snapshot %s",
            len(report.sampled),
            len(entries),
            snapshot_id,
        )
        for sample in report.sampled:
            logger.debug("Sampled: %s", sample)

        returncode = engine.restore(snapshot_id, restore_dir, report.sampled)
        if returncode != 0:
            raise VerifyFailedError(
                f"Restore of snapshot {snapshot_id} failed with exit code {returncode}"
            )

        if compare:
            compare_sample(ctx, restore_dir, report.sampled, report)
            if report.mismatches:
                logger.warning(
                    "%d mismatch(es) in %d compared file(s)",
                    len(report.mismatches),
                    report.compared,
                )
            else:
                logger.info("All %d compared file(s) match", report.compared)
        else:
            logger.info("Restored %d sampled entries", len(report.sampled))
    finally:
        ctx.resources.release(restore_dir)

    report.completed_at = time.time()
    return report

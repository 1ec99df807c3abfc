"""restic invocation layer.

Wraps the restic command line as a small set of typed operations. Every
call is built as an argument list and run without a shell.
"""

import json
import logging
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Sequence

from . import RunnerError

logger = logging.getLogger(__name__)


class EngineError(RunnerError):
    """restic exited with an error or produced unusable output."""

    pass


@dataclass
class Snapshot:
    """A snapshot as reported by 'restic snapshots --json'."""

    id: str
    short_id: str = ""
    time: str = ""
    paths: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)

    @classmethod
    def from_json(cls, data: dict) -> "Snapshot":
        snapshot_id = data["id"]
        return cls(
            id=snapshot_id,
            short_id=data.get("short_id", snapshot_id[:8]),
            time=data.get("time", ""),
            paths=list(data.get("paths") or []),
            tags=list(data.get("tags") or []),
        )


class ResticEngine:
    """Run restic against a single repository."""

    def __init__(
        self,
        repository: str,
        password_file: str,
        restic_binary: str = "restic",
        verbose: bool = False,
    ) -> None:
        self.repository = repository
        self.password_file = password_file
        self.restic_binary = restic_binary
        self.verbose = verbose

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.repository!r})"

    def build_command(self, *args: str) -> list[str]:
        """Build the full restic argument list for a subcommand."""
        return [
            self.restic_binary,
            "--repo",
            self.repository,
            "--password-file",
            self.password_file,
            *args,
        ]

    def _run(self, *args: str) -> int:
        cmd = self.build_command(*args)
        logger.debug("Executing: %s", shlex.join(cmd))
        try:
            return subprocess.run(cmd).returncode
        except OSError as e:
            raise EngineError(f"Cannot execute {self.restic_binary}: {e}")

    def _capture(self, *args: str) -> str:
        cmd = self.build_command(*args)
        logger.debug("Executing: %s", shlex.join(cmd))
        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise EngineError(f"Cannot execute {self.restic_binary}: {e}")
        if result.returncode != 0:
            raise EngineError(
                f"restic {args[0]} failed with exit code {result.returncode}: "
                f"{result.stderr.strip()}"
            )
        return result.stdout

    def backup(
        self,
        paths: Sequence[str],
        exclude_file: Path | None = None,
        exclude_if_present: Sequence[str] = (),
        tag: str | None = None,
    ) -> int:
        args = ["backup"]
        if self.verbose:
            args.append("--verbose")
        if exclude_file is not None:
            args.extend(["--exclude-file", str(exclude_file)])
        for marker in exclude_if_present:
            args.extend(["--exclude-if-present", marker])
        if tag:
            args.extend(["--tag", tag])
        args.extend(paths)
        return self._run(*args)

    def check(self) -> int:
        return self._run("check")

    def init(self) -> int:
        return self._run("init")

    def mount(self, path: Path | str) -> int:
        """Mount the repository; blocks until it is unmounted."""
        return self._run("mount", str(path))

    def forget(
        self, tag: str | None, keep_policy: Sequence[str], prune: bool = True
    ) -> int:
        """Apply a retention policy.

        Each policy entry may hold several arguments, e.g. "--keep-daily 7".
        """
        args = ["forget"]
        if tag:
            args.extend(["--tag", tag])
        if prune:
            args.append("--prune")
        for policy in keep_policy:
            args.extend(shlex.split(policy))
        return self._run(*args)

    def passthrough(self, args: Sequence[str]) -> int:
        """Forward arbitrary arguments to restic."""
        forwarded = ["--help" if arg == "help" else arg for arg in args]
        return self._run(*forwarded)

    def diff(self, first: str, second: str) -> Iterator[str]:
        """Stream the lines of 'restic diff' between two snapshots."""
        cmd = self.build_command("diff", first, second)
        logger.debug("Executing: %s", shlex.join(cmd))
        try:
            with subprocess.Popen(cmd, stdout=subprocess.PIPE, text=True) as proc:
                if proc.stdout is None:
                    raise EngineError("restic diff produced no output stream")
                for line in proc.stdout:
                    yield line.rstrip("\n")
                returncode = proc.wait()
        except OSError as e:
            raise EngineError(f"Cannot execute {self.restic_binary}: {e}")
        if returncode != 0:
            raise EngineError(f"restic diff failed with exit code {returncode}")

    def list_snapshots(self, tag: str | None = None) -> list[Snapshot]:
        """List snapshots, oldest first, optionally restricted to a tag."""
        args = ["snapshots", "--json"]
        if tag:
            args.extend(["--tag", tag])
        output = self._capture(*args)

        try:
            data = json.loads(output or "[]")
        except json.JSONDecodeError as e:
            raise EngineError(f"Cannot parse snapshot listing: {e}")

        return [Snapshot.from_json(item) for item in data or []]

    def list_entries(self, snapshot_id: str) -> list[str]:
        """List the paths of all files and directories in a snapshot."""
        output = self._capture("ls", "--json", snapshot_id)

        entries = []
        for line in output.splitlines():
            if not line.strip():
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                raise EngineError(f"Cannot parse entry listing: {e}")
            if record.get("struct_type") == "node" and record.get("path"):
                entries.append(record["path"])
        return entries

    def restore(
        self, snapshot_id: str, target: Path | str, includes: Sequence[str] = ()
    ) -> int:
        """Restore a snapshot, limited to the given include paths."""
        args = ["restore", snapshot_id, "--target", str(target)]
        for include in includes:
            args.extend(["--include", include])
        return self._run(*args)

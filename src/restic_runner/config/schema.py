"""Configuration schema definitions using dataclasses.

Defines the resolved settings shared by all commands.
"""

from dataclasses import dataclass, field
from typing import Optional

# Settings holding a single string value
STRING_KEYS = frozenset(
    {"repository", "password_file", "tag", "log_file", "restic_binary"}
)

# Settings holding a boolean flag
BOOL_KEYS = frozenset({"du"})

# Settings holding a list of strings, which can also be extended via [append]
LIST_KEYS = frozenset(
    {"include_paths", "exclude_patterns", "exclude_if_present", "keep_policy"}
)

ALL_KEYS = STRING_KEYS | BOOL_KEYS | LIST_KEYS


@dataclass(frozen=True)
class RunnerConfig:
    """Resolved runner configuration.

    Attributes:
        repository: restic repository location (path or backend URL)
        password_file: Path to the file holding the repository password
        du: Whether to report repository size before and after a command
        tag: Tag attached to new snapshots and used to scope listings
        include_paths: Paths to back up
        exclude_patterns: Glob patterns excluded from backups
        exclude_if_present: Marker filenames that exclude their directory
        keep_policy: Retention arguments passed to 'restic forget'
        log_file: Optional path to a log file
        restic_binary: Name or path of the restic executable
    """

    repository: Optional[str] = None
    password_file: Optional[str] = None
    du: bool = False
    tag: Optional[str] = None
    include_paths: tuple[str, ...] = field(default_factory=tuple)
    exclude_patterns: tuple[str, ...] = field(default_factory=tuple)
    exclude_if_present: tuple[str, ...] = field(default_factory=tuple)
    keep_policy: tuple[str, ...] = field(default_factory=tuple)
    log_file: Optional[str] = None
    restic_binary: str = "restic"

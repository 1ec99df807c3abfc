"""TOML configuration loading and layering.

Handles config root discovery, parsing of the global, repository and set
layers, and merging them into one RunnerConfig.
"""

import os
import tomllib
from pathlib import Path
from typing import Any

from .. import RunnerError
from .schema import ALL_KEYS, BOOL_KEYS, LIST_KEYS, STRING_KEYS, RunnerConfig


class ConfigLoadError(RunnerError):
    """Configuration loading or validation error."""

    pass


CONFIG_DIR_ENV = "RESTIC_RUNNER_CONFIG_DIR"
DEFAULT_CONFIG_DIR = Path.home() / ".config" / "backup" / "restic"

GLOBAL_CONFIG_NAME = "runner.toml"
REPOS_DIR_NAME = "repos"
SETS_DIR_NAME = "sets"

# Keys whose values are filesystem paths and get '~' expanded
PATH_KEYS = frozenset({"password_file", "log_file", "repository"})


def find_config_root(explicit_dir: str | None = None) -> Path:
    """Find the configuration root directory.

    Args:
        explicit_dir: Explicitly specified directory (highest priority)

    Returns:
        Path to the configuration root (it may not exist)
    """
    if explicit_dir:
        return Path(explicit_dir).expanduser()

    env_dir = os.environ.get(CONFIG_DIR_ENV)
    if env_dir:
        return Path(env_dir).expanduser()

    return DEFAULT_CONFIG_DIR


def global_config_path(root: Path) -> Path:
    return root / GLOBAL_CONFIG_NAME


def repo_config_path(root: Path, name: str) -> Path:
    return root / REPOS_DIR_NAME / f"{name}.toml"


def set_config_path(root: Path, name: str) -> Path:
    return root / SETS_DIR_NAME / f"{name}.toml"


def load_layer(path: Path | str) -> dict[str, Any]:
    """Read one configuration layer.

    Raises:
        ConfigLoadError: If the file cannot be read or parsed
    """
    path = Path(path)

    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigLoadError(f"Invalid TOML syntax in {path}: {e}")
    except OSError as e:
        raise ConfigLoadError(f"Cannot read config file {path}: {e}")


def _check_value(key: str, value: Any, source: str) -> Any:
    """Validate the type of a single setting and normalize it."""
    if key in BOOL_KEYS:
        if not isinstance(value, bool):
            raise ConfigLoadError(f"{source}: '{key}' must be true or false")
        return value

    if key in STRING_KEYS:
        if not isinstance(value, str):
            raise ConfigLoadError(f"{source}: '{key}' must be a string")
        if key in PATH_KEYS:
            return os.path.expanduser(value)
        return value

    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigLoadError(f"{source}: '{key}' must be a list of strings")
    return list(value)


def merge_layer(
    settings: dict[str, Any],
    data: dict[str, Any],
    source: str,
    warnings: list[str],
) -> None:
    """Apply one layer on top of the accumulated settings.

    Keys defined by the layer replace earlier values. List settings listed
    in an [append] table are extended instead.
    """
    for key, value in data.items():
        if key == "append":
            if not isinstance(value, dict):
                raise ConfigLoadError(f"{source}: 'append' must be a table")
            for list_key, extra in value.items():
                if list_key not in LIST_KEYS:
                    warnings.append(f"{source}: cannot append to '{list_key}'")
                    continue
                extra = _check_value(list_key, extra, source)
                settings[list_key] = list(settings.get(list_key, [])) + extra
        elif key in ALL_KEYS:
            settings[key] = _check_value(key, value, source)
        else:
            warnings.append(f"{source}: unknown setting '{key}'")


def resolve_config(
    root: Path | str,
    repo_name: str | None = None,
    set_name: str | None = None,
    overrides: dict[str, Any] | None = None,
) -> tuple[RunnerConfig, list[str]]:
    """Load and layer the global, repository and set configuration.

    Layers are applied in that fixed order so later ones can override
    settings from earlier ones.

    Args:
        root: Configuration root directory
        repo_name: Repository layer to load (required to exist if given)
        set_name: Backup set layer to load (required to exist if given)
        overrides: Command line values applied after all layers

    Returns:
        Tuple of (RunnerConfig, list of warnings)

    Raises:
        ConfigLoadError: If a requested layer is missing or invalid
    """
    root = Path(root)
    settings: dict[str, Any] = {}
    warnings: list[str] = []

    global_path = global_config_path(root)
    if global_path.exists():
        merge_layer(settings, load_layer(global_path), str(global_path), warnings)

    if repo_name:
        repo_path = repo_config_path(root, repo_name)
        if not repo_path.exists():
            raise ConfigLoadError(f"Repository config not found: {repo_path}")
        merge_layer(settings, load_layer(repo_path), str(repo_path), warnings)

    if set_name:
        set_path = set_config_path(root, set_name)
        if not set_path.exists():
            raise ConfigLoadError(f"Set config not found: {set_path}")
        merge_layer(settings, load_layer(set_path), str(set_path), warnings)
        settings.setdefault("tag", set_name)

    for key, value in (overrides or {}).items():
        if value is not None:
            settings[key] = _check_value(key, value, "command line")

    for key in LIST_KEYS:
        if key in settings:
            settings[key] = tuple(settings[key])

    return RunnerConfig(**settings), warnings


def require_repository(config: RunnerConfig) -> tuple[str, str]:
    """Ensure the repository can be addressed before calling restic.

    Returns:
        Tuple of (repository, password_file)

    Raises:
        ConfigLoadError: If repository or password file is not set
    """
    if not config.repository:
        raise ConfigLoadError("No repository configured")
    if not config.password_file:
        raise ConfigLoadError(
            f"No password file configured for repository {config.repository}"
        )
    return config.repository, config.password_file


def generate_example_config() -> dict[str, str]:
    """Generate example configuration file contents, keyed by relative path."""
    return {
        GLOBAL_CONFIG_NAME: """# restic-runner global settings
# log_file = "~/.cache/restic-runner.log"
exclude_if_present = [".nobackup"]
""",
        f"{REPOS_DIR_NAME}/local.toml": """# Repository settings
repository = "/mnt/backup/restic"
password_file = "~/.config/backup/restic/passwords/local"
du = true
""",
        f"{SETS_DIR_NAME}/home.toml": """# Backup set settings
tag = "home"
include_paths = ["~/"]
exclude_patterns = ["*.tmp", "~/.cache"]
keep_policy = ["--keep-daily 7", "--keep-weekly 4", "--keep-monthly 12"]

[append]
exclude_if_present = [".cache-dir"]
""",
    }

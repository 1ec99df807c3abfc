"""Configuration system for restic-runner.

This module provides layered TOML configuration loading (global,
repository and backup set) and the resolved settings schema.
"""

from .loader import (
    ConfigLoadError,
    find_config_root,
    require_repository,
    resolve_config,
)
from .schema import RunnerConfig

__all__ = [
    "RunnerConfig",
    "resolve_config",
    "require_repository",
    "find_config_root",
    "ConfigLoadError",
]

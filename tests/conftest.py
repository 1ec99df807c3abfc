"""Pytest configuration and shared fixtures."""

from unittest.mock import MagicMock

import pytest

from restic_runner.core.context import RunContext
from restic_runner.engine import ResticEngine


@pytest.fixture
def tmp_config_dir(tmp_path):
    """Create a temporary config root with repos/ and sets/ subdirectories."""
    config_dir = tmp_path / "config"
    (config_dir / "repos").mkdir(parents=True)
    (config_dir / "sets").mkdir()
    return config_dir


@pytest.fixture
def global_config_toml():
    """Return a sample global layer."""
    return """
exclude_if_present = [".nobackup"]
tag = "global-tag"
"""


@pytest.fixture
def repo_config_toml():
    """Return a sample repository layer."""
    return """
repository = "/mnt/backup/restic"
password_file = "/etc/restic/password"
du = true
tag = "repo-tag"
include_paths = ["/srv"]
"""


@pytest.fixture
def set_config_toml():
    """Return a sample backup set layer."""
    return """
tag = "home"
include_paths = ["/home/alice", "/home/bob"]
exclude_patterns = ["*.tmp", "/home/*/.cache"]
keep_policy = ["--keep-daily 7", "--keep-weekly 4"]

[append]
exclude_if_present = [".cache-dir"]
"""


@pytest.fixture
def config_root(tmp_config_dir, global_config_toml, repo_config_toml, set_config_toml):
    """Create a config root with all three layers."""
    (tmp_config_dir / "runner.toml").write_text(global_config_toml)
    (tmp_config_dir / "repos" / "local.toml").write_text(repo_config_toml)
    (tmp_config_dir / "sets" / "home.toml").write_text(set_config_toml)
    return tmp_config_dir


@pytest.fixture
def mock_engine():
    """A ResticEngine double whose status calls succeed."""
    engine = MagicMock(spec=ResticEngine)
    for name in ("backup", "check", "forget", "init", "mount", "restore"):
        getattr(engine, name).return_value = 0
    engine.passthrough.return_value = 0
    engine.list_snapshots.return_value = []
    engine.list_entries.return_value = []
    engine.diff.return_value = iter([])
    return engine


@pytest.fixture
def run_context(tmp_path):
    """A RunContext with temporary resources under tmp_path."""
    temp_dir = tmp_path / "tmp"
    temp_dir.mkdir()
    with RunContext(temp_dir) as ctx:
        yield ctx

"""Tests for the command dispatcher."""

import logging
import os
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from restic_runner.cli.dispatcher import (
    Command,
    CommandDispatcher,
    DispatchState,
    UnknownCommandError,
    create_parser,
    current_user,
    main,
    parse_command,
    repository_lock_path,
)
from restic_runner.engine import ResticEngine, Snapshot


@pytest.fixture
def repo_dir(tmp_path):
    """A local repository directory with some content."""
    repo = tmp_path / "repo"
    (repo / "data").mkdir(parents=True)
    (repo / "config").write_bytes(b"c" * 100)
    return repo


@pytest.fixture
def runner_root(tmp_config_dir, repo_dir):
    """Config root with a 'local' repository and a 'nightly' set."""
    (tmp_config_dir / "repos" / "local.toml").write_text(
        f'repository = "{repo_dir}"\npassword_file = "/etc/restic/pw"\ndu = true\n'
    )
    (tmp_config_dir / "sets" / "nightly.toml").write_text(
        """
include_paths = ["/home", "/etc"]
exclude_patterns = ["*.tmp"]
exclude_if_present = [".nobackup"]
keep_policy = ["--keep-period 7d"]
"""
    )
    return tmp_config_dir


@pytest.fixture
def dispatch(runner_root, tmp_path, mock_engine):
    """Run a dispatcher for a command line; returns (exit code, dispatcher)."""
    lock_dir = tmp_path / "locks"
    lock_dir.mkdir()
    factory = MagicMock(return_value=mock_engine)

    def run(*argv, engine_factory=factory):
        args = create_parser().parse_args(
            ["--config-dir", str(runner_root), "--repo", "local", *argv]
        )
        dispatcher = CommandDispatcher(
            args, engine_factory=engine_factory, temp_dir=lock_dir
        )
        return dispatcher.run(), dispatcher

    run.factory = factory
    return run


class TestParseCommand:
    """Tests for parse_command function."""

    @pytest.mark.parametrize("command", list(Command))
    def test_known_commands(self, command):
        assert parse_command(command.value) is command

    def test_command_alias(self):
        assert parse_command("command") is Command.PASSTHROUGH

    @pytest.mark.parametrize("name", ["restore", "__init__", "BACKUP", ""])
    def test_unknown(self, name):
        with pytest.raises(UnknownCommandError):
            parse_command(name)

    def test_missing(self):
        with pytest.raises(UnknownCommandError, match="No command"):
            parse_command(None)

    def test_locking_commands(self):
        assert Command.BACKUP.locks_repository
        assert Command.EXPIRE.locks_repository
        assert not Command.MOUNT.locks_repository
        assert not Command.DIFF.locks_repository


class TestCreateParser:
    """Tests for create_parser function."""

    def test_global_options(self):
        args = create_parser().parse_args(
            ["-r", "local", "-s", "home", "-t", "nightly", "--debug", "check"]
        )
        assert args.repo == "local"
        assert args.set == "home"
        assert args.tag == "nightly"
        assert args.debug is True
        assert args.command == "check"
        assert args.arguments == []

    def test_arguments_after_command(self):
        args = create_parser().parse_args(["passthrough", "snapshots", "--json"])
        assert args.command == "passthrough"
        assert args.arguments == ["snapshots", "--json"]

    def test_global_filter_flags(self):
        args = create_parser().parse_args(["--added", "--modified", "diff"])
        assert args.added is True
        assert args.modified is True
        assert args.removed is False


class TestRepositoryLockPath:
    def test_per_repository(self, tmp_path):
        first = repository_lock_path("/a", tmp_path)
        second = repository_lock_path("/b", tmp_path)
        assert first.parent == tmp_path
        assert first != second
        assert first == repository_lock_path("/a", tmp_path)

    @patch("restic_runner.cli.dispatcher.getpass.getuser", side_effect=OSError)
    def test_unknown_user_falls_back_to_uid(self, mock_getuser, tmp_path):
        assert current_user() == str(os.getuid())
        path = repository_lock_path("/a", tmp_path)
        assert f".restic-runner.{os.getuid()}." in path.name


class TestLogFile:
    """Tests for the configured log file."""

    @pytest.fixture
    def dispatch_logged(self, runner_root, repo_dir, tmp_path, mock_engine):
        def run(log_file, *argv):
            (runner_root / "repos" / "logged.toml").write_text(
                f'repository = "{repo_dir}"\n'
                'password_file = "/etc/restic/pw"\n'
                f'log_file = "{log_file}"\n'
            )
            args = create_parser().parse_args(
                ["--config-dir", str(runner_root), "--repo", "logged", *argv]
            )
            return CommandDispatcher(
                args,
                engine_factory=MagicMock(return_value=mock_engine),
                temp_dir=tmp_path,
            )

        return run

    def test_records_written(self, dispatch_logged, tmp_path, caplog):
        log = tmp_path / "runner.log"
        dispatcher = dispatch_logged(log, "check")

        with caplog.at_level(logging.INFO):
            code = dispatcher.run()

        assert code == 0
        assert "Duration:" in log.read_text()
        assert not any(
            isinstance(h, logging.FileHandler)
            and h.baseFilename == str(log)
            for h in logging.getLogger().handlers
        )

    def test_missing_directory_is_fatal(self, dispatch_logged, tmp_path, caplog):
        log = tmp_path / "nodir" / "runner.log"
        dispatcher = dispatch_logged(log, "check")

        code = dispatcher.run()

        assert code == 1
        assert dispatcher.state is DispatchState.COMMAND_VALIDATED
        assert "Cannot open log file" in caplog.text
        assert str(log) in caplog.text

    def test_unknown_command_leaves_log_file_uncreated(
        self, dispatch_logged, tmp_path
    ):
        log = tmp_path / "runner.log"
        dispatcher = dispatch_logged(log, "bogus")

        code = dispatcher.run()

        assert code == 1
        assert dispatcher.state is DispatchState.CONFIG_RESOLVED
        assert not log.exists()


class TestDispatcherStates:
    """Tests for the dispatcher state machine."""

    def test_unknown_command(self, dispatch):
        """Test that an unknown command fails before any engine call."""
        code, dispatcher = dispatch("frobnicate")

        assert code == 1
        assert dispatcher.state is DispatchState.CONFIG_RESOLVED
        dispatch.factory.assert_not_called()

    def test_missing_config(self, dispatch):
        code, dispatcher = dispatch("--set", "missing", "check")

        assert code == 1
        assert dispatcher.state is DispatchState.START
        dispatch.factory.assert_not_called()

    def test_missing_repository(self, tmp_path, mock_engine):
        factory = MagicMock(return_value=mock_engine)
        args = create_parser().parse_args(["--config-dir", str(tmp_path), "check"])

        code = CommandDispatcher(args, engine_factory=factory, temp_dir=tmp_path).run()

        assert code == 1
        factory.assert_not_called()

    def test_success(self, dispatch, mock_engine):
        code, dispatcher = dispatch("check")

        assert code == 0
        assert dispatcher.state is DispatchState.FINISHED
        assert dispatcher.command is Command.CHECK
        mock_engine.check.assert_called_once_with()

    def test_engine_failure_is_fatal(self, dispatch, mock_engine, caplog):
        mock_engine.check.return_value = 3

        with caplog.at_level(logging.INFO):
            code, dispatcher = dispatch("check")

        assert code == 1
        assert dispatcher.state is DispatchState.EXECUTING
        assert "check failed with exit code 3" in caplog.text
        assert "Duration:" not in caplog.text

    def test_engine_factory_arguments(self, dispatch, repo_dir):
        dispatch("-v", "init")
        dispatch.factory.assert_called_once_with(
            str(repo_dir), "/etc/restic/pw", restic_binary="restic", verbose=True
        )

    def test_keyboard_interrupt(self, dispatch, mock_engine):
        mock_engine.check.side_effect = KeyboardInterrupt
        code, _ = dispatch("check")
        assert code == 1

    def test_extra_arguments_are_soft_errors(self, dispatch, mock_engine):
        code, dispatcher = dispatch("check", "--read-data")

        assert code == 1
        assert dispatcher.state is DispatchState.FINISHED
        mock_engine.check.assert_called_once_with()


class TestDispatcherMetrics:
    """Tests for size and duration reporting."""

    def test_size_and_duration(self, dispatch, mock_engine, repo_dir, caplog):
        def grow_repository(*args, **kwargs):
            (repo_dir / "data" / "pack").write_bytes(b"p" * 2048)
            return 0

        mock_engine.backup.side_effect = grow_repository

        with caplog.at_level(logging.INFO):
            code, _ = dispatch("--set", "nightly", "backup")

        assert code == 0
        assert "Repository size: 2.1 KiB (+2.0 KiB)" in caplog.text
        assert "Duration:" in caplog.text

    def test_no_size_without_du(self, tmp_config_dir, tmp_path, mock_engine, caplog):
        (tmp_config_dir / "repos" / "plain.toml").write_text(
            'repository = "/nowhere"\npassword_file = "/pw"\n'
        )
        args = create_parser().parse_args(
            ["--config-dir", str(tmp_config_dir), "--repo", "plain", "check"]
        )

        with caplog.at_level(logging.INFO):
            code = CommandDispatcher(
                args,
                engine_factory=MagicMock(return_value=mock_engine),
                temp_dir=tmp_path,
            ).run()

        assert code == 0
        assert "Repository size" not in caplog.text
        assert "Duration:" in caplog.text


class TestCommands:
    """End-to-end tests of individual commands."""

    def test_backup(self, dispatch, mock_engine):
        captured = {}

        def backup(paths, exclude_file=None, exclude_if_present=(), tag=None):
            captured["excludes"] = exclude_file.read_text()
            captured["exclude_file"] = exclude_file
            return 0

        mock_engine.backup.side_effect = backup

        code, _ = dispatch("--set", "nightly", "backup")

        assert code == 0
        args, kwargs = mock_engine.backup.call_args
        assert args == (("/home", "/etc"),)
        assert kwargs["exclude_if_present"] == (".nobackup",)
        assert kwargs["tag"] == "nightly"
        assert captured["excludes"] == "*.tmp\n"
        assert not captured["exclude_file"].exists()

    def test_backup_without_paths(self, dispatch, mock_engine):
        code, _ = dispatch("backup")
        assert code == 1
        mock_engine.backup.assert_not_called()

    def test_expire_invokes_forget(self, dispatch, repo_dir):
        """Test expire with keep policy and tag 'nightly' end to end."""
        with patch("restic_runner.engine.subprocess.run") as mock_run:
            mock_run.return_value.returncode = 0
            code, _ = dispatch(
                "--set", "nightly", "expire", engine_factory=ResticEngine
            )

        assert code == 0
        mock_run.assert_called_once_with(
            [
                "restic",
                "--repo",
                str(repo_dir),
                "--password-file",
                "/etc/restic/pw",
                "forget",
                "--tag",
                "nightly",
                "--prune",
                "--keep-period",
                "7d",
            ]
        )

    def test_expire_without_policy(self, dispatch, mock_engine):
        code, _ = dispatch("--tag", "x", "expire")
        assert code == 1
        mock_engine.forget.assert_not_called()

    def test_diff_default_pair(self, dispatch, mock_engine, capsys):
        mock_engine.list_snapshots.return_value = [
            Snapshot(id="s1"),
            Snapshot(id="s2"),
            Snapshot(id="s3"),
        ]
        mock_engine.diff.return_value = iter(["+    /home/new", "M    /home/changed"])

        code, _ = dispatch("--set", "nightly", "diff", "--added", "--modified")

        assert code == 0
        mock_engine.list_snapshots.assert_called_once_with("nightly")
        mock_engine.diff.assert_called_once_with("s2", "s3")
        assert capsys.readouterr().out == "/home/new\n/home/changed\n"

    def test_diff_explicit_ids(self, dispatch, mock_engine, capsys):
        mock_engine.diff.return_value = iter(["-    /gone", "+    /new"])

        code, _ = dispatch("--removed", "diff", "bbb", "aaa")

        assert code == 0
        mock_engine.diff.assert_called_once_with("bbb", "aaa")
        assert capsys.readouterr().out == "-    /gone\n"

    def test_diff_insufficient_snapshots(self, dispatch, mock_engine):
        mock_engine.list_snapshots.return_value = [Snapshot(id="s1")]

        code, _ = dispatch("diff")

        assert code == 1
        mock_engine.diff.assert_not_called()

    def test_verify_soft_errors(self, dispatch, mock_engine, tmp_path, caplog):
        """Test that mismatches become the exit code without aborting."""
        live = tmp_path / "live"
        live.mkdir()
        entries = []
        for i in range(3):
            (live / f"f{i}").write_text(str(i))
            entries.append(str(live / f"f{i}"))

        def restore(snapshot_id, target, includes):
            for include in includes:
                destination = Path(target) / include.lstrip("/")
                destination.parent.mkdir(parents=True, exist_ok=True)
                destination.write_text("different")
            return 0

        mock_engine.list_snapshots.return_value = [Snapshot(id="s1")]
        mock_engine.list_entries.return_value = entries
        mock_engine.restore.side_effect = restore

        with caplog.at_level(logging.INFO):
            code, dispatcher = dispatch("verify-randomly", "3", "--compare")

        assert code == 3
        assert dispatcher.state is DispatchState.FINISHED
        assert "Duration:" in caplog.text

    def test_verify_invalid_count(self, dispatch, mock_engine):
        mock_engine.list_entries.return_value = ["/a"]

        code, _ = dispatch("--snapshot", "abc", "verify-randomly", "many")

        assert code == 1
        mock_engine.restore.assert_called_once()
        assert mock_engine.restore.call_args[0][0] == "abc"

    def test_verify_restore_failure(self, dispatch, mock_engine):
        mock_engine.list_entries.return_value = ["/a"]
        mock_engine.restore.return_value = 2

        code, dispatcher = dispatch("--snapshot", "abc", "verify-randomly")

        assert code == 1
        assert dispatcher.state is DispatchState.EXECUTING

    def test_mount(self, dispatch, mock_engine, tmp_path):
        code, _ = dispatch("mount", str(tmp_path))
        assert code == 0
        mock_engine.mount.assert_called_once_with(tmp_path)

    def test_mount_missing_point(self, dispatch, mock_engine, tmp_path):
        code, _ = dispatch("mount", str(tmp_path / "missing"))
        assert code == 1
        mock_engine.mount.assert_not_called()

    def test_mount_without_argument(self, dispatch, mock_engine):
        code, _ = dispatch("mount")
        assert code == 1
        mock_engine.mount.assert_not_called()

    def test_command_alias(self, dispatch, mock_engine):
        code, dispatcher = dispatch("command", "snapshots", "--json")

        assert code == 0
        assert dispatcher.command is Command.PASSTHROUGH
        mock_engine.passthrough.assert_called_once_with(["snapshots", "--json"])


class TestMain:
    """Tests for main function."""

    def test_version(self, capsys):
        assert main(["--version"]) == 0
        assert "restic-runner" in capsys.readouterr().out

    def test_no_command(self, capsys):
        assert main([]) == 1
        assert "No command specified" in capsys.readouterr().out

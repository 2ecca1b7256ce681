"""Tests for phantomit.cli module."""

import runpy
import sys
from io import StringIO
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest
from git import Repo

from phantomit.cli import main, parse_args, prompt_review, resolve_config, watch_flags
from phantomit_core.config import CONFIG_FILENAME
from phantomit_core.daemon import LOG_FILENAME, PID_FILENAME, DaemonHandle
from phantomit_core.errors import DaemonError
from phantomit_core.models import TriggerMode


@pytest.fixture
def git_project(tmp_path, monkeypatch):
    """Current directory set to a fresh repository with one commit."""
    repo = Repo.init(tmp_path)
    with repo.config_writer() as writer:
        writer.set_value("user", "name", "Test User")
        writer.set_value("user", "email", "test@example.com")
        writer.set_value("commit", "gpgsign", "false")
    (tmp_path / "README.md").write_text("# demo\n")
    repo.git.add(".")
    repo.git.commit("-m", "initial")
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GROQ_API_KEY", raising=False)
    return tmp_path


def run_main(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


class TestParseArgs:
    """Tests for parse_args function."""

    def test_watch_mode_flags(self):
        args = parse_args(["watch", "--every", "15"])

        assert args.command == "watch"
        assert args.every == 15.0
        assert args.lines is None
        assert not args.daemon_child

    def test_mode_flags_are_mutually_exclusive(self):
        with patch("sys.stderr", new_callable=StringIO), pytest.raises(SystemExit) as exc_info:
            parse_args(["watch", "--every", "15", "--lines", "20"])

        assert exc_info.value.code == 2

    @pytest.mark.parametrize(
        "argv",
        [
            ["watch", "--every", "0"],
            ["watch", "--every", "-5"],
            ["watch", "--every", "nan"],
            ["watch", "--every", "soon"],
            ["watch", "--lines", "0"],
            ["watch", "--lines", "-3"],
            ["watch", "--lines", "2.5"],
        ],
    )
    def test_out_of_range_trigger_values_rejected(self, argv):
        with patch("sys.stderr", new_callable=StringIO) as stderr, pytest.raises(SystemExit) as exc_info:
            parse_args(argv)

        assert exc_info.value.code == 2
        assert "argument" in stderr.getvalue()

    def test_smallest_trigger_values_accepted(self):
        assert parse_args(["watch", "--every", "0.01"]).every == 0.01
        assert parse_args(["watch", "--lines", "1"]).lines == 1

    def test_hidden_daemon_child_flag(self):
        assert parse_args(["watch", "--on-save", "--daemon-child"]).daemon_child is True

    def test_version_flag(self):
        with patch("sys.stdout", new_callable=StringIO), pytest.raises(SystemExit) as exc_info:
            parse_args(["--version"])

        assert exc_info.value.code == 0


class TestWatchOptions:
    @pytest.mark.parametrize(
        "argv, mode",
        [
            (["watch"], TriggerMode.INTERVAL),
            (["watch", "--every", "5"], TriggerMode.INTERVAL),
            (["watch", "--lines", "50"], TriggerMode.LINES),
            (["watch", "--on-save"], TriggerMode.ON_SAVE),
            (["watch", "--manual"], TriggerMode.MANUAL),
        ],
    )
    def test_resolve_config_mode(self, tmp_path, argv, mode):
        assert resolve_config(tmp_path, parse_args(argv)).mode == mode

    def test_flags_override_config_file(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('mode = "manual"\ninterval = 60\n')

        config = resolve_config(tmp_path, parse_args(["watch", "--every", "5"]))

        assert config.mode == TriggerMode.INTERVAL
        assert config.interval == 5

    def test_config_file_used_without_flags(self, tmp_path):
        (tmp_path / CONFIG_FILENAME).write_text('mode = "lines"\nlines = 40\n')

        config = resolve_config(tmp_path, parse_args(["watch"]))

        assert config.mode == TriggerMode.LINES
        assert config.lines == 40

    @pytest.mark.parametrize(
        "argv, flags",
        [
            (["watch", "--every", "2.5", "--daemon"], ["--every", "2.5"]),
            (["watch", "--lines", "30", "--mock"], ["--lines", "30", "--mock"]),
            (["watch", "--on-save", "--daemon", "--plain"], ["--on-save"]),
            (["watch"], []),
        ],
    )
    def test_watch_flags_forwarded_to_daemon(self, argv, flags):
        assert watch_flags(parse_args(argv)) == flags


class TestPromptReview:
    def test_accept(self):
        with patch("builtins.input", return_value="y"), patch("builtins.print"):
            assert prompt_review("feat: x") == "feat: x"

    def test_skip(self):
        with patch("builtins.input", return_value="N"), patch("builtins.print"):
            assert prompt_review("feat: x") is None

    def test_edit(self):
        with patch("builtins.input", side_effect=["e", "fix: better wording"]), patch("builtins.print"):
            assert prompt_review("feat: x") == "fix: better wording"

    def test_empty_edit_keeps_draft(self):
        with patch("builtins.input", side_effect=["e", "  "]), patch("builtins.print"):
            assert prompt_review("feat: x") == "feat: x"


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert run_main([]) == 0
        assert "usage: phantomit" in capsys.readouterr().out

    def test_outside_git_repository(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)

        assert run_main(["init"]) == 1
        assert "Run git init first." in capsys.readouterr().err
        assert not (tmp_path / CONFIG_FILENAME).exists()

    def test_init_creates_config_once(self, git_project, capsys):
        assert run_main(["init"]) == 0
        assert (git_project / CONFIG_FILENAME).exists()
        assert "created" in capsys.readouterr().out

        assert run_main(["init"]) == 0
        assert "already exists" in capsys.readouterr().out

    def test_push_with_mock_commits(self, git_project, capsys):
        (git_project / CONFIG_FILENAME).write_text("auto_push = false\n[ai]\nmock_delay = 0\n")
        (git_project / "app.py").write_text("print('hello')\n")

        with patch("builtins.input", return_value="y"):
            assert run_main(["push", "--mock"]) == 0

        assert "committed:" in capsys.readouterr().out
        repo = Repo(git_project)
        assert not repo.is_dirty(untracked_files=True)
        assert repo.head.commit.message.strip() != "initial"

    def test_push_clean_tree(self, git_project, capsys):
        with patch("builtins.input") as prompt:
            assert run_main(["push", "--mock"]) == 0

        prompt.assert_not_called()
        assert "nothing to commit, working tree clean" in capsys.readouterr().out

    def test_push_without_key_fails(self, git_project, capsys):
        (git_project / CONFIG_FILENAME).write_text("auto_push = false\n")
        (git_project / "app.py").write_text("print('hello')\n")

        assert run_main(["push"]) == 1
        assert "GROQ_API_KEY" in capsys.readouterr().err

    def test_subdirectory_run_uses_working_tree_top_level(self, git_project, monkeypatch):
        subdir = git_project / "src" / "pkg"
        subdir.mkdir(parents=True)
        monkeypatch.chdir(subdir)

        assert run_main(["init"]) == 0
        assert (git_project / CONFIG_FILENAME).exists()
        assert not (subdir / CONFIG_FILENAME).exists()

        handle = DaemonHandle(pid=5150, log_path=git_project / LOG_FILENAME)
        with patch("phantomit.cli.spawn_daemon", return_value=handle) as spawn:
            assert run_main(["watch", "--on-save", "--daemon"]) == 0
        assert spawn.call_args[0][0] == git_project

    def test_watch_daemon_spawns_child(self, git_project, capsys):
        handle = DaemonHandle(pid=5150, log_path=git_project / LOG_FILENAME)
        with patch("phantomit.cli.spawn_daemon", return_value=handle) as spawn:
            assert run_main(["watch", "--on-save", "--daemon"]) == 0

        spawn.assert_called_once_with(Path.cwd(), ["--on-save"])
        assert "pid 5150" in capsys.readouterr().out

    def test_watch_plain_runs_headless(self, git_project, capsys):
        with patch("phantomit.cli.run_headless", new_callable=AsyncMock) as headless:
            assert run_main(["watch", "--lines", "10", "--plain"]) == 0

        controller = headless.call_args[0][0]
        assert controller.config.lines == 10
        assert "every 10 lines changed" in capsys.readouterr().out

    def test_watch_opens_watch_screen(self, git_project):
        with patch("phantomit.watch_app.WatchApp") as mock_app:
            mock_app.return_value.return_code = None
            assert run_main(["watch", "--manual"]) == 0

        mock_app.return_value.run.assert_called_once()

    def test_daemon_child_releases_pid_file(self, git_project):
        (git_project / PID_FILENAME).write_text("999999")
        with (
            patch("phantomit.cli.run_headless", new_callable=AsyncMock),
            patch("phantomit.cli.release_pid_file") as release,
        ):
            assert run_main(["watch", "--manual", "--daemon-child"]) == 0

        release.assert_called_once_with(Path.cwd())

    def test_status_and_stop_without_daemon(self, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        (tmp_path / LOG_FILENAME).write_text("[2026-10-18T09:00:00.000Z] committed: feat: x\n")

        assert run_main(["status"]) == 0
        out = capsys.readouterr().out
        assert "not running" in out
        assert "committed: feat: x" in out

        assert run_main(["stop"]) == 0
        assert "no phantomit daemon running" in capsys.readouterr().out

    def test_keyboard_interrupt(self, git_project):
        with patch("phantomit.cli.cmd_watch", side_effect=KeyboardInterrupt):
            assert run_main(["watch"]) == 130

    def test_phantomit_error_exit_code(self, git_project, capsys):
        with patch("phantomit.cli.spawn_daemon", side_effect=DaemonError("phantomit already running (pid 7)")):
            assert run_main(["watch", "--daemon"]) == 1
        assert "already running" in capsys.readouterr().err


def test_module_entry_point_importable():
    with patch.object(sys, "argv", ["phantomit", "--version"]), patch("sys.stdout", new_callable=StringIO):
        with pytest.raises(SystemExit):
            runpy.run_module("phantomit", run_name="__main__")

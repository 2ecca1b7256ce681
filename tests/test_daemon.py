"""Tests for background run bookkeeping."""

import os
import re
import signal
import sys
from unittest.mock import Mock, patch

import pytest

from phantomit_core import daemon
from phantomit_core.daemon import (
    DAEMON_CHILD_FLAG,
    LOG_FILENAME,
    PID_FILENAME,
    recent_log_lines,
    release_pid_file,
    running_pid,
    spawn_daemon,
    stop_daemon,
)
from phantomit_core.errors import DaemonError
from phantomit_core.notifier import DaemonLogNotifier


class TestRunningPid:
    def test_no_pid_file(self, tmp_path):
        assert running_pid(tmp_path) is None

    def test_live_process(self, tmp_path):
        (tmp_path / PID_FILENAME).write_text(str(os.getpid()))

        assert running_pid(tmp_path) == os.getpid()

    def test_stale_pid_file_removed(self, tmp_path):
        (tmp_path / PID_FILENAME).write_text("4242")

        with patch.object(daemon, "_is_alive", return_value=False):
            assert running_pid(tmp_path) is None
        assert not (tmp_path / PID_FILENAME).exists()

    def test_garbage_pid_file_removed(self, tmp_path):
        (tmp_path / PID_FILENAME).write_text("not-a-pid")

        assert running_pid(tmp_path) is None
        assert not (tmp_path / PID_FILENAME).exists()


class TestSpawn:
    def test_spawns_detached_child_and_writes_pid(self, tmp_path):
        with patch("phantomit_core.daemon.subprocess.Popen", return_value=Mock(pid=5150)) as popen:
            handle = spawn_daemon(tmp_path, ["--on-save", "--mock"])

        command = popen.call_args[0][0]
        assert command == [sys.executable, "-m", "phantomit", "watch", "--on-save", "--mock", DAEMON_CHILD_FLAG]
        assert popen.call_args.kwargs["start_new_session"] is True
        assert popen.call_args.kwargs["cwd"] == tmp_path
        assert handle.pid == 5150
        assert handle.log_path == tmp_path / LOG_FILENAME
        assert (tmp_path / PID_FILENAME).read_text() == "5150"

    def test_refuses_when_already_running(self, tmp_path):
        (tmp_path / PID_FILENAME).write_text(str(os.getpid()))

        with patch("phantomit_core.daemon.subprocess.Popen") as popen:
            with pytest.raises(DaemonError, match="already running"):
                spawn_daemon(tmp_path, [])
        popen.assert_not_called()

    def test_spawn_failure_wrapped(self, tmp_path):
        with patch("phantomit_core.daemon.subprocess.Popen", side_effect=OSError("no such interpreter")):
            with pytest.raises(DaemonError, match="no such interpreter"):
                spawn_daemon(tmp_path, [])
        assert not (tmp_path / PID_FILENAME).exists()


class TestStop:
    def test_signals_and_removes_pid_file(self, tmp_path):
        (tmp_path / PID_FILENAME).write_text("4242")

        with patch.object(daemon, "_is_alive", return_value=True), patch("phantomit_core.daemon.os.kill") as kill:
            assert stop_daemon(tmp_path) == 4242

        kill.assert_called_once_with(4242, signal.SIGTERM)
        assert not (tmp_path / PID_FILENAME).exists()

    def test_nothing_running(self, tmp_path):
        assert stop_daemon(tmp_path) is None

    def test_signal_failure(self, tmp_path):
        (tmp_path / PID_FILENAME).write_text("4242")

        with patch.object(daemon, "_is_alive", return_value=True), patch(
            "phantomit_core.daemon.os.kill", side_effect=PermissionError("operation not permitted")
        ):
            with pytest.raises(DaemonError, match="4242"):
                stop_daemon(tmp_path)


class TestLogAndPidHousekeeping:
    def test_recent_log_lines(self, tmp_path):
        (tmp_path / LOG_FILENAME).write_text("".join(f"line {i}\n\n" for i in range(8)))

        assert recent_log_lines(tmp_path) == [f"line {i}" for i in range(3, 8)]
        assert recent_log_lines(tmp_path, limit=2) == ["line 6", "line 7"]

    def test_recent_log_lines_without_log(self, tmp_path):
        assert recent_log_lines(tmp_path) == []

    def test_release_only_own_pid(self, tmp_path):
        pid_file = tmp_path / PID_FILENAME
        pid_file.write_text("4242")

        release_pid_file(tmp_path)
        assert pid_file.exists()

        release_pid_file(tmp_path, pid=4242)
        assert not pid_file.exists()


def test_daemon_log_notifier_appends_timestamped_entries(tmp_path):
    notifier = DaemonLogNotifier(tmp_path / LOG_FILENAME)

    notifier.info("committed: feat(api): add health endpoint")
    notifier.error("error: push: rejected")

    lines = (tmp_path / LOG_FILENAME).read_text().splitlines()
    assert len(lines) == 2
    assert re.fullmatch(r"\[\d{4}-\d\d-\d\dT\d\d:\d\d:\d\d\.\d{3}Z\] committed: feat\(api\): add health endpoint", lines[0])
    assert lines[1].endswith("] error: push: rejected")
    assert recent_log_lines(tmp_path, limit=1) == [lines[1]]

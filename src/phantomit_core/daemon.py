"""Background run bookkeeping: pid file, log file, spawn and stop."""

import logging
import os
import signal
import subprocess
import sys
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from phantomit_core.errors import DaemonError

logger = logging.getLogger(__name__)

PID_FILENAME = ".phantomit.pid"
LOG_FILENAME = ".phantomit.log"

DAEMON_CHILD_FLAG = "--daemon-child"


@dataclass(frozen=True)
class DaemonHandle:
    """Process id and log path of a background run."""

    pid: int
    log_path: Path


def pid_path(project_root: str | Path) -> Path:
    return Path(project_root) / PID_FILENAME


def log_path(project_root: str | Path) -> Path:
    return Path(project_root) / LOG_FILENAME


def _is_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but owned by someone else
        return True
    return True


def running_pid(project_root: str | Path) -> int | None:
    """Return the pid of the live daemon, removing a stale pid file.

    Args:
        project_root: Directory holding the pid file

    Returns:
        The pid, or None if no daemon is running
    """
    path = pid_path(project_root)
    if not path.exists():
        return None
    try:
        pid = int(path.read_text().strip())
    except (OSError, ValueError):
        logger.warning(f"Removing unreadable pid file {path}")
        path.unlink(missing_ok=True)
        return None
    if pid <= 0 or not _is_alive(pid):
        path.unlink(missing_ok=True)
        return None
    return pid


def spawn_daemon(project_root: str | Path, watch_args: Sequence[str]) -> DaemonHandle:
    """Start ``phantomit watch`` detached in the background.

    Args:
        project_root: Project directory (working directory of the child)
        watch_args: ``watch`` options forwarded to the child

    Returns:
        Handle of the spawned process

    Raises:
        DaemonError: If a daemon is already running or the spawn fails
    """
    root = Path(project_root)
    existing = running_pid(root)
    if existing:
        raise DaemonError(f"phantomit already running (pid {existing}), run 'phantomit stop' first")

    logfile = log_path(root)
    command = [sys.executable, "-m", "phantomit", "watch", *watch_args, DAEMON_CHILD_FLAG]
    try:
        with open(logfile, "a") as out:
            child = subprocess.Popen(
                command,
                cwd=root,
                stdin=subprocess.DEVNULL,
                stdout=out,
                stderr=out,
                start_new_session=True,
            )
        pid_path(root).write_text(str(child.pid))
    except OSError as e:
        raise DaemonError(f"Failed to start daemon: {e}") from e

    logger.info(f"Spawned daemon pid {child.pid}: {' '.join(command)}")
    return DaemonHandle(pid=child.pid, log_path=logfile)


def stop_daemon(project_root: str | Path) -> int | None:
    """Terminate the running daemon.

    Returns:
        The pid that was signalled, or None if no daemon was running

    Raises:
        DaemonError: If the process could not be signalled
    """
    pid = running_pid(project_root)
    if pid is None:
        return None
    try:
        os.kill(pid, signal.SIGTERM)
    except OSError as e:
        raise DaemonError(f"Could not stop process {pid}: {e}") from e
    pid_path(project_root).unlink(missing_ok=True)
    return pid


def recent_log_lines(project_root: str | Path, limit: int = 5) -> list[str]:
    """Last non-empty lines of the daemon log."""
    path = log_path(project_root)
    if not path.exists():
        return []
    try:
        lines = [line for line in path.read_text(encoding="utf-8", errors="replace").splitlines() if line.strip()]
    except OSError as e:
        logger.warning(f"Could not read {path}: {e}")
        return []
    return lines[-limit:]


def release_pid_file(project_root: str | Path, pid: int | None = None) -> None:
    """Remove the pid file if it still records ``pid`` (default: this process)."""
    path = pid_path(project_root)
    pid = os.getpid() if pid is None else pid
    try:
        if path.exists() and path.read_text().strip() == str(pid):
            path.unlink()
    except OSError as e:
        logger.warning(f"Could not remove pid file {path}: {e}")

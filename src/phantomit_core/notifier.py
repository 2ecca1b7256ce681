"""Pluggable notification protocol for phantomit_core.

Lets the controller report cycle outcomes without knowing whether it runs
under the watch screen, in the foreground, or as a background daemon.
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class PhantomitNotifier(Protocol):
    """Protocol for notifications - host can provide custom implementation."""

    def info(self, message: str) -> None:
        """Informational message."""
        ...

    def warning(self, message: str) -> None:
        """Warning message."""
        ...

    def error(self, message: str) -> None:
        """Error message."""
        ...


class NoOpNotifier:
    """Silent notifier - default when embedded without a view."""

    def info(self, msg: str) -> None:
        pass

    def warning(self, msg: str) -> None:
        pass

    def error(self, msg: str) -> None:
        pass


class LoggingNotifier:
    """Implementation using stdlib logging - for debugging/development."""

    def info(self, msg: str) -> None:
        logger.info(msg)

    def warning(self, msg: str) -> None:
        logger.warning(msg)

    def error(self, msg: str) -> None:
        logger.error(msg)


def timestamped(msg: str) -> str:
    """Format a daemon log entry: ``[<ISO-8601 UTC>] <msg>``."""
    stamp = datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
    return f"[{stamp}] {msg}"


class DaemonLogNotifier:
    """Appends timestamped entries to the daemon log file.

    ``phantomit status`` shows the last entries of the file.
    """

    def __init__(self, log_path: str | Path):
        self.log_path = Path(log_path)

    def _append(self, msg: str) -> None:
        try:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(timestamped(msg) + "\n")
        except OSError as e:
            logger.error(f"Failed to write daemon log {self.log_path}: {e}")

    def info(self, msg: str) -> None:
        self._append(msg)

    def warning(self, msg: str) -> None:
        self._append(msg)

    def error(self, msg: str) -> None:
        self._append(msg)

"""Filesystem notification source using watchdog."""

import logging
import os
import threading
from collections.abc import Callable, Sequence
from pathlib import Path
from threading import Timer

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from phantomit_core.errors import WatchSourceError
from phantomit_core.models import ChangeKind, FileChangeEvent
from phantomit_core.watchers import EventSink

logger = logging.getLogger(__name__)

STABILITY_WINDOW = 0.5
"""Seconds a file must stay quiet before its write burst is reported."""


def is_hidden(relative_path: str) -> bool:
    """True if any path component starts with a dot (VCS internals, swap files)."""
    return any(part.startswith(".") for part in relative_path.split("/") if part not in ("", "."))


class _StableHandler(FileSystemEventHandler):
    """Watchdog handler that settles write bursts per path before reporting them."""

    def __init__(self, project_root: Path, sink: EventSink, stability: float):
        """Initialize handler.

        Args:
            project_root: Directory events are made relative to
            sink: Receives settled events (called from timer or observer threads)
            stability: Quiet period in seconds before a created/modified file is reported
        """
        self.project_root = project_root
        self.sink = sink
        self.stability = stability
        self._lock = threading.Lock()
        self._timers: dict[str, Timer] = {}
        self._pending: dict[str, ChangeKind] = {}
        self._closed = False

    def _relative(self, src_path: str | bytes) -> str | None:
        try:
            relative = Path(os.fsdecode(src_path)).relative_to(self.project_root)
        except ValueError:
            return None
        path = relative.as_posix()
        if path in ("", ".") or is_hidden(path):
            return None
        return path

    def _settle(self, path: str, kind: ChangeKind) -> None:
        """Restart the stability timer for a path."""
        with self._lock:
            if self._closed:
                return
            timer = self._timers.pop(path, None)
            if timer:
                timer.cancel()
            # A file created and then written within one window is reported as created
            if self._pending.get(path) != ChangeKind.CREATED:
                self._pending[path] = kind
            timer = Timer(self.stability, self._emit_settled, args=(path,))
            timer.daemon = True
            self._timers[path] = timer
            timer.start()

    def _emit_settled(self, path: str) -> None:
        with self._lock:
            if self._closed or path not in self._pending:
                return
            kind = self._pending.pop(path)
            self._timers.pop(path, None)
        self._deliver(FileChangeEvent(kind, path))

    def _emit_now(self, path: str, kind: ChangeKind) -> None:
        with self._lock:
            if self._closed:
                return
            timer = self._timers.pop(path, None)
            if timer:
                timer.cancel()
            self._pending.pop(path, None)
        self._deliver(FileChangeEvent(kind, path))

    def _deliver(self, event: FileChangeEvent) -> None:
        try:
            self.sink(event)
        except Exception as e:
            logger.error(f"Failed to deliver {event.kind.value} event for '{event.path}': {e}")

    def on_created(self, event: FileSystemEvent) -> None:
        """Handle file and directory creation."""
        path = self._relative(event.src_path)
        if path is None:
            return
        if event.is_directory:
            self._emit_now(path, ChangeKind.DIR_CREATED)
        else:
            self._settle(path, ChangeKind.CREATED)

    def on_modified(self, event: FileSystemEvent) -> None:
        """Handle file modification. Directory mtime changes are not reported."""
        if event.is_directory:
            return
        path = self._relative(event.src_path)
        if path is not None:
            self._settle(path, ChangeKind.MODIFIED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        """Handle removal. Removals are reported without waiting for stability."""
        path = self._relative(event.src_path)
        if path is not None:
            self._emit_now(path, ChangeKind.DIR_REMOVED if event.is_directory else ChangeKind.REMOVED)

    def on_moved(self, event: FileSystemEvent) -> None:
        """Handle a rename as a removal of the source and a creation of the destination."""
        source = self._relative(event.src_path)
        if source is not None:
            self._emit_now(source, ChangeKind.DIR_REMOVED if event.is_directory else ChangeKind.REMOVED)
        dest = self._relative(event.dest_path)
        if dest is None:
            return
        if event.is_directory:
            self._emit_now(dest, ChangeKind.DIR_CREATED)
        else:
            self._settle(dest, ChangeKind.CREATED)

    def close(self) -> None:
        """Cancel pending stability timers. No events are delivered afterwards."""
        with self._lock:
            self._closed = True
            for timer in self._timers.values():
                timer.cancel()
            self._timers.clear()
            self._pending.clear()


class WatchdogEventSource:
    """EventSource watching project-relative roots recursively with watchdog."""

    def __init__(
        self,
        project_root: str | Path,
        stability: float = STABILITY_WINDOW,
        observer_factory: Callable[[], Observer] = Observer,
    ):
        """Initialize source.

        Args:
            project_root: Directory that watch roots and event paths are relative to
            stability: Stability window in seconds for write bursts
            observer_factory: Creates the watchdog observer (replaceable in tests)
        """
        self.project_root = Path(project_root).resolve()
        self.stability = stability
        self.observer_factory = observer_factory
        self.observer: Observer | None = None
        self._handler: _StableHandler | None = None

    def _resolve_roots(self, roots: Sequence[str]) -> list[Path]:
        dirs: list[Path] = []
        for root in roots:
            path = self.project_root / root
            if not path.exists():
                logger.warning(f"Watch root does not exist, skipping: {root}")
                continue
            if not path.is_dir() or not os.access(path, os.R_OK | os.X_OK):
                raise WatchSourceError(f"Cannot read watch root: {path}")
            dirs.append(path)
        if not dirs:
            raise WatchSourceError(
                f"None of the watch roots exist under {self.project_root}: {', '.join(roots) or '(none)'}"
            )
        return dirs

    def subscribe(self, roots: Sequence[str], sink: EventSink) -> None:
        """Start recursive watches on every existing root.

        Missing roots are skipped with a warning. An unreadable root, an empty
        root list, or an observer that fails to start raises WatchSourceError
        and leaves nothing running.
        """
        if self.observer is not None:
            raise WatchSourceError("Event source is already subscribed")

        dirs = self._resolve_roots(roots)
        handler = _StableHandler(self.project_root, sink, self.stability)
        observer = self.observer_factory()
        try:
            for path in dirs:
                observer.schedule(handler, str(path), recursive=True)
            observer.start()
        except Exception as e:
            handler.close()
            if observer.is_alive():
                observer.stop()
                observer.join(timeout=2.0)
            raise WatchSourceError(f"Failed to start file watcher: {e}") from e

        self.observer = observer
        self._handler = handler
        logger.info(f"Watching {len(dirs)} root(s): {', '.join(str(d.relative_to(self.project_root)) for d in dirs)}")

    def close(self) -> None:
        """Stop the observer and cancel pending stability timers."""
        if self._handler:
            self._handler.close()
            self._handler = None
        if self.observer is not None:
            if self.observer.is_alive():
                self.observer.stop()
                self.observer.join(timeout=2.0)
            self.observer = None
            logger.info("Stopped file watcher")

"""Event batching: filter, coalesce and debounce filesystem events.

Raw events from an EventSource are pushed onto an asyncio queue (thread-safe,
via ``call_soon_threadsafe``) and consumed by a single coalescing task, which
owns the pending batch and the debounce deadline. A batch is flushed once no
accepted event has arrived for ``debounce`` seconds.
"""

import asyncio
import logging
from collections.abc import Callable, Sequence

from phantomit_core.file_watcher import is_hidden
from phantomit_core.ignore import IgnoreResolver, normalize_path
from phantomit_core.models import ChangeKind, FileChangeEvent
from phantomit_core.watchers import EventSource

logger = logging.getLogger(__name__)

BatchCallback = Callable[[list[FileChangeEvent]], None]

_DIR_KINDS = (ChangeKind.DIR_CREATED, ChangeKind.DIR_REMOVED)


class EventBatcher:
    """Turns a stream of filesystem events into debounced, deduplicated batches.

    Usage:
        batcher = EventBatcher(source, resolver, debounce=8)
        stop = batcher.start(["src"], on_batch)
        ...
        stop()
    """

    def __init__(self, source: EventSource, resolver: IgnoreResolver, debounce: float):
        """Initialize batcher.

        Args:
            source: Filesystem notification source
            resolver: Ignore predicate applied to every event
            debounce: Quiet period in seconds before a batch is flushed
        """
        self.source = source
        self.resolver = resolver
        self.debounce = debounce
        self._pending: dict[str, FileChangeEvent] = {}
        self._queue: asyncio.Queue[FileChangeEvent] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task | None = None
        self._started = False
        self._stopped = False

    @property
    def pending(self) -> list[FileChangeEvent]:
        """Snapshot of the batch accumulated since the last flush."""
        return list(self._pending.values())

    @property
    def is_running(self) -> bool:
        return self._started and not self._stopped

    def start(self, roots: Sequence[str], on_batch: BatchCallback) -> Callable[[], None]:
        """Subscribe to the source and start the coalescing loop.

        Must be called from within a running event loop.

        Args:
            roots: Project-relative watch roots
            on_batch: Called with the batch contents once per flush

        Returns:
            Stop function (idempotent)

        Raises:
            RuntimeError: If the batcher was already started
            WatchSourceError: If the source fails to subscribe
        """
        if self._started:
            raise RuntimeError("EventBatcher can only be started once")

        loop = asyncio.get_running_loop()
        self._loop = loop
        self._queue = asyncio.Queue()
        self.source.subscribe(roots, self._sink)
        self._started = True
        self._task = loop.create_task(self._run(on_batch))
        logger.debug(f"Event batcher started (debounce: {self.debounce}s)")
        return self.stop

    def stop(self) -> None:
        """Detach from the source, cancel the debounce wait and discard the pending batch.

        Safe to call more than once. ``on_batch`` is never invoked after this returns.
        """
        if self._stopped:
            return
        self._stopped = True
        try:
            self.source.close()
        except Exception as e:
            logger.error(f"Error closing event source: {e}")
        if self._task is not None:
            self._task.cancel()
            self._task = None
        if self._pending:
            logger.debug(f"Discarding {len(self._pending)} pending event(s)")
        self._pending.clear()

    def _sink(self, event: FileChangeEvent) -> None:
        """Receive an event from the source, from any thread."""
        if self._stopped or self._loop is None or self._queue is None:
            return
        if is_hidden(event.path):
            return
        try:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)
        except RuntimeError:
            # Loop already closed
            pass

    def _accept(self, event: FileChangeEvent) -> bool:
        """Upsert an event into the pending batch unless it is ignored."""
        path = normalize_path(event.path)
        if not path or self.resolver.is_ignored(path, is_dir=event.kind in _DIR_KINDS):
            logger.debug(f"Ignored {event.kind.value}: {event.path}")
            return False
        # Re-insert so the batch is ordered by latest activity
        self._pending.pop(path, None)
        self._pending[path] = FileChangeEvent(event.kind, path)
        return True

    async def _run(self, on_batch: BatchCallback) -> None:
        assert self._queue is not None and self._loop is not None
        queue, loop = self._queue, self._loop
        while True:
            event = await queue.get()
            if not self._accept(event):
                continue

            deadline = loop.time() + self.debounce
            while True:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                try:
                    event = await asyncio.wait_for(queue.get(), timeout=remaining)
                except asyncio.TimeoutError:
                    break
                if self._accept(event):
                    deadline = loop.time() + self.debounce

            self._flush(on_batch)

    def _flush(self, on_batch: BatchCallback) -> None:
        if self._stopped or not self._pending:
            return
        batch = list(self._pending.values())
        self._pending.clear()
        logger.debug(f"Flushing {len(batch)} change(s)")
        try:
            on_batch(batch)
        except Exception:
            logger.exception("Batch callback failed")

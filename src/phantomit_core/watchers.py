"""Abstract event source protocol for file watching implementations."""

from collections.abc import Callable, Sequence
from typing import Protocol

from phantomit_core.models import FileChangeEvent

EventSink = Callable[[FileChangeEvent], None]
"""Receives events from a source. May be called from a foreign thread."""


class EventSource(Protocol):
    """Protocol for filesystem notification sources."""

    def subscribe(self, roots: Sequence[str], sink: EventSink) -> None:
        """Start delivering events under the given project-relative roots.

        Raises:
            WatchSourceError: If the subscription cannot be set up. Nothing
                is left running in that case.
        """
        ...

    def close(self) -> None:
        """Stop delivering events. Safe to call more than once."""
        ...

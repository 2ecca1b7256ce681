"""Shared data models for phantomit_core."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TriggerMode(str, Enum):
    """Policy deciding when a commit cycle is due."""

    INTERVAL = "interval"
    LINES = "lines"
    ON_SAVE = "on-save"
    MANUAL = "manual"

    @classmethod
    def parse(cls, value: str) -> "TriggerMode":
        """Parse a mode name, accepting ``line-threshold`` as an alias of ``lines``.

        Raises:
            ValueError: If the name is not a known mode.
        """
        if value == "line-threshold":
            return cls.LINES
        return cls(value)


class ChangeKind(str, Enum):
    """Kind of a filesystem change."""

    CREATED = "created"
    MODIFIED = "modified"
    REMOVED = "removed"
    DIR_CREATED = "dir-created"
    DIR_REMOVED = "dir-removed"


@dataclass(frozen=True)
class FileChangeEvent:
    """A single filesystem change, relative to the project root."""

    kind: ChangeKind
    """What happened to the path."""

    path: str
    """Project-relative path with forward slashes and no leading ``./``."""


class CycleStatus(str, Enum):
    """Terminal state of one commit cycle."""

    COMMITTED = "committed"
    PUSHED = "pushed"
    NO_CHANGES = "no_changes"
    EMPTY_DIFF = "empty_diff"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class CycleOutcome:
    """Result of a commit cycle run by the orchestrator."""

    status: CycleStatus
    """How the cycle ended."""

    reason: str = "manual"
    """What fired the cycle (``interval``, ``lines``, ``on-save`` or ``manual``)."""

    message: str | None = None
    """Commit message used, when a commit was made."""

    step: str | None = None
    """Name of the step that failed, for failed cycles."""

    error: str | None = None
    """Error text of the failing step."""

    push_error: str | None = None
    """Push failure after a successful commit (the commit is kept)."""

    started_at: datetime = field(default_factory=datetime.now)
    finished_at: datetime | None = None

    @property
    def committed(self) -> bool:
        """Whether a commit was recorded in this cycle."""
        return self.status in (CycleStatus.COMMITTED, CycleStatus.PUSHED)

    @property
    def failed(self) -> bool:
        return self.status == CycleStatus.FAILED

    def describe(self) -> str:
        """One-line human description, used for log entries and the watch screen."""
        if self.committed:
            return f"committed: {self.message}"
        if self.status == CycleStatus.FAILED:
            return f"error: {self.step}: {self.error}"
        if self.status == CycleStatus.SKIPPED:
            return "skipped"
        return "nothing to commit, working tree clean"


@dataclass
class SchedulerState:
    """Mutable state owned by the trigger scheduler."""

    mode: TriggerMode
    """Active trigger policy."""

    busy: bool = False
    """True while a trigger evaluation or commit cycle is in flight."""

    last_fire: datetime | None = None
    """When the last commit cycle started."""

    fired: int = 0
    """Number of commit cycles started."""

    dropped: int = 0
    """Number of trigger conditions discarded because the scheduler was busy."""

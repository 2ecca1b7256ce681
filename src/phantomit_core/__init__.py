"""phantomit-core: change detection and trigger scheduling for automatic commits."""

__version__ = "0.1.0"

# Config
from phantomit_core.config import WatchConfig, load_config, write_default_config
from phantomit_core.errors import (
    ConfigError,
    DaemonError,
    GitOperationError,
    MessageGenerationError,
    NotAGitRepositoryError,
    PhantomitError,
    WatchSourceError,
)
from phantomit_core.ignore import IgnoreResolver
from phantomit_core.models import (
    ChangeKind,
    CycleOutcome,
    CycleStatus,
    FileChangeEvent,
    SchedulerState,
    TriggerMode,
)

# Engine
from phantomit_core.batcher import EventBatcher
from phantomit_core.orchestrator import CommitCycleOrchestrator
from phantomit_core.scheduler import TriggerScheduler

__all__ = [
    "__version__",
    # Models
    "ChangeKind",
    "CycleOutcome",
    "CycleStatus",
    "FileChangeEvent",
    "SchedulerState",
    "TriggerMode",
    # Config
    "WatchConfig",
    "load_config",
    "write_default_config",
    # Errors
    "PhantomitError",
    "ConfigError",
    "DaemonError",
    "GitOperationError",
    "MessageGenerationError",
    "NotAGitRepositoryError",
    "WatchSourceError",
    # Engine
    "IgnoreResolver",
    "EventBatcher",
    "TriggerScheduler",
    "CommitCycleOrchestrator",
]

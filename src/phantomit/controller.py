"""Non-Textual controller wiring the watch engine. Primary embed point."""

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional

from phantomit_core.batcher import EventBatcher
from phantomit_core.config import WatchConfig
from phantomit_core.file_watcher import WatchdogEventSource
from phantomit_core.git_ops import GitRepository
from phantomit_core.ignore import IgnoreResolver
from phantomit_core.messages import ApiKeyPool, MessageGenerator
from phantomit_core.models import CycleOutcome, CycleStatus, SchedulerState, TriggerMode
from phantomit_core.notifier import NoOpNotifier, PhantomitNotifier
from phantomit_core.orchestrator import CommitCycleOrchestrator, ReviewHook
from phantomit_core.scheduler import TriggerScheduler
from phantomit_core.watchers import EventSource

logger = logging.getLogger(__name__)

_WATCHING_MODES = (TriggerMode.LINES, TriggerMode.ON_SAVE)


def build_generator(config: WatchConfig, api_keys: tuple[str, ...]) -> MessageGenerator:
    """Create the message generator for a run from config and collected keys."""
    return MessageGenerator(
        ApiKeyPool(api_keys, policy=config.ai.key_policy),
        model=config.ai.model,
        mock_delay=config.ai.mock_delay,
    )


class WatchController:
    """Wires config -> event batcher -> trigger scheduler -> commit cycle.

    Stable methods: attach(), detach(), shutdown(), request_commit(),
    run_once(). Hosts wire on_outcome / on_state_change to present results.
    """

    def __init__(
        self,
        project_root: str | Path,
        config: WatchConfig,
        api_keys: tuple[str, ...] = (),
        notifier: PhantomitNotifier | None = None,
        use_mock: bool = False,
        review: ReviewHook | None = None,
        repo: GitRepository | None = None,
        generator: MessageGenerator | None = None,
        source: EventSource | None = None,
    ):
        """Initialize controller.

        Args:
            project_root: Root of the git working tree
            config: Run configuration
            api_keys: Message service keys collected at startup
            notifier: Optional notification handler (defaults to NoOpNotifier - silent)
            use_mock: Use canned commit messages instead of the message service
            review: Optional interactive review of drafted messages
            repo: VCS collaborator (defaults to a GitRepository on project_root)
            generator: Message collaborator (defaults to one built from config)
            source: Filesystem event source (defaults to watchdog)

        Raises:
            NotAGitRepositoryError: If project_root is not a git working tree
        """
        self.project_root = Path(project_root)
        self.config = config
        self.notifier = notifier or NoOpNotifier()
        self.repo = repo or GitRepository(self.project_root)
        self.generator = generator or build_generator(config, api_keys)
        self.source = source or WatchdogEventSource(self.project_root)
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stop_batcher: Callable[[], None] | None = None

        self.orchestrator = CommitCycleOrchestrator(
            self.repo,
            self.generator,
            auto_push=config.auto_push,
            branch=config.branch,
            use_mock=use_mock,
            review=review,
        )
        self.scheduler = TriggerScheduler(
            config,
            self.repo,
            self.orchestrator,
            on_outcome=self._record_outcome,
            on_state_change=self._state_changed,
        )
        self.batcher = EventBatcher(
            self.source,
            IgnoreResolver.from_project(self.project_root, config.ignore),
            config.debounce,
        )

        # Outbound events (host wires these)
        self.on_outcome: Callable[[CycleOutcome], None] | None = None
        self.on_state_change: Callable[[SchedulerState], None] | None = None

    @property
    def watches_files(self) -> bool:
        """Whether the active mode needs filesystem events."""
        return self.config.mode in _WATCHING_MODES

    @property
    def is_attached(self) -> bool:
        return self._loop is not None

    def attach(self, loop: asyncio.AbstractEventLoop) -> None:
        """Start the scheduler and, for file-driven modes, the event batcher.

        Idempotent. The batcher subscription is set up synchronously, so an
        unreadable watch root is reported here.

        Raises:
            RuntimeError: If the loop is not running
            WatchSourceError: If file watching cannot start
        """
        if self._loop is not None:
            return

        if not loop.is_running():
            raise RuntimeError(
                "Event loop must be running before attach(). "
                "Call attach() from within on_mount() or after loop started."
            )

        if self.watches_files:
            try:
                self._stop_batcher = self.batcher.start(self.config.watch, self.scheduler.handle_batch)
            except Exception as e:
                logger.error(f"Failed to start file watcher: {e}")
                self.notifier.error(f"File watcher initialization failed: {e}")
                raise

        self._loop = loop
        self.scheduler.start()
        self.notifier.info(f"Watching ({self.config.mode.value}, {self.config.describe_mode()})")

    def detach(self) -> None:
        """Stop file watching and timers. An in-flight cycle runs to completion."""
        if self._stop_batcher is not None:
            self._stop_batcher()
            self._stop_batcher = None
        self.scheduler.stop()
        self._loop = None

    async def shutdown(self) -> None:
        """Detach, wait for any in-flight cycle, and close the message client."""
        self.detach()
        await self.scheduler.wait_idle()
        await self.generator.aclose()

    def request_commit(self) -> bool:
        """Fire a cycle now (manual trigger), subject to the busy flag.

        Returns:
            False if a cycle was already in flight and the request was dropped
        """
        if self._loop is None:
            raise RuntimeError("Controller not attached to event loop. Call attach() first.")
        accepted = self.scheduler.trigger_now()
        if not accepted:
            self.notifier.warning("Commit already in progress")
        return accepted

    async def run_once(self) -> CycleOutcome:
        """Run a single commit cycle directly, outside the scheduler."""
        outcome = await self.orchestrator.run_cycle(TriggerMode.MANUAL.value)
        self._record_outcome(outcome)
        return outcome

    def _record_outcome(self, outcome: CycleOutcome) -> None:
        if outcome.failed:
            self.notifier.error(outcome.describe())
        elif outcome.committed:
            self.notifier.info(outcome.describe())
            if outcome.push_error:
                self.notifier.error(f"error: push: {outcome.push_error}")
        elif outcome.status == CycleStatus.SKIPPED:
            self.notifier.info("skipped")
        else:
            logger.debug(f"Cycle ended: {outcome.status.value}")

        if self.on_outcome:
            try:
                self.on_outcome(outcome)
            except Exception as e:
                logger.error(f"Error in outcome callback: {e}")

    def _state_changed(self, state: SchedulerState) -> None:
        if self.on_state_change:
            try:
                self.on_state_change(state)
            except Exception as e:
                logger.error(f"Error in state callback: {e}")

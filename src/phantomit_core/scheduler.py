"""Trigger scheduling: decide when a commit cycle fires and serialize cycles.

The scheduler is a two-state machine (Idle, Firing) shared by all trigger
modes. Entering Firing sets the busy flag; every trigger condition that
arrives while busy is dropped, never queued. The busy flag covers the
mode-specific check (status query, line count) as well as the cycle itself,
so two checks can never race each other into two cycles.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from phantomit_core.config import WatchConfig
from phantomit_core.models import CycleOutcome, CycleStatus, FileChangeEvent, SchedulerState, TriggerMode
from phantomit_core.orchestrator import CommitCycleOrchestrator, Repository

logger = logging.getLogger(__name__)

Condition = Callable[[], Awaitable[bool]]


class TriggerScheduler:
    """Owns the trigger policy and the busy flag.

    Usage:
        scheduler = TriggerScheduler(config, repo, orchestrator, on_outcome=record)
        scheduler.start()                 # interval timer, if in interval mode
        batcher.start(config.watch, scheduler.handle_batch)
        scheduler.trigger_now()           # manual firing, any mode
        scheduler.stop()
    """

    def __init__(
        self,
        config: WatchConfig,
        repo: Repository,
        orchestrator: CommitCycleOrchestrator,
        on_outcome: Callable[[CycleOutcome], None] | None = None,
        on_state_change: Callable[[SchedulerState], None] | None = None,
    ):
        """Initialize scheduler.

        Args:
            config: Run configuration (mode, interval, lines)
            repo: VCS collaborator used for trigger checks
            orchestrator: Runs the commit cycle once fired
            on_outcome: Receives every cycle outcome, including check failures
            on_state_change: Receives the state after every Idle/Firing transition
        """
        self.config = config
        self.repo = repo
        self.orchestrator = orchestrator
        self.on_outcome = on_outcome
        self.on_state_change = on_state_change
        self.state = SchedulerState(mode=config.mode)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._interval_task: asyncio.Task | None = None
        self._cycle_task: asyncio.Task | None = None

    @property
    def mode(self) -> TriggerMode:
        return self.state.mode

    @property
    def busy(self) -> bool:
        return self.state.busy

    @property
    def interval_seconds(self) -> float:
        return self.config.interval * 60

    def start(self) -> None:
        """Start mode-specific timers. Must be called from a running event loop."""
        self._loop = asyncio.get_running_loop()
        if self.mode == TriggerMode.INTERVAL and self._interval_task is None:
            self._interval_task = self._loop.create_task(self._interval_loop())
        logger.info(f"Trigger scheduler started in {self.mode.value} mode")

    def stop(self) -> None:
        """Stop timers. An in-flight cycle is left to finish on its own."""
        if self._interval_task is not None:
            self._interval_task.cancel()
            self._interval_task = None

    async def wait_idle(self) -> None:
        """Wait for the in-flight evaluation or cycle, if any, to finish."""
        task = self._cycle_task
        if task is not None:
            await asyncio.shield(task)

    # ========================================================================
    # Trigger sources
    # ========================================================================

    async def _interval_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.on_tick()

    def on_tick(self) -> bool:
        """Interval tick: fire if the working tree has uncommitted changes."""
        return self.request(TriggerMode.INTERVAL.value, condition=self._has_changes)

    def handle_batch(self, batch: list[FileChangeEvent]) -> bool:
        """React to a flushed batch of file changes.

        Args:
            batch: Changes accumulated since the previous flush

        Returns:
            True if a trigger evaluation was started
        """
        if self.mode == TriggerMode.ON_SAVE:
            shown = ", ".join(e.path for e in batch[:2])
            logger.info(f"Saved: {shown}{'...' if len(batch) > 2 else ''}")
            return self.request(TriggerMode.ON_SAVE.value)
        if self.mode == TriggerMode.LINES:
            return self.request(TriggerMode.LINES.value, condition=self._line_threshold_met)
        logger.debug(f"Ignoring batch of {len(batch)} change(s) in {self.mode.value} mode")
        return False

    def trigger_now(self, reason: str = TriggerMode.MANUAL.value) -> bool:
        """Fire a cycle on explicit request, subject to the busy flag."""
        return self.request(reason)

    # ========================================================================
    # Firing
    # ========================================================================

    def request(self, reason: str, condition: Condition | None = None) -> bool:
        """Enter Firing unless a cycle is already in flight.

        Args:
            reason: Trigger source recorded on the outcome
            condition: Optional async check run under the busy flag; the
                cycle only runs if it returns True

        Returns:
            True if the request was accepted, False if it was dropped
        """
        if self.state.busy:
            self.state.dropped += 1
            logger.debug(f"Dropped {reason} trigger: commit cycle in flight")
            self._notify_state()
            return False
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        self._set_busy(True)
        self._cycle_task = loop.create_task(self._fire(reason, condition))
        return True

    async def _fire(self, reason: str, condition: Condition | None) -> None:
        try:
            if condition is not None:
                try:
                    if not await condition():
                        return
                except Exception as e:
                    logger.error(f"{reason} trigger check failed: {e}")
                    self._report(CycleOutcome(CycleStatus.FAILED, reason=reason, step="check", error=str(e)))
                    return

            self.state.last_fire = datetime.now()
            self.state.fired += 1
            self._notify_state()
            logger.info(f"Commit cycle triggered ({reason})")
            outcome = await self.orchestrator.run_cycle(reason)
            self._report(outcome)
        except Exception as e:
            logger.exception(f"Commit cycle crashed ({reason})")
            self._report(CycleOutcome(CycleStatus.FAILED, reason=reason, step="cycle", error=str(e)))
        finally:
            self._set_busy(False)

    async def _has_changes(self) -> bool:
        return await asyncio.to_thread(self.repo.has_uncommitted_changes)

    async def _line_threshold_met(self) -> bool:
        count = await asyncio.to_thread(self.repo.changed_line_count)
        logger.debug(f"{count} changed line(s), threshold {self.config.lines}")
        return count >= self.config.lines

    def _set_busy(self, busy: bool) -> None:
        self.state.busy = busy
        self._notify_state()

    def _notify_state(self) -> None:
        if self.on_state_change is None:
            return
        try:
            self.on_state_change(self.state)
        except Exception as e:
            logger.error(f"State change callback failed: {e}")

    def _report(self, outcome: CycleOutcome) -> None:
        if self.on_outcome is None:
            return
        try:
            self.on_outcome(outcome)
        except Exception as e:
            logger.error(f"Outcome callback failed: {e}")

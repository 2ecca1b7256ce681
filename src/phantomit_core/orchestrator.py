"""Commit cycle: check, stage, diff, generate message, commit, push.

Each step runs once and a failure ends the cycle at that step. Completed
steps are not rolled back, so a commit whose push fails stays committed.
Blocking git calls run in worker threads so the event loop keeps serving
file events and timers while a cycle is in flight.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Protocol

from phantomit_core.models import CycleOutcome, CycleStatus

logger = logging.getLogger(__name__)

ReviewHook = Callable[[str], str | None]
"""Receives the drafted message, returns the message to commit or None to skip."""


class Repository(Protocol):
    """VCS operations the commit cycle depends on."""

    def has_uncommitted_changes(self) -> bool: ...

    def stage_all(self) -> None: ...

    def staged_diff(self) -> str: ...

    def unstaged_diff(self) -> str: ...

    def commit(self, message: str) -> None: ...

    def push(self, branch: str) -> None: ...

    def changed_line_count(self) -> int: ...


class Generator(Protocol):
    async def generate(self, diff: str, use_mock: bool = False) -> str: ...


class _StepFailed(Exception):
    def __init__(self, step: str, error: Exception):
        super().__init__(f"{step}: {error}")
        self.step = step
        self.error = error


class CommitCycleOrchestrator:
    """Runs one commit cycle against the repository and message generator."""

    def __init__(
        self,
        repo: Repository,
        generator: Generator,
        auto_push: bool = True,
        branch: str = "main",
        use_mock: bool = False,
        review: ReviewHook | None = None,
    ):
        """Initialize orchestrator.

        Args:
            repo: VCS collaborator
            generator: Commit message collaborator
            auto_push: Push after a successful commit
            branch: Branch to push to
            use_mock: Ask the generator for canned messages
            review: Optional interactive review of the drafted message
        """
        self.repo = repo
        self.generator = generator
        self.auto_push = auto_push
        self.branch = branch
        self.use_mock = use_mock
        self.review = review

    async def _blocking(self, step: str, func: Callable, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except Exception as e:
            raise _StepFailed(step, e) from e

    async def run_cycle(self, reason: str = "manual") -> CycleOutcome:
        """Run the pipeline once.

        Args:
            reason: What fired the cycle, recorded on the outcome

        Returns:
            Outcome describing where the cycle ended
        """
        outcome = CycleOutcome(status=CycleStatus.FAILED, reason=reason)
        try:
            await self._run(outcome)
        except _StepFailed as e:
            outcome.status = CycleStatus.FAILED
            outcome.step = e.step
            outcome.error = str(e.error)
            logger.error(f"Commit cycle failed at {e.step}: {e.error}")
        outcome.finished_at = datetime.now()
        return outcome

    async def _run(self, outcome: CycleOutcome) -> None:
        if not await self._blocking("status", self.repo.has_uncommitted_changes):
            logger.debug("Nothing to commit, working tree clean")
            outcome.status = CycleStatus.NO_CHANGES
            return

        await self._blocking("stage", self.repo.stage_all)

        diff = await self._blocking("diff", self.repo.staged_diff)
        if not diff:
            diff = await self._blocking("diff", self.repo.unstaged_diff)
        if not diff.strip():
            logger.debug("Diff is empty, nothing to commit")
            outcome.status = CycleStatus.EMPTY_DIFF
            return

        try:
            message = await self.generator.generate(diff, self.use_mock)
        except Exception as e:
            raise _StepFailed("generate", e) from e

        if self.review is not None:
            message = await self._blocking("review", self.review, message)
            if message is None:
                outcome.status = CycleStatus.SKIPPED
                return

        await self._blocking("commit", self.repo.commit, message)
        outcome.message = message
        outcome.status = CycleStatus.COMMITTED

        if self.auto_push:
            try:
                await self._blocking("push", self.repo.push, self.branch)
            except _StepFailed as e:
                outcome.push_error = str(e.error)
                logger.error(f"Push to origin/{self.branch} failed: {e.error}")
                return
            outcome.status = CycleStatus.PUSHED

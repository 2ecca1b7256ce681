"""Pytest configuration and fixtures."""

import asyncio
import sys
from pathlib import Path

import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from phantomit_core.errors import GitOperationError, WatchSourceError  # noqa: E402
from phantomit_core.models import ChangeKind, FileChangeEvent  # noqa: E402


class FakeEventSource:
    """EventSource driven by the test instead of the filesystem."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.roots = None
        self.sink = None
        self.close_calls = 0

    def subscribe(self, roots, sink):
        if self.fail:
            raise WatchSourceError("Cannot read watch root: src")
        self.roots = list(roots)
        self.sink = sink

    def close(self):
        self.close_calls += 1

    def emit(self, kind: ChangeKind, path: str) -> None:
        self.sink(FileChangeEvent(kind, path))


class FakeRepository:
    """In-memory VCS collaborator recording every call."""

    def __init__(self, dirty=True, staged="diff --git a/x b/x\n+new line\n", unstaged="", line_count=0):
        self.dirty = dirty
        self.staged = staged
        self.unstaged = unstaged
        self.line_count = line_count
        self.failures: dict[str, str] = {}
        self.calls: list[str] = []
        self.commits: list[str] = []
        self.pushes: list[str] = []

    def _call(self, name):
        self.calls.append(name)
        if name in self.failures:
            raise GitOperationError(name, self.failures[name])

    def has_uncommitted_changes(self):
        self._call("status")
        return self.dirty

    def stage_all(self):
        self._call("add")

    def staged_diff(self):
        self._call("diff_staged")
        return self.staged

    def unstaged_diff(self):
        self._call("diff")
        return self.unstaged

    def commit(self, message):
        self._call("commit")
        self.commits.append(message)

    def push(self, branch):
        self._call("push")
        self.pushes.append(branch)

    def changed_line_count(self):
        self._call("count")
        return self.line_count


class FakeGenerator:
    """Message collaborator that can be held open to simulate a slow service."""

    def __init__(self, message="feat(core): add change batching"):
        self.message = message
        self.calls: list[tuple[str, bool]] = []
        self.gate: asyncio.Event | None = None
        self.error: Exception | None = None
        self.closed = False

    async def generate(self, diff, use_mock=False):
        self.calls.append((diff, use_mock))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.message

    async def aclose(self):
        self.closed = True


@pytest.fixture
def fake_source():
    return FakeEventSource()


@pytest.fixture
def fake_repo():
    return FakeRepository()


@pytest.fixture
def fake_generator():
    return FakeGenerator()

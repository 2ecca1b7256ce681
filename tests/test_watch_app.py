"""Tests for the Textual watch screen."""

import asyncio

import pytest
from textual.widgets import Log

from conftest import FakeEventSource, FakeRepository
from phantomit.controller import WatchController
from phantomit.watch_app import LogPaneNotifier, WatchApp
from phantomit_core.config import WatchConfig
from phantomit_core.models import TriggerMode


def make_app(tmp_path, repo, generator, mode=TriggerMode.MANUAL, source=None):
    controller = WatchController(
        tmp_path,
        WatchConfig(mode=mode, debounce=0.05, auto_push=False),
        repo=repo,
        generator=generator,
        source=source or FakeEventSource(),
    )
    return WatchApp(controller)


def activity_lines(app):
    return list(app.query_one("#activity", Log).lines)


@pytest.mark.asyncio
async def test_mount_attaches_controller(tmp_path, fake_repo, fake_generator):
    app = make_app(tmp_path, fake_repo, fake_generator)

    async with app.run_test() as pilot:
        await pilot.pause()
        assert app.controller.is_attached
        assert isinstance(app.controller.notifier, LogPaneNotifier)
        assert any("Watching (manual" in line for line in activity_lines(app))

    assert fake_generator.closed


@pytest.mark.asyncio
async def test_commit_key_runs_cycle(tmp_path, fake_repo, fake_generator):
    app = make_app(tmp_path, fake_repo, fake_generator)

    async with app.run_test() as pilot:
        await pilot.press("c")
        await app.controller.scheduler.wait_idle()
        await pilot.pause()

        assert fake_repo.commits == ["feat(core): add change batching"]
        assert any("committed: feat(core): add change batching" in line for line in activity_lines(app))
        assert app.controller.scheduler.state.last_fire is not None
        assert "last commit cycle: never" not in app._status_text(app.controller.scheduler.state)


@pytest.mark.asyncio
async def test_clean_tree_reported_in_activity(tmp_path, fake_generator):
    app = make_app(tmp_path, FakeRepository(dirty=False), fake_generator)

    async with app.run_test() as pilot:
        await pilot.press("c")
        await app.controller.scheduler.wait_idle()
        await pilot.pause()

        assert any("nothing to commit, working tree clean" in line for line in activity_lines(app))


@pytest.mark.asyncio
async def test_second_commit_request_while_busy_warns(tmp_path, fake_repo, fake_generator):
    fake_generator.gate = asyncio.Event()
    app = make_app(tmp_path, fake_repo, fake_generator)

    async with app.run_test() as pilot:
        await pilot.press("c")
        await pilot.press("c")
        await pilot.pause()

        assert any("Commit already in progress" in line for line in activity_lines(app))
        assert app.controller.scheduler.busy
        assert "committing" in app._status_text(app.controller.scheduler.state)

        fake_generator.gate.set()
        await app.controller.scheduler.wait_idle()

    assert len(fake_repo.commits) == 1


@pytest.mark.asyncio
async def test_watch_failure_exits_with_error(tmp_path, fake_repo, fake_generator):
    app = make_app(tmp_path, fake_repo, fake_generator, mode=TriggerMode.ON_SAVE, source=FakeEventSource(fail=True))

    async with app.run_test() as pilot:
        await pilot.pause()

    assert app.return_code == 1

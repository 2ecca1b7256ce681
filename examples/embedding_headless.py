#!/usr/bin/env python3
"""
Example: Headless Auto-Commit
Shows how to embed WatchController in another asyncio program without the watch screen.

This example demonstrates:
- Using WatchController with a custom notifier
- Wiring on_outcome / on_state_change hooks
- Requesting a commit from code
- Clean shutdown with an in-flight cycle

Run it from inside a git repository. Mock messages are used, so no API key is needed.
"""

import asyncio
from pathlib import Path

try:
    from phantomit import WatchController
    from phantomit_core import TriggerMode, load_config
except ImportError:
    print("Error: Install phantomit first: pip install phantomit")
    exit(1)


class PrintNotifier:
    """Minimal notifier printing every message."""

    def info(self, msg: str) -> None:
        print(f"ℹ {msg}")

    def warning(self, msg: str) -> None:
        print(f"⚠️ {msg}")

    def error(self, msg: str) -> None:
        print(f"❌ {msg}")


class CommitRecorder:
    """
    Keep a history of commit cycles.

    Use case: editor plugins, dev dashboards, agents that want a checkpoint after each step.
    """

    def __init__(self, project_root: Path, run_for: float = 30.0):
        config = load_config(project_root).with_overrides(mode=TriggerMode.ON_SAVE)
        self.controller = WatchController(project_root, config, notifier=PrintNotifier(), use_mock=True)
        self.controller.on_outcome = self._on_outcome
        self.controller.on_state_change = self._on_state_change
        self.run_for = run_for
        self.history = []

    async def run(self):
        self.controller.attach(asyncio.get_running_loop())
        print(f"✓ Watching {', '.join(self.controller.config.watch)} for {self.run_for:g}s, save a file to commit")

        # Checkpoint whatever is already dirty
        self.controller.request_commit()

        try:
            await asyncio.sleep(self.run_for)
        finally:
            await self.controller.shutdown()

        print("\n📊 Cycles:")
        for outcome in self.history:
            print(f"  [{outcome.reason}] {outcome.describe()}")

    def _on_outcome(self, outcome):
        self.history.append(outcome)

    def _on_state_change(self, state):
        if state.busy:
            print("⏳ commit cycle running...")


async def main():
    recorder = CommitRecorder(Path.cwd())
    try:
        await recorder.run()
    except KeyboardInterrupt:
        print("\n\n⚠️ Interrupted by user")


if __name__ == "__main__":
    asyncio.run(main())

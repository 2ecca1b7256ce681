"""Textual screen for a foreground ``phantomit watch`` run.

Shows the trigger mode, the scheduler state and an activity log of commit
cycles. ``c`` requests a commit through the scheduler's busy gate.
"""

import asyncio
import logging
from datetime import datetime

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, Log, Static

from phantomit.controller import WatchController
from phantomit_core.models import CycleOutcome, CycleStatus, SchedulerState

logger = logging.getLogger(__name__)


class LogPaneNotifier:
    """Notifier writing timestamped lines into the app's activity log."""

    def __init__(self, app: "WatchApp"):
        self.app = app

    def info(self, msg: str) -> None:
        self.app.write_activity(msg)

    def warning(self, msg: str) -> None:
        self.app.write_activity(f"⚠ {msg}")

    def error(self, msg: str) -> None:
        self.app.write_activity(f"✗ {msg}")


class WatchApp(App):
    """Foreground watch shell around a WatchController."""

    TITLE = "phantomit"
    BINDINGS = [
        Binding("c", "commit_now", "Commit now"),
        Binding("q", "quit", "Quit"),
    ]

    CSS = """
    Screen {
        layout: vertical;
    }

    #status {
        height: auto;
        padding: 0 1;
        border: solid $accent;
    }

    #activity {
        height: 1fr;
        border: solid $accent;
    }
    """

    def __init__(self, controller: WatchController, **kwargs):
        """Initialize app.

        Args:
            controller: Controller to attach on mount
        """
        super().__init__(**kwargs)
        self.controller = controller
        self.activity: Log | None = None
        self.status: Static | None = None

    def compose(self) -> ComposeResult:
        """Compose app layout."""
        yield Header()
        self.status = Static(self._status_text(self.controller.scheduler.state), id="status")
        yield self.status
        self.activity = Log(id="activity", highlight=False)
        yield self.activity
        yield Footer()

    async def on_mount(self) -> None:
        """Attach the controller to the app's event loop."""
        self.controller.notifier = LogPaneNotifier(self)
        self.controller.on_outcome = self._on_outcome
        self.controller.on_state_change = self._on_state_change
        try:
            self.controller.attach(asyncio.get_running_loop())
        except Exception as e:
            logger.error(f"Failed to start watching: {e}")
            self.exit(return_code=1, message=f"Error: {e}")

    async def on_unmount(self) -> None:
        """Cleanup on exit."""
        await self.controller.shutdown()

    def action_commit_now(self) -> None:
        """Request a commit cycle now."""
        if self.controller.is_attached:
            self.controller.request_commit()

    def write_activity(self, text: str) -> None:
        """Append a timestamped line to the activity log."""
        if self.activity is not None:
            self.activity.write_line(f"[{datetime.now().strftime('%H:%M:%S')}] {text}")

    def _status_text(self, state: SchedulerState) -> str:
        config = self.controller.config
        watched = ", ".join(config.watch) if self.controller.watches_files else "-"
        marker = "● committing" if state.busy else "○ idle"
        last = state.last_fire.strftime("%H:%M:%S") if state.last_fire else "never"
        return (
            f"mode: {config.mode.value} ({config.describe_mode()})\n"
            f"watching: {watched}\n"
            f"{marker}   last commit cycle: {last}   dropped triggers: {state.dropped}"
        )

    def _on_state_change(self, state: SchedulerState) -> None:
        if self.status is not None:
            self.status.update(self._status_text(state))

    def _on_outcome(self, outcome: CycleOutcome) -> None:
        if outcome.status in (CycleStatus.NO_CHANGES, CycleStatus.EMPTY_DIFF):
            self.write_activity(outcome.describe())

"""CLI entry point for phantomit: init, push, watch, stop, status."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from dotenv import load_dotenv

from phantomit import __version__
from phantomit.controller import WatchController, build_generator
from phantomit_core.config import CONFIG_FILENAME, WatchConfig, collect_api_keys, load_config, write_default_config
from phantomit_core.daemon import (
    DAEMON_CHILD_FLAG,
    log_path,
    recent_log_lines,
    release_pid_file,
    running_pid,
    spawn_daemon,
    stop_daemon,
)
from phantomit_core.errors import NotAGitRepositoryError, PhantomitError
from phantomit_core.git_ops import GitRepository
from phantomit_core.models import CycleStatus, TriggerMode
from phantomit_core.notifier import DaemonLogNotifier
from phantomit_core.orchestrator import CommitCycleOrchestrator

logger = logging.getLogger(__name__)


class ConsoleNotifier:
    """Prints notifications for a plain foreground run."""

    def info(self, msg: str) -> None:
        print(f"  {msg}", flush=True)

    def warning(self, msg: str) -> None:
        print(f"  ⚠ {msg}", flush=True)

    def error(self, msg: str) -> None:
        print(f"  ✗ {msg}", file=sys.stderr, flush=True)


def positive_minutes(value: str) -> float:
    """argparse type for ``--every``: minutes, at least 0.01."""
    try:
        minutes = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number: {value!r}") from None
    if not minutes >= 0.01:
        raise argparse.ArgumentTypeError(f"must be at least 0.01 minutes, got {value}")
    return minutes


def positive_lines(value: str) -> int:
    """argparse type for ``--lines``: a positive integer."""
    try:
        lines = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from None
    if lines < 1:
        raise argparse.ArgumentTypeError(f"must be a positive integer, got {value}")
    return lines


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="phantomit",
        description="Automatic git commits with AI-written messages.",
        epilog="Examples:\n"
        "  phantomit init                      # Create .phantomit.toml\n"
        "  phantomit watch --every 30          # Commit every 30 minutes\n"
        "  phantomit watch --lines 20          # Commit every 20 changed lines\n"
        "  phantomit watch --on-save --daemon  # Commit after each save, in the background\n"
        "  phantomit push                      # One-shot commit with review\n"
        "  phantomit status                    # Daemon state and recent activity",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", metavar="command")
    subparsers.add_parser("init", help="Create a default config in the current project")

    push = subparsers.add_parser("push", help="Commit current changes once, with review")
    push.add_argument("--mock", action="store_true", help="Use canned messages, no API call")

    watch = subparsers.add_parser("watch", help="Watch the project and commit automatically")
    mode = watch.add_mutually_exclusive_group()
    mode.add_argument("--every", type=positive_minutes, metavar="N", help="Commit every N minutes (interval mode)")
    mode.add_argument("--lines", type=positive_lines, metavar="N", help="Commit once N lines have changed")
    mode.add_argument("--on-save", action="store_true", help="Commit after each batch of saves")
    mode.add_argument("--manual", action="store_true", help="Only commit on request")
    watch.add_argument("--daemon", action="store_true", help="Run in the background")
    watch.add_argument("--mock", action="store_true", help="Use canned messages, no API call")
    watch.add_argument("--plain", action="store_true", help="Print activity instead of the watch screen")
    watch.add_argument(DAEMON_CHILD_FLAG, dest="daemon_child", action="store_true", help=argparse.SUPPRESS)

    subparsers.add_parser("stop", help="Stop the background daemon")
    subparsers.add_parser("status", help="Show daemon state and recent activity")

    return parser.parse_args(argv)


def resolve_config(project_root: Path, args: argparse.Namespace) -> WatchConfig:
    """Load project config and apply ``watch`` mode flags."""
    config = load_config(project_root)
    if args.every is not None:
        return config.with_overrides(mode=TriggerMode.INTERVAL, interval=args.every)
    if args.lines is not None:
        return config.with_overrides(mode=TriggerMode.LINES, lines=args.lines)
    if args.on_save:
        return config.with_overrides(mode=TriggerMode.ON_SAVE)
    if args.manual:
        return config.with_overrides(mode=TriggerMode.MANUAL)
    return config


def watch_flags(args: argparse.Namespace) -> list[str]:
    """Rebuild ``watch`` options to forward to a daemon child."""
    flags: list[str] = []
    if args.every is not None:
        flags += ["--every", f"{args.every:g}"]
    elif args.lines is not None:
        flags += ["--lines", str(args.lines)]
    elif args.on_save:
        flags.append("--on-save")
    elif args.manual:
        flags.append("--manual")
    if args.mock:
        flags.append("--mock")
    return flags


def find_project_root(start: Path) -> Path:
    """Top level of the working tree containing ``start``, or ``start`` outside one.

    Config and watch roots resolve from here, the directory ``git add .``
    stages from.
    """
    try:
        return GitRepository(start).root
    except NotAGitRepositoryError:
        return start


def require_git_repo(project_root: Path) -> None:
    """Exit early when the project is not a git repository."""
    if not GitRepository.is_git_repo(project_root):
        raise NotAGitRepositoryError(project_root)


# ============================================================================
# Commands
# ============================================================================


def cmd_init(project_root: Path) -> int:
    require_git_repo(project_root)
    if write_default_config(project_root):
        print(f"  ✓ {CONFIG_FILENAME} created")
    else:
        print(f"  {CONFIG_FILENAME} already exists, left unchanged")
    print("  ✓ add GROQ_API_KEY=your_key to your .env\n")
    print("  then run:")
    print("  phantomit watch --every 30")
    print("  phantomit watch --on-save")
    print("  phantomit watch --on-save --daemon   (background)\n")
    return 0


def prompt_review(message: str) -> str | None:
    """Show the drafted message and ask to commit, edit or skip."""
    print(f'\n  ✦ Commit message:\n  "{message}"\n')
    print("  [Y] commit & push   [E] edit message   [N] skip\n")
    choice = input("  → ").strip().lower()
    if choice in ("n", "no"):
        return None
    if choice in ("e", "edit"):
        edited = input("  Edit message: ").strip()
        if edited:
            return edited
    return message


async def _push_once(project_root: Path, config: WatchConfig, mock: bool) -> int:
    generator = build_generator(config, collect_api_keys())
    orchestrator = CommitCycleOrchestrator(
        GitRepository(project_root),
        generator,
        auto_push=config.auto_push,
        branch=config.branch,
        use_mock=mock,
        review=prompt_review,
    )
    try:
        outcome = await orchestrator.run_cycle()
    finally:
        await generator.aclose()

    if outcome.status in (CycleStatus.NO_CHANGES, CycleStatus.EMPTY_DIFF):
        print("  nothing to commit, working tree clean")
        return 0
    if outcome.status == CycleStatus.SKIPPED:
        print("  skipped.\n")
        return 0
    if outcome.failed:
        print(f"  ✗ {outcome.step} failed: {outcome.error}", file=sys.stderr)
        return 1
    print(f"  ✓ committed: {outcome.message}")
    if outcome.status == CycleStatus.PUSHED:
        print(f"  ✓ pushed to origin/{config.branch}")
    elif outcome.push_error:
        print(f"  ✗ push failed: {outcome.push_error}", file=sys.stderr)
    print()
    return 0


def cmd_push(project_root: Path, mock: bool) -> int:
    require_git_repo(project_root)
    return asyncio.run(_push_once(project_root, load_config(project_root), mock))


async def run_headless(controller: WatchController) -> None:
    """Run the controller until SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    stop = asyncio.Event()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            pass
    try:
        controller.attach(loop)
        await stop.wait()
    finally:
        await controller.shutdown()


def cmd_watch(project_root: Path, args: argparse.Namespace) -> int:
    require_git_repo(project_root)
    config = resolve_config(project_root, args)

    if args.daemon_child:
        controller = WatchController(
            project_root,
            config,
            api_keys=collect_api_keys(),
            notifier=DaemonLogNotifier(log_path(project_root)),
            use_mock=args.mock,
        )
        try:
            asyncio.run(run_headless(controller))
        finally:
            release_pid_file(project_root)
        return 0

    if args.daemon:
        handle = spawn_daemon(project_root, watch_flags(args))
        print(f"  ✓ phantomit daemon started (pid {handle.pid})")
        print(f"  mode: {config.mode.value} ({config.describe_mode()})")
        print("  logs: phantomit status")
        print("  stop: phantomit stop\n")
        return 0

    if args.plain:
        controller = WatchController(
            project_root, config, api_keys=collect_api_keys(), notifier=ConsoleNotifier(), use_mock=args.mock
        )
        print(f"  mode: {config.mode.value} ({config.describe_mode()})")
        if controller.watches_files:
            print(f"  watching: {', '.join(config.watch)}")
        if config.mode == TriggerMode.MANUAL:
            print("  manual mode: run 'phantomit push' anytime")
        print("  press Ctrl+C to stop\n")
        asyncio.run(run_headless(controller))
        return 0

    from phantomit.watch_app import WatchApp

    controller = WatchController(project_root, config, api_keys=collect_api_keys(), use_mock=args.mock)
    app = WatchApp(controller)
    app.run()
    return app.return_code or 0


def cmd_stop(project_root: Path) -> int:
    pid = stop_daemon(project_root)
    if pid is None:
        print("  no phantomit daemon running")
    else:
        print(f"  ✓ phantomit stopped (pid {pid})")
    return 0


def cmd_status(project_root: Path) -> int:
    pid = running_pid(project_root)
    if pid is None:
        print("\n  ● phantomit is not running")
    else:
        print(f"\n  ● phantomit is running (pid {pid})")
    lines = recent_log_lines(project_root)
    if lines:
        print("\n  recent activity:")
        for line in lines:
            print(f"  {line}")
    print()
    return 0


def configure_logging(verbose: bool, daemon_child: bool = False) -> None:
    """Set up stdlib logging for a CLI run.

    The daemon child keeps stderr (appended to the daemon log) for debug
    output and tracebacks only; its activity entries come from the notifier.
    """
    if verbose:
        level = logging.DEBUG
    elif daemon_child:
        level = logging.CRITICAL
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for the phantomit CLI.

    Handles:
    - Argument parsing and logging setup
    - Loading API keys from the project's .env
    - Dispatching to the command
    - Error handling and exit codes
    """
    args = parse_args(argv)
    configure_logging(args.verbose, getattr(args, "daemon_child", False))

    project_root = find_project_root(Path.cwd())
    load_dotenv(project_root / ".env")

    commands = {
        "init": lambda: cmd_init(project_root),
        "push": lambda: cmd_push(project_root, args.mock),
        "watch": lambda: cmd_watch(project_root, args),
        "stop": lambda: cmd_stop(project_root),
        "status": lambda: cmd_status(project_root),
    }
    if args.command not in commands:
        parse_args(["--help"])
        return

    try:
        sys.exit(commands[args.command]())
    except KeyboardInterrupt:
        # Gracefully handle Ctrl+C
        sys.exit(130)
    except NotAGitRepositoryError as e:
        print(f"Error: {e}. Run git init first.", file=sys.stderr)
        sys.exit(1)
    except PhantomitError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

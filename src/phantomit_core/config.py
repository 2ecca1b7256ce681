"""Configuration loading for phantomit."""

import dataclasses
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import tomllib

from phantomit_core.errors import ConfigError
from phantomit_core.models import TriggerMode

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".phantomit.toml"

API_KEY_ENV = "GROQ_API_KEY"

DEFAULT_MODEL = "llama-3.1-8b-instant"

KEY_POLICIES = ("random", "round-robin")


@dataclass(frozen=True)
class AiConfig:
    """Settings for the commit message service."""

    model: str = DEFAULT_MODEL
    """Chat model used to draft commit messages."""

    key_policy: str = "random"
    """How an API key is picked from the pool: ``random`` or ``round-robin``."""

    mock_delay: float = 0.8
    """Simulated latency of mock mode, in seconds."""


@dataclass(frozen=True)
class WatchConfig:
    """Immutable per-run configuration."""

    mode: TriggerMode = TriggerMode.INTERVAL
    """Trigger policy."""

    interval: float = 30
    """Minutes between interval ticks."""

    lines: int = 20
    """Changed-line threshold for ``lines`` mode."""

    debounce: float = 8
    """Quiet period in seconds before a batch of file events is flushed."""

    auto_push: bool = True
    """Push to ``branch`` after each commit."""

    watch: tuple[str, ...] = ("src", "app", "lib", "components", "pages")
    """Watch roots, relative to the project root."""

    ignore: tuple[str, ...] = ("node_modules", ".next", "dist", ".git", "*.log", ".env*")
    """Ignore patterns appended after the project's .gitignore rules."""

    branch: str = "main"
    """Branch pushed to when ``auto_push`` is set."""

    ai: AiConfig = field(default_factory=AiConfig)

    def with_overrides(
        self,
        mode: TriggerMode | None = None,
        interval: float | None = None,
        lines: int | None = None,
    ) -> "WatchConfig":
        """Return a copy with command-line overrides applied.

        Raises:
            ConfigError: If ``interval`` is below 0.01 minutes or ``lines`` is below 1
        """
        changes = {}
        if mode is not None:
            changes["mode"] = mode
        if interval is not None:
            if not interval >= 0.01:
                raise ConfigError(f"'interval' must be at least 0.01, got {interval!r}")
            changes["interval"] = interval
        if lines is not None:
            if lines < 1:
                raise ConfigError(f"'lines' must be a positive integer, got {lines!r}")
            changes["lines"] = lines
        return dataclasses.replace(self, **changes) if changes else self

    def describe_mode(self) -> str:
        """Human label for the active trigger mode."""
        if self.mode == TriggerMode.INTERVAL:
            return f"every {self.interval:g} min"
        if self.mode == TriggerMode.LINES:
            return f"every {self.lines} lines changed"
        if self.mode == TriggerMode.ON_SAVE:
            return f"on save ({self.debounce:g}s debounce)"
        return "manual"


DEFAULTS = WatchConfig()

DEFAULT_CONFIG_TEMPLATE = """\
# phantomit configuration

# Trigger mode: "interval", "lines", "on-save" or "manual"
mode = "interval"

# Minutes between commits in interval mode
interval = 30

# Changed lines (insertions + deletions) that trigger a commit in lines mode
lines = 20

# Seconds of quiet after the last save before changes are considered
debounce = 8

# Push to origin after every commit
auto_push = true
branch = "main"

# Directories to watch, relative to the project root
watch = ["src", "app", "lib", "components", "pages"]

# Extra ignore patterns, applied after .gitignore ("!pattern" re-includes)
ignore = ["node_modules", ".next", "dist", ".git", "*.log", ".env*"]

[ai]
model = "llama-3.1-8b-instant"
key_policy = "random"
"""


def _number(raw: dict, key: str, default: float, minimum: float) -> float:
    value = raw.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{key}' must be a number, got {value!r}")
    if value < minimum:
        raise ConfigError(f"'{key}' must be at least {minimum}, got {value!r}")
    return value


def _string_list(raw: dict, key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = raw.get(key, list(default))
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"'{key}' must be a list of strings")
    return tuple(value)


def _parse_ai(raw: dict) -> AiConfig:
    if not isinstance(raw, dict):
        raise ConfigError("[ai] must be a table")
    policy = raw.get("key_policy", AiConfig.key_policy)
    if policy not in KEY_POLICIES:
        raise ConfigError(f"unknown key_policy {policy!r}, expected one of {KEY_POLICIES}")
    model = raw.get("model", AiConfig.model)
    if not isinstance(model, str) or not model:
        raise ConfigError("'ai.model' must be a non-empty string")
    return AiConfig(
        model=model,
        key_policy=policy,
        mock_delay=_number(raw, "mock_delay", AiConfig.mock_delay, 0),
    )


def parse_config(raw: dict) -> WatchConfig:
    """Build a WatchConfig from a parsed TOML document.

    Args:
        raw: Parsed TOML mapping

    Returns:
        Validated configuration, with defaults for missing keys

    Raises:
        ConfigError: If a value has the wrong type or is out of range
    """
    try:
        mode = TriggerMode.parse(raw.get("mode", DEFAULTS.mode.value))
    except ValueError as e:
        raise ConfigError(f"unknown mode {raw.get('mode')!r}") from e

    auto_push = raw.get("auto_push", raw.get("autoPush", DEFAULTS.auto_push))
    if not isinstance(auto_push, bool):
        raise ConfigError(f"'auto_push' must be true or false, got {auto_push!r}")

    lines = raw.get("lines", DEFAULTS.lines)
    if isinstance(lines, bool) or not isinstance(lines, int) or lines < 1:
        raise ConfigError(f"'lines' must be a positive integer, got {lines!r}")

    branch = raw.get("branch", DEFAULTS.branch)
    if not isinstance(branch, str) or not branch:
        raise ConfigError("'branch' must be a non-empty string")

    known = {f.name for f in dataclasses.fields(WatchConfig)} | {"autoPush"}
    for key in raw:
        if key not in known:
            logger.debug(f"Ignoring unknown config key '{key}'")

    return WatchConfig(
        mode=mode,
        interval=_number(raw, "interval", DEFAULTS.interval, 0.01),
        lines=lines,
        debounce=_number(raw, "debounce", DEFAULTS.debounce, 0),
        auto_push=auto_push,
        watch=_string_list(raw, "watch", DEFAULTS.watch),
        ignore=_string_list(raw, "ignore", DEFAULTS.ignore),
        branch=branch,
        ai=_parse_ai(raw.get("ai", {})),
    )


def load_config(project_root: str | Path) -> WatchConfig:
    """Load the project configuration, falling back to defaults.

    A missing file yields the defaults silently. An unreadable or invalid
    file is reported as a warning and the defaults are used instead.

    Args:
        project_root: Directory holding ``.phantomit.toml``

    Returns:
        The configuration for this run
    """
    path = Path(project_root) / CONFIG_FILENAME
    if not path.exists():
        return DEFAULTS

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
        return parse_config(raw)
    except (OSError, ValueError, ConfigError) as e:
        logger.warning(f"Could not parse {CONFIG_FILENAME} ({e}), using defaults")
        return DEFAULTS


def write_default_config(project_root: str | Path) -> bool:
    """Create a default ``.phantomit.toml`` if it doesn't exist.

    Returns:
        True if the file was created, False if it already exists

    Raises:
        ConfigError: If the file cannot be written
    """
    path = Path(project_root) / CONFIG_FILENAME
    if path.exists():
        return False
    try:
        path.write_text(DEFAULT_CONFIG_TEMPLATE)
    except OSError as e:
        raise ConfigError(f"Failed to write {path}: {e}") from e
    return True


def collect_api_keys(environ: Mapping[str, str] | None = None) -> tuple[str, ...]:
    """Collect message service keys from the environment.

    Reads ``GROQ_API_KEY`` followed by every ``GROQ_API_KEY_<suffix>``
    variable (sorted by name), dropping empty values and duplicates.
    """
    if environ is None:
        environ = os.environ
    keys: list[str] = []
    if environ.get(API_KEY_ENV):
        keys.append(environ[API_KEY_ENV])
    prefix = f"{API_KEY_ENV}_"
    for name in sorted(environ):
        if name.startswith(prefix) and environ[name]:
            keys.append(environ[name])
    return tuple(dict.fromkeys(keys))

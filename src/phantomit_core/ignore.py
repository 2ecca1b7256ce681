"""Ignore-rule evaluation combining .gitignore and configured patterns.

Rules are evaluated with gitignore semantics: the last matching rule wins,
``!pattern`` re-includes a path, and a pattern matching a directory also
matches everything beneath it. Configured patterns are appended after the
project's .gitignore, so they can re-include what .gitignore excludes.
"""

import logging
from collections.abc import Iterable
from pathlib import Path, PurePosixPath
from typing import Protocol

import pathspec

logger = logging.getLogger(__name__)

GITIGNORE_NAME = ".gitignore"


class IgnoreRules(Protocol):
    """Pluggable ignore-rule matcher over normalized relative paths."""

    def matches(self, relative_path: str) -> bool:
        """Return True if the path is excluded by the rules."""
        ...


class PathSpecRules:
    """IgnoreRules backed by pathspec's gitignore implementation."""

    def __init__(self, lines: Iterable[str]):
        self.lines = [line for line in lines if line.strip() and not line.lstrip().startswith("#")]
        self._spec = pathspec.GitIgnoreSpec.from_lines(self.lines)

    def matches(self, relative_path: str) -> bool:
        return self._spec.match_file(relative_path)


def normalize_path(path: str) -> str:
    """Normalize a relative path to forward slashes without a leading ``./``."""
    normalized = path.replace("\\", "/")
    while normalized.startswith("./"):
        normalized = normalized[2:]
    if normalized == ".":
        return ""
    return str(PurePosixPath(normalized)) if normalized else ""


def read_gitignore(project_root: Path) -> list[str]:
    """Read rule lines from the project's .gitignore.

    A missing or unreadable file yields no rules.
    """
    path = project_root / GITIGNORE_NAME
    if not path.exists():
        return []
    try:
        return path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"Could not read {path}, using configured ignore patterns only: {e}")
        return []


class IgnoreResolver:
    """Single predicate deciding whether a project-relative path is ignored."""

    def __init__(self, rules: IgnoreRules):
        self.rules = rules

    @classmethod
    def from_project(cls, project_root: str | Path, patterns: Iterable[str] = ()) -> "IgnoreResolver":
        """Build a resolver from the project's .gitignore plus configured patterns.

        Args:
            project_root: Directory that may contain a .gitignore
            patterns: Configured ignore patterns, appended after .gitignore rules

        Returns:
            Resolver over the combined rule list
        """
        lines = read_gitignore(Path(project_root))
        lines.extend(patterns)
        return cls(PathSpecRules(lines))

    def is_ignored(self, relative_path: str, is_dir: bool = False) -> bool:
        """Check a path against the combined rules.

        Args:
            relative_path: Path relative to the project root
            is_dir: Whether the path is a directory, so that directory-only
                patterns such as ``dist/`` apply to it

        Returns:
            True if the path is ignored. The project root itself and paths
            outside it are never ignored.
        """
        path = normalize_path(relative_path)
        if not path or path == ".." or path.startswith("../") or path.startswith("/"):
            return False
        try:
            return self.rules.matches(f"{path}/" if is_dir else path)
        except Exception as e:
            logger.debug(f"Ignore rule evaluation failed for '{path}': {e}")
            return False

"""Git operations used by the commit cycle, backed by GitPython."""

import logging
import re
from pathlib import Path

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

from phantomit_core.errors import GitOperationError, NotAGitRepositoryError

logger = logging.getLogger(__name__)

_INSERTIONS_RE = re.compile(r"(\d+) insertions?\(\+\)")
_DELETIONS_RE = re.compile(r"(\d+) deletions?\(-\)")
_SUMMARY_RE = re.compile(r"\d+ files? changed")


def parse_stat_summary(stat: str) -> int | None:
    """Sum insertions and deletions from ``git diff --stat`` output.

    Args:
        stat: Output of ``git diff --stat``

    Returns:
        Insertions plus deletions, or None if no summary line is present
    """
    summary = next((line for line in reversed(stat.splitlines()) if _SUMMARY_RE.search(line)), None)
    if summary is None:
        return None
    insertions = _INSERTIONS_RE.search(summary)
    deletions = _DELETIONS_RE.search(summary)
    if not insertions and not deletions:
        return None
    return (int(insertions.group(1)) if insertions else 0) + (int(deletions.group(1)) if deletions else 0)


def count_diff_lines(diff: str) -> int:
    """Count added and removed lines in a raw diff.

    File header lines (``+++``/``---``) are counted too.
    """
    return sum(1 for line in diff.split("\n") if line.startswith(("+", "-")))


class GitRepository:
    """VCS collaborator for one working tree."""

    def __init__(self, path: str | Path):
        """Open the repository containing ``path``.

        Raises:
            NotAGitRepositoryError: If ``path`` is not inside a git working tree
        """
        try:
            self.repo = Repo(path, search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise NotAGitRepositoryError(path) from e
        if self.repo.bare:
            raise NotAGitRepositoryError(path)

    @staticmethod
    def is_git_repo(path: str | Path) -> bool:
        """Check whether ``path`` is inside a git working tree."""
        try:
            GitRepository(path)
        except NotAGitRepositoryError:
            return False
        return True

    @property
    def root(self) -> Path:
        """Top-level directory of the working tree."""
        return Path(self.repo.working_tree_dir)

    def _git(self, command: str, *args: str) -> str:
        try:
            return getattr(self.repo.git, command)(*args)
        except GitCommandError as e:
            detail = (e.stderr or str(e)).strip()
            raise GitOperationError(command, detail) from e

    def has_uncommitted_changes(self) -> bool:
        """True if the tree has staged, unstaged or untracked changes."""
        try:
            return self.repo.is_dirty(untracked_files=True)
        except GitCommandError as e:
            raise GitOperationError("status", (e.stderr or str(e)).strip()) from e

    def stage_all(self) -> None:
        self._git("add", ".")

    def staged_diff(self) -> str:
        return self._git("diff", "--staged")

    def unstaged_diff(self) -> str:
        return self._git("diff")

    def commit(self, message: str) -> None:
        self._git("commit", "-m", message)
        logger.info(f"Committed: {message}")

    def push(self, branch: str) -> None:
        self._git("push", "origin", branch)
        logger.info(f"Pushed to origin/{branch}")

    def changed_line_count(self) -> int:
        """Changed lines in the working tree (insertions plus deletions).

        Uses the ``--stat`` summary, falling back to counting ``+``/``-``
        lines of the raw diff when the summary is missing or unparsable.
        """
        count = parse_stat_summary(self._git("diff", "--stat"))
        if count is None:
            count = count_diff_lines(self._git("diff"))
        return count

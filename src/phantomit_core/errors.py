"""Exception hierarchy for phantomit_core."""


class PhantomitError(Exception):
    """Base class for all phantomit errors."""


class ConfigError(PhantomitError):
    """Configuration could not be loaded or written."""


class NotAGitRepositoryError(PhantomitError):
    """The working directory is not inside a git repository."""

    def __init__(self, path):
        super().__init__(f"not a git repository: {path}")
        self.path = path


class GitOperationError(PhantomitError):
    """A git command failed."""

    def __init__(self, operation: str, detail: str):
        super().__init__(f"git {operation} failed: {detail}")
        self.operation = operation
        self.detail = detail


class MessageGenerationError(PhantomitError):
    """The commit message service could not produce a message."""


class WatchSourceError(PhantomitError):
    """The filesystem notification source failed to initialize."""


class DaemonError(PhantomitError):
    """A background run could not be started or stopped."""

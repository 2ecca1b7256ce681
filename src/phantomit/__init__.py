"""phantomit: watch a project and commit automatically with AI-written messages."""

__version__ = "0.1.0"

# Public API
from phantomit.controller import WatchController

__all__ = [
    "__version__",
    "WatchController",
]

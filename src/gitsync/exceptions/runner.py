from __future__ import annotations

from pathlib import Path

from gitsync.exceptions.base import GitSyncError


class RunnerError(GitSyncError):
    """Base exception for subprocess runner failures.

    Attributes:
        message: Human-readable error message.
    """

    pass


class WorkingDirectoryError(RunnerError):
    """Working directory does not exist or is not accessible.

    Attributes:
        message: Human-readable error message.
        path: The path that was not found.
    """

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        """Initialize the WorkingDirectoryError.

        Args:
            message: Human-readable error message.
            path: The path that was not found.
        """
        self.path = path
        super().__init__(message)

from __future__ import annotations


class GitSyncError(Exception):
    """Base exception class for all gitsync-specific errors.

    This is the root of the gitsync exception hierarchy. Catching it at the
    CLI (or IPC) boundary handles every engine failure while letting system
    exceptions propagate naturally.

    Attributes:
        message: Human-readable error message describing what went wrong.

    Example:
        ```python
        try:
            await engine.push(path, branch="main")
        except GitSyncError as e:
            logger.error("push_failed", error=e.message)
        ```
    """

    def __init__(self, message: str) -> None:
        """Initialize the GitSyncError.

        Args:
            message: Human-readable error message.
        """
        self.message = message
        super().__init__(message)

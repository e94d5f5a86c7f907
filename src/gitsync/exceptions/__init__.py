"""gitsync exception hierarchy.

All exceptions can be imported from this package:
    from gitsync.exceptions import GitError, GitConflictError, ConfigError
"""

from __future__ import annotations

# Base exception
from gitsync.exceptions.base import GitSyncError

# Configuration exceptions
from gitsync.exceptions.config import ConfigError

# Git-related exceptions
from gitsync.exceptions.git import (
    BranchPreparationError,
    GitAuthenticationError,
    GitConflictError,
    GitError,
    GitErrorKind,
    GitNotFoundError,
    MissingRemoteRefError,
    NetworkUnreachableError,
    NotARepositoryError,
    RepositoryStateError,
    UncommittedChangesError,
    UnsupportedOperationError,
)

# Runner-related exceptions
from gitsync.exceptions.runner import RunnerError, WorkingDirectoryError

__all__ = [
    # Base
    "GitSyncError",
    # Config
    "ConfigError",
    # Git
    "BranchPreparationError",
    "GitAuthenticationError",
    "GitConflictError",
    "GitError",
    "GitErrorKind",
    "GitNotFoundError",
    "MissingRemoteRefError",
    "NetworkUnreachableError",
    "NotARepositoryError",
    "RepositoryStateError",
    "UncommittedChangesError",
    "UnsupportedOperationError",
    # Runner
    "RunnerError",
    "WorkingDirectoryError",
]

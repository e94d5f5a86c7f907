"""Value objects shared by both git backends."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

__all__ = [
    "CommitInfo",
    "GitAuthor",
    "GitBackendKind",
    "GitStateSnapshot",
    "RepositoryState",
]


class GitBackendKind(str, Enum):
    """Which implementation executes an operation."""

    NATIVE = "native"
    EMBEDDED = "embedded"


class RepositoryState(str, Enum):
    """Control-state of a repository, as reported by the state prober."""

    CLEAN = "clean"
    MERGE_IN_PROGRESS = "merge-in-progress"
    REBASE_IN_PROGRESS = "rebase-in-progress"


@dataclass(frozen=True, slots=True)
class CommitInfo:
    """Single commit, newest-first in log results.

    Attributes:
        oid: Full 40-character commit id.
        message: Full commit message (subject and body).
        timestamp: Author timestamp in seconds since the epoch.
    """

    oid: str
    message: str
    timestamp: int

    @property
    def subject(self) -> str:
        """First line of the message."""
        return self.message.split("\n", 1)[0]


@dataclass(frozen=True, slots=True)
class GitAuthor:
    """Author and committer identity for commit-creating operations.

    Attributes:
        name: Display name.
        email: Email address.
    """

    name: str
    email: str

    @property
    def identity(self) -> str:
        """``Name <email>`` form used in commit headers."""
        return f"{self.name} <{self.email}>"


@dataclass(frozen=True, slots=True)
class GitStateSnapshot:
    """UI-facing merge/rebase flags for a repository."""

    merge_in_progress: bool
    rebase_in_progress: bool

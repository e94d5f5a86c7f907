from __future__ import annotations

from enum import Enum
from pathlib import Path

from gitsync.exceptions.base import GitSyncError


class GitErrorKind(str, Enum):
    """Stable classification of git failures, independent of backend."""

    CONFLICT = "conflict"
    MISSING_REMOTE_REF = "missing_remote_ref"
    UNAUTHORIZED = "unauthorized"
    NETWORK_UNREACHABLE = "network_unreachable"
    UNSUPPORTED = "unsupported"
    UNCLASSIFIED = "unclassified"


class GitError(GitSyncError):
    """Exception for git operation failures.

    Raised by the engine for every failed operation, whichever backend ran it.
    A plain ``GitError`` is the *unclassified* member of the taxonomy: its
    ``detail`` carries the backend's original message unchanged.

    Attributes:
        message: Human-readable error message including operation context.
        operation: Engine operation that failed (e.g., "push", "checkout").
        path: Repository the operation targeted.
        ref: Branch, commit or file the operation targeted, if any.
        detail: Original backend message (stderr/stdout or exception text).
    """

    kind: GitErrorKind = GitErrorKind.UNCLASSIFIED

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        path: Path | str | None = None,
        ref: str | None = None,
        detail: str | None = None,
    ) -> None:
        """Initialize the GitError.

        Args:
            message: Human-readable error message.
            operation: Engine operation that failed.
            path: Repository path.
            ref: Ref or file the operation targeted.
            detail: Original backend message.
        """
        self.operation = operation
        self.path = path
        self.ref = ref
        self.detail = detail
        super().__init__(message)


class GitConflictError(GitError):
    """A merge or rebase left unmerged paths.

    Attributes:
        conflicted_files: Paths with conflicts, when known.
    """

    kind = GitErrorKind.CONFLICT

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        path: Path | str | None = None,
        ref: str | None = None,
        detail: str | None = None,
        conflicted_files: tuple[str, ...] = (),
    ) -> None:
        self.conflicted_files = conflicted_files
        super().__init__(message, operation=operation, path=path, ref=ref, detail=detail)


class RepositoryStateError(GitConflictError):
    """A mutation was attempted while a merge or rebase is in progress.

    Attributes:
        code: ``MERGE_IN_PROGRESS`` or ``REBASE_IN_PROGRESS``.
    """

    MERGE_IN_PROGRESS = "MERGE_IN_PROGRESS"
    REBASE_IN_PROGRESS = "REBASE_IN_PROGRESS"

    def __init__(
        self,
        message: str,
        code: str,
        operation: str | None = None,
        path: Path | str | None = None,
    ) -> None:
        self.code = code
        super().__init__(message, operation=operation, path=path)


class MissingRemoteRefError(GitError):
    """The remote branch does not exist (yet).

    Expected for a freshly created remote repository; push flows recover
    from it instead of surfacing it.
    """

    kind = GitErrorKind.MISSING_REMOTE_REF


class GitAuthenticationError(GitError):
    """The remote rejected the supplied credential (401/403)."""

    kind = GitErrorKind.UNAUTHORIZED


class NetworkUnreachableError(GitError):
    """The remote host could not be reached."""

    kind = GitErrorKind.NETWORK_UNREACHABLE


class UnsupportedOperationError(GitError):
    """The active backend cannot perform the requested operation.

    Attributes:
        backend: Name of the backend that refused the operation.
    """

    kind = GitErrorKind.UNSUPPORTED

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        backend: str | None = None,
        path: Path | str | None = None,
    ) -> None:
        self.backend = backend
        super().__init__(message, operation=operation, path=path)


class UncommittedChangesError(GitError):
    """The working tree has changes that an operation refuses to discard."""

    def __init__(
        self,
        message: str,
        operation: str | None = None,
        path: Path | str | None = None,
    ) -> None:
        super().__init__(message, operation=operation, path=path)


class BranchPreparationError(GitError):
    """Preparing a local branch for a remote failed.

    Attributes:
        branch: Target branch name.
        step: Protocol step that failed (e.g., "creating tracking branch").
        cause_kind: Classification of the underlying git failure.
    """

    def __init__(
        self,
        message: str,
        branch: str,
        step: str,
        path: Path | str | None = None,
        cause_kind: GitErrorKind = GitErrorKind.UNCLASSIFIED,
        detail: str | None = None,
    ) -> None:
        self.branch = branch
        self.step = step
        self.cause_kind = cause_kind
        super().__init__(
            message,
            operation="prepare_local_branch",
            path=path,
            ref=branch,
            detail=detail,
        )


class NotARepositoryError(GitError):
    """The path is not a git repository."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        super().__init__(message, operation="repo_check", path=path)


class GitNotFoundError(GitError):
    """The native git executable is not installed or not in PATH."""

    def __init__(self, message: str = "Git CLI not found") -> None:
        super().__init__(message, operation="git_check")

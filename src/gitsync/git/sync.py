"""Remote synchronization flows.

Multi-step sequences built on :class:`~gitsync.git.engine.GitEngine`: publish
local commits (pulling first unless forcing), rebase onto the remote branch,
and report merge/rebase state.
"""

from __future__ import annotations

from collections.abc import Hashable
from pathlib import Path

from gitsync.exceptions import GitConflictError, MissingRemoteRefError
from gitsync.git.branches import ensure_clean_workspace
from gitsync.git.engine import GitEngine
from gitsync.git.locks import RepositoryLocks, with_lock
from gitsync.git.models import GitStateSnapshot
from gitsync.git.state import snapshot_state
from gitsync.logging import get_logger

__all__ = ["get_git_state", "push_to_remote", "rebase_from_remote"]

logger = get_logger(__name__)


async def push_to_remote(
    engine: GitEngine,
    *,
    repo_key: Hashable,
    path: Path,
    branch: str | None = None,
    remote_url: str | None = None,
    credential: str | None = None,
    force: bool = False,
    force_with_lease: bool = False,
    locks: RepositoryLocks | None = None,
) -> None:
    """Publish *branch* to ``origin``.

    Unless forcing, remote changes are pulled (merged) first. A remote that
    does not have the branch yet is not an error: the push creates it.

    Raises:
        GitConflictError: The pull stopped with conflicts; nothing was pushed.
        UnsupportedOperationError: ``force_with_lease`` on the embedded backend.
        GitError: Any other pull or push failure.
    """
    target = branch or engine.config.default_branch

    async def run() -> None:
        flow = engine.pinned()
        if remote_url:
            await flow.set_remote_url(path, remote_url, credential=credential)

        if not force and not force_with_lease:
            try:
                await flow.pull(path, branch=target, credential=credential)
            except MissingRemoteRefError:
                logger.debug("remote_branch_missing_before_push", branch=target)
            except GitConflictError as e:
                raise GitConflictError(
                    "Merge conflict detected during pull. "
                    "Please resolve conflicts before pushing.",
                    operation="push",
                    path=path,
                    ref=target,
                    detail=e.detail,
                    conflicted_files=e.conflicted_files,
                ) from e

        await flow.push(
            path,
            branch=target,
            credential=credential,
            force=force,
            force_with_lease=force_with_lease,
        )

    await with_lock(repo_key, run, locks)


async def rebase_from_remote(
    engine: GitEngine,
    *,
    repo_key: Hashable,
    path: Path,
    branch: str | None = None,
    remote_url: str | None = None,
    credential: str | None = None,
    locks: RepositoryLocks | None = None,
) -> None:
    """Fetch and rebase the current branch onto ``origin/<branch>``.

    Raises:
        UncommittedChangesError: The working tree is dirty.
        GitConflictError: The rebase stopped with conflicts.
        UnsupportedOperationError: On the embedded backend.
    """
    target = branch or engine.config.default_branch

    async def run() -> None:
        flow = engine.pinned()
        if remote_url:
            await flow.set_remote_url(path, remote_url, credential=credential)
        await flow.fetch(path, credential=credential)
        await ensure_clean_workspace(flow, path, "rebase")
        await flow.rebase(path, target)

    await with_lock(repo_key, run, locks)


def get_git_state(path: Path) -> GitStateSnapshot:
    """Merge/rebase-in-progress flags for *path*."""
    return snapshot_state(path)

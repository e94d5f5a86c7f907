"""Branch preparation.

Brings a repository onto a target branch before it is synchronized with a
remote: reuse the local branch if it exists, otherwise track the remote
branch, otherwise create the branch from HEAD. The whole sequence runs under
the repository's lock.
"""

from __future__ import annotations

from collections.abc import Hashable
from pathlib import Path

from gitsync.exceptions import (
    BranchPreparationError,
    GitError,
    GitErrorKind,
    GitSyncError,
    UncommittedChangesError,
)
from gitsync.git.engine import GitEngine
from gitsync.git.locks import RepositoryLocks, with_lock
from gitsync.git.models import GitBackendKind
from gitsync.logging import get_logger

__all__ = ["ensure_clean_workspace", "prepare_local_branch"]

logger = get_logger(__name__)

#: Git messages meaning a checkout would clobber uncommitted work.
LOCAL_CHANGES_MARKERS: tuple[str, ...] = (
    "local changes",
    "would be overwritten",
    "please commit or stash",
)

UNCOMMITTED_CHANGES_MESSAGE = (
    "Failed to prepare local branch: uncommitted changes detected. "
    "Unable to automatically handle uncommitted changes. "
    "Please commit or stash your changes manually and try again."
)


async def ensure_clean_workspace(
    engine: GitEngine, path: Path, operation_description: str
) -> None:
    """Raise unless the working tree is clean.

    Raises:
        UncommittedChangesError: With a message naming *operation_description*.
    """
    if await engine.is_clean(path):
        return
    raise UncommittedChangesError(
        f"Workspace is not clean before {operation_description}. "
        "Please commit or stash your changes manually and try again.",
        operation=operation_description,
        path=path,
    )


def _mentions_local_changes(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in LOCAL_CHANGES_MARKERS)


class _Progress:
    """Name of the protocol step currently executing."""

    def __init__(self) -> None:
        self.step = "starting"


async def prepare_local_branch(
    engine: GitEngine,
    *,
    repo_key: Hashable,
    path: Path,
    branch: str | None = None,
    remote_url: str | None = None,
    credential: str | None = None,
    locks: RepositoryLocks | None = None,
) -> None:
    """Check out *branch*, creating or tracking it as needed.

    Args:
        engine: Engine performing the git operations.
        repo_key: Identity of the repository for locking.
        path: Repository path.
        branch: Target branch. Defaults to the configured default branch.
        remote_url: When given, the ``origin`` URL is (re)set and a
            best-effort fetch runs first.
        credential: Optional bearer token for the fetch.
        locks: Lock registry. Defaults to the process-wide registry.

    Raises:
        UncommittedChangesError: The working tree is dirty; nothing changed.
        BranchPreparationError: Any other failure, with the failing step.
    """
    target = branch or engine.config.default_branch
    progress = _Progress()

    async def run() -> None:
        await _prepare(
            engine.pinned(), path, target, remote_url, credential, progress
        )

    try:
        await with_lock(repo_key, run, locks)
    except UncommittedChangesError as e:
        logger.error("branch_preparation_failed", branch=target, step=progress.step)
        raise UncommittedChangesError(
            UNCOMMITTED_CHANGES_MESSAGE, operation="prepare_local_branch", path=path
        ) from e
    except GitSyncError as e:
        logger.error(
            "branch_preparation_failed",
            branch=target,
            step=progress.step,
            error=e.message,
        )
        if _mentions_local_changes(e.message):
            raise UncommittedChangesError(
                UNCOMMITTED_CHANGES_MESSAGE, operation="prepare_local_branch", path=path
            ) from e
        kind = e.kind if isinstance(e, GitError) else GitErrorKind.UNCLASSIFIED
        raise BranchPreparationError(
            f"Failed to prepare local branch '{target}' while {progress.step}: "
            f"{e.message}",
            branch=target,
            step=progress.step,
            path=path,
            cause_kind=kind,
            detail=getattr(e, "detail", None),
        ) from e

    logger.info("branch_prepared", path=str(path), branch=target)


async def _prepare(
    engine: GitEngine,
    path: Path,
    branch: str,
    remote_url: str | None,
    credential: str | None,
    progress: _Progress,
) -> None:
    remote = engine.config.remote_name

    if remote_url:
        progress.step = "configuring remote"
        await engine.set_remote_url(path, remote_url, credential=credential)
        try:
            await engine.fetch(path, credential=credential)
        except GitError as e:
            # An empty remote has nothing to fetch
            logger.debug("branch_preparation_fetch_failed", kind=e.kind.value)

    progress.step = "checking workspace"
    await ensure_clean_workspace(engine, path, f"preparing branch '{branch}'")

    progress.step = "listing branches"
    local_branches = await engine.list_local_branches(path)
    remote_branches: list[str] = []
    if remote_url or await engine.get_remote_url(path):
        remote_branches = await engine.list_remote_branches(path)

    if branch in local_branches:
        progress.step = "checking out existing branch"
        await engine.checkout(path, branch)
        return

    if branch in remote_branches:
        progress.step = "creating tracking branch"
        if engine.backend_kind is GitBackendKind.NATIVE:
            await engine.create_branch(
                path, branch, from_ref=f"{remote}/{branch}", track=True
            )
            await engine.checkout(path, branch)
        else:
            await _track_remote_branch(engine, path, branch, remote)
        return

    progress.step = "creating branch"
    await engine.create_branch(path, branch)
    await engine.checkout(path, branch)


async def _resolve_remote_commit(
    engine: GitEngine, path: Path, branch: str, remote: str
) -> str:
    try:
        return await engine.resolve_ref(path, f"refs/remotes/{remote}/{branch}")
    except GitError:
        pass
    try:
        return await engine.resolve_ref(path, f"{remote}/{branch}")
    except GitError as e:
        raise GitError(
            f"Failed to resolve remote branch '{remote}/{branch}' to a commit. "
            "Ensure 'git fetch' succeeded and the remote branch exists. "
            f"{e.message}",
            operation="resolve_ref",
            path=path,
            ref=f"{remote}/{branch}",
            detail=e.detail,
        ) from e


async def _track_remote_branch(
    engine: GitEngine, path: Path, branch: str, remote: str
) -> None:
    """Create *branch* at the remote commit when branching is HEAD-only.

    HEAD is detached at the remote commit, the branch created there, and
    then checked out. On failure the previous branch is restored and a
    branch created by this call is deleted again, so a retry starts over.
    """
    sha = await _resolve_remote_commit(engine, path, branch, remote)
    previous = await engine.current_branch(path)
    created = False
    try:
        await engine.checkout(path, sha)
        await engine.create_branch(path, branch)
        created = True
        await engine.set_branch_upstream(path, branch, remote)
        await engine.checkout(path, branch)
    except GitSyncError:
        await _roll_back(engine, path, previous, branch if created else None, sha)
        raise


async def _roll_back(
    engine: GitEngine,
    path: Path,
    previous: str | None,
    created: str | None,
    sha: str,
) -> None:
    """Return to *previous* and drop the branch *created*. Logs, never raises."""
    if not previous:
        logger.warning("branch_restore_unknown", detached_at=sha)
        return
    try:
        await engine.checkout(path, previous)
    except GitSyncError as e:
        logger.error("branch_restore_failed", branch=previous, error=e.message)
        return
    if created is None:
        return
    try:
        await engine.delete_branch(path, created)
    except GitSyncError as e:
        logger.error("partial_branch_delete_failed", branch=created, error=e.message)

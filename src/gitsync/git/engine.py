"""Git engine: the single entry point for repository operations.

Every operation consults the :class:`~gitsync.git.selector.BackendSelector`
(no caching), delegates to the chosen backend, and re-raises any failure as a
classified :class:`~gitsync.exceptions.GitError` carrying operation context.

Example:
    ```python
    from gitsync.config import load_config
    from gitsync.git import GitEngine

    engine = GitEngine(load_config())
    await engine.init(path)
    await engine.add_all(path)
    oid = await engine.commit(path, "Init app")
    ```
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

from gitsync.config import GitSyncConfig
from gitsync.exceptions import GitError, GitSyncError, RepositoryStateError
from gitsync.git.classifier import classify_git_error
from gitsync.git.credentials import redact_url
from gitsync.git.models import (
    CommitInfo,
    GitAuthor,
    GitBackendKind,
    GitStateSnapshot,
    RepositoryState,
)
from gitsync.git.protocol import GitBackend
from gitsync.git.selector import BackendSelector
from gitsync.git.state import probe_state, snapshot_state
from gitsync.logging import get_logger

__all__ = ["GitEngine"]

logger = get_logger(__name__)


def _secrets(credential: str | None) -> tuple[str, ...]:
    return (credential,) if credential else ()


class GitEngine:
    """Backend-agnostic async git operations.

    Args:
        config: Settings providing the backend flag, author and defaults.
            Defaults to ``GitSyncConfig()``.
        selector: Backend selector. Built from *config* when omitted.
    """

    def __init__(
        self,
        config: GitSyncConfig | None = None,
        selector: BackendSelector | None = None,
    ) -> None:
        self._config = config or GitSyncConfig()
        self._selector = selector or BackendSelector.from_config(self._config)
        self._background_tasks: set[asyncio.Task[None]] = set()

    @property
    def config(self) -> GitSyncConfig:
        return self._config

    @property
    def selector(self) -> BackendSelector:
        return self._selector

    @property
    def backend(self) -> GitBackend:
        """Backend the next operation will run on."""
        return self._selector.current()

    @property
    def backend_kind(self) -> GitBackendKind:
        return self._selector.current_kind()

    def pinned(self) -> GitEngine:
        """Engine bound to the backend selected right now.

        Multi-step flows run on a pinned engine: later changes to
        ``enable_native_git`` apply to the next flow, never halfway through
        the current one.
        """
        use_native = self.backend_kind is GitBackendKind.NATIVE
        selector = BackendSelector(
            self._selector.native, self._selector.embedded, lambda: use_native
        )
        return GitEngine(self._config, selector)

    # =========================================================================
    # Internal helpers
    # =========================================================================

    def _author(self, author: GitAuthor | None) -> GitAuthor:
        if author is not None:
            return author
        return GitAuthor(name=self._config.author.name, email=self._config.author.email)

    async def _call(
        self,
        operation: str,
        path: Path,
        *args: Any,
        ref: str | None = None,
        secrets: tuple[str, ...] = (),
    ) -> Any:
        """Run *operation* on the current backend, classifying failures."""
        backend = self._selector.current()
        try:
            return await getattr(backend, operation)(path, *args)
        except GitError as e:
            logger.debug(
                "git_operation_failed",
                operation=operation,
                backend=backend.kind.value,
                path=str(path),
                kind=e.kind.value,
            )
            raise
        except Exception as e:
            error = classify_git_error(
                e, operation=operation, path=path, ref=ref, secrets=secrets
            )
            logger.debug(
                "git_operation_failed",
                operation=operation,
                backend=backend.kind.value,
                path=str(path),
                kind=error.kind.value,
                detail=error.detail,
            )
            raise error from e

    def _ensure_not_in_progress(self, path: Path, operation: str) -> None:
        """Refuse *operation* while a merge or rebase is unfinished."""
        state = probe_state(path)
        if state is RepositoryState.MERGE_IN_PROGRESS:
            raise RepositoryStateError(
                f"Cannot {operation} while a merge is in progress. "
                "Resolve the conflicts first, or abort the merge.",
                code=RepositoryStateError.MERGE_IN_PROGRESS,
                operation=operation,
                path=path,
            )
        if state is RepositoryState.REBASE_IN_PROGRESS:
            raise RepositoryStateError(
                f"Cannot {operation} while a rebase is in progress. "
                "Continue or abort the rebase first.",
                code=RepositoryStateError.REBASE_IN_PROGRESS,
                operation=operation,
                path=path,
            )

    # =========================================================================
    # Repository lifecycle
    # =========================================================================

    async def init(self, path: Path, default_branch: str | None = None) -> None:
        branch = default_branch or self._config.default_branch
        await self._call("init", path, branch, ref=branch)
        logger.info("git_initialized", path=str(path), branch=branch)

    async def clone(
        self,
        path: Path,
        url: str,
        credential: str | None = None,
        single_branch: bool = True,
        depth: int | None = None,
    ) -> None:
        await self._call(
            "clone", path, url, credential, single_branch, depth,
            secrets=_secrets(credential),
        )
        logger.info("git_cloned", path=str(path), url=redact_url(url))

    # =========================================================================
    # Status and history
    # =========================================================================

    async def is_clean(self, path: Path) -> bool:
        return await self._call("is_clean", path)

    async def uncommitted_files(self, path: Path) -> list[str]:
        return await self._call("uncommitted_files", path)

    async def current_branch(self, path: Path) -> str | None:
        return await self._call("current_branch", path)

    async def resolve_ref(self, path: Path, ref: str = "HEAD") -> str:
        return await self._call("resolve_ref", path, ref, ref=ref)

    async def log(self, path: Path, depth: int | None = None) -> list[CommitInfo]:
        """Return commits reachable from HEAD, newest first.

        An empty repository yields ``[]``.
        """
        limit = self._config.log_depth if depth is None else depth
        return await self._call("log", path, limit)

    async def file_at_commit(self, path: Path, filepath: str, oid: str) -> str | None:
        return await self._call("file_at_commit", path, filepath, oid, ref=filepath)

    async def is_ignored(self, path: Path, filepath: str) -> bool:
        return await self._call("is_ignored", path, filepath, ref=filepath)

    async def repository_state(self, path: Path) -> RepositoryState:
        return probe_state(path)

    async def state_snapshot(self, path: Path) -> GitStateSnapshot:
        return snapshot_state(path)

    # =========================================================================
    # Commits and staging
    # =========================================================================

    async def commit(
        self,
        path: Path,
        message: str,
        amend: bool = False,
        author: GitAuthor | None = None,
    ) -> str:
        """Commit the index and return the new commit id.

        Raises:
            RepositoryStateError: If a merge or rebase is in progress.
            GitError: If the backend fails.
        """
        self._ensure_not_in_progress(path, "commit")
        oid = await self._call("commit", path, message, amend, self._author(author))
        logger.info("git_committed", path=str(path), oid=oid, message=message[:80])
        return oid

    async def add(self, path: Path, filepath: str) -> None:
        await self._call("add", path, filepath, ref=filepath)

    async def add_all(self, path: Path) -> None:
        await self._call("add_all", path)

    async def remove(self, path: Path, filepath: str) -> None:
        await self._call("remove", path, filepath, ref=filepath)

    async def reset(self, path: Path) -> None:
        await self._call("reset", path)

    async def revert_to_commit(self, path: Path, target_oid: str) -> None:
        """Stage a tree equal to *target_oid* without moving HEAD."""
        await self._call("revert_to_commit", path, target_oid, ref=target_oid)
        logger.info("git_reverted", path=str(path), target=target_oid)

    # =========================================================================
    # Branches
    # =========================================================================

    async def checkout(self, path: Path, ref: str) -> None:
        await self._call("checkout", path, ref, ref=ref)
        logger.debug("git_checked_out", path=str(path), ref=ref)

    async def create_branch(
        self,
        path: Path,
        name: str,
        from_ref: str = "HEAD",
        track: bool = False,
    ) -> None:
        await self._call("create_branch", path, name, from_ref, track, ref=name)
        logger.debug("git_branch_created", path=str(path), branch=name, start=from_ref)

    async def set_branch_upstream(
        self, path: Path, branch: str, remote: str | None = None
    ) -> None:
        await self._call(
            "set_branch_upstream",
            path,
            branch,
            remote or self._config.remote_name,
            ref=branch,
        )

    async def rename_branch(self, path: Path, old: str, new: str) -> None:
        await self._call("rename_branch", path, old, new, ref=old)

    async def delete_branch(self, path: Path, name: str) -> None:
        await self._call("delete_branch", path, name, ref=name)

    async def list_local_branches(self, path: Path) -> list[str]:
        return await self._call("list_local_branches", path)

    async def list_remote_branches(
        self, path: Path, remote: str | None = None
    ) -> list[str]:
        return await self._call(
            "list_remote_branches", path, remote or self._config.remote_name
        )

    # =========================================================================
    # Remotes
    # =========================================================================

    async def set_remote_url(
        self,
        path: Path,
        url: str,
        credential: str | None = None,
        remote: str | None = None,
    ) -> None:
        remote = remote or self._config.remote_name
        await self._call(
            "set_remote_url", path, url, credential, remote,
            ref=remote, secrets=_secrets(credential),
        )
        logger.debug("git_remote_set", path=str(path), remote=remote, url=redact_url(url))

    async def get_remote_url(self, path: Path, remote: str | None = None) -> str | None:
        return await self._call(
            "get_remote_url", path, remote or self._config.remote_name
        )

    async def fetch(
        self,
        path: Path,
        remote: str | None = None,
        credential: str | None = None,
    ) -> None:
        remote = remote or self._config.remote_name
        await self._call(
            "fetch", path, remote, credential, ref=remote, secrets=_secrets(credential)
        )
        logger.info("git_fetched", path=str(path), remote=remote)

    async def pull(
        self,
        path: Path,
        remote: str | None = None,
        branch: str | None = None,
        credential: str | None = None,
        author: GitAuthor | None = None,
    ) -> None:
        """Merge (never rebase) the remote branch into the current branch.

        Raises:
            RepositoryStateError: If a merge or rebase is in progress.
            GitConflictError: If the merge stops with conflicts.
            MissingRemoteRefError: If the remote branch does not exist.
        """
        self._ensure_not_in_progress(path, "pull")
        remote = remote or self._config.remote_name
        branch = branch or self._config.default_branch
        await self._call(
            "pull", path, remote, branch, credential, self._author(author),
            ref=branch, secrets=_secrets(credential),
        )
        logger.info("git_pulled", path=str(path), remote=remote, branch=branch)

    async def push(
        self,
        path: Path,
        branch: str | None = None,
        remote: str | None = None,
        credential: str | None = None,
        force: bool = False,
        force_with_lease: bool = False,
    ) -> None:
        """Push ``branch:branch`` to *remote*.

        Raises:
            UnsupportedOperationError: ``force_with_lease`` on the embedded
                backend (nothing is sent).
            GitError: Rejections such as a diverged remote stay unclassified.
        """
        remote = remote or self._config.remote_name
        branch = branch or self._config.default_branch
        await self._call(
            "push", path, branch, remote, credential, force, force_with_lease,
            ref=branch, secrets=_secrets(credential),
        )
        logger.info(
            "git_pushed",
            path=str(path),
            remote=remote,
            branch=branch,
            force=force,
            force_with_lease=force_with_lease,
        )

    # =========================================================================
    # Merge and rebase
    # =========================================================================

    async def merge(
        self, path: Path, branch: str, author: GitAuthor | None = None
    ) -> None:
        self._ensure_not_in_progress(path, "merge")
        await self._call("merge", path, branch, self._author(author), ref=branch)
        logger.info("git_merged", path=str(path), branch=branch)

    async def merge_abort(self, path: Path) -> None:
        await self._call("merge_abort", path)
        logger.info("git_merge_aborted", path=str(path))

    async def rebase(
        self,
        path: Path,
        onto_branch: str,
        remote: str | None = None,
        author: GitAuthor | None = None,
    ) -> None:
        self._ensure_not_in_progress(path, "rebase")
        remote = remote or self._config.remote_name
        await self._call(
            "rebase", path, onto_branch, remote, self._author(author),
            ref=f"{remote}/{onto_branch}",
        )
        logger.info("git_rebased", path=str(path), onto=f"{remote}/{onto_branch}")

    async def rebase_abort(self, path: Path) -> None:
        await self._call("rebase_abort", path)
        logger.info("git_rebase_aborted", path=str(path))

    async def rebase_continue(self, path: Path, author: GitAuthor | None = None) -> None:
        await self._call("rebase_continue", path, self._author(author))
        logger.info("git_rebase_continued", path=str(path))

    async def merge_conflicts(self, path: Path) -> list[str]:
        return await self._call("merge_conflicts", path)

    # =========================================================================
    # Global configuration
    # =========================================================================

    async def register_safe_directory(self, directory: Path) -> None:
        """Mark *directory* as safe for git. Never raises."""
        backend = self._selector.current()
        try:
            await backend.register_safe_directory(directory)
        except GitSyncError as e:
            logger.warning(
                "safe_directory_failed", directory=str(directory), error=e.message
            )

    def schedule_safe_directory(self, directory: Path) -> asyncio.Task[None]:
        """Run :meth:`register_safe_directory` in the background.

        The task is referenced until it completes so it is not garbage
        collected mid-flight.
        """
        task = asyncio.create_task(self.register_safe_directory(directory))
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)
        return task

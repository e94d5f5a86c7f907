"""Embedded git backend built on dulwich.

Pure-Python git: no executable required. :class:`DulwichGitOperations` holds
the synchronous implementation; :class:`EmbeddedGitBackend` exposes it through
the async :class:`~gitsync.git.protocol.GitBackend` interface by running each
call in a worker thread via ``asyncio.to_thread``.

Capability gaps relative to the native backend:

- ``rebase``, ``rebase_abort``, ``rebase_continue`` and ``merge_conflicts``
  are not available.
- ``create_branch`` only branches from ``HEAD``.
- ``push(force_with_lease=True)`` is refused before any network activity.
- ``clone`` always fetches every branch (``single_branch`` is ignored).

Each gap raises :class:`~gitsync.exceptions.UnsupportedOperationError`.
"""

from __future__ import annotations

import asyncio
import io
import os
from pathlib import Path

from dulwich import porcelain
from dulwich.errors import NotGitRepository
from dulwich.ignore import IgnoreFilterManager
from dulwich.object_store import iter_tree_contents, tree_lookup_path
from dulwich.objects import Blob
from dulwich.objectspec import parse_commit
from dulwich.repo import Repo

from gitsync.exceptions import (
    GitConflictError,
    MissingRemoteRefError,
    NotARepositoryError,
    UnsupportedOperationError,
)
from gitsync.git.credentials import strip_credentials, transport_credentials
from gitsync.git.models import CommitInfo, GitAuthor, GitBackendKind
from gitsync.git.state import MERGE_MARKER, git_dir
from gitsync.logging import get_logger

__all__ = ["DulwichGitOperations", "EmbeddedGitBackend"]

logger = get_logger(__name__)

_HEADS = b"refs/heads/"

#: Control files a merge leaves behind.
_MERGE_STATE_FILES: tuple[str, ...] = (MERGE_MARKER, "MERGE_MSG", "MERGE_MODE")


def _open_repo(path: Path) -> Repo:
    try:
        return Repo(str(path))
    except NotGitRepository as e:
        raise NotARepositoryError(f"Not a git repository: {path}", path=path) from e


def _unsupported(operation: str, path: Path, reason: str = "") -> UnsupportedOperationError:
    message = f"'{operation}' is not supported by the embedded git backend"
    if reason:
        message = f"{message}: {reason}"
    return UnsupportedOperationError(
        message, operation=operation, backend=GitBackendKind.EMBEDDED.value, path=path
    )


def _decode(value: bytes | str) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def _tree_entries(repo: Repo, commit_id: bytes) -> dict[bytes, tuple[int, bytes]]:
    """Map of path to (mode, blob id) for every file in a commit's tree."""
    tree_id = repo[commit_id].tree
    return {
        entry.path: (entry.mode, entry.sha)
        for entry in iter_tree_contents(repo.object_store, tree_id)
    }


class DulwichGitOperations:
    """Synchronous dulwich implementation of the backend operations.

    Every method opens the repository, performs one operation and closes it
    again; nothing is cached between calls.
    """

    # =========================================================================
    # Repository lifecycle
    # =========================================================================

    def init(self, path: Path, default_branch: str) -> None:
        path.mkdir(parents=True, exist_ok=True)
        with porcelain.init(str(path)) as repo:
            repo.refs.set_symbolic_ref(b"HEAD", _HEADS + default_branch.encode())

    def clone(
        self,
        path: Path,
        url: str,
        credential: str | None,
        single_branch: bool,
        depth: int | None,
    ) -> None:
        if single_branch:
            logger.debug("embedded_clone_fetches_all_branches", url=strip_credentials(url))
        path.parent.mkdir(parents=True, exist_ok=True)
        errstream = io.BytesIO()
        repo = porcelain.clone(
            strip_credentials(url),
            str(path),
            depth=depth or None,
            errstream=errstream,
            **transport_credentials(credential),
        )
        repo.close()

    # =========================================================================
    # Status and history
    # =========================================================================

    def is_clean(self, path: Path) -> bool:
        with _open_repo(path) as repo:
            status = porcelain.status(repo)
        return not (
            any(status.staged.values()) or status.unstaged or status.untracked
        )

    def uncommitted_files(self, path: Path) -> list[str]:
        with _open_repo(path) as repo:
            status = porcelain.status(repo)

        seen: dict[str, None] = {}
        for changes in status.staged.values():
            for name in changes:
                seen[_decode(name)] = None
        for name in [*status.unstaged, *status.untracked]:
            seen[_decode(name)] = None
        return list(seen)

    def current_branch(self, path: Path) -> str | None:
        with _open_repo(path) as repo:
            refnames, _ = repo.refs.follow(b"HEAD")
        target = refnames[-1]
        if target.startswith(_HEADS):
            return target[len(_HEADS) :].decode("utf-8")
        return None

    def resolve_ref(self, path: Path, ref: str) -> str:
        with _open_repo(path) as repo:
            return parse_commit(repo, ref).id.decode("ascii")

    def log(self, path: Path, depth: int) -> list[CommitInfo]:
        if depth <= 0:
            return []
        with _open_repo(path) as repo:
            try:
                head = repo.head()
            except KeyError:
                return []
            return [
                CommitInfo(
                    oid=entry.commit.id.decode("ascii"),
                    message=_decode(entry.commit.message).rstrip("\n"),
                    timestamp=entry.commit.author_time,
                )
                for entry in repo.get_walker(include=[head], max_entries=depth)
            ]

    def file_at_commit(self, path: Path, filepath: str, oid: str) -> str | None:
        with _open_repo(path) as repo:
            try:
                commit = parse_commit(repo, oid)
                _, sha = tree_lookup_path(
                    repo.__getitem__, commit.tree, filepath.encode("utf-8")
                )
            except KeyError:
                return None
            obj = repo[sha]
            if not isinstance(obj, Blob):
                return None
            return obj.data.decode("utf-8", errors="replace")

    def is_ignored(self, path: Path, filepath: str) -> bool:
        with _open_repo(path) as repo:
            manager = IgnoreFilterManager.from_repo(repo)
            return bool(manager.is_ignored(filepath))

    # =========================================================================
    # Commits and staging
    # =========================================================================

    def commit(self, path: Path, message: str, amend: bool, author: GitAuthor) -> str:
        identity = author.identity.encode("utf-8")
        with _open_repo(path) as repo:
            sha = porcelain.commit(
                repo,
                message=message.encode("utf-8"),
                author=identity,
                committer=identity,
                amend=amend,
            )
        return _decode(sha)

    def add(self, path: Path, filepath: str) -> None:
        with _open_repo(path) as repo:
            porcelain.add(repo, paths=[str(path / filepath)])

    def add_all(self, path: Path) -> None:
        with _open_repo(path) as repo:
            porcelain.add(repo)
            # Deleted files are staged as removals
            index = repo.open_index()
            removed = [name for name in index if not (path / _decode(name)).exists()]
            for name in removed:
                del index[name]
            if removed:
                index.write()

    def remove(self, path: Path, filepath: str) -> None:
        with _open_repo(path) as repo:
            index = repo.open_index()
            tree_path = filepath.encode("utf-8")
            target = path / filepath
            if tree_path not in index and not target.exists():
                raise FileNotFoundError(f"pathspec '{filepath}' did not match any files")
            if tree_path in index:
                del index[tree_path]
                index.write()
        target.unlink(missing_ok=True)

    def reset(self, path: Path) -> None:
        with _open_repo(path) as repo:
            porcelain.reset(repo, "mixed", "HEAD")

    def revert_to_commit(self, path: Path, target_oid: str) -> None:
        """Make the working tree and index match *target_oid*, keeping HEAD.

        Files whose content differs from the target (or that are missing)
        are rewritten from the target's blobs. Every path absent from the
        target is deleted, whether it is committed, staged or untracked.
        Every touched path is staged.
        """
        with _open_repo(path) as repo:
            target = _tree_entries(repo, parse_commit(repo, target_oid).id)
            try:
                current = _tree_entries(repo, repo.head())
            except KeyError:
                current = {}
            untracked = {
                Path(_decode(name)).as_posix().encode("utf-8")
                for name in porcelain.status(repo, untracked_files="all").untracked
            }

            index = repo.open_index()
            to_stage: list[str] = []
            for tree_path, (mode, sha) in target.items():
                file_path = path / _decode(tree_path)
                data = repo[sha].data
                if file_path.is_file() and file_path.read_bytes() == data:
                    continue
                file_path.parent.mkdir(parents=True, exist_ok=True)
                file_path.write_bytes(data)
                if mode & 0o111:
                    os.chmod(file_path, 0o755)
                to_stage.append(str(file_path))

            present = set(current) | set(index) | untracked
            deleted = sorted(p for p in present if p not in target)
            for tree_path in deleted:
                (path / _decode(tree_path)).unlink(missing_ok=True)
                if tree_path in index:
                    del index[tree_path]
            if deleted:
                index.write()

            if to_stage:
                porcelain.add(repo, paths=to_stage)

    # =========================================================================
    # Branches
    # =========================================================================

    def checkout(self, path: Path, ref: str) -> None:
        with _open_repo(path) as repo:
            porcelain.checkout(repo, ref)

    def create_branch(self, path: Path, name: str, from_ref: str, track: bool) -> None:
        if from_ref != "HEAD":
            raise _unsupported(
                "create_branch", path, f"can only branch from HEAD, not '{from_ref}'"
            )
        with _open_repo(path) as repo:
            porcelain.branch_create(repo, name)
        if track:
            self.set_branch_upstream(path, name, "origin")

    def set_branch_upstream(self, path: Path, branch: str, remote: str) -> None:
        with _open_repo(path) as repo:
            config = repo.get_config()
            section = (b"branch", branch.encode("utf-8"))
            config.set(section, b"remote", remote.encode("utf-8"))
            config.set(section, b"merge", _HEADS + branch.encode("utf-8"))
            config.write_to_path()

    def rename_branch(self, path: Path, old: str, new: str) -> None:
        old_ref = _HEADS + old.encode("utf-8")
        new_ref = _HEADS + new.encode("utf-8")
        with _open_repo(path) as repo:
            sha = repo.refs[old_ref]
            if new_ref in repo.refs:
                raise ValueError(f"a branch named '{new}' already exists")
            repo.refs[new_ref] = sha
            refnames, _ = repo.refs.follow(b"HEAD")
            if refnames[-1] == old_ref:
                repo.refs.set_symbolic_ref(b"HEAD", new_ref)
            del repo.refs[old_ref]

    def delete_branch(self, path: Path, name: str) -> None:
        with _open_repo(path) as repo:
            porcelain.branch_delete(repo, name)

    def list_local_branches(self, path: Path) -> list[str]:
        with _open_repo(path) as repo:
            return sorted(_decode(name) for name in porcelain.branch_list(repo))

    def list_remote_branches(self, path: Path, remote: str) -> list[str]:
        base = f"refs/remotes/{remote}/".encode()
        with _open_repo(path) as repo:
            names = repo.refs.keys(base=base)
        return sorted(_decode(name) for name in names if name != b"HEAD")

    # =========================================================================
    # Remotes
    # =========================================================================

    def set_remote_url(
        self, path: Path, url: str, credential: str | None, remote: str
    ) -> None:
        # Credentials go to the transport at call time, never into the config
        with _open_repo(path) as repo:
            config = repo.get_config()
            section = (b"remote", remote.encode("utf-8"))
            config.set(section, b"url", strip_credentials(url).encode("utf-8"))
            config.set(
                section, b"fetch", f"+refs/heads/*:refs/remotes/{remote}/*".encode()
            )
            config.write_to_path()

    def get_remote_url(self, path: Path, remote: str) -> str | None:
        with _open_repo(path) as repo:
            try:
                url = repo.get_config().get((b"remote", remote.encode("utf-8")), b"url")
            except KeyError:
                return None
        return _decode(url)

    def fetch(self, path: Path, remote: str, credential: str | None) -> None:
        errstream = io.BytesIO()
        with _open_repo(path) as repo:
            porcelain.fetch(
                repo,
                remote,
                errstream=errstream,
                **transport_credentials(credential),
            )

    def pull(
        self,
        path: Path,
        remote: str,
        branch: str,
        credential: str | None,
        author: GitAuthor,
    ) -> None:
        """Fetch, then merge ``refs/remotes/<remote>/<branch>`` (never rebase)."""
        self.fetch(path, remote, credential)
        remote_ref = f"refs/remotes/{remote}/{branch}".encode()
        with _open_repo(path) as repo:
            if remote_ref not in repo.refs:
                raise MissingRemoteRefError(
                    f"couldn't find remote ref {branch}",
                    operation="pull",
                    path=path,
                    ref=branch,
                )
            remote_sha = repo.refs[remote_ref]
            try:
                repo.head()
            except KeyError:
                # Unborn branch: adopt the remote history as-is
                refnames, _ = repo.refs.follow(b"HEAD")
                repo.refs[refnames[-1]] = remote_sha
                porcelain.reset(repo, "hard", remote_sha)
                return
            self._merge(repo, path, remote_sha, author, label=f"{remote}/{branch}")

    def push(
        self,
        path: Path,
        branch: str,
        remote: str,
        credential: str | None,
        force: bool,
        force_with_lease: bool,
    ) -> None:
        if force_with_lease:
            raise _unsupported("push", path, "force-with-lease is not available")
        refspec = f"refs/heads/{branch}:refs/heads/{branch}".encode()
        errstream = io.BytesIO()
        with _open_repo(path) as repo:
            porcelain.push(
                repo,
                remote,
                [refspec],
                outstream=io.BytesIO(),
                errstream=errstream,
                force=force,
                **transport_credentials(credential),
            )

    # =========================================================================
    # Merge
    # =========================================================================

    def merge(self, path: Path, branch: str, author: GitAuthor) -> None:
        with _open_repo(path) as repo:
            sha = parse_commit(repo, branch).id
            self._merge(repo, path, sha, author, label=branch)

    def _merge(
        self, repo: Repo, path: Path, sha: bytes, author: GitAuthor, label: str
    ) -> None:
        identity = author.identity.encode("utf-8")
        _, conflicts = porcelain.merge(
            repo,
            sha,
            message=f"Merge {label}".encode(),
            author=identity,
            committer=identity,
        )
        if not conflicts:
            return

        # Record the in-progress merge so the state prober reports it
        marker = git_dir(path) / MERGE_MARKER
        if not marker.exists():
            marker.write_bytes(sha + b"\n")
        files = tuple(_decode(name) for name in conflicts)
        raise GitConflictError(
            "Automatic merge failed; fix conflicts and then commit the result. "
            + " ".join(f"CONFLICT (content): Merge conflict in {name}" for name in files),
            operation="merge",
            path=path,
            ref=label,
            conflicted_files=files,
        )

    def merge_abort(self, path: Path) -> None:
        control = git_dir(path)
        if not (control / MERGE_MARKER).exists():
            raise ValueError("There is no merge to abort (MERGE_HEAD missing).")
        with _open_repo(path) as repo:
            porcelain.reset(repo, "hard", "HEAD")
        for name in _MERGE_STATE_FILES:
            (control / name).unlink(missing_ok=True)


class EmbeddedGitBackend:
    """Async facade over :class:`DulwichGitOperations`.

    Example:
        ```python
        backend = EmbeddedGitBackend()
        await backend.init(Path("/apps/todo"), "main")
        await backend.add_all(Path("/apps/todo"))
        oid = await backend.commit(Path("/apps/todo"), "Init app", False, author)
        ```
    """

    def __init__(self, operations: DulwichGitOperations | None = None) -> None:
        self._sync = operations or DulwichGitOperations()

    @property
    def kind(self) -> GitBackendKind:
        return GitBackendKind.EMBEDDED

    async def init(self, path: Path, default_branch: str) -> None:
        await asyncio.to_thread(self._sync.init, path, default_branch)

    async def clone(
        self,
        path: Path,
        url: str,
        credential: str | None,
        single_branch: bool,
        depth: int | None,
    ) -> None:
        await asyncio.to_thread(
            self._sync.clone, path, url, credential, single_branch, depth
        )

    async def is_clean(self, path: Path) -> bool:
        return await asyncio.to_thread(self._sync.is_clean, path)

    async def uncommitted_files(self, path: Path) -> list[str]:
        return await asyncio.to_thread(self._sync.uncommitted_files, path)

    async def current_branch(self, path: Path) -> str | None:
        return await asyncio.to_thread(self._sync.current_branch, path)

    async def resolve_ref(self, path: Path, ref: str) -> str:
        return await asyncio.to_thread(self._sync.resolve_ref, path, ref)

    async def commit(
        self, path: Path, message: str, amend: bool, author: GitAuthor
    ) -> str:
        return await asyncio.to_thread(self._sync.commit, path, message, amend, author)

    async def checkout(self, path: Path, ref: str) -> None:
        await asyncio.to_thread(self._sync.checkout, path, ref)

    async def create_branch(
        self, path: Path, name: str, from_ref: str, track: bool
    ) -> None:
        await asyncio.to_thread(self._sync.create_branch, path, name, from_ref, track)

    async def set_branch_upstream(self, path: Path, branch: str, remote: str) -> None:
        await asyncio.to_thread(self._sync.set_branch_upstream, path, branch, remote)

    async def rename_branch(self, path: Path, old: str, new: str) -> None:
        await asyncio.to_thread(self._sync.rename_branch, path, old, new)

    async def delete_branch(self, path: Path, name: str) -> None:
        await asyncio.to_thread(self._sync.delete_branch, path, name)

    async def list_local_branches(self, path: Path) -> list[str]:
        return await asyncio.to_thread(self._sync.list_local_branches, path)

    async def list_remote_branches(self, path: Path, remote: str) -> list[str]:
        return await asyncio.to_thread(self._sync.list_remote_branches, path, remote)

    async def add(self, path: Path, filepath: str) -> None:
        await asyncio.to_thread(self._sync.add, path, filepath)

    async def add_all(self, path: Path) -> None:
        await asyncio.to_thread(self._sync.add_all, path)

    async def remove(self, path: Path, filepath: str) -> None:
        await asyncio.to_thread(self._sync.remove, path, filepath)

    async def reset(self, path: Path) -> None:
        await asyncio.to_thread(self._sync.reset, path)

    async def revert_to_commit(self, path: Path, target_oid: str) -> None:
        await asyncio.to_thread(self._sync.revert_to_commit, path, target_oid)

    async def log(self, path: Path, depth: int) -> list[CommitInfo]:
        return await asyncio.to_thread(self._sync.log, path, depth)

    async def file_at_commit(self, path: Path, filepath: str, oid: str) -> str | None:
        return await asyncio.to_thread(self._sync.file_at_commit, path, filepath, oid)

    async def is_ignored(self, path: Path, filepath: str) -> bool:
        return await asyncio.to_thread(self._sync.is_ignored, path, filepath)

    async def set_remote_url(
        self, path: Path, url: str, credential: str | None, remote: str
    ) -> None:
        await asyncio.to_thread(self._sync.set_remote_url, path, url, credential, remote)

    async def get_remote_url(self, path: Path, remote: str) -> str | None:
        return await asyncio.to_thread(self._sync.get_remote_url, path, remote)

    async def fetch(self, path: Path, remote: str, credential: str | None) -> None:
        await asyncio.to_thread(self._sync.fetch, path, remote, credential)

    async def pull(
        self,
        path: Path,
        remote: str,
        branch: str,
        credential: str | None,
        author: GitAuthor,
    ) -> None:
        await asyncio.to_thread(self._sync.pull, path, remote, branch, credential, author)

    async def push(
        self,
        path: Path,
        branch: str,
        remote: str,
        credential: str | None,
        force: bool,
        force_with_lease: bool,
    ) -> None:
        if force_with_lease:
            raise _unsupported("push", path, "force-with-lease is not available")
        await asyncio.to_thread(
            self._sync.push, path, branch, remote, credential, force, force_with_lease
        )

    async def merge(self, path: Path, branch: str, author: GitAuthor) -> None:
        await asyncio.to_thread(self._sync.merge, path, branch, author)

    async def merge_abort(self, path: Path) -> None:
        await asyncio.to_thread(self._sync.merge_abort, path)

    async def rebase(
        self, path: Path, onto_branch: str, remote: str, author: GitAuthor
    ) -> None:
        raise _unsupported("rebase", path)

    async def rebase_abort(self, path: Path) -> None:
        raise _unsupported("rebase_abort", path)

    async def rebase_continue(self, path: Path, author: GitAuthor) -> None:
        raise _unsupported("rebase_continue", path)

    async def merge_conflicts(self, path: Path) -> list[str]:
        raise _unsupported("merge_conflicts", path)

    async def register_safe_directory(self, directory: Path) -> None:
        # dulwich does not enforce safe.directory ownership checks
        logger.debug("safe_directory_skipped", directory=str(directory), backend="embedded")

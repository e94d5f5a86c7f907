"""GitBackend protocol definition.

The capability interface both backends satisfy via structural typing, no
explicit inheritance required. Backends raise raw, backend-specific failures;
:class:`~gitsync.git.engine.GitEngine` classifies them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

from gitsync.git.models import CommitInfo, GitAuthor, GitBackendKind


@runtime_checkable
class GitBackend(Protocol):
    """Operation set shared by the native and embedded backends."""

    @property
    def kind(self) -> GitBackendKind:
        """Which backend this is."""
        ...

    async def init(self, path: Path, default_branch: str) -> None: ...

    async def clone(
        self,
        path: Path,
        url: str,
        credential: str | None,
        single_branch: bool,
        depth: int | None,
    ) -> None: ...

    async def is_clean(self, path: Path) -> bool: ...

    async def uncommitted_files(self, path: Path) -> list[str]: ...

    async def current_branch(self, path: Path) -> str | None: ...

    async def resolve_ref(self, path: Path, ref: str) -> str: ...

    async def commit(
        self, path: Path, message: str, amend: bool, author: GitAuthor
    ) -> str: ...

    async def checkout(self, path: Path, ref: str) -> None: ...

    async def create_branch(
        self, path: Path, name: str, from_ref: str, track: bool
    ) -> None: ...

    async def set_branch_upstream(
        self, path: Path, branch: str, remote: str
    ) -> None: ...

    async def rename_branch(self, path: Path, old: str, new: str) -> None: ...

    async def delete_branch(self, path: Path, name: str) -> None: ...

    async def list_local_branches(self, path: Path) -> list[str]: ...

    async def list_remote_branches(self, path: Path, remote: str) -> list[str]: ...

    async def add(self, path: Path, filepath: str) -> None: ...

    async def add_all(self, path: Path) -> None: ...

    async def remove(self, path: Path, filepath: str) -> None: ...

    async def reset(self, path: Path) -> None: ...

    async def revert_to_commit(self, path: Path, target_oid: str) -> None: ...

    async def log(self, path: Path, depth: int) -> list[CommitInfo]: ...

    async def file_at_commit(
        self, path: Path, filepath: str, oid: str
    ) -> str | None: ...

    async def is_ignored(self, path: Path, filepath: str) -> bool: ...

    async def set_remote_url(
        self, path: Path, url: str, credential: str | None, remote: str
    ) -> None: ...

    async def get_remote_url(self, path: Path, remote: str) -> str | None: ...

    async def fetch(self, path: Path, remote: str, credential: str | None) -> None: ...

    async def pull(
        self,
        path: Path,
        remote: str,
        branch: str,
        credential: str | None,
        author: GitAuthor,
    ) -> None: ...

    async def push(
        self,
        path: Path,
        branch: str,
        remote: str,
        credential: str | None,
        force: bool,
        force_with_lease: bool,
    ) -> None: ...

    async def merge(self, path: Path, branch: str, author: GitAuthor) -> None: ...

    async def merge_abort(self, path: Path) -> None: ...

    async def rebase(
        self, path: Path, onto_branch: str, remote: str, author: GitAuthor
    ) -> None: ...

    async def rebase_abort(self, path: Path) -> None: ...

    async def rebase_continue(self, path: Path, author: GitAuthor) -> None: ...

    async def merge_conflicts(self, path: Path) -> list[str]: ...

    async def register_safe_directory(self, directory: Path) -> None: ...

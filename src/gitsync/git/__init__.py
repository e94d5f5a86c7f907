"""Git synchronization engine.

Two interchangeable backends (the system ``git`` executable and the
pure-Python dulwich implementation) behind one async engine, plus the flows
that coordinate them with remotes.

Usage:
    ```python
    from gitsync.git import GitEngine, prepare_local_branch, push_to_remote

    engine = GitEngine(config)
    await prepare_local_branch(engine, repo_key=app_id, path=path, branch="main")
    await push_to_remote(engine, repo_key=app_id, path=path, credential=token)
    ```
"""

from __future__ import annotations

from gitsync.git.branches import ensure_clean_workspace, prepare_local_branch
from gitsync.git.classifier import classify_git_error
from gitsync.git.embedded import EmbeddedGitBackend
from gitsync.git.engine import GitEngine
from gitsync.git.locks import RepositoryLocks, default_locks, with_lock
from gitsync.git.models import (
    CommitInfo,
    GitAuthor,
    GitBackendKind,
    GitStateSnapshot,
    RepositoryState,
)
from gitsync.git.native import NativeGitBackend
from gitsync.git.protocol import GitBackend
from gitsync.git.selector import BackendSelector, create_backend
from gitsync.git.state import (
    is_merge_in_progress,
    is_merge_or_rebase_in_progress,
    is_rebase_in_progress,
    probe_state,
)
from gitsync.git.sync import get_git_state, push_to_remote, rebase_from_remote

__all__ = [
    "BackendSelector",
    "CommitInfo",
    "EmbeddedGitBackend",
    "GitAuthor",
    "GitBackend",
    "GitBackendKind",
    "GitEngine",
    "GitStateSnapshot",
    "NativeGitBackend",
    "RepositoryLocks",
    "RepositoryState",
    "classify_git_error",
    "create_backend",
    "default_locks",
    "ensure_clean_workspace",
    "get_git_state",
    "is_merge_in_progress",
    "is_merge_or_rebase_in_progress",
    "is_rebase_in_progress",
    "prepare_local_branch",
    "probe_state",
    "push_to_remote",
    "rebase_from_remote",
    "with_lock",
]

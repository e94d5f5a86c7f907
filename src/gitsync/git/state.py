"""Repository state prober.

Detects merge/rebase-in-progress purely from marker files inside the control
directory. The markers are filesystem facts, so the answer does not depend on
which backend performed the preceding operation. Checks are synchronous and
uncached; callers mutating the repository already hold its lock.
"""

from __future__ import annotations

from pathlib import Path

from gitsync.git.models import GitStateSnapshot, RepositoryState

__all__ = [
    "MERGE_MARKER",
    "REBASE_MARKERS",
    "git_dir",
    "is_merge_in_progress",
    "is_merge_or_rebase_in_progress",
    "is_rebase_in_progress",
    "probe_state",
    "snapshot_state",
]

MERGE_MARKER = "MERGE_HEAD"

#: A rebase marker file, or either of the two rebase working directories.
REBASE_MARKERS: tuple[str, ...] = ("REBASE_HEAD", "rebase-apply", "rebase-merge")


def git_dir(path: Path | str) -> Path:
    """Return the control directory of the repository at *path*.

    Linked worktrees and submodules use a ``.git`` *file* containing
    ``gitdir: <path>``; that indirection is followed.
    """
    dot_git = Path(path) / ".git"
    if dot_git.is_file():
        content = dot_git.read_text(encoding="utf-8").strip()
        if content.startswith("gitdir:"):
            target = Path(content[len("gitdir:") :].strip())
            if not target.is_absolute():
                target = (Path(path) / target).resolve()
            return target
    return dot_git


def is_merge_in_progress(path: Path | str) -> bool:
    """True if a merge is in progress (``MERGE_HEAD`` exists)."""
    return (git_dir(path) / MERGE_MARKER).exists()


def is_rebase_in_progress(path: Path | str) -> bool:
    """True if a rebase is in progress.

    Used to choose between ``rebase --continue`` and ``commit`` when
    completing conflict resolution.
    """
    control = git_dir(path)
    return any((control / marker).exists() for marker in REBASE_MARKERS)


def is_merge_or_rebase_in_progress(path: Path | str) -> bool:
    """True if either a merge or a rebase is in progress."""
    return probe_state(path) is not RepositoryState.CLEAN


def probe_state(path: Path | str) -> RepositoryState:
    """Return the single control-state of the repository.

    Rebase markers win if both kinds are present: git records a conflicted
    rebase step without ``MERGE_HEAD``, so a stray merge marker is the
    less reliable of the two.
    """
    if is_rebase_in_progress(path):
        return RepositoryState.REBASE_IN_PROGRESS
    if is_merge_in_progress(path):
        return RepositoryState.MERGE_IN_PROGRESS
    return RepositoryState.CLEAN


def snapshot_state(path: Path | str) -> GitStateSnapshot:
    """Return merge/rebase flags for status reporting."""
    state = probe_state(path)
    return GitStateSnapshot(
        merge_in_progress=state is RepositoryState.MERGE_IN_PROGRESS,
        rebase_in_progress=state is RepositoryState.REBASE_IN_PROGRESS,
    )

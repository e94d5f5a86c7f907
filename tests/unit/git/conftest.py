"""Fixtures building repositories with GitPython.

Fixture repositories are created independently of both backends so that a
backend bug cannot hide itself by also producing the fixture.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from git import Repo

RepoFactory = Callable[..., Path]


def write_and_commit(
    repo_path: Path, files: dict[str, str], message: str = "Update files"
) -> str:
    """Write *files* into the repository, commit them, and return the sha."""
    repo = Repo(repo_path)
    for name, content in files.items():
        target = repo_path / name
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content)
    repo.index.add(list(files))
    return repo.index.commit(message).hexsha


@pytest.fixture
def make_repo(tmp_path: Path) -> RepoFactory:
    """Factory creating a repository with one commit.

    Example:
        >>> path = make_repo("app", branch="main", files={"a.txt": "1"})
    """

    def factory(
        name: str = "repo",
        branch: str = "main",
        files: dict[str, str] | None = None,
        message: str = "Initial commit",
    ) -> Path:
        repo_path = tmp_path / name
        repo_path.mkdir()
        Repo.init(repo_path, initial_branch=branch)
        write_and_commit(repo_path, files or {"README.md": "# Test Repo\n"}, message)
        return repo_path

    return factory


@pytest.fixture
def temp_git_repo(make_repo: RepoFactory) -> Path:
    """Repository on ``main`` with a single ``README.md`` commit."""
    return make_repo()


@pytest.fixture
def bare_remote(tmp_path: Path) -> Path:
    """Empty bare repository whose HEAD points at ``main``."""
    remote_path = tmp_path / "remote.git"
    Repo.init(remote_path, bare=True, initial_branch="main")
    return remote_path


@pytest.fixture
def populated_remote(tmp_path: Path, bare_remote: Path) -> tuple[Path, str]:
    """Bare remote whose ``main`` holds two commits.

    Returns:
        Tuple of (remote path, tip sha of ``main``).
    """
    seed = tmp_path / "seed"
    seed.mkdir()
    repo = Repo.init(seed, initial_branch="main")
    write_and_commit(seed, {"README.md": "# Remote\n"}, "Remote initial")
    tip = write_and_commit(seed, {"remote.txt": "extra\n"}, "Remote extra commit")
    repo.create_remote("origin", str(bare_remote))
    repo.git.push("origin", "main:main")
    return bare_remote, tip


@pytest.fixture
def clone_of(tmp_path: Path) -> Callable[[Path, str], Path]:
    """Clone a remote with GitPython into ``tmp_path/<name>``."""

    def factory(remote: Path, name: str) -> Path:
        target = tmp_path / name
        Repo.clone_from(str(remote), target)
        return target

    return factory


def remote_head(remote: Path, branch: str = "main") -> str:
    """Sha of *branch* in a bare remote."""
    return Repo(remote).commit(branch).hexsha

"""Tests for GitEngine, run against both backends."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock

import pytest
from git import Repo

from gitsync.config import GitSyncConfig
from gitsync.exceptions import (
    GitError,
    GitErrorKind,
    NetworkUnreachableError,
    RepositoryStateError,
)
from gitsync.git.engine import GitEngine
from gitsync.git.models import GitBackendKind, RepositoryState
from gitsync.git.native import NativeGitBackend
from gitsync.git.selector import BackendSelector, create_backend
from tests.unit.git.conftest import write_and_commit


@pytest.fixture
def new_repo(tmp_path: Path) -> Path:
    return tmp_path / "apps" / "todo"


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_init_and_first_commit(self, engine: GitEngine, new_repo: Path) -> None:
        await engine.init(new_repo)
        (new_repo / "app.py").write_text("print('hi')\n")

        await engine.add_all(new_repo)
        oid = await engine.commit(new_repo, "Init app")

        entries = await engine.log(new_repo)
        assert len(entries) == 1
        assert entries[0].oid == oid
        assert entries[0].message == "Init app"
        assert await engine.current_branch(new_repo) == "main"
        assert await engine.is_clean(new_repo)

    @pytest.mark.asyncio
    async def test_empty_repository_log(self, engine: GitEngine, new_repo: Path) -> None:
        await engine.init(new_repo, "trunk")

        assert await engine.log(new_repo) == []
        assert await engine.current_branch(new_repo) == "trunk"

    @pytest.mark.asyncio
    async def test_log_depth(self, engine: GitEngine, temp_git_repo: Path) -> None:
        tip = write_and_commit(temp_git_repo, {"a.txt": "a\n"}, "Second")

        assert await engine.log(temp_git_repo, depth=0) == []
        assert [e.oid for e in await engine.log(temp_git_repo, depth=1)] == [tip]
        assert len(await engine.log(temp_git_repo)) == 2

    @pytest.mark.asyncio
    async def test_commit_uses_configured_author(
        self, engine: GitEngine, temp_git_repo: Path
    ) -> None:
        (temp_git_repo / "a.txt").write_text("a\n")
        await engine.add(temp_git_repo, "a.txt")

        await engine.commit(temp_git_repo, "Add a")

        head = Repo(temp_git_repo).head.commit
        assert head.author.name == engine.config.author.name
        assert head.committer.email == engine.config.author.email

    @pytest.mark.asyncio
    async def test_amend_replaces_head(
        self, engine: GitEngine, temp_git_repo: Path
    ) -> None:
        (temp_git_repo / "a.txt").write_text("a\n")
        await engine.add_all(temp_git_repo)

        await engine.commit(temp_git_repo, "Amended", amend=True)

        entries = await engine.log(temp_git_repo)
        assert len(entries) == 1
        assert entries[0].message == "Amended"


class TestClone:
    @pytest.mark.asyncio
    async def test_clone_populated_remote(
        self,
        engine: GitEngine,
        tmp_path: Path,
        populated_remote: tuple[Path, str],
    ) -> None:
        remote, tip = populated_remote
        target = tmp_path / "apps" / "cloned"

        await engine.clone(target, str(remote))

        assert await engine.current_branch(target) == "main"
        assert await engine.resolve_ref(target) == tip
        assert [e.message for e in await engine.log(target)] == [
            "Remote extra commit",
            "Remote initial",
        ]
        assert (target / "remote.txt").read_text() == "extra\n"
        assert await engine.get_remote_url(target) == str(remote)
        assert await engine.is_clean(target)

    @pytest.mark.asyncio
    async def test_shallow_clone(
        self,
        native_engine: GitEngine,
        tmp_path: Path,
        populated_remote: tuple[Path, str],
    ) -> None:
        remote, tip = populated_remote
        target = tmp_path / "shallow"

        # Local paths ignore --depth; file:// URLs honour it
        await native_engine.clone(target, remote.as_uri(), depth=1)

        entries = await native_engine.log(target)
        assert [e.oid for e in entries] == [tip]


class TestStatus:
    @pytest.mark.asyncio
    async def test_uncommitted_files(self, engine: GitEngine, temp_git_repo: Path) -> None:
        (temp_git_repo / "new.txt").write_text("new\n")

        assert not await engine.is_clean(temp_git_repo)
        assert await engine.uncommitted_files(temp_git_repo) == ["new.txt"]

    @pytest.mark.asyncio
    async def test_reset_unstages(self, engine: GitEngine, temp_git_repo: Path) -> None:
        (temp_git_repo / "new.txt").write_text("new\n")
        await engine.add(temp_git_repo, "new.txt")

        await engine.reset(temp_git_repo)

        assert Repo(temp_git_repo).index.diff("HEAD") == []
        assert (temp_git_repo / "new.txt").exists()

    @pytest.mark.asyncio
    async def test_file_at_commit(self, engine: GitEngine, temp_git_repo: Path) -> None:
        first = await engine.resolve_ref(temp_git_repo)
        write_and_commit(temp_git_repo, {"README.md": "changed\n"})

        assert await engine.file_at_commit(temp_git_repo, "README.md", first) == (
            "# Test Repo\n"
        )
        assert await engine.file_at_commit(temp_git_repo, "missing.txt", first) is None

    @pytest.mark.asyncio
    async def test_is_ignored(self, engine: GitEngine, temp_git_repo: Path) -> None:
        write_and_commit(temp_git_repo, {".gitignore": "*.log\nbuild/\n"})

        assert await engine.is_ignored(temp_git_repo, "debug.log")
        assert not await engine.is_ignored(temp_git_repo, "app.py")

    @pytest.mark.asyncio
    async def test_state_probes(self, engine: GitEngine, temp_git_repo: Path) -> None:
        assert await engine.repository_state(temp_git_repo) is RepositoryState.CLEAN

        (temp_git_repo / ".git" / "MERGE_HEAD").write_text("0" * 40 + "\n")

        snapshot = await engine.state_snapshot(temp_git_repo)
        assert snapshot.merge_in_progress
        assert not snapshot.rebase_in_progress


class TestRevert:
    @pytest.mark.asyncio
    async def test_revert_round_trip(self, engine: GitEngine, temp_git_repo: Path) -> None:
        first = await engine.resolve_ref(temp_git_repo)
        second = write_and_commit(
            temp_git_repo,
            {"README.md": "# Changed\n", "extra.txt": "extra\n"},
            "Second",
        )

        await engine.revert_to_commit(temp_git_repo, first)

        assert await engine.resolve_ref(temp_git_repo) == second
        assert (temp_git_repo / "README.md").read_text() == "# Test Repo\n"
        assert not (temp_git_repo / "extra.txt").exists()

        oid = await engine.commit(temp_git_repo, "Revert to first")

        assert await engine.file_at_commit(temp_git_repo, "README.md", oid) == (
            "# Test Repo\n"
        )
        assert await engine.file_at_commit(temp_git_repo, "extra.txt", oid) is None
        assert await engine.is_clean(temp_git_repo)


class TestBranches:
    @pytest.mark.asyncio
    async def test_create_branch_and_commit(
        self, engine: GitEngine, temp_git_repo: Path
    ) -> None:
        await engine.create_branch(temp_git_repo, "feature")
        await engine.checkout(temp_git_repo, "feature")
        (temp_git_repo / "f.txt").write_text("f\n")
        await engine.add_all(temp_git_repo)
        await engine.commit(temp_git_repo, "Feature work")

        assert await engine.list_local_branches(temp_git_repo) == ["feature", "main"]
        assert await engine.current_branch(temp_git_repo) == "feature"
        assert await engine.is_clean(temp_git_repo)

    @pytest.mark.asyncio
    async def test_rename_and_delete(self, engine: GitEngine, temp_git_repo: Path) -> None:
        await engine.create_branch(temp_git_repo, "old")

        await engine.rename_branch(temp_git_repo, "old", "new")
        assert await engine.list_local_branches(temp_git_repo) == ["main", "new"]

        await engine.delete_branch(temp_git_repo, "new")
        assert await engine.list_local_branches(temp_git_repo) == ["main"]

    @pytest.mark.asyncio
    async def test_checkout_unknown_ref(self, engine: GitEngine, temp_git_repo: Path) -> None:
        with pytest.raises(GitError) as exc_info:
            await engine.checkout(temp_git_repo, "does-not-exist")

        assert exc_info.value.operation == "checkout"
        assert exc_info.value.ref == "does-not-exist"

    @pytest.mark.asyncio
    async def test_remote_branches_after_fetch(
        self,
        engine: GitEngine,
        temp_git_repo: Path,
        populated_remote: tuple[Path, str],
    ) -> None:
        remote, _ = populated_remote
        await engine.set_remote_url(temp_git_repo, str(remote))

        await engine.fetch(temp_git_repo)

        assert await engine.list_remote_branches(temp_git_repo) == ["main"]


class TestRemotes:
    @pytest.mark.asyncio
    async def test_remote_url_round_trip(
        self, engine: GitEngine, temp_git_repo: Path
    ) -> None:
        assert await engine.get_remote_url(temp_git_repo) is None

        await engine.set_remote_url(temp_git_repo, "https://github.com/o/first.git")
        await engine.set_remote_url(temp_git_repo, "https://github.com/o/second.git")

        assert await engine.get_remote_url(temp_git_repo) == (
            "https://github.com/o/second.git"
        )


class TestStateGate:
    @pytest.mark.asyncio
    async def test_commit_refused_during_merge(
        self, engine: GitEngine, temp_git_repo: Path
    ) -> None:
        (temp_git_repo / ".git" / "MERGE_HEAD").write_text("0" * 40 + "\n")

        with pytest.raises(RepositoryStateError) as exc_info:
            await engine.commit(temp_git_repo, "should not happen")

        assert exc_info.value.kind is GitErrorKind.CONFLICT
        assert exc_info.value.code == RepositoryStateError.MERGE_IN_PROGRESS
        assert len(await engine.log(temp_git_repo)) == 1

    @pytest.mark.asyncio
    async def test_pull_refused_during_rebase(
        self, engine: GitEngine, temp_git_repo: Path
    ) -> None:
        (temp_git_repo / ".git" / "rebase-merge").mkdir()

        with pytest.raises(RepositoryStateError) as exc_info:
            await engine.pull(temp_git_repo)

        assert exc_info.value.code == RepositoryStateError.REBASE_IN_PROGRESS
        assert exc_info.value.operation == "pull"


class TestBackendSelection:
    def test_flag_is_read_per_call(self) -> None:
        config = GitSyncConfig(enable_native_git=True)
        engine = GitEngine(config)
        assert engine.backend_kind is GitBackendKind.NATIVE

        config.enable_native_git = False
        assert engine.backend_kind is GitBackendKind.EMBEDDED

        config.enable_native_git = True
        assert engine.backend is engine.selector.native

    def test_unknown_backend(self) -> None:
        with pytest.raises(ValueError, match="Unknown git backend"):
            create_backend("libgit2", GitSyncConfig())

    def test_native_backend_uses_configured_executable(self) -> None:
        backend = create_backend("native", GitSyncConfig(git_executable="/opt/git/bin/git"))
        assert isinstance(backend, NativeGitBackend)
        assert backend._git == "/opt/git/bin/git"


def _mocked_engine(native: AsyncMock) -> GitEngine:
    native.kind = GitBackendKind.NATIVE
    embedded = AsyncMock()
    embedded.kind = GitBackendKind.EMBEDDED
    return GitEngine(
        GitSyncConfig(), BackendSelector(native, embedded, lambda: True)
    )


class TestClassification:
    @pytest.mark.asyncio
    async def test_backend_failure_is_classified(self, tmp_path: Path) -> None:
        native = AsyncMock()
        native.fetch.side_effect = RuntimeError(
            "fatal: unable to access 'https://h/r.git/': Could not resolve host: h"
        )
        engine = _mocked_engine(native)

        with pytest.raises(NetworkUnreachableError) as exc_info:
            await engine.fetch(tmp_path)

        assert exc_info.value.operation == "fetch"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_credential_never_in_error(self, tmp_path: Path) -> None:
        native = AsyncMock()
        native.push.side_effect = RuntimeError("rejected token super-secret-value")
        engine = _mocked_engine(native)

        with pytest.raises(GitError) as exc_info:
            await engine.push(tmp_path, credential="super-secret-value")

        assert "super-secret-value" not in str(exc_info.value)
        assert "super-secret-value" not in (exc_info.value.detail or "")

    @pytest.mark.asyncio
    async def test_defaults_come_from_config(self, tmp_path: Path) -> None:
        native = AsyncMock()
        engine = _mocked_engine(native)

        await engine.push(tmp_path)

        native.push.assert_awaited_once_with(
            tmp_path, "main", "origin", None, False, False
        )


class TestSafeDirectory:
    @pytest.mark.asyncio
    async def test_failure_is_swallowed(self, tmp_path: Path) -> None:
        native = AsyncMock()
        native.register_safe_directory.side_effect = GitError("config locked")
        engine = _mocked_engine(native)

        await engine.register_safe_directory(tmp_path)

        native.register_safe_directory.assert_awaited_once_with(tmp_path)

    @pytest.mark.asyncio
    async def test_scheduled_in_background(self, tmp_path: Path) -> None:
        native = AsyncMock()
        engine = _mocked_engine(native)

        task = engine.schedule_safe_directory(tmp_path)
        await task

        native.register_safe_directory.assert_awaited_once_with(tmp_path)

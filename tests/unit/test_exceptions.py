"""Tests for the gitsync exception hierarchy."""

from __future__ import annotations

from pathlib import Path

import pytest

from gitsync.exceptions import (
    BranchPreparationError,
    ConfigError,
    GitAuthenticationError,
    GitConflictError,
    GitError,
    GitErrorKind,
    GitNotFoundError,
    GitSyncError,
    MissingRemoteRefError,
    NetworkUnreachableError,
    NotARepositoryError,
    RepositoryStateError,
    RunnerError,
    UncommittedChangesError,
    UnsupportedOperationError,
    WorkingDirectoryError,
)


class TestGitError:
    def test_instantiation_with_message_only(self) -> None:
        error = GitError("Push failed")

        assert error.message == "Push failed"
        assert str(error) == "Push failed"
        assert error.operation is None
        assert error.detail is None
        assert error.kind is GitErrorKind.UNCLASSIFIED

    def test_all_parameters_together(self) -> None:
        error = GitError(
            "Git push failed for 'main'",
            operation="push",
            path=Path("/apps/todo"),
            ref="main",
            detail="! [rejected] main -> main (fetch first)",
        )

        assert error.operation == "push"
        assert error.path == Path("/apps/todo")
        assert error.ref == "main"
        assert error.detail.startswith("! [rejected]")

    def test_is_gitsync_error(self) -> None:
        assert isinstance(GitError("x"), GitSyncError)


@pytest.mark.parametrize(
    ("error_class", "kind"),
    [
        (GitConflictError, GitErrorKind.CONFLICT),
        (MissingRemoteRefError, GitErrorKind.MISSING_REMOTE_REF),
        (GitAuthenticationError, GitErrorKind.UNAUTHORIZED),
        (NetworkUnreachableError, GitErrorKind.NETWORK_UNREACHABLE),
        (UnsupportedOperationError, GitErrorKind.UNSUPPORTED),
        (UncommittedChangesError, GitErrorKind.UNCLASSIFIED),
    ],
)
def test_kinds(error_class: type[GitError], kind: GitErrorKind) -> None:
    error = error_class("boom")

    assert error.kind is kind
    assert isinstance(error, GitError)


class TestConflictErrors:
    def test_conflicted_files_default_empty(self) -> None:
        assert GitConflictError("conflict").conflicted_files == ()

    def test_repository_state_error_is_conflict(self) -> None:
        error = RepositoryStateError(
            "Cannot commit while a merge is in progress.",
            code=RepositoryStateError.MERGE_IN_PROGRESS,
            operation="commit",
        )

        assert isinstance(error, GitConflictError)
        assert error.kind is GitErrorKind.CONFLICT
        assert error.code == "MERGE_IN_PROGRESS"


class TestSpecificErrors:
    def test_unsupported_operation_records_backend(self) -> None:
        error = UnsupportedOperationError(
            "no rebase", operation="rebase", backend="embedded"
        )
        assert error.backend == "embedded"

    def test_branch_preparation_error(self) -> None:
        error = BranchPreparationError(
            "Failed to prepare local branch 'main'",
            branch="main",
            step="creating tracking branch",
            cause_kind=GitErrorKind.NETWORK_UNREACHABLE,
        )

        assert error.operation == "prepare_local_branch"
        assert error.ref == "main"
        assert error.step == "creating tracking branch"
        assert error.cause_kind is GitErrorKind.NETWORK_UNREACHABLE

    def test_not_a_repository(self) -> None:
        error = NotARepositoryError("Not a git repository", path="/tmp/x")
        assert error.operation == "repo_check"
        assert error.path == "/tmp/x"

    def test_git_not_found_default_message(self) -> None:
        assert GitNotFoundError().message == "Git CLI not found"


class TestOtherErrors:
    def test_config_error(self) -> None:
        error = ConfigError("Invalid configuration", field="author.email", value="x")

        assert isinstance(error, GitSyncError)
        assert error.field == "author.email"
        assert error.value == "x"

    def test_working_directory_error(self) -> None:
        error = WorkingDirectoryError("missing", path=Path("/nope"))

        assert isinstance(error, RunnerError)
        assert error.path == Path("/nope")

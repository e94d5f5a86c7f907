"""Native git backend.

Wraps the system ``git`` executable using
:class:`~gitsync.runners.command.CommandRunner` for async-safe subprocess
execution. Every invocation is an explicit argument list; a non-zero exit
status is a failure whose detail is stderr, falling back to stdout.

Commit-creating commands receive the author identity through
``-c user.name=... -c user.email=...``, which sets both author and committer
without consulting the user's global configuration.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

from gitsync.exceptions import (
    GitNotFoundError,
    RunnerError,
    UncommittedChangesError,
)
from gitsync.git.credentials import (
    authenticated_url,
    has_userinfo,
    strip_credentials,
)
from gitsync.git.models import CommitInfo, GitAuthor, GitBackendKind
from gitsync.logging import get_logger
from gitsync.runners.command import CommandRunner
from gitsync.utils.secrets import scrub_secrets

if TYPE_CHECKING:
    from collections.abc import Sequence

    from gitsync.runners.models import CommandResult

__all__ = ["GitCommandFailedError", "NativeGitBackend"]

logger = get_logger(__name__)

#: Default timeout for local git operations (seconds).
GIT_TIMEOUT: float = 120.0

#: Extended timeout for clone / fetch / pull / push (seconds).
GIT_NETWORK_TIMEOUT: float = 600.0

#: Environment for every git invocation: never prompt, never open an editor,
#: and emit untranslated messages so failures can be classified.
GIT_ENV: dict[str, str] = {
    "GIT_TERMINAL_PROMPT": "0",
    "GIT_EDITOR": "true",
    "LC_ALL": "C",
}

#: Field separator and commit delimiter for ``git log`` parsing.
_LOG_FORMAT = "--format=%H%x00%at%x00%B%x00---END-COMMIT---"
_LOG_DELIMITER = "\x00---END-COMMIT---"


class GitCommandFailedError(RunnerError):
    """A git subprocess exited with a non-zero status.

    Attributes:
        message: Human-readable error message.
        command: Git arguments (without the executable), secrets scrubbed.
        returncode: Exit status.
        detail: stderr, falling back to stdout.
    """

    def __init__(
        self,
        message: str,
        command: Sequence[str],
        result: CommandResult,
    ) -> None:
        self.command = list(command)
        self.returncode = result.returncode
        self.detail = result.error_detail
        super().__init__(f"{message}. {self.detail}" if self.detail else message)


def with_git_author(args: Sequence[str], author: GitAuthor) -> list[str]:
    """Prepend ``-c user.name/user.email`` to *args*.

    ``--author`` is deliberately not used: it does not set the committer.

    Example:
        >>> with_git_author(["commit", "-m", "msg"], GitAuthor("a", "a@x"))
        ['-c', 'user.name=a', '-c', 'user.email=a@x', 'commit', '-m', 'msg']
    """
    return [
        "-c",
        f"user.name={author.name}",
        "-c",
        f"user.email={author.email}",
        *args,
    ]


def parse_log_output(output: str) -> list[CommitInfo]:
    """Parse ``git log`` output produced with :data:`_LOG_FORMAT`."""
    output = output.strip()
    if not output:
        return []

    entries: list[CommitInfo] = []
    for chunk in output.split(_LOG_DELIMITER):
        if not chunk.strip():
            continue
        parts = chunk.split("\x00")
        if len(parts) < 3:
            continue
        # The message may itself contain NUL bytes
        message = "\x00".join(parts[2:])
        entries.append(
            CommitInfo(
                oid=parts[0].strip(),
                message=message.rstrip("\n"),
                timestamp=int(parts[1]),
            )
        )
    return entries


def _parse_porcelain_paths(output: str) -> list[str]:
    paths: list[str] = []
    for line in output.splitlines():
        if not line.strip():
            continue
        entry = line[3:].strip()
        # Renames are reported as "old -> new"
        if " -> " in entry:
            entry = entry.split(" -> ", 1)[1]
        paths.append(entry)
    return paths


class NativeGitBackend:
    """Async wrapper around the ``git`` CLI.

    Args:
        git_executable: Name or path of the git binary.
        runner: Optional pre-configured CommandRunner. Created if not provided.
        timeout: Timeout for local operations.
        network_timeout: Timeout for operations that talk to a remote.

    Example:
        ```python
        backend = NativeGitBackend()
        if await backend.is_clean(Path("/apps/todo")):
            await backend.push(Path("/apps/todo"), "main", "origin", None, False, False)
        ```
    """

    def __init__(
        self,
        git_executable: str = "git",
        runner: CommandRunner | None = None,
        timeout: float = GIT_TIMEOUT,
        network_timeout: float = GIT_NETWORK_TIMEOUT,
    ) -> None:
        self._git = git_executable
        self._runner = runner or CommandRunner(timeout=timeout, env=GIT_ENV)
        self._network_timeout = network_timeout
        # Serializes the read-then-add of the global safe.directory list
        self._safe_directory_lock = asyncio.Lock()

    @property
    def kind(self) -> GitBackendKind:
        return GitBackendKind.NATIVE

    # =====================================================================
    # Internal helpers
    # =====================================================================

    async def _exec(
        self,
        args: Sequence[str],
        cwd: Path | None,
        *,
        timeout: float | None = None,
        secrets: tuple[str, ...] = (),
    ) -> CommandResult:
        """Run git and return the raw result, whatever the exit status."""
        result = await self._runner.run(
            [self._git, *args],
            cwd=cwd,
            timeout=timeout,
            scrub_secrets=True,
            secrets=secrets,
        )
        if result.returncode == 127 and result.stderr.startswith("Command not found"):
            raise GitNotFoundError(f"Git CLI not found: {self._git}")
        return result

    async def _run_git(
        self,
        args: Sequence[str],
        cwd: Path | None,
        *,
        error_msg: str | None = None,
        timeout: float | None = None,
        secrets: tuple[str, ...] = (),
    ) -> CommandResult:
        """Run git and raise :class:`GitCommandFailedError` on failure."""
        result = await self._exec(args, cwd, timeout=timeout, secrets=secrets)
        if not result.success:
            shown = _scrub_args(args, secrets)
            raise GitCommandFailedError(
                error_msg or f"Git command failed: git {' '.join(shown)}",
                shown,
                result,
            )
        return result

    async def _remote_target(
        self, path: Path, remote: str, credential: str | None
    ) -> str:
        """Remote name, or the token-bearing URL when a credential is given."""
        if not credential:
            return remote
        url = await self.get_remote_url(path, remote)
        if url is None or has_userinfo(url):
            return remote
        authed = authenticated_url(url, credential)
        return authed if authed != url else remote

    # =====================================================================
    # Repository lifecycle
    # =====================================================================

    async def init(self, path: Path, default_branch: str) -> None:
        path.mkdir(parents=True, exist_ok=True)
        await self._run_git(
            ["init", "-b", default_branch],
            path,
            error_msg=(
                f"Failed to initialize git repository with branch '{default_branch}'"
            ),
        )

    async def clone(
        self,
        path: Path,
        url: str,
        credential: str | None,
        single_branch: bool,
        depth: int | None,
    ) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        args = ["-c", "credential.helper=", "clone"]
        if depth and depth > 0:
            args.extend(["--depth", str(depth)])
        if single_branch:
            args.append("--single-branch")
        clone_url = authenticated_url(url, credential)
        args.extend([clone_url, str(path)])
        await self._run_git(
            args,
            path.parent,
            error_msg="Failed to clone repository",
            timeout=self._network_timeout,
            secrets=(credential or "",),
        )

        # The token is supplied per call afterwards, never kept in .git/config
        stored_url = strip_credentials(clone_url)
        if stored_url != clone_url:
            await self._run_git(
                ["remote", "set-url", "origin", stored_url],
                path,
                error_msg="Failed to store remote URL",
            )

    # =====================================================================
    # Status and history
    # =====================================================================

    async def is_clean(self, path: Path) -> bool:
        result = await self._run_git(
            ["status", "--porcelain"], path, error_msg="Failed to get status"
        )
        return result.stdout.strip() == ""

    async def uncommitted_files(self, path: Path) -> list[str]:
        result = await self._run_git(
            ["-c", "core.quotepath=false", "status", "--porcelain"],
            path,
            error_msg="Failed to get uncommitted files",
        )
        return _parse_porcelain_paths(result.stdout)

    async def current_branch(self, path: Path) -> str | None:
        result = await self._run_git(
            ["branch", "--show-current"],
            path,
            error_msg="Failed to get current branch",
        )
        return result.stdout.strip() or None

    async def resolve_ref(self, path: Path, ref: str) -> str:
        result = await self._run_git(
            ["rev-parse", "--verify", f"{ref}^{{commit}}"],
            path,
            error_msg=f"Failed to resolve ref '{ref}'",
        )
        return result.stdout.strip()

    async def log(self, path: Path, depth: int) -> list[CommitInfo]:
        if depth <= 0:
            return []
        head = await self._exec(["rev-parse", "--verify", "-q", "HEAD"], path)
        if not head.success:
            # Unborn branch: no commits yet
            return []
        result = await self._run_git(
            ["log", "--max-count", str(depth), _LOG_FORMAT, "HEAD"],
            path,
            error_msg="Failed to read log",
        )
        return parse_log_output(result.stdout)

    async def file_at_commit(self, path: Path, filepath: str, oid: str) -> str | None:
        result = await self._exec(["show", f"{oid}:{filepath}"], path)
        if not result.success:
            logger.debug(
                "file_not_at_commit", filepath=filepath, oid=oid, detail=result.error_detail
            )
            return None
        return result.stdout

    async def is_ignored(self, path: Path, filepath: str) -> bool:
        result = await self._exec(["check-ignore", "-q", "--", filepath], path)
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        raise GitCommandFailedError(
            f"Failed to check ignore status of '{filepath}'",
            ["check-ignore", "-q", "--", filepath],
            result,
        )

    # =====================================================================
    # Commits and staging
    # =====================================================================

    async def commit(
        self, path: Path, message: str, amend: bool, author: GitAuthor
    ) -> str:
        args = ["commit", "-m", message]
        if amend:
            args.append("--amend")
        await self._run_git(
            with_git_author(args, author), path, error_msg="Failed to create commit"
        )
        return await self.resolve_ref(path, "HEAD")

    async def add(self, path: Path, filepath: str) -> None:
        await self._run_git(
            ["add", "--", filepath], path, error_msg=f"Failed to stage file '{filepath}'"
        )

    async def add_all(self, path: Path) -> None:
        await self._run_git(["add", "-A"], path, error_msg="Failed to stage all files")

    async def remove(self, path: Path, filepath: str) -> None:
        await self._run_git(
            ["rm", "-f", "--", filepath],
            path,
            error_msg=f"Failed to remove file '{filepath}'",
        )

    async def reset(self, path: Path) -> None:
        await self._run_git(
            ["reset", "--quiet", "HEAD"], path, error_msg="Failed to reset staging area"
        )

    async def revert_to_commit(self, path: Path, target_oid: str) -> None:
        current = await self.resolve_ref(path, "HEAD")
        if current == target_oid:
            return

        if not await self.is_clean(path):
            raise UncommittedChangesError(
                "Cannot revert: working tree has uncommitted changes",
                operation="revert_to_commit",
                path=path,
            )

        # Hard reset to the target, then soft reset back: HEAD is unchanged
        # and the index holds the target tree.
        await self._run_git(
            ["reset", "--hard", target_oid],
            path,
            error_msg=f"Failed to reset to target commit '{target_oid}'",
        )
        await self._run_git(
            ["reset", "--soft", current],
            path,
            error_msg="Failed to reset back to original HEAD",
        )

    # =====================================================================
    # Branches
    # =====================================================================

    async def checkout(self, path: Path, ref: str) -> None:
        # Trailing "--" keeps a ref that shadows a file name unambiguous
        await self._run_git(
            ["checkout", ref, "--"], path, error_msg=f"Failed to checkout ref '{ref}'"
        )

    async def create_branch(
        self, path: Path, name: str, from_ref: str, track: bool
    ) -> None:
        args = ["branch"]
        if track:
            args.append("--track")
        args.extend([name, from_ref])
        await self._run_git(args, path, error_msg=f"Failed to create branch {name}")

    async def set_branch_upstream(self, path: Path, branch: str, remote: str) -> None:
        await self._run_git(
            ["branch", f"--set-upstream-to={remote}/{branch}", branch],
            path,
            error_msg=f"Failed to set upstream of {branch}",
        )

    async def rename_branch(self, path: Path, old: str, new: str) -> None:
        await self._run_git(
            ["branch", "-m", old, new],
            path,
            error_msg=f"Failed to rename branch {old} to {new}",
        )

    async def delete_branch(self, path: Path, name: str) -> None:
        await self._run_git(
            ["branch", "-D", name], path, error_msg=f"Failed to delete branch {name}"
        )

    async def list_local_branches(self, path: Path) -> list[str]:
        return await self._list_refs(path, "refs/heads/")

    async def list_remote_branches(self, path: Path, remote: str) -> list[str]:
        names = await self._list_refs(path, f"refs/remotes/{remote}/")
        return [name for name in names if name != "HEAD"]

    async def _list_refs(self, path: Path, prefix: str) -> list[str]:
        result = await self._run_git(
            ["for-each-ref", "--format=%(refname)", prefix],
            path,
            error_msg=f"Failed to list {prefix}",
        )
        return [
            line.strip()[len(prefix) :]
            for line in result.stdout.splitlines()
            if line.strip().startswith(prefix)
        ]

    # =====================================================================
    # Remotes
    # =====================================================================

    async def set_remote_url(
        self, path: Path, url: str, credential: str | None, remote: str
    ) -> None:
        target = authenticated_url(url, credential)
        secrets = (credential or "",)
        result = await self._exec(["remote", "add", remote, target], path, secrets=secrets)
        if result.success:
            return
        if "already exists" not in result.error_detail:
            raise GitCommandFailedError(
                "Failed to add remote", ["remote", "add", remote], result
            )
        await self._run_git(
            ["remote", "set-url", remote, target],
            path,
            error_msg="Failed to update remote",
            secrets=secrets,
        )

    async def get_remote_url(self, path: Path, remote: str) -> str | None:
        result = await self._exec(["remote", "get-url", remote], path)
        if not result.success:
            return None
        return result.stdout.strip() or None

    async def fetch(self, path: Path, remote: str, credential: str | None) -> None:
        target = await self._remote_target(path, remote, credential)
        args = ["-c", "credential.helper=", "fetch", target]
        if target != remote:
            # Fetching from a URL still updates the remote-tracking refs
            args.append(f"+refs/heads/*:refs/remotes/{remote}/*")
        await self._run_git(
            args,
            path,
            error_msg="Failed to fetch from remote",
            timeout=self._network_timeout,
            secrets=(credential or "",),
        )

    async def pull(
        self,
        path: Path,
        remote: str,
        branch: str,
        credential: str | None,
        author: GitAuthor,
    ) -> None:
        target = await self._remote_target(path, remote, credential)
        args = with_git_author(
            [
                "-c",
                "credential.helper=",
                "pull",
                "--rebase=false",
                "--no-edit",
                target,
                branch,
            ],
            author,
        )
        await self._run_git(
            args,
            path,
            error_msg="Failed to pull from remote",
            timeout=self._network_timeout,
            secrets=(credential or "",),
        )

    async def push(
        self,
        path: Path,
        branch: str,
        remote: str,
        credential: str | None,
        force: bool,
        force_with_lease: bool,
    ) -> None:
        target = await self._remote_target(path, remote, credential)
        args = ["-c", "credential.helper=", "push", target, f"{branch}:{branch}"]
        if force_with_lease:
            args.append(await self._lease_option(path, remote, branch, target))
        elif force:
            args.append("--force")
        await self._run_git(
            args,
            path,
            error_msg="Git push failed",
            timeout=self._network_timeout,
            secrets=(credential or "",),
        )

    async def _lease_option(
        self, path: Path, remote: str, branch: str, target: str
    ) -> str:
        if target == remote:
            return "--force-with-lease"
        # A URL target has no remote-tracking ref of its own: spell out the
        # expected value from the named remote's tracking ref.
        expected = await self._exec(
            ["rev-parse", "--verify", "-q", f"refs/remotes/{remote}/{branch}"], path
        )
        expect = expected.stdout.strip() if expected.success else ""
        return f"--force-with-lease=refs/heads/{branch}:{expect}"

    # =====================================================================
    # Merge and rebase
    # =====================================================================

    async def merge(self, path: Path, branch: str, author: GitAuthor) -> None:
        await self._run_git(
            with_git_author(["merge", "--no-edit", branch], author),
            path,
            error_msg=f"Failed to merge branch {branch}",
        )

    async def merge_abort(self, path: Path) -> None:
        await self._run_git(["merge", "--abort"], path, error_msg="Failed to abort merge")

    async def rebase(
        self, path: Path, onto_branch: str, remote: str, author: GitAuthor
    ) -> None:
        # Rebase replays commits, so the committer identity is required
        await self._run_git(
            with_git_author(["rebase", f"{remote}/{onto_branch}"], author),
            path,
            error_msg=(
                f"Failed to rebase onto {remote}/{onto_branch}. Make sure you have "
                "a clean working directory and the remote branch exists."
            ),
        )

    async def rebase_abort(self, path: Path) -> None:
        await self._run_git(
            ["rebase", "--abort"], path, error_msg="Failed to abort rebase"
        )

    async def rebase_continue(self, path: Path, author: GitAuthor) -> None:
        await self._run_git(
            with_git_author(["rebase", "--continue"], author),
            path,
            error_msg=(
                "Failed to continue rebase. Make sure conflicts are resolved "
                "and changes are staged."
            ),
        )

    async def merge_conflicts(self, path: Path) -> list[str]:
        result = await self._run_git(
            ["-c", "core.quotepath=false", "diff", "--name-only", "--diff-filter=U"],
            path,
            error_msg="Failed to get merge conflicts",
        )
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

    # =====================================================================
    # Global configuration
    # =====================================================================

    async def register_safe_directory(self, directory: Path) -> None:
        """Add *directory* to the global ``safe.directory`` list once.

        Existing entries are read and compared first so repeated calls never
        grow the list; concurrent calls on this backend take turns. Failures
        are logged, never raised.
        """
        async with self._safe_directory_lock:
            await self._add_safe_directory(directory.as_posix())

    async def _add_safe_directory(self, normalized: str) -> None:
        # Exit status 1 just means the key has no values yet
        existing = await self._exec(
            ["config", "--global", "--get-all", "safe.directory"], None
        )
        entries = {
            Path(line.strip()).as_posix()
            for line in existing.stdout.splitlines()
            if line.strip()
        }
        if normalized in entries:
            logger.debug("safe_directory_exists", directory=normalized)
            return

        result = await self._exec(
            ["config", "--global", "--add", "safe.directory", normalized], None
        )
        if not result.success:
            logger.warning(
                "safe_directory_add_failed",
                directory=normalized,
                detail=result.error_detail,
            )
            return
        logger.info("safe_directory_added", directory=normalized)


def _scrub_args(args: Sequence[str], secrets: tuple[str, ...]) -> list[str]:
    return [scrub_secrets(arg, extra=secrets) for arg in args]


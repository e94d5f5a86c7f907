"""Command runner for safe async subprocess execution.

This module provides the CommandRunner class for executing external commands
with timeout handling and proper error management. Commands are always passed
as argument sequences; nothing is ever interpreted by a shell.
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING

from gitsync.exceptions import WorkingDirectoryError
from gitsync.runners.models import CommandResult
from gitsync.utils.secrets import scrub_secrets

if TYPE_CHECKING:
    from collections.abc import Sequence

__all__ = ["CommandRunner"]

# Timeout constants
TERMINATION_GRACE_PERIOD: float = 2.0


class CommandRunner:
    """Execute commands safely with timeout and environment control.

    Provides async command execution with:
    - Timeout handling with graceful termination (SIGTERM + grace period + SIGKILL)
    - Working directory validation
    - Environment variable inheritance and override
    - Duration measurement

    Attributes:
        cwd: Working directory for command execution.
        timeout: Default timeout in seconds (None for no timeout).
        env: Additional environment variables to merge with parent env.

    Example:
        ```python
        runner = CommandRunner(cwd=Path("/project"), timeout=30.0)
        result = await runner.run(["git", "status", "--porcelain"])
        if result.success:
            print(result.stdout)
        ```
    """

    def __init__(
        self,
        cwd: Path | None = None,
        timeout: float | None = 120.0,
        env: dict[str, str] | None = None,
    ) -> None:
        """Initialize the CommandRunner.

        Args:
            cwd: Working directory for commands. If None, uses current directory.
            timeout: Default timeout in seconds. Use None for no timeout.
            env: Additional environment variables to merge with os.environ.
        """
        self._cwd = cwd
        self._timeout = timeout
        self._extra_env = env or {}

    @property
    def cwd(self) -> Path | None:
        """Working directory for command execution."""
        return self._cwd

    @property
    def timeout(self) -> float | None:
        """Default timeout in seconds."""
        return self._timeout

    def _validate_cwd(self, cwd: Path | None) -> None:
        """Validate working directory exists.

        Raises:
            WorkingDirectoryError: If directory does not exist.
        """
        if cwd is not None and not cwd.is_dir():
            raise WorkingDirectoryError(
                f"Working directory does not exist: {cwd}",
                path=cwd,
            )

    def _build_env(self, extra_env: dict[str, str] | None = None) -> dict[str, str]:
        """Build environment by merging parent env with overrides."""
        env = os.environ.copy()
        env.update(self._extra_env)
        if extra_env:
            env.update(extra_env)
        return env

    async def run(
        self,
        command: Sequence[str],
        *,
        cwd: Path | None = None,
        timeout: float | None = None,
        env: dict[str, str] | None = None,
        scrub_secrets: bool = False,
        secrets: tuple[str, ...] = (),
    ) -> CommandResult:
        """Execute a command and return the result.

        A non-zero exit code is *not* raised; callers inspect
        :attr:`CommandResult.success`.

        Args:
            command: Command and arguments as a sequence (no shell expansion).
            cwd: Override working directory for this command.
            timeout: Override timeout. Use 0 or negative for no timeout.
            env: Additional environment variables for this command.
            scrub_secrets: If True, scrub credentials from stdout and stderr.
            secrets: Literal secrets to scrub in addition to known patterns.

        Returns:
            CommandResult with returncode, stdout, stderr, duration_ms, timed_out.

        Raises:
            WorkingDirectoryError: If working directory does not exist.
        """
        effective_cwd = cwd if cwd is not None else self._cwd
        self._validate_cwd(effective_cwd)

        effective_timeout = timeout if timeout is not None else self._timeout
        if effective_timeout is not None and effective_timeout <= 0:
            effective_timeout = None

        result = await self._execute_once(
            command, effective_cwd, effective_timeout, self._build_env(env)
        )

        if scrub_secrets:
            result = CommandResult(
                returncode=result.returncode,
                stdout=_scrub(result.stdout, secrets),
                stderr=_scrub(result.stderr, secrets),
                duration_ms=result.duration_ms,
                timed_out=result.timed_out,
            )
        return result

    async def _execute_once(
        self,
        command: Sequence[str],
        cwd: Path | None,
        timeout: float | None,
        env: dict[str, str],
    ) -> CommandResult:
        """Execute a command once.

        Returns:
            CommandResult with returncode, stdout, stderr, duration_ms, timed_out.
        """
        start_time = time.monotonic()
        timed_out = False
        returncode = 0
        stdout_str = ""
        stderr_str = ""

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=cwd,
                env=env,
            )

            try:
                stdout_bytes, stderr_bytes = await asyncio.wait_for(
                    process.communicate(),
                    timeout=timeout,
                )
                returncode = process.returncode or 0
                stdout_str = stdout_bytes.decode("utf-8", errors="replace")
                stderr_str = stderr_bytes.decode("utf-8", errors="replace")

            except TimeoutError:
                # Graceful termination: SIGTERM first
                timed_out = True
                process.terminate()

                try:
                    await asyncio.wait_for(
                        process.wait(), timeout=TERMINATION_GRACE_PERIOD
                    )
                except TimeoutError:
                    process.kill()
                    await process.wait()

                returncode = -1
                if process.stderr:
                    with contextlib.suppress(TimeoutError, OSError):
                        partial_stderr = await asyncio.wait_for(
                            process.stderr.read(), timeout=0.1
                        )
                        stderr_str = partial_stderr.decode("utf-8", errors="replace")
                if not stderr_str:
                    stderr_str = f"Command timed out after {timeout}s"

        except FileNotFoundError:
            returncode = 127
            stderr_str = f"Command not found: {command[0]}"
        except PermissionError:
            returncode = 126
            stderr_str = f"Permission denied: {command[0]}"

        duration_ms = int((time.monotonic() - start_time) * 1000)

        return CommandResult(
            returncode=returncode,
            stdout=stdout_str,
            stderr=stderr_str,
            duration_ms=duration_ms,
            timed_out=timed_out,
        )


def _scrub(text: str, secrets: tuple[str, ...]) -> str:
    return scrub_secrets(text, extra=secrets)

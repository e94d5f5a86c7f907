"""CLI context and utilities for gitsync.

Context management, exit codes, and the bridge from Click's synchronous
interface to the async engine.
"""

from __future__ import annotations

import asyncio
import functools
from collections.abc import Callable
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Any, NoReturn, TypeVar

import click

from gitsync.cli.output import format_error
from gitsync.config import GitSyncConfig
from gitsync.exceptions import GitError, GitSyncError
from gitsync.git.engine import GitEngine

__all__ = [
    "CLIContext",
    "ExitCode",
    "async_command",
    "fail",
    "get_cli_context",
]


class ExitCode(IntEnum):
    """Standard exit codes for the gitsync CLI.

    - 0 for success
    - 1 for failure
    - 130 for keyboard interrupt (128 + SIGINT=2)
    """

    SUCCESS = 0
    FAILURE = 1
    INTERRUPTED = 130


@dataclass(frozen=True, slots=True)
class CLIContext:
    """Type-safe CLI context containing global options and configuration.

    Attributes:
        config: Loaded configuration (backend flag already applied).
        config_path: Path to config file (if specified via --config).
        verbosity: Verbosity level (0=default, 1=INFO, 2+=DEBUG).
    """

    config: GitSyncConfig
    config_path: Path | None = None
    verbosity: int = 0

    def engine(self) -> GitEngine:
        return GitEngine(self.config)


def get_cli_context(ctx: click.Context) -> CLIContext:
    cli_ctx: CLIContext = ctx.obj["cli_ctx"]
    return cli_ctx


def fail(error: GitSyncError) -> NoReturn:
    """Report *error* on stderr and exit with :attr:`ExitCode.FAILURE`."""
    details: list[str] = []
    if isinstance(error, GitError):
        details.append(f"kind: {error.kind.value}")
        if error.operation:
            details.append(f"operation: {error.operation}")
    click.echo(format_error(error.message, details=details), err=True)
    raise SystemExit(ExitCode.FAILURE)


F = TypeVar("F", bound=Callable[..., Any])


def async_command(f: F) -> F:
    """Decorator to run async Click commands with asyncio.run().

    Example:
        >>> @cli.command()
        >>> @async_command
        >>> async def push(ctx: click.Context, path: Path) -> None:
        >>>     await push_to_remote(...)
    """

    @functools.wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return asyncio.run(f(*args, **kwargs))
        except KeyboardInterrupt:
            raise SystemExit(ExitCode.INTERRUPTED) from None

    return wrapper  # type: ignore[return-value]

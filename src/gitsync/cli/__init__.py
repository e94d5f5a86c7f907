"""CLI utilities for gitsync."""

from __future__ import annotations

from gitsync.cli.context import CLIContext, ExitCode, async_command
from gitsync.cli.output import OutputFormat

__all__ = [
    "CLIContext",
    "ExitCode",
    "OutputFormat",
    "async_command",
]

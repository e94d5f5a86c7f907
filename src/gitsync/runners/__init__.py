"""Async subprocess execution used by the native git backend."""

from __future__ import annotations

from gitsync.runners.command import CommandRunner
from gitsync.runners.models import CommandResult

__all__ = [
    "CommandResult",
    "CommandRunner",
]

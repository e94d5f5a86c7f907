"""``gitsync safe-directory`` command."""

from __future__ import annotations

from pathlib import Path

import click

from gitsync.cli.commands._options import repo_path_argument
from gitsync.cli.context import async_command, get_cli_context


@click.command("safe-directory")
@repo_path_argument
@click.pass_context
@async_command
async def safe_directory(ctx: click.Context, path: Path) -> None:
    """Add PATH to git's global safe.directory list (once)."""
    engine = get_cli_context(ctx).engine()
    await engine.register_safe_directory(path.resolve())
    click.echo(path.resolve().as_posix())

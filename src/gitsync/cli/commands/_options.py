"""Options shared by several commands."""

from __future__ import annotations

from pathlib import Path

import click

#: Repository path argument; resolved to an absolute path by the commands.
repo_path_argument = click.argument(
    "path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
)

format_option = click.option(
    "-f",
    "--format",
    "fmt",
    type=click.Choice(["text", "json"]),
    default="text",
    help="Output format.",
)

token_option = click.option(
    "--token",
    envvar="GITSYNC_TOKEN",
    default=None,
    help="Access token for the remote (or GITSYNC_TOKEN).",
)

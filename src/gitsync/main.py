"""CLI entry point for gitsync.

This module defines the Click-based command-line interface for gitsync.
"""

from __future__ import annotations

import logging
from pathlib import Path

import click
from dotenv import load_dotenv

from gitsync import __version__
from gitsync.cli.commands.repo import branches, log, state, status
from gitsync.cli.commands.safe_directory import safe_directory
from gitsync.cli.commands.sync import prepare_branch, push
from gitsync.cli.context import CLIContext, ExitCode
from gitsync.config import load_config
from gitsync.exceptions import ConfigError
from gitsync.logging import configure_logging

# GITSYNC_* settings may live in a .env file in the current directory
load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="gitsync")
@click.option(
    "-c",
    "--config",
    "config_file",
    type=click.Path(exists=False, path_type=str),
    default=None,
    help="Path to config file (overrides ./gitsync.yaml).",
)
@click.option(
    "-v",
    "--verbose",
    count=True,
    help="Increase verbosity (-v for INFO, -vv for DEBUG).",
)
@click.option(
    "--native/--embedded",
    "native",
    default=None,
    help="Force the git backend (default: enable_native_git setting).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config_file: str | None,
    verbose: int,
    native: bool | None,
) -> None:
    """gitsync - keep local repositories in sync with git remotes."""
    ctx.ensure_object(dict)

    config_path = Path(config_file) if config_file else None
    try:
        config = load_config(config_path)
        if native is not None:
            config.enable_native_git = native
    except ConfigError as e:
        error_parts = [f"Error: {e.message}"]
        if e.field:
            error_parts.append(f"  Field: {e.field}")
        if e.value is not None:
            error_parts.append(f"  Value: {e.value}")
        click.echo("\n".join(error_parts), err=True)
        ctx.exit(ExitCode.FAILURE)

    ctx.obj["cli_ctx"] = CLIContext(
        config=config,
        config_path=config_path,
        verbosity=verbose,
    )

    # Priority: verbose flag > config
    verbosity_map = {
        "error": logging.ERROR,
        "warning": logging.WARNING,
        "info": logging.INFO,
        "debug": logging.DEBUG,
    }
    if verbose > 0:
        level = logging.INFO if verbose == 1 else logging.DEBUG
    else:
        level = verbosity_map.get(config.verbosity, logging.WARNING)
    configure_logging(level=level)

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


cli.add_command(state)
cli.add_command(status)
cli.add_command(log)
cli.add_command(branches)
cli.add_command(prepare_branch)
cli.add_command(push)
cli.add_command(safe_directory)

if __name__ == "__main__":
    cli()

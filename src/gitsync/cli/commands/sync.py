"""Commands that talk to the remote: prepare-branch, push."""

from __future__ import annotations

from pathlib import Path

import click

from gitsync.cli.commands._options import repo_path_argument, token_option
from gitsync.cli.context import async_command, fail, get_cli_context
from gitsync.cli.output import format_success
from gitsync.exceptions import GitSyncError
from gitsync.git.branches import prepare_local_branch
from gitsync.git.sync import push_to_remote
from gitsync.logging import bind_context


@click.command("prepare-branch")
@repo_path_argument
@click.option("-b", "--branch", default=None, help="Target branch (default: main).")
@click.option("--remote-url", default=None, help="Set origin to this URL first.")
@token_option
@click.pass_context
@async_command
async def prepare_branch(
    ctx: click.Context,
    path: Path,
    branch: str | None,
    remote_url: str | None,
    token: str | None,
) -> None:
    """Check out BRANCH, creating or tracking it as needed.

    Examples:
        gitsync prepare-branch ./my-app --branch main
        gitsync prepare-branch ./my-app --remote-url https://github.com/o/r.git
    """
    engine = get_cli_context(ctx).engine()
    path = path.resolve()
    bind_context(repo=str(path))
    try:
        await prepare_local_branch(
            engine,
            repo_key=str(path),
            path=path,
            branch=branch,
            remote_url=remote_url,
            credential=token,
        )
        current = await engine.current_branch(path)
    except GitSyncError as e:
        fail(e)

    click.echo(format_success(f"On branch {current}"))


@click.command()
@repo_path_argument
@click.option("-b", "--branch", default=None, help="Branch to push (default: main).")
@click.option("--remote-url", default=None, help="Set origin to this URL first.")
@token_option
@click.option("--force", is_flag=True, default=False, help="Overwrite the remote branch.")
@click.option(
    "--force-with-lease",
    is_flag=True,
    default=False,
    help="Overwrite only if the remote branch is unchanged (native backend).",
)
@click.pass_context
@async_command
async def push(
    ctx: click.Context,
    path: Path,
    branch: str | None,
    remote_url: str | None,
    token: str | None,
    force: bool,
    force_with_lease: bool,
) -> None:
    """Pull (unless forcing) and push BRANCH to origin."""
    engine = get_cli_context(ctx).engine()
    path = path.resolve()
    bind_context(repo=str(path))
    try:
        await push_to_remote(
            engine,
            repo_key=str(path),
            path=path,
            branch=branch,
            remote_url=remote_url,
            credential=token,
            force=force,
            force_with_lease=force_with_lease,
        )
    except GitSyncError as e:
        fail(e)

    click.echo(format_success(f"Pushed {branch or engine.config.default_branch}"))

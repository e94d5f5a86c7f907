"""Read-only repository commands: state, status, log, branches."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import click
from rich.table import Table

from gitsync.cli.commands._options import format_option, repo_path_argument
from gitsync.cli.console import console
from gitsync.cli.context import async_command, fail, get_cli_context
from gitsync.cli.output import format_json
from gitsync.exceptions import GitSyncError
from gitsync.git.credentials import redact_url
from gitsync.git.sync import get_git_state


@click.command()
@repo_path_argument
@format_option
def state(path: Path, fmt: str) -> None:
    """Report whether a merge or rebase is in progress.

    Examples:
        gitsync state ./my-app
        gitsync state ./my-app --format json
    """
    snapshot = get_git_state(path.resolve())
    if fmt == "json":
        click.echo(
            format_json(
                {
                    "merge_in_progress": snapshot.merge_in_progress,
                    "rebase_in_progress": snapshot.rebase_in_progress,
                }
            )
        )
        return
    click.echo(f"merge in progress:  {'yes' if snapshot.merge_in_progress else 'no'}")
    click.echo(f"rebase in progress: {'yes' if snapshot.rebase_in_progress else 'no'}")


@click.command()
@repo_path_argument
@format_option
@click.pass_context
@async_command
async def status(ctx: click.Context, path: Path, fmt: str) -> None:
    """Show branch, backend, remote and uncommitted files."""
    engine = get_cli_context(ctx).engine()
    path = path.resolve()
    try:
        branch = await engine.current_branch(path)
        files = await engine.uncommitted_files(path)
        remote = await engine.get_remote_url(path)
    except GitSyncError as e:
        fail(e)

    state_value = (await engine.repository_state(path)).value

    if fmt == "json":
        click.echo(
            format_json(
                {
                    "branch": branch,
                    "backend": engine.backend_kind.value,
                    "remote": redact_url(remote),
                    "state": state_value,
                    "clean": not files,
                    "uncommitted_files": files,
                }
            )
        )
        return

    table = Table(show_header=False, show_lines=False, padding=(0, 2))
    table.add_column("Key", style="bold")
    table.add_column("Value")
    table.add_row("Branch", branch or "(detached HEAD)")
    table.add_row("Backend", engine.backend_kind.value)
    table.add_row("Remote", redact_url(remote) or "(none)")
    table.add_row("State", state_value)
    table.add_row("Clean", "yes" if not files else f"no ({len(files)} files)")
    console.print(table)
    for name in files:
        click.echo(f"  {name}")


@click.command()
@repo_path_argument
@click.option("-n", "--max-count", type=int, default=None, help="Limit entries.")
@format_option
@click.pass_context
@async_command
async def log(ctx: click.Context, path: Path, max_count: int | None, fmt: str) -> None:
    """List commits reachable from HEAD, newest first."""
    engine = get_cli_context(ctx).engine()
    try:
        entries = await engine.log(path.resolve(), depth=max_count)
    except GitSyncError as e:
        fail(e)

    if fmt == "json":
        click.echo(
            format_json(
                [
                    {"oid": c.oid, "message": c.message, "timestamp": c.timestamp}
                    for c in entries
                ]
            )
        )
        return

    table = Table()
    table.add_column("Commit", style="yellow")
    table.add_column("Date")
    table.add_column("Subject")
    for commit in entries:
        when = datetime.fromtimestamp(commit.timestamp, tz=timezone.utc)
        table.add_row(commit.oid[:12], when.strftime("%Y-%m-%d %H:%M"), commit.subject)
    console.print(table)


@click.command()
@repo_path_argument
@click.option("-r", "--remote", "show_remote", is_flag=True, help="List remote branches.")
@format_option
@click.pass_context
@async_command
async def branches(ctx: click.Context, path: Path, show_remote: bool, fmt: str) -> None:
    """List local (or remote-tracking) branches."""
    engine = get_cli_context(ctx).engine()
    path = path.resolve()
    try:
        if show_remote:
            names = await engine.list_remote_branches(path)
            current = None
        else:
            names = await engine.list_local_branches(path)
            current = await engine.current_branch(path)
    except GitSyncError as e:
        fail(e)

    if fmt == "json":
        click.echo(format_json({"branches": names, "current": current}))
        return
    for name in names:
        click.echo(f"{'*' if name == current else ' '} {name}")

"""
CLI entry point for fork_syncer.

Syncs your custom main with upstream via the tracking fork branch.
"""

import os
import signal
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape

from . import __version__
from .config import resolve_config
from .errors import InvalidArgument, PublishFailed, SyncError
from .git_ops import CommandRunner, GitRepository, console
from .syncer import sync_repository

err_console = Console(stderr=True, soft_wrap=True, highlight=False)

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}

EPILOG = (
    "Environment overrides: STRATEGY, PUSH, ORIGIN, UPSTREAM, MAIN_BRANCH, "
    "FORK_BRANCH, DRY_RUN. Flags take precedence over the environment."
)


def _raise_interrupt(signum, frame):
    raise KeyboardInterrupt


@contextmanager
def terminate_as_interrupt() -> Iterator[None]:
    """Turn SIGTERM into KeyboardInterrupt so cleanup still runs."""
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.signal(signal.SIGTERM, _raise_interrupt)
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


@click.command(context_settings=CONTEXT_SETTINGS, epilog=EPILOG)
@click.option(
    "--strategy",
    type=str,
    default=None,
    metavar="[rebase|merge]",
    help="How to integrate upstream into main (default: rebase)",
)
@click.option(
    "--push/--no-push",
    "push",
    default=None,
    help="Push main to origin after update (default: push)",
)
@click.option("--origin", default=None, metavar="NAME", help="Name of your remote (default: origin)")
@click.option(
    "--upstream",
    default=None,
    metavar="NAME",
    help="Name of the upstream remote (default: upstream)",
)
@click.option(
    "--main",
    "main_branch",
    default=None,
    metavar="NAME",
    help="Your custom branch (default: main)",
)
@click.option(
    "--fork",
    "fork_branch",
    default=None,
    metavar="NAME",
    help="Local mirror of upstream main (default: fork)",
)
@click.option("--dry-run", is_flag=True, help="Print commands without executing")
@click.option(
    "--show-config",
    is_flag=True,
    help="Print the resolved configuration as YAML and exit",
)
@click.version_option(version=__version__, prog_name="fork-syncer")
def cli(
    strategy: str | None,
    push: bool | None,
    origin: str | None,
    upstream: str | None,
    main_branch: str | None,
    fork_branch: str | None,
    dry_run: bool,
    show_config: bool,
):
    """Sync your custom main with upstream via the tracking fork branch.

    Mirrors UPSTREAM/MAIN into the fork branch, updates main from fork by
    rebase or merge, then pushes main to origin.
    """
    try:
        config = resolve_config(
            {
                "strategy": strategy,
                "push": push,
                "origin_remote": origin,
                "upstream_remote": upstream,
                "main_branch": main_branch,
                "fork_branch": fork_branch,
                "dry_run": True if dry_run else None,
            },
            os.environ,
        )
    except InvalidArgument as e:
        raise click.UsageError(str(e)) from e

    if show_config:
        console.print(config.to_yaml(), markup=False, end="")
        return

    try:
        with terminate_as_interrupt():
            runner = CommandRunner(dry_run=config.dry_run)
            repo = GitRepository(Path.cwd(), runner)
            sync_repository(repo, config)
    except PublishFailed as e:
        err_console.print(f"[red]Push failed: {escape(str(e))}[/red]")
        err_console.print("[yellow]Local branches are updated; only publishing failed.[/yellow]")
        raise SystemExit(e.exit_code)
    except SyncError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise SystemExit(e.exit_code)
    except KeyboardInterrupt:
        err_console.print("[red]Interrupted.[/red]")
        raise SystemExit(1)


if __name__ == "__main__":
    cli()

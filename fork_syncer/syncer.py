"""
Main syncer logic.

Runs the fixed sequence of sync steps: fetch both remotes, mirror the
upstream main branch into the fork branch, integrate the fork branch into
main, and push main to origin. Any failure aborts the remaining steps.
"""

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from .cleanup import restore_original_branch, unfinished_operation
from .config import SyncConfig
from .errors import CommandFailed, IntegrationConflict, PublishFailed
from .git_ops import RepositoryHandle, console, msg
from .guard import check_preconditions


class SyncStep(Enum):
    """Steps of a sync run, in the order they run."""

    FETCH_REMOTES = "fetch-remotes"
    MIRROR_FORK = "mirror-fork"
    INTEGRATE_MAIN = "integrate-main"
    PUBLISH_MAIN = "publish-main"


@dataclass
class SyncResult:
    """Result of a sync run."""

    dry_run: bool
    completed_steps: list[SyncStep] = field(default_factory=list)
    pushed: bool = False
    fork_tip: str | None = None
    main_tip: str | None = None
    commits_ahead: int = 0
    commands: list[str] = field(default_factory=list)


class BranchSynchronizer:
    """Brings the fork and main branches up to date with upstream."""

    def __init__(self, repo: RepositoryHandle, config: SyncConfig):
        self.repo = repo
        self.config = config

    def steps(self) -> list[tuple[SyncStep, Callable[[], None]]]:
        return [
            (SyncStep.FETCH_REMOTES, self.fetch_remotes),
            (SyncStep.MIRROR_FORK, self.mirror_fork),
            (SyncStep.INTEGRATE_MAIN, self.integrate_main),
            (SyncStep.PUBLISH_MAIN, self.publish_main),
        ]

    def run(self) -> SyncResult:
        """
        Perform the synchronization.

        Returns:
            SyncResult describing the finished run

        Raises:
            CommandFailed: if any step fails; later steps do not run.
        """
        result = SyncResult(dry_run=self.config.dry_run)
        if self.config.dry_run:
            console.print("[yellow]DRY RUN - No changes will be made[/yellow]")

        for step, action in self.steps():
            if step is SyncStep.PUBLISH_MAIN and not self.config.push:
                msg("Skipping push (use --push to enable)")
                continue
            action()
            result.completed_steps.append(step)

        result.pushed = SyncStep.PUBLISH_MAIN in result.completed_steps
        result.fork_tip = self.repo.resolve(self.config.fork_branch)
        result.main_tip = self.repo.resolve(self.config.main_branch)
        result.commits_ahead = self.repo.count_commits(self.config.fork_branch, self.config.main_branch)
        result.commands = [outcome.display for outcome in self.repo.runner.history]

        self._print_summary(result)
        return result

    def fetch_remotes(self) -> None:
        cfg = self.config
        msg(f"Fetching remotes ({cfg.upstream_remote}, {cfg.origin_remote})")
        self.repo.fetch(cfg.upstream_remote)
        self.repo.fetch(cfg.origin_remote)

    def mirror_fork(self) -> None:
        """Make the fork branch an exact copy of the upstream main branch."""
        cfg = self.config
        if self.repo.branch_exists(cfg.fork_branch):
            msg(f"Updating '{cfg.fork_branch}' to {cfg.upstream_ref}")
            self.repo.checkout(cfg.fork_branch)
        else:
            msg(f"Creating '{cfg.fork_branch}' from {cfg.upstream_ref}")
            self.repo.create_branch(cfg.fork_branch, cfg.upstream_ref)
        # Reset even when already in sync, so earlier drift never survives
        self.repo.reset_hard(cfg.upstream_ref)

    def integrate_main(self) -> None:
        """Bring the fork branch into main using the configured strategy."""
        cfg = self.config
        msg(f"Updating '{cfg.main_branch}' from '{cfg.fork_branch}' via {cfg.strategy}")
        self.repo.checkout(cfg.main_branch)

        # fork equals upstream_ref after the reset, which a dry run never performs
        try:
            if cfg.strategy == "rebase":
                self.repo.rebase(cfg.fork_branch)
            elif self.repo.is_ancestor(cfg.main_branch, cfg.upstream_ref):
                self.repo.merge(cfg.fork_branch, fast_forward_only=True)
            else:
                self.repo.merge(cfg.fork_branch, fast_forward_only=False)
        except CommandFailed as e:
            if unfinished_operation(self.repo) is not None:
                raise IntegrationConflict(e.command, e.exit_status, e.stderr) from e
            raise

    def publish_main(self) -> None:
        cfg = self.config
        msg(f"Pushing '{cfg.main_branch}' to {cfg.origin_remote}")
        try:
            self.repo.push(cfg.origin_remote, cfg.main_branch)
        except CommandFailed as e:
            raise PublishFailed(e.command, e.exit_status, e.stderr) from e

    def _print_summary(self, result: SyncResult) -> None:
        """Print sync summary."""
        console.print("\n[bold]Sync Summary:[/bold]")
        prefix = "[DRY RUN] " if result.dry_run else ""

        console.print(f"  [green]✓ {prefix}Sync complete[/green]")
        if result.fork_tip:
            console.print(f"  {self.config.fork_branch}: {result.fork_tip[:8]}", markup=False)
        if result.main_tip:
            console.print(
                f"  {self.config.main_branch}: {result.main_tip[:8]} "
                f"({result.commits_ahead} commits on top of {self.config.fork_branch})",
                markup=False,
            )
        if result.pushed:
            console.print(f"  Pushed to: {self.config.origin_remote}", markup=False)
        else:
            console.print("  Pushed: no", markup=False)
        if result.dry_run:
            console.print(f"  Planned commands: {len(result.commands)}", markup=False)


def sync_repository(repo: RepositoryHandle, config: SyncConfig) -> SyncResult:
    """
    Check preconditions, then sync with the original branch restored on exit.
    """
    state = check_preconditions(repo, config)
    with restore_original_branch(repo, state):
        return BranchSynchronizer(repo, config).run()

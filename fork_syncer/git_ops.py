"""
Git operations for the syncer.

Every command that changes the repository goes through ``CommandRunner``,
which either executes it or, in dry-run mode, only prints it. Reads are
served directly by GitPython and never change anything.
"""

import shlex
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from git import Git, Repo
from git.exc import BadName, BadObject, GitCommandError, InvalidGitRepositoryError, NoSuchPathError
from rich.console import Console
from rich.markup import escape

from .errors import CommandFailed, NotARepository

console = Console(soft_wrap=True, highlight=False)


def msg(text: str) -> None:
    """Print a progress message."""
    console.print(f"[bold blue]\\[sync][/bold blue] {escape(text)}")


def warn(text: str) -> None:
    console.print(f"[yellow]\\[sync] {escape(text)}[/yellow]")


# (exit status, stdout, stderr)
Executor = Callable[[list[str]], tuple[int, str, str]]


@dataclass
class CommandOutcome:
    """Result of a command passed through the runner."""

    command: list[str]
    exit_status: int
    stdout: str = ""
    stderr: str = ""
    executed: bool = True

    @property
    def display(self) -> str:
        return shlex.join(self.command)


class CommandRunner:
    """Single chokepoint for commands that change the repository."""

    def __init__(
        self,
        working_dir: Path | None = None,
        dry_run: bool = False,
        execute: Executor | None = None,
    ):
        self.working_dir = working_dir
        self.dry_run = dry_run
        self._execute = execute or self._execute_git
        self.history: list[CommandOutcome] = []

    def _execute_git(self, command: list[str]) -> tuple[int, str, str]:
        status, stdout, stderr = Git(self.working_dir).execute(
            command,
            with_extended_output=True,
            with_exceptions=False,
        )
        return status, stdout, stderr

    def run(self, command: Sequence[str]) -> CommandOutcome:
        """
        Echo a command and execute it unless this is a dry run.

        Raises:
            CommandFailed: if the command exits with a non-zero status.
        """
        command = list(command)
        console.print(f"+ {shlex.join(command)}", markup=False)

        if self.dry_run:
            outcome = CommandOutcome(command=command, exit_status=0, executed=False)
            self.history.append(outcome)
            return outcome

        status, stdout, stderr = self._execute(command)
        outcome = CommandOutcome(command=command, exit_status=status, stdout=stdout, stderr=stderr)
        self.history.append(outcome)

        if stdout:
            console.print(stdout, markup=False, style="dim")
        if status != 0:
            raise CommandFailed(command, status, stderr.strip())
        if stderr:
            # git reports progress and branch switches on stderr
            console.print(stderr, markup=False, style="dim")
        return outcome


class RepositoryHandle(Protocol):
    """Operations the synchronizer needs from a repository."""

    runner: CommandRunner
    path: Path  # working tree root

    # Reads
    def current_branch(self) -> str | None: ...
    def head_commit(self) -> str: ...
    def has_commits(self) -> bool: ...
    def resolve(self, ref: str) -> str | None: ...
    def is_dirty(self) -> bool: ...
    def has_remote(self, name: str) -> bool: ...
    def branch_exists(self, name: str) -> bool: ...
    def is_ancestor(self, ancestor: str, descendant: str) -> bool: ...
    def count_commits(self, base: str, tip: str) -> int: ...
    def rebase_in_progress(self) -> bool: ...
    def merge_in_progress(self) -> bool: ...

    # Mutations, all routed through ``runner``
    def fetch(self, remote: str) -> CommandOutcome: ...
    def checkout(self, target: str, quiet: bool = False) -> CommandOutcome: ...
    def create_branch(self, name: str, start_point: str) -> CommandOutcome: ...
    def reset_hard(self, ref: str) -> CommandOutcome: ...
    def rebase(self, onto: str) -> CommandOutcome: ...
    def merge(self, ref: str, fast_forward_only: bool) -> CommandOutcome: ...
    def push(self, remote: str, branch: str) -> CommandOutcome: ...


class GitCommands:
    """Builds the mutating git command lines and hands them to the runner."""

    runner: CommandRunner

    def fetch(self, remote: str) -> CommandOutcome:
        return self.runner.run(["git", "fetch", remote, "--prune"])

    def checkout(self, target: str, quiet: bool = False) -> CommandOutcome:
        if quiet:
            return self.runner.run(["git", "checkout", "-q", target])
        return self.runner.run(["git", "checkout", target])

    def create_branch(self, name: str, start_point: str) -> CommandOutcome:
        return self.runner.run(["git", "checkout", "-b", name, start_point])

    def reset_hard(self, ref: str) -> CommandOutcome:
        return self.runner.run(["git", "reset", "--hard", ref])

    def rebase(self, onto: str) -> CommandOutcome:
        return self.runner.run(["git", "rebase", onto])

    def merge(self, ref: str, fast_forward_only: bool) -> CommandOutcome:
        if fast_forward_only:
            return self.runner.run(["git", "merge", "--ff-only", ref])
        # --no-edit keeps the merge non-interactive
        return self.runner.run(["git", "merge", "--no-ff", ref, "--no-edit"])

    def push(self, remote: str, branch: str) -> CommandOutcome:
        return self.runner.run(["git", "push", remote, branch])


class GitRepository(GitCommands):
    """Wrapper around the working tree being synchronized."""

    def __init__(self, path: Path, runner: CommandRunner | None = None):
        """Open the repository containing ``path``."""
        try:
            self.repo = Repo(Path(path).resolve(), search_parent_directories=True)
        except (InvalidGitRepositoryError, NoSuchPathError) as e:
            raise NotARepository("Not a git repository. Run from within the repo root.") from e
        if self.repo.bare or self.repo.working_tree_dir is None:
            raise NotARepository(f"Not a git working tree: {self.repo.git_dir}")

        self.path = Path(self.repo.working_tree_dir)
        self.runner = runner or CommandRunner(self.path)
        if self.runner.working_dir is None:
            self.runner.working_dir = self.path

    @property
    def git_dir(self) -> Path:
        return Path(self.repo.git_dir)

    def current_branch(self) -> str | None:
        """Get the current branch name, or None when HEAD is detached."""
        if self.repo.head.is_detached:
            return None
        return self.repo.active_branch.name

    def head_commit(self) -> str:
        """Get the current HEAD commit hash."""
        return self.repo.head.commit.hexsha

    def has_commits(self) -> bool:
        return self.repo.head.is_valid()

    def resolve(self, ref: str) -> str | None:
        """Resolve a ref to a commit hash, or None if it does not exist."""
        try:
            return self.repo.commit(ref).hexsha
        except (BadName, BadObject, GitCommandError, ValueError):
            return None

    def is_dirty(self) -> bool:
        """Check for staged or unstaged changes to tracked files."""
        return self.repo.is_dirty(index=True, working_tree=True, untracked_files=False)

    def has_remote(self, name: str) -> bool:
        return any(remote.name == name for remote in self.repo.remotes)

    def branch_exists(self, name: str) -> bool:
        return name in [head.name for head in self.repo.heads]

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        """Check whether ``ancestor`` is reachable from ``descendant``."""
        if self.resolve(ancestor) is None or self.resolve(descendant) is None:
            return False
        return self.repo.is_ancestor(ancestor, descendant)

    def count_commits(self, base: str, tip: str) -> int:
        """Count commits reachable from ``tip`` but not from ``base``."""
        if self.resolve(base) is None or self.resolve(tip) is None:
            return 0
        return int(self.repo.git.rev_list("--count", f"{base}..{tip}"))

    def rebase_in_progress(self) -> bool:
        return (self.git_dir / "rebase-merge").is_dir() or (self.git_dir / "rebase-apply").is_dir()

    def merge_in_progress(self) -> bool:
        return (self.git_dir / "MERGE_HEAD").is_file()

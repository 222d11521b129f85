"""
Precondition checks run before anything is changed.
"""

from dataclasses import dataclass
from pathlib import Path

from .config import SyncConfig
from .errors import DirtyWorkingTree, MissingRemote, PreconditionFailure
from .git_ops import RepositoryHandle, msg


@dataclass(frozen=True)
class RepositoryState:
    """Where the repository stood when the run started."""

    original_branch: str | None  # None when HEAD was detached
    original_commit: str
    working_dir: Path

    @property
    def original_target(self) -> str:
        """What to check out to get back to the starting point."""
        return self.original_branch or self.original_commit

    @property
    def label(self) -> str:
        if self.original_branch:
            return self.original_branch
        return f"detached HEAD at {self.original_commit[:8]}"


def check_preconditions(repo: RepositoryHandle, config: SyncConfig) -> RepositoryState:
    """
    Verify the repository can be synced and capture its starting point.

    Raises:
        PreconditionFailure: if the repository has no commits yet.
        DirtyWorkingTree: if tracked files have staged or unstaged changes.
        MissingRemote: if the upstream or origin remote is not registered.
    """
    if not repo.has_commits():
        raise PreconditionFailure("Repository has no commits yet; nothing to sync.")

    if repo.is_dirty():
        raise DirtyWorkingTree()

    for remote in (config.upstream_remote, config.origin_remote):
        if not repo.has_remote(remote):
            raise MissingRemote(remote)

    state = RepositoryState(
        original_branch=repo.current_branch(),
        original_commit=repo.head_commit(),
        working_dir=repo.path,
    )
    msg(f"Starting on branch: {state.label}")
    return state

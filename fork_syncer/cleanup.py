"""
Restores the branch the run started on once the run is over.

The restore is skipped while a rebase or merge is unfinished: switching
branches then would throw away the operator's conflict resolution.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum

from .errors import CommandFailed
from .git_ops import RepositoryHandle, msg, warn
from .guard import RepositoryState


class ExitAction(Enum):
    """What the cleanup does at the end of a run."""

    NO_OP = "no-op"
    RESTORE_ORIGINAL_BRANCH = "restore-original-branch"


class NoOpReason(Enum):
    """Why the cleanup leaves HEAD where it is."""

    UNFINISHED_REBASE = "rebase"
    UNFINISHED_MERGE = "merge"
    ALREADY_AT_ORIGINAL = "already-at-original"


@dataclass(frozen=True)
class ExitPlan:
    action: ExitAction
    reason: NoOpReason | None = None


def unfinished_operation(repo: RepositoryHandle) -> str | None:
    """Name the rebase or merge left in progress, if any."""
    if repo.rebase_in_progress():
        return "rebase"
    if repo.merge_in_progress():
        return "merge"
    return None


def is_at_original(repo: RepositoryHandle, state: RepositoryState) -> bool:
    current = repo.current_branch()
    if state.original_branch is not None:
        return current == state.original_branch
    return current is None and repo.head_commit() == state.original_commit


def plan_exit_action(repo: RepositoryHandle, state: RepositoryState) -> ExitPlan:
    operation = unfinished_operation(repo)
    if operation is not None:
        return ExitPlan(ExitAction.NO_OP, NoOpReason(operation))
    if is_at_original(repo, state):
        return ExitPlan(ExitAction.NO_OP, NoOpReason.ALREADY_AT_ORIGINAL)
    return ExitPlan(ExitAction.RESTORE_ORIGINAL_BRANCH)


def finalize(repo: RepositoryHandle, state: RepositoryState) -> ExitPlan:
    """
    Switch back to the original branch when it is safe to do so.

    A failed switch is reported and otherwise ignored, so the outcome of
    the run decides the exit status, not the cleanup.
    """
    plan = plan_exit_action(repo, state)

    if plan.reason in (NoOpReason.UNFINISHED_REBASE, NoOpReason.UNFINISHED_MERGE):
        operation = plan.reason.value
        msg(f"{operation.capitalize()} in progress; not switching back to {state.label}.")
        msg(
            f"Resolve the conflicts in {state.working_dir}, then run "
            f"'git {operation} --continue' (or 'git {operation} --abort'). "
            "'git status' shows what is left."
        )
    elif plan.reason is NoOpReason.ALREADY_AT_ORIGINAL:
        msg(f"Still on {state.label}; nothing to restore.")
    else:
        try:
            repo.checkout(state.original_target, quiet=True)
        except CommandFailed as e:
            warn(f"Could not switch back to {state.label}: {e}")
    return plan


@contextmanager
def restore_original_branch(repo: RepositoryHandle, state: RepositoryState) -> Iterator[RepositoryState]:
    """Run the enclosed block, then return to the original branch."""
    try:
        yield state
    finally:
        finalize(repo, state)

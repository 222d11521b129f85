"""
Error taxonomy for fork_syncer.

Every error carries the process exit code the CLI reports for it.
"""

import shlex
from collections.abc import Sequence


class SyncError(Exception):
    """Base class for failures that abort a sync run."""

    exit_code = 1


class InvalidArgument(SyncError):
    """Bad configuration, rejected before any side effect."""

    exit_code = 2


class PreconditionFailure(SyncError):
    """The repository is not in a state the sync can start from."""


class NotARepository(PreconditionFailure):
    """The working directory is not inside a git working tree."""


class DirtyWorkingTree(PreconditionFailure):
    """Tracked files have staged or unstaged changes."""

    def __init__(self, message: str = "Working tree has local changes. Please commit/stash before syncing."):
        super().__init__(message)


class MissingRemote(PreconditionFailure):
    """A configured remote is not registered in the repository."""

    def __init__(self, remote: str):
        self.remote = remote
        super().__init__(f"Remote '{remote}' not found.")


class CommandFailed(SyncError):
    """A git command exited with a non-zero status."""

    def __init__(self, command: Sequence[str], exit_status: int, stderr: str = ""):
        self.command = list(command)
        self.exit_status = exit_status
        self.stderr = stderr
        message = f"Command failed with exit status {exit_status}: {shlex.join(self.command)}"
        if stderr:
            message += f"\n{stderr}"
        super().__init__(message)


class IntegrationConflict(CommandFailed):
    """A rebase or merge stopped on conflicts and is left unfinished."""


class PublishFailed(CommandFailed):
    """Pushing main failed after the local branches were already updated."""

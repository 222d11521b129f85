"""Pytest configuration and fixtures for fork_syncer tests."""

import copy
import tempfile
from pathlib import Path

import pytest
from click.testing import CliRunner
from git import Repo

from fork_syncer.config import FIELD_SOURCES
from fork_syncer.git_ops import CommandRunner, GitCommands
from fork_syncer.main import cli


def configure_identity(repo: Repo) -> None:
    with repo.config_writer() as writer:
        writer.set_value("user", "name", "Test User")
        writer.set_value("user", "email", "test@example.com")
        writer.set_value("commit", "gpgsign", "false")


def commit_file(repo: Repo, name: str, content: str, message: str) -> str:
    """Write a file, commit it, and return the new commit hash."""
    path = Path(repo.working_tree_dir) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    repo.index.add([name])
    return repo.index.commit(message).hexsha


class GitSandbox:
    """
    An upstream and an origin bare repo, plus a working clone wired to both.

    The working clone starts on ``main`` with ``fork`` at upstream's tip.
    """

    def __init__(self, root: Path):
        self.root = root
        self.upstream_path = root / "upstream.git"
        self.origin_path = root / "origin.git"
        Repo.init(self.upstream_path, bare=True)
        Repo.init(self.origin_path, bare=True)

        # Scratch clone used to author upstream commits
        self.upstream_author = Repo.init(root / "upstream-author")
        configure_identity(self.upstream_author)
        self.upstream_author.create_remote("origin", str(self.upstream_path))
        commit_file(self.upstream_author, "README.md", "# Upstream\n", "Initial upstream commit")
        self.upstream_author.git.branch("-M", "main")
        self.upstream_author.git.push("origin", "main")

        self.work_path = root / "work"
        self.work = Repo.init(self.work_path)
        configure_identity(self.work)
        self.work.create_remote("upstream", str(self.upstream_path))
        self.work.create_remote("origin", str(self.origin_path))
        self.work.git.fetch("upstream")
        self.work.git.checkout("-b", "main", "upstream/main")
        self.work.git.branch("fork", "upstream/main")
        self.work.git.push("origin", "main")

    def upstream_commit(self, name: str, content: str, message: str) -> str:
        sha = commit_file(self.upstream_author, name, content, message)
        self.upstream_author.git.push("origin", "main")
        return sha

    def local_commit(self, name: str, content: str, message: str) -> str:
        return commit_file(self.work, name, content, message)

    def upstream_tip(self, branch: str = "main") -> str:
        return Repo(self.upstream_path).commit(branch).hexsha

    def origin_tip(self, branch: str = "main") -> str:
        return Repo(self.origin_path).commit(branch).hexsha

    def tip(self, ref: str) -> str:
        return self.work.commit(ref).hexsha

    def ref_snapshot(self) -> dict[str, str]:
        """Every ref in the working clone and both remotes."""
        snapshot = {f"work:{ref.path}": ref.commit.hexsha for ref in self.work.refs}
        snapshot["work:HEAD"] = self.work.head.commit.hexsha
        for label, path in (("upstream", self.upstream_path), ("origin", self.origin_path)):
            for ref in Repo(path).refs:
                snapshot[f"{label}:{ref.path}"] = ref.commit.hexsha
        return snapshot


class FakeRepository(GitCommands):
    """
    In-memory repository with linear histories, driven by git command lines.

    Branch histories are lists of commit ids, oldest first. ``fail_on``
    maps a command prefix to the exit status it should fail with.
    """

    def __init__(self, dry_run: bool = False):
        self.branches: dict[str, list[str]] = {
            "main": ["u1", "m1", "m2"],
            "fork": ["u1"],
        }
        self.remotes: dict[str, dict[str, list[str]]] = {
            "upstream": {"main": ["u1", "u2"]},
            "origin": {"main": ["u1", "m1", "m2"]},
        }
        self.tracking: dict[str, list[str]] = {}
        self.current: str | None = "main"
        self.detached_at: str | None = None
        self.dirty = False
        self.conflict_on: set[str] = set()
        self.fail_on: dict[tuple[str, ...], int] = {}
        self.rebasing = False
        self.merging = False
        self.path = Path("/work/fake")
        self.runner = CommandRunner(dry_run=dry_run, execute=self.execute)

    def snapshot(self):
        return copy.deepcopy((self.branches, self.remotes, self.tracking, self.current))

    @property
    def commands(self) -> list[str]:
        return [outcome.display for outcome in self.runner.history]

    def history(self, ref: str) -> list[str] | None:
        if ref in self.branches:
            return self.branches[ref]
        return self.tracking.get(ref)

    # Reads

    def current_branch(self) -> str | None:
        return self.current

    def head_commit(self) -> str:
        if self.current is None:
            return self.detached_at
        return self.branches[self.current][-1]

    def has_commits(self) -> bool:
        return True

    def resolve(self, ref: str) -> str | None:
        history = self.history(ref)
        return history[-1] if history else None

    def is_dirty(self) -> bool:
        return self.dirty

    def has_remote(self, name: str) -> bool:
        return name in self.remotes

    def branch_exists(self, name: str) -> bool:
        return name in self.branches

    def is_ancestor(self, ancestor: str, descendant: str) -> bool:
        older, newer = self.history(ancestor), self.history(descendant)
        if older is None or newer is None:
            return False
        return newer[: len(older)] == older

    def count_commits(self, base: str, tip: str) -> int:
        base_history, tip_history = self.history(base) or [], self.history(tip) or []
        return len([c for c in tip_history if c not in base_history])

    def rebase_in_progress(self) -> bool:
        return self.rebasing

    def merge_in_progress(self) -> bool:
        return self.merging

    # Command interpreter

    def execute(self, command: list[str]) -> tuple[int, str, str]:
        for prefix, status in self.fail_on.items():
            if tuple(command[: len(prefix)]) == prefix:
                return status, "", f"{' '.join(command[1:3])} failed"

        subcommand, args = command[1], command[2:]
        if subcommand == "fetch":
            remote = args[0]
            for branch, history in self.remotes[remote].items():
                self.tracking[f"{remote}/{branch}"] = list(history)
        elif subcommand == "checkout":
            args = [a for a in args if a != "-q"]
            if args[0] == "-b":
                self.branches[args[1]] = list(self.history(args[2]))
                self.current = args[1]
            elif args[0] in self.branches:
                self.current = args[0]
            else:
                return 1, "", f"error: pathspec '{args[0]}' did not match"
        elif subcommand == "reset":
            self.branches[self.current] = list(self.history(args[1]))
        elif subcommand == "rebase":
            if "rebase" in self.conflict_on:
                self.rebasing = True
                return 1, "CONFLICT (content): Merge conflict in README.md", "could not apply m1"
            onto = self.history(args[0])
            local = [c for c in self.branches[self.current] if c not in onto]
            self.branches[self.current] = list(onto) + [f"{c}'" for c in local]
        elif subcommand == "merge":
            if args[0] == "--ff-only":
                if not self.is_ancestor(self.current, args[1]):
                    return 128, "", "fatal: Not possible to fast-forward, aborting."
                self.branches[self.current] = list(self.history(args[1]))
            else:
                if "merge" in self.conflict_on:
                    self.merging = True
                    return 1, "CONFLICT (content): Merge conflict in README.md", ""
                ref = args[1]
                mine = self.branches[self.current]
                theirs = [c for c in self.history(ref) if c not in mine]
                self.branches[self.current] = mine + theirs + [f"merge({ref})"]
        elif subcommand == "push":
            remote, branch = args
            self.remotes[remote][branch] = list(self.branches[branch])
        return 0, "", ""


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sandbox(temp_dir: Path):
    """Create upstream/origin remotes and a working clone on main."""
    yield GitSandbox(temp_dir)


@pytest.fixture
def private_repo(temp_dir: Path):
    """Create a standalone git repository with one commit."""
    repo_path = temp_dir / "private"
    repo_path.mkdir()

    repo = Repo.init(repo_path)
    configure_identity(repo)
    commit_file(repo, "README.md", "# Private Repo\n", "Initial commit")
    repo.git.branch("-M", "main")

    yield repo_path


@pytest.fixture
def fake_repo():
    """Create an in-memory repository for state machine tests."""
    return FakeRepository()


@pytest.fixture
def run_cli(monkeypatch):
    """Invoke the CLI from a directory with the sync variables cleared."""
    cleared = {env: None for _flag, env in FIELD_SOURCES.values()}

    def invoke(args: list[str], cwd: Path, env: dict[str, str] | None = None):
        monkeypatch.chdir(cwd)
        return CliRunner().invoke(cli, args, env={**cleared, **(env or {})})

    return invoke

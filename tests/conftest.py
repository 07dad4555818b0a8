"""Shared fixtures: an in-memory git backend and a manually driven timer."""

import datetime
from collections.abc import Callable
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from folder_git.credentials import CredentialStore, HostingCredentials
from folder_git.models import BranchList, LogEntry, RawStatus, RemoteInfo
from folder_git.registry import RepositoryRegistry
from folder_git.scheduler import AutoCommitScheduler
from folder_git.system import SystemStrategy

FIXED_NOW = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)


class FakeGit:
    """Records every call and answers from configurable state."""

    def __init__(self, path: Path, is_repo: bool = True):
        self.path = path
        self.is_repo = is_repo
        self.busy = False
        self.raw_status = RawStatus(current="main", tracking="origin/main")
        self.remotes: list[RemoteInfo] = []
        self.branches = BranchList(current="main", all=["main"])
        self.log_entries: list[LogEntry] = []
        self.config: dict[str, str] = {}
        self.failures: dict[str, Exception] = {}
        self.calls: list[tuple] = []

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.failures:
            raise self.failures[name]

    def names(self) -> list[str]:
        return [call[0] for call in self.calls]

    def check_is_repo(self) -> bool:
        self._record("check_is_repo")
        return self.is_repo

    def is_busy(self) -> bool:
        self._record("is_busy")
        return self.busy

    def status(self) -> RawStatus:
        self._record("status")
        return self.raw_status

    def add(self, paths: list[str]) -> None:
        self._record("add", list(paths))

    def add_all(self) -> None:
        self._record("add_all")

    def reset(self, paths: list[str] | None = None) -> None:
        self._record("reset", paths)

    def checkout(self, target: str, paths: list[str] | None = None) -> None:
        self._record("checkout", target, paths)

    def commit(self, message: str) -> str:
        self._record("commit", message)
        return ""

    def diff(self, path: str, staged: bool = False) -> str:
        self._record("diff", path, staged)
        return f"diff --git a/{path} b/{path}\n"

    def log(self, limit: int) -> list[LogEntry]:
        self._record("log", limit)
        return self.log_entries[:limit]

    def branch_local(self) -> BranchList:
        self._record("branch_local")
        return self.branches

    def get_remotes(self) -> list[RemoteInfo]:
        self._record("get_remotes")
        return list(self.remotes)

    def add_remote(self, name: str, url: str) -> None:
        self._record("add_remote", name, url)
        self.remotes.append(RemoteInfo(name, url, url))

    def push(self, remote: str | None = None, branch: str | None = None) -> None:
        self._record("push", remote, branch)

    def pull(self) -> None:
        self._record("pull")

    def raw(self, args: list[str]) -> str:
        self._record("raw", list(args))
        return ""

    def add_config(self, key: str, value: str) -> None:
        self._record("add_config", key, value)
        self.config[key] = value

    def init(self) -> None:
        self._record("init")

    def clone(self, url: str, destination: Path) -> None:
        self._record("clone", url, destination)


class FakeGitFactory:
    """Hands out one FakeGit per path, remembering them for assertions."""

    def __init__(self) -> None:
        self.instances: dict[Path, FakeGit] = {}
        self.non_repos: set[Path] = set()

    def __call__(self, path: Path) -> FakeGit:
        if path not in self.instances:
            self.instances[path] = FakeGit(path, is_repo=path not in self.non_repos)
        return self.instances[path]


class FakeTimer:
    """Stands in for threading.Timer; fired explicitly by tests."""

    def __init__(self, interval: float, function: Callable[[], None]):
        self.interval = interval
        self.function = function
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True


class FakeTimerFactory:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, interval: float, function: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(interval, function)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled]

    def fire_latest(self) -> None:
        self.pending[-1].function()


@pytest.fixture
def git_factory() -> FakeGitFactory:
    return FakeGitFactory()


@pytest.fixture
def timer_factory() -> FakeTimerFactory:
    return FakeTimerFactory()


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock(spec=SystemStrategy)


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    path = tmp_path / "vault"
    path.mkdir()
    return path


@pytest.fixture
def credential_store(tmp_path: Path) -> CredentialStore:
    return CredentialStore(tmp_path / "state" / "git-credentials")


@pytest.fixture
def registry(
    vault: Path,
    git_factory: FakeGitFactory,
    timer_factory: FakeTimerFactory,
    credential_store: CredentialStore,
    notifier: MagicMock,
) -> RepositoryRegistry:
    """A registry wired entirely to in-memory fakes with a fixed clock."""
    return RepositoryRegistry(
        vault,
        credentials=HostingCredentials(username="octo", token="s3cret-token"),
        git_factory=git_factory,
        scheduler=AutoCommitScheduler(timer_factory=timer_factory),
        credential_store=credential_store,
        notifier=notifier,
        clock=lambda: FIXED_NOW,
    )

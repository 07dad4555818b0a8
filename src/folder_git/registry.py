"""The repository registry: owner of every tracked repository instance.

All callers (CLI, daemon, scheduler) address repositories by folder
identifier. The registry resolves the instance, runs the git operation under
that folder's lock, and returns normalized results. Operations on different
repositories run independently.
"""

import datetime
import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from .config import Config
from .constants import APP_NAME, DEFAULT_LOG_LIMIT, DEFAULT_REMOTE
from .credentials import CredentialStore, HostingCredentials
from .errors import GitProcessError, NotARepositoryError, RepoNotFoundError
from .git_wrapper import GitBackend, GitRepo
from .ignore import (
    add_to_ignore_list,
    is_explicitly_ignored,
    remove_from_ignore_list,
)
from .models import (
    BranchList,
    LogEntry,
    RemoteInfo,
    RepositoryConfig,
    RepositoryInstance,
    RepositoryStatus,
)
from .paths import PathResolver, find_owner, normalize_folder_id
from .scheduler import (
    AutoCommitAction,
    AutoCommitOutcome,
    AutoCommitScheduler,
    plan_auto_commit,
    render_commit_message,
    utc_now,
)
from .status import translate_status
from .system import SystemStrategy, get_system

logger = logging.getLogger(APP_NAME)

GitFactory = Callable[[Path], GitBackend]


def _label(folder_id: str) -> str:
    return folder_id or "/"


class RepositoryRegistry:
    """Owns, reconciles and mutates the set of tracked repositories.

    Attributes:
        resolver (PathResolver): Maps folder identifiers to absolute paths.
        credentials (HostingCredentials): Account used for HTTPS remotes.
    """

    def __init__(
        self,
        vault_path: Path,
        credentials: HostingCredentials | None = None,
        git_factory: GitFactory | None = None,
        scheduler: AutoCommitScheduler | None = None,
        credential_store: CredentialStore | None = None,
        notifier: SystemStrategy | None = None,
        clock: Callable[[], datetime.datetime] = utc_now,
        auto_commit: bool = True,
    ):
        """Creates an empty registry.

        Args:
            vault_path (Path): The vault root directory.
            credentials (HostingCredentials | None): Hosting account, if any.
            git_factory (GitFactory | None): Builds a backend bound to a path.
                Defaults to `GitRepo` with the system git.
            scheduler (AutoCommitScheduler | None): Timer owner for auto-commits.
            credential_store (CredentialStore | None): Credential file owner.
            notifier (SystemStrategy | None): Receives non-fatal notices.
            clock (Callable[[], datetime]): Source of commit timestamps.
            auto_commit (bool): Arm auto-commit timers for added repositories.
                One-shot callers (the CLI) pass False.
        """
        self.resolver = PathResolver(vault_path)
        self.credentials = credentials or HostingCredentials()
        self._git_factory = git_factory or GitRepo
        self._scheduler = scheduler or AutoCommitScheduler()
        self._credential_store = credential_store or CredentialStore()
        self._notifier = notifier or get_system()
        self._clock = clock
        self._auto_commit = auto_commit
        self._repos: dict[str, RepositoryInstance] = {}
        self._lock = threading.Lock()
        # Outlive remove/re-add so an in-flight operation still blocks the next.
        self._folder_locks: dict[str, threading.RLock] = {}

    @classmethod
    def from_config(cls, config: Config, **kwargs) -> "RepositoryRegistry":
        """Builds a registry wired to the global settings."""
        binary = config.core.git_binary or "git"
        timeout = config.core.command_timeout or None

        def factory(path: Path) -> GitBackend:
            return GitRepo(path, binary=binary, timeout=timeout)

        kwargs.setdefault("git_factory", factory)
        return cls(config.vault, credentials=config.credentials, **kwargs)

    # --- Lifecycle ---

    def initialize(self, configs: Iterable[RepositoryConfig]) -> list[str]:
        """Registers every configured repository, isolating individual failures.

        Args:
            configs (Iterable[RepositoryConfig]): The configured repositories.

        Returns:
            list[str]: Folder identifiers that failed to initialize.
        """
        failed = []
        for config in configs:
            try:
                self.add_repo(config)
            except Exception as e:
                label = _label(config.folder_id)
                logger.error(f"INIT ERROR {label}: {e}")
                self._notifier.notify(
                    "Folder Git", f'Failed to initialize repo for "{label}"'
                )
                failed.append(config.folder_id)
        return failed

    def destroy(self) -> None:
        """Cancels every outstanding timer and forgets all repositories."""
        self._scheduler.stop_all()
        with self._lock:
            for instance in self._repos.values():
                instance.timer = None
            self._repos.clear()

    # --- Repository Management ---

    def add_repo(self, config: RepositoryConfig) -> RepositoryInstance:
        """Binds and registers a repository.

        Re-adding a folder identifier replaces the previous instance and its
        timer.

        Raises:
            NotARepositoryError: If the folder is not inside a git working tree.
        """
        folder_id = normalize_folder_id(config.folder_id)
        if folder_id != config.folder_id:
            config.folder_id = folder_id

        absolute_path = self.resolver.resolve_absolute(folder_id)
        git = self._git_factory(absolute_path)
        if not git.check_is_repo():
            raise NotARepositoryError(folder_id)

        instance = RepositoryInstance(
            config=config, git=git, absolute_path=absolute_path
        )
        with self._lock:
            self._repos[folder_id] = instance

        if self._auto_commit:
            instance.timer = self._scheduler.start(
                folder_id,
                config.auto_commit_interval,
                lambda: self.run_auto_commit(folder_id),
            )
        logger.info(f"ADDED {_label(folder_id)}: {absolute_path}")
        return instance

    def remove_repo(self, folder_id: str) -> None:
        """Stops tracking a repository. Files and the .git folder are left alone."""
        folder_id = normalize_folder_id(folder_id)
        self._scheduler.stop(folder_id)
        with self._lock:
            instance = self._repos.pop(folder_id, None)
        if instance is not None:
            instance.timer = None
            logger.info(f"REMOVED {_label(folder_id)}")

    def get_repo(self, folder_id: str) -> RepositoryInstance | None:
        with self._lock:
            return self._repos.get(normalize_folder_id(folder_id))

    def get_all_repos(self) -> list[RepositoryInstance]:
        with self._lock:
            return list(self._repos.values())

    def get_all_paths(self) -> list[str]:
        with self._lock:
            return list(self._repos)

    def owner_of(self, file_path: str) -> RepositoryInstance | None:
        """Finds the repository owning a vault-relative path (longest prefix)."""
        with self._lock:
            owner = find_owner(file_path, self._repos)
            return self._repos[owner] if owner is not None else None

    def _get(self, folder_id: str) -> RepositoryInstance:
        instance = self.get_repo(folder_id)
        if instance is None:
            raise RepoNotFoundError(folder_id)
        return instance

    def _folder_lock(self, folder_id: str) -> threading.RLock:
        with self._lock:
            return self._folder_locks.setdefault(folder_id, threading.RLock())

    @contextmanager
    def _locked(self, folder_id: str) -> Iterator[RepositoryInstance]:
        """Yields the current instance while holding the folder's lock.

        The instance is looked up after the lock is taken, so an operation that
        waited behind a remove or re-add sees the current registration.
        """
        folder_id = normalize_folder_id(folder_id)
        self._get(folder_id)
        with self._folder_lock(folder_id):
            yield self._get(folder_id)

    # --- Git Operations ---

    def get_status(self, folder_id: str) -> RepositoryStatus:
        with self._locked(folder_id) as instance:
            return self._status(instance)

    @staticmethod
    def _status(instance: RepositoryInstance) -> RepositoryStatus:
        return translate_status(instance.folder_id, instance.git.status())

    def stage(self, folder_id: str, paths: list[str]) -> None:
        with self._locked(folder_id) as instance:
            instance.git.add(paths)

    def stage_all(self, folder_id: str) -> None:
        with self._locked(folder_id) as instance:
            instance.git.add_all()

    def unstage(self, folder_id: str, paths: list[str]) -> None:
        with self._locked(folder_id) as instance:
            instance.git.reset(paths)

    def unstage_all(self, folder_id: str) -> None:
        with self._locked(folder_id) as instance:
            instance.git.reset()

    def discard(self, folder_id: str, paths: list[str]) -> None:
        """Restores paths from HEAD. Uncommitted edits are destroyed irreversibly."""
        with self._locked(folder_id) as instance:
            instance.git.checkout("HEAD", paths)
            logger.info(f"DISCARDED {_label(folder_id)}: {', '.join(paths)}")

    def commit(self, folder_id: str, message: str) -> None:
        """Commits the staged content.

        Raises:
            NothingStagedError: If nothing is staged.
        """
        with self._locked(folder_id) as instance:
            instance.git.commit(message)
            logger.info(f"COMMITTED {_label(folder_id)}: {message}")

    def get_diff(self, folder_id: str, path: str, staged: bool = False) -> str:
        with self._locked(folder_id) as instance:
            return instance.git.diff(path, staged=staged)

    def get_log(
        self, folder_id: str, limit: int = DEFAULT_LOG_LIMIT
    ) -> list[LogEntry]:
        with self._locked(folder_id) as instance:
            return instance.git.log(limit)

    def get_branch(self, folder_id: str) -> str:
        with self._locked(folder_id) as instance:
            return instance.git.status().current or "HEAD"

    def get_branches(self, folder_id: str) -> BranchList:
        with self._locked(folder_id) as instance:
            return instance.git.branch_local()

    def checkout(self, folder_id: str, branch: str) -> None:
        with self._locked(folder_id) as instance:
            instance.git.checkout(branch)
            logger.info(f"CHECKOUT {_label(folder_id)}: {branch}")

    def init_repo(self, absolute_path: Path) -> None:
        """Runs `git init` in a directory without registering it."""
        self._git_factory(absolute_path).init()
        logger.info(f"INITIALIZED {absolute_path}")

    def clone_repo(self, url: str, absolute_path: Path) -> None:
        """Clones into a directory without registering it."""
        self._git_factory(absolute_path.parent).clone(url, absolute_path)
        logger.info(f"CLONED {absolute_path}")

    def add_remote(self, folder_id: str, name: str, url: str) -> None:
        with self._locked(folder_id) as instance:
            instance.git.add_remote(name, url)

    def detect_remotes(self, folder_id: str) -> list[RemoteInfo]:
        with self._locked(folder_id) as instance:
            return instance.git.get_remotes()

    def detect_remotes_from_path(self, absolute_path: Path) -> list[RemoteInfo]:
        """Lists remotes of an unregistered directory.

        Returns:
            list[RemoteInfo]: The remotes, or an empty list on any failure
            (including the directory not being a repository).
        """
        try:
            git = self._git_factory(absolute_path)
            if not git.check_is_repo():
                return []
            return git.get_remotes()
        except Exception as e:
            logger.debug(f"Remote detection failed for {absolute_path}: {e}")
            return []

    def configure_credentials(self, folder_id: str) -> bool:
        """Provisions HTTPS credentials for a repository.

        Returns:
            bool: True if credentials were written; False when skipped (no
            account, unknown repository, missing or non-HTTPS remote).
        """
        if self.get_repo(folder_id) is None:
            return False
        with self._locked(folder_id) as instance:
            return self._configure_credentials(instance)

    def _configure_credentials(self, instance: RepositoryInstance) -> bool:
        return self._credential_store.configure(
            instance.git,
            instance.config.remote_name or DEFAULT_REMOTE,
            self.credentials,
            label=_label(instance.folder_id),
        )

    def push(self, folder_id: str) -> None:
        """Pushes the current branch, setting the upstream on the first push."""
        with self._locked(folder_id) as instance:
            self._push(instance)

    def _push(self, instance: RepositoryInstance) -> None:
        self._configure_credentials(instance)
        raw = instance.git.status()
        if not raw.tracking:
            remote = instance.config.remote_name or DEFAULT_REMOTE
            branch = raw.current or "main"
            instance.git.push(remote, branch)
        else:
            instance.git.push()
        logger.info(f"PUSHED {_label(instance.folder_id)}")

    def pull(self, folder_id: str) -> None:
        with self._locked(folder_id) as instance:
            self._configure_credentials(instance)
            instance.git.pull()
            logger.info(f"PULLED {_label(folder_id)}")

    # --- Ignore List ---

    def is_explicitly_ignored(self, folder_id: str, relative_path: str) -> bool:
        """Checks for a literal `.gitignore` entry. Unknown repositories yield False."""
        instance = self.get_repo(folder_id)
        if instance is None:
            return False
        try:
            return is_explicitly_ignored(instance.absolute_path, relative_path)
        except OSError as e:
            logger.debug(f"Could not read ignore file for {_label(folder_id)}: {e}")
            return False

    def is_ignored(self, folder_id: str, relative_path: str) -> bool:
        """Asks git whether a path is ignored. Any failure yields False."""
        instance = self.get_repo(folder_id)
        if instance is None:
            return False
        try:
            instance.git.raw(["check-ignore", "-q", relative_path])
            return True
        except GitProcessError:
            return False

    def add_to_ignore_list(self, folder_id: str, relative_path: str) -> None:
        with self._locked(folder_id) as instance:
            add_to_ignore_list(instance.absolute_path, relative_path)

    def remove_from_ignore_list(self, folder_id: str, relative_path: str) -> None:
        with self._locked(folder_id) as instance:
            remove_from_ignore_list(instance.absolute_path, relative_path)

    # --- Auto-commit ---

    def run_auto_commit(self, folder_id: str) -> AutoCommitOutcome:
        """Performs one scheduled stage-all, commit and optional push cycle.

        Never raises: failures are logged and reported in the outcome so the
        next scheduled firing proceeds normally. A repository that another
        process is operating on (merge, rebase, held index lock) or that has
        unresolved conflicts is skipped.
        """
        if self.get_repo(folder_id) is None:
            return AutoCommitOutcome(AutoCommitAction.SKIP)

        label = _label(folder_id)
        action = AutoCommitAction.SKIP
        message = None
        try:
            with self._locked(folder_id) as instance:
                if instance.git.is_busy():
                    logger.info(f"AUTO-COMMIT {label}: repository busy, skipped.")
                    return AutoCommitOutcome(action)

                status = self._status(instance)
                action = plan_auto_commit(status, instance.config)
                if action is AutoCommitAction.SKIP:
                    if status.conflicted:
                        logger.warning(
                            f"AUTO-COMMIT {label}: unresolved conflicts in "
                            f"{', '.join(status.conflicted)}, skipped."
                        )
                    else:
                        logger.debug(f"AUTO-COMMIT {label}: clean, skipped.")
                    return AutoCommitOutcome(action)

                instance.git.add_all()
                message = render_commit_message(
                    instance.config.commit_message_template, self._clock()
                )
                instance.git.commit(message)
                logger.info(f"AUTO-COMMIT {label}: {message}")

                if action is AutoCommitAction.COMMIT_AND_PUSH:
                    self._push(instance)
        except RepoNotFoundError:
            # Removed while waiting for the folder lock.
            return AutoCommitOutcome(AutoCommitAction.SKIP)
        except Exception as e:
            logger.error(f"AUTO-COMMIT ERROR {label}: {e}")
            return AutoCommitOutcome(action, message=message, error=str(e))

        return AutoCommitOutcome(action, message=message)

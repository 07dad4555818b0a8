"""Data model shared by the registry, the scheduler and the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from .constants import DEFAULT_COMMIT_TEMPLATE, DEFAULT_REMOTE

if TYPE_CHECKING:
    from .git_wrapper import GitBackend
    from .scheduler import RecurringTimer


class DisplayStatus(str, Enum):
    """Presentation-facing classification of a single file change.

    The value is the porcelain letter the presentation layer keys on.
    """

    MODIFIED = "M"
    ADDED = "A"
    DELETED = "D"
    RENAMED = "R"
    UNTRACKED = "?"
    UNMERGED = "U"


@dataclass
class RepositoryConfig:
    """Identity and behaviour of one tracked folder.

    Attributes:
        folder_id (str): Vault-relative folder path. "" denotes the vault root.
        remote_name (str): The remote used for pushes and credential lookup.
        remote_url (str): The remote URL recorded when the folder was added.
        auto_push (bool): Whether auto-commits are followed by a push.
        auto_commit_interval (int): Minutes between auto-commits (0 disables).
        commit_message_template (str): Template for auto-commit messages.
        remote_repo_name (str): Hosting-provider repository name, if any.
        is_private (bool): Hosting-provider visibility.
    """

    folder_id: str
    remote_name: str = DEFAULT_REMOTE
    remote_url: str = ""
    auto_push: bool = True
    auto_commit_interval: int = 0
    commit_message_template: str = DEFAULT_COMMIT_TEMPLATE
    remote_repo_name: str = ""
    is_private: bool = True


@dataclass(frozen=True)
class RawFileStatus:
    """One porcelain status record as reported by git.

    Attributes:
        path (str): Path relative to the repository root.
        index (str): The index (staging area) column code.
        working_dir (str): The working-tree column code.
        original_path (str | None): Source path for renames and copies.
    """

    path: str
    index: str
    working_dir: str
    original_path: str | None = None


@dataclass
class RawStatus:
    """Parsed output of `git status --porcelain -b`."""

    current: str | None
    tracking: str | None
    ahead: int = 0
    behind: int = 0
    files: list[RawFileStatus] = field(default_factory=list)


@dataclass(frozen=True)
class FileStatusEntry:
    relative_path: str
    vault_path: str
    index_code: str
    working_tree_code: str
    display_status: DisplayStatus


@dataclass
class RepositoryStatus:
    """Normalized snapshot of a repository's working state.

    Attributes:
        folder_id (str): The repository's folder identifier.
        current_branch (str): Checked-out branch ("HEAD" when detached).
        staged (list[FileStatusEntry]): Changes recorded in the index.
        changed (list[FileStatusEntry]): Changes in the working tree.
        untracked (list[str]): Vault paths of untracked files.
        conflicted (list[str]): Vault paths of unmerged files.
        ahead (int): Commits ahead of the upstream.
        behind (int): Commits behind the upstream.
        tracking (str | None): The upstream branch, if configured.
    """

    folder_id: str
    current_branch: str
    staged: list[FileStatusEntry] = field(default_factory=list)
    changed: list[FileStatusEntry] = field(default_factory=list)
    untracked: list[str] = field(default_factory=list)
    conflicted: list[str] = field(default_factory=list)
    ahead: int = 0
    behind: int = 0
    tracking: str | None = None

    @property
    def is_clean(self) -> bool:
        return not (self.staged or self.changed or self.untracked or self.conflicted)

    @property
    def change_count(self) -> int:
        paths = {e.vault_path for e in self.staged} | {
            e.vault_path for e in self.changed
        }
        return len(paths) + len(self.untracked) + len(self.conflicted)


@dataclass(frozen=True)
class LogEntry:
    full_hash: str
    short_hash: str
    message: str
    author_name: str
    date: str
    changed_files: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RemoteInfo:
    name: str
    fetch_url: str = ""
    push_url: str = ""

    @property
    def url(self) -> str:
        """The URL used for pushing, falling back to the fetch URL."""
        return self.push_url or self.fetch_url


@dataclass(frozen=True)
class BranchList:
    current: str
    all: list[str] = field(default_factory=list)


@dataclass
class RepositoryInstance:
    """Runtime binding of a configured folder to a live git backend.

    Attributes:
        config (RepositoryConfig): The folder's configuration.
        git (GitBackend): Backend bound to the absolute path.
        absolute_path (Path): The resolved on-disk location.
        timer (RecurringTimer | None): Auto-commit handle, present iff the
            configured interval is positive and the registry schedules.
    """

    config: RepositoryConfig
    git: GitBackend
    absolute_path: Path
    timer: RecurringTimer | None = None

    @property
    def folder_id(self) -> str:
        return self.config.folder_id

"""Exception hierarchy for Folder Git.

User-initiated operations raise these directly to the caller. Background work
(the auto-commit scheduler) catches and logs them instead.
"""


class FolderGitError(Exception):
    """Base class for all Folder Git errors."""


class RepoNotFoundError(FolderGitError):
    """Raised when no repository is registered for a folder identifier."""

    def __init__(self, folder_id: str):
        self.folder_id = folder_id
        super().__init__(f'No repository configured for "{folder_id}"')


class NotARepositoryError(FolderGitError):
    """Raised when a folder being registered is not a git working tree."""

    def __init__(self, folder_id: str):
        self.folder_id = folder_id
        super().__init__(f'"{folder_id}" is not a Git repository')


class GitProcessError(FolderGitError, RuntimeError):
    """Raised when the git executable exits non-zero or cannot be run.

    Attributes:
        args_used (list[str]): The git arguments that failed.
        message (str): The message reported by git (stderr, falling back to stdout).
    """

    def __init__(self, message: str, args_used: list[str] | None = None):
        self.message = message
        self.args_used = args_used or []
        super().__init__(f"Git error: {message}")


class NothingStagedError(GitProcessError):
    """Raised when git rejects a commit because nothing is staged."""

import os
from pathlib import Path

"""Global constants and filesystem layout for Folder Git.

This module defines the on-disk locations (adhering to XDG standards where
applicable), application identifiers, and the default values applied to newly
tracked repositories.
"""

# --- Identity ---
APP_NAME = "folder-git"
"""str: The human-readable application name, also used as the logger name."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "folder-git"
"""Path: The directory for runtime state data (logs, credentials)."""

LOG_FILE = STATE_DIR / "daemon.log"
"""Path: The file path for the daemon process logs."""

CREDENTIALS_FILE = STATE_DIR / "git-credentials"
"""Path: The per-installation credential-store file (mode 0600)."""

PID_FILE = STATE_DIR / "daemon.pid"
"""Path: The file path storing the daemon's process ID."""

_XDG_CONFIG = os.environ.get("XDG_CONFIG_HOME")
_BASE_CONFIG = Path(_XDG_CONFIG) if _XDG_CONFIG else Path.home() / ".config"

CONFIG_DIR: Path = _BASE_CONFIG / "folder-git"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The global settings file."""

REPOS_FILE: Path = CONFIG_DIR / "repos.json"
"""Path: The ordered list of tracked repository configurations."""

# --- Repository Defaults ---
DEFAULT_REMOTE = "origin"
DEFAULT_COMMIT_TEMPLATE = "vault backup: {{date}}"
DATE_TOKEN = "{{date}}"
"""str: The placeholder substituted with an ISO-8601 timestamp in commit messages."""

DEFAULT_HOST = "github.com"
"""str: The hosting domain that credentials are scoped to."""

ROOT_SENTINELS = ("", "/")
"""tuple[str, ...]: Folder identifiers that denote the vault root."""

IGNORE_FILE = ".gitignore"

SHORT_HASH_LENGTH = 7
DEFAULT_LOG_LIMIT = 50

# --- Git State ---
GIT_LOCK_FILES = [
    "MERGE_HEAD",
    "REBASE_HEAD",
    "CHERRY_PICK_HEAD",
    "BISECT_LOG",
    "rebase-merge",
    "rebase-apply",
]
"""list[str]: Entries in the git directory that mark an operation in progress."""

STALE_LOCK_HOURS = 24
"""int: Age after which an `index.lock` is reported as stale."""

LOCK_RETRY_SECONDS = 1.0
"""float: Wait before re-checking an `index.lock` held by another process."""

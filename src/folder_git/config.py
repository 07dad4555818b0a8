import contextlib
import json
import logging
import os
import re
import tomllib
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any

from .constants import (
    APP_NAME,
    CONFIG_FILE,
    DEFAULT_HOST,
    REPOS_FILE,
)
from .credentials import HostingCredentials
from .models import RepositoryConfig
from .paths import normalize_folder_id

logger = logging.getLogger(APP_NAME)

ENV_TOKEN = "FOLDER_GIT_TOKEN"
ENV_USERNAME = "FOLDER_GIT_USERNAME"
ENV_VAULT = "FOLDER_GIT_VAULT"


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | str) -> int:
    """Converts human-readable time strings (e.g., '1hr', '30s') to seconds."""
    if isinstance(value, int):
        return value
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return int(num * multiplier[unit])


@dataclass
class CoreConfig:
    """Core application settings.

    Attributes:
        vault_path (str): The vault root directory ("" means the working directory).
        git_binary (str): The git executable to invoke.
        show_untracked (bool): Whether status views list untracked files.
        refresh_interval (int): Seconds between status polls (0 disables).
        command_timeout (int): Seconds before a git call is abandoned (0 disables).
    """

    vault_path: str = ""
    git_binary: str = "git"
    show_untracked: bool = True
    refresh_interval: int = 30
    command_timeout: int = 120


@dataclass
class HostingConfig:
    """Hosting-provider account used for HTTPS remotes.

    Attributes:
        token (str): Personal access token. Prefer the FOLDER_GIT_TOKEN variable.
        username (str): Account login the token belongs to.
        host (str): Domain the credentials are scoped to.
    """

    token: str = ""
    username: str = ""
    host: str = DEFAULT_HOST

    def __repr__(self) -> str:
        token = "***" if self.token else ""
        return (
            f"HostingConfig(token={token!r}, username={self.username!r}, "
            f"host={self.host!r})"
        )


@dataclass
class LimitsConfig:
    """Resource limitation settings.

    Attributes:
        max_log_size (int): Max bytes for log files before rotation.
    """

    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        core (CoreConfig): Core settings.
        hosting (HostingConfig): Hosting-provider credentials.
        limits (LimitsConfig): Resource limits.
    """

    core: CoreConfig = field(default_factory=CoreConfig)
    hosting: HostingConfig = field(default_factory=HostingConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)

    @classmethod
    def load(cls, path: Path | None = None) -> "Config":
        """Loads configuration from defaults, the TOML file and the environment.

        Args:
            path (Path | None): Overrides the global config file location.

        Returns:
            Config: The fully merged configuration object.
        """
        instance = cls()
        config_file = path or CONFIG_FILE
        if config_file.exists():
            instance._merge_from_file(config_file)
        instance._merge_from_env()
        return instance

    @property
    def vault(self) -> Path:
        if self.core.vault_path:
            return Path(self.core.vault_path).expanduser().resolve()
        return Path.cwd()

    @property
    def credentials(self) -> HostingCredentials:
        return HostingCredentials(
            username=self.hosting.username,
            token=self.hosting.token,
            host=self.hosting.host or DEFAULT_HOST,
        )

    def _merge_from_env(self) -> None:
        if token := os.environ.get(ENV_TOKEN):
            self.hosting = replace(self.hosting, token=token)
        if username := os.environ.get(ENV_USERNAME):
            self.hosting = replace(self.hosting, username=username)
        if vault := os.environ.get(ENV_VAULT):
            self.core = replace(self.core, vault_path=vault)

    def _merge_from_file(self, path: Path) -> None:
        """Parses a TOML file and merges it into the current instance.

        Args:
            path (Path): Path to the TOML file.
        """
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)

            if "core" in data:
                self.core = self._update_dataclass("core", self.core, data["core"])
            if "hosting" in data:
                self.hosting = self._update_dataclass(
                    "hosting", self.hosting, data["hosting"]
                )
            if "limits" in data:
                self.limits = self._update_dataclass(
                    "limits", self.limits, data["limits"]
                )

        except tomllib.TOMLDecodeError as e:
            logger.error(f"Config syntax error in {path}: {e}")
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: "
                f"{', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k == "max_log_size":
                    filtered_updates[k] = parse_size(v)
                elif k in ["refresh_interval", "command_timeout"]:
                    filtered_updates[k] = parse_time(v)
                elif k == "show_untracked" and not isinstance(v, bool):
                    raise ValueError(f"Expected true/false, got '{v}'")
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)


def repository_from_dict(data: dict) -> RepositoryConfig:
    """Builds a RepositoryConfig from persisted data, ignoring unknown keys.

    Raises:
        ValueError: If `folder_id` is missing or a field has the wrong type.
    """
    if "folder_id" not in data:
        raise ValueError("Repository entry is missing 'folder_id'")

    known = {f.name: f for f in fields(RepositoryConfig)}
    unknown = set(data) - set(known)
    if unknown:
        logger.warning(
            f"Unknown repository keys for '{data['folder_id']}': "
            f"{', '.join(sorted(unknown))}. Ignoring."
        )

    values = {k: v for k, v in data.items() if k in known}
    values["folder_id"] = normalize_folder_id(str(values["folder_id"]))

    interval = values.get("auto_commit_interval", 0)
    if isinstance(interval, bool) or not isinstance(interval, int) or interval < 0:
        raise ValueError(f"Invalid auto_commit_interval '{interval}'")

    return RepositoryConfig(**values)


def load_repositories(path: Path = REPOS_FILE) -> list[RepositoryConfig]:
    """Reads the ordered repository list. Invalid entries are skipped with a warning."""
    if not path.exists():
        return []

    try:
        data = json.loads(path.read_text(encoding="utf-8") or "[]")
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Failed to read repository list {path}: {e}")
        return []

    if not isinstance(data, list):
        logger.error(f"Repository list {path} must be a JSON array.")
        return []

    repos: list[RepositoryConfig] = []
    seen: set[str] = set()
    for entry in data:
        try:
            repo = repository_from_dict(entry)
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping invalid repository entry {entry!r}: {e}")
            continue
        if repo.folder_id in seen:
            logger.warning(f"Duplicate repository '{repo.folder_id}' ignored.")
            continue
        seen.add(repo.folder_id)
        repos.append(repo)
    return repos


def save_repositories(repos: list[RepositoryConfig], path: Path = REPOS_FILE) -> None:
    """Persists the repository list atomically (write temp file, then swap)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_file = path.with_suffix(".tmp")

    try:
        with open(tmp_file, "w", encoding="utf-8") as f:
            json.dump([asdict(r) for r in repos], f, indent=2)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_file, path)
    except OSError:
        with contextlib.suppress(OSError):
            tmp_file.unlink()
        raise

"""HTTPS credential provisioning through git's `store` credential helper.

Tokens are written to one per-installation file outside every repository and
each repository is pointed at it with a local `credential.helper` entry. The
token is never placed in a remote URL and never logged.
"""

import contextlib
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlparse

from .constants import APP_NAME, CREDENTIALS_FILE, DEFAULT_HOST
from .git_wrapper import GitBackend

logger = logging.getLogger(APP_NAME)

_write_lock = threading.Lock()


@dataclass(frozen=True)
class HostingCredentials:
    """Hosting-provider account used for HTTPS remotes.

    Attributes:
        username (str): Account login.
        token (str): Personal access token.
        host (str): Domain the credentials are scoped to.
    """

    username: str = ""
    token: str = ""
    host: str = DEFAULT_HOST

    @property
    def is_configured(self) -> bool:
        return bool(self.username and self.token)

    def __repr__(self) -> str:
        token = "***" if self.token else ""
        return (
            f"HostingCredentials(username={self.username!r}, "
            f"token={token!r}, host={self.host!r})"
        )


def is_https_remote(url: str) -> bool:
    """Reports whether a remote URL uses the HTTPS transport.

    SSH URLs (`git@host:owner/repo.git`, `ssh://...`) return False.
    """
    return urlparse(url.strip()).scheme.lower() == "https"


def build_credential_line(credentials: HostingCredentials) -> str:
    return f"https://{credentials.username}:{credentials.token}@{credentials.host}\n"


class CredentialStore:
    """Owns the credential file and wires repositories to it.

    Attributes:
        path (Path): Location of the credential-store file.
    """

    def __init__(self, path: Path = CREDENTIALS_FILE):
        self.path = path

    @property
    def helper_value(self) -> str:
        return f'store --file="{self.path}"'

    def write(self, credentials: HostingCredentials) -> None:
        """Atomically replaces the credential file with owner-only permissions.

        Concurrent writers are serialized; the last writer wins, which is safe
        because the content depends only on the credentials.
        """
        line = build_credential_line(credentials)
        with _write_lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_file = self.path.with_name(f".{self.path.name}.{os.getpid()}.tmp")
            try:
                fd = os.open(tmp_file, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
                with os.fdopen(fd, "w") as f:
                    f.write(line)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_file, self.path)
                os.chmod(self.path, 0o600)
            except OSError:
                with contextlib.suppress(OSError):
                    tmp_file.unlink()
                raise

    def configure(
        self,
        git: GitBackend,
        remote_name: str,
        credentials: HostingCredentials,
        label: str = "",
    ) -> bool:
        """Provisions credentials for one repository before a push or pull.

        Skips silently when no account is configured, when the remote cannot be
        found, or when it is not an HTTPS remote. SSH remotes are never touched.

        Args:
            git (GitBackend): The repository's backend.
            remote_name (str): The configured remote to inspect.
            credentials (HostingCredentials): The account to provision.
            label (str, optional): Repository label for log messages.

        Returns:
            bool: True if the file and local helper entry were written.
        """
        if not credentials.is_configured:
            logger.debug(f"CREDENTIALS {label}: no account configured, skipped.")
            return False

        remote = next((r for r in git.get_remotes() if r.name == remote_name), None)
        if remote is None:
            logger.debug(f"CREDENTIALS {label}: remote '{remote_name}' not found.")
            return False

        if not is_https_remote(remote.url):
            logger.debug(f"CREDENTIALS {label}: '{remote_name}' is not HTTPS.")
            return False

        self.write(credentials)
        git.add_config("credential.helper", self.helper_value)
        logger.debug(f"CREDENTIALS {label}: credential helper configured.")
        return True

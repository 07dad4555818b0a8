"""Process boundary to the git executable.

`GitRepo` runs one git command per call in a bound directory and raises
`GitProcessError` with git's own message on failure. The parsers turn porcelain
status, log and remote listings into the shared data model.
"""

import logging
import os
import re
import subprocess
import time
from pathlib import Path
from typing import Protocol

from .constants import (
    APP_NAME,
    GIT_LOCK_FILES,
    LOCK_RETRY_SECONDS,
    SHORT_HASH_LENGTH,
    STALE_LOCK_HOURS,
)
from .errors import GitProcessError, NothingStagedError
from .models import BranchList, LogEntry, RawFileStatus, RawStatus, RemoteInfo

logger = logging.getLogger(APP_NAME)

_RECORD_SEP = "\x1e"
_FIELD_SEP = "\x1f"
_LOG_FORMAT = f"--format={_RECORD_SEP}%H{_FIELD_SEP}%an{_FIELD_SEP}%aI{_FIELD_SEP}%s"

_BRANCH_HEADER = re.compile(
    r"^(?:No commits yet on |Initial commit on )?"
    r"(?P<current>.+?)"
    r"(?:\.\.\.(?P<tracking>\S+))?"
    r"(?: \[(?P<counts>[^\]]*)\])?$"
)

_NOTHING_STAGED_MARKERS = (
    "nothing to commit",
    "no changes added to commit",
    "nothing added to commit",
)


class GitBackend(Protocol):
    """The operations the registry issues against one working directory.

    `GitRepo` implements this by shelling out to the git executable. Tests
    substitute an in-memory fake.
    """

    path: Path

    def check_is_repo(self) -> bool: ...

    def is_busy(self) -> bool: ...

    def status(self) -> RawStatus: ...

    def add(self, paths: list[str]) -> None: ...

    def add_all(self) -> None: ...

    def reset(self, paths: list[str] | None = None) -> None: ...

    def checkout(self, target: str, paths: list[str] | None = None) -> None: ...

    def commit(self, message: str) -> str: ...

    def diff(self, path: str, staged: bool = False) -> str: ...

    def log(self, limit: int) -> list[LogEntry]: ...

    def branch_local(self) -> BranchList: ...

    def get_remotes(self) -> list[RemoteInfo]: ...

    def add_remote(self, name: str, url: str) -> None: ...

    def push(self, remote: str | None = None, branch: str | None = None) -> None: ...

    def pull(self) -> None: ...

    def raw(self, args: list[str]) -> str: ...

    def add_config(self, key: str, value: str) -> None: ...

    def init(self) -> None: ...

    def clone(self, url: str, destination: Path) -> None: ...


def parse_porcelain_status(output: str) -> RawStatus:
    """Parses `git status --porcelain=v1 -b -z` output.

    Args:
        output (str): The raw, NUL-separated status output (not stripped).

    Returns:
        RawStatus: The branch header and one record per file.
    """
    status = RawStatus(current=None, tracking=None)
    records = output.split("\0")
    i = 0
    while i < len(records):
        record = records[i]
        i += 1
        if not record:
            continue

        if record.startswith("## "):
            _parse_branch_header(record[3:], status)
            continue

        if len(record) < 4:
            logger.debug(f"Skipping malformed status record: {record!r}")
            continue

        index, working_dir, path = record[0], record[1], record[3:]
        original = None
        # Renames and copies carry the source path as the following record.
        if index in "RC" or working_dir in "RC":
            if i < len(records):
                original = records[i]
                i += 1
        status.files.append(RawFileStatus(path, index, working_dir, original))

    return status


def _parse_branch_header(header: str, status: RawStatus) -> None:
    if header.startswith("HEAD (no branch)"):
        status.current = None
        return

    match = _BRANCH_HEADER.match(header)
    if not match:
        return

    status.current = match.group("current")
    status.tracking = match.group("tracking")
    counts = match.group("counts") or ""
    if ahead := re.search(r"ahead (\d+)", counts):
        status.ahead = int(ahead.group(1))
    if behind := re.search(r"behind (\d+)", counts):
        status.behind = int(behind.group(1))


def parse_log_output(output: str) -> list[LogEntry]:
    """Parses `git log --name-only` output produced with the record format."""
    entries = []
    for chunk in output.split(_RECORD_SEP):
        if not chunk.strip():
            continue
        header, _, body = chunk.partition("\n")
        fields = header.split(_FIELD_SEP)
        if len(fields) < 4:
            logger.debug(f"Skipping malformed log record: {header!r}")
            continue
        full_hash, author, date, message = fields[:4]
        files = [line for line in body.splitlines() if line.strip()]
        entries.append(
            LogEntry(
                full_hash=full_hash,
                short_hash=full_hash[:SHORT_HASH_LENGTH],
                message=message,
                author_name=author,
                date=date,
                changed_files=files,
            )
        )
    return entries


def parse_remotes(output: str) -> list[RemoteInfo]:
    """Parses `git remote -v` output, preserving remote order."""
    urls: dict[str, dict[str, str]] = {}
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        name, url = parts[0], parts[1]
        kind = parts[2].strip("()") if len(parts) > 2 else "fetch"
        urls.setdefault(name, {})[kind] = url
    return [
        RemoteInfo(
            name=name,
            fetch_url=refs.get("fetch", ""),
            push_url=refs.get("push", ""),
        )
        for name, refs in urls.items()
    ]


class GitRepo:
    """A wrapper around the Git command-line interface for one working directory.

    Every call runs the configured git binary with `cwd` set to the bound path
    and raises `GitProcessError` carrying git's own message on failure.

    Attributes:
        path (Path): The directory the process is bound to.
        binary (str): The git executable to invoke.
        timeout (float | None): Seconds before a call is abandoned.
    """

    def __init__(self, path: Path, binary: str = "git", timeout: float | None = None):
        """Initializes the GitRepo instance.

        The directory is not validated here; callers use `check_is_repo`.

        Args:
            path (Path): The directory to run git in.
            binary (str, optional): The git executable. Defaults to "git".
            timeout (float | None, optional): Per-call timeout in seconds.
        """
        self.path = path
        self.binary = binary or "git"
        self.timeout = timeout

    def _run(
        self,
        args: list[str],
        env: dict | None = None,
        strip: bool = True,
    ) -> str:
        """Executes a Git command within the repository context.

        Args:
            args (list[str]): Arguments passed to the git command.
            env (dict | None, optional): Environment for the subprocess.
            strip (bool, optional): Whether to strip surrounding whitespace.
                Porcelain output must keep its leading columns.

        Returns:
            str: The command's stdout.

        Raises:
            GitProcessError: If git exits non-zero, times out or cannot start.
        """
        cmd = [self.binary, "-c", "core.quotepath=off", *args]
        try:
            res = subprocess.run(
                cmd,
                cwd=self.path,
                capture_output=True,
                text=True,
                check=True,
                env=env,
                timeout=self.timeout,
            )
        except subprocess.CalledProcessError as e:
            message = (e.stderr or "").strip() or (e.stdout or "").strip() or str(e)
            raise GitProcessError(message, args) from e
        except subprocess.TimeoutExpired as e:
            raise GitProcessError(f"timed out after {self.timeout}s", args) from e
        except OSError as e:
            raise GitProcessError(str(e), args) from e
        return res.stdout.strip() if strip else res.stdout

    @staticmethod
    def _network_env() -> dict[str, str]:
        """Environment that makes HTTPS authentication fail instead of prompting.

        SSH settings (`GIT_SSH_COMMAND`, `core.sshCommand`) are left as the user
        configured them.
        """
        env = os.environ.copy()
        env["GIT_TERMINAL_PROMPT"] = "0"
        return env

    def check_is_repo(self) -> bool:
        """Reports whether the bound directory lies inside a git working tree."""
        try:
            return self._run(["rev-parse", "--is-inside-work-tree"]) == "true"
        except GitProcessError as e:
            logger.debug(f"Repository check failed for {self.path}: {e}")
            return False

    def is_busy(self) -> bool:
        """Determines if the repository is currently locked by a Git operation.

        Checks for in-progress merges, rebases and similar markers, then for an
        `index.lock`. A fresh lock gets one short retry; a stale one is reported.

        Returns:
            bool: True if the repository is busy/locked, False otherwise.
        """
        try:
            git_dir = Path(self._run(["rev-parse", "--absolute-git-dir"]))
        except GitProcessError as e:
            logger.debug(f"Could not locate git directory for {self.path}: {e}")
            return False

        # 1. Check for operational locks (e.g., MERGE_HEAD).
        for f in GIT_LOCK_FILES:
            if (git_dir / f).exists():
                return True

        # 2. Check for index.lock held by another process.
        lock_file = git_dir / "index.lock"
        if lock_file.exists():
            try:
                age_hours = (time.time() - lock_file.stat().st_mtime) / 3600
                if age_hours > STALE_LOCK_HOURS:
                    logger.warning(
                        f"Stale lock detected in {self.path} ({age_hours:.1f}h old). "
                        f"Remove {lock_file} to fix."
                    )
                    return True
            except OSError:
                return False  # File vanished (race resolved).

            time.sleep(LOCK_RETRY_SECONDS)
            if lock_file.exists():
                return True

        return False

    def current_branch(self) -> str:
        """Retrieves the name of the currently checked-out branch.

        Returns:
            str: The branch name, or an empty string when HEAD is detached.
        """
        return self._run(["branch", "--show-current"])

    def status(self) -> RawStatus:
        output = self._run(
            ["status", "--porcelain=v1", "-b", "-z", "--untracked-files=all"],
            strip=False,
        )
        return parse_porcelain_status(output)

    def add(self, paths: list[str]) -> None:
        if not paths:
            return
        self._run(["add", "--", *paths])

    def add_all(self) -> None:
        """Stages all changes (modified, deleted, and untracked files)."""
        self._run(["add", "."])

    def reset(self, paths: list[str] | None = None) -> None:
        """Unstages the given paths, or the whole index when none are given."""
        cmd = ["reset", "-q", "HEAD"]
        if paths:
            cmd.extend(["--", *paths])
        self._run(cmd)

    def checkout(self, target: str, paths: list[str] | None = None) -> None:
        """Checks out a branch, or restores paths from a specific revision.

        Args:
            target (str): The branch name or revision.
            paths (list[str] | None, optional): Paths to restore from `target`.
                Local edits to these paths are overwritten.
        """
        cmd = ["checkout", target]
        if paths:
            cmd.extend(["--", *paths])
        self._run(cmd)

    def commit(self, message: str) -> str:
        """Creates a new commit from the staged content.

        Raises:
            NothingStagedError: If git refuses because nothing is staged.
        """
        try:
            return self._run(["commit", "-m", message])
        except GitProcessError as e:
            if any(marker in e.message for marker in _NOTHING_STAGED_MARKERS):
                raise NothingStagedError(e.message, e.args_used) from e
            raise

    def diff(self, path: str, staged: bool = False) -> str:
        cmd = ["diff"]
        if staged:
            cmd.append("--cached")
        cmd.extend(["--", path])
        return self._run(cmd, strip=False)

    def log(self, limit: int) -> list[LogEntry]:
        output = self._run(["log", f"--max-count={limit}", "--name-only", _LOG_FORMAT])
        return parse_log_output(output)

    def branch_local(self) -> BranchList:
        output = self._run(["branch", "--list", "--format=%(refname:short)"])
        branches = [line.strip() for line in output.splitlines() if line.strip()]
        return BranchList(current=self.current_branch(), all=branches)

    def get_remotes(self) -> list[RemoteInfo]:
        return parse_remotes(self._run(["remote", "-v"]))

    def add_remote(self, name: str, url: str) -> None:
        self._run(["remote", "add", name, url])

    def push(self, remote: str | None = None, branch: str | None = None) -> None:
        """Pushes the current branch.

        Passing both `remote` and `branch` pushes with `--set-upstream`.
        """
        cmd = ["push"]
        if remote and branch:
            cmd.extend(["-u", remote, branch])
        self._run(cmd, env=self._network_env())

    def pull(self) -> None:
        self._run(["pull"], env=self._network_env())

    def raw(self, args: list[str]) -> str:
        return self._run(args)

    def add_config(self, key: str, value: str) -> None:
        """Writes a repository-scoped (local) configuration entry."""
        self._run(["config", "--local", key, value])

    def init(self) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        self._run(["init"])

    def clone(self, url: str, destination: Path) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        self._run(["clone", url, str(destination)], env=self._network_env())

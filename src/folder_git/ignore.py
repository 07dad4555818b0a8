"""Literal line editing of a repository's .gitignore file.

Matching here is exact (after trimming), never glob-based: these helpers only
answer "did someone list this path verbatim". Whether git actually ignores a
path is answered by `git check-ignore` in the registry.
"""

import logging
from pathlib import Path

from .constants import APP_NAME, IGNORE_FILE

logger = logging.getLogger(APP_NAME)


def _matches(line: str, relative_path: str) -> bool:
    trimmed = line.strip()
    return trimmed == relative_path or trimmed == relative_path + "/"


def ignore_file(repo_path: Path) -> Path:
    return repo_path / IGNORE_FILE


def is_explicitly_ignored(repo_path: Path, relative_path: str) -> bool:
    """Checks whether `.gitignore` lists the path (or the path as a directory).

    Args:
        repo_path (Path): The repository root.
        relative_path (str): Path relative to the repository root.

    Returns:
        bool: True if a trimmed line equals `relative_path` or `relative_path/`.
    """
    gitignore = ignore_file(repo_path)
    if not gitignore.exists():
        return False
    content = gitignore.read_text(encoding="utf-8")
    return any(_matches(line, relative_path) for line in content.splitlines())


def add_to_ignore_list(repo_path: Path, relative_path: str) -> None:
    """Appends a path to `.gitignore`, starting it on a fresh line."""
    gitignore = ignore_file(repo_path)

    content = ""
    if gitignore.exists():
        content = gitignore.read_text(encoding="utf-8")

    prefix = "\n" if content and not content.endswith("\n") else ""
    with open(gitignore, "a", encoding="utf-8") as f:
        f.write(f"{prefix}{relative_path}\n")
    logger.info(f"IGNORED {repo_path.name}: added '{relative_path}' to {IGNORE_FILE}")


def remove_from_ignore_list(repo_path: Path, relative_path: str) -> None:
    """Rewrites `.gitignore` without the lines that exactly list the path."""
    gitignore = ignore_file(repo_path)
    if not gitignore.exists():
        return

    content = gitignore.read_text(encoding="utf-8")
    lines = content.splitlines()
    kept = [line for line in lines if not _matches(line, relative_path)]
    if len(kept) == len(lines):
        return

    text = "\n".join(kept)
    if kept and content.endswith("\n"):
        text += "\n"
    gitignore.write_text(text, encoding="utf-8")
    logger.info(
        f"UNIGNORED {repo_path.name}: removed '{relative_path}' from {IGNORE_FILE}"
    )

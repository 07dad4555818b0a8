"""Vault-relative folder identifiers and their mapping to disk paths.

A folder identifier is a forward-slash path relative to the vault root, with
"" denoting the root itself. Ownership of a file goes to the deepest tracked
folder containing it.
"""

from collections.abc import Iterable
from pathlib import Path

from .constants import ROOT_SENTINELS


def normalize_folder_id(folder_id: str) -> str:
    """Canonicalizes a vault-relative folder identifier.

    Backslashes become forward slashes and surrounding slashes are dropped, so
    "notes/", "/notes" and "notes" all identify the same folder. The root
    sentinels collapse to "".
    """
    cleaned = folder_id.replace("\\", "/").strip()
    if cleaned in ROOT_SENTINELS:
        return ""
    return cleaned.strip("/")


def find_owner(file_path: str, folder_ids: Iterable[str]) -> str | None:
    """Finds the most specific folder that contains a vault-relative path.

    A folder matches when it is the root (""), equals the path, or is a
    directory prefix of it. The longest match wins.

    Args:
        file_path (str): Vault-relative path of a file or folder.
        folder_ids (Iterable[str]): Registered folder identifiers.

    Returns:
        str | None: The owning folder identifier, or None if nothing matches.
    """
    best: str | None = None
    for folder in folder_ids:
        matches = (
            folder == "" or file_path == folder or file_path.startswith(folder + "/")
        )
        if matches and (best is None or len(folder) > len(best)):
            best = folder
    return best


class PathResolver:
    """Maps folder identifiers to absolute paths under the vault root.

    Attributes:
        vault_path (Path): The absolute vault base directory.
    """

    def __init__(self, vault_path: Path):
        self.vault_path = vault_path

    def resolve_absolute(self, folder_id: str) -> Path:
        if folder_id in ROOT_SENTINELS:
            return self.vault_path
        return self.vault_path / folder_id

    def to_vault_relative(self, path: Path) -> str | None:
        """Converts an absolute path back to a vault-relative identifier.

        Returns:
            str | None: The relative path ("" for the vault itself), or None if
            the path lies outside the vault.
        """
        try:
            relative = path.resolve().relative_to(self.vault_path.resolve())
        except ValueError:
            return None
        text = relative.as_posix()
        return "" if text == "." else text

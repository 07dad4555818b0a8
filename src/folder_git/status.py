"""Translation of raw porcelain status codes into the normalized status model.

Each record carries an index column code and a working-tree column code. The
precedence is fixed: untracked and conflicted records are classified first;
everything else may yield a staged entry, a changed entry, or both.
"""

from .models import (
    DisplayStatus,
    FileStatusEntry,
    RawFileStatus,
    RawStatus,
    RepositoryStatus,
)

_NO_CHANGE = (" ", "?", "")

_CODE_MAP = {
    "M": DisplayStatus.MODIFIED,
    "A": DisplayStatus.ADDED,
    "D": DisplayStatus.DELETED,
    "R": DisplayStatus.RENAMED,
    "?": DisplayStatus.UNTRACKED,
    "U": DisplayStatus.UNMERGED,
}


def map_status(code: str) -> DisplayStatus:
    """Maps a single porcelain code to its display status.

    Unknown codes (copies, type changes, ...) are reported as Modified.
    """
    return _CODE_MAP.get(code, DisplayStatus.MODIFIED)


def to_vault_path(folder_id: str, relative_path: str) -> str:
    return f"{folder_id}/{relative_path}" if folder_id else relative_path


def translate_files(
    folder_id: str, files: list[RawFileStatus]
) -> tuple[list[FileStatusEntry], list[FileStatusEntry], list[str], list[str]]:
    """Sorts raw file records into the staged/changed/untracked/conflicted buckets.

    Args:
        folder_id (str): The owning repository's folder identifier.
        files (list[RawFileStatus]): Records in git's output order.

    Returns:
        tuple: (staged, changed, untracked, conflicted). Untracked and conflicted
        hold vault paths. A path never appears twice within one bucket.
    """
    staged: list[FileStatusEntry] = []
    changed: list[FileStatusEntry] = []
    untracked: list[str] = []
    conflicted: list[str] = []
    seen: dict[str, set[str]] = {
        "staged": set(),
        "changed": set(),
        "untracked": set(),
        "conflicted": set(),
    }

    for record in files:
        vault_path = to_vault_path(folder_id, record.path)

        if record.index == "?" and record.working_dir == "?":
            if vault_path not in seen["untracked"]:
                seen["untracked"].add(vault_path)
                untracked.append(vault_path)
            continue

        if record.index == "U" or record.working_dir == "U":
            if vault_path not in seen["conflicted"]:
                seen["conflicted"].add(vault_path)
                conflicted.append(vault_path)
            continue

        if record.index not in _NO_CHANGE and vault_path not in seen["staged"]:
            seen["staged"].add(vault_path)
            staged.append(_entry(record, vault_path, record.index))

        if record.working_dir not in _NO_CHANGE and vault_path not in seen["changed"]:
            seen["changed"].add(vault_path)
            changed.append(_entry(record, vault_path, record.working_dir))

    return staged, changed, untracked, conflicted


def _entry(record: RawFileStatus, vault_path: str, code: str) -> FileStatusEntry:
    return FileStatusEntry(
        relative_path=record.path,
        vault_path=vault_path,
        index_code=record.index,
        working_tree_code=record.working_dir,
        display_status=map_status(code),
    )


def translate_status(folder_id: str, raw: RawStatus) -> RepositoryStatus:
    """Builds the normalized snapshot for one repository."""
    staged, changed, untracked, conflicted = translate_files(folder_id, raw.files)
    return RepositoryStatus(
        folder_id=folder_id,
        current_branch=raw.current or "HEAD",
        staged=staged,
        changed=changed,
        untracked=untracked,
        conflicted=conflicted,
        ahead=raw.ahead,
        behind=raw.behind,
        tracking=raw.tracking,
    )

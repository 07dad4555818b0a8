from pathlib import Path

import pytest

from folder_git.paths import PathResolver, find_owner, normalize_folder_id


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("", ""),
        ("/", ""),
        ("notes", "notes"),
        ("notes/", "notes"),
        ("/notes/", "notes"),
        ("a\\b", "a/b"),
        ("  work  ", "work"),
    ],
)
def test_normalize_folder_id(raw: str, expected: str) -> None:
    """Verifies trailing separators, backslashes and root sentinels are canonicalized."""
    assert normalize_folder_id(raw) == expected


@pytest.mark.parametrize(
    ("file_path", "expected"),
    [
        ("a/b/c.md", "a/b"),
        ("a/x.md", "a"),
        ("z.md", ""),
        ("a", "a"),
        ("ab/c.md", ""),
        ("a/bc/d.md", "a"),
    ],
)
def test_find_owner_prefers_longest_prefix(file_path: str, expected: str) -> None:
    """Verifies the most specific registered folder owns a path."""
    assert find_owner(file_path, ["", "a", "a/b"]) == expected


def test_find_owner_without_root_returns_none() -> None:
    """Verifies paths outside every folder have no owner when the root is untracked."""
    assert find_owner("other/file.md", ["a", "a/b"]) is None
    assert find_owner("anything", []) is None


def test_resolver_maps_identifiers(tmp_path: Path) -> None:
    """Verifies root sentinels resolve to the vault and others to subfolders."""
    resolver = PathResolver(tmp_path)

    assert resolver.resolve_absolute("") == tmp_path
    assert resolver.resolve_absolute("/") == tmp_path
    assert resolver.resolve_absolute("notes/daily") == tmp_path / "notes" / "daily"


def test_resolver_vault_relative(tmp_path: Path) -> None:
    """Verifies absolute paths convert back, and outside paths yield None."""
    resolver = PathResolver(tmp_path / "vault")
    (tmp_path / "vault" / "notes").mkdir(parents=True)

    assert resolver.to_vault_relative(tmp_path / "vault" / "notes") == "notes"
    assert resolver.to_vault_relative(tmp_path / "vault") == ""
    assert resolver.to_vault_relative(tmp_path / "elsewhere") is None

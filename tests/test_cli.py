"""Tests for the Command Line Interface (CLI) module."""

from contextlib import nullcontext
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from folder_git import cli
from folder_git.config import Config
from folder_git.errors import GitProcessError, NothingStagedError
from folder_git.models import RawFileStatus, RawStatus, RepositoryConfig
from folder_git.registry import RepositoryRegistry
from folder_git.system import SystemStrategy


@pytest.fixture
def use_registry(registry: RepositoryRegistry, mocker: MagicMock) -> RepositoryRegistry:
    """Routes every CLI command to the fake-backed registry fixture."""
    mocker.patch("folder_git.cli.Config.load", return_value=Config())
    mocker.patch(
        "folder_git.cli.open_registry",
        side_effect=lambda *_args, **_kwargs: nullcontext(registry),
    )
    return registry


def test_main_runs_daemon_command(mocker: MagicMock) -> None:
    """Verifies that the `daemon` command invokes the daemon main loop.

    Args:
        mocker (MagicMock): Pytest fixture for mocking.
    """
    mock_daemon = mocker.patch("folder_git.daemon.main")

    cli.main(["daemon"])

    mock_daemon.assert_called_with(interactive=True)


def test_status_lists_buckets(
    use_registry: RepositoryRegistry, capsys: pytest.CaptureFixture
) -> None:
    """Verifies staged and untracked files are shown with vault paths.

    Args:
        use_registry (RepositoryRegistry): The registry the CLI is routed to.
        capsys (pytest.CaptureFixture): Pytest fixture for capturing stdout.
    """
    git = use_registry.add_repo(RepositoryConfig("notes")).git
    git.raw_status = RawStatus(
        current="main",
        tracking=None,
        files=[RawFileStatus("a.md", "A", " "), RawFileStatus("b.md", "?", "?")],
    )

    cli.main(["status", "notes"])

    out = capsys.readouterr().out
    assert "Staged (1)" in out
    assert "notes/a.md" in out
    assert "Untracked (1)" in out
    assert "notes/b.md" in out


def test_status_hides_untracked_when_disabled(
    use_registry: RepositoryRegistry, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    config = Config()
    config.core.show_untracked = False
    mocker.patch("folder_git.cli.Config.load", return_value=config)
    git = use_registry.add_repo(RepositoryConfig("notes")).git
    git.raw_status = RawStatus(
        current="main", tracking=None, files=[RawFileStatus("b.md", "?", "?")]
    )

    cli.main(["status"])

    assert "notes/b.md" not in capsys.readouterr().out


def test_add_persists_repository(
    use_registry: RepositoryRegistry, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies a validated folder is appended to the saved repository list."""
    mocker.patch(
        "folder_git.cli.load_repositories", return_value=[RepositoryConfig("old")]
    )
    mock_save = mocker.patch("folder_git.cli.save_repositories")

    cli.main(["add", "journal/", "--interval", "15", "--no-push"])

    saved = mock_save.call_args.args[0]
    assert [r.folder_id for r in saved] == ["old", "journal"]
    assert saved[1].auto_commit_interval == 15
    assert saved[1].auto_push is False
    assert "Tracking" in capsys.readouterr().out


def test_add_rejects_non_repository(
    use_registry: RepositoryRegistry, mocker: MagicMock, capsys: pytest.CaptureFixture
) -> None:
    """Verifies nothing is saved and the error is reported for a plain folder."""
    factory = use_registry._git_factory
    factory.non_repos.add(use_registry.resolver.resolve_absolute("plain"))
    mocker.patch("folder_git.cli.load_repositories", return_value=[])
    mock_save = mocker.patch("folder_git.cli.save_repositories")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["add", "plain"])

    assert excinfo.value.code == 1
    mock_save.assert_not_called()
    assert "ERROR" in capsys.readouterr().out


def test_remove_persists_remaining(mocker: MagicMock) -> None:
    mocker.patch(
        "folder_git.cli.load_repositories",
        return_value=[RepositoryConfig("a"), RepositoryConfig("b")],
    )
    mock_save = mocker.patch("folder_git.cli.save_repositories")

    cli.main(["remove", "a/"])

    mock_save.assert_called_once_with([RepositoryConfig("b")])


def test_discard_requires_confirmation(use_registry: RepositoryRegistry) -> None:
    """Verifies discard refuses to run without --yes."""
    git = use_registry.add_repo(RepositoryConfig("notes")).git

    with pytest.raises(SystemExit):
        cli.main(["discard", "notes", "a.md"])
    assert "checkout" not in git.names()

    cli.main(["discard", "notes", "a.md", "--yes"])
    assert ("checkout", "HEAD", ["a.md"]) in git.calls


def test_commit_error_exits_nonzero(
    use_registry: RepositoryRegistry, capsys: pytest.CaptureFixture
) -> None:
    """Verifies library errors are printed and turned into exit status 1."""
    git = use_registry.add_repo(RepositoryConfig("notes")).git
    git.failures["commit"] = NothingStagedError("nothing to commit")

    with pytest.raises(SystemExit) as excinfo:
        cli.main(["commit", "notes", "-m", "msg"])

    assert excinfo.value.code == 1
    assert "nothing to commit" in capsys.readouterr().out


def test_unknown_folder_reports_error(
    use_registry: RepositoryRegistry, capsys: pytest.CaptureFixture
) -> None:
    with pytest.raises(SystemExit):
        cli.main(["push", "ghost"])

    assert "No repository configured" in capsys.readouterr().out


def test_stage_requires_paths_or_all() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["stage", "notes"])

    assert excinfo.value.code == 2


def test_ignore_add_and_check(
    use_registry: RepositoryRegistry, capsys: pytest.CaptureFixture
) -> None:
    use_registry.add_repo(RepositoryConfig("notes"))
    path: Path = use_registry.resolver.resolve_absolute("notes")
    path.mkdir()

    cli.main(["ignore", "add", "notes", "drafts"])
    cli.main(["ignore", "check", "notes", "drafts"])

    assert (path / ".gitignore").read_text() == "drafts\n"
    assert "Listed in .gitignore: yes" in capsys.readouterr().out


def test_owner_prints_longest_match(
    use_registry: RepositoryRegistry, capsys: pytest.CaptureFixture
) -> None:
    use_registry.add_repo(RepositoryConfig(""))
    use_registry.add_repo(RepositoryConfig("a/b"))

    cli.main(["owner", "a/b/c.md"])

    assert capsys.readouterr().out.strip() == "a/b"


def test_open_registry_is_quiet_and_unscheduled(
    registry: RepositoryRegistry, mocker: MagicMock
) -> None:
    """Verifies CLI commands arm no timers and send no desktop notifications."""
    mocker.patch("folder_git.cli.load_repositories", return_value=[])
    mock_from_config = mocker.patch(
        "folder_git.cli.RepositoryRegistry.from_config", return_value=registry
    )

    with cli.open_registry(Config()):
        pass

    kwargs = mock_from_config.call_args.kwargs
    assert kwargs["auto_commit"] is False
    assert type(kwargs["notifier"]) is SystemStrategy


def test_status_reports_failing_repository_and_continues(
    use_registry: RepositoryRegistry, capsys: pytest.CaptureFixture
) -> None:
    """Verifies one repository's git failure does not hide the others."""
    broken = use_registry.add_repo(RepositoryConfig("broken")).git
    broken.failures["status"] = GitProcessError("index file corrupt")
    use_registry.add_repo(RepositoryConfig("ok"))

    cli.main(["status"])

    out = capsys.readouterr().out
    assert "STATUS ERROR broken" in out
    assert "Working tree clean." in out


def test_status_of_unknown_folder_exits_nonzero(
    use_registry: RepositoryRegistry, capsys: pytest.CaptureFixture
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["status", "ghost"])

    assert excinfo.value.code == 1
    assert "No repository configured" in capsys.readouterr().out

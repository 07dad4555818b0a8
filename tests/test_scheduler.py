"""Tests for auto-commit planning and the recurring timer."""

import datetime
from unittest.mock import MagicMock

import pytest

from folder_git.models import (
    DisplayStatus,
    FileStatusEntry,
    RepositoryConfig,
    RepositoryStatus,
)
from folder_git.scheduler import (
    AutoCommitAction,
    AutoCommitScheduler,
    RecurringTimer,
    format_timestamp,
    plan_auto_commit,
    render_commit_message,
)

from conftest import FakeTimerFactory


def _dirty() -> RepositoryStatus:
    entry = FileStatusEntry("a.md", "a.md", " ", "M", DisplayStatus.MODIFIED)
    return RepositoryStatus(folder_id="", current_branch="main", changed=[entry])


def test_plan_skips_clean_repository() -> None:
    """Verifies no commit is planned when every bucket is empty."""
    clean = RepositoryStatus(folder_id="", current_branch="main")

    assert plan_auto_commit(clean, RepositoryConfig("")) is AutoCommitAction.SKIP


def test_plan_respects_auto_push() -> None:
    assert (
        plan_auto_commit(_dirty(), RepositoryConfig("", auto_push=True))
        is AutoCommitAction.COMMIT_AND_PUSH
    )
    assert (
        plan_auto_commit(_dirty(), RepositoryConfig("", auto_push=False))
        is AutoCommitAction.COMMIT
    )


def test_plan_counts_untracked_only_changes() -> None:
    """Verifies a repository with only untracked files is still committed."""
    status = RepositoryStatus(folder_id="", current_branch="main", untracked=["n.md"])

    assert plan_auto_commit(status, RepositoryConfig("")) is not AutoCommitAction.SKIP


def test_render_commit_message_with_fixed_clock() -> None:
    """Verifies the date token is replaced with a millisecond UTC timestamp."""
    now = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)

    assert render_commit_message("backup: {{date}}", now) == (
        "backup: 2024-01-01T00:00:00.000Z"
    )


def test_render_without_token_is_verbatim() -> None:
    now = datetime.datetime(2024, 1, 1, tzinfo=datetime.timezone.utc)

    assert render_commit_message("manual snapshot", now) == "manual snapshot"


def test_format_timestamp_converts_to_utc() -> None:
    """Verifies offsets are normalized and naive values are taken as UTC."""
    plus_two = datetime.timezone(datetime.timedelta(hours=2))
    aware = datetime.datetime(2024, 6, 1, 14, 30, 5, 123456, tzinfo=plus_two)
    naive = datetime.datetime(2024, 6, 1, 12, 30, 5, 999000)

    assert format_timestamp(aware) == "2024-06-01T12:30:05.123Z"
    assert format_timestamp(naive) == "2024-06-01T12:30:05.999Z"


def test_timer_rearms_after_callback_failure(timer_factory: FakeTimerFactory) -> None:
    """Verifies a raising callback is logged and the next firing is still armed."""
    callback = MagicMock(side_effect=[RuntimeError("boom"), None])
    timer = RecurringTimer(60, callback, name="notes", timer_factory=timer_factory)

    timer.start()
    timer_factory.fire_latest()
    timer_factory.fire_latest()

    assert callback.call_count == 2
    assert len(timer_factory.timers) == 3
    assert timer_factory.timers[-1].started
    assert all(t.daemon for t in timer_factory.timers)


def test_timer_cancel_stops_future_firings(timer_factory: FakeTimerFactory) -> None:
    callback = MagicMock()
    timer = RecurringTimer(60, callback, timer_factory=timer_factory)

    timer.start()
    first = timer_factory.timers[0]
    timer.cancel()
    first.function()

    assert first.cancelled
    assert not timer.is_running
    callback.assert_not_called()
    assert timer_factory.pending == []


def test_scheduler_interval_in_minutes(timer_factory: FakeTimerFactory) -> None:
    """Verifies the interval is converted to seconds and zero disables the timer."""
    scheduler = AutoCommitScheduler(timer_factory=timer_factory)

    assert scheduler.start("off", 0, MagicMock()) is None
    handle = scheduler.start("notes", 5, MagicMock())

    assert handle is not None
    assert timer_factory.timers[0].interval == 300
    assert scheduler.active_ids == ["notes"]


def test_scheduler_restart_replaces_timer(timer_factory: FakeTimerFactory) -> None:
    """Verifies at most one timer exists per repository."""
    scheduler = AutoCommitScheduler(timer_factory=timer_factory)

    scheduler.start("notes", 5, MagicMock())
    scheduler.start("notes", 10, MagicMock())

    assert timer_factory.timers[0].cancelled
    assert len(timer_factory.pending) == 1
    assert timer_factory.pending[0].interval == 600


@pytest.mark.parametrize("folder_ids", [["a"], ["a", "b", ""]])
def test_stop_all_cancels_everything(
    timer_factory: FakeTimerFactory, folder_ids: list[str]
) -> None:
    scheduler = AutoCommitScheduler(timer_factory=timer_factory)
    for folder_id in folder_ids:
        scheduler.start(folder_id, 1, MagicMock())

    scheduler.stop_all()

    assert scheduler.active_ids == []
    assert timer_factory.pending == []


def test_plan_skips_unresolved_conflicts() -> None:
    """Verifies a repository mid-merge with conflicts is never auto-committed."""
    status = _dirty()
    status.conflicted = ["f.md"]

    assert plan_auto_commit(status, RepositoryConfig("")) is AutoCommitAction.SKIP

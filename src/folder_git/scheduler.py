"""Auto-commit planning and per-repository recurring timers.

The decision of what a firing should do is a pure function of the current
status and configuration (`plan_auto_commit`), so it can be tested without
timers. `RecurringTimer` re-arms a `threading.Timer` after every firing,
whether the callback succeeded or not.
"""

import datetime
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from .constants import APP_NAME, DATE_TOKEN
from .models import RepositoryConfig, RepositoryStatus

logger = logging.getLogger(APP_NAME)

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


class AutoCommitAction(Enum):
    SKIP = "skip"
    COMMIT = "commit"
    COMMIT_AND_PUSH = "commit+push"


@dataclass(frozen=True)
class AutoCommitOutcome:
    """The result of one auto-commit firing.

    Attributes:
        action (AutoCommitAction): What the firing attempted.
        message (str | None): The commit message used, if a commit was made.
        error (str | None): The failure message, if the cycle failed.
    """

    action: AutoCommitAction
    message: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def plan_auto_commit(
    status: RepositoryStatus, config: RepositoryConfig
) -> AutoCommitAction:
    """Decides what an auto-commit firing should do.

    A clean repository is skipped so no empty commits are produced, and so is
    one with unresolved conflicts so conflict markers are never committed.
    """
    if status.is_clean or status.conflicted:
        return AutoCommitAction.SKIP
    if config.auto_push:
        return AutoCommitAction.COMMIT_AND_PUSH
    return AutoCommitAction.COMMIT


def format_timestamp(now: datetime.datetime) -> str:
    """Formats a moment as UTC ISO-8601 with milliseconds and a Z suffix."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    utc = now.astimezone(datetime.timezone.utc)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def render_commit_message(template: str, now: datetime.datetime) -> str:
    return template.replace(DATE_TOKEN, format_timestamp(now))


def utc_now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class RecurringTimer:
    """Calls a function every `interval` seconds until cancelled.

    Failures raised by the callback are logged and never stop later firings.

    Attributes:
        interval (float): Seconds between firings.
        name (str): Label used in log messages.
    """

    def __init__(
        self,
        interval: float,
        callback: Callable[[], object],
        name: str = "",
        timer_factory: TimerFactory = threading.Timer,
    ):
        self.interval = interval
        self.name = name
        self._callback = callback
        self._timer_factory = timer_factory
        self._timer: threading.Timer | None = None
        self._running = False
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            self._running = True
            self._schedule_next()

    def cancel(self) -> None:
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _schedule_next(self) -> None:
        if not self._running:
            return
        self._timer = self._timer_factory(self.interval, self._fire)
        self._timer.daemon = True
        self._timer.start()

    def _fire(self) -> None:
        if not self._running:
            return
        try:
            self._callback()
        except Exception as e:
            logger.error(f"TIMER ERROR {self.name}: {e}")
        finally:
            with self._lock:
                self._schedule_next()


class AutoCommitScheduler:
    """Owns one recurring timer per repository with a positive interval."""

    def __init__(self, timer_factory: TimerFactory = threading.Timer):
        self._timer_factory = timer_factory
        self._timers: dict[str, RecurringTimer] = {}
        self._lock = threading.Lock()

    @property
    def active_ids(self) -> list[str]:
        with self._lock:
            return list(self._timers)

    def start(
        self, folder_id: str, interval_minutes: int, callback: Callable[[], object]
    ) -> RecurringTimer | None:
        """Arms the timer for a repository, replacing any existing one.

        Args:
            folder_id (str): The repository's folder identifier.
            interval_minutes (int): Minutes between firings; 0 disables.
            callback (Callable[[], object]): The firing action.

        Returns:
            RecurringTimer | None: The handle, or None when disabled.
        """
        self.stop(folder_id)
        if interval_minutes <= 0:
            return None

        timer = RecurringTimer(
            interval_minutes * 60,
            callback,
            name=folder_id or "/",
            timer_factory=self._timer_factory,
        )
        with self._lock:
            self._timers[folder_id] = timer
        timer.start()
        logger.info(
            f"SCHEDULED {folder_id or '/'}: auto-commit every {interval_minutes} min."
        )
        return timer

    def stop(self, folder_id: str) -> None:
        with self._lock:
            timer = self._timers.pop(folder_id, None)
        if timer is not None:
            timer.cancel()
            logger.debug(f"UNSCHEDULED {folder_id or '/'}")

    def stop_all(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

import atexit
import logging
import os
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from types import FrameType

from rich.console import Console

from .config import Config, load_repositories
from .constants import APP_NAME, LOG_FILE, PID_FILE
from .errors import FolderGitError
from .models import RepositoryStatus
from .registry import RepositoryRegistry

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

console = Console()


def setup_logging(interactive: bool, config: Config | None = None) -> None:
    """Configures the logging subsystem.

    Args:
        interactive (bool): If True, logs to stdout. If False, logs to stderr and
                            a rotating log file.
        config (Config | None): Supplies the log size limit.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    # Always log to stderr (captured by systemd/launchd).
    stream_handler = logging.StreamHandler(
        sys.stderr if not interactive else sys.stdout
    )
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if not interactive:
        LOG_FILE.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=(config or Config()).limits.max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def poll_statuses(
    registry: RepositoryRegistry,
    previous: dict[str, RepositoryStatus] | None = None,
) -> dict[str, RepositoryStatus]:
    """Refreshes every repository's status and logs what changed.

    A failing repository is logged and left out of the result; the others are
    still polled.

    Args:
        registry (RepositoryRegistry): The registry to poll.
        previous (dict | None): The last snapshot, used to log only changes.

    Returns:
        dict[str, RepositoryStatus]: The new snapshot keyed by folder identifier.
    """
    previous = previous or {}
    statuses: dict[str, RepositoryStatus] = {}
    for folder_id in registry.get_all_paths():
        label = folder_id or "/"
        try:
            status = registry.get_status(folder_id)
        except FolderGitError as e:
            logger.warning(f"STATUS ERROR {label}: {e}")
            continue

        statuses[folder_id] = status
        summary = (status.change_count, status.ahead, status.behind)
        old = previous.get(folder_id)
        if old is None or summary != (old.change_count, old.ahead, old.behind):
            logger.info(
                f"STATUS {label}: {status.change_count} pending, "
                f"ahead {status.ahead}, behind {status.behind} "
                f"on {status.current_branch}"
            )
    return statuses


def run(
    registry: RepositoryRegistry,
    config: Config,
    stop_event: threading.Event,
) -> None:
    """Runs the status poll loop until `stop_event` is set.

    Auto-commit timers run on their own threads; this loop only refreshes the
    cached status snapshot.
    """
    interval = config.core.refresh_interval
    if interval <= 0:
        stop_event.wait()
        return

    statuses: dict[str, RepositoryStatus] = {}
    while not stop_event.is_set():
        statuses = poll_statuses(registry, statuses)
        stop_event.wait(interval)


def main(interactive: bool = False) -> None:
    """The daemon entry point.

    Loads settings and the repository list, starts every auto-commit timer,
    and keeps polling until SIGINT or SIGTERM.

    Args:
        interactive (bool, optional): Log to stdout instead of the log file.
    """
    config = Config.load()
    setup_logging(interactive, config)

    repos = load_repositories()
    if not repos:
        console.print(
            "[yellow]No repositories configured. "
            "Run 'folder-git add <folder>' first.[/yellow]"
        )
        return

    registry = RepositoryRegistry.from_config(config)
    failed = registry.initialize(repos)
    logger.info(
        f"STARTED: {len(repos) - len(failed)} of {len(repos)} repositories active "
        f"in {config.vault}."
    )

    stop_event = threading.Event()

    def stop_handler(_signum: int, _frame: FrameType | None) -> None:
        stop_event.set()

    signal.signal(signal.SIGTERM, stop_handler)
    signal.signal(signal.SIGINT, stop_handler)

    # PID File Management.
    try:
        PID_FILE.parent.mkdir(parents=True, exist_ok=True)
        PID_FILE.write_text(str(os.getpid()))
        atexit.register(lambda: PID_FILE.unlink(missing_ok=True))
    except OSError as e:
        logger.warning(f"Could not write PID file: {e}")

    try:
        run(registry, config, stop_event)
    finally:
        registry.destroy()
        logger.info("STOPPED: all timers cancelled.")


if __name__ == "__main__":
    main()

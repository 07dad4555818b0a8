import argparse
import sys
from collections.abc import Iterator
from contextlib import contextmanager

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from . import daemon
from .config import Config, load_repositories, save_repositories
from .constants import DEFAULT_COMMIT_TEMPLATE, DEFAULT_LOG_LIMIT
from .errors import FolderGitError, GitProcessError
from .models import DisplayStatus, RepositoryConfig, RepositoryStatus
from .paths import normalize_folder_id
from .registry import RepositoryRegistry
from .system import SystemStrategy

console = Console()

_STATUS_STYLES = {
    DisplayStatus.MODIFIED: "yellow",
    DisplayStatus.ADDED: "green",
    DisplayStatus.DELETED: "red",
    DisplayStatus.RENAMED: "cyan",
    DisplayStatus.UNTRACKED: "green",
    DisplayStatus.UNMERGED: "bold red",
}


def _label(folder_id: str) -> str:
    return folder_id or "/"


@contextmanager
def open_registry(config: Config | None = None) -> Iterator[RepositoryRegistry]:
    """Yields a registry holding every configured repository.

    No auto-commit timers are armed, and repositories that fail to load are
    only logged (no desktop notification).
    """
    config = config or Config.load()
    registry = RepositoryRegistry.from_config(
        config, notifier=SystemStrategy(), auto_commit=False
    )
    registry.initialize(load_repositories())
    try:
        yield registry
    finally:
        registry.destroy()


def render_status(status: RepositoryStatus, show_untracked: bool = True) -> Panel:
    """Builds the rich panel describing one repository's status."""
    content = Text()
    content.append("Branch: ", style="bold")
    content.append(status.current_branch, style="cyan")
    if status.tracking:
        content.append(f" -> {status.tracking}", style="dim")
    content.append(f"  ↑{status.ahead} ↓{status.behind}\n", style="dim")

    def section(title: str, style: str, lines: list[tuple[str, str]]) -> None:
        if not lines:
            return
        content.append(f"\n{title} ({len(lines)})\n", style=f"bold {style}")
        for code, path in lines:
            line_style = _STATUS_STYLES.get(DisplayStatus(code), "white")
            content.append(f"   {code} ", style=line_style)
            content.append(f"{path}\n")

    section(
        "Staged",
        "green",
        [(e.display_status.value, e.vault_path) for e in status.staged],
    )
    section(
        "Changes",
        "yellow",
        [(e.display_status.value, e.vault_path) for e in status.changed],
    )
    if show_untracked:
        section(
            "Untracked",
            "green",
            [(DisplayStatus.UNTRACKED.value, p) for p in status.untracked],
        )
    section(
        "Conflicts",
        "red",
        [(DisplayStatus.UNMERGED.value, p) for p in status.conflicted],
    )

    if status.is_clean:
        content.append("\nWorking tree clean.", style="green")

    return Panel(content, title=_label(status.folder_id), expand=False)


def show_status(folder: str | None) -> None:
    """Displays the status of one repository, or all of them."""
    config = Config.load()
    with open_registry(config) as registry:
        folder_ids = (
            [normalize_folder_id(folder)]
            if folder is not None
            else registry.get_all_paths()
        )
        if not folder_ids:
            console.print("[yellow]No repositories configured.[/yellow]")
            return
        for folder_id in folder_ids:
            try:
                status = registry.get_status(folder_id)
            except GitProcessError as e:
                console.print(
                    f"[bold red]STATUS ERROR {_label(folder_id)}:[/bold red] {e}"
                )
                continue
            console.print(render_status(status, config.core.show_untracked))


def list_repos() -> None:
    """Lists all configured repositories and whether they are usable."""
    repos = load_repositories()
    if not repos:
        console.print("[yellow]No repositories configured.[/yellow]")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Folder", style="cyan")
    table.add_column("Status")
    table.add_column("Remote")
    table.add_column("Auto-commit", justify="right", style="dim")
    table.add_column("Auto-push", justify="center", style="dim")

    with open_registry() as registry:
        for repo in repos:
            if registry.get_repo(repo.folder_id) is not None:
                state = "[green]Active[/green]"
            elif not registry.resolver.resolve_absolute(repo.folder_id).exists():
                state = "[red]Missing[/red]"
            else:
                state = "[bold red]Error[/bold red]"

            interval = (
                f"{repo.auto_commit_interval} min" if repo.auto_commit_interval else "off"
            )
            table.add_row(
                _label(repo.folder_id),
                state,
                repo.remote_url or repo.remote_name,
                interval,
                "yes" if repo.auto_push else "no",
            )

    console.print(table)


def add_repo(args: argparse.Namespace) -> None:
    """Registers a folder, optionally initializing or cloning it first."""
    folder_id = normalize_folder_id(args.folder)
    repos = load_repositories()
    config = Config.load()

    with open_registry(config) as registry:
        absolute_path = registry.resolver.resolve_absolute(folder_id)
        if args.clone:
            with console.status(f"Cloning into {absolute_path}...", spinner="dots"):
                registry.clone_repo(args.clone, absolute_path)
        elif args.init:
            registry.init_repo(absolute_path)

        remotes = registry.detect_remotes_from_path(absolute_path)
        remote = next((r for r in remotes if r.name == args.remote), None)

        repo_config = RepositoryConfig(
            folder_id=folder_id,
            remote_name=args.remote,
            remote_url=remote.url if remote else "",
            auto_push=not args.no_push,
            auto_commit_interval=args.interval,
            commit_message_template=args.message,
        )
        # Validates the folder before it is persisted.
        registry.add_repo(repo_config)

    repos = [r for r in repos if r.folder_id != folder_id] + [repo_config]
    save_repositories(repos)
    console.print(f"✔ Tracking: [cyan]{_label(folder_id)}[/cyan]", style="green")
    if remote is None:
        console.print(
            f"[dim]No '{args.remote}' remote found. "
            f"Use 'folder-git remote-add' to add one.[/dim]"
        )


def remove_repo(folder: str) -> None:
    """Stops tracking a folder. Nothing on disk is deleted."""
    folder_id = normalize_folder_id(folder)
    repos = load_repositories()
    remaining = [r for r in repos if r.folder_id != folder_id]
    if len(remaining) == len(repos):
        console.print(
            f"Folder not tracked: [cyan]{_label(folder_id)}[/cyan]", style="yellow"
        )
        return
    save_repositories(remaining)
    console.print(f"✔ Untracked: [cyan]{_label(folder_id)}[/cyan]", style="green")


def show_log(folder: str, limit: int) -> None:
    with open_registry() as registry:
        entries = registry.get_log(normalize_folder_id(folder), limit)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Commit", style="yellow")
    table.add_column("Date", style="dim")
    table.add_column("Author", style="cyan")
    table.add_column("Message")
    table.add_column("Files", justify="right", style="dim")
    for entry in entries:
        table.add_row(
            entry.short_hash,
            entry.date,
            entry.author_name,
            entry.message,
            str(len(entry.changed_files)),
        )
    console.print(table)


def show_branches(folder: str) -> None:
    with open_registry() as registry:
        branches = registry.get_branches(normalize_folder_id(folder))
    for name in branches.all:
        if name == branches.current:
            console.print(f"* [bold green]{name}[/bold green]")
        else:
            console.print(f"  {name}")


def show_remotes(folder: str) -> None:
    with open_registry() as registry:
        remotes = registry.detect_remotes(normalize_folder_id(folder))
    if not remotes:
        console.print("[yellow]No remotes configured.[/yellow]")
        return
    for remote in remotes:
        console.print(f"[cyan]{remote.name}[/cyan]\t{remote.url}")


def run_ignore(args: argparse.Namespace) -> None:
    folder_id = normalize_folder_id(args.folder)
    with open_registry() as registry:
        if args.ignore_command == "add":
            if registry.is_explicitly_ignored(folder_id, args.path):
                console.print(f"[blue]INFO:[/blue] '{args.path}' is already listed.")
                return
            registry.add_to_ignore_list(folder_id, args.path)
            console.print(f"[bold green]SUCCESS:[/bold green] Ignoring '{args.path}'.")
        elif args.ignore_command == "remove":
            registry.remove_from_ignore_list(folder_id, args.path)
            console.print(f"[bold green]SUCCESS:[/bold green] Unlisted '{args.path}'.")
        else:
            listed = registry.is_explicitly_ignored(folder_id, args.path)
            ignored = registry.is_ignored(folder_id, args.path)
            console.print(f"Listed in .gitignore: {'yes' if listed else 'no'}")
            console.print(f"Ignored by git:       {'yes' if ignored else 'no'}")


def show_owner(path: str) -> None:
    with open_registry() as registry:
        owner = registry.owner_of(path.strip("/"))
    if owner is None:
        console.print(f"[yellow]No repository owns '{path}'.[/yellow]")
    else:
        console.print(f"[cyan]{_label(owner.folder_id)}[/cyan]")


def run_command(args: argparse.Namespace, parser: argparse.ArgumentParser) -> None:
    """Dispatches a parsed command line."""
    command = args.command

    if command in (None, "help"):
        parser.print_help()
    elif command == "list":
        list_repos()
    elif command == "add":
        add_repo(args)
    elif command == "remove":
        remove_repo(args.folder)
    elif command == "status":
        show_status(args.folder)
    elif command == "log":
        show_log(args.folder, args.limit)
    elif command == "branches":
        show_branches(args.folder)
    elif command == "remotes":
        show_remotes(args.folder)
    elif command == "ignore":
        run_ignore(args)
    elif command == "owner":
        show_owner(args.path)
    elif command == "daemon":
        daemon.main(interactive=True)
    elif command == "init":
        with open_registry() as registry:
            path = registry.resolver.resolve_absolute(normalize_folder_id(args.folder))
            registry.init_repo(path)
        console.print(f"✔ Initialized [cyan]{path}[/cyan]", style="green")
    elif command == "clone":
        with open_registry() as registry:
            path = registry.resolver.resolve_absolute(normalize_folder_id(args.folder))
            with console.status(f"Cloning into {path}...", spinner="dots"):
                registry.clone_repo(args.url, path)
        console.print(f"✔ Cloned into [cyan]{path}[/cyan]", style="green")
    else:
        _run_repo_command(args)


def _run_repo_command(args: argparse.Namespace) -> None:
    """Handles the commands that act on one registered repository."""
    folder_id = normalize_folder_id(args.folder)
    command = args.command

    with open_registry() as registry:
        if command == "stage":
            if args.all:
                registry.stage_all(folder_id)
            else:
                registry.stage(folder_id, args.paths)
            console.print("✔ Staged.", style="green")
        elif command == "unstage":
            if args.all:
                registry.unstage_all(folder_id)
            else:
                registry.unstage(folder_id, args.paths)
            console.print("✔ Unstaged.", style="green")
        elif command == "discard":
            if not args.yes:
                console.print(
                    "[bold yellow]WARNING:[/bold yellow] Discarding restores the "
                    "files from HEAD and cannot be undone. Re-run with --yes."
                )
                sys.exit(1)
            registry.discard(folder_id, args.paths)
            console.print("✔ Discarded.", style="green")
        elif command == "commit":
            registry.commit(folder_id, args.message)
            console.print("✔ Committed.", style="green")
        elif command == "push":
            with console.status(f"Pushing {_label(folder_id)}...", spinner="dots"):
                registry.push(folder_id)
            console.print("✔ Pushed.", style="green")
        elif command == "pull":
            with console.status(f"Pulling {_label(folder_id)}...", spinner="dots"):
                registry.pull(folder_id)
            console.print("✔ Pulled.", style="green")
        elif command == "diff":
            console.print(
                registry.get_diff(folder_id, args.path, staged=args.staged),
                markup=False,
                highlight=False,
            )
        elif command == "checkout":
            registry.checkout(folder_id, args.branch)
            console.print(f"✔ Switched to [cyan]{args.branch}[/cyan]", style="green")
        elif command == "remote-add":
            registry.add_remote(folder_id, args.name, args.url)
            console.print(f"✔ Added remote [cyan]{args.name}[/cyan]", style="green")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="folder-git",
        description="Manage independent git repositories inside one vault.",
    )
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("help", help="Show this help message")
    subparsers.add_parser("list", help="List configured repositories")
    subparsers.add_parser("daemon", help="Run auto-commit timers in the foreground")

    add_parser = subparsers.add_parser("add", help="Track a folder as a repository")
    add_parser.add_argument("folder", help="Vault-relative folder ('' for the root)")
    add_parser.add_argument(
        "--interval", type=int, default=0, help="Auto-commit minutes (0 = off)"
    )
    add_parser.add_argument(
        "--no-push", action="store_true", help="Do not push after auto-commits"
    )
    add_parser.add_argument("--remote", default="origin", help="Remote name")
    add_parser.add_argument(
        "--message",
        default=DEFAULT_COMMIT_TEMPLATE,
        help="Auto-commit message template ({{date}} is replaced)",
    )
    source = add_parser.add_mutually_exclusive_group()
    source.add_argument("--init", action="store_true", help="Run git init first")
    source.add_argument("--clone", metavar="URL", help="Clone URL into the folder first")

    remove_parser = subparsers.add_parser("remove", help="Stop tracking a folder")
    remove_parser.add_argument("folder")

    status_parser = subparsers.add_parser("status", help="Show repository status")
    status_parser.add_argument("folder", nargs="?", default=None)

    for name, help_text in (("stage", "Stage files"), ("unstage", "Unstage files")):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("folder")
        p.add_argument("paths", nargs="*", help="Paths relative to the repository")
        p.add_argument("--all", "-a", action="store_true", help="Apply to everything")

    discard_parser = subparsers.add_parser(
        "discard", help="Restore files from HEAD (irreversible)"
    )
    discard_parser.add_argument("folder")
    discard_parser.add_argument("paths", nargs="+")
    discard_parser.add_argument("--yes", "-y", action="store_true")

    commit_parser = subparsers.add_parser("commit", help="Commit staged changes")
    commit_parser.add_argument("folder")
    commit_parser.add_argument("--message", "-m", required=True)

    for name in ("push", "pull", "branches", "remotes"):
        p = subparsers.add_parser(name, help=f"{name.capitalize()} a repository")
        p.add_argument("folder")

    log_parser = subparsers.add_parser("log", help="Show commit history")
    log_parser.add_argument("folder")
    log_parser.add_argument("--limit", "-n", type=int, default=DEFAULT_LOG_LIMIT)

    diff_parser = subparsers.add_parser("diff", help="Show the diff of one file")
    diff_parser.add_argument("folder")
    diff_parser.add_argument("path")
    diff_parser.add_argument("--staged", action="store_true")

    checkout_parser = subparsers.add_parser("checkout", help="Switch branches")
    checkout_parser.add_argument("folder")
    checkout_parser.add_argument("branch")

    remote_parser = subparsers.add_parser("remote-add", help="Add a remote")
    remote_parser.add_argument("folder")
    remote_parser.add_argument("name")
    remote_parser.add_argument("url")

    init_parser = subparsers.add_parser("init", help="Run git init in a folder")
    init_parser.add_argument("folder")

    clone_parser = subparsers.add_parser("clone", help="Clone into a folder")
    clone_parser.add_argument("url")
    clone_parser.add_argument("folder")

    ignore_parser = subparsers.add_parser("ignore", help="Edit .gitignore entries")
    ignore_parser.add_argument("ignore_command", choices=["add", "remove", "check"])
    ignore_parser.add_argument("folder")
    ignore_parser.add_argument("path", help="Path relative to the repository")

    owner_parser = subparsers.add_parser("owner", help="Show which repo owns a path")
    owner_parser.add_argument("path", help="Vault-relative path")

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the Folder Git CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command in ("stage", "unstage") and not args.all and not args.paths:
        parser.error(f"{args.command}: give paths or --all")

    try:
        run_command(args, parser)
    except FolderGitError as e:
        console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()

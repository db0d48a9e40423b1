"""Command-line interface for dotsync."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

import typer
from rich.console import Console
from rich.table import Table

from .backup import BackupStore, format_size
from .config import ConfigError, default_config_path, load_config, render_default_config
from .errors import DotsyncError, SyncCancelled
from .logging_setup import setup_logging
from .manager import DotsyncManager
from .models import BackupInfo, FileStatus, IssueKind, PlannedOperation, StatusReport, SyncReport, ValidationReport
from .prompt import confirm

app = typer.Typer(help="Transactional dotfiles synchronizer")
backup_app = typer.Typer(help="Create, inspect, restore, and prune backups")
app.add_typer(backup_app, name="backup")
console = Console()

_STATUS_STYLES = {
    FileStatus.SYNCED: "green",
    FileStatus.MISSING: "yellow",
    FileStatus.MISSING_REPO: "red",
    FileStatus.NOT_SYMLINK: "yellow",
    FileStatus.WRONG_TARGET: "red",
    FileStatus.BROKEN_SYMLINK: "red",
    FileStatus.CONTENT_DIFFERS: "red",
}


def _load_manager(config: Path | None) -> DotsyncManager:
    config_obj = load_config(config)
    return DotsyncManager(config_obj)


def _handle_error(exc: Exception) -> None:
    if isinstance(exc, SyncCancelled):
        console.print(f"[yellow]{exc}. Nothing was changed.[/yellow]")
        raise typer.Exit(code=1)
    if isinstance(exc, PermissionError):
        console.print("[red]Permission denied.[/red] Check that you can write to the destination directories.")
        raise typer.Exit(code=1)
    if isinstance(exc, ConfigError):
        message = str(exc)
        console.print(f"[red]{message}[/red]")
        if "does not exist" in message:
            console.print("[yellow]Use 'dotsync init --config <path>' to create a configuration file.[/yellow]")
        elif "Expected to find" in message:
            console.print(
                "[yellow]Make sure you pointed to the directory containing the config file, or to the file itself.[/yellow]"
            )
        raise typer.Exit(code=1)
    if isinstance(exc, DotsyncError):
        console.print(f"[red]{exc}[/red]")
        transaction_id = getattr(exc, "transaction_id", None)
        if transaction_id:
            console.print(f"[yellow]Transaction {transaction_id} was rolled back.[/yellow]")
        raise typer.Exit(code=1)
    raise exc


def _format_status(report: StatusReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Tool")
    table.add_column("Destination")
    table.add_column("State")
    table.add_column("Details", overflow="fold")

    for entry in report.entries:
        style = _STATUS_STYLES.get(entry.status, "white")
        table.add_row(
            entry.file.tool,
            str(entry.file.dest_path),
            f"[{style}]{entry.status.value}[/{style}]",
            entry.details or "",
        )

    console.print(table)


_ISSUE_STYLES = {
    IssueKind.INVALID_CONFIG: "red",
    IssueKind.MISSING_REPO_FILE: "red",
    IssueKind.INVALID_SYMLINK: "yellow",
    IssueKind.ORPHANED_ENTRY: "yellow",
    IssueKind.MISSING_PROFILE_DIR: "yellow",
}


def _format_validation(report: ValidationReport) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Issue")
    table.add_column("Tool")
    table.add_column("Details", overflow="fold")

    for issue in report.issues:
        style = _ISSUE_STYLES.get(issue.kind, "white")
        table.add_row(f"[{style}]{issue.kind.value}[/{style}]", issue.tool or "", issue.message)

    console.print(table)

def _format_sync(report: SyncReport) -> None:
    if report.lines:
        table = Table(show_header=True, header_style="bold magenta")
        table.add_column("Tool")
        table.add_column("Status")
        table.add_column("Action")
        table.add_column("Details", overflow="fold")
        for line in report.lines:
            style = _STATUS_STYLES.get(line.status, "white")
            table.add_row(
                line.file.tool,
                f"[{style}]{line.status.value}[/{style}]",
                line.action.value,
                line.message,
            )
        console.print(table)

    if report.dry_run:
        _format_planned(report.planned)
    elif report.transaction_id:
        console.print(f"[dim]Transaction {report.transaction_id}[/dim]")

    console.print(f"[green]{report.synced} synced[/green], [yellow]{report.skipped} skipped[/yellow]")


def _format_planned(planned: Iterable[PlannedOperation]) -> None:
    planned = list(planned)
    if not planned:
        console.print("[green]Dry run: nothing to do.[/green]")
        return

    table = Table(show_header=True, header_style="bold magenta", title="Dry run")
    table.add_column("#", justify="right")
    table.add_column("Operation")
    table.add_column("Path", overflow="fold")
    table.add_column("Destination", overflow="fold")

    for index, operation in enumerate(planned, start=1):
        table.add_row(
            str(index),
            operation.kind.value,
            str(operation.path),
            "" if operation.destination is None else str(operation.destination),
        )

    console.print(table)


def _format_backups(backups: list[BackupInfo]) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("#", justify="right")
    table.add_column("Timestamp")
    table.add_column("Files", justify="right")
    table.add_column("Size", justify="right")

    for index, backup in enumerate(backups, start=1):
        table.add_row(
            str(index),
            backup.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            str(len(backup.files)),
            format_size(BackupStore.size_of(backup)),
        )

    console.print(table)


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging on stderr"),
) -> None:
    """Keep a dotfiles repository and your home directory in sync."""

    setup_logging(debug)


@app.command()
def init(
    config: Path | None = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to write the configuration file",
        dir_okay=False,
        writable=True,
    ),
    repo_path: str = typer.Option("~/.dotfiles", "--repo", help="Dotfiles repository to reference"),
    backup_dir: str = typer.Option("~/.dotfiles-backup", "--backup-dir", help="Where backups are written"),
    force: bool = typer.Option(False, "--force", help="Overwrite existing config if present"),
) -> None:
    """Create a starter dotsync configuration file."""

    config_path = config or default_config_path()
    if config_path.exists() and not force:
        console.print(f"[red]Configuration '{config_path}' already exists. Use --force to overwrite.[/red]")
        raise typer.Exit(code=1)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(render_default_config(repo_path=repo_path, backup_dir=backup_dir))
    console.print(f"[green]Created '{config_path}'.[/green]")


@app.command()
def status(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to config.toml"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="Profile to inspect"),
) -> None:
    """Show tracked files and their current state."""

    try:
        manager = _load_manager(config)
        report = manager.status(profile)
        _format_status(report)
        if report.issue_count:
            console.print(
                f"[yellow]{report.issue_count} file(s) need attention. Run 'dotsync sync' to reconcile.[/yellow]"
            )
        else:
            console.print("[green]All tracked files are in sync.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@app.command()
def validate(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to config.toml"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="Profile to validate"),
) -> None:
    """Check the configuration and exit with non-zero status if issues are found."""

    try:
        manager = _load_manager(config)
        report = manager.validate(profile)
        if report.is_valid:
            console.print("[green]Configuration is valid.[/green]")
            return
        _format_validation(report)
        console.print(f"[red]Found {len(report.issues)} issue(s).[/red]")
        raise typer.Exit(code=1)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)

@app.command()
def sync(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to config.toml"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="Profile to sync"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would change without touching disk"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Also list files that are already in sync"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Replace conflicting files without asking"),
) -> None:
    """Reconcile the home directory with the repository in one transaction."""

    try:
        manager = _load_manager(config)
        report = manager.sync(profile, dry_run=dry_run, verbose=verbose, assume_yes=yes)
        _format_sync(report)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@backup_app.command("create")
def backup_create(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to config.toml"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="Profile whose destinations are saved"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would be copied"),
) -> None:
    """Copy every existing tracked destination into a new backup."""

    try:
        manager = _load_manager(config)
        run = manager.backup(profile, dry_run=dry_run)
        for path in run.skipped:
            console.print(f"[yellow]Skipped locked file '{path}'.[/yellow]")
        if dry_run:
            _format_planned(run.planned)
            return
        if not run.files:
            console.print("[yellow]Nothing to back up.[/yellow]")
            return
        console.print(f"[green]Backed up {len(run.files)} file(s) to '{run.root}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@backup_app.command("list")
def backup_list(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to config.toml"),
) -> None:
    """List backups, newest first."""

    try:
        manager = _load_manager(config)
        backups = manager.list_backups()
        if not backups:
            console.print("[yellow]No backups found.[/yellow]")
            return
        _format_backups(backups)
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@backup_app.command("restore")
def backup_restore(
    selector: str = typer.Argument(..., help="'latest', 'list', or the backup number shown by 'list'"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to config.toml"),
    file: Path | None = typer.Option(None, "--file", "-f", help="Restore only this path"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would be restored"),
) -> None:
    """Copy files from a backup back into place."""

    try:
        manager = _load_manager(config)
        if selector == "list":
            _format_backups(manager.list_backups())
            return
        if not (yes or dry_run):
            what = str(file) if file else "all files"
            if not confirm(f"Restore {what} from backup '{selector}'?", console=console):
                console.print("[yellow]Restore cancelled.[/yellow]")
                return

        report = manager.restore(selector, file=file, dry_run=dry_run)
        if dry_run:
            _format_planned(report.planned)
            return
        for path in report.restored:
            console.print(f"[green]Restored '{path}'.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@backup_app.command("cleanup")
def backup_cleanup(
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to config.toml"),
    keep: int | None = typer.Option(None, "--keep", min=0, help="Always keep this many newest backups"),
    days: int | None = typer.Option(None, "--days", min=0, help="Only delete backups older than this many days"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would be deleted"),
) -> None:
    """Delete backups that are both beyond --keep and older than --days."""

    try:
        manager = _load_manager(config)
        report = manager.cleanup(keep, days, dry_run=dry_run)
        if dry_run:
            _format_planned(report.planned)
            return
        if not report.removed:
            console.print("[green]No backups to clean up.[/green]")
            return
        for backup in report.removed:
            console.print(f"[yellow]Deleted backup {backup.path.name}.[/yellow]")
        console.print(f"[green]Kept {report.kept} backup(s).[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


@backup_app.command("add")
def backup_add(
    selector: str = typer.Argument(..., help="'latest' or the backup number shown by 'list'"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Path to config.toml"),
    profile: str | None = typer.Option(None, "--profile", "-p", help="Profile used to match files"),
    dry_run: bool = typer.Option(False, "--dry-run", "-n", help="Show what would be copied"),
) -> None:
    """Copy a backup's files into the repository."""

    try:
        manager = _load_manager(config)
        result = manager.add_backup_to_repo(selector, profile, dry_run=dry_run)
        if dry_run:
            _format_planned(result.planned)
            return
        for source, destination in result.copied:
            console.print(f"[green]Copied '{source}' -> '{destination}'.[/green]")
        for entry in result.unmatched:
            console.print(f"[yellow]No tracked file for '{entry}'.[/yellow]")
        if result.staged:
            console.print("[green]Staged repository changes.[/green]")
    except Exception as exc:  # noqa: BLE001
        _handle_error(exc)


def run() -> None:
    """Entry point used for console_script bindings."""

    app()

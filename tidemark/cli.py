"""Command Line Interface for tidemark."""

import json
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from .backup import BackupError, BackupManager, BackupRecord, RestoreResult
from .config import get_config, load_config
from .util import format_duration, format_size, setup_logging

console = Console()


def setup_cli_logging(verbose: bool = False, level: str = "INFO"):
    """Setup logging for CLI."""
    setup_logging(level="DEBUG" if verbose else level, console=Console(stderr=True))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--config", "-c", type=click.Path(exists=True, dir_okay=False, path_type=Path), help="Configuration file path")
@click.option("--source", "-s", type=click.Path(file_okay=False, path_type=Path), help="Source tree to protect")
@click.option("--backup-root", "-b", type=click.Path(file_okay=False, path_type=Path), help="Backup store directory")
@click.option("--no-progress", is_flag=True, help="Hide progress bars")
@click.pass_context
def cli(ctx, verbose: bool, config: Optional[Path], source: Optional[Path], backup_root: Optional[Path], no_progress: bool):
    """tidemark - back up and restore a file tree around risky migrations."""
    settings = load_config(config) if config else get_config()

    updates = {"show_progress": not no_progress}
    if source:
        updates["source_root"] = source.resolve()
    if backup_root:
        updates["backup_root"] = backup_root
    settings = settings.model_copy(update=updates)

    setup_cli_logging(verbose, settings.log_level)

    ctx.ensure_object(dict)
    ctx.obj["config"] = settings


def _manager(ctx) -> BackupManager:
    return BackupManager(ctx.obj["config"])


def _fail(message: str):
    console.print(f"[red]{message}[/red]")
    sys.exit(1)


def _print_record(record: BackupRecord):
    console.print(f"[bold green]{record.type.value.capitalize()} backup created![/bold green]")
    console.print(f"Backup ID: {record.id}")
    if record.base_backup_id:
        console.print(f"Base backup: {record.base_backup_id}")
    console.print(
        f"Files: {len(record.stored_files)} stored, {len(record.tombstones)} deleted "
        f"({format_size(record.size)})"
    )
    if record.warnings:
        console.print(f"[yellow]Warnings: {len(record.warnings)}[/yellow]")
        for warning in record.warnings[:5]:  # Show first 5 warnings
            console.print(f"  {warning}")


def _print_restore(result: RestoreResult):
    if result.success:
        console.print("[bold green]Restore completed![/bold green]")
    else:
        console.print("[bold yellow]Restore completed with errors[/bold yellow]")
    console.print(f"Files restored: {len(result.restored_files)}")
    if result.removed_files:
        console.print(f"Files removed: {len(result.removed_files)}")
    console.print(f"Duration: {format_duration(result.duration)}")

    for error in result.errors[:10]:
        console.print(f"  [red]{error}[/red]")
    if not result.success:
        sys.exit(1)


@cli.group()
def backup():
    """Backup management commands."""
    pass


@backup.command("full")
@click.pass_context
def backup_full(ctx):
    """Create a full backup of the source tree."""
    try:
        record = _manager(ctx).create_full_backup()
    except BackupError as e:
        _fail(f"Backup failed: {e}")
    _print_record(record)


@backup.command("incremental")
@click.pass_context
def backup_incremental(ctx):
    """Back up changes since the latest backup."""
    try:
        record = _manager(ctx).create_incremental_backup()
    except BackupError as e:
        _fail(f"Backup failed: {e}")
    _print_record(record)


@backup.command("snapshot")
@click.argument("label")
@click.pass_context
def backup_snapshot(ctx, label: str):
    """Create a labelled snapshot of the source tree."""
    try:
        record = _manager(ctx).create_snapshot(label)
    except (BackupError, ValueError) as e:
        _fail(f"Snapshot failed: {e}")
    _print_record(record)


@backup.command("list")
@click.option("--snapshots", is_flag=True, help="Only list snapshots")
@click.pass_context
def backup_list(ctx, snapshots: bool):
    """List available backups."""
    manager = _manager(ctx)
    records = manager.list_snapshots() if snapshots else manager.list_backups()

    if not records:
        console.print("[yellow]No backups found[/yellow]")
        return

    table = Table(title="Available Snapshots" if snapshots else "Available Backups")
    table.add_column("ID", style="cyan")
    table.add_column("Type", style="white")
    table.add_column("Created", style="white")
    table.add_column("Files", style="white")
    table.add_column("Size", style="white")
    table.add_column("Base / Label", style="white")

    for record in records:
        table.add_row(
            record.id,
            record.type.value,
            record.created_at,
            str(len(record.included_files)),
            format_size(record.size),
            record.base_backup_id or record.label or "",
        )

    console.print(table)


@backup.command("show")
@click.argument("backup_id")
@click.pass_context
def backup_show(ctx, backup_id: str):
    """Show detailed information about a backup."""
    try:
        record = _manager(ctx).get_backup(backup_id)
    except BackupError as e:
        _fail(str(e))

    table = Table(title=f"Backup Details - {backup_id}")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("ID", record.id)
    table.add_row("Type", record.type.value)
    table.add_row("Created", record.created_at)
    if record.base_backup_id:
        table.add_row("Base Backup", record.base_backup_id)
    if record.label:
        table.add_row("Label", record.label)
    table.add_row("Stored Files", str(len(record.stored_files)))
    table.add_row("Deleted Files", str(len(record.tombstones)))
    table.add_row("Size", format_size(record.size))
    table.add_row("Checksum", record.checksum)
    table.add_row("Hash Algorithm", record.hash_algorithm)
    table.add_row("Warnings", str(len(record.warnings)))
    table.add_row("Location", record.path)

    console.print(table)


@cli.group()
def restore():
    """Restore management commands."""
    pass


@restore.command("backup")
@click.argument("backup_id")
@click.option("--target-dir", "-t", type=click.Path(file_okay=False, path_type=Path), help="Restore here instead of the source tree")
@click.pass_context
def restore_backup(ctx, backup_id: str, target_dir: Optional[Path]):
    """Restore a backup, resolving its incremental chain."""
    console.print(f"[yellow]Restoring backup {backup_id}...[/yellow]")
    try:
        result = _manager(ctx).restore_from_backup(backup_id, target_dir)
    except BackupError as e:
        _fail(f"Restore failed: {e}")
    _print_restore(result)


@restore.command("snapshot")
@click.argument("snapshot_id")
@click.option("--target-dir", "-t", type=click.Path(file_okay=False, path_type=Path), help="Restore here instead of the source tree")
@click.pass_context
def restore_snapshot(ctx, snapshot_id: str, target_dir: Optional[Path]):
    """Restore a labelled snapshot."""
    console.print(f"[yellow]Restoring snapshot {snapshot_id}...[/yellow]")
    try:
        result = _manager(ctx).restore_from_snapshot(snapshot_id, target_dir)
    except BackupError as e:
        _fail(f"Restore failed: {e}")
    _print_restore(result)


@cli.command("validate")
@click.argument("backup_id")
@click.option("--chain", is_flag=True, help="Also validate every base backup")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.pass_context
def validate(ctx, backup_id: str, chain: bool, as_json: bool):
    """Recompute checksums of a backup and report corruption."""
    result = _manager(ctx).validate_backup(backup_id, include_chain=chain)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    elif result.success:
        console.print(f"[bold green]Backup {backup_id} is valid[/bold green] ({result.checked_files} files checked)")
    else:
        console.print(f"[bold red]Backup {backup_id} is corrupted[/bold red]")
        for error in result.errors:
            console.print(f"  [red]{error.kind.value}[/red] {error}")

    if not result.success:
        sys.exit(1)


@cli.command("rules")
@click.pass_context
def rules(ctx):
    """Show the rules used to select files."""
    table = Table(title="Backup Rules")
    table.add_column("Name", style="cyan")
    table.add_column("Type", style="white")
    table.add_column("Description", style="white")

    for rule in _manager(ctx).rules.get_rule_summary():
        table.add_row(rule["name"], rule["type"], rule["description"])

    console.print(table)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()

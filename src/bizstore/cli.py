"""bizstore CLI - inspect and maintain the business data store."""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from .backup import default_backup_filename, read_backup, write_backup
from .config import settings
from .errors import BackupFormatError
from .layer import DataLayer
from .tables import TABLE_FIELDS, TABLE_NAMES

app = typer.Typer(
    name="bizstore",
    help="bizstore - offline-first business data store",
    no_args_is_help=True,
)
console = Console()


def _configure_logging(verbose: bool) -> None:
    pkg_logger = logging.getLogger("bizstore")
    pkg_logger.handlers.clear()
    pkg_logger.addHandler(RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False))
    pkg_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    pkg_logger.propagate = False


def _make_layer() -> DataLayer:
    return DataLayer(settings)


def _output_result(result: dict[str, Any]) -> None:
    console.print_json(json.dumps(result, default=str))


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Offline-first data access for the business manager."""
    _configure_logging(verbose)


@app.command()
def status(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Connect and show connection mode, missing tables and cached records."""

    async def _status():
        async with _make_layer() as db:
            return db.status()

    result = asyncio.run(_status())

    if json_output:
        _output_result(result)
        return

    mode = "[green]online[/green]" if result["online"] else "[yellow]offline[/yellow]"
    console.print(f"Mode: {mode}")
    if result["missing_tables"]:
        console.print(f"Missing remote tables: [red]{', '.join(result['missing_tables'])}[/red]")

    table = Table(title="Local Cache")
    table.add_column("Table", style="cyan")
    table.add_column("Records", style="green", justify="right")
    for name, count in result["local_records"].items():
        table.add_row(name, str(count))
    console.print(table)


@app.command()
def config():
    """Show which connection settings are configured."""
    from dotenv import dotenv_values

    env_file = dotenv_values(".env")

    table = Table(title="bizstore Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Status", style="green")

    table.add_row("Supabase URL", settings.supabase_url or "[red]Not set[/red]")
    table.add_row(
        "Supabase key",
        "[green]Set[/green]" if settings.supabase_key else "[red]Not set[/red]",
    )
    table.add_row(
        "Remote store",
        "[green]Configured[/green]" if settings.remote_configured else "[yellow]Local only[/yellow]",
    )
    table.add_row("Local cache", str(settings.cache_dir))
    table.add_row("Retries", f"{settings.max_retries} (base delay {settings.retry_base_delay}s)")
    table.add_row(".env file", f"{len(env_file)} values" if env_file else "[dim]none[/dim]")
    console.print(table)


@app.command()
def tables():
    """List registry tables and the fields each accepts."""
    table = Table(title=f"Tables ({len(TABLE_NAMES)})")
    table.add_column("Table", style="cyan")
    table.add_column("Fields", style="white")
    for name in TABLE_NAMES:
        table.add_row(name, ", ".join(TABLE_FIELDS[name]))
    console.print(table)


@app.command()
def backup(
    output: Path = typer.Option(None, "--output", "-o", help="Backup file path"),
):
    """Write every table to a JSON backup file."""

    async def _backup():
        async with _make_layer() as db:
            return await db.create_backup()

    document = asyncio.run(_backup())
    path = write_backup(document, output or Path(default_backup_filename()))
    records = sum(len(rows) for rows in document.values())
    console.print(f"[green]Backup written:[/green] {path} ({records} records)")


@app.command()
def restore(
    path: Path = typer.Argument(..., help="Backup file to restore"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
):
    """Replace current data with the contents of a backup file."""
    try:
        document = read_backup(path)
    except FileNotFoundError:
        console.print(f"[red]Backup file not found: {path}[/red]")
        raise typer.Exit(1)
    except BackupFormatError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    if not yes:
        if not typer.confirm("This deletes current records in every table of the backup. Continue?"):
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

    async def _restore():
        async with _make_layer() as db:
            return await db.restore_backup(document)

    try:
        restored = asyncio.run(_restore())
    except BackupFormatError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    for name, count in restored.items():
        console.print(f"  {name}: {count} records")
    console.print("[green]Backup restored[/green]")


@app.command()
def stats(
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
):
    """Show dashboard totals."""

    async def _stats():
        async with _make_layer() as db:
            return await db.reports.dashboard_stats()

    result = asyncio.run(_stats())

    if json_output:
        _output_result(result)
        return

    table = Table(title="Dashboard")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    for key, value in result.items():
        shown = f"{value:,.2f}" if isinstance(value, float) else str(value)
        table.add_row(key.replace("_", " ").title(), shown)
    console.print(table)


if __name__ == "__main__":
    app()

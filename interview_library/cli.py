#!/usr/bin/env python3
"""
Command-line interface for the Interview Library integrity engine.

Provides soft delete, restore and domain event tools for administrators.
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Tuple

import click
import pandas as pd  # type: ignore[import-untyped]
import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import LibraryConfig, get_config, set_config
from .database import create_db_engine, create_session_factory, init_db
from .domain_events import (
    DomainEvent,
    DomainEventLog,
    DomainEventQuery,
    get_event_storage,
)
from .soft_delete import (
    DeletionRequest,
    RestoreRequest,
    SoftDeleteError,
    SoftDeleteService,
)

console = Console()

EXPORT_PAGE_SIZE = 1000


def configure_logging(level: str) -> None:
    """Route library logs through a rich handler on stderr."""
    package_logger = logging.getLogger("interview_library")
    package_logger.setLevel(level)
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        package_logger.addHandler(
            RichHandler(console=Console(stderr=True), show_path=False)
        )


def build_service(config: LibraryConfig) -> SoftDeleteService:
    """Wire the engine, event log and service for one CLI invocation."""
    engine = create_db_engine(config)
    event_log = None
    if config.audit_enabled:
        storage = get_event_storage(
            config.audit_storage_backend.value,
            **config.get_event_storage_kwargs(engine),
        )
        event_log = DomainEventLog(storage)

    return SoftDeleteService(
        create_session_factory(engine), event_log=event_log, config=config
    )


def require_event_log(service: SoftDeleteService) -> DomainEventLog:
    if service.event_log is None:
        console.print("[red]Error: domain events are disabled (audit_enabled)[/red]")
        sys.exit(1)
    return service.event_log


def fail(error: Exception) -> NoReturn:
    """Print a business error and exit with status 1."""
    if isinstance(error, SoftDeleteError):
        payload = error.to_dict()
        console.print(f"[red]{payload['error']}: {error}[/red]")
    else:
        console.print(f"[red]Error: {error}[/red]")
    sys.exit(1)


def event_rows(events: List[DomainEvent]) -> List[Dict[str, Any]]:
    return [event.model_dump(mode="json") for event in events]


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.option(
    "--config-file",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON or YAML configuration file",
)
@click.pass_context
def cli(ctx: click.Context, config_file: Optional[str]) -> None:
    """Interview Library - soft delete and restore administration."""
    try:
        if config_file:
            set_config(LibraryConfig.from_file(config_file))
        configure_logging(get_config().log_level)
    except (ValidationError, ValueError, OSError) as e:
        console.print(f"[red]Error loading configuration: {e}[/red]")
        sys.exit(1)

    if ctx.invoked_subcommand is None:
        console.print(
            Panel.fit(
                f"[bold blue]Interview Library[/bold blue] v{__version__}\n"
                "[dim]Soft delete and restore integrity engine[/dim]\n\n"
                "Use [bold]ilib --help[/bold] to see available commands.",
                border_style="blue",
            )
        )


@cli.group()
def config() -> None:
    """Inspect configuration."""
    pass


@config.command("show")
@click.option("--format", type=click.Choice(["table", "json", "yaml"]), default="table")
def config_show(format: str) -> None:
    """Display current configuration."""
    config_dict = get_config().to_dict()

    if format == "json":
        console.print_json(data=config_dict)
    elif format == "yaml":
        console.print(yaml.safe_dump(config_dict, default_flow_style=False))
    else:
        table = Table(title="Interview Library Configuration", show_header=True)
        table.add_column("Setting", style="cyan")
        table.add_column("Value", style="green")

        categories = {
            "General": ["application_name", "environment", "log_level"],
            "Database": ["database_url", "sql_echo"],
            "Domain Events": [
                "audit_enabled",
                "audit_storage_backend",
                "audit_file_path",
                "record_blocked_restores",
            ],
            "Soft Delete": ["cascade_delete_enabled", "list_page_size_max"],
        }

        for category, settings in categories.items():
            table.add_row(f"[bold]{category}[/bold]", "")
            for setting in settings:
                value = config_dict.get(setting)
                if value is None:
                    value = "[dim]Not configured[/dim]"
                elif isinstance(value, bool):
                    value = "✓" if value else "✗"
                table.add_row(f"  {setting}", str(value))

        console.print(table)


@cli.group()
def db() -> None:
    """Database management."""
    pass


@db.command("init")
def db_init() -> None:
    """Create the entity and domain event tables."""
    config = get_config()
    try:
        init_db(create_db_engine(config))
    except Exception as e:
        console.print(f"[red]Error initializing database: {e}[/red]")
        sys.exit(1)
    console.print(f"[green]✓[/green] Initialized database {config.database_url}")


@cli.command("delete")
@click.argument("entity_type")
@click.argument("entity_id")
@click.option("--actor", required=True, help="ID of the actor performing the delete")
@click.option("--force", is_flag=True, help="Cascade to live child records")
def delete_entity(entity_type: str, entity_id: str, actor: str, force: bool) -> None:
    """Soft delete ENTITY_TYPE with ENTITY_ID."""
    try:
        request = DeletionRequest(
            entity_type=entity_type, entity_id=entity_id, actor_id=actor, force=force
        )
        service = build_service(get_config())
        result = service.soft_delete(
            request.entity_type,
            request.entity_id,
            request.actor_id,
            force=request.force,
        )
    except (ValidationError, SoftDeleteError, ValueError) as e:
        fail(e)

    console.print(
        f"[green]✓[/green] Deleted {result.entity_type} {result.entity_id} "
        f"by {result.actor_id}"
    )
    for label, count in result.cascaded.items():
        console.print(f"  [yellow]• cascaded {count} {label}(s)[/yellow]")


@cli.command("restore")
@click.argument("entity_type")
@click.argument("entity_id")
@click.option("--actor", required=True, help="ID of the actor performing the restore")
def restore_entity(entity_type: str, entity_id: str, actor: str) -> None:
    """Restore soft-deleted ENTITY_TYPE with ENTITY_ID."""
    try:
        request = RestoreRequest(
            entity_type=entity_type, entity_id=entity_id, actor_id=actor
        )
        service = build_service(get_config())
        service.restore(request.entity_type, request.entity_id, request.actor_id)
    except (ValidationError, SoftDeleteError, ValueError) as e:
        fail(e)

    console.print(f"[green]✓[/green] Restored {entity_type} {entity_id}")


@cli.command("deleted")
@click.argument("entity_type")
@click.option("--deleted-by", help="Filter by deleting actor")
@click.option("--limit", type=int, default=100, help="Maximum results to return")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
def list_deleted(
    entity_type: str, deleted_by: Optional[str], limit: int, format: str
) -> None:
    """List soft-deleted records of ENTITY_TYPE, newest first."""
    try:
        service = build_service(get_config())
        rows = service.list_deleted(entity_type, deleted_by=deleted_by, limit=limit)
    except SoftDeleteError as e:
        fail(e)

    if format == "json":
        console.print_json(data=[row.to_dict() for row in rows])
        return

    if not rows:
        console.print(f"[yellow]No deleted {entity_type} records found[/yellow]")
        return

    table = Table(title=f"Deleted {entity_type} records ({len(rows)})")
    table.add_column("ID", style="cyan")
    table.add_column("Deleted At", style="yellow")
    table.add_column("Deleted By", style="green")
    for row in rows:
        table.add_row(
            row.id, row.deleted_at.strftime("%Y-%m-%d %H:%M:%S"), row.deleted_by
        )
    console.print(table)


@cli.command("report")
@click.option("--start-date", type=click.DateTime(), required=True)
@click.option("--end-date", type=click.DateTime(), required=True)
@click.option("--entity-type", "entity_types", multiple=True, help="Limit to type")
def deletion_report(
    start_date: datetime, end_date: datetime, entity_types: Tuple[str, ...]
) -> None:
    """Summarise deletion and restoration activity in a period."""
    try:
        service = build_service(get_config())
        require_event_log(service)
        report = service.generate_deletion_report(
            start_date, end_date, entity_types=list(entity_types) or None
        )
    except (SoftDeleteError, ValidationError) as e:
        fail(e)

    console.print(
        Panel.fit(
            f"[bold]Deletion Report[/bold]\n"
            f"{start_date:%Y-%m-%d} to {end_date:%Y-%m-%d}\n\n"
            f"Deletions: [cyan]{report.total_deletions}[/cyan] "
            f"(forced: {report.forced_deletions})\n"
            f"Restorations: [green]{report.restorations}[/green]\n"
            f"Blocked restores: [red]{report.blocked_restores}[/red]",
            border_style="blue",
        )
    )

    if report.by_type:
        table = Table(title="Deletions by Type")
        table.add_column("Entity Type", style="cyan")
        table.add_column("Count", style="green")
        for entity_type, count in sorted(report.by_type.items()):
            table.add_row(entity_type, str(count))
        console.print(table)


@cli.group()
def events() -> None:
    """Domain event log inspection and export."""
    pass


@events.command("history")
@click.argument("entity_type")
@click.argument("entity_id")
@click.option("--format", type=click.Choice(["table", "json"]), default="table")
def events_history(entity_type: str, entity_id: str, format: str) -> None:
    """Show the lifecycle history of one entity, newest first."""
    service = build_service(get_config())
    event_log = require_event_log(service)
    history = event_log.find_by_entity(entity_type, entity_id)

    if format == "json":
        console.print_json(data=event_rows(history))
        return

    if not history:
        console.print(
            f"[yellow]No events recorded for {entity_type} {entity_id}[/yellow]"
        )
        return

    table = Table(title=f"History of {entity_type} {entity_id}")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Action", style="yellow")
    table.add_column("Actor", style="green")
    table.add_column("Metadata", style="dim")
    for event in history:
        table.add_row(
            event.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            event.action,
            event.actor_id or "system",
            json.dumps(event.metadata) if event.metadata else "",
        )
    console.print(table)


@events.command("export")
@click.option("--start-date", type=click.DateTime(), help="Start date for export")
@click.option("--end-date", type=click.DateTime(), help="End date for export")
@click.option("--output", type=click.Path(), required=True, help="Output file path")
@click.option("--format", type=click.Choice(["json", "csv", "excel"]), default="csv")
def events_export(
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    output: str,
    format: str,
) -> None:
    """Export the domain event log."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        task = progress.add_task("Exporting domain events...", total=None)

        try:
            service = build_service(get_config())
            event_log = require_event_log(service)

            exported: List[DomainEvent] = []
            offset = 0
            while True:
                page = event_log.query(
                    DomainEventQuery(
                        start_date=start_date,
                        end_date=end_date,
                        limit=EXPORT_PAGE_SIZE,
                        offset=offset,
                        sort_desc=False,
                    )
                )
                exported.extend(page)
                if len(page) < EXPORT_PAGE_SIZE:
                    break
                offset += EXPORT_PAGE_SIZE

            progress.update(
                task, description=f"Found {len(exported)} events, exporting..."
            )

            df = pd.DataFrame(event_rows(exported))
            output_path = Path(output)
            if format == "json":
                df.to_json(output_path, orient="records", date_format="iso", indent=2)
            else:
                if not df.empty:
                    df["metadata"] = df["metadata"].apply(
                        lambda m: json.dumps(m, sort_keys=True) if m else None
                    )
                if format == "excel":
                    df.to_excel(output_path, index=False, engine="openpyxl")
                else:
                    df.to_csv(output_path, index=False)

            progress.stop()
            console.print(
                f"[green]✓ Exported {len(exported)} domain events to "
                f"{output_path}[/green]"
            )

        except (ValidationError, OSError, ValueError) as e:
            progress.stop()
            console.print(f"[red]Error exporting domain events: {e}[/red]")
            sys.exit(1)


@events.command("verify")
def events_verify() -> None:
    """Recompute and check the checksum of every domain event."""
    service = build_service(get_config())
    results = require_event_log(service).verify_integrity()

    if results["invalid"]:
        console.print(
            f"[red]✗ {results['invalid']} of {results['total_checked']} "
            f"domain events failed verification[/red]"
        )
        for entry in results["invalid_entries"]:
            console.print(f"  [red]• {entry['id']}[/red]")
        sys.exit(1)

    console.print(
        f"[green]✓ All {results['total_checked']} domain events verified[/green]"
    )


if __name__ == "__main__":
    cli()

"""structedit CLI."""

import asyncio
import json
from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from structedit.config import settings
from structedit.core import (
    ChangeTrackingService,
    apply_field_update,
    data_integrity_guard,
    field_path_resolver,
    get_all_field_paths,
)
from structedit.exceptions import InvalidFieldUpdateError
from structedit.maintenance import cleanup_corrupted_sections
from structedit.models import ChangeType, ErrorCode, MergeStrategy, SectionSchema
from structedit.storage import SqlMetadataStore, close_db, init_db
from structedit.utils.logging import setup_logging

app = typer.Typer(
    name="structedit",
    help="Field path resolution, integrity checks and change tracking for report sections",
    add_completion=False,
)
console = Console()


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(None, help="Override the configured log level"),
) -> None:
    setup_logging(log_level)


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        console.print(f"[red]Cannot read {path}:[/red] {exc}")
        raise typer.Exit(code=2)


def _load_schema(path: Path) -> SectionSchema:
    try:
        return SectionSchema.model_validate(_read_json(path))
    except ValidationError as exc:
        console.print(f"[red]Invalid section schema {path}:[/red] {exc}")
        raise typer.Exit(code=2)


def _write_json(data: Any, output: Optional[Path]) -> None:
    text = json.dumps(data, indent=2, default=str)
    if output is None:
        console.print_json(text)
    else:
        output.write_text(text)
        console.print(f"[dim]Written to {output}[/dim]")


@app.command()
def paths(
    schema_file: Path = typer.Argument(..., help="Section schema JSON file"),
) -> None:
    """List every field path a section schema declares."""
    schema = _load_schema(schema_file)
    table = Table(title=f"{schema.title} ({schema.key})")
    table.add_column("Path")
    table.add_column("Type")

    for path in get_all_field_paths(schema):
        field = field_path_resolver.get_field_schema(path, schema)
        table.add_row(path, field.type.value if field else "")
    console.print(table)


@app.command("validate-path")
def validate_path(
    field_path: str = typer.Argument(..., help="Field path, e.g. observations.voice[0]"),
    schema_file: Optional[Path] = typer.Option(None, "--schema", help="Section schema JSON file"),
) -> None:
    """Check a field path for syntax, forbidden keys and schema existence."""
    check = data_integrity_guard.validate_field_path(field_path)
    if not check.is_valid:
        console.print(f"[red]{check.code.value}:[/red] {escape(check.error)}")
        if check.suggestion:
            console.print(f"[dim]{escape(check.suggestion)}[/dim]")
        raise typer.Exit(code=1)

    if schema_file is not None:
        result = field_path_resolver.validate_field_path_detailed(
            field_path, _load_schema(schema_file)
        )
        if not result.is_valid:
            for error in result.errors:
                console.print(f"[red]{escape(error)}[/red]")
            raise typer.Exit(code=1)
        console.print(f"[green]Valid[/green] {escape(field_path)} ({result.field_schema.type.value})")
        return

    console.print(f"[green]Valid[/green] {escape(field_path)}")


@app.command()
def clean(
    document_file: Path = typer.Argument(..., help="Section document JSON file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write cleaned JSON here"),
) -> None:
    """Repair Russian-doll nesting and numeric-key junk in a document."""
    result = data_integrity_guard.clean_corrupted_data(_read_json(document_file))
    if not result.was_corrupted:
        console.print("[green]No corruption found[/green]")
        return

    for issue, action in zip(result.issues_found, result.cleanup_actions):
        console.print(f"[yellow]{issue}[/yellow] -> {action}")
    _write_json(result.cleaned_data, output)


@app.command()
def apply(
    document_file: Path = typer.Argument(..., help="Section document JSON file"),
    field_path: str = typer.Argument(..., help="Field path to update"),
    value: str = typer.Argument(..., help="New value as JSON"),
    section_id: str = typer.Option(..., "--section-id", help="Section UUID"),
    strategy: MergeStrategy = typer.Option(MergeStrategy.REPLACE, help="Merge strategy"),
    schema_file: Optional[Path] = typer.Option(None, "--schema", help="Section schema JSON file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write updated JSON here"),
) -> None:
    """Apply one field update to a document file."""
    try:
        parsed_value = json.loads(value)
    except json.JSONDecodeError:
        parsed_value = value

    schema = _load_schema(schema_file) if schema_file is not None else None
    try:
        applied = apply_field_update(
            _read_json(document_file),
            {
                "section_id": section_id,
                "field_path": field_path,
                "value": parsed_value,
                "merge_strategy": strategy.value,
            },
            schema=schema,
            change_type=ChangeType.USER_EDIT,
        )
    except InvalidFieldUpdateError as exc:
        prefix = f"{ErrorCode(exc.code).value}: " if exc.code else ""
        console.print(f"[red]{prefix}{escape(str(exc))}[/red]")
        raise typer.Exit(code=1)

    if applied.cleanup_applied:
        console.print("[yellow]Update value was cleaned before applying[/yellow]")
    console.print(
        f"[bold blue]{escape(field_path)}:[/bold blue] "
        f"{escape(json.dumps(applied.previous_value, default=str))} -> "
        f"{escape(json.dumps(applied.new_value, default=str))}"
    )
    _write_json(applied.document, output)


@app.command("init-db")
def init_database(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables first"),
) -> None:
    """Create the reports and report_sections tables."""

    async def run() -> None:
        try:
            await init_db(drop_existing=drop)
        finally:
            await close_db()

    asyncio.run(run())
    console.print(f"[green]Database initialized[/green] ({settings.postgres_db})")


@app.command("cleanup-sections")
def cleanup_sections(
    dry_run: bool = typer.Option(False, "--dry-run", help="Report corruption without writing"),
) -> None:
    """Sweep stored report sections and repair corrupted documents."""

    async def run():
        try:
            return await cleanup_corrupted_sections(dry_run=dry_run)
        finally:
            await close_db()

    report = asyncio.run(run())

    table = Table(title="Section cleanup")
    table.add_column("Section")
    table.add_column("Title")
    table.add_column("Actions")
    for detail in report.cleanup_details:
        table.add_row(detail.section_id, detail.title, ", ".join(detail.cleanup_actions))
    if report.cleanup_details:
        console.print(table)

    console.print(
        f"Scanned {report.total_sections} sections, "
        f"{report.corrupted_sections} corrupted, {report.cleaned_sections} cleaned"
    )
    for error in report.errors:
        console.print(f"[red]{escape(error)}[/red]")
    if report.errors:
        raise typer.Exit(code=1)


def _service() -> ChangeTrackingService:
    return ChangeTrackingService(SqlMetadataStore())


@app.command()
def changes(
    report_id: str = typer.Argument(..., help="Report UUID"),
    unacknowledged: bool = typer.Option(False, "--unacknowledged", help="Only pending review"),
    limit: int = typer.Option(20, help="Maximum changes to list"),
) -> None:
    """Show change statistics and recent changes of a report."""
    service = _service()

    async def run():
        try:
            stats = await service.get_change_statistics(report_id)
            listed = await service.get_filtered_changes(
                report_id, {"acknowledged": False} if unacknowledged else None
            )
            return stats, listed
        finally:
            await close_db()

    stats, listed = asyncio.run(run())

    console.print(f"[bold blue]Report {report_id}[/bold blue]")
    console.print(
        f"{stats.total} changes, {stats.unacknowledged} unacknowledged, "
        f"last update: {stats.last_update or '-'}"
    )

    table = Table()
    table.add_column("Time")
    table.add_column("Type")
    table.add_column("Section")
    table.add_column("Path")
    table.add_column("Ack")
    for change in listed[:limit]:
        table.add_row(
            change.timestamp,
            change.change_type.value,
            change.section_id,
            change.field_path,
            "yes" if change.acknowledged else "no",
        )
    console.print(table)


@app.command()
def prune(
    report_id: str = typer.Argument(..., help="Report UUID"),
    days: int = typer.Option(settings.change_retention_days, help="Days of acknowledged changes to keep"),
) -> None:
    """Drop acknowledged changes older than the retention window."""
    service = _service()

    async def run() -> bool:
        try:
            return await service.cleanup_old_changes(report_id, days)
        finally:
            await close_db()

    if not asyncio.run(run()):
        console.print("[red]Failed to save pruned change log[/red]")
        raise typer.Exit(code=1)
    console.print(f"[green]Pruned[/green] acknowledged changes older than {days} days")


if __name__ == "__main__":
    app()

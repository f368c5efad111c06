"""TenderCalc CLI.

Commands:
- init: Initialize database schema
- preview: Show how a cost structure spreadsheet will be parsed
- import-costs: Import a cost structure spreadsheet
- categories: List cost categories and their detail categories
- locations: List locations
- mappings: List detail category / location mappings with totals
- import-status: Show recent import runs
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID

import typer
from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from tendercalc.config import get_config
from tendercalc.core.logging import configure_logging
from tendercalc.costs import CostStructureService
from tendercalc.db.connection import close_db, init_db
from tendercalc.ingestion import read_cost_rows
from tendercalc.pipeline import CostStructureImporter
from tendercalc.pipeline.parser import preview_rows
from tendercalc.pipeline.run_log import record_import_run, recent_import_runs
from tendercalc.store.base import StoreError
from tendercalc.store.sqlalchemy_store import SQLAlchemyStore

app = typer.Typer(
    name="tendercalc",
    help="TenderCalc - cost structure import for construction tenders",
    no_args_is_help=True,
)

console = Console()
logger = logging.getLogger(__name__)


@app.callback()
def _setup(
    log_level: str | None = typer.Option(None, "--log-level", help="Override LOG_LEVEL"),
):
    configure_logging(log_level)


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        try:
            if drop:
                console.print("[yellow]Dropping existing tables...[/yellow]")
            await init_db(drop=drop)
        finally:
            await close_db()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


def _read_rows(file_path: Path, sheet_name: str | None):
    config = get_config()
    try:
        return read_cost_rows(
            file_path,
            sheet_name=sheet_name,
            max_file_size_mb=config.imports.max_file_size_mb,
            max_rows=config.imports.max_rows,
        )
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)


@app.command()
def preview(
    file_path: Path = typer.Argument(..., help="Cost structure file (CSV/XLSX)"),
    sheet_name: str | None = typer.Option(None, "--sheet", help="Sheet name for Excel files"),
    limit: int = typer.Option(50, "--limit", help="Rows to show"),
):
    """Show parsed rows and warnings without importing anything."""
    rows = _read_rows(file_path, sheet_name)
    parsed = preview_rows(rows)

    table = Table(title=f"Preview: {file_path.name} ({len(parsed)} rows)")
    table.add_column("Row", justify="right", style="dim")
    table.add_column("Category", style="cyan")
    table.add_column("Detail")
    table.add_column("Location")
    table.add_column("Qty", justify="right")
    table.add_column("Price", justify="right")
    table.add_column("Warnings", style="yellow")

    for row in parsed[:limit]:
        category = f"{row.category.code} {row.category.name}" if row.category else "-"
        table.add_row(
            str(row.row_number),
            category,
            row.detail_name or row.detail_code or "",
            row.location_name,
            str(row.quantity or ""),
            str(row.unit_price or ""),
            "; ".join(w.split(": ", 1)[-1] for w in row.warnings),
        )

    console.print(table)
    invalid = sum(1 for row in parsed if not row.is_valid)
    if invalid:
        console.print(f"[yellow]⚠[/yellow] {invalid} rows with warnings")


@app.command(name="import-costs")
def import_costs_cmd(
    file_path: Path = typer.Argument(..., help="Cost structure file (CSV/XLSX)"),
    sheet_name: str | None = typer.Option(None, "--sheet", help="Sheet name for Excel files"),
    replace_mappings: bool = typer.Option(
        False, "--replace-mappings", help="Delete existing mappings before importing"
    ),
    concurrency: int | None = typer.Option(
        None, "--concurrency", help="Parallel upserts per entity type"
    ),
):
    """Import categories, detail categories, locations and mappings.

    Example:
        tendercalc import-costs data/cost_structure.xlsx --sheet "Structure"
    """
    config = get_config()
    rows = _read_rows(file_path, sheet_name)
    console.print(f"[bold]Importing cost structure:[/bold] {file_path} ({len(rows)} rows)")

    async def _import():
        store = SQLAlchemyStore()
        importer = CostStructureImporter(
            store,
            max_concurrency=concurrency or config.imports.max_concurrency,
            default_unit=config.imports.default_unit,
            replace_mappings=replace_mappings,
        )
        started_at = datetime.now(timezone.utc)
        try:
            with Progress(
                TextColumn("[progress.description]{task.description}"),
                BarColumn(),
                TextColumn("{task.percentage:>3.0f}%"),
                console=console,
            ) as progress:
                task = progress.add_task("Starting", total=100)
                result = await importer.run(
                    rows,
                    on_progress=lambda percent, message: progress.update(
                        task, completed=percent, description=message
                    ),
                )
            try:
                await record_import_run(store, result, str(file_path), started_at)
            except StoreError as e:
                logger.warning(f"Could not record import run: {e}")
                console.print(f"[yellow]Import run not recorded: {e}[/yellow]")
        finally:
            await close_db()
        return result

    result = asyncio.run(_import())

    table = Table(title="Import Results")
    table.add_column("Entity", style="cyan")
    table.add_column("Created", justify="right", style="green")
    table.add_column("Updated", justify="right")
    table.add_row("Categories", str(result.categories_created), str(result.categories_updated))
    table.add_row(
        "Detail categories",
        str(result.detail_categories_created),
        str(result.detail_categories_updated),
    )
    table.add_row("Locations", str(result.locations_created), str(result.locations_updated))
    table.add_row("Mappings", str(result.mappings_created), str(result.mappings_updated))
    console.print(table)

    if result.mappings_removed:
        console.print(f"Removed {result.mappings_removed} existing mappings")
    if result.warnings:
        console.print(f"\n[yellow]⚠[/yellow] {len(result.warnings)} warnings")
        for warning in result.warnings[:10]:
            console.print(f"  {warning}", style="dim")
    if result.errors:
        console.print(f"\n[red]✗[/red] {len(result.errors)} errors")
        for error in result.errors[:20]:
            console.print(f"  • {error}")

    if not result.success:
        console.print("[bold red]Import failed[/bold red]")
        raise typer.Exit(1)
    console.print(
        f"\n[bold green]✓[/bold green] Import finished in {result.duration_seconds:.1f}s "
        f"({result.status.value})"
    )


@app.command()
def categories(
    include_inactive: bool = typer.Option(False, "--all", help="Include inactive categories"),
):
    """List cost categories with their detail categories."""

    async def _list():
        service = CostStructureService(SQLAlchemyStore())
        try:
            cats = await service.get_cost_categories(include_inactive)
            details = await service.get_detail_cost_categories(include_inactive=include_inactive)
        finally:
            await close_db()

        table = Table(title=f"Cost Categories ({len(cats)})")
        table.add_column("Code", style="cyan")
        table.add_column("Name")
        table.add_column("Unit")
        table.add_column("Base price", justify="right", style="green")

        for cat in cats:
            table.add_row(cat["code"], f"[bold]{cat['name']}[/bold]", "", "")
            for detail in details:
                if detail["category_id"] == cat["id"]:
                    table.add_row(
                        f"  {detail['code']}",
                        f"  {detail['name']}",
                        detail["unit"],
                        f"{detail['base_price']:.2f}",
                    )
        console.print(table)

    asyncio.run(_list())


@app.command()
def locations(
    include_inactive: bool = typer.Option(False, "--all", help="Include inactive locations"),
):
    """List locations."""

    async def _list():
        service = CostStructureService(SQLAlchemyStore())
        try:
            rows = await service.get_all_locations(include_inactive)
        finally:
            await close_db()

        table = Table(title=f"Locations ({len(rows)})")
        table.add_column("Code", style="cyan")
        table.add_column("Name")
        table.add_column("Level", justify="right")
        table.add_column("Order", justify="right", style="dim")
        for row in rows:
            table.add_row(
                row["code"],
                "  " * (row["level"] or 0) + row["name"],
                str(row["level"]),
                str(row["sort_order"]),
            )
        console.print(table)

    asyncio.run(_list())


@app.command()
def mappings(
    detail_id: UUID | None = typer.Option(None, "--detail", help="Detail category ID"),
    location_id: UUID | None = typer.Option(None, "--location", help="Location ID"),
):
    """List detail category / location mappings with totals."""

    async def _list():
        store = SQLAlchemyStore()
        service = CostStructureService(store)
        try:
            rows = await service.get_category_location_mappings(detail_id, location_id)
            details = {d["id"]: d for d in await service.get_detail_cost_categories(include_inactive=True)}
            places = {loc["id"]: loc for loc in await service.get_all_locations(include_inactive=True)}
        finally:
            await close_db()

        table = Table(title=f"Mappings ({len(rows)})")
        table.add_column("Detail", style="cyan")
        table.add_column("Location")
        table.add_column("Qty", justify="right")
        table.add_column("Unit price", justify="right")
        table.add_column("Discount %", justify="right")
        table.add_column("Final", justify="right", style="green")
        for row in rows:
            detail = details.get(row["detail_category_id"], {})
            place = places.get(row["location_id"], {})
            table.add_row(
                detail.get("name", str(row["detail_category_id"])),
                place.get("name", str(row["location_id"])),
                f"{row['quantity']:g}",
                f"{row['unit_price']:.2f}",
                f"{row['discount_percent'] or 0:g}",
                f"{row['final_price']:.2f}",
            )
        console.print(table)

    asyncio.run(_list())


@app.command(name="import-status")
def import_status(
    last: int = typer.Option(5, "--last", help="Number of runs to show"),
):
    """Show recent import runs."""

    async def _status():
        try:
            runs = await recent_import_runs(SQLAlchemyStore(), limit=last)
        finally:
            await close_db()

        if not runs:
            console.print("[yellow]No import runs recorded[/yellow]")
            return

        table = Table(title="Recent Imports")
        table.add_column("Started", style="cyan")
        table.add_column("File")
        table.add_column("Status")
        table.add_column("Cat", justify="right")
        table.add_column("Det", justify="right")
        table.add_column("Loc", justify="right")
        table.add_column("Map", justify="right")
        table.add_column("Errors", justify="right", style="red")

        for run in runs:
            if not run["success"]:
                status = "[red]FAILED[/red]"
            elif run["errors"]:
                status = "[yellow]PARTIAL[/yellow]"
            else:
                status = "[green]SUCCESS[/green]"
            table.add_row(
                run["started_at"].strftime("%Y-%m-%d %H:%M"),
                Path(run["source_file"] or "-").name,
                status,
                str(run["categories_created"]),
                str(run["detail_categories_created"]),
                str(run["locations_created"]),
                str(run["mappings_created"]),
                str(len(run["errors"])),
            )
        console.print(table)

        latest = runs[0]
        if latest["errors"]:
            console.print("\nLatest run issues:")
            for error in latest["errors"][:10]:
                console.print(f"  • {error}")

    asyncio.run(_status())


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()

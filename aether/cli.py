"""Aether CLI - async pipeline commands.

Commands:
- init: Initialize database schema
- ingest: Import a spreadsheet export (CSV/XLSX) and run the pipeline
- process: Re-run aggregation, gaps and detection for an upload
- backfill-dates: Resolve dates for rows ingested without one
- kpis: Show KPI totals, changes and series for a date range
- gaps: Show the weekly leakage summary or the full gap matrix
- web serve: Run the FastAPI app
"""

from __future__ import annotations

import asyncio
import json
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from aether.config import get_config
from aether.core.logging import configure_logging
from aether.db.connection import close_db, get_session, init_db
from aether.db.models import Period
from aether.ingestion.uploads import ingest_upload
from aether.pipeline.backfill import backfill_dates
from aether.pipeline.processor import process_upload
from aether.pipeline.types import ProcessResult, StageStatus
from aether.reporting.gap_reports import gap_matrix, weekly_gap_summary
from aether.reporting.kpis import DateRange, get_kpis

app = typer.Typer(
    name="aether",
    help="Aether - spreadsheet ingestion, KPI snapshots and revenue gaps",
    no_args_is_help=True,
)
web_cli = typer.Typer(help="Web API")
app.add_typer(web_cli, name="web")

console = Console()

STAGE_STYLES = {
    StageStatus.SUCCESS: "green",
    StageStatus.SKIPPED: "yellow",
    StageStatus.FAILED: "red",
}


def _load_mapping(value: str | None) -> dict | None:
    """Column mapping from inline JSON or a path to a JSON file."""
    if not value:
        return None
    path = Path(value)
    text = path.read_text() if path.exists() else value
    try:
        mapping = json.loads(text)
    except json.JSONDecodeError as e:
        raise typer.BadParameter(f"Invalid mapping JSON: {e}") from e
    if not isinstance(mapping, dict):
        raise typer.BadParameter("Mapping must be a JSON object")
    return mapping


def _fmt(value: float | None, suffix: str = "") -> str:
    if value is None:
        return "-"
    return f"{value:,.2f}{suffix}"


def _print_stages(result: ProcessResult) -> None:
    table = Table(title=f"Upload {result.upload_id}")
    table.add_column("Stage")
    table.add_column("Status")
    table.add_column("Message")
    for stage in result.stages:
        style = STAGE_STYLES[stage.status]
        table.add_row(stage.name, f"[{style}]{stage.status.value}[/{style}]", stage.message)
    console.print(table)
    console.print(f"Completed in {result.duration_seconds:.2f}s")


@app.command()
def init(
    drop: bool = typer.Option(False, "--drop", help="Drop existing tables"),
):
    """Initialize database schema."""
    config = get_config()
    console.print(f"[bold]Initializing database:[/bold] {config.db.url}")

    async def _init():
        if drop:
            console.print("[yellow]Dropping existing tables...[/yellow]")
        await init_db(drop=drop)
        await close_db()

    asyncio.run(_init())
    console.print("[bold green]✓[/bold green] Database initialized")


@app.command()
def ingest(
    file_path: Path = typer.Argument(..., help="Spreadsheet export (CSV/XLSX)"),
    org_id: str | None = typer.Option(None, "--org", help="Organization ID"),
    data_type: str = typer.Option(
        "custom", "--type", help="Declared type: revenue, labor, attendance or custom"
    ),
    mapping: str | None = typer.Option(
        None, "--mapping", help="Column mapping as JSON or path to a JSON file"
    ),
):
    """Import a spreadsheet export and run the pipeline on it."""
    configure_logging()
    org_id = org_id or get_config().org_id
    column_mapping = _load_mapping(mapping)

    console.print(f"[bold]Ingesting:[/bold] {file_path} (org={org_id}, type={data_type})")

    async def _ingest():
        try:
            async with get_session() as session:
                ingested = await ingest_upload(
                    session,
                    file_path,
                    org_id,
                    data_type=data_type,
                    column_mapping=column_mapping,
                )
                console.print(
                    f"  [green]✓[/green] {ingested.row_count} rows "
                    f"({ingested.rows_without_date} without date)"
                )
                processed = await process_upload(session, org_id, ingested.upload_id)
        finally:
            await close_db()
        _print_stages(processed)

    try:
        asyncio.run(_ingest())
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]✗[/red] Failed: {e}")
        raise typer.Exit(code=1)


@app.command()
def process(
    upload_id: str = typer.Argument(..., help="Upload ID"),
    org_id: str | None = typer.Option(None, "--org", help="Organization ID"),
):
    """Re-run aggregation, gap computation and detection for an upload."""
    configure_logging()
    org_id = org_id or get_config().org_id

    async def _process():
        try:
            async with get_session() as session:
                result = await process_upload(session, org_id, upload_id)
        finally:
            await close_db()
        _print_stages(result)
        if not result.success:
            raise typer.Exit(code=1)

    asyncio.run(_process())


@app.command(name="backfill-dates")
def backfill_dates_cmd(
    days: int | None = typer.Option(
        None, "--days", help="Lookback window in days (default from config)"
    ),
):
    """Resolve dates for rows that were ingested without one."""
    configure_logging()
    since = None
    if days is not None:
        since = datetime.now(timezone.utc) - timedelta(days=days)

    async def _backfill():
        try:
            async with get_session() as session:
                result = await backfill_dates(session, since=since)
        finally:
            await close_db()

        table = Table(title="Date Backfill")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Uploads processed", str(result.uploads_processed))
        table.add_row("Uploads skipped", str(result.uploads_skipped))
        table.add_row("Rows updated", str(result.rows_updated))
        table.add_row("Rows still without date", str(result.rows_still_null))
        console.print(table)

    asyncio.run(_backfill())


@app.command()
def kpis(
    org_id: str | None = typer.Option(None, "--org", help="Organization ID"),
    period: Period = typer.Option(Period.DAILY, "--period", help="Snapshot granularity"),
    start: datetime | None = typer.Option(None, "--start", formats=["%Y-%m-%d"]),
    end: datetime | None = typer.Option(None, "--end", formats=["%Y-%m-%d"]),
):
    """Show KPI totals, changes and series (default: last 30 days)."""
    org_id = org_id or get_config().org_id
    end_date = end.date() if end else date.today()
    start_date = start.date() if start else end_date - timedelta(days=29)

    try:
        date_range = DateRange(start_date, end_date)
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e

    async def _kpis():
        try:
            async with get_session() as session:
                data = await get_kpis(session, org_id, period, date_range)
        finally:
            await close_db()

        summary = Table(title=f"KPIs {start_date} → {end_date} ({period.value})")
        summary.add_column("Metric", style="cyan")
        summary.add_column("Total", justify="right")
        summary.add_column("Change", justify="right")
        summary.add_row("Revenue", _fmt(data.revenue), _fmt(data.changes.revenue_pct, "%"))
        summary.add_row(
            "Labor cost", _fmt(data.labor_cost), _fmt(data.changes.labor_cost_pct, "%")
        )
        summary.add_row(
            "Utilization", _fmt(data.utilization), _fmt(data.changes.utilization_pct, "%")
        )
        summary.add_row("Forecast", _fmt(data.forecast), "")
        console.print(summary)

        if data.series:
            series = Table(title="Series")
            series.add_column("Date")
            series.add_column("Revenue", justify="right")
            series.add_column("Labor cost", justify="right")
            series.add_column("Utilization", justify="right")
            for point in data.series:
                series.add_row(
                    point.date.isoformat(),
                    _fmt(point.revenue),
                    _fmt(point.labor_cost),
                    _fmt(point.utilization),
                )
            console.print(series)

    asyncio.run(_kpis())


@app.command()
def gaps(
    org_id: str | None = typer.Option(None, "--org", help="Organization ID"),
    matrix: bool = typer.Option(False, "--matrix", help="Show every week per entity"),
    top: int = typer.Option(5, "--top", help="Rows in the weekly summary"),
):
    """Show revenue leakage by dimension value."""
    org_id = org_id or get_config().org_id

    async def _gaps():
        try:
            async with get_session() as session:
                if matrix:
                    report = await gap_matrix(session, org_id)
                else:
                    summary = await weekly_gap_summary(session, org_id, top_n=top)
        finally:
            await close_db()

        if not matrix:
            table = Table(title=f"Week of {summary.week_start}")
            table.add_column("Dimension")
            table.add_column("Value")
            table.add_column("Actual", justify="right")
            table.add_column("Expected", justify="right")
            table.add_column("Gap", justify="right", style="red")
            table.add_column("Gap %", justify="right")
            for row in summary.top_leakage:
                table.add_row(
                    row.dimension_field,
                    row.dimension_value,
                    _fmt(row.actual_value),
                    _fmt(row.expected_value),
                    _fmt(row.gap_value),
                    _fmt(row.gap_pct, "%"),
                )
            console.print(table)
            console.print(f"[bold]Total leakage:[/bold] {_fmt(summary.total_leakage)}")
            return

        if not report.entities:
            console.print("[yellow]No performance gaps recorded[/yellow]")
            return

        table = Table(title="Gap Matrix")
        table.add_column("Entity")
        for week in report.weeks:
            table.add_column(week.isoformat(), justify="right")
        table.add_column("Total gap", justify="right", style="red")
        table.add_column("Avg gap %", justify="right")
        for entity in report.entities:
            table.add_row(
                f"{entity.field}={entity.value}",
                *(_fmt(gap) for gap in entity.trend),
                _fmt(entity.total_gap),
                _fmt(entity.avg_gap_pct, "%"),
            )
        console.print(table)
        console.print(
            f"[bold]Total leakage:[/bold] {_fmt(report.summary.total_leakage)} across "
            f"{report.summary.entity_count} entities and {report.summary.week_count} weeks"
        )

    asyncio.run(_gaps())


@web_cli.command("serve")
def web_serve(
    host: str = typer.Option("0.0.0.0", help="Host to bind"),
    port: int = typer.Option(8001, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload (dev only)"),
):
    """Run the FastAPI app."""
    import uvicorn

    typer.echo(f"Starting Aether API on http://{host}:{port}")
    uvicorn.run("aether.web.app:app", host=host, port=port, reload=reload, workers=1)


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()

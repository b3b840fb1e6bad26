"""CLI commands for running and planning extractions."""

from __future__ import annotations

import asyncio
import json
import signal
from pathlib import Path
from typing import List, Optional

import typer
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TextColumn, TimeRemainingColumn
from rich.table import Table

from ..classifier import parse
from ..configuration.settings import Settings
from ..errors import CrypticDocsError
from ..gateway import CommandGateway
from ..models import CommandSpec
from ..orchestrator import BatchScheduler, ExtractionReport, ProgressEvent, load_catalog
from ..orchestrator.catalog import partition, sort_by_priority
from ..session import SessionProvider
from .common import ConfigOption, console, fail, load_cli_settings

extract_app = typer.Typer(help="Help-text extraction commands")


def _load_plan(settings: Settings, catalog_path: Optional[Path]) -> List[CommandSpec]:
    path = catalog_path or settings.catalog_path
    return sort_by_priority(load_catalog(path))


def _write_report(report: ExtractionReport, output: Path) -> None:
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(report.model_dump_json(indent=2), encoding="utf-8")
    console.print(f"Report written to {output}")


def _print_summary(report: ExtractionReport) -> None:
    summary = report.summary
    table = Table(title="Extraction summary")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Total commands", str(summary.total_commands))
    table.add_row("Processed", str(summary.processed_commands))
    table.add_row("Successful", str(summary.successful_commands))
    table.add_row("Failed", str(summary.failed_commands))
    table.add_row("Success rate", f"{summary.success_rate}%")
    table.add_row("Duration", f"{summary.duration_ms / 1000:.1f}s")
    if report.stopped:
        table.add_row("Stopped", "yes")
    console.print(table)


async def _run_extraction(scheduler: BatchScheduler, plan: List[CommandSpec], progress: Progress) -> ExtractionReport:
    task_id = progress.add_task("Extracting", total=len(plan))

    def on_progress(event: ProgressEvent) -> None:
        progress.update(task_id, completed=event.current, description=event.current_command)

    scheduler.on_progress(on_progress)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, scheduler.stop)
    except (NotImplementedError, RuntimeError):
        # Platforms without loop signal handlers fall back to KeyboardInterrupt
        pass
    try:
        return await scheduler.start(plan)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


@extract_app.command("run")
def run_command(
    config_path: Path = ConfigOption,
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Command catalog JSON"),
    intercepted: Optional[Path] = typer.Option(None, "--intercepted", help="Captured request JSON"),
    page: Optional[Path] = typer.Option(None, "--page", help="Saved terminal page HTML"),
    storage: Optional[Path] = typer.Option(None, "--storage", help="Browser storage dump JSON"),
    output: Path = typer.Option(Path("report.json"), "--output", "-o", help="Report destination"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Commands per batch"),
    command_delay: Optional[int] = typer.Option(None, "--command-delay", help="Delay between commands (ms)"),
    batch_delay: Optional[int] = typer.Option(None, "--batch-delay", help="Delay between batches (ms)"),
    skip_on_error: Optional[bool] = typer.Option(
        None, "--skip-on-error/--stop-on-critical", help="Continue past critical failures"
    ),
) -> None:
    """Run a full extraction and write the JSON report."""
    settings = load_cli_settings(config_path, intercepted=intercepted, page=page, storage=storage)
    plan = _load_plan(settings, catalog)

    overrides = {
        key: value
        for key, value in (
            ("batch_size", batch_size),
            ("delay_between_commands_ms", command_delay),
            ("delay_between_batches_ms", batch_delay),
            ("skip_on_error", skip_on_error),
        )
        if value is not None
    }

    provider = SessionProvider.from_settings(settings.session)
    gateway = CommandGateway(settings.gateway)
    scheduler = BatchScheduler(gateway, provider, settings=settings.scheduler)

    columns = (
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeRemainingColumn(),
    )
    try:
        if overrides:
            scheduler.update_settings(overrides)
        with Progress(*columns, console=console) as progress:
            report = asyncio.run(_run_extraction(scheduler, plan, progress))
    except CrypticDocsError as exc:
        partial = scheduler.last_report
        if partial is not None and scheduler.settings.save_partial_results:
            _write_report(partial, output)
        fail(exc)

    _print_summary(report)
    if report.stopped and not scheduler.settings.save_partial_results:
        console.print("[yellow]Run stopped; partial results not saved[/yellow]")
        return
    _write_report(report, output)


@extract_app.command("catalog")
def catalog_command(
    config_path: Path = ConfigOption,
    catalog: Optional[Path] = typer.Option(None, "--catalog", help="Command catalog JSON"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="Commands per batch"),
) -> None:
    """Print the priority-ordered dispatch plan."""
    settings = load_cli_settings(config_path)
    plan = _load_plan(settings, catalog)
    size = batch_size if batch_size is not None else settings.scheduler.batch_size
    if size < 1:
        raise typer.BadParameter("batch size must be at least 1")
    batches = partition(plan, size)

    table = Table(title=f"{len(plan)} commands in {len(batches)} batches")
    table.add_column("#", justify="right")
    table.add_column("Batch", justify="right")
    table.add_column("Command")
    table.add_column("Category")
    table.add_column("Priority")
    table.add_column("Critical")
    index = 0
    for batch_number, batch in enumerate(batches, start=1):
        for spec in batch:
            index += 1
            table.add_row(
                str(index),
                str(batch_number),
                spec.command_text,
                spec.category_name or spec.category,
                spec.priority.value,
                "yes" if spec.critical else "",
            )
    console.print(table)


@extract_app.command("parse")
def parse_command(
    response_file: Path = typer.Argument(..., exists=True, dir_okay=False, help="Captured response text"),
    command: str = typer.Option(..., "--command", "-c", help="Command that produced the response"),
) -> None:
    """Classify a captured response and print the parsed JSON."""
    parsed = parse(response_file.read_text(encoding="utf-8"), command)
    typer.echo(json.dumps(parsed.model_dump(mode="json"), indent=2))

from __future__ import annotations

from typing import Optional

from rich import box
from rich.console import Console
from rich.table import Table

from har_ingest.ingest import IngestionReport


def _format_mb(value: Optional[int]) -> str:
    if not value:
        return "N/A"
    return f"{value / (1024 * 1024):.2f}"


def print_report(report: IngestionReport, console: Optional[Console] = None) -> None:
    """
    Render an ingestion run as a rich table, one row per batch.

    A failed batch is appended as a red row carrying its checkpoint boundaries,
    which is where a resumed run should start.
    """
    console = console or Console()

    if not report.batches and report.ok:
        console.print("[yellow]No batches were processed.[/yellow]")
        return

    dry_run = any(batch.dry_run for batch in report.batches)
    title = "History Archive Ingestion"
    if dry_run:
        title = f"{title}\n[dim]Dry run: nothing written to the database[/dim]"

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Checkpoints", style="cyan", no_wrap=True)
    table.add_column("Files", justify="right", style="magenta")
    table.add_column("Records", justify="right", style="magenta")
    table.add_column("Duration (s)", justify="right", style="green")
    table.add_column("Peak Memory (MB)", justify="right", style="yellow")
    table.add_column("Status", justify="left")

    for batch in report.batches:
        status = "[blue]checked[/blue]" if batch.dry_run else "[green]committed[/green]"
        table.add_row(
            f"{batch.first_checkpoint}:{batch.last_checkpoint}",
            f"{batch.files:,}",
            f"{batch.records:,}",
            f"{batch.duration_seconds:.1f}",
            _format_mb(batch.peak_rss_bytes),
            status,
        )

    if report.failure is not None:
        failure = report.failure
        table.add_row(
            f"{failure.first_checkpoint}:{failure.last_checkpoint}",
            "-",
            "-",
            "-",
            "-",
            "[bold red]rolled back[/bold red]",
        )

    console.print(table)
    console.print(
        f"[bold]{report.files:,}[/bold] files, [bold]{report.records:,}[/bold] records"
    )
    if report.failure is not None:
        console.print(f"[red]{report.failure.cause}[/red]")
        console.print(f"Resume from checkpoint [bold]{report.resume_from}[/bold].")


__all__ = ["print_report"]

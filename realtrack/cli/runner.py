# realtrack/cli/runner.py

"""Headless command runners for crawls, sweeps and reports."""

import logging

from rich.console import Console
from rich.table import Table

from realtrack.config.settings import Settings
from realtrack.models.run_report import RunReport, RunStatus
from realtrack.services.health_sweep import HealthSweep
from realtrack.services.priority_scheduler import (
    PriorityScheduler,
    checks_per_day,
)
from realtrack.services.run_orchestrator import RunOrchestrator
from realtrack.storage.listing_repository import ListingRepository

logger = logging.getLogger("realtrack.cli")

# Stderr console for status messages so stdout stays clean for tables
_err = Console(stderr=True)

_STATUS_STYLE = {
    RunStatus.SUCCESS: "[green]success[/green]",
    RunStatus.PARTIAL: "[yellow]partial[/yellow]",
    RunStatus.ERROR: "[red]error[/red]",
}


def resolve_sources(
    source_csv: str | None,
) -> list[dict[str, str]]:
    """Map a comma-separated list of source IDs to their config dicts.

    Returns all sources when *source_csv* is ``None``.
    Raises ``SystemExit`` on unknown IDs.
    """
    available = {
        s["id"]: s for s in Settings.AVAILABLE_SOURCES
    }
    if source_csv is None:
        return Settings.AVAILABLE_SOURCES

    requested = [
        s.strip() for s in source_csv.split(",") if s.strip()
    ]
    unknown = [r for r in requested if r not in available]
    if unknown:
        valid = ", ".join(sorted(available))
        _err.print(
            f"[red]Unknown source(s): {', '.join(unknown)}[/red]"
        )
        _err.print(f"[dim]Available: {valid}[/dim]")
        raise SystemExit(1)

    return [available[r] for r in requested]


def _print_reports(reports: list[RunReport], title: str) -> None:
    """Render a Rich table of run reports to stdout."""
    table = Table(
        title=title,
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Source", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Started", style="dim")
    table.add_column("Found", justify="right")
    table.add_column("New", justify="right", style="green")
    table.add_column("Updated", justify="right")
    table.add_column("Invalid", justify="right")
    table.add_column("Errors", justify="right")
    table.add_column("Duration", justify="right")

    for r in reports:
        table.add_row(
            r.source,
            _STATUS_STYLE[r.status],
            r.started_at.strftime("%Y-%m-%d %H:%M"),
            str(r.found),
            str(r.new),
            str(r.updated),
            str(r.invalid),
            str(r.errors_count),
            f"{r.duration_ms / 1000:.1f}s",
        )

    Console().print(table)


async def cli_crawl(
    source_csv: str | None,
    max_pages: int | None,
) -> int:
    """Crawl the selected sources; exit code 1 if any run errored."""
    sources = resolve_sources(source_csv)
    source_labels = ", ".join(s["label"] for s in sources)
    pages = Settings.MAX_PAGES if max_pages is None else max_pages
    _err.print(
        f"[bold]Crawling:[/bold] {source_labels}  [dim]pages={pages}[/dim]"
    )

    repo = ListingRepository()
    try:
        orchestrator = RunOrchestrator(repository=repo)
        reports = await orchestrator.run_sources(
            [s["id"] for s in sources], max_pages
        )
    finally:
        repo.close()

    for r in reports:
        for error_msg in r.error_sample:
            _err.print(f"[red]{r.source}: {error_msg}[/red]")

    _print_reports(reports, "Crawl Runs")
    if any(r.status is RunStatus.ERROR for r in reports):
        return 1
    return 0


async def cli_sweep(batch_size: int | None) -> int:
    """Run one health sweep over the due listings."""
    size = Settings.SWEEP_BATCH_SIZE if batch_size is None else batch_size
    _err.print(f"[bold]Health sweep[/bold]  [dim]batch={size}[/dim]")

    repo = ListingRepository()
    try:
        report = await HealthSweep(repo).run(size)
    finally:
        repo.close()

    for error_msg in report.error_sample:
        _err.print(f"[red]Error: {error_msg}[/red]")

    table = Table(
        title="Health Sweep",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Selected", justify="right")
    table.add_column("Checked", justify="right")
    table.add_column("Active", justify="right", style="green")
    table.add_column("Price changed", justify="right", style="yellow")
    table.add_column("Removed", justify="right", style="red")
    table.add_column("Errors", justify="right")
    table.add_column("Domains", justify="right", style="dim")
    table.add_row(
        str(report.selected),
        str(report.checked),
        str(report.still_active),
        str(report.price_changed),
        str(report.removed),
        str(report.errors),
        str(report.domains),
    )
    Console().print(table)

    if report.checked == 0 and report.errors:
        return 1
    return 0


def run_priorities() -> int:
    """Refresh stored priority scores and show the cadence histogram."""
    _err.print("[bold]Refreshing priority scores...[/bold]")
    repo = ListingRepository()
    try:
        scores = PriorityScheduler(repo).refresh_scores()
    finally:
        repo.close()

    buckets: dict[int, int] = {3: 0, 2: 0, 1: 0, 0: 0}
    for score in scores.values():
        buckets[checks_per_day(score)] += 1

    table = Table(
        title="Check Cadence",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Checks / day", justify="center")
    table.add_column("Listings", justify="right")
    labels = {3: "3", 2: "2", 1: "1", 0: "every 2+ days"}
    for allotment, count in buckets.items():
        table.add_row(labels[allotment], str(count))
    Console().print(table)

    _err.print(
        f"[green]✓ Scored {len(scores):,} active listings[/green]"
    )
    return 0


def run_reports(limit: int = 20, source: str | None = None) -> int:
    """Show the latest run reports."""
    repo = ListingRepository()
    try:
        reports = repo.latest_reports(limit=limit, source=source)
        counts = repo.count_by_status()
    finally:
        repo.close()

    if not reports:
        _err.print("[yellow]No run reports yet.[/yellow]")
        return 0

    _print_reports(reports, "Latest Runs")
    summary = ", ".join(
        f"{count:,} {status}" for status, count in sorted(counts.items())
    )
    _err.print(f"[dim]Listings: {summary}[/dim]")
    return 0

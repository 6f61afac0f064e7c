"""
Catalog CLI Commands
====================

CLI commands for running sources, backfilling AI descriptions and
maintaining retrieval embeddings.
"""

from __future__ import annotations

import asyncio
from typing import Optional

import typer
from rich import print as rprint
from rich.console import Console
from rich.table import Table

from coffee_agent.core.enums import SourceRunStatus
from coffee_agent.ingestion.collectors import list_collectors
from coffee_agent.ingestion.registry import get_default_registry

console = Console()
sources_app = typer.Typer(help="Source management commands")
embeddings_app = typer.Typer(help="Embedding maintenance commands")

_STATUS_COLORS = {
    SourceRunStatus.COMPLETED.value: "green",
    SourceRunStatus.RUNNING.value: "blue",
    SourceRunStatus.PENDING.value: "yellow",
    SourceRunStatus.ABORTED.value: "yellow",
    SourceRunStatus.FAILED.value: "red",
}

# (column title, result key) pairs of the per-source summary table
_RUN_COLUMNS = [
    ("Found", "products_found"),
    ("New", "new_products"),
    ("Prices", "prices_updated"),
    ("Unstocked", "unstocked"),
    ("Fields", "fields_backfilled"),
    ("AI Desc", "ai_descriptions"),
    ("AI Notes", "ai_tasting_notes"),
    ("Embedded", "items_embedded"),
    ("Chunks +", "chunks_created"),
    ("Chunks -", "chunks_removed"),
]


def run(
    source: str = typer.Argument(..., help="Source name, or 'all' for every enabled source"),
    force: bool = typer.Option(False, "--force", "-f", help="Regenerate existing embeddings"),
    limit: Optional[int] = typer.Option(
        None, "--limit", "-l", min=1, help="Maximum new products to process per source"
    ),
    coffee_id: Optional[int] = typer.Option(
        None, "--coffee-id", help="Restrict embedding to one catalog item"
    ),
) -> None:
    """
    Run collection, reconciliation, enrichment and embedding for sources.

    Exits non-zero only when the run itself cannot proceed; per-source and
    per-item failures are reported in the summary.

    Examples:
        coffee-agent run captain_coffee
        coffee-agent run all --limit 5
        coffee-agent run bodhi_leaf --force --coffee-id 42
    """
    from coffee_agent.db.engine import get_session_factory, init_db
    from coffee_agent.ingestion.pipeline import RunOptions, create_orchestrator

    registry = get_default_registry()
    if source == "all":
        source_names = [s.name for s in registry.list_enabled_sources()]
        if not source_names:
            rprint("[red]Error:[/red] No enabled sources configured")
            rprint("\nAdd sources to config/sources.yaml")
            raise typer.Exit(1)
    else:
        if registry.get_source(source) is None:
            rprint(f"[red]Error:[/red] Source '{source}' not found")
            _print_available_sources()
            raise typer.Exit(1)
        source_names = [source]

    rprint(f"\n[bold]Running sources:[/bold] {', '.join(source_names)}")
    if limit:
        rprint(f"  Max new products: {limit}")
    if force:
        rprint("  Regenerating existing embeddings")
    if coffee_id is not None:
        rprint(f"  Embedding coffee ID: {coffee_id}")

    options = RunOptions(force=force, limit=limit, coffee_id=coffee_id)

    async def _run():
        async with create_orchestrator(registry, get_session_factory()) as orchestrator:
            return await orchestrator.run_sources(source_names, options)

    try:
        init_db()
        report = asyncio.run(_run())
    except Exception as e:
        rprint(f"\n[red]Error:[/red] Run failed: {e}")
        raise typer.Exit(1)

    _display_run_report(report.to_dict(), report.errors, report.warnings)


def backfill(
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Restrict to one source"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=1, help="Maximum items to process"),
) -> None:
    """
    Generate AI descriptions for stocked items that have none.

    Examples:
        coffee-agent backfill
        coffee-agent backfill --source captain_coffee --limit 20
    """
    from coffee_agent.db.engine import get_session, init_db
    from coffee_agent.ingestion.pipeline import create_enricher
    from coffee_agent.services.ai.backfill import DescriptionBackfill

    registry = get_default_registry()
    try:
        enricher = create_enricher(registry.global_config)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    init_db()

    async def _backfill():
        with get_session() as session:
            return await DescriptionBackfill(session, enricher).run(source=source, limit=limit)

    with console.status("[bold blue]Generating descriptions...[/bold blue]"):
        result = asyncio.run(_backfill())

    rprint("\n[bold]Backfill Summary:[/bold]")
    rprint(f"  Processed: {result.processed}")
    rprint(f"  Succeeded: [green]{result.succeeded}[/green]")
    rprint(f"  Failed: [red]{result.failed}[/red]")
    rprint(f"  Skipped: {result.skipped}")
    if result.model:
        rprint(f"  Model: {result.model}")
    _print_messages("Errors", result.errors, "red")


# Sources subcommands


@sources_app.command("list")
def list_sources(
    all_sources: bool = typer.Option(False, "--all", "-a", help="Show all sources including disabled"),
) -> None:
    """
    List configured sources.

    Examples:
        coffee-agent sources list
        coffee-agent sources list --all
    """
    registry = get_default_registry()
    sources = registry.list_sources() if all_sources else registry.list_enabled_sources()

    if not sources:
        rprint("[yellow]No sources configured[/yellow]")
        rprint("\nAdd sources to config/sources.yaml")
        return

    table = Table(title="Catalog Sources")
    table.add_column("Name", style="bold")
    table.add_column("Collector")
    table.add_column("Base URL")
    table.add_column("Status")
    table.add_column("Rate Limit")

    for source in sources:
        status = "[green]enabled[/green]" if source.enabled else "[yellow]disabled[/yellow]"
        rate = f"{source.rate_limit.requests_per_second}/s"
        table.add_row(source.name, source.collector, source.base_url or "-", status, rate)

    console.print(table)


@sources_app.command("show")
def show_source(
    name: str = typer.Argument(..., help="Source name"),
) -> None:
    """
    Show detailed information about a source.

    Examples:
        coffee-agent sources show captain_coffee
    """
    source = get_default_registry().get_source(name)

    if source is None:
        rprint(f"[red]Error:[/red] Source '{name}' not found")
        raise typer.Exit(1)

    status = "[green]enabled[/green]" if source.enabled else "[yellow]disabled[/yellow]"

    rprint(f"\n[bold]Source: {source.name}[/bold]")
    rprint(f"  Status: {status}")
    rprint(f"  Collector: {source.collector}")
    if source.collector not in list_collectors():
        rprint("  [red]Collector is not registered[/red]")
    if source.base_url:
        rprint(f"  Base URL: {source.base_url}")
    if source.description:
        rprint(f"  Description: {source.description}")

    rprint("\n[bold]Rate Limiting:[/bold]")
    rprint(f"  Requests/second: {source.rate_limit.requests_per_second}")
    rprint(f"  Burst limit: {source.rate_limit.burst_limit}")

    if source.allowlist:
        rprint("\n[bold]Allowlist Patterns:[/bold]")
        for pattern in source.allowlist:
            rprint(f"  • {pattern}")

    if source.denylist:
        rprint("\n[bold]Denylist Patterns:[/bold]")
        for pattern in source.denylist:
            rprint(f"  • {pattern}")


# Embeddings subcommands


@embeddings_app.command("generate")
def generate_embeddings(
    source: Optional[str] = typer.Option(None, "--source", "-s", help="Restrict to one source"),
    force: bool = typer.Option(False, "--force", "-f", help="Regenerate existing embeddings"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=1, help="Maximum items to process"),
    coffee_id: Optional[int] = typer.Option(None, "--coffee-id", help="Process one catalog item"),
) -> None:
    """
    Generate retrieval chunks and embeddings for stocked items.

    Examples:
        coffee-agent embeddings generate --source captain_coffee
        coffee-agent embeddings generate --force --limit 10
        coffee-agent embeddings generate --coffee-id 123
    """
    from coffee_agent.db.engine import get_session, init_db
    from coffee_agent.ingestion.pipeline import create_embedding_provider
    from coffee_agent.services.embeddings.pipeline import EmbeddingPipeline

    config = get_default_registry().global_config
    try:
        provider = create_embedding_provider(config)
    except ValueError as e:
        rprint(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    init_db()

    async def _generate():
        with get_session() as session:
            pipeline = EmbeddingPipeline(session, provider, delay_seconds=config.embedding.delay_seconds)
            return await pipeline.process_bulk(
                source=source, force=force, limit=limit, coffee_id=coffee_id
            )

    with console.status("[bold blue]Generating embeddings...[/bold blue]"):
        result = asyncio.run(_generate())

    rprint("\n[bold]Embedding Summary:[/bold]")
    rprint(f"  Processed: {result.processed}")
    rprint(f"  Embedded: [green]{result.embedded}[/green]")
    rprint(f"  Skipped: {result.skipped}")
    rprint(f"  Failed: [red]{result.failed}[/red]")
    rprint(f"  Chunks created: {result.chunks_created}")
    _print_messages("Errors", result.errors, "red")


@embeddings_app.command("status")
def embeddings_status() -> None:
    """
    Show embedding coverage overall and per source.

    Examples:
        coffee-agent embeddings status
    """
    from coffee_agent.db.engine import get_session, init_db
    from coffee_agent.services.embeddings.pipeline import embedding_status

    init_db()
    with get_session() as session:
        status = embedding_status(session)

    rprint("\n[bold]Embedding Status:[/bold]")
    rprint(f"  Total items: {status.total_items}")
    rprint(f"  Stocked items: {status.stocked_items}")
    rprint(f"  Items with chunks: {status.embedded_items}")
    rprint(f"  Total chunks: {status.total_chunks}")
    rprint(f"  Coverage: {status.coverage}%")

    if not status.by_source:
        return

    table = Table(title="By Source")
    table.add_column("Source", style="bold")
    table.add_column("Total", justify="right")
    table.add_column("Stocked", justify="right")
    table.add_column("Embedded", justify="right")
    for name, counts in status.by_source.items():
        table.add_row(name, str(counts["total"]), str(counts["stocked"]), str(counts["embedded"]))
    console.print(table)


def _print_available_sources() -> None:
    rprint("\nAvailable sources:")
    for s in get_default_registry().list_sources():
        status = "[green]enabled[/green]" if s.enabled else "[yellow]disabled[/yellow]"
        rprint(f"  • {s.name} ({status})")


def _print_messages(title: str, messages: list[str], color: str, limit: int = 10) -> None:
    if not messages:
        return
    rprint(f"\n[bold {color}]{title} ({len(messages)}):[/bold {color}]")
    for message in messages[:limit]:
        rprint(f"  • {message}")
    if len(messages) > limit:
        rprint(f"  ... and {len(messages) - limit} more")


def _display_run_report(report: dict, errors: list[str], warnings: list[str]) -> None:
    """Display a run report as per-source and total tables."""
    table = Table(title="Run Summary")
    table.add_column("Source", style="bold")
    table.add_column("Status")
    for title, _ in _RUN_COLUMNS:
        table.add_column(title, justify="right")
    table.add_column("Duration", justify="right")

    for result in report["results"]:
        status = result["status"]
        color = _STATUS_COLORS.get(status, "white")
        duration = result.get("duration_seconds")
        table.add_row(
            result["source_name"],
            f"[{color}]{status}[/{color}]",
            *(str(result[key]) for _, key in _RUN_COLUMNS),
            f"{duration:.1f}s" if duration is not None else "-",
        )

    totals = report["totals"]
    table.add_row(
        "[bold]Total[/bold]",
        f"{report['sources_successful']}/{report['sources_processed']} ok",
        *(str(totals[key]) for _, key in _RUN_COLUMNS),
        "",
    )
    console.print(table)

    _print_messages("Warnings", warnings, "yellow")
    _print_messages("Errors", errors, "red")

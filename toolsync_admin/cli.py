"""
CLI commands for toolsync.

Provides the `toolsync` command-line interface for inspecting sync state,
running sweeps and the operator actions of the sync worker.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from config import ConfigurationLoader
from toolsync import __version__
from toolsync.app import SyncServices, build_services
from toolsync.models.config import GlobalSettings, SyncConfig
from toolsync.models.sync import SyncCollection, SyncStatus
from toolsync.sync.errors import ToolNotFoundError

console = Console()

STATUS_STYLES = {
    SyncStatus.SYNCED.value: "green",
    SyncStatus.PENDING.value: "yellow",
    SyncStatus.STALE.value: "blue",
    SyncStatus.FAILED.value: "red",
}


def _configure_logging(verbose: bool) -> None:
    settings = GlobalSettings()
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level)

    handlers = [logging.StreamHandler(sys.stderr)]
    if settings.log_to_file:
        handlers.append(logging.FileHandler(settings.get_log_file(), encoding='utf-8'))

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
        force=True
    )


def _styled(status: Optional[str]) -> str:
    if status is None:
        return "[dim]-[/dim]"
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


@click.group()
@click.version_option(version=__version__, prog_name="toolsync")
@click.option(
    '--catalog',
    type=click.Path(dir_okay=False, path_type=Path),
    help='JSON catalog file used as the primary store'
)
@click.option(
    '--config', 'config_file',
    type=click.Path(dir_okay=False, path_type=Path),
    help='JSON configuration file'
)
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx: click.Context, catalog: Optional[Path], config_file: Optional[Path], verbose: bool):
    """
    Toolsync CLI.

    Inspect and repair the sync between the tool catalog and its vector
    search collections.
    """
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj['catalog'] = catalog
    ctx.obj['config_file'] = config_file


def _load_config(ctx: click.Context) -> SyncConfig:
    try:
        config = ConfigurationLoader().load(ctx.obj.get('config_file'))
    except ValueError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)

    if ctx.obj.get('catalog'):
        config.catalog_path = ctx.obj['catalog']
    if config.catalog_path is None:
        console.print("[red]❌ No catalog configured. Pass --catalog or set TOOLSYNC_CATALOG_PATH.[/red]")
        sys.exit(1)
    return config


def _run(ctx: click.Context, action) -> Any:
    """Build services, run one async action against them and shut down"""
    config = _load_config(ctx)

    async def runner():
        services = build_services(config)
        try:
            return await action(services)
        finally:
            await services.shutdown()

    try:
        return asyncio.run(runner())
    except ToolNotFoundError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]❌ Command failed: {e}[/red]")
        sys.exit(1)


def _print_sync_result(result: Dict[str, Any]) -> None:
    table = Table(title=f"Sync result: {result['tool_id']}")
    table.add_column("Collection", style="cyan", no_wrap=True)
    table.add_column("Outcome", style="white")
    table.add_column("Details", style="dim")

    for entry in result.get("collections", []):
        if entry.get("skipped"):
            outcome = "[dim]⏭️  skipped[/dim]"
            details = "content unchanged"
        elif entry["success"]:
            outcome = "[green]✅ synced[/green]"
            details = f"{entry.get('duration_ms', 0):.1f}ms"
        else:
            outcome = "[red]❌ failed[/red]"
            details = f"{entry.get('error_code') or ''} {entry.get('error') or ''}".strip()
        table.add_row(entry["collection"], outcome, details)

    console.print(table)
    if result["success"]:
        console.print(f"[green]🎉 {result['tool_id']} synced ({result['synced_count']} collections)[/green]")
    else:
        error = result.get("error") or f"{result['failed_count']} collections failed"
        console.print(f"[red]❌ {result['tool_id']}: {error}[/red]")


@main.command()
@click.pass_context
def status(ctx: click.Context):
    """Check vector index health and sync worker state."""
    console.print("[blue]🔍 Checking toolsync status...[/blue]\n")

    async def action(services: SyncServices):
        health = await services.vector_index.health_check()
        stats = await services.worker.get_sync_stats()
        return health, stats, services.worker.get_status(), services.embedder.get_model_info()

    health, stats, worker_status, model_info = _run(ctx, action)

    table = Table(title="Toolsync Status")
    table.add_column("Component", style="cyan", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    if health.get("status") == "healthy":
        table.add_row("Qdrant", "[green]✅ Connected[/green]", health.get("url", ""))
        for collection, exists in health.get("collections", {}).items():
            state = "[green]✅ Present[/green]" if exists else "[yellow]⚠️  Missing[/yellow]"
            table.add_row(f"  {collection}", state, "")
    else:
        table.add_row("Qdrant", "[red]❌ Not available[/red]", health.get("error", ""))

    table.add_row("Embedding model", "[green]✅ Configured[/green]", model_info.get("model_name", ""))
    table.add_row(
        "Catalog",
        f"[green]✅ {stats['total']} approved tools[/green]",
        f"{stats['synced']} synced, {stats['failed']} failed"
    )

    config = worker_status["config"]
    worker_state = "[green]✅ Enabled[/green]" if config["enabled"] else "[yellow]⚠️  Disabled[/yellow]"
    table.add_row(
        "Sync worker",
        worker_state,
        f"every {config['sweep_interval_ms']}ms, batch {config['batch_size']}, max retries {config['max_retries']}"
    )
    console.print(table)


@main.command()
@click.pass_context
def stats(ctx: click.Context):
    """Show sync status counts over approved tools."""

    async def action(services: SyncServices):
        return await services.worker.get_sync_stats()

    result = _run(ctx, action)

    table = Table(title=f"Sync status ({result['total']} approved tools)")
    table.add_column("Scope", style="cyan", no_wrap=True)
    for sync_status in SyncStatus:
        table.add_column(_styled(sync_status.value), justify="right")

    table.add_row("overall", *(str(result[s.value]) for s in SyncStatus))
    for collection, counts in result["collections"].items():
        table.add_row(collection, *(str(counts.get(s.value, 0)) for s in SyncStatus))
    console.print(table)


@main.command(name='list')
@click.argument('sync_status', type=click.Choice([s.value for s in SyncStatus]))
@click.option('--limit', '-n', default=50, show_default=True, help='Maximum tools to list')
@click.pass_context
def list_tools(ctx: click.Context, sync_status: str, limit: int):
    """List approved tools with the given overall status."""

    async def action(services: SyncServices):
        return await services.worker.list_tools_by_status(SyncStatus(sync_status), limit=limit)

    tools = _run(ctx, action)
    if not tools:
        console.print(f"[green]✅ No tools with status {sync_status}[/green]")
        return

    table = Table(title=f"Tools: {sync_status}")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Retries", justify="right")
    table.add_column("Last attempt", style="dim")
    for tool in tools:
        table.add_row(
            tool["id"], tool["name"], str(tool["max_retry_count"]), tool["last_sync_attempt_at"] or "-"
        )
    console.print(table)


@main.command()
@click.argument('tool_id')
@click.pass_context
def show(ctx: click.Context, tool_id: str):
    """Show a tool's per-collection sync state."""

    async def action(services: SyncServices):
        return await services.catalog.get_tool(tool_id)

    tool = _run(ctx, action)
    metadata = tool.sync_metadata

    console.print(f"[bold]{tool.name}[/bold] ({tool.id}) - {tool.approval_status.value}")
    console.print(f"Overall: {_styled(metadata.overall_status.value)}")

    table = Table(title="Collections")
    table.add_column("Collection", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Hash", style="dim")
    table.add_column("Version", justify="right")
    table.add_column("Retries", justify="right")
    table.add_column("Last synced", style="dim")
    table.add_column("Error", style="red")

    for collection in SyncCollection:
        state = metadata.get(collection)
        table.add_row(
            collection.value,
            _styled(state.status.value),
            state.content_hash or "-",
            str(state.vector_version),
            str(state.retry_count),
            state.last_synced_at.isoformat() if state.last_synced_at else "-",
            state.last_error or ""
        )
    console.print(table)


@main.command()
@click.pass_context
def sweep(ctx: click.Context):
    """Run one sync sweep now."""
    console.print("[blue]🔄 Running sync sweep...[/blue]")

    async def action(services: SyncServices):
        return await services.worker.trigger_sweep()

    result = _run(ctx, action)
    console.print(
        f"Processed {result.processed}: [green]{result.succeeded} succeeded[/green], "
        f"[red]{result.failed} failed[/red], [dim]{result.skipped} skipped[/dim] "
        f"({result.duration_ms:.1f}ms)"
    )
    for error in result.errors:
        console.print(f"   • [red]{error.tool_id}[/red]: {error.error}")
    if result.failed:
        sys.exit(1)


@main.command()
@click.argument('tool_id')
@click.pass_context
def retry(ctx: click.Context, tool_id: str):
    """Force-sync a tool now, ignoring backoff and retry limits."""

    async def action(services: SyncServices):
        return await services.worker.force_retry_tool(tool_id)

    result = _run(ctx, action)
    _print_sync_result(result)
    if not result["success"]:
        sys.exit(1)


@main.command(name='retry-all')
@click.option('--limit', '-n', default=100, show_default=True, help='Maximum tools to retry')
@click.pass_context
def retry_all(ctx: click.Context, limit: int):
    """Force-sync every approved tool whose sync failed."""

    async def action(services: SyncServices):
        return await services.worker.force_retry_all_failed(limit=limit)

    result = _run(ctx, action)
    if result["total"] == 0:
        console.print("[green]✅ No failed tools[/green]")
        return

    for entry in result["results"]:
        if entry["success"]:
            console.print(f"[green]✅ {entry['tool_id']}[/green]")
        else:
            console.print(f"[red]❌ {entry['tool_id']}: {entry['error']}[/red]")
    console.print(f"\n{result['succeeded']}/{result['total']} tools recovered")
    if result["failed"]:
        sys.exit(1)


@main.command()
@click.argument('tool_id')
@click.pass_context
def reset(ctx: click.Context, tool_id: str):
    """Zero a tool's retry counts so the worker retries it again."""

    async def action(services: SyncServices):
        return await services.worker.reset_retry_count(tool_id)

    if _run(ctx, action):
        console.print(f"[green]✅ Reset retry counts for {tool_id}[/green]")
    else:
        console.print(f"[red]❌ Tool not found: {tool_id}[/red]")
        sys.exit(1)


@main.command()
@click.argument('tool_ids', nargs=-1, required=True)
@click.pass_context
def stale(ctx: click.Context, tool_ids: Tuple[str, ...]):
    """Mark tools for a full re-sync on the next sweep."""

    async def action(services: SyncServices):
        return await services.worker.mark_tools_as_stale(list(tool_ids))

    result = _run(ctx, action)
    for tool_id in result["marked"]:
        console.print(f"[green]✅ {tool_id} marked for re-sync[/green]")
    for tool_id in result["not_found"]:
        console.print(f"[yellow]⚠️  {tool_id} not found[/yellow]")
    if result["not_found"]:
        sys.exit(1)


@main.command()
@click.argument('tool_ids', nargs=-1, required=True)
@click.option(
    '--collection', '-c', 'collections',
    multiple=True,
    type=click.Choice([c.value for c in SyncCollection]),
    help='Restrict to these collections (default: all)'
)
@click.pass_context
def sync(ctx: click.Context, tool_ids: Tuple[str, ...], collections: Tuple[str, ...]):
    """Force-sync tools into their collections."""
    targets = [SyncCollection(c) for c in collections] or None

    async def action(services: SyncServices):
        return await services.orchestrator.sync_many(list(tool_ids), collections=targets)

    result = _run(ctx, action)
    for entry in result["results"]:
        if entry["success"]:
            console.print(f"[green]✅ {entry['tool_id']} ({entry.get('synced_count', 0)} synced)[/green]")
        else:
            console.print(f"[red]❌ {entry['tool_id']}: {entry.get('error') or 'sync failed'}[/red]")
    console.print(f"\n{result['succeeded']}/{result['total']} tools synced")
    if result["failed"]:
        sys.exit(1)


@main.command()
@click.pass_context
def run(ctx: click.Context):
    """Run the background sync worker until interrupted."""
    config = _load_config(ctx)

    async def serve():
        services = build_services(config)
        await services.start()
        console.print("[green]🚀 Sync worker running. Press Ctrl+C to stop.[/green]")
        try:
            await asyncio.Event().wait()
        finally:
            await services.shutdown()

    try:
        asyncio.run(serve())
    except KeyboardInterrupt:
        console.print("\n[yellow]Sync worker stopped.[/yellow]")


if __name__ == '__main__':
    main()

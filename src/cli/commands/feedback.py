"""Feedback CLI commands: stats, sync, cleanup."""

import asyncio
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from cli.utils import get_components
from feedback.constants import SESSION_DATA_RETENTION_DAYS
from observability import log_run_summary

console = Console()


@click.group()
@click.option(
    "--project-dir",
    "-p",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Project directory (default: current directory)",
)
@click.pass_context
def feedback(ctx, project_dir: Path | None):
    """Recall feedback loop: session tracking and signal delivery."""
    ctx.ensure_object(dict)
    ctx.obj["project_dir"] = project_dir


@feedback.command("stats")
@click.pass_obj
def feedback_stats(obj):
    """Show tracked sessions and offline queue state."""
    c = get_components(obj.get("project_dir"))
    stats = c["service"].get_stats()
    if not stats.success:
        console.print(f"[red]Failed to read stats:[/] {stats.error}")
        sys.exit(1)

    state = "[green]enabled[/]" if stats.enabled else "[yellow]disabled[/]"
    console.print(f"Feedback loop: {state}")

    table = Table(title="Recall Sessions")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    current = stats.current_session
    table.add_row("Current session", current.session_id if current else "-")
    table.add_row("Facts in current", str(current.total_facts) if current else "-")
    table.add_row("Archived sessions", str(stats.archived_sessions))
    table.add_row("Total facts tracked", str(stats.total_facts_tracked))
    table.add_row("Oldest session", stats.oldest_session or "-")
    table.add_row("Newest session", stats.newest_session or "-")
    console.print(table)

    queue = stats.queue
    if queue is not None:
        console.print(
            f"\nOffline queue: {queue.pending} pending, {queue.synced} synced ({queue.total} total)"
        )
        if queue.last_sync_attempt:
            console.print(f"  Last sync attempt: {queue.last_sync_attempt}")
        if queue.last_sync_success:
            console.print(f"  Last sync success: {queue.last_sync_success}")


@feedback.command("sync")
@click.option("--clear/--keep", default=True, help="Remove delivered signals from the queue file")
@click.pass_obj
def feedback_sync(obj, clear: bool):
    """Send queued offline feedback to the memory backend."""
    c = get_components(obj.get("project_dir"))

    async def _run():
        try:
            return await c["service"].sync_offline_feedback(clear=clear)
        finally:
            await c["client"].aclose()

    result = asyncio.run(_run())
    log_run_summary()

    if result.error:
        console.print(f"[red]Sync failed:[/] {result.error} ({result.pending} still pending)")
        sys.exit(1)
    if result.skipped:
        console.print(f"[yellow]Skipped:[/] {result.skipped} ({result.pending} pending)")
        return
    if not result.synced:
        console.print("Nothing to sync.")
        return
    console.print(f"[green]Synced[/] {result.synced} signals")
    if clear:
        console.print(f"Cleared {result.cleared} delivered entries")


@feedback.command("cleanup")
@click.option("--days", "-d", default=SESSION_DATA_RETENTION_DAYS, show_default=True, type=int)
@click.pass_obj
def feedback_cleanup(obj, days: int):
    """Delete archived recall sessions older than N days."""
    c = get_components(obj.get("project_dir"))
    deleted = c["service"].cleanup_sessions(max_age_days=days)
    console.print(f"Deleted {deleted} archived sessions older than {days} days")

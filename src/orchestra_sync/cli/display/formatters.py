"""Display formatters and UI helpers for CLI."""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from rich.console import Console
from rich.table import Table

from ...core.sync import (
    Conflict,
    DiffAction,
    DiffResult,
    ExecutionOutcome,
    ExecutionResult,
    FileState,
    SyncPlan,
)
from ...database.models import Device, SyncOperation, SyncProfile

console = Console()
logger = logging.getLogger(__name__)

ACTION_STYLES = {
    DiffAction.ADD: "green",
    DiffAction.UPDATE: "yellow",
    DiffAction.REMOVE: "red",
    DiffAction.CONFLICT: "magenta",
    DiffAction.UNCHANGED: "dim",
}


def format_bytes(size: int) -> str:
    """Human readable byte count."""
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} TB"


def _describe(state: Optional[FileState]) -> str:
    if state is None:
        return "[dim]missing[/dim]"
    return f"{format_bytes(state.size)} @ {state.modified_at}"


def display_plan(plan: SyncPlan, show_unchanged: bool = False) -> None:
    """Display the summary and actions of a sync plan.

    Args:
        plan: Computed plan
        show_unchanged: Also list paths that need no action
    """
    summary = plan.diff.get_summary()
    console.print(
        f"\n[bold]{plan.scope_type.value.capitalize()} {plan.scope_id}[/bold] "
        f"({summary['mode']})"
    )
    console.print(f"  {plan.source_root} -> {plan.target_root}")

    summary_table = Table(show_header=False)
    summary_table.add_column("Metric", style="cyan")
    summary_table.add_column("Value", style="green", justify="right")
    summary_table.add_row("To add", str(summary["to_add"]))
    summary_table.add_row("To update", str(summary["to_update"]))
    summary_table.add_row("To remove", str(summary["to_remove"]))
    summary_table.add_row("Unchanged", str(summary["unchanged"]))
    if summary["conflicts"]:
        summary_table.add_row("Conflicts", f"[magenta]{summary['conflicts']}[/magenta]")
    summary_table.add_row("Transfer", format_bytes(summary["bytes_to_transfer"]))
    console.print(summary_table)

    display_entries(plan.diff, show_unchanged=show_unchanged)
    if plan.conflicts:
        display_conflicts(plan.conflicts)


def display_entries(diff: DiffResult, show_unchanged: bool = False) -> None:
    """Display the per-path actions of a diff."""
    entries = [
        entry
        for entry in diff.entries
        if show_unchanged or entry.action != DiffAction.UNCHANGED
    ]
    if not entries:
        console.print("[green]Everything is in sync[/green]")
        return

    table = Table(title="Actions")
    table.add_column("Action")
    table.add_column("Direction", style="cyan")
    table.add_column("Path")
    table.add_column("Size", justify="right")
    for entry in entries:
        style = ACTION_STYLES.get(entry.action, "white")
        table.add_row(
            f"[{style}]{entry.action.value}[/{style}]",
            entry.direction.value,
            entry.relative_path,
            format_bytes(entry.transfer_size) if entry.transfer_size else "",
        )
    console.print(table)


def display_conflicts(conflicts: Iterable[Conflict]) -> None:
    """Display conflicts with both sides' state."""
    table = Table(title="Conflicts")
    table.add_column("Path")
    table.add_column("Kind", style="magenta")
    table.add_column("Source")
    table.add_column("Target")
    for conflict in conflicts:
        table.add_row(
            conflict.relative_path,
            conflict.kind.value,
            _describe(conflict.source_info),
            _describe(conflict.target_info),
        )
    console.print(table)
    console.print(
        "[dim]Resolve with --resolve PATH=keep_source|keep_target|keep_both|skip "
        "or --resolve-all STRATEGY[/dim]"
    )


def display_execution_result(result: ExecutionResult) -> None:
    """Display the outcome of an execution."""
    if result.outcome == ExecutionOutcome.CANCELLED:
        console.print(
            f"\n[yellow]Sync cancelled: {result.files_completed} completed, "
            f"{result.files_not_attempted} not attempted[/yellow]"
        )
    else:
        console.print("\n[bold green]Sync complete[/bold green]")

    table = Table(show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Added", str(result.files_added))
    table.add_row("Updated", str(result.files_updated))
    table.add_row("Removed", str(result.files_removed))
    table.add_row("Transferred", format_bytes(result.bytes_completed))
    if result.files_failed:
        table.add_row("Failed", f"[red]{result.files_failed}[/red]")
    table.add_row("Duration", f"{result.duration_ms / 1000:.1f}s")
    console.print(table)

    if result.errors:
        errors = Table(title="Errors")
        errors.add_column("Path")
        errors.add_column("Error", style="red")
        for error in result.errors:
            errors.add_row(error.relative_path, error.message)
        console.print(errors)


def display_profiles(profiles: List[SyncProfile]) -> None:
    if not profiles:
        console.print("[yellow]No sync profiles[/yellow]")
        return
    table = Table(title="Sync Profiles")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Mode")
    table.add_column("Source")
    table.add_column("Target")
    table.add_column("Last synced")
    for profile in profiles:
        table.add_row(
            profile.id,
            profile.name,
            profile.sync_mode,
            profile.source_path,
            profile.target_path,
            str(profile.last_synced_at or "never"),
        )
    console.print(table)


def display_devices(devices: List[Device]) -> None:
    if not devices:
        console.print("[yellow]No registered devices[/yellow]")
        return
    table = Table(title="Devices")
    table.add_column("ID", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Volume")
    table.add_column("Sync folder")
    table.add_column("Connected")
    table.add_column("Last synced")
    for device in devices:
        root = device.sync_root
        connected = bool(device.mount_path) and Path(device.mount_path).is_dir()
        table.add_row(
            device.id,
            device.name,
            device.volume_uuid,
            str(root) if root else "",
            "yes" if connected else "no",
            str(device.last_synced_at or "never"),
        )
    console.print(table)


def display_statistics(
    statistics: Dict[str, Any], operations: List[SyncOperation]
) -> None:
    """Display database statistics and recent operations."""
    table = Table(show_header=False, title="Database")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    for key, value in statistics.items():
        table.add_row(key.replace("_", " ").capitalize(), str(value))
    console.print(table)

    if not operations:
        return
    history = Table(title="Recent operations")
    history.add_column("ID", justify="right")
    history.add_column("Scope")
    history.add_column("Status")
    history.add_column("Synced", justify="right")
    history.add_column("Failed", justify="right")
    history.add_column("Started")
    for operation in operations:
        history.add_row(
            str(operation.id),
            f"{operation.scope_type}:{operation.scope_id}",
            operation.status,
            str(operation.files_synced),
            str(operation.files_failed),
            str(operation.created_at),
        )
    console.print(history)

"""Diff and sync commands for profiles and devices.

Execution runs on the orchestrator's worker pool so the foreground thread can
turn Ctrl-C into a cooperative cancel: the file being written is finished and
the remaining ones are reported as not attempted.
"""

import logging
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Any, Callable, List, NoReturn, Optional, Tuple

import click
from rich.console import Console

from ...core.sync import (
    CancelToken,
    ConflictResolution,
    ExecutionResult,
    ResolutionStrategy,
    SyncPlan,
)
from ...database import TqdmProgressReporter
from ...exceptions import ScopeFatalError, SyncError
from ...utils.logging_config import log_exception, set_log_level
from ..display import display_entries, display_execution_result, display_plan
from .app import OrchestraSyncApp

console = Console()
logger = logging.getLogger(__name__)

STRATEGY_CHOICES = [strategy.value for strategy in ResolutionStrategy]


def parse_strategy(value: str) -> ResolutionStrategy:
    """Parse a strategy name, accepting ``keep-source`` as well as ``keep_source``."""
    try:
        return ResolutionStrategy(value.strip().lower().replace("-", "_"))
    except ValueError:
        raise click.BadParameter(
            f"unknown strategy '{value}', expected one of {', '.join(STRATEGY_CHOICES)}"
        )


def parse_resolutions(
    items: Tuple[str, ...], resolve_all: Optional[str], plan: SyncPlan
) -> List[ConflictResolution]:
    """Build conflict resolutions from ``PATH=STRATEGY`` options.

    Args:
        items: Values of the repeatable --resolve option
        resolve_all: Strategy for every conflict not named in ``items``
        plan: Plan whose conflicts are being resolved

    Returns:
        List of resolutions; unresolved conflicts are left out (skipped)
    """
    explicit = {}
    for item in items:
        path, separator, strategy = item.rpartition("=")
        if not separator or not path:
            raise click.BadParameter(f"expected PATH=STRATEGY, got '{item}'")
        explicit[path] = parse_strategy(strategy)

    conflicting = {conflict.relative_path for conflict in plan.conflicts}
    for path in sorted(set(explicit) - conflicting):
        console.print(f"[yellow]No conflict at '{path}', ignoring resolution[/yellow]")

    fallback = parse_strategy(resolve_all) if resolve_all else None
    resolutions = []
    for path in sorted(conflicting):
        strategy = explicit.get(path, fallback)
        if strategy is not None:
            resolutions.append(ConflictResolution(path, strategy))
    return resolutions


def run_cancellable(
    app: OrchestraSyncApp,
    flow: Callable[..., ExecutionResult],
    *args: Any,
    **kwargs: Any,
) -> ExecutionResult:
    """Run an execution flow in the background and cancel it on Ctrl-C."""
    cancel = CancelToken()
    future = app.orchestrator.submit(flow, *args, cancel=cancel, **kwargs)
    while True:
        try:
            return future.result(timeout=0.2)
        except FutureTimeoutError:
            continue
        except KeyboardInterrupt:
            if not cancel.is_cancelled:
                console.print("\n[yellow]Cancelling after the current file...[/yellow]")
                logger.info("Cancellation requested by user")
            cancel.cancel()


def _confirm(action_count: int, yes: bool) -> None:
    if yes:
        return
    click.confirm(f"Apply {action_count} change(s)?", abort=True)


def _report_failure(e: SyncError) -> NoReturn:
    if isinstance(e, ScopeFatalError) and e.result is not None:
        display_execution_result(e.result)
    log_exception(logger, f"Sync failed: {e}")
    console.print(f"\n[red]✗ {e}[/red]")
    raise click.ClickException(str(e))


@click.command("diff")
@click.argument("profile_id")
@click.option("--show-unchanged", is_flag=True, help="Also list unchanged files")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--progress/--no-progress", default=True, help="Show progress bars")
@click.pass_obj
def diff_command(
    app: OrchestraSyncApp,
    profile_id: str,
    show_unchanged: bool,
    verbose: bool,
    progress: bool,
) -> None:
    """Show what syncing PROFILE_ID would change, without changing anything."""
    if verbose:
        set_log_level("DEBUG")
    reporter = TqdmProgressReporter(disable=not progress)
    try:
        plan = app.orchestrator.compute_profile_diff(profile_id, sink=reporter)
    except SyncError as e:
        _report_failure(e)
    finally:
        reporter.close_all()

    display_plan(plan, show_unchanged=show_unchanged)


@click.command("sync")
@click.argument("profile_id")
@click.option(
    "--resolve",
    "resolve_items",
    multiple=True,
    metavar="PATH=STRATEGY",
    help=f"Resolve one conflict ({'|'.join(STRATEGY_CHOICES)}), repeatable",
)
@click.option(
    "--resolve-all",
    metavar="STRATEGY",
    help="Resolve every remaining conflict with STRATEGY",
)
@click.option("--dry-run", is_flag=True, help="Show the plan without executing it")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.option("--progress/--no-progress", default=True, help="Show progress bars")
@click.pass_obj
def sync_command(
    app: OrchestraSyncApp,
    profile_id: str,
    resolve_items: Tuple[str, ...],
    resolve_all: Optional[str],
    dry_run: bool,
    yes: bool,
    progress: bool,
) -> None:
    """Sync PROFILE_ID.

    Conflicts without a resolution are skipped and reported again on the
    next sync. Press Ctrl-C to stop after the file currently being copied.

    Examples:
        orchestra-sync sync 3f2c... --dry-run
        orchestra-sync sync 3f2c... --resolve "Album/Song.flac=keep_both"
        orchestra-sync sync 3f2c... --resolve-all keep_source --yes
    """
    reporter = TqdmProgressReporter(disable=not progress)
    try:
        profile = app.db_service.require_profile(profile_id)
        # The plan must not go stale while the user reads it
        with app.orchestrator.locks.hold(profile.id) as lease:
            plan = app.orchestrator.compute_profile_diff(
                profile.id, sink=reporter, lease=lease
            )
            reporter.close_all()
            display_plan(plan)

            resolutions = parse_resolutions(resolve_items, resolve_all, plan)
            finalized = app.orchestrator.resolve(plan, resolutions)
            if plan.conflicts:
                console.print("\n[bold]Actions after conflict resolution[/bold]")
                display_entries(finalized)
                if finalized.skipped_paths:
                    console.print(
                        f"[yellow]{len(finalized.skipped_paths)} conflict(s) "
                        "left unresolved and skipped[/yellow]"
                    )

            if dry_run:
                console.print("\n[yellow]DRY RUN - no changes made[/yellow]")
                return
            actions = finalized.actionable_entries()
            if actions:
                _confirm(len(actions), yes)

            result = run_cancellable(
                app,
                app.orchestrator.execute_profile_sync,
                plan,
                resolutions,
                sink=reporter,
                lease=lease,
            )
    except SyncError as e:
        _report_failure(e)
    finally:
        reporter.close_all()

    display_execution_result(result)
    if result.has_errors:
        raise click.ClickException(f"{result.files_failed} file(s) failed to sync")


@click.command("device-sync")
@click.argument("device_id")
@click.option(
    "--library",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Library folder to copy from (defaults to ORCHESTRA_SYNC_LIBRARY_ROOT)",
)
@click.option("--dry-run", is_flag=True, help="Show the plan without executing it")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.option("--progress/--no-progress", default=True, help="Show progress bars")
@click.pass_obj
def device_sync_command(
    app: OrchestraSyncApp,
    device_id: str,
    library: Optional[Path],
    dry_run: bool,
    yes: bool,
    progress: bool,
) -> None:
    """Mirror the music library onto DEVICE_ID.

    Files on the device that are not in the library are removed.
    """
    reporter = TqdmProgressReporter(disable=not progress)
    try:
        device = app.db_service.require_device(device_id)
        with app.orchestrator.locks.hold(device.id) as lease:
            plan = app.orchestrator.compute_device_diff(
                device.id, library_root=library, sink=reporter, lease=lease
            )
            reporter.close_all()
            display_plan(plan)

            if dry_run:
                console.print("\n[yellow]DRY RUN - no changes made[/yellow]")
                return
            actions = plan.diff.actionable_entries()
            if actions:
                _confirm(len(actions), yes)

            result = run_cancellable(
                app,
                app.orchestrator.execute_device_sync,
                plan,
                sink=reporter,
                lease=lease,
            )
    except SyncError as e:
        _report_failure(e)
    finally:
        reporter.close_all()

    display_execution_result(result)
    if result.has_errors:
        raise click.ClickException(f"{result.files_failed} file(s) failed to sync")

"""Sync profile management commands."""

import logging
from pathlib import Path
from typing import Tuple

import click
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from ...core.sync import SyncMode
from ...exceptions import ProfileNotFoundError
from ...models import ProfileSettings
from ..display import display_profiles
from .app import OrchestraSyncApp

console = Console()
logger = logging.getLogger(__name__)


def _first_error(error: ValidationError) -> str:
    return str(error.errors()[0]["msg"])


@click.group("profile")
def profile() -> None:
    """Manage sync profiles (pairs of folders kept in sync)."""
    pass


@profile.command(name="create")
@click.argument("name")
@click.argument("source", type=click.Path(file_okay=False, path_type=Path))
@click.argument("target", type=click.Path(file_okay=False, path_type=Path))
@click.option(
    "--mode",
    type=click.Choice([mode.value for mode in SyncMode]),
    default=SyncMode.ONE_WAY.value,
    show_default=True,
    help="one_way mirrors SOURCE onto TARGET, two_way propagates both ways",
)
@click.option(
    "--exclude",
    "excludes",
    multiple=True,
    help="Glob pattern excluded on both sides (repeatable)",
)
@click.option(
    "--preserve-orphans",
    is_flag=True,
    help="In one_way mode, keep files that only exist in TARGET",
)
@click.pass_obj
def create_profile(
    app: OrchestraSyncApp,
    name: str,
    source: Path,
    target: Path,
    mode: str,
    excludes: Tuple[str, ...],
    preserve_orphans: bool,
) -> None:
    """Create a sync profile from SOURCE to TARGET.

    Examples:
        orchestra-sync profile create Backup ~/Music /Volumes/Backup/Music
        orchestra-sync profile create Laptop ~/Music ~/Sync --mode two_way
    """
    try:
        settings = ProfileSettings(
            name=name,
            source_path=source,
            target_path=target,
            sync_mode=mode,
            exclude_patterns=list(excludes),
            preserve_orphans=preserve_orphans,
        )
    except ValidationError as e:
        raise click.BadParameter(_first_error(e))

    created = app.db_service.create_profile(**settings.to_record())
    console.print(f"[green]✓ Created profile '{created.name}' ({created.id})[/green]")


@profile.command(name="list")
@click.pass_obj
def list_profiles(app: OrchestraSyncApp) -> None:
    """List all sync profiles."""
    display_profiles(app.db_service.list_profiles())


@profile.command(name="show")
@click.argument("profile_id")
@click.pass_obj
def show_profile(app: OrchestraSyncApp, profile_id: str) -> None:
    """Show a profile's settings."""
    try:
        found = app.db_service.require_profile(profile_id)
    except ProfileNotFoundError as e:
        raise click.ClickException(str(e))

    table = Table(show_header=False, title=found.name)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("ID", found.id)
    table.add_row("Mode", found.sync_mode)
    table.add_row("Source", found.source_path)
    table.add_row("Target", found.target_path)
    table.add_row("Excludes", ", ".join(found.exclude_pattern_list) or "-")
    table.add_row("Preserve orphans", "yes" if found.preserve_orphans else "no")
    table.add_row("Baseline entries", str(len(app.db_service.get_baseline(found.id))))
    table.add_row("Last synced", str(found.last_synced_at or "never"))
    console.print(table)


@profile.command(name="delete")
@click.argument("profile_id")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def delete_profile(app: OrchestraSyncApp, profile_id: str, yes: bool) -> None:
    """Delete a profile and its baseline. Files are not touched."""
    try:
        found = app.db_service.require_profile(profile_id)
        if not yes:
            click.confirm(f"Delete profile '{found.name}'?", abort=True)
        app.db_service.delete_profile(found.id)
    except ProfileNotFoundError as e:
        raise click.ClickException(str(e))
    console.print(f"[green]✓ Deleted profile '{found.name}'[/green]")

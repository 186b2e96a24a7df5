"""Status command."""

import click

from ..display import display_statistics
from .app import OrchestraSyncApp


@click.command("status")
@click.option("--limit", default=10, show_default=True, help="Operations to show")
@click.pass_obj
def status(app: OrchestraSyncApp, limit: int) -> None:
    """Show database statistics and recent sync operations."""
    display_statistics(
        app.db_service.get_statistics(), app.db_service.get_recent_operations(limit)
    )

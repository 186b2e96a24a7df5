"""Command-line interface for orchestra-sync.

This is the main entry point that delegates to command modules.
"""

from pathlib import Path
from typing import Any, Optional

import click

from ..config import get_config
from ..utils.logging_config import configure_third_party_loggers, setup_logging
from .commands import (
    OrchestraSyncApp,
    device,
    device_sync_command,
    diff_command,
    profile,
    status,
    sync_command,
)


@click.group()
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    help="Set logging level (defaults to ORCHESTRA_SYNC_LOG_LEVEL)",
)
@click.option("--log-file", type=click.Path(), help="Log to file")
@click.option(
    "--db",
    "db_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Database file (defaults to ORCHESTRA_SYNC_DATABASE_PATH)",
)
@click.pass_context
def cli(
    ctx: Any, log_level: Optional[str], log_file: Optional[str], db_path: Optional[Path]
) -> None:
    """Orchestra Sync.

    Keeps folder pairs and removable devices in sync, with conflict
    detection for bidirectional profiles.
    """
    config = get_config()

    # Set up logging
    log_path = Path(log_file) if log_file else config.log_file
    setup_logging(log_level=log_level or config.log_level, log_file=log_path)
    configure_third_party_loggers()

    app = OrchestraSyncApp(db_path=db_path)
    ctx.obj = app
    ctx.call_on_close(app.close)


# Register command groups and commands
cli.add_command(profile)
cli.add_command(device)
cli.add_command(diff_command)
cli.add_command(sync_command)
cli.add_command(device_sync_command)
cli.add_command(status)


if __name__ == "__main__":
    cli()

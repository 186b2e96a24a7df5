"""Device management commands."""

import logging
import shutil
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console

from ...exceptions import DeviceNotFoundError
from ...models import DeviceSettings
from ..display import display_devices
from .app import OrchestraSyncApp

console = Console()
logger = logging.getLogger(__name__)


@click.group("device")
def device() -> None:
    """Manage removable devices that receive one-way syncs."""
    pass


@device.command(name="register")
@click.argument("name")
@click.argument(
    "mount_path", type=click.Path(exists=True, file_okay=False, path_type=Path)
)
@click.option(
    "--volume-uuid",
    help="Stable volume identifier (defaults to the mount folder name)",
)
@click.option(
    "--music-folder",
    default="Music",
    show_default=True,
    help="Folder on the device that mirrors the library ('' for the root)",
)
@click.pass_obj
def register_device(
    app: OrchestraSyncApp,
    name: str,
    mount_path: Path,
    volume_uuid: Optional[str],
    music_folder: str,
) -> None:
    """Register the device mounted at MOUNT_PATH.

    Registering a known volume again updates its name and mount point.

    Examples:
        orchestra-sync device register "Car USB" /media/usb0 --volume-uuid 1A2B-3C4D
    """
    try:
        capacity: Optional[int] = shutil.disk_usage(mount_path).total
    except OSError as e:
        logger.debug("Cannot read capacity of %s: %s", mount_path, e)
        capacity = None

    try:
        settings = DeviceSettings(
            name=name,
            mount_path=mount_path,
            volume_uuid=volume_uuid,
            music_folder=music_folder,
            capacity_bytes=capacity,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e.errors()[0]["msg"]))

    registered = app.db_service.register_device(**settings.to_record())
    console.print(
        f"[green]✓ Registered device '{registered.name}' ({registered.id})[/green]"
    )


@device.command(name="list")
@click.pass_obj
def list_devices(app: OrchestraSyncApp) -> None:
    """List registered devices."""
    display_devices(app.db_service.list_devices())


@device.command(name="delete")
@click.argument("device_id")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_obj
def delete_device(app: OrchestraSyncApp, device_id: str, yes: bool) -> None:
    """Forget a device with its hash cache and baseline."""
    try:
        found = app.db_service.require_device(device_id)
        if not yes:
            click.confirm(f"Forget device '{found.name}'?", abort=True)
        app.db_service.delete_device(found.id)
    except DeviceNotFoundError as e:
        raise click.ClickException(str(e))
    console.print(f"[green]✓ Deleted device '{found.name}'[/green]")

"""CLI command modules."""

from .app import OrchestraSyncApp
from .device import device
from .profile import profile
from .status import status
from .sync import device_sync_command, diff_command, sync_command

__all__ = [
    "OrchestraSyncApp",
    "device",
    "profile",
    "status",
    "diff_command",
    "sync_command",
    "device_sync_command",
]

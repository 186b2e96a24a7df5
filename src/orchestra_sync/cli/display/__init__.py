"""CLI display and formatting utilities."""

from .formatters import (
    display_conflicts,
    display_devices,
    display_entries,
    display_execution_result,
    display_plan,
    display_profiles,
    display_statistics,
    format_bytes,
)

__all__ = [
    "display_conflicts",
    "display_devices",
    "display_entries",
    "display_execution_result",
    "display_plan",
    "display_profiles",
    "display_statistics",
    "format_bytes",
]

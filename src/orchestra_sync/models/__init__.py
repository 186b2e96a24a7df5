"""Data models for orchestra-sync."""

from .models import DeviceSettings, ProfileSettings

__all__ = ["DeviceSettings", "ProfileSettings"]

"""Validated settings for sync profiles and devices."""

from pathlib import Path, PurePosixPath
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, field_validator, model_validator

from ..core.sync.state import SyncMode


def _expand(v: Union[str, Path]) -> Path:
    return Path(v).expanduser().resolve()


class ProfileSettings(BaseModel):
    """User-supplied settings of a sync profile."""

    name: str
    source_path: Path
    target_path: Path
    sync_mode: SyncMode = SyncMode.ONE_WAY
    exclude_patterns: List[str] = []
    preserve_orphans: bool = False

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        """Reject blank names."""
        if not v.strip():
            raise ValueError("name must not be empty")
        return v.strip()

    @field_validator("source_path", "target_path", mode="before")
    @classmethod
    def validate_path(cls, v: Union[str, Path]) -> Path:
        return _expand(v)

    @field_validator("sync_mode", mode="before")
    @classmethod
    def validate_sync_mode(cls, v: Union[str, SyncMode]) -> SyncMode:
        # Accept the CLI spelling "two-way"
        if isinstance(v, str):
            return SyncMode(v.strip().lower().replace("-", "_"))
        return v

    @field_validator("exclude_patterns")
    @classmethod
    def validate_exclude_patterns(cls, v: List[str]) -> List[str]:
        return [pattern.strip() for pattern in v if pattern.strip()]

    @model_validator(mode="after")
    def validate_distinct_roots(self) -> "ProfileSettings":
        """Source and target must not contain each other."""
        source, target = self.source_path, self.target_path
        if source == target:
            raise ValueError("source and target must be different folders")
        if source in target.parents or target in source.parents:
            raise ValueError("source and target must not be nested")
        return self

    def to_record(self) -> Dict[str, Any]:
        """Keyword arguments for ``DatabaseService.create_profile``."""
        return {
            "name": self.name,
            "source_path": str(self.source_path),
            "target_path": str(self.target_path),
            "sync_mode": self.sync_mode.value,
            "exclude_patterns": list(self.exclude_patterns),
            "preserve_orphans": self.preserve_orphans,
        }


class DeviceSettings(BaseModel):
    """User-supplied settings of a removable device."""

    name: str
    mount_path: Path
    volume_uuid: Optional[str] = None
    music_folder: str = ""
    capacity_bytes: Optional[int] = None

    @field_validator("mount_path", mode="before")
    @classmethod
    def validate_mount_path(cls, v: Union[str, Path]) -> Path:
        return _expand(v)

    @field_validator("music_folder")
    @classmethod
    def validate_music_folder(cls, v: str) -> str:
        """Music folder is relative to the mount point and stays inside it."""
        folder = PurePosixPath(v.strip().replace("\\", "/").strip("/"))
        if ".." in folder.parts:
            raise ValueError("music folder must stay inside the device")
        return "" if str(folder) == "." else str(folder)

    @property
    def resolved_volume_uuid(self) -> str:
        """Volume identifier, defaulting to the mount folder name."""
        return self.volume_uuid or self.mount_path.name

    def to_record(self) -> Dict[str, Any]:
        """Keyword arguments for ``DatabaseService.register_device``."""
        return {
            "name": self.name,
            "volume_uuid": self.resolved_volume_uuid,
            "mount_path": str(self.mount_path),
            "music_folder": self.music_folder,
            "volume_name": self.mount_path.name,
            "capacity_bytes": self.capacity_bytes,
        }

"""SQLAlchemy database models for sync scopes, baselines and the hash cache."""

import json
import uuid
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp as stored by SQLite."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _new_id() -> str:
    return str(uuid.uuid4())


class ScopeType(str, Enum):
    """Kind of entity that owns a baseline namespace."""

    PROFILE = "profile"
    DEVICE = "device"


class OperationStatus(str, Enum):
    """Status of a recorded sync operation."""

    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class SyncProfile(Base):
    """A named pair of folders kept in sync."""

    __tablename__ = "sync_profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    source_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    target_path: Mapped[str] = mapped_column(String(1000), nullable=False)

    # 'one_way' mirrors source onto target, 'two_way' uses the baseline
    sync_mode: Mapped[str] = mapped_column(
        String(20), nullable=False, default="one_way"
    )
    exclude_patterns: Mapped[str] = mapped_column(
        Text, nullable=False, default="[]"
    )  # JSON list of globs
    preserve_orphans: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    @property
    def exclude_pattern_list(self) -> List[str]:
        return list(json.loads(self.exclude_patterns or "[]"))

    def __repr__(self) -> str:
        """String representation of SyncProfile."""
        return (
            f"<SyncProfile(id='{self.id}', name='{self.name}', "
            f"mode='{self.sync_mode}')>"
        )


class Device(Base):
    """A registered removable volume that receives one-way syncs."""

    __tablename__ = "devices"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    volume_uuid: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    volume_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    mount_path: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    music_folder: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    capacity_bytes: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow
    )
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    file_cache: Mapped[List["DeviceFileHash"]] = relationship(
        "DeviceFileHash",
        back_populates="device",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def sync_root(self) -> Optional[Path]:
        """Folder on the device that mirrors the library."""
        if not self.mount_path:
            return None
        root = Path(self.mount_path)
        return root / self.music_folder if self.music_folder else root

    def __repr__(self) -> str:
        """String representation of Device."""
        return (
            f"<Device(id='{self.id}', name='{self.name}', "
            f"mount='{self.mount_path}')>"
        )


class FileBaseline(Base):
    """Both sides' file state after the last successful sync of a path."""

    __tablename__ = "sync_state"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    # Profile id or device id
    scope_id: Mapped[str] = mapped_column(String(36), nullable=False)
    relative_path: Mapped[str] = mapped_column(String(1000), nullable=False)

    source_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    source_modified_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    source_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    target_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    target_modified_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    target_hash: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)

    # Epoch seconds
    snapshot_at: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __table_args__ = (
        UniqueConstraint("scope_id", "relative_path", name="uq_sync_state_path"),
        Index("idx_sync_state_scope", "scope_id"),
    )

    def __repr__(self) -> str:
        """String representation of FileBaseline."""
        return (
            f"<FileBaseline(scope_id='{self.scope_id}', "
            f"path='{self.relative_path}')>"
        )


class DeviceFileHash(Base):
    """Cached content hash of a file on a device."""

    __tablename__ = "device_file_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    device_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("devices.id", ondelete="CASCADE"), nullable=False
    )
    relative_path: Mapped[str] = mapped_column(String(1000), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    modified_at: Mapped[int] = mapped_column(BigInteger, nullable=False)
    hash: Mapped[str] = mapped_column(String(128), nullable=False)

    device: Mapped["Device"] = relationship("Device", back_populates="file_cache")

    __table_args__ = (
        UniqueConstraint("device_id", "relative_path", name="uq_device_file_cache"),
        Index("idx_device_file_cache_device", "device_id"),
    )

    def __repr__(self) -> str:
        """String representation of DeviceFileHash."""
        return (
            f"<DeviceFileHash(device_id='{self.device_id}', "
            f"path='{self.relative_path}')>"
        )


class SyncOperation(Base):
    """History record of one sync execution."""

    __tablename__ = "sync_operations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    scope_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    scope_type: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, index=True
    )  # 'running', 'completed', 'cancelled', 'failed'

    files_synced: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    files_failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    bytes_synced: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    details: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True
    )  # JSON summary of the execution
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow, index=True
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        """String representation of SyncOperation."""
        return (
            f"<SyncOperation(id={self.id}, scope='{self.scope_id}', "
            f"status='{self.status}')>"
        )

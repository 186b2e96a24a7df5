"""Database service for sync scopes, baselines and the device hash cache."""

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import create_engine, delete, event, inspect, select
from sqlalchemy.orm import Session, sessionmaker

from alembic import command
from alembic.config import Config as AlembicConfig

from ..core.sync.state import BaselineEntry, FileState, HashCacheEntry, SyncMode
from ..exceptions import DeviceNotFoundError, ProfileNotFoundError
from .models import (
    Base,
    Device,
    DeviceFileHash,
    FileBaseline,
    OperationStatus,
    ScopeType,
    SyncOperation,
    SyncProfile,
    utcnow,
)

logger = logging.getLogger(__name__)

# Rows per IN (...) query, below SQLite's bound parameter limit
_CHUNK = 500


def _chunks(items: List[str], size: int = _CHUNK) -> Iterable[List[str]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


def _enable_sqlite_foreign_keys(dbapi_connection: Any, connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class DatabaseService:
    """Service for database operations and transaction management."""

    def __init__(self, db_path: Optional[Path] = None) -> None:
        """Initialize database service.

        Args:
            db_path: Path to SQLite database file.
                    If None, uses default ~/.orchestra-sync/sync.db
        """
        if db_path is None:
            db_path = Path.home() / ".orchestra-sync" / "sync.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        db_exists = self.db_path.exists()

        self.engine = create_engine(f"sqlite:///{self.db_path}", echo=False)
        event.listen(self.engine, "connect", _enable_sqlite_foreign_keys)

        self.SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

        logger.info("Database initialized at: %s", self.db_path)

        if not db_exists:
            logger.info("New database detected, initializing schema...")
            self.init_db()

    def init_db(self) -> None:
        """Initialize database schema.

        This creates all tables using SQLAlchemy and then stamps Alembic to mark
        the database as current.
        """
        Base.metadata.create_all(bind=self.engine)
        logger.info("Database schema created successfully")
        self._stamp_migrations()

    def _alembic_config(self) -> Optional[AlembicConfig]:
        # alembic.ini and alembic/ live in the project root, above src/
        project_dir = Path(__file__).parent.parent.parent.parent
        alembic_ini = project_dir / "alembic.ini"
        alembic_dir = project_dir / "alembic"

        if not alembic_ini.exists() or not alembic_dir.exists():
            logger.warning("Alembic not found at %s, skipping migrations", project_dir)
            return None

        alembic_cfg = AlembicConfig(str(alembic_ini))
        alembic_cfg.set_main_option("script_location", str(alembic_dir))
        alembic_cfg.set_main_option("sqlalchemy.url", f"sqlite:///{self.db_path}")
        # Leave the application's logging setup alone
        alembic_cfg.attributes["configure_logger"] = False
        return alembic_cfg

    def _stamp_migrations(self) -> None:
        """Stamp database as being at the latest migration version."""
        alembic_cfg = self._alembic_config()
        if alembic_cfg is None:
            return
        try:
            command.stamp(alembic_cfg, "head")
            logger.info("Database stamped with latest migration version")
        except Exception as e:
            logger.error("Failed to stamp migrations: %s", e)
            logger.warning("Database may need manual migration")

    def run_migrations(self) -> None:
        """Run Alembic migrations to upgrade database to latest version."""
        alembic_cfg = self._alembic_config()
        if alembic_cfg is None:
            return
        try:
            command.upgrade(alembic_cfg, "head")
            logger.info("Database migrations applied successfully")
        except Exception as e:
            logger.error("Failed to run migrations: %s", e)
            logger.warning("Continuing with base schema only")

    def get_session(self) -> Session:
        """Get a new database session.

        Returns:
            SQLAlchemy Session object

        Note:
            Caller is responsible for closing the session
        """
        return self.SessionLocal()

    def is_initialized(self) -> bool:
        """Check that the engine works and the core tables exist."""
        try:
            inspector = inspect(self.engine)
            required = ("sync_profiles", "devices", "sync_state", "device_file_cache")
            missing = [name for name in required if not inspector.has_table(name)]
            if missing:
                logger.debug("Required tables missing: %s", ", ".join(missing))
                return False

            with self.SessionLocal() as session:
                session.execute(select(1))
            return True
        except Exception as e:
            logger.debug("Database initialization check failed: %s", e)
            return False

    # =========================================================================
    # Sync Profile Operations
    # =========================================================================

    def create_profile(
        self,
        name: str,
        source_path: str,
        target_path: str,
        sync_mode: str = SyncMode.ONE_WAY.value,
        exclude_patterns: Optional[List[str]] = None,
        preserve_orphans: bool = False,
    ) -> SyncProfile:
        """Create a new sync profile.

        Args:
            name: Display name
            source_path: Source root directory
            target_path: Target root directory
            sync_mode: 'one_way' or 'two_way'
            exclude_patterns: Glob patterns excluded from both sides
            preserve_orphans: Keep target-only files in one-way mode

        Returns:
            Created SyncProfile object
        """
        mode = SyncMode(sync_mode).value
        with self.get_session() as session:
            profile = SyncProfile(
                name=name,
                source_path=str(source_path),
                target_path=str(target_path),
                sync_mode=mode,
                exclude_patterns=json.dumps(list(exclude_patterns or [])),
                preserve_orphans=preserve_orphans,
            )
            session.add(profile)
            session.commit()
            session.refresh(profile)
            logger.info("Created sync profile: %s (ID: %s)", profile.name, profile.id)
            return profile

    def get_profile(self, profile_id: str) -> Optional[SyncProfile]:
        """Get profile by id, or None if not found."""
        with self.get_session() as session:
            return session.get(SyncProfile, profile_id)

    def require_profile(self, profile_id: str) -> SyncProfile:
        """Get profile by id.

        Raises:
            ProfileNotFoundError: If no profile has this id
        """
        profile = self.get_profile(profile_id)
        if profile is None:
            raise ProfileNotFoundError(f"Sync profile not found: {profile_id}")
        return profile

    def list_profiles(self) -> List[SyncProfile]:
        with self.get_session() as session:
            stmt = select(SyncProfile).order_by(SyncProfile.name)
            return list(session.scalars(stmt).all())

    def update_profile(self, profile_id: str, data: Dict[str, Any]) -> SyncProfile:
        """Update fields of an existing profile.

        Args:
            profile_id: Profile id
            data: Fields to update; ``exclude_patterns`` may be given as a list

        Returns:
            Updated SyncProfile object
        """
        with self.get_session() as session:
            profile = session.get(SyncProfile, profile_id)
            if not profile:
                raise ProfileNotFoundError(f"Sync profile not found: {profile_id}")

            for key, value in data.items():
                if key == "exclude_patterns" and not isinstance(value, str):
                    value = json.dumps(list(value))
                elif key == "sync_mode":
                    value = SyncMode(value).value
                if hasattr(profile, key):
                    setattr(profile, key, value)

            session.commit()
            session.refresh(profile)
            return profile

    def mark_profile_synced(self, profile_id: str) -> None:
        self.update_profile(profile_id, {"last_synced_at": utcnow()})

    def delete_profile(self, profile_id: str) -> None:
        """Delete a profile together with its baseline."""
        with self.get_session() as session:
            profile = session.get(SyncProfile, profile_id)
            if not profile:
                raise ProfileNotFoundError(f"Sync profile not found: {profile_id}")
            session.execute(
                delete(FileBaseline).where(FileBaseline.scope_id == profile_id)
            )
            session.delete(profile)
            session.commit()
            logger.info("Deleted sync profile: %s", profile_id)

    # =========================================================================
    # Device Operations
    # =========================================================================

    def register_device(
        self,
        name: str,
        volume_uuid: str,
        mount_path: Optional[str] = None,
        music_folder: str = "",
        volume_name: Optional[str] = None,
        capacity_bytes: Optional[int] = None,
    ) -> Device:
        """Register a device, or refresh it if the volume is already known.

        Returns:
            Created or updated Device object
        """
        with self.get_session() as session:
            device = session.scalar(
                select(Device).where(Device.volume_uuid == volume_uuid)
            )
            if device is None:
                device = Device(name=name, volume_uuid=volume_uuid)
                session.add(device)
                logger.info("Registering device: %s (%s)", name, volume_uuid)
            else:
                device.name = name
                logger.info("Updating device: %s (%s)", name, volume_uuid)

            device.mount_path = str(mount_path) if mount_path else None
            device.music_folder = music_folder
            device.volume_name = volume_name
            device.capacity_bytes = capacity_bytes

            session.commit()
            session.refresh(device)
            return device

    def get_device(self, device_id: str) -> Optional[Device]:
        with self.get_session() as session:
            return session.get(Device, device_id)

    def require_device(self, device_id: str) -> Device:
        """Get device by id.

        Raises:
            DeviceNotFoundError: If no device has this id
        """
        device = self.get_device(device_id)
        if device is None:
            raise DeviceNotFoundError(f"Device not found: {device_id}")
        return device

    def list_devices(self) -> List[Device]:
        with self.get_session() as session:
            return list(session.scalars(select(Device).order_by(Device.name)).all())

    def update_device(self, device_id: str, data: Dict[str, Any]) -> Device:
        with self.get_session() as session:
            device = session.get(Device, device_id)
            if not device:
                raise DeviceNotFoundError(f"Device not found: {device_id}")
            for key, value in data.items():
                if hasattr(device, key):
                    setattr(device, key, value)
            session.commit()
            session.refresh(device)
            return device

    def mark_device_synced(self, device_id: str) -> None:
        self.update_device(device_id, {"last_synced_at": utcnow()})

    def delete_device(self, device_id: str) -> None:
        """Delete a device, its hash cache and its baseline."""
        with self.get_session() as session:
            device = session.get(Device, device_id)
            if not device:
                raise DeviceNotFoundError(f"Device not found: {device_id}")
            session.execute(
                delete(FileBaseline).where(FileBaseline.scope_id == device_id)
            )
            session.delete(device)
            session.commit()
            logger.info("Deleted device: %s", device_id)

    # =========================================================================
    # Baseline Operations
    # =========================================================================

    @staticmethod
    def _to_baseline_entry(row: FileBaseline) -> BaselineEntry:
        return BaselineEntry(
            relative_path=row.relative_path,
            source=FileState(
                relative_path=row.relative_path,
                size=row.source_size,
                modified_at=row.source_modified_at,
                content_hash=row.source_hash,
            ),
            target=FileState(
                relative_path=row.relative_path,
                size=row.target_size,
                modified_at=row.target_modified_at,
                content_hash=row.target_hash,
            ),
            snapshot_at=row.snapshot_at,
        )

    def get_baseline(self, scope_id: str) -> Dict[str, BaselineEntry]:
        """Load the full baseline of a scope keyed by relative path."""
        with self.get_session() as session:
            stmt = select(FileBaseline).where(FileBaseline.scope_id == scope_id)
            return {
                row.relative_path: self._to_baseline_entry(row)
                for row in session.scalars(stmt)
            }

    def save_baseline_entries(
        self, scope_id: str, entries: Iterable[BaselineEntry]
    ) -> int:
        """Insert or replace baseline rows.

        Args:
            scope_id: Profile or device id
            entries: New state pairs; ``snapshot_at`` of 0 means now

        Returns:
            Number of rows written
        """
        pending = {entry.relative_path: entry for entry in entries}
        if not pending:
            return 0

        now = int(time.time())
        with self.get_session() as session:
            existing: Dict[str, FileBaseline] = {}
            for chunk in _chunks(list(pending)):
                stmt = select(FileBaseline).where(
                    FileBaseline.scope_id == scope_id,
                    FileBaseline.relative_path.in_(chunk),
                )
                existing.update(
                    (row.relative_path, row) for row in session.scalars(stmt)
                )

            for path, entry in pending.items():
                row = existing.get(path)
                if row is None:
                    row = FileBaseline(scope_id=scope_id, relative_path=path)
                    session.add(row)
                row.source_size = entry.source.size
                row.source_modified_at = entry.source.modified_at
                row.source_hash = entry.source.content_hash
                row.target_size = entry.target.size
                row.target_modified_at = entry.target.modified_at
                row.target_hash = entry.target.content_hash
                row.snapshot_at = entry.snapshot_at or now

            session.commit()

        logger.debug("Saved %d baseline rows for scope %s", len(pending), scope_id)
        return len(pending)

    def delete_baseline_entries(
        self, scope_id: str, relative_paths: Iterable[str]
    ) -> int:
        """Delete baseline rows for the given paths.

        Returns:
            Number of rows deleted
        """
        paths = list(relative_paths)
        deleted = 0
        with self.get_session() as session:
            for chunk in _chunks(paths):
                result = session.execute(
                    delete(FileBaseline).where(
                        FileBaseline.scope_id == scope_id,
                        FileBaseline.relative_path.in_(chunk),
                    )
                )
                deleted += result.rowcount or 0
            session.commit()
        return deleted

    # =========================================================================
    # Hash Cache Operations
    # =========================================================================

    def get_file_cache(self, device_id: str) -> Dict[str, HashCacheEntry]:
        """Load every cached hash of a device keyed by relative path."""
        with self.get_session() as session:
            stmt = select(DeviceFileHash).where(DeviceFileHash.device_id == device_id)
            return {
                row.relative_path: HashCacheEntry(
                    device_id=row.device_id,
                    relative_path=row.relative_path,
                    size=row.file_size,
                    modified_at=row.modified_at,
                    content_hash=row.hash,
                )
                for row in session.scalars(stmt)
            }

    def get_cached_hash(
        self, device_id: str, relative_path: str
    ) -> Optional[HashCacheEntry]:
        with self.get_session() as session:
            row = session.scalar(
                select(DeviceFileHash).where(
                    DeviceFileHash.device_id == device_id,
                    DeviceFileHash.relative_path == relative_path,
                )
            )
            if row is None:
                return None
            return HashCacheEntry(
                device_id=row.device_id,
                relative_path=row.relative_path,
                size=row.file_size,
                modified_at=row.modified_at,
                content_hash=row.hash,
            )

    def upsert_cached_hash(
        self,
        device_id: str,
        relative_path: str,
        file_size: int,
        modified_at: int,
        content_hash: str,
    ) -> None:
        """Insert or overwrite the cached hash of a device file."""
        with self.get_session() as session:
            row = session.scalar(
                select(DeviceFileHash).where(
                    DeviceFileHash.device_id == device_id,
                    DeviceFileHash.relative_path == relative_path,
                )
            )
            if row is None:
                row = DeviceFileHash(device_id=device_id, relative_path=relative_path)
                session.add(row)
            row.file_size = file_size
            row.modified_at = modified_at
            row.hash = content_hash
            session.commit()

    def delete_cached_hash(self, device_id: str, relative_path: str) -> None:
        with self.get_session() as session:
            session.execute(
                delete(DeviceFileHash).where(
                    DeviceFileHash.device_id == device_id,
                    DeviceFileHash.relative_path == relative_path,
                )
            )
            session.commit()

    # =========================================================================
    # Sync Operation History
    # =========================================================================

    def create_sync_operation(self, scope_id: str, scope_type: ScopeType) -> int:
        """Record the start of an execution.

        Returns:
            Operation id
        """
        with self.get_session() as session:
            operation = SyncOperation(
                scope_id=scope_id,
                scope_type=ScopeType(scope_type).value,
                status=OperationStatus.RUNNING.value,
            )
            session.add(operation)
            session.commit()
            logger.debug("Created sync operation %s for %s", operation.id, scope_id)
            return operation.id

    def finish_sync_operation(
        self,
        operation_id: int,
        status: OperationStatus,
        files_synced: int = 0,
        files_failed: int = 0,
        bytes_synced: int = 0,
        details: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> SyncOperation:
        """Store the outcome of an execution."""
        with self.get_session() as session:
            operation = session.get(SyncOperation, operation_id)
            if not operation:
                raise ValueError(f"Operation not found: {operation_id}")

            operation.status = OperationStatus(status).value
            operation.files_synced = files_synced
            operation.files_failed = files_failed
            operation.bytes_synced = bytes_synced
            if details is not None:
                operation.details = json.dumps(details)
            if error_message:
                operation.error_message = error_message
            operation.completed_at = utcnow()

            session.commit()
            session.refresh(operation)
            return operation

    def get_recent_operations(self, limit: int = 10) -> List[SyncOperation]:
        with self.get_session() as session:
            stmt = (
                select(SyncOperation)
                .order_by(SyncOperation.created_at.desc(), SyncOperation.id.desc())
                .limit(limit)
            )
            return list(session.scalars(stmt).all())

    # =========================================================================
    # Utility Methods
    # =========================================================================

    def get_statistics(self) -> Dict[str, Any]:
        """Get database statistics.

        Returns:
            Dictionary with statistics
        """
        with self.get_session() as session:
            return {
                "profiles": session.query(SyncProfile).count(),
                "devices": session.query(Device).count(),
                "baseline_entries": session.query(FileBaseline).count(),
                "cached_hashes": session.query(DeviceFileHash).count(),
                "running_operations": session.query(SyncOperation)
                .filter(SyncOperation.status == OperationStatus.RUNNING.value)
                .count(),
                "database_path": str(self.db_path),
            }

    def close(self) -> None:
        """Close database connection."""
        if hasattr(self, "engine"):
            self.engine.dispose()
            logger.info("Database connection closed")

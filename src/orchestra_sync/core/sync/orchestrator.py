"""Sync orchestrator coordinating scans, diffs and executions per scope.

A scope is either a sync profile (two folders, one-way or two-way) or a
registered device (one-way from the library to the device, with a persistent
hash cache on the device side). The orchestrator:

1. Verifies the scope's roots are reachable
2. Scans both sides into snapshots, applying exclude patterns
3. Diffs them (one-way, or three-way against the stored baseline)
4. Applies conflict resolutions and executes the finalized plan

Every diff and execution holds the scope's lock, so two operations on the
same scope never interleave while different scopes run independently. The
lock files live next to the database, so this also holds across processes.
A caller that already holds the lock passes its ``ScopeLease`` instead.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from contextlib import contextmanager
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional

from ...config import Config, get_config
from ...database.models import Device, OperationStatus, ScopeType, SyncProfile
from ...database.progress_tracker import ProgressSink, ProgressTracker
from ...database.service import DatabaseService
from ...exceptions import (
    DeviceDisconnectedError,
    PathNotAccessibleError,
    ScopeFatalError,
    SyncError,
)
from ..filesystem.scanner import TreeScanner
from .cancellation import CancelToken
from .conflict_resolver import ConflictResolver
from .diff_engine import DiffEngine
from .executor import (
    ExecutionOutcome,
    ExecutionResult,
    ReachabilityCheck,
    SyncExecutor,
)
from .hashing import CachedHashResolver, HashFunction, HashResolver
from .locks import ScopeLease, ScopeLockRegistry
from .state import Conflict, ConflictResolution, DiffResult, Snapshot, SyncMode

logger = logging.getLogger(__name__)


@dataclass
class SyncPlan:
    """A computed diff together with everything needed to execute it."""

    scope_id: str
    scope_type: ScopeType
    source_root: Path
    target_root: Path
    diff: DiffResult
    hash_resolver: HashResolver
    conflicts: List[Conflict] = dataclass_field(default_factory=list)
    mount_path: Optional[Path] = None
    created_at: float = dataclass_field(default_factory=time.time)

    @property
    def needs_resolution(self) -> bool:
        return bool(self.conflicts)

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of the plan."""
        return {
            "scope_id": self.scope_id,
            "scope_type": self.scope_type.value,
            "source_root": str(self.source_root),
            "target_root": str(self.target_root),
            **self.diff.get_summary(),
        }


class SyncOrchestrator:
    """Runs diff and execute flows for sync profiles and devices."""

    def __init__(
        self,
        db_service: DatabaseService,
        config: Optional[Config] = None,
        locks: Optional[ScopeLockRegistry] = None,
        hash_function: Optional[HashFunction] = None,
    ) -> None:
        """Initialize sync orchestrator.

        Args:
            db_service: Database service instance
            config: Application configuration (defaults to get_config())
            locks: Scope lock registry (defaults to lock files beside the database)
            hash_function: Override for content hashing (defaults to SHA256)
        """
        self.db_service = db_service
        self.config = config or get_config()
        self.locks = locks or ScopeLockRegistry(db_service.db_path.parent / "locks")
        self.hash_function = hash_function
        self.conflict_resolver = ConflictResolver()
        self._pool: Optional[ThreadPoolExecutor] = None

    # =========================================================================
    # Sync profiles
    # =========================================================================

    def compute_profile_diff(
        self,
        profile_id: str,
        sink: Optional[ProgressSink] = None,
        lease: Optional[ScopeLease] = None,
    ) -> SyncPlan:
        """Scan both folders of a profile and diff them.

        Raises:
            ProfileNotFoundError: If the profile does not exist
            PathNotAccessibleError: If either folder is missing or unreadable
            ScopeBusyError: If another operation holds the profile
        """
        profile = self.db_service.require_profile(profile_id)
        with self._hold(profile.id, lease):
            return self._plan_profile(profile, ProgressTracker(sink))

    def execute_profile_sync(
        self,
        plan: SyncPlan,
        resolutions: Iterable[ConflictResolution] = (),
        sink: Optional[ProgressSink] = None,
        cancel: Optional[CancelToken] = None,
        lease: Optional[ScopeLease] = None,
    ) -> ExecutionResult:
        """Apply resolutions to a profile plan and execute it."""
        with self._hold(plan.scope_id, lease):
            return self._execute_plan(plan, resolutions, sink, cancel)

    def sync_profile(
        self,
        profile_id: str,
        resolutions: Iterable[ConflictResolution] = (),
        sink: Optional[ProgressSink] = None,
        cancel: Optional[CancelToken] = None,
        lease: Optional[ScopeLease] = None,
    ) -> ExecutionResult:
        """Diff and execute a profile while holding its lock throughout."""
        profile = self.db_service.require_profile(profile_id)
        with self._hold(profile.id, lease):
            plan = self._plan_profile(profile, ProgressTracker(sink))
            return self._execute_plan(plan, resolutions, sink, cancel)

    def _plan_profile(self, profile: SyncProfile, tracker: ProgressTracker) -> SyncPlan:
        source_root = Path(profile.source_path)
        target_root = Path(profile.target_path)
        for label, root in (("Source", source_root), ("Target", target_root)):
            if not root.is_dir():
                raise PathNotAccessibleError(
                    f"{label} folder is not accessible: {root}", scope_id=profile.id
                )

        scanner = self._scanner(profile.exclude_pattern_list)
        source = self._scan(scanner, source_root, profile.id, tracker)
        target = self._scan(scanner, target_root, profile.id, tracker)

        resolver = HashResolver(
            source_root,
            target_root,
            hash_function=self.hash_function,
            chunk_size=self.config.hash_chunk_size,
        )
        engine = DiffEngine(resolver, tracker)

        conflicts: List[Conflict] = []
        if SyncMode(profile.sync_mode) == SyncMode.TWO_WAY:
            baseline = self.db_service.get_baseline(profile.id)
            diff, conflicts = engine.diff_three_way(source, target, baseline)
        else:
            diff = engine.diff_one_way(source, target, profile.preserve_orphans)

        logger.info(
            "Profile '%s' diff computed (%d hashes): %s",
            profile.name,
            resolver.hashes_computed,
            diff.get_summary(),
        )
        return SyncPlan(
            scope_id=profile.id,
            scope_type=ScopeType.PROFILE,
            source_root=source_root,
            target_root=target_root,
            diff=diff,
            hash_resolver=resolver,
            conflicts=conflicts,
        )

    # =========================================================================
    # Devices
    # =========================================================================

    def compute_device_diff(
        self,
        device_id: str,
        library_root: Optional[Path] = None,
        sink: Optional[ProgressSink] = None,
        lease: Optional[ScopeLease] = None,
    ) -> SyncPlan:
        """Scan the library and the device folder and diff them one-way.

        Hashes computed for device files are written to the hash cache right
        away, whether or not the plan is executed.

        Raises:
            DeviceNotFoundError: If the device is not registered
            DeviceDisconnectedError: If the device is not mounted
            PathNotAccessibleError: If the library folder is missing
        """
        device = self.db_service.require_device(device_id)
        with self._hold(device.id, lease):
            return self._plan_device(device, library_root, ProgressTracker(sink))

    def execute_device_sync(
        self,
        plan: SyncPlan,
        sink: Optional[ProgressSink] = None,
        cancel: Optional[CancelToken] = None,
        lease: Optional[ScopeLease] = None,
    ) -> ExecutionResult:
        """Execute a device plan."""
        with self._hold(plan.scope_id, lease):
            return self._execute_plan(plan, (), sink, cancel)

    def sync_device(
        self,
        device_id: str,
        library_root: Optional[Path] = None,
        sink: Optional[ProgressSink] = None,
        cancel: Optional[CancelToken] = None,
        lease: Optional[ScopeLease] = None,
    ) -> ExecutionResult:
        """Diff and execute a device while holding its lock throughout."""
        device = self.db_service.require_device(device_id)
        with self._hold(device.id, lease):
            plan = self._plan_device(device, library_root, ProgressTracker(sink))
            return self._execute_plan(plan, (), sink, cancel)

    def _plan_device(
        self, device: Device, library_root: Optional[Path], tracker: ProgressTracker
    ) -> SyncPlan:
        mount_path = Path(device.mount_path) if device.mount_path else None
        if mount_path is None or not mount_path.is_dir():
            raise DeviceDisconnectedError(
                f"Device '{device.name}' is not connected", scope_id=device.id
            )

        source_root = library_root or self.config.library_root
        if source_root is None or not Path(source_root).is_dir():
            raise PathNotAccessibleError(
                f"Library folder is not accessible: {source_root}", scope_id=device.id
            )
        source_root = Path(source_root)
        target_root = device.sync_root or mount_path

        scanner = self._scanner(())
        source = self._scan(scanner, source_root, device.id, tracker)
        target = self._scan(scanner, target_root, device.id, tracker)

        resolver = CachedHashResolver(
            source_root,
            target_root,
            db_service=self.db_service,
            device_id=device.id,
            hash_function=self.hash_function,
            chunk_size=self.config.hash_chunk_size,
        )
        diff = DiffEngine(resolver, tracker).diff_one_way(source, target)

        logger.info(
            "Device '%s' diff computed (%d hashes, %d cache hits): %s",
            device.name,
            resolver.hashes_computed,
            resolver.cache_hits,
            diff.get_summary(),
        )
        return SyncPlan(
            scope_id=device.id,
            scope_type=ScopeType.DEVICE,
            source_root=source_root,
            target_root=target_root,
            diff=diff,
            hash_resolver=resolver,
            mount_path=mount_path,
        )

    # =========================================================================
    # Execution
    # =========================================================================

    def resolve(
        self, plan: SyncPlan, resolutions: Iterable[ConflictResolution] = ()
    ) -> DiffResult:
        """Finalized action list of a plan; unresolved conflicts are skipped."""
        if not plan.diff.has_conflicts:
            return plan.diff
        return self.conflict_resolver.apply_resolutions(
            plan.diff,
            plan.conflicts,
            resolutions,
            roots=(plan.source_root, plan.target_root),
        )

    def _execute_plan(
        self,
        plan: SyncPlan,
        resolutions: Iterable[ConflictResolution],
        sink: Optional[ProgressSink],
        cancel: Optional[CancelToken],
    ) -> ExecutionResult:
        finalized = self.resolve(plan, resolutions)

        if plan.scope_type == ScopeType.DEVICE:
            check = self._device_check(plan)
            # The music folder may not exist yet on a fresh device
            check()
            plan.target_root.mkdir(parents=True, exist_ok=True)
        else:
            check = None

        executor = SyncExecutor(
            plan.source_root,
            plan.target_root,
            scope_id=plan.scope_id,
            db_service=self.db_service,
            hash_resolver=plan.hash_resolver,
            reachability_check=check,
        )

        operation_id = self.db_service.create_sync_operation(
            plan.scope_id, plan.scope_type
        )
        try:
            result = executor.execute(finalized, sink=sink, cancel=cancel)
        except ScopeFatalError as e:
            partial = e.result or ExecutionResult()
            self.db_service.finish_sync_operation(
                operation_id,
                OperationStatus.FAILED,
                files_synced=partial.files_completed,
                files_failed=partial.files_failed,
                bytes_synced=partial.bytes_completed,
                details=partial.get_summary(),
                error_message=str(e),
            )
            raise

        status = OperationStatus.COMPLETED
        if result.was_cancelled:
            status = OperationStatus.CANCELLED
        self.db_service.finish_sync_operation(
            operation_id,
            status,
            files_synced=result.files_completed,
            files_failed=result.files_failed,
            bytes_synced=result.bytes_completed,
            details={
                **result.get_summary(),
                "errors": [error.to_dict() for error in result.errors[:50]],
                "skipped_conflicts": finalized.skipped_paths,
            },
        )

        if result.outcome == ExecutionOutcome.COMPLETED:
            if plan.scope_type == ScopeType.DEVICE:
                self.db_service.mark_device_synced(plan.scope_id)
            else:
                self.db_service.mark_profile_synced(plan.scope_id)
        return result

    @staticmethod
    def _device_check(plan: SyncPlan) -> ReachabilityCheck:
        mount_path = plan.mount_path or plan.target_root

        def check() -> None:
            if not mount_path.is_dir():
                raise DeviceDisconnectedError(
                    f"Device disconnected: {mount_path}", scope_id=plan.scope_id
                )
            if not plan.source_root.is_dir():
                raise PathNotAccessibleError(
                    f"Library folder is not accessible: {plan.source_root}",
                    scope_id=plan.scope_id,
                )

        return check

    @contextmanager
    def _hold(self, scope_id: str, lease: Optional[ScopeLease]) -> Iterator[None]:
        if lease is None:
            with self.locks.hold(scope_id):
                yield
            return
        if not lease.active or lease.scope_id != scope_id:
            raise SyncError(f"No lock held on scope {scope_id}")
        yield

    def _scanner(self, exclude_patterns: Iterable[str]) -> TreeScanner:
        patterns = list(self.config.default_excludes) + list(exclude_patterns)
        return TreeScanner(patterns, self.config.scan_extensions)

    @staticmethod
    def _scan(
        scanner: TreeScanner, root: Path, scope_id: str, tracker: ProgressTracker
    ) -> Snapshot:
        """Scan one side, refusing to diff a partial listing.

        A file missing from the listing only because it could not be read
        would otherwise be planned as deleted on that side.
        """
        snapshot = scanner.scan(root, tracker)
        if not scanner.stats.is_complete:
            errors = scanner.stats.errors
            raise PathNotAccessibleError(
                f"Could not read {len(errors)} path(s) under {root}: {errors[0]}",
                scope_id=scope_id,
            )
        return snapshot

    # =========================================================================
    # Background execution
    # =========================================================================

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        """Run a flow such as ``sync_profile`` on the background worker pool.

        Progress still goes to the sink passed in ``kwargs``; use a
        ``QueueSink`` to consume it from another thread.
        """
        if self._pool is None:
            self._pool = ThreadPoolExecutor(
                max_workers=self.config.max_concurrent_syncs,
                thread_name_prefix="orchestra-sync",
            )
        return self._pool.submit(fn, *args, **kwargs)

    def shutdown(self, wait: bool = True) -> None:
        """Stop the background worker pool."""
        if self._pool is not None:
            self._pool.shutdown(wait=wait)
            self._pool = None

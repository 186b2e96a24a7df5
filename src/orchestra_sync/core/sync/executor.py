"""Sync executor applying a finalized action list to the filesystem.

Actions run one file at a time in path order. Before each file the cancel
token and the reachability of both roots are checked. Per-file failures are
recorded and reported but never stop the run; a vanished root aborts it.
Every completed action commits its baseline row immediately, so work done
before a cancellation or abort is never re-evaluated from stale state.
"""

import logging
import time
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional, Set

from ...database.progress_tracker import ProgressSink, ProgressTracker
from ...exceptions import FileOperationError, PathNotAccessibleError, ScopeFatalError
from ..filesystem.file_operations import (
    CopyResult,
    move_file,
    remove_file_and_empty_parents,
    safe_copy_file,
)
from ..filesystem.scanner import stat_file_state
from .cancellation import CancelToken
from .hashing import HashResolver
from .state import (
    BaselineEntry,
    DiffAction,
    DiffDirection,
    DiffEntry,
    DiffResult,
    FileState,
    Side,
)

if TYPE_CHECKING:
    from ...database.service import DatabaseService

logger = logging.getLogger(__name__)

ReachabilityCheck = Callable[[], None]


class ExecutionOutcome(str, Enum):
    """Terminal state of an execution."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


@dataclass
class FileError:
    """A failed file operation."""

    relative_path: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"relative_path": self.relative_path, "message": self.message}


@dataclass
class ExecutionResult:
    """Result of executing a finalized action list."""

    outcome: ExecutionOutcome = ExecutionOutcome.COMPLETED
    total_files: int = 0
    total_bytes: int = 0
    files_completed: int = 0
    files_failed: int = 0
    files_not_attempted: int = 0
    bytes_completed: int = 0
    files_added: int = 0
    files_updated: int = 0
    files_removed: int = 0
    duration_ms: int = 0
    completed_paths: List[str] = dataclass_field(default_factory=list)
    errors: List[FileError] = dataclass_field(default_factory=list)

    def add_error(self, relative_path: str, message: str) -> None:
        """Record a failed file operation."""
        self.errors.append(FileError(relative_path, message))
        self.files_failed += 1
        logger.error("Failed to sync %s: %s", relative_path, message)

    @property
    def was_cancelled(self) -> bool:
        return self.outcome == ExecutionOutcome.CANCELLED

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    def get_summary(self) -> Dict[str, Any]:
        """Get summary statistics."""
        return {
            "outcome": self.outcome.value,
            "total_files": self.total_files,
            "files_completed": self.files_completed,
            "files_failed": self.files_failed,
            "files_not_attempted": self.files_not_attempted,
            "files_added": self.files_added,
            "files_updated": self.files_updated,
            "files_removed": self.files_removed,
            "bytes_completed": self.bytes_completed,
            "duration_ms": self.duration_ms,
            "errors": len(self.errors),
        }


class SyncExecutor:
    """Executes diff entries with safe writes, progress and cancellation."""

    def __init__(
        self,
        source_root: Path,
        target_root: Path,
        scope_id: Optional[str] = None,
        db_service: Optional["DatabaseService"] = None,
        hash_resolver: Optional[HashResolver] = None,
        reachability_check: Optional[ReachabilityCheck] = None,
    ) -> None:
        """Initialize sync executor.

        Args:
            source_root: Root directory of the source side
            target_root: Root directory of the target side
            scope_id: Baseline namespace (profile or device id)
            db_service: Baseline store; nothing is persisted when None
            hash_resolver: Receives the state of written and removed files
            reachability_check: Raises a ScopeFatalError when a root vanished
                (defaults to checking that both roots are directories)
        """
        self.roots = {Side.SOURCE: Path(source_root), Side.TARGET: Path(target_root)}
        self.scope_id = scope_id
        self.db_service = db_service
        self.hash_resolver = hash_resolver
        self.reachability_check = reachability_check or self._check_roots

    def _check_roots(self) -> None:
        for side, root in self.roots.items():
            if not root.is_dir():
                raise PathNotAccessibleError(
                    f"{side.value.capitalize()} root is not accessible: {root}",
                    scope_id=self.scope_id,
                )

    def execute(
        self,
        actions: DiffResult,
        sink: Optional[ProgressSink] = None,
        cancel: Optional[CancelToken] = None,
    ) -> ExecutionResult:
        """Execute a finalized action list.

        Args:
            actions: Conflict-free diff result
            sink: Listener for sync events
            cancel: Token checked before every file operation

        Returns:
            ExecutionResult with outcome COMPLETED or CANCELLED

        Raises:
            ScopeFatalError: If a root became unreachable; the partial result
                is attached as ``result``
        """
        tracker = ProgressTracker(sink)
        cancel = cancel or CancelToken()
        started = time.monotonic()

        pending = sorted(actions.actionable_entries(), key=lambda e: e.sort_key)
        result = ExecutionResult(
            total_files=len(pending),
            total_bytes=sum(entry.transfer_size for entry in pending),
        )
        failed_groups: Set[str] = set()

        logger.info(
            "Executing %d actions (%d bytes) for scope %s",
            result.total_files,
            result.total_bytes,
            self.scope_id,
        )
        tracker.sync_started(result.total_files, result.total_bytes)

        for index, entry in enumerate(pending):
            if cancel.is_cancelled:
                result.outcome = ExecutionOutcome.CANCELLED
                result.files_not_attempted = len(pending) - index
                logger.info(
                    "Sync cancelled after %d of %d files",
                    result.files_completed,
                    result.total_files,
                )
                break

            try:
                self.reachability_check()
            except ScopeFatalError as e:
                result.outcome = ExecutionOutcome.ABORTED
                result.files_not_attempted = len(pending) - index
                result.duration_ms = int((time.monotonic() - started) * 1000)
                e.scope_id = e.scope_id or self.scope_id
                e.result = result
                tracker.sync_error(entry.relative_path, str(e))
                logger.error("Sync aborted: %s", e)
                raise

            self._execute_entry(entry, result, tracker, failed_groups)
            tracker.sync_progress(
                files_completed=result.files_completed,
                total_files=result.total_files,
                bytes_completed=result.bytes_completed,
                total_bytes=result.total_bytes,
                current_file=entry.relative_path,
            )

        self._finish_baseline(actions)

        result.duration_ms = int((time.monotonic() - started) * 1000)
        tracker.sync_complete(result.files_completed)
        logger.info("Sync finished: %s", result.get_summary())
        return result

    def _execute_entry(
        self,
        entry: DiffEntry,
        result: ExecutionResult,
        tracker: ProgressTracker,
        failed_groups: Set[str],
    ) -> None:
        group = entry.origin_path or entry.relative_path
        try:
            if group in failed_groups:
                raise FileOperationError(
                    entry.relative_path, "skipped because a related operation failed"
                )
            if entry.action in (DiffAction.ADD, DiffAction.UPDATE):
                copied = self._copy(entry)
                result.bytes_completed += copied
                if entry.action == DiffAction.ADD:
                    result.files_added += 1
                else:
                    result.files_updated += 1
            elif entry.action == DiffAction.REMOVE:
                self._remove(entry)
                result.files_removed += 1
            else:
                raise FileOperationError(
                    entry.relative_path, f"cannot execute {entry.action.value} entry"
                )
        except (OSError, FileOperationError) as e:
            if entry.origin_path:
                failed_groups.add(group)
            message = e.message if isinstance(e, FileOperationError) else str(e)
            result.add_error(entry.relative_path, message)
            tracker.sync_error(entry.relative_path, message)
            return

        result.files_completed += 1
        result.completed_paths.append(entry.relative_path)

    # =========================================================================
    # File operations
    # =========================================================================

    def _copy(self, entry: DiffEntry) -> int:
        path = entry.relative_path
        if entry.direction == DiffDirection.TARGET_TO_SOURCE:
            from_side, to_side = Side.TARGET, Side.SOURCE
            known = entry.target_info
        else:
            from_side, to_side = Side.SOURCE, Side.TARGET
            known = entry.source_info

        from_root, to_root = self.roots[from_side], self.roots[to_side]

        if entry.rename_from:
            move_file(from_root / entry.rename_from, from_root / path)
            if self.hash_resolver:
                self.hash_resolver.forget(entry.rename_from, from_side)
            logger.info("Moved %s aside to %s", entry.rename_from, path)

        copy = safe_copy_file(from_root / path, to_root / path)

        from_state = stat_file_state(from_root / path, path)
        to_state = stat_file_state(to_root / path, path)
        known_hash = self._known_hash(known, from_state)
        to_state.content_hash = known_hash or self._streamed_hash(copy)
        if known_hash is not None or from_state.same_metadata(to_state):
            from_state.content_hash = to_state.content_hash

        if self.hash_resolver:
            for side, state in ((from_side, from_state), (to_side, to_state)):
                self.hash_resolver.record(
                    path, side, state.size, state.modified_at, state.content_hash
                )

        if from_side == Side.SOURCE:
            self._commit_baseline(path, source=from_state, target=to_state)
        else:
            self._commit_baseline(path, source=to_state, target=from_state)

        logger.debug("%s %s", entry.action.value, entry)
        return copy.bytes_copied

    def _remove(self, entry: DiffEntry) -> None:
        # Deletion propagates in the entry's direction
        side = (
            Side.TARGET
            if entry.direction == DiffDirection.SOURCE_TO_TARGET
            else Side.SOURCE
        )
        root = self.roots[side]
        try:
            remove_file_and_empty_parents(root / entry.relative_path, root)
        except FileNotFoundError:
            logger.debug("Already gone: %s", entry.relative_path)

        if self.hash_resolver:
            self.hash_resolver.forget(entry.relative_path, side)
        self._drop_baseline([entry.relative_path])
        logger.info("Removed %s from %s", entry.relative_path, side.value)

    def _streamed_hash(self, copy: CopyResult) -> Optional[str]:
        """Digest taken during the copy, if it matches the resolver's hashing."""
        if self.hash_resolver is None or self.hash_resolver.uses_default_hash:
            return copy.content_hash
        return None

    @staticmethod
    def _known_hash(known: Optional[FileState], current: FileState) -> Optional[str]:
        """Hash computed during the diff, if the file is still in that state."""
        if known is None or known.content_hash is None:
            return None
        if not known.same_metadata(current):
            return None
        return known.content_hash

    # =========================================================================
    # Baseline
    # =========================================================================

    def _commit_baseline(
        self, relative_path: str, source: FileState, target: FileState
    ) -> None:
        if self.db_service is None or self.scope_id is None:
            return
        self.db_service.save_baseline_entries(
            self.scope_id, [BaselineEntry(relative_path, source=source, target=target)]
        )

    def _drop_baseline(self, relative_paths: List[str]) -> int:
        if self.db_service is None or self.scope_id is None:
            return 0
        return self.db_service.delete_baseline_entries(self.scope_id, relative_paths)

    def _finish_baseline(self, actions: DiffResult) -> None:
        """Record unchanged pairs and drop rows of files deleted on both sides."""
        if self.db_service is None or self.scope_id is None:
            return

        settled = [
            BaselineEntry(entry.relative_path, entry.source_info, entry.target_info)
            for entry in actions.entries
            if entry.action == DiffAction.UNCHANGED
            and entry.source_info is not None
            and entry.target_info is not None
        ]
        if settled:
            self.db_service.save_baseline_entries(self.scope_id, settled)
        if actions.stale_baseline_paths:
            removed = self._drop_baseline(actions.stale_baseline_paths)
            logger.debug("Dropped %d stale baseline rows", removed)

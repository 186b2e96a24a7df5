"""Diff engine comparing two snapshots, optionally pivoting on a baseline.

One-way diffs mirror the source onto the target. Three-way diffs compare each
side against the state recorded after the last successful sync to learn which
side actually changed, and report a conflict when both did.

Hashing is lazy throughout: two files with equal size and modification time
are treated as equal without reading them, and a hash is only computed for
the specific pair whose equality is in question.
"""

import logging
from typing import List, Optional, Tuple

from ...database.progress_tracker import ProgressTracker
from .hashing import HashResolver
from .state import (
    Baseline,
    BaselineEntry,
    Conflict,
    ConflictKind,
    DiffAction,
    DiffDirection,
    DiffEntry,
    DiffResult,
    FileState,
    Side,
    Snapshot,
    SyncMode,
)

logger = logging.getLogger(__name__)


def _changed(current: FileState, recorded: FileState) -> bool:
    """Whether a side's file differs from its recorded baseline state."""
    return not current.same_metadata(recorded)


class DiffEngine:
    """Classifies every path of two snapshots into an action."""

    def __init__(
        self, hash_resolver: HashResolver, tracker: Optional[ProgressTracker] = None
    ) -> None:
        """Initialize diff engine.

        Args:
            hash_resolver: Resolves content hashes on demand
            tracker: Optional progress tracker receiving diff events
        """
        self.hash_resolver = hash_resolver
        self.tracker = tracker or ProgressTracker()

    # =========================================================================
    # One-way (mirror)
    # =========================================================================

    def diff_one_way(
        self, source: Snapshot, target: Snapshot, preserve_orphans: bool = False
    ) -> DiffResult:
        """Compute the actions that make target mirror source.

        Args:
            source: Source snapshot
            target: Target snapshot
            preserve_orphans: Leave target-only files in place

        Returns:
            DiffResult with one entry per path of either snapshot
        """
        result = DiffResult(mode=SyncMode.ONE_WAY)
        paths = sorted(source.paths() | target.paths())
        total = len(paths)

        for index, path in enumerate(paths, start=1):
            result.add_entry(
                self._classify_one_way(
                    path, source.get(path), target.get(path), preserve_orphans
                )
            )
            self.tracker.diff_progress(index, total, path)

        result.sort()
        self.tracker.diff_complete(result.total_entries)
        logger.info("One-way diff: %s", result.get_summary())
        return result

    def _classify_one_way(
        self,
        path: str,
        source: Optional[FileState],
        target: Optional[FileState],
        preserve_orphans: bool,
    ) -> DiffEntry:
        forward = DiffDirection.SOURCE_TO_TARGET

        if target is None:
            return DiffEntry(path, DiffAction.ADD, forward, source_info=source)

        if source is None:
            action = DiffAction.UNCHANGED if preserve_orphans else DiffAction.REMOVE
            return DiffEntry(path, action, forward, target_info=target)

        if source.same_metadata(target) or self._same_content(source, target):
            action = DiffAction.UNCHANGED
        else:
            action = DiffAction.UPDATE
        return DiffEntry(path, action, forward, source_info=source, target_info=target)

    # =========================================================================
    # Three-way (bidirectional)
    # =========================================================================

    def diff_three_way(
        self, source: Snapshot, target: Snapshot, baseline: Baseline
    ) -> Tuple[DiffResult, List[Conflict]]:
        """Compute bidirectional actions using the baseline as pivot.

        Args:
            source: Source snapshot
            target: Target snapshot
            baseline: State of both sides after the last successful sync

        Returns:
            Tuple of the DiffResult and the conflicts it contains
        """
        result = DiffResult(mode=SyncMode.TWO_WAY)
        present = source.paths() | target.paths()
        paths = sorted(present)
        total = len(paths)

        for index, path in enumerate(paths, start=1):
            entry, conflict = self._classify_three_way(
                path, source.get(path), target.get(path), baseline.get(path)
            )
            result.add_entry(entry)
            if conflict is not None:
                result.conflicts.append(conflict)
            self.tracker.diff_progress(index, total, path)

        # Deleted on both sides since the last sync
        result.stale_baseline_paths = sorted(set(baseline) - present)

        result.sort()
        self.tracker.diff_complete(result.total_entries)
        logger.info("Three-way diff: %s", result.get_summary())
        return result, list(result.conflicts)

    def _classify_three_way(
        self,
        path: str,
        source: Optional[FileState],
        target: Optional[FileState],
        recorded: Optional[BaselineEntry],
    ) -> Tuple[DiffEntry, Optional[Conflict]]:
        if recorded is None:
            return self._classify_first_sync(path, source, target)

        if source is not None and target is not None:
            source_changed = _changed(source, recorded.source)
            target_changed = _changed(target, recorded.target)

            if not source_changed and not target_changed:
                action, direction = DiffAction.UNCHANGED, DiffDirection.BOTH
            elif source_changed and not target_changed:
                action, direction = DiffAction.UPDATE, DiffDirection.SOURCE_TO_TARGET
            elif target_changed and not source_changed:
                action, direction = DiffAction.UPDATE, DiffDirection.TARGET_TO_SOURCE
            elif source.same_metadata(target) or self._same_content(source, target):
                logger.debug("Convergent edit: %s", path)
                action, direction = DiffAction.UNCHANGED, DiffDirection.BOTH
            else:
                return self._conflict(path, ConflictKind.BOTH_MODIFIED, source, target)
            return DiffEntry(path, action, direction, source, target), None

        if source is not None:
            # Deleted on target
            if _changed(source, recorded.source):
                return self._conflict(
                    path, ConflictKind.DELETED_AND_MODIFIED, source, None
                )
            direction = DiffDirection.TARGET_TO_SOURCE
            return DiffEntry(path, DiffAction.REMOVE, direction, source, None), None

        if target is None:
            raise ValueError(f"{path} is on neither side")

        # Deleted on source
        if _changed(target, recorded.target):
            return self._conflict(path, ConflictKind.DELETED_AND_MODIFIED, None, target)
        direction = DiffDirection.SOURCE_TO_TARGET
        return DiffEntry(path, DiffAction.REMOVE, direction, None, target), None

    def _classify_first_sync(
        self, path: str, source: Optional[FileState], target: Optional[FileState]
    ) -> Tuple[DiffEntry, Optional[Conflict]]:
        if target is None:
            direction = DiffDirection.SOURCE_TO_TARGET
            return DiffEntry(path, DiffAction.ADD, direction, source, None), None
        if source is None:
            direction = DiffDirection.TARGET_TO_SOURCE
            return DiffEntry(path, DiffAction.ADD, direction, None, target), None
        if source.same_metadata(target) or self._same_content(source, target):
            unchanged = DiffEntry(
                path, DiffAction.UNCHANGED, DiffDirection.BOTH, source, target
            )
            return unchanged, None
        return self._conflict(path, ConflictKind.FIRST_SYNC_DIFFERS, source, target)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _conflict(
        path: str,
        kind: ConflictKind,
        source: Optional[FileState],
        target: Optional[FileState],
    ) -> Tuple[DiffEntry, Conflict]:
        logger.info("Conflict (%s): %s", kind.value, path)
        entry = DiffEntry(
            path,
            DiffAction.CONFLICT,
            DiffDirection.BOTH,
            source_info=source,
            target_info=target,
        )
        return entry, Conflict(path, kind, source_info=source, target_info=target)

    def _same_content(self, source: FileState, target: FileState) -> bool:
        """Compare content hashes; an unreadable file counts as different."""
        try:
            source_hash = self.hash_resolver.resolve(Side.SOURCE, source)
            target_hash = self.hash_resolver.resolve(Side.TARGET, target)
        except OSError as e:
            logger.warning(
                "Cannot hash %s, treating as changed: %s", source.relative_path, e
            )
            return False
        return source_hash == target_hash


def diff_one_way(
    source: Snapshot,
    target: Snapshot,
    hash_resolver: HashResolver,
    preserve_orphans: bool = False,
    tracker: Optional[ProgressTracker] = None,
) -> DiffResult:
    """Mirror diff of source onto target."""
    return DiffEngine(hash_resolver, tracker).diff_one_way(
        source, target, preserve_orphans
    )


def diff_three_way(
    source: Snapshot,
    target: Snapshot,
    baseline: Baseline,
    hash_resolver: HashResolver,
    tracker: Optional[ProgressTracker] = None,
) -> Tuple[DiffResult, List[Conflict]]:
    """Bidirectional diff of source and target against a baseline."""
    return DiffEngine(hash_resolver, tracker).diff_three_way(source, target, baseline)

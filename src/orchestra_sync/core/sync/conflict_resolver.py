"""Conflict resolution for bidirectional syncs.

Maps user-supplied per-path strategies onto the conflict entries of a diff and
returns a finalized, conflict-free action list. Conflicts without a
resolution are skipped: the path is left alone on both sides and its baseline
row is not touched, so it comes back as a conflict on the next diff.
"""

import logging
import os
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from .state import (
    Conflict,
    ConflictResolution,
    DiffAction,
    DiffDirection,
    DiffEntry,
    DiffResult,
    FileState,
    ResolutionStrategy,
)

logger = logging.getLogger(__name__)

KEEP_BOTH_LABEL = "target copy"


def keep_both_name(
    relative_path: str, taken: Set[str], roots: Sequence[Path] = ()
) -> str:
    """Name under which the target's version is kept alongside the source's.

    ``Album/Song.flac`` becomes ``Album/Song (target copy).flac``; if that is
    taken, ``Album/Song (target copy 2).flac`` and so on. A name is taken
    when the diff uses it or when anything exists at it under one of the
    roots, including files the scan never listed.

    Args:
        relative_path: Conflicting path
        taken: Paths already used on either side
        roots: Directories checked on disk for the candidate name

    Returns:
        First free relative path
    """
    path = PurePosixPath(relative_path)
    counter = 1
    while True:
        label = KEEP_BOTH_LABEL if counter == 1 else f"{KEEP_BOTH_LABEL} {counter}"
        candidate = str(path.with_name(f"{path.stem} ({label}){path.suffix}"))
        if candidate not in taken and not any(
            os.path.lexists(Path(root) / candidate) for root in roots
        ):
            return candidate
        counter += 1


@dataclass
class ConflictResolutionResult:
    """Counters describing one resolution pass."""

    conflicts_detected: int = 0
    conflicts_resolved: int = 0
    conflicts_skipped: int = 0
    by_strategy: Dict[str, int] = dataclass_field(default_factory=dict)

    def add(self, strategy: ResolutionStrategy) -> None:
        """Count one conflict handled with the given strategy."""
        self.conflicts_detected += 1
        self.by_strategy[strategy.value] = self.by_strategy.get(strategy.value, 0) + 1
        if strategy == ResolutionStrategy.SKIP:
            self.conflicts_skipped += 1
        else:
            self.conflicts_resolved += 1

    def get_summary(self) -> Dict[str, Any]:
        return {
            "conflicts_detected": self.conflicts_detected,
            "conflicts_resolved": self.conflicts_resolved,
            "conflicts_skipped": self.conflicts_skipped,
            "by_strategy": dict(self.by_strategy),
        }


class ConflictResolver:
    """Rewrites conflict entries according to resolution strategies."""

    def __init__(self) -> None:
        self.last_result = ConflictResolutionResult()

    def apply_resolutions(
        self,
        diff: DiffResult,
        conflicts: Iterable[Conflict],
        resolutions: Iterable[ConflictResolution],
        roots: Sequence[Path] = (),
    ) -> DiffResult:
        """Produce a finalized action list without conflict entries.

        Args:
            diff: Diff containing conflict entries
            conflicts: Conflicts reported with the diff
            resolutions: Caller decisions; missing paths default to skip
            roots: Source and target roots, checked for keep-both names

        Returns:
            New DiffResult ready for execution
        """
        strategies = {r.relative_path: r.strategy for r in resolutions}
        known = {c.relative_path: c for c in conflicts}
        taken: Set[str] = {entry.relative_path for entry in diff.entries}
        self.last_result = ConflictResolutionResult()

        finalized = DiffResult(
            mode=diff.mode,
            stale_baseline_paths=list(diff.stale_baseline_paths),
            skipped_paths=list(diff.skipped_paths),
        )

        for entry in diff.entries:
            if entry.action != DiffAction.CONFLICT:
                finalized.add_entry(entry)
                continue

            strategy = strategies.get(entry.relative_path, ResolutionStrategy.SKIP)
            if entry.relative_path not in known:
                logger.warning(
                    "No conflict record for %s, skipping", entry.relative_path
                )
                strategy = ResolutionStrategy.SKIP

            self.last_result.add(strategy)
            if strategy == ResolutionStrategy.SKIP:
                logger.info("Skipping conflict: %s", entry.relative_path)
                finalized.skipped_paths.append(entry.relative_path)
                continue

            for resolved in self._resolve(entry, strategy, taken, roots):
                finalized.add_entry(resolved)

        unused = set(strategies) - set(known)
        if unused:
            logger.debug("Ignoring resolutions for non-conflicting paths: %s", unused)

        finalized.sort()
        logger.info("Conflict resolution: %s", self.last_result.get_summary())
        return finalized

    def _resolve(
        self,
        entry: DiffEntry,
        strategy: ResolutionStrategy,
        taken: Set[str],
        roots: Sequence[Path],
    ) -> List[DiffEntry]:
        source, target = entry.source_info, entry.target_info

        if strategy == ResolutionStrategy.KEEP_SOURCE:
            return [self._keep(entry.relative_path, source, target, from_source=True)]
        if strategy == ResolutionStrategy.KEEP_TARGET:
            return [self._keep(entry.relative_path, source, target, from_source=False)]

        # Keep both
        if source is None or target is None:
            # Only one version exists, restore it on the other side
            return [
                self._keep(
                    entry.relative_path, source, target, from_source=source is not None
                )
            ]

        copy_path = keep_both_name(entry.relative_path, taken, roots)
        taken.add(copy_path)
        logger.info("Keeping both versions of %s as %s", entry.relative_path, copy_path)

        moved_target = FileState(
            relative_path=copy_path,
            size=target.size,
            modified_at=target.modified_at,
            content_hash=target.content_hash,
        )
        return [
            # Move the target's version aside, then copy it to the source
            DiffEntry(
                copy_path,
                DiffAction.ADD,
                DiffDirection.TARGET_TO_SOURCE,
                target_info=moved_target,
                origin_path=entry.relative_path,
                rename_from=entry.relative_path,
            ),
            # The source's version takes the now vacant original name
            DiffEntry(
                entry.relative_path,
                DiffAction.ADD,
                DiffDirection.SOURCE_TO_TARGET,
                source_info=source,
                origin_path=entry.relative_path,
            ),
        ]

    @staticmethod
    def _keep(
        path: str,
        source: Optional[FileState],
        target: Optional[FileState],
        from_source: bool,
    ) -> DiffEntry:
        winner, loser = (source, target) if from_source else (target, source)
        direction = (
            DiffDirection.SOURCE_TO_TARGET
            if from_source
            else DiffDirection.TARGET_TO_SOURCE
        )

        if winner is None:
            # The winning side deleted the file
            action = DiffAction.REMOVE
        elif loser is None:
            action = DiffAction.ADD
        else:
            action = DiffAction.UPDATE
        return DiffEntry(
            path, action, direction, source_info=source, target_info=target
        )


def apply_resolutions(
    diff: DiffResult,
    conflicts: Iterable[Conflict],
    resolutions: Iterable[ConflictResolution],
    roots: Sequence[Path] = (),
) -> DiffResult:
    """Finalize a diff with the given conflict resolutions."""
    return ConflictResolver().apply_resolutions(diff, conflicts, resolutions, roots)

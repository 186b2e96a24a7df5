"""Data model shared by the diff engine, conflict resolver and executor.

A ``Snapshot`` is one side's file listing at diff time. The diff engine turns
two snapshots (plus, for bidirectional sync, the stored baseline) into a
``DiffResult``: exactly one ``DiffEntry`` per relative path found on either
side. Conflicting paths additionally carry a ``Conflict`` record that a user
or policy answers with a ``ConflictResolution``.
"""

import fnmatch
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Set


class SyncMode(str, Enum):
    """How a scope is synchronized."""

    ONE_WAY = "one_way"
    TWO_WAY = "two_way"


class DiffAction(str, Enum):
    """Action assigned to a path by the diff engine."""

    ADD = "add"
    REMOVE = "remove"
    UPDATE = "update"
    UNCHANGED = "unchanged"
    CONFLICT = "conflict"


class DiffDirection(str, Enum):
    """Direction in which a change flows.

    For ``REMOVE`` the direction names where the deletion propagates to:
    ``SOURCE_TO_TARGET`` deletes the target copy, ``TARGET_TO_SOURCE``
    deletes the source copy.
    """

    SOURCE_TO_TARGET = "source_to_target"
    TARGET_TO_SOURCE = "target_to_source"
    BOTH = "both"


class Side(str, Enum):
    """One side of a sync scope."""

    SOURCE = "source"
    TARGET = "target"


class ConflictKind(str, Enum):
    """Why a path could not be classified automatically."""

    BOTH_MODIFIED = "both_modified"
    DELETED_AND_MODIFIED = "deleted_and_modified"
    FIRST_SYNC_DIFFERS = "first_sync_differs"


class ResolutionStrategy(str, Enum):
    """User decision for a conflicting path."""

    KEEP_SOURCE = "keep_source"
    KEEP_TARGET = "keep_target"
    KEEP_BOTH = "keep_both"
    SKIP = "skip"


@dataclass
class FileState:
    """Observable state of one file on one side.

    ``content_hash`` is filled in only once a hash has been computed; a
    missing hash says nothing about whether the file exists.
    """

    relative_path: str
    size: int
    modified_at: int
    content_hash: Optional[str] = None

    def same_metadata(self, other: "FileState") -> bool:
        """Return True if size and modification time both match."""
        return self.size == other.size and self.modified_at == other.modified_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "relative_path": self.relative_path,
            "size": self.size,
            "modified_at": self.modified_at,
            "content_hash": self.content_hash,
        }


def is_excluded(relative_path: str, patterns: Sequence[str]) -> bool:
    """Check a POSIX relative path against glob-style exclude patterns.

    A pattern matches the whole relative path or any of its parent
    directories, so ``Podcasts`` excludes everything below ``Podcasts/``.
    """
    if not patterns:
        return False
    parts = relative_path.split("/")
    prefixes = ["/".join(parts[: i + 1]) for i in range(len(parts))]
    return any(
        fnmatch.fnmatchcase(prefix, pattern)
        for pattern in patterns
        for prefix in prefixes
    )


class Snapshot:
    """Mapping of relative path to FileState for one root."""

    def __init__(
        self, root: Optional[Path] = None, files: Optional[Iterable[FileState]] = None
    ) -> None:
        self.root = Path(root) if root is not None else None
        self._files: Dict[str, FileState] = {}
        for state in files or ():
            self.add(state)

    def add(self, state: FileState) -> None:
        """Add or replace a file state."""
        self._files[state.relative_path] = state

    def get(self, relative_path: str) -> Optional[FileState]:
        """Get the state of a path, or None if it is absent."""
        return self._files.get(relative_path)

    def paths(self) -> Set[str]:
        """All relative paths in the snapshot."""
        return set(self._files)

    def filtered(self, patterns: Sequence[str]) -> "Snapshot":
        """Return a copy without paths matching the exclude patterns."""
        return Snapshot(
            self.root,
            (s for p, s in self._files.items() if not is_excluded(p, patterns)),
        )

    @property
    def total_bytes(self) -> int:
        return sum(state.size for state in self._files.values())

    def __contains__(self, relative_path: object) -> bool:
        return relative_path in self._files

    def __iter__(self) -> Iterator[FileState]:
        return iter(self._files.values())

    def __len__(self) -> int:
        return len(self._files)

    def __repr__(self) -> str:
        return f"<Snapshot(root={self.root}, files={len(self._files)})>"


@dataclass
class BaselineEntry:
    """Both sides' state for a path as of the last successful sync."""

    relative_path: str
    source: FileState
    target: FileState
    snapshot_at: int = 0


Baseline = Dict[str, BaselineEntry]


@dataclass
class DiffEntry:
    """Action for a single relative path.

    ``origin_path`` groups entries produced from one resolved conflict so the
    executor runs them together, and ``rename_from`` asks the executor to
    move an existing file aside to ``relative_path`` before copying it.
    """

    relative_path: str
    action: DiffAction
    direction: DiffDirection
    source_info: Optional[FileState] = None
    target_info: Optional[FileState] = None
    origin_path: Optional[str] = None
    rename_from: Optional[str] = None

    @property
    def is_actionable(self) -> bool:
        return self.action in (DiffAction.ADD, DiffAction.UPDATE, DiffAction.REMOVE)

    @property
    def transfer_size(self) -> int:
        """Bytes copied when this entry is executed."""
        if self.action not in (DiffAction.ADD, DiffAction.UPDATE):
            return 0
        info = (
            self.source_info
            if self.direction == DiffDirection.SOURCE_TO_TARGET
            else self.target_info
        )
        return info.size if info else 0

    @property
    def sort_key(self) -> tuple:
        """Stable execution order: by path, renames before dependent copies."""
        group = self.origin_path or self.relative_path
        return (group, 0 if self.rename_from else 1, self.relative_path)

    def __str__(self) -> str:
        """String representation."""
        return f"{self.action.value} [{self.direction.value}]: {self.relative_path}"


@dataclass
class Conflict:
    """A path whose change cannot be applied without a decision."""

    relative_path: str
    kind: ConflictKind
    source_info: Optional[FileState] = None
    target_info: Optional[FileState] = None

    def __str__(self) -> str:
        """String representation of conflict."""
        return f"{self.kind.value}: {self.relative_path}"


@dataclass
class ConflictResolution:
    """Strategy chosen for one conflicting path."""

    relative_path: str
    strategy: ResolutionStrategy


@dataclass
class DiffResult:
    """Outcome of a diff: one entry per path plus bookkeeping for execution.

    ``stale_baseline_paths`` lists baseline rows whose file vanished from
    both sides; ``skipped_paths`` lists conflicts resolved (or defaulted) to
    skip, whose baseline rows must stay untouched.
    """

    mode: SyncMode = SyncMode.ONE_WAY
    entries: List[DiffEntry] = field(default_factory=list)
    conflicts: List[Conflict] = field(default_factory=list)
    stale_baseline_paths: List[str] = field(default_factory=list)
    skipped_paths: List[str] = field(default_factory=list)

    # Counters
    to_add: int = 0
    to_remove: int = 0
    to_update: int = 0
    unchanged: int = 0
    conflicted: int = 0

    def add_entry(self, entry: DiffEntry) -> None:
        """Add an entry and update counters."""
        self.entries.append(entry)
        if entry.action == DiffAction.ADD:
            self.to_add += 1
        elif entry.action == DiffAction.REMOVE:
            self.to_remove += 1
        elif entry.action == DiffAction.UPDATE:
            self.to_update += 1
        elif entry.action == DiffAction.UNCHANGED:
            self.unchanged += 1
        elif entry.action == DiffAction.CONFLICT:
            self.conflicted += 1

    def sort(self) -> None:
        """Order entries for deterministic execution."""
        self.entries.sort(key=lambda entry: entry.sort_key)
        self.conflicts.sort(key=lambda conflict: conflict.relative_path)

    def get_entry(self, relative_path: str) -> Optional[DiffEntry]:
        for entry in self.entries:
            if entry.relative_path == relative_path:
                return entry
        return None

    def actionable_entries(self) -> List[DiffEntry]:
        """Entries that change the filesystem."""
        return [entry for entry in self.entries if entry.is_actionable]

    @property
    def has_conflicts(self) -> bool:
        return self.conflicted > 0

    @property
    def has_changes(self) -> bool:
        return (self.to_add + self.to_remove + self.to_update) > 0

    @property
    def bytes_to_transfer(self) -> int:
        return sum(entry.transfer_size for entry in self.entries)

    @property
    def total_entries(self) -> int:
        return len(self.entries)

    def get_summary(self) -> Dict[str, Any]:
        """Get summary of the diff.

        Returns:
            Dictionary with counts per action
        """
        return {
            "mode": self.mode.value,
            "total": self.total_entries,
            "to_add": self.to_add,
            "to_remove": self.to_remove,
            "to_update": self.to_update,
            "unchanged": self.unchanged,
            "conflicts": self.conflicted,
            "bytes_to_transfer": self.bytes_to_transfer,
        }


@dataclass
class HashCacheEntry:
    """Hash previously computed for a device file.

    Reusable only while the file still has the recorded size and
    modification time.
    """

    device_id: str
    relative_path: str
    size: int
    modified_at: int
    content_hash: str

    def matches(self, size: int, modified_at: int) -> bool:
        return self.size == size and self.modified_at == modified_at

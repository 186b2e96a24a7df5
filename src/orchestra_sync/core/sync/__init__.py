"""Sync module.

Diffs snapshots, resolves conflicts and executes sync plans.
"""

# Data model (imported first, the database layer depends on it)
from .state import (
    Baseline,
    BaselineEntry,
    Conflict,
    ConflictKind,
    ConflictResolution,
    DiffAction,
    DiffDirection,
    DiffEntry,
    DiffResult,
    FileState,
    HashCacheEntry,
    ResolutionStrategy,
    Side,
    Snapshot,
    SyncMode,
    is_excluded,
)

# Engine
from .cancellation import CancelToken
from .conflict_resolver import (
    ConflictResolutionResult,
    ConflictResolver,
    apply_resolutions,
    keep_both_name,
)
from .diff_engine import DiffEngine, diff_one_way, diff_three_way
from .executor import ExecutionOutcome, ExecutionResult, FileError, SyncExecutor
from .hashing import CachedHashResolver, HashResolver, compute_file_hash
from .locks import ScopeLease, ScopeLockRegistry

# Orchestration
from .orchestrator import SyncOrchestrator, SyncPlan

__all__ = [
    # Data model
    "Baseline",
    "BaselineEntry",
    "Conflict",
    "ConflictKind",
    "ConflictResolution",
    "DiffAction",
    "DiffDirection",
    "DiffEntry",
    "DiffResult",
    "FileState",
    "HashCacheEntry",
    "ResolutionStrategy",
    "Side",
    "Snapshot",
    "SyncMode",
    "is_excluded",
    # Engine
    "CancelToken",
    "ConflictResolutionResult",
    "ConflictResolver",
    "apply_resolutions",
    "keep_both_name",
    "DiffEngine",
    "diff_one_way",
    "diff_three_way",
    "ExecutionOutcome",
    "ExecutionResult",
    "FileError",
    "SyncExecutor",
    "CachedHashResolver",
    "HashResolver",
    "compute_file_hash",
    "ScopeLockRegistry",
    "ScopeLease",
    # Orchestration
    "SyncOrchestrator",
    "SyncPlan",
]

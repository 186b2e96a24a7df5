"""Orchestra Sync.

Synchronization engine for music folders and portable devices. Compares
independently scanned file trees, classifies every path into an action,
surfaces genuine conflicts and applies the resulting plan with safe writes,
progress reporting and cooperative cancellation.
"""

__version__ = "1.0.0"
__author__ = "Orchestra"
__email__ = ""

from .config import Config, get_config
from .core.sync import (
    CancelToken,
    DiffEngine,
    DiffResult,
    ExecutionResult,
    SyncExecutor,
    SyncOrchestrator,
)
from .database import DatabaseService

__all__ = [
    "Config",
    "get_config",
    "CancelToken",
    "DiffEngine",
    "DiffResult",
    "ExecutionResult",
    "SyncExecutor",
    "SyncOrchestrator",
    "DatabaseService",
]

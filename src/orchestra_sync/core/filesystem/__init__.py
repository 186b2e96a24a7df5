"""Filesystem module.

Scans directory trees into snapshots and performs safe file operations.
"""

from .file_operations import (
    CopyResult,
    move_file,
    remove_file_and_empty_parents,
    safe_copy_file,
)
from .scanner import ScanStatistics, TreeScanner, stat_file_state

__all__ = [
    "TreeScanner",
    "ScanStatistics",
    "stat_file_state",
    "safe_copy_file",
    "CopyResult",
    "move_file",
    "remove_file_and_empty_parents",
]

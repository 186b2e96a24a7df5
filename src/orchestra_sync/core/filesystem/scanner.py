"""Filesystem scanner that turns a directory tree into a Snapshot.

Hidden files and directories are never listed, so the temporary files of the
safe-write protocol stay invisible. Exclude patterns are evaluated during the
walk: an excluded directory is pruned without being descended into.
"""

import logging
import os
from dataclasses import dataclass
from dataclasses import field as dataclass_field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...database.progress_tracker import ProgressTracker
from ..sync.state import FileState, Snapshot, is_excluded

logger = logging.getLogger(__name__)


def stat_file_state(path: Path, relative_path: str) -> FileState:
    """Build a FileState from the current on-disk state of a file.

    Raises:
        OSError: If the file cannot be stat'ed
    """
    stat = path.stat()
    return FileState(
        relative_path=relative_path,
        size=stat.st_size,
        modified_at=int(stat.st_mtime),
    )


@dataclass
class ScanStatistics:
    """Statistics from a tree scan."""

    files_found: int = 0
    files_skipped: int = 0
    directories_pruned: int = 0
    errors: List[str] = dataclass_field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        """True when every directory and file below the root could be read."""
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        """Convert statistics to dictionary format.

        Returns:
            Dictionary with statistics and limited error list
        """
        return {
            "files_found": self.files_found,
            "files_skipped": self.files_skipped,
            "directories_pruned": self.directories_pruned,
            "error_count": len(self.errors),
            "errors": self.errors[:10],  # Limit to first 10 errors
        }


class TreeScanner:
    """Lists the files under a root as relative path, size and mtime."""

    def __init__(
        self,
        exclude_patterns: Sequence[str] = (),
        supported_extensions: Optional[Tuple[str, ...]] = None,
    ) -> None:
        """Initialize tree scanner.

        Args:
            exclude_patterns: Glob patterns matched against relative paths
            supported_extensions: Lower-case extensions to keep, or None for all
        """
        self.exclude_patterns = list(exclude_patterns)
        self.supported_extensions = (
            tuple(ext.lower() for ext in supported_extensions)
            if supported_extensions
            else None
        )
        self.stats = ScanStatistics()

    def _wanted(self, name: str) -> bool:
        if name.startswith("."):
            return False
        if self.supported_extensions is None:
            return True
        return os.path.splitext(name)[1].lower() in self.supported_extensions

    def scan(self, root: Path, tracker: Optional[ProgressTracker] = None) -> Snapshot:
        """Scan a directory tree.

        A missing root yields an empty snapshot; callers decide whether that
        is an error. Unreadable directories and files are left out of the
        snapshot and recorded in ``stats.errors``.

        Args:
            root: Directory to scan
            tracker: Optional progress tracker receiving scan events

        Returns:
            Snapshot of every wanted file below root
        """
        root = Path(root)
        tracker = tracker or ProgressTracker()
        self.stats = ScanStatistics()
        snapshot = Snapshot(root)

        tracker.scan_started(str(root))
        if not root.is_dir():
            logger.warning("Scan root does not exist: %s", root)
            tracker.scan_complete(0)
            return snapshot

        logger.info("Scanning %s", root)
        files_processed = 0

        def record_walk_error(error: OSError) -> None:
            failed = Path(error.filename or root)
            try:
                relative = failed.relative_to(root).as_posix()
            except ValueError:
                relative = str(failed)
            logger.warning("Cannot read directory %s: %s", relative, error)
            self.stats.errors.append(f"{relative}: {error}")

        for dirpath, dirnames, filenames in os.walk(root, onerror=record_walk_error):
            current = Path(dirpath)
            rel_dir = current.relative_to(root).as_posix()
            prefix = "" if rel_dir == "." else f"{rel_dir}/"

            kept_dirs = []
            for dirname in sorted(dirnames):
                if dirname.startswith(".") or is_excluded(
                    f"{prefix}{dirname}", self.exclude_patterns
                ):
                    self.stats.directories_pruned += 1
                    continue
                kept_dirs.append(dirname)
            dirnames[:] = kept_dirs

            for filename in sorted(filenames):
                files_processed += 1
                relative_path = f"{prefix}{filename}"
                if not self._wanted(filename) or is_excluded(
                    relative_path, self.exclude_patterns
                ):
                    self.stats.files_skipped += 1
                    continue

                try:
                    snapshot.add(stat_file_state(current / filename, relative_path))
                except OSError as e:
                    logger.warning("Cannot stat %s: %s", relative_path, e)
                    self.stats.errors.append(f"{relative_path}: {e}")
                    continue

                self.stats.files_found += 1
                tracker.scan_progress(
                    files_found=self.stats.files_found,
                    files_processed=files_processed,
                    current_file=relative_path,
                )

        tracker.scan_complete(len(snapshot))
        logger.info(
            "Scan of %s complete: %d files (%d skipped, %d errors)",
            root,
            self.stats.files_found,
            self.stats.files_skipped,
            len(self.stats.errors),
        )
        return snapshot

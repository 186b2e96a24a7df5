"""Per-scope mutual exclusion for diff and execute operations.

Each scope has an in-process lock and, when a lock directory is configured,
a lock file so that separate ``orchestra-sync`` processes exclude each other
as well.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, Optional

from filelock import FileLock, Timeout

from ...exceptions import ScopeBusyError

logger = logging.getLogger(__name__)


@dataclass
class ScopeLease:
    """Proof that the caller holds a scope's lock.

    Orchestrator flows accept a lease instead of acquiring the lock
    themselves, which lets one caller keep a scope locked across several
    flows (diff, confirmation prompt, execute).
    """

    scope_id: str
    active: bool = True


class ScopeLockRegistry:
    """Hands out one lock per sync scope.

    Holding a scope's lock gives exclusive access to its baseline rows and
    hash cache entries. Different scopes never block each other.
    """

    def __init__(self, lock_dir: Optional[Path] = None) -> None:
        """Initialize lock registry.

        Args:
            lock_dir: Directory for the per-scope lock files shared between
                processes; None keeps locking within this process
        """
        self.lock_dir = Path(lock_dir) if lock_dir else None
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        if self.lock_dir is not None:
            self.lock_dir.mkdir(parents=True, exist_ok=True)

    def _lock_for(self, scope_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(scope_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[scope_id] = lock
            return lock

    def _file_lock_for(self, scope_id: str) -> Optional[FileLock]:
        if self.lock_dir is None:
            return None
        return FileLock(str(self.lock_dir / f"{scope_id}.lock"))

    @contextmanager
    def hold(self, scope_id: str, blocking: bool = False) -> Iterator[ScopeLease]:
        """Hold the scope lock for the duration of the block.

        Args:
            scope_id: Profile or device id
            blocking: Wait for the lock instead of failing fast

        Yields:
            Lease that can be handed to orchestrator flows

        Raises:
            ScopeBusyError: If the lock is taken and blocking is False
        """
        lock = self._lock_for(scope_id)
        if not lock.acquire(blocking=blocking):
            logger.warning("Rejected operation, scope %s is busy", scope_id)
            raise ScopeBusyError(scope_id)

        lease = ScopeLease(scope_id)
        try:
            file_lock = self._file_lock_for(scope_id)
            if file_lock is None:
                yield lease
                return
            try:
                file_lock.acquire(timeout=-1 if blocking else 0)
            except Timeout:
                logger.warning(
                    "Rejected operation, scope %s is busy in another process",
                    scope_id,
                )
                raise ScopeBusyError(scope_id)
            try:
                yield lease
            finally:
                file_lock.release()
        finally:
            lease.active = False
            lock.release()

    def is_active(self, scope_id: str) -> bool:
        """Check whether an operation, here or in another process, holds the scope."""
        if self._lock_for(scope_id).locked():
            return True
        file_lock = self._file_lock_for(scope_id)
        if file_lock is None:
            return False
        try:
            file_lock.acquire(timeout=0)
        except Timeout:
            return True
        file_lock.release()
        return False

"""Lazy content hashing for the diff engine.

Hashes are only computed when size and modification time cannot decide
whether two files are equal. ``HashResolver`` memoizes hashes for the
duration of one operation; ``CachedHashResolver`` additionally persists the
device side's hashes so unchanged device files are never re-read.
"""

import hashlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Optional, Tuple

from .state import FileState, HashCacheEntry, Side

if TYPE_CHECKING:
    from ...database.service import DatabaseService

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024

HashFunction = Callable[[Path], str]


def compute_file_hash(file_path: Path, chunk_size: int = DEFAULT_CHUNK_SIZE) -> str:
    """Compute SHA256 hash of a file.

    Args:
        file_path: Path to file
        chunk_size: Number of bytes read per chunk

    Returns:
        Hexadecimal hash string
    """
    sha256 = hashlib.sha256()
    with open(file_path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            sha256.update(chunk)
    return sha256.hexdigest()


class HashResolver:
    """Resolves content hashes for files on either side of a scope."""

    def __init__(
        self,
        source_root: Path,
        target_root: Path,
        hash_function: Optional[HashFunction] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """Initialize hash resolver.

        Args:
            source_root: Root directory of the source side
            target_root: Root directory of the target side
            hash_function: Callable hashing an absolute path (defaults to SHA256)
            chunk_size: Read size used by the default hash function
        """
        self.roots = {Side.SOURCE: Path(source_root), Side.TARGET: Path(target_root)}
        # Copies are hashed with SHA256 while streaming; only reusable by default
        self.uses_default_hash = hash_function is None
        self._hash_function = hash_function or (
            lambda path: compute_file_hash(path, chunk_size)
        )
        self._memo: Dict[Tuple[Side, str], Tuple[int, int, str]] = {}
        self.hashes_computed = 0

    def root_for(self, side: Side) -> Path:
        return self.roots[side]

    def resolve_hash(
        self, relative_path: str, side: Side, size: int, modified_at: int
    ) -> str:
        """Return the content hash of a file, computing it only if needed.

        Args:
            relative_path: Path relative to the side's root
            side: Which root the file lives under
            size: Current file size
            modified_at: Current modification time (epoch seconds)

        Returns:
            Hexadecimal hash string
        """
        known = self._memo.get((side, relative_path))
        if known and known[0] == size and known[1] == modified_at:
            return known[2]

        digest = self._compute(relative_path, side)
        self._memo[(side, relative_path)] = (size, modified_at, digest)
        return digest

    def resolve(self, side: Side, state: FileState) -> str:
        """Resolve and store the hash on a FileState."""
        if state.content_hash is None:
            state.content_hash = self.resolve_hash(
                state.relative_path, side, state.size, state.modified_at
            )
        return state.content_hash

    def record(
        self,
        relative_path: str,
        side: Side,
        size: int,
        modified_at: int,
        content_hash: Optional[str],
    ) -> None:
        """Remember the state of a file that was just written."""
        if content_hash is None:
            self._memo.pop((side, relative_path), None)
        else:
            self._memo[(side, relative_path)] = (size, modified_at, content_hash)

    def forget(self, relative_path: str, side: Side) -> None:
        """Drop everything known about a removed file."""
        self._memo.pop((side, relative_path), None)

    def _compute(self, relative_path: str, side: Side) -> str:
        path = self.roots[side] / relative_path
        digest = self._hash_function(path)
        self.hashes_computed += 1
        logger.debug("Hashed %s file %s", side.value, relative_path)
        return digest


class CachedHashResolver(HashResolver):
    """Hash resolver backed by the persistent per-device hash cache.

    Only ``cached_side`` (the device) goes through the cache. A cached hash is
    reused when the stored size and modification time equal the current
    ones; otherwise the file is hashed and the cache row overwritten.
    """

    def __init__(
        self,
        source_root: Path,
        target_root: Path,
        db_service: "DatabaseService",
        device_id: str,
        cached_side: Side = Side.TARGET,
        hash_function: Optional[HashFunction] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        super().__init__(source_root, target_root, hash_function, chunk_size)
        self.db_service = db_service
        self.device_id = device_id
        self.cached_side = cached_side
        self.cache_hits = 0
        self._cache: Optional[Dict[str, HashCacheEntry]] = None

    @property
    def cache(self) -> Dict[str, HashCacheEntry]:
        if self._cache is None:
            self._cache = self.db_service.get_file_cache(self.device_id)
            logger.debug(
                "Loaded %d cached hashes for device %s",
                len(self._cache),
                self.device_id,
            )
        return self._cache

    def resolve_hash(
        self, relative_path: str, side: Side, size: int, modified_at: int
    ) -> str:
        if side != self.cached_side:
            return super().resolve_hash(relative_path, side, size, modified_at)

        entry = self.cache.get(relative_path)
        if entry is not None and entry.matches(size, modified_at):
            self.cache_hits += 1
            return entry.content_hash

        digest = self._compute(relative_path, side)
        self._store(relative_path, size, modified_at, digest)
        return digest

    def record(
        self,
        relative_path: str,
        side: Side,
        size: int,
        modified_at: int,
        content_hash: Optional[str],
    ) -> None:
        if side != self.cached_side:
            super().record(relative_path, side, size, modified_at, content_hash)
        elif content_hash is None:
            # Unknown content, a stale row would be trusted on the next diff
            self.forget(relative_path, side)
        else:
            self._store(relative_path, size, modified_at, content_hash)

    def forget(self, relative_path: str, side: Side) -> None:
        if side != self.cached_side:
            super().forget(relative_path, side)
            return
        if self.cache.pop(relative_path, None) is not None:
            self.db_service.delete_cached_hash(self.device_id, relative_path)

    def _store(
        self, relative_path: str, size: int, modified_at: int, content_hash: str
    ) -> None:
        self.db_service.upsert_cached_hash(
            self.device_id, relative_path, size, modified_at, content_hash
        )
        self.cache[relative_path] = HashCacheEntry(
            device_id=self.device_id,
            relative_path=relative_path,
            size=size,
            modified_at=modified_at,
            content_hash=content_hash,
        )

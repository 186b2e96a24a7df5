"""File operations used by the sync executor.

Every write goes through a hidden temporary sibling that is flushed, fsynced
and atomically renamed over the destination, so a destination file is always
either its old complete content or its new complete content.
"""

import hashlib
import logging
import os
import uuid
from contextlib import suppress
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

TEMP_SUFFIX = ".orchestra-partial"
COPY_CHUNK_SIZE = 1024 * 1024


@dataclass
class CopyResult:
    """Outcome of a completed copy."""

    bytes_copied: int
    content_hash: str  # SHA256 of the bytes written


def temp_path_for(destination: Path) -> Path:
    """Hidden sibling path used while writing ``destination``."""
    token = uuid.uuid4().hex[:8]
    return destination.with_name(f".{destination.name}.{token}{TEMP_SUFFIX}")


def _fsync_directory(directory: Path) -> None:
    if os.name != "posix":
        return
    # Some removable filesystems refuse fsync on directories
    with suppress(OSError):
        fd = os.open(directory, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)


def safe_copy_file(
    source: Path, destination: Path, chunk_size: int = COPY_CHUNK_SIZE
) -> CopyResult:
    """Copy a file with the temp-fsync-rename protocol.

    The source modification time is copied onto the destination after the
    rename so later scans see matching timestamps on both sides. The bytes
    are hashed as they stream through, so the copy never has to be re-read.

    Args:
        source: File to read
        destination: File to create or replace
        chunk_size: Bytes per read

    Returns:
        Byte count and SHA256 digest of what was written

    Raises:
        OSError: If reading, writing or renaming fails; the destination is
            left untouched and the temporary file removed
    """
    source = Path(source)
    destination = Path(destination)
    source_stat = source.stat()

    destination.parent.mkdir(parents=True, exist_ok=True)
    temp_path = temp_path_for(destination)
    sha256 = hashlib.sha256()
    written = 0

    try:
        with open(source, "rb") as src, open(temp_path, "wb") as dst:
            for chunk in iter(lambda: src.read(chunk_size), b""):
                sha256.update(chunk)
                dst.write(chunk)
                written += len(chunk)
            dst.flush()
            os.fsync(dst.fileno())
        os.replace(temp_path, destination)
    except BaseException:
        with suppress(OSError):
            temp_path.unlink()
        raise

    os.utime(destination, ns=(source_stat.st_atime_ns, source_stat.st_mtime_ns))
    _fsync_directory(destination.parent)
    logger.debug("Copied %s -> %s (%d bytes)", source, destination, written)
    return CopyResult(bytes_copied=written, content_hash=sha256.hexdigest())


def move_file(source: Path, destination: Path) -> None:
    """Rename a file within one root without overwriting anything.

    Raises:
        FileExistsError: If the destination already exists
        OSError: If the rename fails
    """
    destination = Path(destination)
    if destination.exists():
        raise FileExistsError(f"Refusing to overwrite {destination}")
    destination.parent.mkdir(parents=True, exist_ok=True)
    os.replace(source, destination)
    _fsync_directory(destination.parent)
    logger.debug("Moved %s -> %s", source, destination)


def remove_file_and_empty_parents(path: Path, root: Path) -> int:
    """Delete a file, then every directory left empty up to (not including) root.

    Returns:
        Number of directories removed
    """
    path = Path(path)
    root = Path(root)
    path.unlink()
    logger.debug("Removed %s", path)

    removed = 0
    parent = path.parent
    while parent != root and root in parent.parents:
        try:
            parent.rmdir()
        except OSError:
            # Not empty
            break
        removed += 1
        logger.debug("Removed empty directory %s", parent)
        parent = parent.parent
    return removed

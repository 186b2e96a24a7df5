"""Tests for safe file operations."""

import hashlib
from unittest.mock import patch

import pytest
from conftest import BASE_MTIME, write_file

from orchestra_sync.core.filesystem import (
    move_file,
    remove_file_and_empty_parents,
    safe_copy_file,
)
from orchestra_sync.core.filesystem.file_operations import TEMP_SUFFIX, temp_path_for
from orchestra_sync.core.sync.hashing import compute_file_hash


def leftover_temp_files(directory):
    return [p for p in directory.rglob("*") if p.name.endswith(TEMP_SUFFIX)]


class TestSafeCopyFile:
    """Test safe_copy_file."""

    def test_copies_content_and_mtime(self, source_root, target_root):
        source = write_file(source_root, "a.flac", b"audio", mtime=BASE_MTIME + 5)
        destination = target_root / "Album" / "a.flac"

        copied = safe_copy_file(source, destination)

        assert copied.bytes_copied == 5
        assert copied.content_hash == hashlib.sha256(b"audio").hexdigest()
        assert destination.read_bytes() == b"audio"
        assert int(destination.stat().st_mtime) == BASE_MTIME + 5
        assert leftover_temp_files(target_root) == []

    def test_replaces_existing_file(self, source_root, target_root):
        source = write_file(source_root, "a.flac", b"new content")
        destination = write_file(target_root, "a.flac", b"old")

        safe_copy_file(source, destination)

        assert destination.read_bytes() == b"new content"

    def test_digest_spans_every_chunk(self, source_root, target_root):
        content = bytes(range(256)) * 10
        source = write_file(source_root, "a.flac", content)

        copied = safe_copy_file(source, target_root / "a.flac", chunk_size=100)

        assert copied.bytes_copied == len(content)
        assert copied.content_hash == compute_file_hash(target_root / "a.flac")

    def test_failed_rename_leaves_destination_intact(self, source_root, target_root):
        """A destination is either its old or its new content, never partial."""
        source = write_file(source_root, "a.flac", b"new content")
        destination = write_file(target_root, "a.flac", b"old")

        with patch(
            "orchestra_sync.core.filesystem.file_operations.os.replace",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(OSError, match="disk full"):
                safe_copy_file(source, destination)

        assert destination.read_bytes() == b"old"
        assert leftover_temp_files(target_root) == []

    def test_missing_source_raises(self, source_root, target_root):
        with pytest.raises(FileNotFoundError):
            safe_copy_file(source_root / "missing.flac", target_root / "a.flac")
        assert not (target_root / "a.flac").exists()

    def test_temp_path_is_hidden_sibling(self, target_root):
        temp = temp_path_for(target_root / "Album" / "a.flac")
        assert temp.parent == target_root / "Album"
        assert temp.name.startswith(".a.flac.")
        assert temp.name.endswith(TEMP_SUFFIX)


class TestMoveFile:
    """Test move_file."""

    def test_moves_file(self, source_root):
        original = write_file(source_root, "a.flac", b"x")
        destination = source_root / "sub" / "b.flac"

        move_file(original, destination)

        assert not original.exists()
        assert destination.read_bytes() == b"x"

    def test_refuses_to_overwrite(self, source_root):
        original = write_file(source_root, "a.flac", b"x")
        existing = write_file(source_root, "b.flac", b"y")

        with pytest.raises(FileExistsError):
            move_file(original, existing)

        assert original.exists()
        assert existing.read_bytes() == b"y"


class TestRemoveFileAndEmptyParents:
    """Test remove_file_and_empty_parents."""

    def test_prunes_empty_directories_up_to_root(self, target_root):
        path = write_file(target_root, "Artist/Album/a.flac")

        removed = remove_file_and_empty_parents(path, target_root)

        assert removed == 2
        assert not (target_root / "Artist").exists()
        assert target_root.exists()

    def test_keeps_non_empty_directories(self, target_root):
        path = write_file(target_root, "Artist/Album/a.flac")
        write_file(target_root, "Artist/other.flac")

        removed = remove_file_and_empty_parents(path, target_root)

        assert removed == 1
        assert (target_root / "Artist" / "other.flac").exists()
        assert not (target_root / "Artist" / "Album").exists()

    def test_missing_file_raises(self, target_root):
        with pytest.raises(FileNotFoundError):
            remove_file_and_empty_parents(target_root / "missing.flac", target_root)

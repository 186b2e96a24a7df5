"""Tests for the sync data model."""

from pathlib import Path

from orchestra_sync.core.sync import (
    DiffAction,
    DiffDirection,
    DiffEntry,
    DiffResult,
    FileState,
    HashCacheEntry,
    Snapshot,
    SyncMode,
    is_excluded,
)


def state(path, size=10, mtime=100, content_hash=None):
    return FileState(path, size, mtime, content_hash)


class TestFileState:
    """Test FileState."""

    def test_same_metadata(self):
        """Size and mtime decide metadata equality, the hash does not."""
        assert state("a", 10, 100, "x").same_metadata(state("a", 10, 100, "y"))
        assert not state("a", 10, 100).same_metadata(state("a", 11, 100))
        assert not state("a", 10, 100).same_metadata(state("a", 10, 101))

    def test_to_dict(self):
        assert state("a/b.flac", 5, 7).to_dict() == {
            "relative_path": "a/b.flac",
            "size": 5,
            "modified_at": 7,
            "content_hash": None,
        }


class TestIsExcluded:
    """Test exclude pattern matching."""

    def test_no_patterns(self):
        assert not is_excluded("a/b.flac", [])

    def test_matches_file_name_glob(self):
        assert is_excluded("notes.tmp", ["*.tmp"])
        assert not is_excluded("notes.txt", ["*.tmp"])

    def test_matches_parent_directory(self):
        """A directory pattern excludes everything below it."""
        assert is_excluded("Podcasts/2024/ep1.mp3", ["Podcasts"])
        assert not is_excluded("Music/Podcasts.mp3", ["Podcasts"])

    def test_matches_nested_path(self):
        assert is_excluded("Music/Live/a.flac", ["Music/Live"])
        assert not is_excluded("Music/Studio/a.flac", ["Music/Live"])

    def test_case_sensitive(self):
        assert not is_excluded("SONG.TMP", ["*.tmp"])


class TestSnapshot:
    """Test Snapshot container."""

    def test_add_and_get(self):
        snapshot = Snapshot(Path("/music"), [state("a"), state("b", size=20)])
        assert len(snapshot) == 2
        assert "a" in snapshot
        assert snapshot.get("b").size == 20
        assert snapshot.get("missing") is None
        assert snapshot.paths() == {"a", "b"}
        assert snapshot.total_bytes == 30

    def test_add_replaces_existing_path(self):
        snapshot = Snapshot()
        snapshot.add(state("a", size=1))
        snapshot.add(state("a", size=2))
        assert len(snapshot) == 1
        assert snapshot.get("a").size == 2

    def test_filtered(self):
        snapshot = Snapshot(files=[state("keep.flac"), state("Trash/x.flac")])
        filtered = snapshot.filtered(["Trash"])
        assert filtered.paths() == {"keep.flac"}
        # Original untouched
        assert len(snapshot) == 2


class TestDiffEntry:
    """Test DiffEntry properties."""

    def test_transfer_size_follows_direction(self):
        forward = DiffEntry(
            "a",
            DiffAction.UPDATE,
            DiffDirection.SOURCE_TO_TARGET,
            source_info=state("a", size=5),
            target_info=state("a", size=9),
        )
        backward = DiffEntry(
            "a",
            DiffAction.UPDATE,
            DiffDirection.TARGET_TO_SOURCE,
            source_info=state("a", size=5),
            target_info=state("a", size=9),
        )
        assert forward.transfer_size == 5
        assert backward.transfer_size == 9

    def test_remove_transfers_nothing(self):
        entry = DiffEntry(
            "a",
            DiffAction.REMOVE,
            DiffDirection.SOURCE_TO_TARGET,
            target_info=state("a", size=5),
        )
        assert entry.transfer_size == 0
        assert entry.is_actionable

    def test_unchanged_and_conflict_not_actionable(self):
        for action in (DiffAction.UNCHANGED, DiffAction.CONFLICT):
            assert not DiffEntry("a", action, DiffDirection.BOTH).is_actionable

    def test_sort_key_puts_rename_first_in_group(self):
        rename = DiffEntry(
            "x (target copy)",
            DiffAction.ADD,
            DiffDirection.TARGET_TO_SOURCE,
            origin_path="x",
            rename_from="x",
        )
        copy = DiffEntry(
            "x", DiffAction.ADD, DiffDirection.SOURCE_TO_TARGET, origin_path="x"
        )
        other = DiffEntry("w", DiffAction.ADD, DiffDirection.SOURCE_TO_TARGET)
        ordered = sorted([copy, other, rename], key=lambda e: e.sort_key)
        assert ordered == [other, rename, copy]

    def test_str(self):
        entry = DiffEntry("a.flac", DiffAction.ADD, DiffDirection.SOURCE_TO_TARGET)
        assert str(entry) == "add [source_to_target]: a.flac"


class TestDiffResult:
    """Test DiffResult bookkeeping."""

    def test_counters_and_summary(self):
        result = DiffResult(mode=SyncMode.TWO_WAY)
        result.add_entry(
            DiffEntry(
                "a",
                DiffAction.ADD,
                DiffDirection.SOURCE_TO_TARGET,
                source_info=state("a", size=3),
            )
        )
        result.add_entry(DiffEntry("b", DiffAction.REMOVE, DiffDirection.BOTH))
        result.add_entry(DiffEntry("c", DiffAction.UNCHANGED, DiffDirection.BOTH))
        result.add_entry(DiffEntry("d", DiffAction.CONFLICT, DiffDirection.BOTH))

        summary = result.get_summary()
        assert summary["mode"] == "two_way"
        assert summary["total"] == 4
        assert summary["to_add"] == 1
        assert summary["to_remove"] == 1
        assert summary["unchanged"] == 1
        assert summary["conflicts"] == 1
        assert summary["bytes_to_transfer"] == 3
        assert result.has_changes
        assert result.has_conflicts
        assert [e.relative_path for e in result.actionable_entries()] == ["a", "b"]

    def test_get_entry(self):
        result = DiffResult()
        result.add_entry(DiffEntry("a", DiffAction.UNCHANGED, DiffDirection.BOTH))
        assert result.get_entry("a").action == DiffAction.UNCHANGED
        assert result.get_entry("b") is None

    def test_empty_result_has_no_changes(self):
        result = DiffResult()
        assert not result.has_changes
        assert not result.has_conflicts
        assert result.bytes_to_transfer == 0


class TestHashCacheEntry:
    """Test HashCacheEntry."""

    def test_matches(self):
        entry = HashCacheEntry("dev", "a.flac", 10, 100, "abc")
        assert entry.matches(10, 100)
        assert not entry.matches(10, 101)
        assert not entry.matches(11, 100)

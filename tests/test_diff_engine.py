"""Tests for the one-way and three-way diff engine."""

import logging
from pathlib import Path
from typing import Dict, Optional

import pytest

from orchestra_sync.core.sync import (
    BaselineEntry,
    ConflictKind,
    DiffAction,
    DiffDirection,
    DiffEngine,
    FileState,
    HashResolver,
    Snapshot,
    SyncMode,
    diff_one_way,
    diff_three_way,
)
from orchestra_sync.database import ProgressTracker, QueueSink
from orchestra_sync.database.progress_tracker import DiffComplete, DiffProgress

SOURCE = Path("/library")
TARGET = Path("/device")


def fs(path: str, size: int = 10, mtime: int = 100) -> FileState:
    return FileState(path, size, mtime)


def snapshot(root: Path, *states: FileState) -> Snapshot:
    return Snapshot(root, states)


def baseline(*entries: BaselineEntry) -> Dict[str, BaselineEntry]:
    return {entry.relative_path: entry for entry in entries}


def recorded(path: str, size: int = 10, mtime: int = 100) -> BaselineEntry:
    return BaselineEntry(path, fs(path, size, mtime), fs(path, size, mtime))


def make_resolver(
    source_hashes: Optional[Dict[str, str]] = None,
    target_hashes: Optional[Dict[str, str]] = None,
) -> HashResolver:
    """Resolver whose hashes come from literal tables instead of files."""
    table = {SOURCE / p: h for p, h in (source_hashes or {}).items()}
    table.update({TARGET / p: h for p, h in (target_hashes or {}).items()})

    def hash_function(path: Path) -> str:
        if path not in table:
            raise FileNotFoundError(path)
        return table[path]

    return HashResolver(SOURCE, TARGET, hash_function=hash_function)


class TestOneWayDiff:
    """Test mirror diffs."""

    def test_add_remove_unchanged(self):
        """Each path is classified exactly once."""
        source = snapshot(SOURCE, fs("new.flac"), fs("same.flac"))
        target = snapshot(TARGET, fs("same.flac"), fs("orphan.flac"))
        resolver = make_resolver()

        result = DiffEngine(resolver).diff_one_way(source, target)

        actions = {e.relative_path: e.action for e in result.entries}
        assert actions == {
            "new.flac": DiffAction.ADD,
            "same.flac": DiffAction.UNCHANGED,
            "orphan.flac": DiffAction.REMOVE,
        }
        forward = DiffDirection.SOURCE_TO_TARGET
        assert all(e.direction == forward for e in result.entries)
        assert result.mode == SyncMode.ONE_WAY
        assert resolver.hashes_computed == 0

    def test_entries_sorted_by_path(self):
        source = snapshot(SOURCE, fs("b.flac"), fs("a/z.flac"), fs("a.flac"))
        result = diff_one_way(source, snapshot(TARGET), make_resolver())
        assert [e.relative_path for e in result.entries] == [
            "a.flac",
            "a/z.flac",
            "b.flac",
        ]

    def test_preserve_orphans(self):
        target = snapshot(TARGET, fs("orphan.flac"))
        result = diff_one_way(
            snapshot(SOURCE), target, make_resolver(), preserve_orphans=True
        )
        assert result.get_entry("orphan.flac").action == DiffAction.UNCHANGED
        assert result.to_remove == 0

    def test_metadata_differs_but_content_equal(self):
        source = snapshot(SOURCE, fs("a.flac", mtime=100))
        target = snapshot(TARGET, fs("a.flac", mtime=999))
        resolver = make_resolver({"a.flac": "h"}, {"a.flac": "h"})

        result = diff_one_way(source, target, resolver)

        assert result.get_entry("a.flac").action == DiffAction.UNCHANGED
        assert resolver.hashes_computed == 2

    def test_content_differs(self):
        source = snapshot(SOURCE, fs("a.flac", size=10))
        target = snapshot(TARGET, fs("a.flac", size=12))
        resolver = make_resolver({"a.flac": "h1"}, {"a.flac": "h2"})

        entry = diff_one_way(source, target, resolver).get_entry("a.flac")

        assert entry.action == DiffAction.UPDATE
        assert entry.source_info.content_hash == "h1"
        assert entry.target_info.content_hash == "h2"

    def test_only_questionable_pairs_are_hashed(self):
        """Hashing cost is bounded by the pairs whose metadata differ."""
        source = snapshot(
            SOURCE, fs("a.flac"), fs("b.flac"), fs("c.flac", mtime=1), fs("d.flac")
        )
        target = snapshot(TARGET, fs("a.flac"), fs("b.flac"), fs("c.flac", mtime=2))
        resolver = make_resolver({"c.flac": "x"}, {"c.flac": "x"})

        diff_one_way(source, target, resolver)

        assert resolver.hashes_computed == 2

    def test_unreadable_file_counts_as_changed(self, caplog):
        source = snapshot(SOURCE, fs("a.flac", mtime=1))
        target = snapshot(TARGET, fs("a.flac", mtime=2))

        with caplog.at_level(logging.WARNING):
            result = diff_one_way(source, target, make_resolver())

        assert result.get_entry("a.flac").action == DiffAction.UPDATE
        assert "Cannot hash a.flac" in caplog.text

    def test_idempotent_after_apply(self):
        """Diffing a mirror against its source yields no actions."""
        source = snapshot(SOURCE, fs("a.flac"), fs("b/c.flac", size=3))
        mirrored = snapshot(
            TARGET, *(FileState(s.relative_path, s.size, s.modified_at) for s in source)
        )

        result = diff_one_way(source, mirrored, make_resolver())

        assert not result.has_changes
        assert result.unchanged == 2

    def test_emits_progress_events(self):
        sink = QueueSink()
        source = snapshot(SOURCE, fs("a.flac"), fs("b.flac"))

        diff_one_way(
            source, snapshot(TARGET), make_resolver(), tracker=ProgressTracker(sink)
        )

        events = sink.drain()
        progress = [e for e in events if isinstance(e, DiffProgress)]
        assert [e.files_compared for e in progress] == [1, 2]
        assert all(e.total_files == 2 for e in progress)
        assert isinstance(events[-1], DiffComplete)
        assert events[-1].total_entries == 2


class TestThreeWayDiff:
    """Test bidirectional diffs against a baseline."""

    def classify(self, source_states, target_states, entries, resolver=None):
        result, conflicts = diff_three_way(
            snapshot(SOURCE, *source_states),
            snapshot(TARGET, *target_states),
            baseline(*entries),
            resolver or make_resolver(),
        )
        return result, conflicts

    def test_unchanged_on_both_sides(self):
        result, conflicts = self.classify([fs("a")], [fs("a")], [recorded("a")])
        entry = result.get_entry("a")
        assert (entry.action, entry.direction) == (
            DiffAction.UNCHANGED,
            DiffDirection.BOTH,
        )
        assert conflicts == []

    def test_changed_on_source_only(self):
        result, _ = self.classify([fs("a", mtime=200)], [fs("a")], [recorded("a")])
        entry = result.get_entry("a")
        assert (entry.action, entry.direction) == (
            DiffAction.UPDATE,
            DiffDirection.SOURCE_TO_TARGET,
        )

    def test_changed_on_target_only(self):
        result, _ = self.classify([fs("a")], [fs("a", size=20)], [recorded("a")])
        entry = result.get_entry("a")
        assert (entry.action, entry.direction) == (
            DiffAction.UPDATE,
            DiffDirection.TARGET_TO_SOURCE,
        )

    def test_changed_on_both_with_equal_content(self):
        """Convergent edits are not a conflict."""
        resolver = make_resolver({"a": "same"}, {"a": "same"})
        result, conflicts = self.classify(
            [fs("a", mtime=200)], [fs("a", mtime=300)], [recorded("a")], resolver
        )
        assert result.get_entry("a").action == DiffAction.UNCHANGED
        assert conflicts == []

    def test_changed_on_both_with_equal_metadata_skips_hashing(self):
        resolver = make_resolver()
        result, _ = self.classify(
            [fs("a", mtime=200)], [fs("a", mtime=200)], [recorded("a")], resolver
        )
        assert result.get_entry("a").action == DiffAction.UNCHANGED
        assert resolver.hashes_computed == 0

    def test_changed_on_both_with_different_content(self):
        resolver = make_resolver({"a": "s"}, {"a": "t"})
        result, conflicts = self.classify(
            [fs("a", mtime=200)], [fs("a", mtime=300)], [recorded("a")], resolver
        )
        assert result.get_entry("a").action == DiffAction.CONFLICT
        assert len(conflicts) == 1
        assert conflicts[0].kind == ConflictKind.BOTH_MODIFIED
        assert conflicts[0].source_info.modified_at == 200
        assert conflicts[0].target_info.modified_at == 300

    def test_deleted_on_target_unchanged_on_source(self):
        """The deletion propagates to the source."""
        result, _ = self.classify([fs("a")], [], [recorded("a")])
        entry = result.get_entry("a")
        assert (entry.action, entry.direction) == (
            DiffAction.REMOVE,
            DiffDirection.TARGET_TO_SOURCE,
        )

    def test_deleted_on_target_modified_on_source(self):
        result, conflicts = self.classify([fs("a", mtime=200)], [], [recorded("a")])
        assert result.get_entry("a").action == DiffAction.CONFLICT
        assert conflicts[0].kind == ConflictKind.DELETED_AND_MODIFIED
        assert conflicts[0].target_info is None

    def test_deleted_on_source_unchanged_on_target(self):
        """The deletion propagates to the target."""
        result, _ = self.classify([], [fs("a")], [recorded("a")])
        entry = result.get_entry("a")
        assert (entry.action, entry.direction) == (
            DiffAction.REMOVE,
            DiffDirection.SOURCE_TO_TARGET,
        )

    def test_deleted_on_source_modified_on_target(self):
        result, conflicts = self.classify([], [fs("a", size=99)], [recorded("a")])
        assert result.get_entry("a").action == DiffAction.CONFLICT
        assert conflicts[0].kind == ConflictKind.DELETED_AND_MODIFIED
        assert conflicts[0].source_info is None

    def test_deleted_on_both_sides(self):
        """No entry; the baseline row is reported as stale."""
        result, conflicts = self.classify([], [], [recorded("gone")])
        assert result.get_entry("gone") is None
        assert result.stale_baseline_paths == ["gone"]
        assert conflicts == []

    def test_path_on_neither_side_is_rejected(self):
        engine = DiffEngine(make_resolver())
        with pytest.raises(ValueError, match="neither side"):
            engine._classify_three_way("gone", None, None, recorded("gone"))

    def test_new_on_source(self):
        result, _ = self.classify([fs("a")], [], [])
        entry = result.get_entry("a")
        assert (entry.action, entry.direction) == (
            DiffAction.ADD,
            DiffDirection.SOURCE_TO_TARGET,
        )

    def test_new_on_target(self):
        result, _ = self.classify([], [fs("a")], [])
        entry = result.get_entry("a")
        assert (entry.action, entry.direction) == (
            DiffAction.ADD,
            DiffDirection.TARGET_TO_SOURCE,
        )

    def test_first_sync_identical(self):
        resolver = make_resolver({"a": "h"}, {"a": "h"})
        result, conflicts = self.classify(
            [fs("a", mtime=1)], [fs("a", mtime=2)], [], resolver
        )
        assert result.get_entry("a").action == DiffAction.UNCHANGED
        assert conflicts == []

    def test_first_sync_different(self):
        resolver = make_resolver({"a": "s"}, {"a": "t"})
        result, conflicts = self.classify(
            [fs("a", mtime=1)], [fs("a", mtime=2)], [], resolver
        )
        assert result.get_entry("a").action == DiffAction.CONFLICT
        assert conflicts[0].kind == ConflictKind.FIRST_SYNC_DIFFERS

    def test_changes_detected_without_hashing(self):
        """Per-side change detection relies on metadata alone."""
        resolver = make_resolver()
        self.classify(
            [fs("a", mtime=200), fs("b")],
            [fs("a"), fs("b", size=5)],
            [recorded("a"), recorded("b")],
            resolver,
        )
        assert resolver.hashes_computed == 0

    def test_partition_and_conflict_consistency(self):
        """Every present path appears once; conflicts mirror conflict entries."""
        resolver = make_resolver({"c": "1", "f": "1"}, {"c": "2", "f": "2"})
        result, conflicts = self.classify(
            [
                fs("a"),
                fs("b", mtime=200),
                fs("c", mtime=200),
                fs("d"),
                fs("f", mtime=5),
            ],
            [fs("a"), fs("b"), fs("c", mtime=300), fs("e"), fs("f", mtime=6)],
            [recorded("a"), recorded("b"), recorded("c"), recorded("gone")],
            resolver,
        )

        paths = [e.relative_path for e in result.entries]
        assert sorted(paths) == ["a", "b", "c", "d", "e", "f"]
        assert len(paths) == len(set(paths))
        conflict_paths = {
            e.relative_path for e in result.entries if e.action == DiffAction.CONFLICT
        }
        assert conflict_paths == {c.relative_path for c in conflicts} == {"c", "f"}
        assert result.conflicted == 2
        assert result.stale_baseline_paths == ["gone"]
        assert result.mode == SyncMode.TWO_WAY

    @pytest.mark.parametrize(
        "source_mtime,target_size,expected",
        [
            (100, 10, DiffAction.UNCHANGED),
            (200, 10, DiffAction.UPDATE),
            (100, 20, DiffAction.UPDATE),
        ],
    )
    def test_engine_method_matches_module_function(
        self, source_mtime, target_size, expected
    ):
        engine = DiffEngine(make_resolver())
        result, _ = engine.diff_three_way(
            snapshot(SOURCE, fs("a", mtime=source_mtime)),
            snapshot(TARGET, fs("a", size=target_size)),
            baseline(recorded("a")),
        )
        assert result.get_entry("a").action == expected

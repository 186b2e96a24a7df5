"""Tests for the sync orchestrator flows."""

import json
import os
import shutil

import pytest
from conftest import BASE_MTIME, deny_directory, write_file

from orchestra_sync.core.sync import (
    ConflictKind,
    ConflictResolution,
    DiffAction,
    DiffDirection,
    ExecutionOutcome,
    ResolutionStrategy,
    SyncOrchestrator,
    compute_file_hash,
)
from orchestra_sync.database import QueueSink, ScopeType, SyncComplete
from orchestra_sync.exceptions import (
    DeviceDisconnectedError,
    DeviceNotFoundError,
    PathNotAccessibleError,
    ProfileNotFoundError,
    ScopeBusyError,
)


@pytest.fixture
def orchestrator(db_service, config):
    orchestrator = SyncOrchestrator(db_service, config)
    yield orchestrator
    orchestrator.shutdown()


@pytest.fixture
def one_way(db_service, source_root, target_root):
    return db_service.create_profile(
        "Mirror", str(source_root), str(target_root), exclude_patterns=["Podcasts"]
    )


@pytest.fixture
def two_way(db_service, source_root, target_root):
    return db_service.create_profile(
        "Laptop", str(source_root), str(target_root), sync_mode="two_way"
    )


@pytest.fixture
def device(db_service, tmp_path):
    mount = tmp_path / "usb"
    mount.mkdir()
    return db_service.register_device(
        name="USB", volume_uuid="usb-1", mount_path=str(mount), music_folder="Music"
    )


class TestProfileSync:
    """Test one-way and two-way profile flows."""

    def test_one_way_mirror(
        self, orchestrator, db_service, one_way, source_root, target_root
    ):
        write_file(source_root, "Album/a.flac", b"a")
        write_file(source_root, "Podcasts/ep1.mp3", b"talk")
        write_file(target_root, "stale.flac", b"old")

        result = orchestrator.sync_profile(one_way.id)

        assert result.outcome == ExecutionOutcome.COMPLETED
        assert (target_root / "Album/a.flac").read_bytes() == b"a"
        assert not (target_root / "Podcasts").exists()
        assert not (target_root / "stale.flac").exists()
        assert db_service.get_profile(one_way.id).last_synced_at is not None

        plan = orchestrator.compute_profile_diff(one_way.id)
        assert not plan.diff.has_changes
        assert plan.hash_resolver.hashes_computed == 0

    def test_diff_does_not_touch_files(self, orchestrator, one_way, source_root):
        write_file(source_root, "a.flac")

        plan = orchestrator.compute_profile_diff(one_way.id)

        assert plan.scope_type == ScopeType.PROFILE
        assert plan.diff.to_add == 1
        assert plan.get_summary()["to_add"] == 1
        assert not any(plan.target_root.iterdir())

    def test_two_way_propagation(
        self, orchestrator, two_way, source_root, target_root
    ):
        write_file(source_root, "from_source.flac", b"s")
        write_file(target_root, "from_target.flac", b"t")
        orchestrator.sync_profile(two_way.id)

        assert (target_root / "from_source.flac").exists()
        assert (source_root / "from_target.flac").exists()

        write_file(target_root, "from_source.flac", b"edited", mtime=BASE_MTIME + 30)
        (target_root / "from_target.flac").unlink()

        plan = orchestrator.compute_profile_diff(two_way.id)
        update = plan.diff.get_entry("from_source.flac")
        remove = plan.diff.get_entry("from_target.flac")
        assert (update.action, update.direction) == (
            DiffAction.UPDATE,
            DiffDirection.TARGET_TO_SOURCE,
        )
        assert (remove.action, remove.direction) == (
            DiffAction.REMOVE,
            DiffDirection.TARGET_TO_SOURCE,
        )

        orchestrator.execute_profile_sync(plan)

        assert (source_root / "from_source.flac").read_bytes() == b"edited"
        assert not (source_root / "from_target.flac").exists()
        assert not orchestrator.compute_profile_diff(two_way.id).diff.has_changes

    def test_conflict_skipped_then_resolved(
        self, orchestrator, db_service, two_way, source_root, target_root
    ):
        write_file(source_root, "song.flac", b"v1")
        orchestrator.sync_profile(two_way.id)
        write_file(source_root, "song.flac", b"source v2", mtime=BASE_MTIME + 10)
        write_file(target_root, "song.flac", b"target v2", mtime=BASE_MTIME + 20)

        plan = orchestrator.compute_profile_diff(two_way.id)
        assert plan.needs_resolution
        assert plan.conflicts[0].kind == ConflictKind.BOTH_MODIFIED

        result = orchestrator.execute_profile_sync(plan)
        assert result.total_files == 0
        assert (target_root / "song.flac").read_bytes() == b"target v2"
        details = json.loads(db_service.get_recent_operations(1)[0].details)
        assert details["skipped_conflicts"] == ["song.flac"]

        # Skipped conflicts come back on the next diff
        plan = orchestrator.compute_profile_diff(two_way.id)
        assert plan.needs_resolution

        resolution = ConflictResolution("song.flac", ResolutionStrategy.KEEP_SOURCE)
        orchestrator.execute_profile_sync(plan, [resolution])

        assert (target_root / "song.flac").read_bytes() == b"source v2"
        assert not orchestrator.compute_profile_diff(two_way.id).needs_resolution

    def test_keep_both(self, orchestrator, two_way, source_root, target_root):
        write_file(source_root, "song.flac", b"mine")
        write_file(target_root, "song.flac", b"theirs!", mtime=BASE_MTIME + 5)
        resolution = ConflictResolution("song.flac", ResolutionStrategy.KEEP_BOTH)

        result = orchestrator.sync_profile(two_way.id, [resolution])

        assert result.files_added == 2
        for root in (source_root, target_root):
            assert (root / "song.flac").read_bytes() == b"mine"
            assert (root / "song (target copy).flac").read_bytes() == b"theirs!"

    def test_keep_both_spares_unlisted_file(
        self, orchestrator, db_service, source_root, target_root
    ):
        profile = db_service.create_profile(
            "Laptop",
            str(source_root),
            str(target_root),
            sync_mode="two_way",
            exclude_patterns=["* (target copy).flac"],
        )
        write_file(source_root, "song.flac", b"mine")
        write_file(source_root, "song (target copy).flac", b"unrelated")
        write_file(target_root, "song.flac", b"theirs!", mtime=BASE_MTIME + 5)
        resolution = ConflictResolution("song.flac", ResolutionStrategy.KEEP_BOTH)

        orchestrator.sync_profile(profile.id, [resolution])

        assert (source_root / "song (target copy).flac").read_bytes() == b"unrelated"
        for root in (source_root, target_root):
            assert (root / "song (target copy 2).flac").read_bytes() == b"theirs!"

    def test_missing_folder(self, orchestrator, db_service, target_root, tmp_path):
        profile = db_service.create_profile(
            "Gone", str(tmp_path / "nowhere"), str(target_root)
        )

        with pytest.raises(PathNotAccessibleError) as exc_info:
            orchestrator.compute_profile_diff(profile.id)

        assert exc_info.value.scope_id == profile.id

    def test_unreadable_folder_is_not_treated_as_deleted(
        self, orchestrator, db_service, two_way, source_root, target_root
    ):
        write_file(source_root, "Album/a.flac", b"abc")
        orchestrator.sync_profile(two_way.id)

        with deny_directory(target_root / "Album"):
            with pytest.raises(PathNotAccessibleError) as exc_info:
                orchestrator.sync_profile(two_way.id)

        assert exc_info.value.scope_id == two_way.id
        assert "Album" in str(exc_info.value)
        assert (source_root / "Album/a.flac").read_bytes() == b"abc"
        assert db_service.get_recent_operations(1)[0].status == "completed"

    def test_unknown_profile(self, orchestrator):
        with pytest.raises(ProfileNotFoundError):
            orchestrator.sync_profile("missing")

    def test_busy_scope_rejected(self, orchestrator, one_way):
        with orchestrator.locks.hold(one_way.id):
            with pytest.raises(ScopeBusyError):
                orchestrator.compute_profile_diff(one_way.id)

        assert not orchestrator.locks.is_active(one_way.id)

    def test_operation_history(self, orchestrator, db_service, one_way, source_root):
        write_file(source_root, "a.flac", b"abc")

        orchestrator.sync_profile(one_way.id)

        operation = db_service.get_recent_operations(1)[0]
        assert operation.scope_id == one_way.id
        assert operation.status == "completed"
        assert operation.files_synced == 1
        assert operation.bytes_synced == 3

    def test_submit_runs_in_background(self, orchestrator, one_way, source_root):
        write_file(source_root, "a.flac")
        sink = QueueSink()

        future = orchestrator.submit(orchestrator.sync_profile, one_way.id, sink=sink)
        result = future.result(timeout=30)

        assert result.files_added == 1
        assert any(isinstance(event, SyncComplete) for event in sink.drain())


class TestDeviceSync:
    """Test device flows and the hash cache."""

    def test_sync_device(self, orchestrator, db_service, device, source_root):
        write_file(source_root, "Artist/a.flac", b"a")

        result = orchestrator.sync_device(device.id, library_root=source_root)

        assert result.files_added == 1
        sync_root = db_service.get_device(device.id).sync_root
        assert (sync_root / "Artist/a.flac").read_bytes() == b"a"
        assert db_service.get_device(device.id).last_synced_at is not None

    def test_library_root_from_config(
        self, db_service, device, source_root, config
    ):
        config.library_root = source_root
        write_file(source_root, "a.flac")
        orchestrator = SyncOrchestrator(db_service, config)

        plan = orchestrator.compute_device_diff(device.id)

        assert plan.source_root == source_root
        assert plan.diff.to_add == 1

    def test_first_sync_fills_hash_cache(
        self, orchestrator, db_service, device, source_root
    ):
        library_file = write_file(source_root, "Artist/a.flac", b"fresh")

        orchestrator.sync_device(device.id, library_root=source_root)

        cached = db_service.get_cached_hash(device.id, "Artist/a.flac")
        assert cached is not None
        assert cached.content_hash == compute_file_hash(library_file)
        assert (cached.size, cached.modified_at) == (5, BASE_MTIME)

    def test_hash_cache_reused(self, orchestrator, db_service, device, source_root):
        write_file(source_root, "a.flac", b"same bytes")
        orchestrator.sync_device(device.id, library_root=source_root)
        device_file = db_service.get_device(device.id).sync_root / "a.flac"
        touched = BASE_MTIME + 100
        os.utime(device_file, (touched, touched))

        first = orchestrator.compute_device_diff(device.id, library_root=source_root)
        cached = db_service.get_cached_hash(device.id, "a.flac")

        assert first.diff.unchanged == 1
        assert cached.modified_at == touched

        second = orchestrator.compute_device_diff(device.id, library_root=source_root)

        assert second.diff.unchanged == 1
        assert second.hash_resolver.cache_hits == 1
        # Only the library file is hashed again
        assert second.hash_resolver.hashes_computed == 1

    def test_device_not_connected(self, orchestrator, db_service, source_root):
        device = db_service.register_device(name="Old", volume_uuid="old-1")

        with pytest.raises(DeviceDisconnectedError):
            orchestrator.compute_device_diff(device.id, library_root=source_root)

    def test_missing_library(self, orchestrator, device):
        with pytest.raises(PathNotAccessibleError):
            orchestrator.compute_device_diff(device.id)

    def test_unplugged_before_execution(
        self, orchestrator, db_service, device, source_root
    ):
        write_file(source_root, "a.flac")
        plan = orchestrator.compute_device_diff(device.id, library_root=source_root)
        shutil.rmtree(db_service.get_device(device.id).mount_path)

        with pytest.raises(DeviceDisconnectedError):
            orchestrator.execute_device_sync(plan)

    def test_unknown_device(self, orchestrator):
        with pytest.raises(DeviceNotFoundError):
            orchestrator.sync_device("missing")

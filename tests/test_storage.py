"""Tests for backup store creation and listing."""

import os
import re
import threading
from unittest.mock import patch

import pytest

from tidemark.backup.checksum import ChecksumEngine
from tidemark.backup.errors import ManifestError, OperationCancelledError, StorageError
from tidemark.backup.manifest import MANIFEST_NAME, BackupType
from tidemark.backup.rules import RuleEngine
from tidemark.backup.storage import BackupStore
from tidemark.util.hashing import calculate_bytes_hash

from conftest import write_tree


def paths(record):
    return [e.relative_path for e in record.included_files]


class TestFullBackup:
    """Test full backup creation."""

    def test_full_backup_captures_every_file(self, store, source_root):
        """Test every enumerated file is copied and recorded."""
        record = store.create_full(source_root)

        assert record.type == BackupType.FULL
        assert re.fullmatch(r"full-\d+", record.id)
        assert paths(record) == ["A", "B", "C"]
        assert record.size == 3
        assert record.included_files[0].content_hash == calculate_bytes_hash(b"1")
        assert (store.backup_dir(record.id) / MANIFEST_NAME).is_file()
        assert (store.backup_dir(record.id) / "B").read_text() == "2"

    def test_checksum_covers_entries(self, store, source_root):
        """Test the record checksum is the aggregate of its entries."""
        record = store.create_full(source_root)

        expected = store.checksum.aggregate_checksum(
            (e.relative_path, e.content_hash) for e in record.included_files
        )
        assert record.checksum == expected

    def test_nested_paths_preserved(self, store, tmp_path):
        """Test directory structure is mirrored inside the backup."""
        source = tmp_path / "nested"
        write_tree(source, {"src/app/main.py": "print()", "README": "hi"})

        record = store.create_full(source)

        assert paths(record) == ["README", "src/app/main.py"]
        assert (store.backup_dir(record.id) / "src" / "app" / "main.py").read_text() == "print()"

    def test_rules_applied(self, store, source_root):
        """Test excluded files are not captured."""
        write_tree(source_root, {"node_modules/x.js": "x", "junk.tmp": "x"})
        rules = RuleEngine(exclude_patterns=["node_modules", "*.tmp"])

        record = store.create_full(source_root, rules)

        assert paths(record) == ["A", "B", "C"]

    def test_store_inside_source_is_skipped(self, source_root):
        """Test a store under the source root never backs itself up."""
        store = BackupStore(source_root / ".migration-backups")
        store.create_full(source_root)
        record = store.create_full(source_root)

        assert paths(record) == ["A", "B", "C"]

    def test_unique_ids(self, store, source_root):
        """Test two backups in the same millisecond get distinct ids."""
        with patch("tidemark.backup.storage.epoch_millis", return_value=1000):
            first = store.create_full(source_root)
            second = store.create_full(source_root)

        assert first.id == "full-1000"
        assert second.id == "full-1001"

    @pytest.mark.skipif(hasattr(os, "geteuid") and os.geteuid() == 0, reason="root can read anything")
    def test_unreadable_file_becomes_warning(self, store, source_root):
        """Test a file that cannot be copied is left out and reported."""
        (source_root / "B").chmod(0)
        try:
            record = store.create_full(source_root)
        finally:
            (source_root / "B").chmod(0o644)

        assert paths(record) == ["A", "C"]
        assert len(record.warnings) == 1
        assert "B" in record.warnings[0]

    def test_manifest_write_failure(self, store, source_root):
        """Test a failed manifest write is fatal and leaves no partial backup."""
        with patch("tidemark.backup.storage.ManifestManager.save_manifest", side_effect=OSError("disk full")):
            with pytest.raises(StorageError):
                store.create_full(source_root)

        assert list(store.backup_root.iterdir()) == []

    def test_unwritable_store(self, tmp_path, source_root):
        """Test a store root that cannot be created is fatal."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")

        with pytest.raises(StorageError):
            BackupStore(blocker / "store").create_full(source_root)

    def test_cancelled_before_start(self, store, source_root):
        """Test cancellation is fatal for create and removes the partial backup."""
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelledError):
            store.create_full(source_root, cancel_event=cancel)

        assert list(store.backup_root.iterdir()) == []

    def test_parallel_workers(self, tmp_path, source_root):
        """Test a multi-threaded store records the same entries."""
        write_tree(source_root, {f"many/{i:03}": str(i) for i in range(50)})
        store = BackupStore(tmp_path / "store", max_workers=4)

        record = store.create_full(source_root)

        assert len(record.included_files) == 53
        assert paths(record) == sorted(paths(record))


class TestIncrementalBackup:
    """Test incremental backup creation."""

    def test_only_changes_are_captured(self, store, source_root):
        """Test an incremental records only the modified file."""
        full = store.create_full(source_root)
        (source_root / "A").write_text("1-mod")

        inc = store.create_incremental(source_root, None, full.id)

        assert inc.type == BackupType.INCREMENTAL
        assert inc.base_backup_id == full.id
        assert [(e.relative_path, e.content_hash) for e in inc.included_files] == [
            ("A", calculate_bytes_hash(b"1-mod"))
        ]
        assert inc.size <= full.size
        assert not (store.backup_dir(inc.id) / "B").exists()

    def test_added_and_deleted_files(self, store, source_root):
        """Test additions are stored and deletions become tombstones."""
        full = store.create_full(source_root)
        (source_root / "B").unlink()
        write_tree(source_root, {"D": "4"})

        inc = store.create_incremental(source_root, None, full.id)

        assert paths(inc) == ["B", "D"]
        assert [e.relative_path for e in inc.tombstones] == ["B"]
        assert [e.relative_path for e in inc.stored_files] == ["D"]

    def test_no_changes(self, store, source_root):
        """Test an unchanged tree yields an empty incremental."""
        full = store.create_full(source_root)

        inc = store.create_incremental(source_root, None, full.id)

        assert inc.included_files == []
        assert inc.size == 0

    def test_mtime_only_change_is_ignored(self, store, source_root):
        """Test change detection uses content, not timestamps."""
        full = store.create_full(source_root)
        os.utime(source_root / "A", (1, 1))

        inc = store.create_incremental(source_root, None, full.id)

        assert inc.included_files == []

    def test_base_hashed_with_other_algorithm(self, tmp_path, source_root):
        """Test unchanged files are detected when the base used a different hash algorithm."""
        full = BackupStore(tmp_path / "store", checksum=ChecksumEngine("md5")).create_full(source_root)
        store = BackupStore(tmp_path / "store", checksum=ChecksumEngine("sha256"))
        (source_root / "A").write_text("1-mod")

        inc = store.create_incremental(source_root, None, full.id)

        assert paths(inc) == ["A"]
        assert inc.included_files[0].content_hash == calculate_bytes_hash(b"1-mod")

    def test_chained_incrementals(self, store, source_root):
        """Test an incremental on top of an incremental diffs against the resolved state."""
        full = store.create_full(source_root)
        (source_root / "A").write_text("1-mod")
        first = store.create_incremental(source_root, None, full.id)
        (source_root / "C").write_text("3-mod")

        second = store.create_incremental(source_root, None, first.id)

        assert second.base_backup_id == first.id
        assert paths(second) == ["C"]

    def test_fallback_to_full(self, store, source_root):
        """Test an incremental without a base becomes a full backup."""
        record = store.create_incremental(source_root, None, None)

        assert record.type == BackupType.FULL
        assert paths(record) == ["A", "B", "C"]

    def test_missing_base(self, store, source_root):
        """Test a base that does not exist is fatal."""
        with pytest.raises(ManifestError):
            store.create_incremental(source_root, None, "full-404")

    def test_snapshot_cannot_be_base(self, store, source_root):
        """Test snapshots are never chain bases."""
        snap = store.create_snapshot(source_root, None, "before")

        with pytest.raises(ValueError):
            store.create_incremental(source_root, None, snap.id)


class TestSnapshot:
    """Test snapshot creation."""

    def test_snapshot_is_complete_and_labelled(self, store, source_root):
        """Test a snapshot captures every file and keeps its label."""
        record = store.create_snapshot(source_root, None, "pre-migration")

        assert record.type == BackupType.SNAPSHOT
        assert record.label == "pre-migration"
        assert record.base_backup_id is None
        assert paths(record) == ["A", "B", "C"]

    def test_empty_label_rejected(self, store, source_root):
        """Test a snapshot needs a label."""
        with pytest.raises(ValueError):
            store.create_snapshot(source_root, None, "  ")


class TestListing:
    """Test listing and loading records."""

    def test_list_records_in_creation_order(self, store, source_root):
        """Test records are listed oldest first and filtered by type."""
        full = store.create_full(source_root)
        snap = store.create_snapshot(source_root, None, "s1")
        (source_root / "A").write_text("changed")
        inc = store.create_incremental(source_root, None, full.id)

        assert [r.id for r in store.list_records()] == [full.id, snap.id, inc.id]
        assert [r.id for r in store.list_records(BackupType.SNAPSHOT)] == [snap.id]

    def test_latest_chain_head_ignores_snapshots(self, store, source_root):
        """Test the next incremental base is never a snapshot."""
        full = store.create_full(source_root)
        store.create_snapshot(source_root, None, "s1")

        assert store.latest_chain_head().id == full.id

    def test_empty_store(self, store):
        """Test listing a store that was never written."""
        assert store.list_records() == []
        assert store.latest_chain_head() is None

    def test_unreadable_manifest_skipped(self, store, source_root):
        """Test a corrupt manifest does not break listing."""
        good = store.create_full(source_root)
        bad = store.backup_root / "full-1"
        bad.mkdir()
        (bad / MANIFEST_NAME).write_text("garbage")

        assert [r.id for r in store.list_records()] == [good.id]

    def test_directory_without_manifest_skipped(self, store, source_root):
        """Test an unfinished backup directory is not listed."""
        good = store.create_full(source_root)
        (store.backup_root / "full-1").mkdir()
        (store.backup_root / "full-1" / "A").write_text("1")

        assert [r.id for r in store.list_records()] == [good.id]

    def test_load_uses_cache(self, store, source_root):
        """Test repeated loads are served from the cache."""
        record = store.create_full(source_root)

        assert store.load_manifest(record.id) is record
        assert store.cache.hits >= 1

    def test_invalid_backup_id(self, store):
        """Test ids cannot escape the store."""
        with pytest.raises(ManifestError):
            store.load_manifest("../etc")

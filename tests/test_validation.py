"""Tests for backup validation."""

import json

from tidemark.backup.errors import ChainResolutionError, ChecksumMismatchError, ManifestError, MissingFileError
from tidemark.backup.manifest import MANIFEST_NAME
from tidemark.backup.validation import ValidationEngine


class TestValidationEngine:
    """Test checksum validation of stored backups."""

    def test_intact_backup(self, store, source_root):
        """Test an untouched backup validates."""
        full = store.create_full(source_root)

        result = ValidationEngine(store).validate(full.id)

        assert result.success
        assert result.state == "validated"
        assert result.checked_files == 3
        assert result.checked_backups == [full.id]

    def test_single_corruption_single_error(self, store, source_root):
        """Test corrupting exactly one file yields exactly one error naming it."""
        full = store.create_full(source_root)
        (store.backup_dir(full.id) / "B").write_text("bit rot")

        result = ValidationEngine(store).validate(full.id)

        assert not result.success
        assert result.state == "corrupted"
        assert len(result.errors) == 1
        assert isinstance(result.errors[0], ChecksumMismatchError)
        assert result.errors[0].path == "B"

    def test_missing_file(self, store, source_root):
        """Test a deleted stored copy is reported as missing."""
        full = store.create_full(source_root)
        (store.backup_dir(full.id) / "C").unlink()

        result = ValidationEngine(store).validate(full.id)

        assert result.errors == [MissingFileError("C")]

    def test_validation_is_idempotent(self, store, source_root):
        """Test two validations of the same backup agree."""
        full = store.create_full(source_root)
        (store.backup_dir(full.id) / "A").write_text("changed")
        engine = ValidationEngine(store)

        first = engine.validate(full.id)
        second = engine.validate(full.id)

        assert first.to_dict() == second.to_dict()

    def test_validation_is_read_only(self, store, source_root):
        """Test validation leaves corrupt content in place."""
        full = store.create_full(source_root)
        corrupt = store.backup_dir(full.id) / "A"
        corrupt.write_text("changed")

        ValidationEngine(store).validate(full.id)

        assert corrupt.read_text() == "changed"

    def test_unknown_backup_never_raises(self, store):
        """Test a missing backup is reported, not raised."""
        result = ValidationEngine(store).validate("full-404")

        assert not result.success
        assert isinstance(result.errors[0], ManifestError)
        assert "not found" in str(result.errors[0])

    def test_tampered_manifest(self, store, source_root):
        """Test editing a manifest entry is caught by the aggregate checksum."""
        full = store.create_full(source_root)
        manifest_path = store.backup_dir(full.id) / MANIFEST_NAME
        data = json.loads(manifest_path.read_text())
        data["includedFiles"] = data["includedFiles"][:2]
        manifest_path.write_text(json.dumps(data))

        result = ValidationEngine(store).validate(full.id)

        assert len(result.errors) == 1
        assert result.errors[0].path == MANIFEST_NAME

    def test_incremental_tombstones_not_checked(self, store, source_root):
        """Test deletions have no stored content to check."""
        full = store.create_full(source_root)
        (source_root / "B").unlink()
        inc = store.create_incremental(source_root, None, full.id)

        result = ValidationEngine(store).validate(inc.id)

        assert result.success
        assert result.checked_files == 0

    def test_include_chain(self, store, source_root):
        """Test chain validation also checks the base."""
        full = store.create_full(source_root)
        (source_root / "A").write_text("1-mod")
        inc = store.create_incremental(source_root, None, full.id)
        (store.backup_dir(full.id) / "C").write_text("rot")
        engine = ValidationEngine(store)

        assert engine.validate(inc.id).success

        result = engine.validate(inc.id, include_chain=True)
        assert result.checked_backups == [full.id, inc.id]
        assert [e.path for e in result.errors] == ["C"]

    def test_include_chain_broken(self, store, source_root):
        """Test a missing base is reported when validating the chain."""
        full = store.create_full(source_root)
        (source_root / "A").write_text("1-mod")
        inc = store.create_incremental(source_root, None, full.id)
        (store.backup_dir(full.id) / MANIFEST_NAME).unlink()

        result = ValidationEngine(store).validate(inc.id, include_chain=True)

        assert isinstance(result.errors[0], ChainResolutionError)

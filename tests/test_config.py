"""Tests for configuration loading."""

from pathlib import Path

import pytest
from pydantic import ValidationError

from tidemark.config import BackupConfig, TidemarkConfig, load_config, save_config


class TestTidemarkConfig:
    """Test configuration defaults and validation."""

    def test_defaults(self):
        """Test default values."""
        config = TidemarkConfig(source_root=Path("/srv/app"))

        assert config.backup.hash_algorithm == "sha256"
        assert config.backup.chunk_size == 64 * 1024
        assert "node_modules" in config.scanner.exclude_patterns
        assert config.scanner.include_patterns == ["**"]
        assert config.resolved_backup_root() == Path("/srv/app/.migration-backups")

    def test_absolute_backup_root(self):
        """Test an absolute backup root is used as is."""
        config = TidemarkConfig(source_root=Path("/srv/app"), backup_root=Path("/var/backups"))

        assert config.resolved_backup_root() == Path("/var/backups")

    def test_unknown_hash_algorithm(self):
        """Test the algorithm must be supported by hashlib."""
        with pytest.raises(ValidationError):
            BackupConfig(hash_algorithm="nope")

    def test_validate_assignment(self):
        """Test assignments are validated."""
        config = TidemarkConfig()

        with pytest.raises(ValidationError):
            config.max_concurrent_operations = 0


class TestConfigFile:
    """Test reading and writing YAML configuration."""

    def test_missing_file_creates_default(self, tmp_path):
        """Test a default config is written when none exists."""
        path = tmp_path / "conf" / "config.yaml"

        config = load_config(path)

        assert path.exists()
        assert config.backup.verify_integrity

    def test_save_load_round_trip(self, tmp_path):
        """Test values survive a save and load."""
        path = tmp_path / "config.yaml"
        config = TidemarkConfig(source_root=tmp_path, max_concurrent_operations=2)
        config.scanner.exclude_patterns = ["dist"]

        save_config(config, path)
        loaded = load_config(path)

        assert loaded.source_root == tmp_path
        assert loaded.max_concurrent_operations == 2
        assert loaded.scanner.exclude_patterns == ["dist"]

    def test_partial_file(self, tmp_path):
        """Test unspecified keys fall back to defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("backup:\n  verify_integrity: false\nlog_level: DEBUG\n")

        config = load_config(path)

        assert not config.backup.verify_integrity
        assert config.backup.use_lock
        assert config.log_level == "DEBUG"

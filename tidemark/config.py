"""Configuration management for tidemark."""

import hashlib
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator
from ruamel.yaml import YAML

DEFAULT_CONFIG_PATH = Path.home() / ".config/tidemark/config.yaml"


class ScannerConfig(BaseModel):
    """Configuration for source tree enumeration."""

    include_patterns: List[str] = Field(
        default=["**"],
        description="Glob patterns a file must match to be backed up"
    )
    exclude_patterns: List[str] = Field(
        default=[
            "node_modules",
            ".git",
            ".next",
            "__pycache__",
            "*.tmp",
        ],
        description="Glob patterns for files and directories to leave out"
    )
    max_file_size_mb: Optional[int] = Field(default=None, ge=0, description="Maximum file size in MB")
    follow_symlinks: bool = Field(default=True, description="Follow symlinks while walking the tree")


class BackupConfig(BaseModel):
    """Configuration for backup and restore operations."""

    hash_algorithm: str = Field(default="sha256", description="Hash algorithm for file integrity")
    chunk_size: int = Field(default=64 * 1024, gt=0, description="Bytes read per chunk when hashing and copying")
    verify_integrity: bool = Field(default=True, description="Verify content hashes while restoring")
    use_lock: bool = Field(default=True, description="Serialise create and restore with a store lock file")
    lock_retries: int = Field(default=5, ge=1, description="Attempts to take the store lock")

    @field_validator("hash_algorithm")
    @classmethod
    def _check_algorithm(cls, value: str) -> str:
        try:
            hashlib.new(value)
        except ValueError as e:
            raise ValueError(f"Unsupported hash algorithm: {value}") from e
        return value


class CacheConfig(BaseModel):
    """Configuration for the in-memory manifest cache."""

    manifest_ttl_seconds: float = Field(default=300, ge=0, description="Seconds a cached manifest stays fresh; 0 disables expiry")
    max_entries: int = Field(default=1024, ge=0, description="Maximum cached manifests; 0 disables caching")


class TidemarkConfig(BaseModel):
    """Main configuration for tidemark."""

    source_root: Path = Field(
        default_factory=Path.cwd,
        description="Directory tree to protect"
    )
    backup_root: Path = Field(
        default=Path(".migration-backups"),
        description="Root directory for backups; relative paths live under source_root"
    )

    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    backup: BackupConfig = Field(default_factory=BackupConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)

    # Runtime settings
    log_level: str = Field(default="INFO", description="Logging level")
    max_concurrent_operations: int = Field(default=4, ge=1, description="Max files processed in parallel")
    show_progress: bool = Field(default=False, description="Show progress bars")

    class Config:
        """Pydantic configuration."""

        validate_assignment = True
        use_enum_values = True

    def resolved_backup_root(self) -> Path:
        """Absolute backup root."""
        if self.backup_root.is_absolute():
            return self.backup_root
        return self.source_root / self.backup_root


def load_config(config_path: Optional[Path] = None) -> TidemarkConfig:
    """Load configuration from file or create default."""

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    if config_path.exists():
        yaml = YAML(typ="safe")
        with open(config_path, "r") as f:
            data = yaml.load(f) or {}
        return TidemarkConfig(**data)
    else:
        # Create default config
        config = TidemarkConfig()
        save_config(config, config_path)
        return config


def save_config(config: TidemarkConfig, config_path: Optional[Path] = None) -> None:
    """Save configuration to file."""

    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH

    config_path.parent.mkdir(parents=True, exist_ok=True)

    yaml = YAML()
    yaml.default_flow_style = False

    with open(config_path, "w") as f:
        yaml.dump(config.model_dump(mode="json"), f)


def get_config() -> TidemarkConfig:
    """Get the global configuration instance."""

    if not hasattr(get_config, "_config"):
        get_config._config = load_config()

    return get_config._config

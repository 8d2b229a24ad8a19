"""Backup record model and manifest persistence."""

import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from ..util.logging import get_logger
from ..util.paths import atomic_write_text
from ..util.timeutil import now_iso
from .errors import ManifestError

logger = get_logger(__name__)

MANIFEST_NAME = "manifest.json"
MANIFEST_VERSION = 1


class BackupType(str, Enum):
    """Kind of capture a record describes."""

    FULL = "full"
    INCREMENTAL = "incremental"
    SNAPSHOT = "snapshot"


class FileEntry(BaseModel):
    """Individual file entry in a backup manifest."""

    relative_path: str = Field(alias="path", description="POSIX path relative to the source root")
    content_hash: Optional[str] = Field(
        alias="hash", description="Content hash, or None for a tombstone (file deleted since base)"
    )
    size: int = Field(default=0, ge=0, description="Stored size in bytes")

    class Config:
        """Pydantic configuration."""
        frozen = True
        populate_by_name = True

    @property
    def is_tombstone(self) -> bool:
        return self.content_hash is None


class BackupRecord(BaseModel):
    """Persisted metadata describing one backup or snapshot."""

    version: int = Field(default=MANIFEST_VERSION, description="Manifest format version")
    id: str = Field(min_length=1, description="Unique backup ID")
    type: BackupType = Field(description="full, incremental or snapshot")
    created_at: str = Field(default_factory=now_iso, alias="createdAt", description="ISO-8601 creation time")
    path: str = Field(default="", exclude=True, description="Backup directory; derived on load, not persisted")
    checksum: str = Field(description="Aggregate checksum over included_files")
    size: int = Field(ge=0, description="Bytes of content stored in this backup")
    base_backup_id: Optional[str] = Field(default=None, alias="baseBackupId")
    label: Optional[str] = Field(default=None, description="Snapshot label")
    hash_algorithm: str = Field(default="sha256", alias="hashAlgorithm")
    included_files: List[FileEntry] = Field(default_factory=list, alias="includedFiles")
    warnings: List[str] = Field(default_factory=list, description="Per-file problems hit during creation")

    class Config:
        """Pydantic configuration."""
        frozen = True
        populate_by_name = True

    @field_validator("included_files")
    @classmethod
    def _sort_entries(cls, entries: List[FileEntry]) -> List[FileEntry]:
        entries = sorted(entries, key=lambda e: e.relative_path)
        for previous, current in zip(entries, entries[1:]):
            if previous.relative_path == current.relative_path:
                raise ValueError(f"Duplicate manifest entry: {current.relative_path}")
        return entries

    @model_validator(mode="after")
    def _check_type_invariants(self) -> "BackupRecord":
        if self.type == BackupType.INCREMENTAL:
            if not self.base_backup_id:
                raise ValueError("Incremental backup requires baseBackupId")
        elif self.base_backup_id is not None:
            raise ValueError(f"{self.type.value} backup cannot have baseBackupId")

        if self.type == BackupType.SNAPSHOT:
            if not self.label:
                raise ValueError("Snapshot requires a label")
        elif self.label is not None:
            raise ValueError(f"{self.type.value} backup cannot have a label")

        if self.type != BackupType.INCREMENTAL and any(e.is_tombstone for e in self.included_files):
            raise ValueError(f"{self.type.value} backup cannot contain tombstones")

        return self

    @property
    def stored_files(self) -> List[FileEntry]:
        """Entries with content stored in this backup's directory."""
        return [e for e in self.included_files if not e.is_tombstone]

    @property
    def tombstones(self) -> List[FileEntry]:
        return [e for e in self.included_files if e.is_tombstone]

    def to_manifest(self) -> Dict[str, Any]:
        """Serialise to the manifest.json layout."""
        data = self.model_dump(mode="json", by_alias=True)
        for optional in ("baseBackupId", "label"):
            if data.get(optional) is None:
                data.pop(optional, None)
        return data


class ManifestManager:
    """Reads and writes the manifest of one backup directory."""

    def __init__(self, backup_path: Path):
        self.backup_path = Path(backup_path)
        self.manifest_path = self.backup_path / MANIFEST_NAME

    def save_manifest(self, record: BackupRecord) -> None:
        """Write the manifest atomically; its presence marks a complete backup."""
        text = json.dumps(record.to_manifest(), indent=2)
        atomic_write_text(self.manifest_path, text + "\n")
        logger.debug(f"Saved manifest to {self.manifest_path}")

    def load_manifest(self) -> BackupRecord:
        """Load the manifest.

        Raises:
            ManifestError: If the manifest is missing, unparsable, invalid,
                or describes a different backup than its directory
        """
        backup_id = self.backup_path.name

        try:
            with open(self.manifest_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError as e:
            raise ManifestError(f"Backup {backup_id} not found", str(self.manifest_path)) from e
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ManifestError(f"Cannot read manifest of {backup_id}: {e}", str(self.manifest_path)) from e

        if not isinstance(data, dict):
            raise ManifestError(f"Manifest of {backup_id} is not an object", str(self.manifest_path))

        try:
            record = BackupRecord.model_validate({**data, "path": str(self.backup_path)})
        except ValidationError as e:
            raise ManifestError(f"Invalid manifest for {backup_id}: {e}", str(self.manifest_path)) from e

        if record.id != backup_id:
            raise ManifestError(
                f"Manifest id {record.id} does not match directory {backup_id}", str(self.manifest_path)
            )

        logger.debug(f"Loaded manifest from {self.manifest_path}")
        return record

    def exists(self) -> bool:
        return self.manifest_path.is_file()

"""Result objects returned by restore and validation."""

from dataclasses import dataclass, field
from typing import Any, Dict, List

from .errors import BackupError


@dataclass
class RestoreResult:
    """Outcome of materialising a backup into a target directory."""

    backup_id: str
    target_root: str
    errors: List[BackupError] = field(default_factory=list)
    restored_files: List[str] = field(default_factory=list)
    removed_files: List[str] = field(default_factory=list)
    duration: float = 0.0

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backup_id": self.backup_id,
            "target_root": self.target_root,
            "success": self.success,
            "errors": [e.to_dict() for e in self.errors],
            "restored_files": list(self.restored_files),
            "removed_files": list(self.removed_files),
            "duration": self.duration,
        }


@dataclass
class ValidationResult:
    """Outcome of recomputing a backup's checksums.

    ``state`` is the per-record validation state: ``validated`` when every
    manifested file is present and matches, ``corrupted`` otherwise.
    """

    backup_id: str
    errors: List[BackupError] = field(default_factory=list)
    checked_files: int = 0
    checked_backups: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors

    @property
    def state(self) -> str:
        return "validated" if self.success else "corrupted"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "backup_id": self.backup_id,
            "success": self.success,
            "state": self.state,
            "errors": [e.to_dict() for e in self.errors],
            "checked_files": self.checked_files,
            "checked_backups": list(self.checked_backups),
        }

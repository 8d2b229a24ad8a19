"""Error taxonomy for backup, restore and validation.

Errors flagged ``fatal`` are raised: the operation could not run at all.
The others are collected into result objects and the operation carries on
with the next file.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Classification of backup errors."""

    ENUMERATION = "enumeration"
    COPY = "copy"
    MANIFEST = "manifest"
    CHECKSUM_MISMATCH = "checksum_mismatch"
    MISSING_FILE = "missing_file"
    CHAIN_RESOLUTION = "chain_resolution"
    STORAGE = "storage"
    STORE_LOCKED = "store_locked"
    CANCELLED = "cancelled"


class BackupError(Exception):
    """Base class for all backup engine errors."""

    kind: ErrorKind = ErrorKind.STORAGE
    fatal: bool = False

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.message} ({self.path})"
        return self.message

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BackupError):
            return NotImplemented
        return (type(self), self.message, self.path) == (type(other), other.message, other.path)

    def __hash__(self) -> int:
        return hash((type(self), self.message, self.path))

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "path": self.path, "message": self.message}


class EnumerationError(BackupError):
    """A source entry could not be read while walking the tree."""

    kind = ErrorKind.ENUMERATION


class CopyError(BackupError):
    """I/O failure while copying a single file."""

    kind = ErrorKind.COPY


class ManifestError(BackupError):
    """A manifest is missing, unreadable or invalid."""

    kind = ErrorKind.MANIFEST
    fatal = True


class ChecksumMismatchError(BackupError):
    """Stored content no longer matches its recorded hash."""

    kind = ErrorKind.CHECKSUM_MISMATCH

    def __init__(self, path: str, expected: Optional[str] = None, actual: Optional[str] = None):
        super().__init__(f"Checksum mismatch: expected {expected}, got {actual}", path)
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data.update(expected=self.expected, actual=self.actual)
        return data


class MissingFileError(BackupError):
    """A file recorded in a manifest is absent (or unreadable) on disk."""

    kind = ErrorKind.MISSING_FILE

    def __init__(self, path: str, message: str = "File missing from backup"):
        super().__init__(message, path)


class ChainResolutionError(BackupError):
    """An incremental backup references a missing or cyclic base chain."""

    kind = ErrorKind.CHAIN_RESOLUTION
    fatal = True


class StorageError(BackupError):
    """The backup store could not allocate a directory or write a manifest."""

    kind = ErrorKind.STORAGE
    fatal = True


class StoreLockedError(BackupError):
    """Another writer holds the backup store lock."""

    kind = ErrorKind.STORE_LOCKED
    fatal = True


class OperationCancelledError(BackupError):
    """The caller's cancellation signal was observed between files."""

    kind = ErrorKind.CANCELLED
    fatal = True

"""Backup module initialization."""

from .cache import ManifestCache
from .checksum import ChecksumEngine
from .errors import (
    BackupError,
    ChainResolutionError,
    ChecksumMismatchError,
    CopyError,
    EnumerationError,
    ErrorKind,
    ManifestError,
    MissingFileError,
    OperationCancelledError,
    StorageError,
    StoreLockedError,
)
from .lock import StoreLock
from .manager import BackupManager
from .manifest import BackupRecord, BackupType, FileEntry, ManifestManager
from .restore import ResolvedState, RestoreEngine, resolve_chain, resolve_state
from .results import RestoreResult, ValidationResult
from .rules import BackupRule, PathRule, RuleEngine, SizeLimitRule
from .scanner import FileEnumerator, ScanResult, SourceFile
from .storage import BackupStore
from .validation import ValidationEngine

__all__ = [
    # manager
    "BackupManager",
    # scanner
    "FileEnumerator",
    "ScanResult",
    "SourceFile",
    # rules
    "BackupRule",
    "PathRule",
    "SizeLimitRule",
    "RuleEngine",
    # checksum
    "ChecksumEngine",
    # manifest
    "BackupRecord",
    "BackupType",
    "FileEntry",
    "ManifestManager",
    # storage
    "BackupStore",
    "ManifestCache",
    "StoreLock",
    # restore
    "RestoreEngine",
    "ResolvedState",
    "resolve_chain",
    "resolve_state",
    # validation
    "ValidationEngine",
    # results
    "RestoreResult",
    "ValidationResult",
    # errors
    "ErrorKind",
    "BackupError",
    "EnumerationError",
    "CopyError",
    "ManifestError",
    "ChecksumMismatchError",
    "MissingFileError",
    "ChainResolutionError",
    "StorageError",
    "StoreLockedError",
    "OperationCancelledError",
]

"""Public entry point composing enumeration, storage, restore and validation."""

import contextlib
import threading
import typing as t
from pathlib import Path

from ..config import TidemarkConfig
from ..util.logging import get_logger
from .cache import ManifestCache
from .checksum import ChecksumEngine
from .errors import ManifestError
from .lock import StoreLock
from .manifest import BackupRecord, BackupType
from .restore import RestoreEngine
from .results import RestoreResult, ValidationResult
from .rules import RuleEngine
from .storage import BackupStore
from .validation import ValidationEngine

logger = get_logger(__name__)


class BackupManager:
    """Creates, restores and validates backups of one source tree.

    Structural failures (no backup directory, unwritable manifest, broken
    chain, store locked) are raised. Per-file problems are collected into
    the record's warnings or the returned result.
    """

    def __init__(
        self,
        config: TidemarkConfig,
        store: t.Optional[BackupStore] = None,
        cache: t.Optional[ManifestCache] = None,
        cancel_event: t.Optional[threading.Event] = None,
    ) -> None:
        """Initialize backup manager.

        Args:
            config: Loaded configuration
            store: Backup store; built from config if omitted
            cache: Manifest cache shared with the store; built from config if omitted
            cancel_event: Set it to stop create or restore before the next file; cleared when that operation ends
        """
        self.config = config
        self.source_root = Path(config.source_root)
        self.backup_root = config.resolved_backup_root()
        self.cancel_event = cancel_event or threading.Event()
        self.rules = RuleEngine.from_config(config.scanner)

        if store is None:
            if cache is None:
                cache = ManifestCache(
                    ttl_seconds=config.cache.manifest_ttl_seconds,
                    max_entries=config.cache.max_entries,
                )
            store = BackupStore(
                self.backup_root,
                checksum=ChecksumEngine(config.backup.hash_algorithm, config.backup.chunk_size),
                cache=cache,
                max_workers=config.max_concurrent_operations,
                follow_symlinks=config.scanner.follow_symlinks,
                show_progress=config.show_progress,
            )
        self.store = store

        self.restore_engine = RestoreEngine(
            store,
            verify_integrity=config.backup.verify_integrity,
            chunk_size=config.backup.chunk_size,
            max_workers=config.max_concurrent_operations,
            show_progress=config.show_progress,
        )
        self.validation_engine = ValidationEngine(
            store,
            max_workers=config.max_concurrent_operations,
            show_progress=config.show_progress,
        )

    def _locked(self):
        if not self.config.backup.use_lock:
            return contextlib.nullcontext()
        return StoreLock(self.backup_root, retries=self.config.backup.lock_retries)

    @contextlib.contextmanager
    def _operation(self):
        # A cancel request applies to one operation only.
        with self._locked():
            try:
                yield
            finally:
                self.cancel_event.clear()

    def cancel(self) -> None:
        """Ask the running (or next) create or restore operation to stop before the next file."""
        self.cancel_event.set()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_full_backup(self) -> BackupRecord:
        """Capture the whole source tree."""
        with self._operation():
            return self.store.create_full(self.source_root, self.rules, self.cancel_event)

    def create_incremental_backup(self) -> BackupRecord:
        """Capture changes since the newest full or incremental backup.

        Falls back to a full backup when the store holds no chain yet.
        """
        with self._operation():
            head = self.store.latest_chain_head()
            return self.store.create_incremental(
                self.source_root, self.rules, head.id if head else None, self.cancel_event
            )

    def create_snapshot(self, label: str) -> BackupRecord:
        """Capture the whole source tree as an independent, labelled snapshot."""
        with self._operation():
            return self.store.create_snapshot(self.source_root, self.rules, label, self.cancel_event)

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    def restore_from_backup(self, backup_id: str, target: t.Optional[Path] = None) -> RestoreResult:
        """Restore the resolved state of a backup chain.

        Args:
            backup_id: Full, incremental or snapshot backup id
            target: Directory to restore into; defaults to the source root
        """
        with self._operation():
            return self.restore_engine.restore(backup_id, Path(target or self.source_root), self.cancel_event)

    def restore_from_snapshot(self, snapshot_id: str, target: t.Optional[Path] = None) -> RestoreResult:
        """Restore a snapshot.

        Raises:
            ManifestError: If the id is unknown or does not name a snapshot
        """
        with self._operation():
            record = self.store.load_manifest(snapshot_id)
            if record.type != BackupType.SNAPSHOT:
                raise ManifestError(f"Backup {snapshot_id} is not a snapshot", record.path)
            return self.restore_engine.restore_record(record, Path(target or self.source_root), self.cancel_event)

    # ------------------------------------------------------------------
    # Validate and inspect
    # ------------------------------------------------------------------

    def validate_backup(self, backup_id: str, include_chain: bool = False) -> ValidationResult:
        """Recompute checksums of a backup; never raises for a corrupt or missing backup."""
        return self.validation_engine.validate(backup_id, include_chain=include_chain)

    def list_backups(self) -> t.List[BackupRecord]:
        return self.store.list_records()

    def list_snapshots(self) -> t.List[BackupRecord]:
        return self.store.list_records(BackupType.SNAPSHOT)

    def get_backup(self, backup_id: str) -> BackupRecord:
        """Load one backup record.

        Raises:
            ManifestError: If the backup does not exist
        """
        return self.store.load_manifest(backup_id)

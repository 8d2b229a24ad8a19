"""Backup store: file copies and manifests under one backup root."""

import shutil
import threading
import typing as t
from dataclasses import dataclass
from pathlib import Path

from ..util.concurrency import run_per_file
from ..util.hashing import calculate_file_hash
from ..util.logging import get_logger
from ..util.paths import atomic_copy, safe_join
from ..util.timeutil import epoch_millis, generate_backup_id, now_iso
from .cache import ManifestCache
from .checksum import ChecksumEngine
from .errors import (
    BackupError,
    CopyError,
    ManifestError,
    OperationCancelledError,
    StorageError,
)
from .manifest import BackupRecord, BackupType, FileEntry, ManifestManager
from .restore import ResolvedFile, ResolvedState, resolve_chain, resolve_state
from .rules import RuleEngine
from .scanner import FileEnumerator, ScanResult, SourceFile

logger = get_logger(__name__)


@dataclass
class _Captured:
    """Outcome of capturing one source file."""

    relative_path: str
    entry: t.Optional[FileEntry] = None
    error: t.Optional[BackupError] = None


class BackupStore:
    """Manages backup directories, stored file copies and manifests.

    Layout::

        <backup_root>/<id>/manifest.json
        <backup_root>/<id>/<relative path...>
    """

    def __init__(
        self,
        backup_root: Path,
        checksum: t.Optional[ChecksumEngine] = None,
        cache: t.Optional[ManifestCache] = None,
        max_workers: int = 1,
        follow_symlinks: bool = True,
        show_progress: bool = False,
    ) -> None:
        """Initialize backup store.

        Args:
            backup_root: Base directory for all backups
            checksum: Hashing engine (SHA-256 by default)
            cache: Manifest cache; a private one is created if omitted
            max_workers: Threads used to hash and copy files within one backup
            follow_symlinks: Whether the enumerator follows symlinks
            show_progress: Render tqdm progress bars
        """
        self.backup_root = Path(backup_root)
        self.checksum = checksum or ChecksumEngine()
        self.cache = cache if cache is not None else ManifestCache()
        self.max_workers = max_workers
        self.follow_symlinks = follow_symlinks
        self.show_progress = show_progress

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def backup_dir(self, backup_id: str) -> Path:
        """Get the directory of one backup."""
        try:
            return safe_join(self.backup_root, backup_id)
        except ValueError as e:
            raise ManifestError(f"Invalid backup id: {backup_id!r}") from e

    def stored_file_path(self, backup_id: str, relative_path: str) -> Path:
        """Get the stored copy of a file inside a backup.

        Raises:
            ValueError: If relative_path would escape the backup directory
        """
        return safe_join(self.backup_dir(backup_id), relative_path)

    def _allocate_backup_dir(self, kind: BackupType) -> t.Tuple[str, Path]:
        millis = epoch_millis()
        try:
            self.backup_root.mkdir(parents=True, exist_ok=True)
            while True:
                backup_id = generate_backup_id(kind.value, millis)
                path = self.backup_root / backup_id
                try:
                    path.mkdir()
                    return backup_id, path
                except FileExistsError:
                    millis += 1
        except OSError as e:
            raise StorageError(f"Cannot create backup directory: {e}", str(self.backup_root)) from e

    # ------------------------------------------------------------------
    # Manifests
    # ------------------------------------------------------------------

    def load_manifest(self, backup_id: str, use_cache: bool = True) -> BackupRecord:
        """Load a backup record.

        Raises:
            ManifestError: If the manifest is missing or unparsable
        """
        if use_cache:
            cached = self.cache.get(backup_id)
            if cached is not None:
                return cached

        record = ManifestManager(self.backup_dir(backup_id)).load_manifest()
        self.cache.put(backup_id, record)
        return record

    def list_records(self, backup_type: t.Optional[BackupType] = None) -> t.List[BackupRecord]:
        """List records in the store ordered by creation time (oldest first).

        Directories without a readable manifest are skipped with a warning.
        """
        if not self.backup_root.is_dir():
            return []

        records = []
        for child in sorted(self.backup_root.iterdir()):
            if not child.is_dir() or not ManifestManager(child).exists():
                continue
            try:
                record = self.load_manifest(child.name)
            except ManifestError as e:
                logger.warning(f"Skipping unreadable backup {child.name}: {e}")
                continue
            if backup_type is None or record.type == backup_type:
                records.append(record)

        return sorted(records, key=lambda r: (r.created_at, r.id))

    def latest_chain_head(self) -> t.Optional[BackupRecord]:
        """Newest full or incremental record, the base for the next incremental."""
        candidates = [r for r in self.list_records() if r.type != BackupType.SNAPSHOT]
        return candidates[-1] if candidates else None

    def resolve(self, backup_id: str) -> ResolvedState:
        """Effective file state of a backup after chain resolution."""
        return resolve_state(resolve_chain(self.load_manifest, backup_id))

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_full(
        self,
        source_root: Path,
        rules: t.Optional[RuleEngine] = None,
        cancel_event: t.Optional[threading.Event] = None,
    ) -> BackupRecord:
        """Capture every enumerated file of source_root."""
        return self._create_complete(BackupType.FULL, source_root, rules, None, cancel_event)

    def create_snapshot(
        self,
        source_root: Path,
        rules: t.Optional[RuleEngine],
        label: str,
        cancel_event: t.Optional[threading.Event] = None,
    ) -> BackupRecord:
        """Capture every enumerated file of source_root as a labelled snapshot."""
        if not label or not label.strip():
            raise ValueError("Snapshot label must not be empty")
        return self._create_complete(BackupType.SNAPSHOT, source_root, rules, label, cancel_event)

    def create_incremental(
        self,
        source_root: Path,
        rules: t.Optional[RuleEngine],
        base_id: t.Optional[str],
        cancel_event: t.Optional[threading.Event] = None,
    ) -> BackupRecord:
        """Capture only what changed since the resolved state of base_id.

        Added and modified files are copied; files present in the base but
        gone now are recorded as tombstones. Without a base this falls back
        to a full backup.

        Raises:
            ManifestError: If base_id cannot be loaded
            ChainResolutionError: If base_id's chain is broken
        """
        if base_id is None:
            logger.info("No base backup available, creating a full backup instead")
            return self.create_full(source_root, rules, cancel_event)

        base_record = self.load_manifest(base_id)
        if base_record.type == BackupType.SNAPSHOT:
            raise ValueError(f"Snapshot {base_id} cannot be the base of an incremental backup")
        base_files = self.resolve(base_id).files

        scan = self._scan(source_root, rules)
        backup_id, backup_path = self._allocate_backup_dir(BackupType.INCREMENTAL)
        logger.info(f"Creating incremental backup {backup_id} on top of {base_id}")

        def capture(source_file: SourceFile) -> _Captured:
            return self._capture_if_changed(source_file, backup_path, base_files.get(source_file.relative_path))

        captured = self._capture_all(scan.files, capture, backup_path, cancel_event)

        entries = [c.entry for c in captured if c.entry is not None]
        warnings = self._warnings(scan, captured)

        present = {f.relative_path for f in scan.files}
        for path in sorted(base_files):
            if path in present:
                continue
            if scan.is_skipped(path):
                warnings.append(f"{path}: not recorded as deleted because it could not be read")
                continue
            entries.append(FileEntry(relative_path=path, content_hash=None, size=0))

        return self._finish(
            backup_id, backup_path, BackupType.INCREMENTAL, entries, warnings, base_backup_id=base_id
        )

    def _create_complete(
        self,
        kind: BackupType,
        source_root: Path,
        rules: t.Optional[RuleEngine],
        label: t.Optional[str],
        cancel_event: t.Optional[threading.Event],
    ) -> BackupRecord:
        scan = self._scan(source_root, rules)
        backup_id, backup_path = self._allocate_backup_dir(kind)
        logger.info(f"Creating {kind.value} backup {backup_id} of {scan.total_files} files")

        def capture(source_file: SourceFile) -> _Captured:
            return self._capture_file(source_file, backup_path)

        captured = self._capture_all(scan.files, capture, backup_path, cancel_event)
        entries = [c.entry for c in captured if c.entry is not None]

        return self._finish(
            backup_id, backup_path, kind, entries, self._warnings(scan, captured), label=label
        )

    def _scan(self, source_root: Path, rules: t.Optional[RuleEngine]) -> ScanResult:
        enumerator = FileEnumerator(
            rules=rules,
            exclude_dirs=[self.backup_root],
            follow_symlinks=self.follow_symlinks,
        )
        return enumerator.scan(Path(source_root))

    def _capture_all(
        self,
        files: t.List[SourceFile],
        capture: t.Callable[[SourceFile], _Captured],
        backup_path: Path,
        cancel_event: t.Optional[threading.Event],
    ) -> t.List[_Captured]:
        captured, cancelled = run_per_file(
            files,
            capture,
            max_workers=self.max_workers,
            cancel_event=cancel_event,
            desc="Backing up files",
            show_progress=self.show_progress,
        )
        if cancelled:
            shutil.rmtree(backup_path, ignore_errors=True)
            raise OperationCancelledError(
                f"Backup cancelled after {len(captured)}/{len(files)} files", str(backup_path)
            )
        return captured

    def _capture_file(self, source_file: SourceFile, backup_path: Path) -> _Captured:
        """Copy one file into the backup, hashing the bytes as they are stored."""
        path = source_file.relative_path
        try:
            destination = safe_join(backup_path, path)
            size, digest = atomic_copy(
                source_file.absolute_path,
                destination,
                algorithm=self.checksum.algorithm,
                chunk_size=self.checksum.chunk_size,
            )
        except (OSError, ValueError) as e:
            message = getattr(e, "strerror", None) or str(e)
            logger.warning(f"Failed to back up {path}: {message}")
            return _Captured(path, error=CopyError(f"Failed to back up {path}: {message}", path))

        logger.debug(f"Backed up {path} ({size} bytes)")
        return _Captured(path, entry=FileEntry(relative_path=path, content_hash=digest, size=size))

    def _capture_if_changed(
        self, source_file: SourceFile, backup_path: Path, base: t.Optional[ResolvedFile]
    ) -> _Captured:
        path = source_file.relative_path
        if base is not None:
            # Compare with the digest the base recorded, in its own algorithm.
            try:
                current_hash = calculate_file_hash(
                    source_file.absolute_path, base.hash_algorithm, self.checksum.chunk_size
                )
            except OSError as e:
                logger.warning(f"Cannot hash {path}: {e.strerror or e}")
                return _Captured(path, error=CopyError(f"Cannot read {path}: {e.strerror or e}", path))
            if current_hash == base.content_hash:
                return _Captured(path)

        captured = self._capture_file(source_file, backup_path)
        if (
            base is not None
            and base.hash_algorithm == self.checksum.algorithm
            and captured.entry is not None
            and captured.entry.content_hash == base.content_hash
        ):
            # Reverted to the base content between hashing and copying.
            safe_join(backup_path, path).unlink(missing_ok=True)
            return _Captured(path)
        return captured

    @staticmethod
    def _warnings(scan: ScanResult, captured: t.List[_Captured]) -> t.List[str]:
        warnings = [str(e) for e in scan.errors]
        warnings.extend(str(c.error) for c in captured if c.error is not None)
        return warnings

    def _finish(
        self,
        backup_id: str,
        backup_path: Path,
        kind: BackupType,
        entries: t.List[FileEntry],
        warnings: t.List[str],
        base_backup_id: t.Optional[str] = None,
        label: t.Optional[str] = None,
    ) -> BackupRecord:
        record = BackupRecord(
            id=backup_id,
            type=kind,
            created_at=now_iso(),
            path=str(backup_path),
            checksum=self.checksum.aggregate_checksum((e.relative_path, e.content_hash) for e in entries),
            size=sum(e.size for e in entries),
            base_backup_id=base_backup_id,
            label=label,
            hash_algorithm=self.checksum.algorithm,
            included_files=entries,
            warnings=warnings,
        )

        try:
            ManifestManager(backup_path).save_manifest(record)
        except OSError as e:
            shutil.rmtree(backup_path, ignore_errors=True)
            raise StorageError(f"Cannot write manifest for {backup_id}: {e}", str(backup_path)) from e

        self.cache.put(backup_id, record)
        logger.info(
            f"{kind.value.capitalize()} backup {backup_id} created: "
            f"{len(record.stored_files)} files stored, {len(record.tombstones)} deleted, "
            f"{len(warnings)} warnings"
        )
        return record

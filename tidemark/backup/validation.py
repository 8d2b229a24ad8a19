"""Backup validation: recompute checksums and compare against manifests."""

import typing as t

from ..util.concurrency import run_per_file
from ..util.logging import get_logger
from .checksum import ChecksumEngine
from .errors import BackupError, ChainResolutionError, ChecksumMismatchError, ManifestError, MissingFileError
from .manifest import MANIFEST_NAME, BackupRecord, FileEntry
from .restore import resolve_chain
from .results import ValidationResult

if t.TYPE_CHECKING:
    from .storage import BackupStore

logger = get_logger(__name__)


class ValidationEngine:
    """Checks stored copies against the hashes recorded in their manifests.

    Validation is read-only: nothing is repaired, moved or deleted, and
    nothing is raised. Every problem ends up in the returned result.
    """

    def __init__(self, store: "BackupStore", max_workers: int = 1, show_progress: bool = False):
        self.store = store
        self.max_workers = max_workers
        self.show_progress = show_progress

    def _load(self, backup_id: str) -> BackupRecord:
        return self.store.load_manifest(backup_id, use_cache=False)

    def validate(self, backup_id: str, include_chain: bool = False) -> ValidationResult:
        """Validate one backup, optionally together with every ancestor it depends on."""
        result = ValidationResult(backup_id=backup_id)

        try:
            if include_chain:
                records = resolve_chain(self._load, backup_id)
            else:
                records = [self._load(backup_id)]
        except (ManifestError, ChainResolutionError) as e:
            logger.error(f"Cannot validate {backup_id}: {e}")
            result.errors.append(e)
            return result

        for record in records:
            self._validate_record(record, result)

        if result.success:
            logger.info(f"Backup {backup_id} validated: {result.checked_files} files checked")
        else:
            logger.warning(f"Backup {backup_id} is corrupted: {len(result.errors)} problems found")
        return result

    def _validate_record(self, record: BackupRecord, result: ValidationResult) -> None:
        try:
            checksum = ChecksumEngine(record.hash_algorithm, self.store.checksum.chunk_size)
        except ValueError as e:
            result.errors.append(ManifestError(f"Backup {record.id}: {e}", MANIFEST_NAME))
            return

        recomputed = checksum.aggregate_checksum((e.relative_path, e.content_hash) for e in record.included_files)
        if recomputed != record.checksum:
            logger.warning(f"Manifest checksum of {record.id} does not match its entries")
            result.errors.append(ChecksumMismatchError(MANIFEST_NAME, record.checksum, recomputed))

        problems, _ = run_per_file(
            record.stored_files,
            lambda entry: self._check_file(record, entry, checksum),
            max_workers=self.max_workers,
            desc=f"Validating {record.id}",
            show_progress=self.show_progress,
        )
        result.errors.extend(p for p in problems if p is not None)
        result.checked_files += len(record.stored_files)
        result.checked_backups.append(record.id)

    def _check_file(
        self, record: BackupRecord, entry: FileEntry, checksum: ChecksumEngine
    ) -> t.Optional[BackupError]:
        path = entry.relative_path
        try:
            stored = self.store.stored_file_path(record.id, path)
        except ValueError:
            return MissingFileError(path, "Manifest entry has an unsafe path")

        if not stored.is_file():
            logger.warning(f"{record.id}: {path} is missing")
            return MissingFileError(path)

        try:
            actual = checksum.hash_file(stored)
        except OSError as e:
            logger.warning(f"{record.id}: cannot read {path}: {e.strerror or e}")
            return MissingFileError(path, f"Stored copy unreadable: {e.strerror or e}")

        if actual != entry.content_hash:
            logger.warning(f"{record.id}: checksum mismatch for {path}")
            return ChecksumMismatchError(path, entry.content_hash, actual)

        logger.debug(f"{record.id}: {path} OK")
        return None

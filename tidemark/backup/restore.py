"""Backup restore functionality."""

import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Set, Tuple

from ..util.concurrency import run_per_file
from ..util.hashing import DEFAULT_CHUNK_SIZE, ContentMismatch
from ..util.logging import get_logger
from ..util.paths import atomic_copy, safe_join
from .errors import (
    BackupError,
    ChainResolutionError,
    ChecksumMismatchError,
    CopyError,
    ManifestError,
    MissingFileError,
    OperationCancelledError,
)
from .manifest import BackupRecord, BackupType
from .results import RestoreResult

if TYPE_CHECKING:
    from .storage import BackupStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class ResolvedFile:
    """Where the effective content of one path lives in the store."""

    relative_path: str
    content_hash: str
    size: int
    backup_id: str
    hash_algorithm: str


@dataclass
class ResolvedState:
    """Effective file state after applying a backup chain oldest to newest."""

    backup_id: str
    files: Dict[str, ResolvedFile] = field(default_factory=dict)
    removed: Set[str] = field(default_factory=set)
    chain: List[str] = field(default_factory=list)


def resolve_chain(load_manifest: Callable[[str], BackupRecord], backup_id: str) -> List[BackupRecord]:
    """Collect a backup and its ancestors, ordered oldest first.

    Follows baseBackupId links until a record without a base is reached.

    Raises:
        ManifestError: If backup_id itself cannot be loaded
        ChainResolutionError: If an ancestor is missing or the chain loops
    """
    chain: List[BackupRecord] = []
    seen: Set[str] = set()
    current_id: Optional[str] = backup_id

    while current_id is not None:
        if current_id in seen:
            raise ChainResolutionError(f"Cyclic backup chain through {current_id}", current_id)
        seen.add(current_id)

        try:
            record = load_manifest(current_id)
        except ManifestError as e:
            if not chain:
                raise
            raise ChainResolutionError(
                f"Backup {chain[-1].id} references missing or unreadable base {current_id}", current_id
            ) from e

        chain.append(record)
        current_id = record.base_backup_id

    chain.reverse()
    return chain


def resolve_state(chain: List[BackupRecord]) -> ResolvedState:
    """Apply each record's entries in order to build the effective file map.

    A full or snapshot record seeds the map; incremental entries overwrite
    by path and tombstones remove the path.
    """
    if not chain:
        raise ChainResolutionError("Cannot resolve an empty backup chain")

    state = ResolvedState(backup_id=chain[-1].id)

    for record in chain:
        if record.type != BackupType.INCREMENTAL:
            state.files.clear()
            state.removed.clear()

        for entry in record.included_files:
            if entry.is_tombstone:
                state.files.pop(entry.relative_path, None)
                state.removed.add(entry.relative_path)
            else:
                state.files[entry.relative_path] = ResolvedFile(
                    relative_path=entry.relative_path,
                    content_hash=entry.content_hash,
                    size=entry.size,
                    backup_id=record.id,
                    hash_algorithm=record.hash_algorithm,
                )
                state.removed.discard(entry.relative_path)

        state.chain.append(record.id)

    return state


class RestoreEngine:
    """Materialises a resolved state into a target directory."""

    def __init__(
        self,
        store: "BackupStore",
        verify_integrity: bool = True,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_workers: int = 1,
        show_progress: bool = False,
    ):
        self.store = store
        self.verify_integrity = verify_integrity
        self.chunk_size = chunk_size
        self.max_workers = max_workers
        self.show_progress = show_progress

    def restore(
        self,
        backup_id: str,
        target_root: Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> RestoreResult:
        """Resolve the backup chain ending at backup_id and restore it.

        Raises:
            ManifestError: If the backup does not exist or its manifest is unreadable
            ChainResolutionError: If the incremental chain is broken
        """
        chain = resolve_chain(self.store.load_manifest, backup_id)
        logger.info(f"Restoring {backup_id} (chain: {' -> '.join(r.id for r in chain)})")
        return self.materialize(resolve_state(chain), target_root, cancel_event)

    def restore_record(
        self,
        record: BackupRecord,
        target_root: Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> RestoreResult:
        """Restore a self-contained record (full or snapshot) without a chain walk."""
        if record.base_backup_id is not None:
            raise ChainResolutionError(f"Backup {record.id} depends on {record.base_backup_id}", record.id)
        return self.materialize(resolve_state([record]), target_root, cancel_event)

    def materialize(
        self,
        state: ResolvedState,
        target_root: Path,
        cancel_event: Optional[threading.Event] = None,
    ) -> RestoreResult:
        """Delete every tombstoned file, then write every resolved file.

        Removals run first and deepest first, so a path that changed between
        file and directory is cleared before its new content is written.
        Per-file failures are collected and the remaining files are still
        processed.
        """
        started = time.monotonic()
        target_root = Path(target_root)
        result = RestoreResult(backup_id=state.backup_id, target_root=str(target_root))

        removals = sorted(state.removed, key=lambda p: (-p.count("/"), p))
        writes = [state.files[path] for path in sorted(state.files)]
        total = len(removals) + len(writes)

        logger.info(f"Restoring {len(writes)} files to {target_root}")

        # Sequential: pruning a parent must not race a sibling's unlink.
        removed, cancelled = run_per_file(
            removals,
            lambda path: (path, *self._remove_single_file(path, target_root)),
            max_workers=1,
            cancel_event=cancel_event,
            desc="Removing deleted files",
            show_progress=self.show_progress,
        )
        for path, error, changed in removed:
            if error is not None:
                logger.error(f"Failed to remove {path}: {error}")
                result.errors.append(error)
            elif changed:
                result.removed_files.append(path)

        written: List[Tuple[str, Optional[BackupError]]] = []
        if not cancelled:
            written, cancelled = run_per_file(
                writes,
                lambda resolved: (resolved.relative_path, self._restore_single_file(resolved, target_root)),
                max_workers=self.max_workers,
                cancel_event=cancel_event,
                desc="Restoring files",
                show_progress=self.show_progress,
            )
        for path, error in written:
            if error is not None:
                logger.error(f"Failed to restore {path}: {error}")
                result.errors.append(error)
            else:
                result.restored_files.append(path)

        if cancelled:
            result.errors.append(OperationCancelledError(
                f"Restore cancelled after {len(removed) + len(written)}/{total} files", str(target_root)
            ))

        result.duration = time.monotonic() - started
        logger.info(
            f"Restore completed: {len(result.restored_files)}/{len(writes)} files restored, "
            f"{len(result.removed_files)} removed, {len(result.errors)} errors"
        )
        return result

    def _restore_single_file(self, resolved: ResolvedFile, target_root: Path) -> Optional[BackupError]:
        path = resolved.relative_path
        try:
            source = self.store.stored_file_path(resolved.backup_id, path)
            destination = safe_join(target_root, path)
        except ValueError as e:
            return CopyError(str(e), path)

        if not source.is_file():
            return MissingFileError(path, f"Stored copy missing from backup {resolved.backup_id}")
        try:
            if destination.is_dir() and not destination.is_symlink():
                if any(destination.iterdir()):
                    return CopyError("Target path is a non-empty directory", path)
                destination.rmdir()
            if self.verify_integrity:
                atomic_copy(
                    source, destination,
                    algorithm=resolved.hash_algorithm,
                    chunk_size=self.chunk_size,
                    expected_hash=resolved.content_hash,
                )
            else:
                atomic_copy(source, destination, chunk_size=self.chunk_size)
        except ContentMismatch as e:
            return ChecksumMismatchError(path, e.expected, e.actual)
        except OSError as e:
            return CopyError(f"Failed to restore {path}: {e.strerror or e}", path)

        logger.debug(f"Restored file: {path} <- {resolved.backup_id}")
        return None

    def _remove_single_file(self, path: str, target_root: Path) -> Tuple[Optional[BackupError], bool]:
        try:
            destination = safe_join(target_root, path)
        except ValueError as e:
            return CopyError(str(e), path), False

        if not (destination.is_symlink() or destination.exists()):
            return None, False
        if destination.is_dir() and not destination.is_symlink():
            return CopyError("Cannot remove deleted file: target path is a directory", path), False

        try:
            destination.unlink()
        except FileNotFoundError:
            return None, False
        except OSError as e:
            return CopyError(f"Failed to remove {path}: {e.strerror or e}", path), False

        logger.debug(f"Removed deleted file: {path}")
        self._prune_empty_parents(destination.parent, target_root)
        return None, True

    @staticmethod
    def _prune_empty_parents(directory: Path, target_root: Path) -> None:
        """Remove directories left empty by a removal, stopping below target_root."""
        while directory != target_root:
            try:
                if any(directory.iterdir()):
                    return
                directory.rmdir()
            except OSError as e:
                logger.warning(f"Cannot remove empty directory {directory}: {e.strerror or e}")
                return
            logger.debug(f"Removed empty directory: {directory}")
            directory = directory.parent

"""Single-writer lock for a backup store."""

import os
from pathlib import Path

from tenacity import RetryError, Retrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..util.logging import get_logger
from .errors import StorageError, StoreLockedError

logger = get_logger(__name__)

LOCK_NAME = ".tidemark.lock"


class StoreLock:
    """Lock file serialising writers (create and restore) on one store root.

    The lock file is created with O_EXCL, so only one holder can exist.
    Acquisition is retried with exponential backoff before giving up.
    """

    def __init__(self, backup_root: Path, retries: int = 5, max_wait: float = 2.0):
        self.backup_root = Path(backup_root)
        self.lock_path = self.backup_root / LOCK_NAME
        self.retries = max(1, retries)
        self.max_wait = max_wait
        self._held = False

    def _try_acquire(self) -> None:
        self.backup_root.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))

    def acquire(self) -> None:
        """Take the lock.

        Raises:
            StoreLockedError: If another holder keeps the lock through every retry
            StorageError: If the lock file cannot be created at all
        """
        try:
            for attempt in Retrying(
                stop=stop_after_attempt(self.retries),
                wait=wait_exponential(multiplier=0.05, max=self.max_wait),
                retry=retry_if_exception_type(FileExistsError),
            ):
                with attempt:
                    self._try_acquire()
        except RetryError as e:
            raise StoreLockedError(
                f"Backup store is locked by another operation (pid {self.holder_pid()})",
                str(self.lock_path),
            ) from e
        except OSError as e:
            raise StorageError(f"Cannot create store lock: {e}", str(self.lock_path)) from e

        self._held = True
        logger.debug(f"Acquired store lock {self.lock_path}")

    def release(self) -> None:
        if not self._held:
            return
        self.lock_path.unlink(missing_ok=True)
        self._held = False
        logger.debug(f"Released store lock {self.lock_path}")

    def holder_pid(self) -> str:
        try:
            return self.lock_path.read_text().strip() or "unknown"
        except OSError:
            return "unknown"

    @property
    def held(self) -> bool:
        return self._held

    def __enter__(self) -> "StoreLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

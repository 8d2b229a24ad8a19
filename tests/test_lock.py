"""Tests for the backup store lock."""

import os

import pytest

from tidemark.backup.errors import StoreLockedError
from tidemark.backup.lock import LOCK_NAME, StoreLock


class TestStoreLock:
    """Test lock acquisition and release."""

    def test_acquire_and_release(self, tmp_path):
        """Test the lock file exists only while held."""
        lock = StoreLock(tmp_path / "store")

        with lock:
            assert lock.held
            assert (tmp_path / "store" / LOCK_NAME).read_text() == str(os.getpid())
            assert lock.holder_pid() == str(os.getpid())

        assert not lock.held
        assert not (tmp_path / "store" / LOCK_NAME).exists()

    def test_second_holder_blocked(self, tmp_path):
        """Test a second lock on the same store fails after retrying."""
        first = StoreLock(tmp_path, retries=2, max_wait=0.01)
        second = StoreLock(tmp_path, retries=2, max_wait=0.01)

        with first:
            with pytest.raises(StoreLockedError, match=str(os.getpid())):
                second.acquire()

        assert not second.held
        with second:
            assert second.held

    def test_release_without_acquire(self, tmp_path):
        """Test releasing an unheld lock leaves other holders alone."""
        (tmp_path / LOCK_NAME).write_text("999")

        StoreLock(tmp_path).release()

        assert (tmp_path / LOCK_NAME).exists()

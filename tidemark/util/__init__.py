"""Utility module initialization."""

from .concurrency import run_per_file
from .hashing import (
    ContentMismatch,
    calculate_bytes_hash,
    calculate_file_hash,
    calculate_stream_hash,
    new_hasher,
)
from .logging import get_logger, setup_logging
from .paths import (
    atomic_copy,
    atomic_write_text,
    ensure_directory,
    format_size,
    safe_join,
)
from .timeutil import (
    epoch_millis,
    format_duration,
    generate_backup_id,
    now_iso,
)

__all__ = [
    # concurrency
    "run_per_file",
    # hashing
    "ContentMismatch",
    "calculate_bytes_hash",
    "calculate_file_hash",
    "calculate_stream_hash",
    "new_hasher",
    # logging
    "get_logger",
    "setup_logging",
    # paths
    "atomic_copy",
    "atomic_write_text",
    "ensure_directory",
    "format_size",
    "safe_join",
    # timeutil
    "epoch_millis",
    "format_duration",
    "generate_backup_id",
    "now_iso",
]

"""Utility functions for hashing operations."""

import hashlib
from pathlib import Path
from typing import BinaryIO

DEFAULT_ALGORITHM = "sha256"
DEFAULT_CHUNK_SIZE = 64 * 1024


def new_hasher(algorithm: str = DEFAULT_ALGORITHM):
    """Create a hash object, rejecting unknown algorithm names early."""
    try:
        return hashlib.new(algorithm)
    except ValueError as e:
        raise ValueError(f"Unsupported hash algorithm: {algorithm}") from e


def calculate_stream_hash(
    stream: BinaryIO,
    algorithm: str = DEFAULT_ALGORITHM,
    chunk_size: int = DEFAULT_CHUNK_SIZE
) -> str:
    """Calculate hash of a binary stream."""
    hasher = new_hasher(algorithm)

    while chunk := stream.read(chunk_size):
        hasher.update(chunk)

    return hasher.hexdigest()


def calculate_file_hash(
    file_path: Path,
    algorithm: str = DEFAULT_ALGORITHM,
    chunk_size: int = DEFAULT_CHUNK_SIZE
) -> str:
    """Calculate hash of a file, reading it in fixed-size chunks.

    Raises OSError if the file cannot be read.
    """
    with open(file_path, "rb") as f:
        return calculate_stream_hash(f, algorithm, chunk_size)


def calculate_bytes_hash(data: bytes, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Calculate hash of bytes data."""
    hasher = new_hasher(algorithm)
    hasher.update(data)
    return hasher.hexdigest()


class ContentMismatch(ValueError):
    """Copied content did not hash to the expected value."""

    def __init__(self, expected: str, actual: str):
        super().__init__(f"expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual

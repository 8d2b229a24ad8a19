"""Per-file and aggregate content checksums."""

import typing as t
from pathlib import Path

from ..util.hashing import DEFAULT_ALGORITHM, DEFAULT_CHUNK_SIZE, calculate_file_hash, new_hasher


class ChecksumEngine:
    """Computes content hashes for files and whole file sets."""

    def __init__(self, algorithm: str = DEFAULT_ALGORITHM, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        """Initialize checksum engine.

        Args:
            algorithm: Any name accepted by hashlib.new
            chunk_size: Bytes read per chunk; bounds memory use per file
        """
        new_hasher(algorithm)
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.algorithm = algorithm
        self.chunk_size = chunk_size

    def hash_file(self, path: Path) -> str:
        """Hash a file's content.

        Raises:
            OSError: If the file cannot be read
        """
        return calculate_file_hash(path, self.algorithm, self.chunk_size)

    def aggregate_checksum(self, entries: t.Iterable[t.Tuple[str, t.Optional[str]]]) -> str:
        """Hash a set of (relative_path, content_hash) pairs.

        Entries are sorted by path first, so the result does not depend on
        enumeration order. A ``None`` hash marks a deleted file.
        """
        hasher = new_hasher(self.algorithm)
        for relative_path, content_hash in sorted(entries, key=lambda e: e[0]):
            hasher.update(relative_path.encode("utf-8", "surrogateescape"))
            hasher.update(b"\0")
            hasher.update((content_hash or "-").encode("ascii"))
            hasher.update(b"\n")
        return hasher.hexdigest()

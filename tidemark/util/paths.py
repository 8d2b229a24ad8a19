"""Utility functions for path operations."""

import os
import shutil
import tempfile
from pathlib import Path, PurePosixPath
from typing import Optional, Tuple

from .hashing import DEFAULT_CHUNK_SIZE, ContentMismatch, new_hasher

TEMP_SUFFIX = ".tmp"


def ensure_directory(path: Path) -> Path:
    """Ensure directory exists, creating it if necessary."""
    path.mkdir(parents=True, exist_ok=True)
    return path


def safe_join(root: Path, relative_path: str) -> Path:
    """Join a manifest-style relative path onto root.

    Rejects absolute paths and any '..' component so a manifest can never
    address a location outside its root.
    """
    rel = PurePosixPath(relative_path)
    if not relative_path or rel.is_absolute() or ".." in rel.parts or rel.parts[:1] == (".",):
        raise ValueError(f"Unsafe relative path: {relative_path!r}")
    return root.joinpath(*rel.parts)


def _temp_sibling(destination: Path) -> Tuple[int, Path]:
    ensure_directory(destination.parent)
    fd, name = tempfile.mkstemp(
        prefix=f".{destination.name}.", suffix=TEMP_SUFFIX, dir=destination.parent
    )
    return fd, Path(name)


def atomic_copy(
    source: Path,
    destination: Path,
    algorithm: Optional[str] = None,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    expected_hash: Optional[str] = None,
) -> Tuple[int, Optional[str]]:
    """Copy source to destination through a temp file in the same directory.

    The content is streamed in chunks and hashed on the way through when an
    algorithm is given. The temp file is renamed over the destination only
    after the copy is complete (and, with expected_hash, verified), so the
    destination never holds a partial file.

    Returns:
        Tuple of (bytes copied, hex digest or None)

    Raises:
        OSError: On any read or write failure
        ContentMismatch: If expected_hash is given and the content differs
    """
    if expected_hash is not None and algorithm is None:
        raise ValueError("expected_hash requires an algorithm")

    fd, tmp_path = _temp_sibling(destination)
    hasher = new_hasher(algorithm) if algorithm else None
    size = 0

    try:
        with os.fdopen(fd, "wb") as out, open(source, "rb") as src:
            while chunk := src.read(chunk_size):
                out.write(chunk)
                size += len(chunk)
                if hasher is not None:
                    hasher.update(chunk)
            out.flush()
            os.fsync(out.fileno())

        digest = hasher.hexdigest() if hasher is not None else None
        if expected_hash is not None and digest != expected_hash:
            raise ContentMismatch(expected_hash, digest)

        shutil.copystat(source, tmp_path)
        os.replace(tmp_path, destination)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    return size, digest


def atomic_write_text(destination: Path, text: str, encoding: str = "utf-8") -> None:
    """Write text to destination via temp file and rename."""
    fd, tmp_path = _temp_sibling(destination)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as out:
            out.write(text)
            out.flush()
            os.fsync(out.fileno())
        os.replace(tmp_path, destination)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def format_size(size_bytes: float) -> str:
    """Format file size in human readable format."""
    if size_bytes == 0:
        return "0 B"

    size_names = ["B", "KB", "MB", "GB", "TB"]
    i = 0
    while size_bytes >= 1024.0 and i < len(size_names) - 1:
        size_bytes /= 1024.0
        i += 1

    return f"{size_bytes:.1f} {size_names[i]}"

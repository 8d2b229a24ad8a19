"""Source tree enumeration for backups."""

import os
import stat
import typing as t
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from ..util.logging import get_logger
from .errors import EnumerationError
from .rules import RuleEngine

logger = get_logger(__name__)


@dataclass(frozen=True)
class SourceFile:
    """A regular file found in the source tree."""

    absolute_path: Path
    relative_path: str
    size: int
    modified_at: float


@dataclass
class ScanResult:
    """Files found by a walk plus the entries that had to be skipped."""

    files: t.List[SourceFile] = field(default_factory=list)
    errors: t.List[EnumerationError] = field(default_factory=list)

    @property
    def total_files(self) -> int:
        return len(self.files)

    @property
    def total_size(self) -> int:
        return sum(f.size for f in self.files)

    @property
    def skipped_paths(self) -> t.List[str]:
        """Relative paths of entries that could not be read."""
        return [e.path for e in self.errors if e.path]

    def add_error(self, relative_path: str, message: str) -> None:
        logger.warning(f"Skipping {relative_path}: {message}")
        self.errors.append(EnumerationError(message, relative_path))

    def is_skipped(self, relative_path: str) -> bool:
        """True if relative_path is, or lies under, an entry that could not be read."""
        rel = PurePosixPath(relative_path)
        for skipped in self.skipped_paths:
            skipped_path = PurePosixPath(skipped)
            if rel == skipped_path or skipped_path in rel.parents:
                return True
        return False


class FileEnumerator:
    """Walks a source tree applying include/exclude rules.

    The walk uses an explicit stack rather than recursion. Directory
    symlinks are followed, but each directory (identified by device and
    inode) is entered at most once, so symlink cycles terminate. Entries
    that cannot be read are recorded as errors and skipped.
    """

    def __init__(
        self,
        rules: t.Optional[RuleEngine] = None,
        exclude_dirs: t.Optional[t.Iterable[Path]] = None,
        follow_symlinks: bool = True,
    ) -> None:
        self.rules = rules or RuleEngine()
        self.exclude_dirs = {self._resolve(p) for p in (exclude_dirs or [])}
        self.follow_symlinks = follow_symlinks

    @staticmethod
    def _resolve(path: Path) -> Path:
        return Path(os.path.realpath(path))

    def scan(self, root: Path) -> ScanResult:
        """Enumerate root and return files sorted by relative path.

        Args:
            root: Directory to walk

        Returns:
            ScanResult with sorted files and collected errors

        Raises:
            EnumerationError: If root itself is not a readable directory
        """
        root = Path(root)
        if not root.is_dir():
            raise EnumerationError("Source root is not a directory", str(root))

        result = ScanResult()
        visited: t.Set[t.Tuple[int, int]] = set()
        root_stat = root.stat()
        visited.add((root_stat.st_dev, root_stat.st_ino))

        stack: t.List[t.Tuple[Path, str]] = [(root, "")]

        while stack:
            directory, rel_dir = stack.pop()
            try:
                with os.scandir(directory) as it:
                    entries = sorted(it, key=lambda e: e.name)
            except OSError as e:
                result.add_error(rel_dir or ".", f"Cannot list directory: {e.strerror or e}")
                continue

            for entry in entries:
                rel_path = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
                self._visit(entry, rel_path, result, visited, stack)

        result.files.sort(key=lambda f: f.relative_path)
        logger.debug(f"Enumerated {result.total_files} files under {root} ({len(result.errors)} skipped)")
        return result

    def _visit(self, entry: os.DirEntry, rel_path: str, result: ScanResult, visited, stack) -> None:
        path = Path(entry.path)

        try:
            is_link = entry.is_symlink()
            if is_link and not self.follow_symlinks:
                return
            st = entry.stat(follow_symlinks=True)
        except FileNotFoundError:
            if entry.is_symlink():
                result.add_error(rel_path, "Broken symlink")
            else:
                result.add_error(rel_path, "File vanished during scan")
            return
        except OSError as e:
            result.add_error(rel_path, f"Cannot stat entry: {e.strerror or e}")
            return

        if stat.S_ISDIR(st.st_mode):
            if self._resolve(path) in self.exclude_dirs:
                logger.debug(f"Skipping backup store directory: {rel_path}")
                return
            if not self.rules.should_descend(rel_path):
                return
            key = (st.st_dev, st.st_ino)
            if key in visited:
                if is_link:
                    logger.debug(f"Symlink cycle or repeat skipped: {rel_path}")
                return
            visited.add(key)
            stack.append((path, rel_path))
            return

        if not stat.S_ISREG(st.st_mode):
            return
        if not self.rules.should_include_file(rel_path, st.st_size):
            return

        result.files.append(SourceFile(
            absolute_path=path,
            relative_path=rel_path,
            size=st.st_size,
            modified_at=st.st_mtime,
        ))

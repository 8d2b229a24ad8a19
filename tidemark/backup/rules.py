"""Include/exclude rules applied while enumerating a source tree."""

import fnmatch
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional

from ..util.logging import get_logger

logger = get_logger(__name__)


def match_pattern(relative_path: str, pattern: str) -> bool:
    """Match a POSIX relative path against a glob pattern.

    ``*`` crosses directory separators (fnmatch semantics), ``**/`` may match
    nothing, ``dir/**`` also matches ``dir`` itself, and a pattern without a
    slash is matched against every path component, so ``node_modules``
    matches that directory at any depth.
    """
    pattern = pattern.strip().rstrip("/")
    if not pattern:
        return False
    if pattern in ("**", "*"):
        return True

    if fnmatch.fnmatchcase(relative_path, pattern):
        return True
    if pattern.startswith("**/") and match_pattern(relative_path, pattern[3:]):
        return True
    if pattern.endswith("/**") and fnmatch.fnmatchcase(relative_path, pattern[:-3]):
        return True
    if "/" not in pattern:
        return any(fnmatch.fnmatchcase(part, pattern) for part in PurePosixPath(relative_path).parts)

    return False


class BackupRule:
    """Base class for backup rules."""

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self.enabled = True

    def should_include(self, relative_path: str, size: int) -> bool:
        """Determine if a file should be included in backup."""
        raise NotImplementedError

    def should_descend(self, relative_dir: str) -> bool:
        """Determine if the walker should enter a directory."""
        return True


class SizeLimitRule(BackupRule):
    """Rule based on file size."""

    def __init__(self, max_size_mb: int):
        super().__init__(f"Size limit ({max_size_mb}MB)", f"Exclude files larger than {max_size_mb}MB")
        self.max_size_bytes = max_size_mb * 1024 * 1024

    def should_include(self, relative_path: str, size: int) -> bool:
        return size <= self.max_size_bytes


class PathRule(BackupRule):
    """Rule based on file path patterns."""

    def __init__(self, patterns: List[str], include: bool = True):
        action = "Include" if include else "Exclude"
        super().__init__(f"{action} paths", f"{action} files matching patterns: {', '.join(patterns)}")
        self.patterns = list(patterns)
        self.include = include

    def matches(self, relative_path: str) -> bool:
        return any(match_pattern(relative_path, pattern) for pattern in self.patterns)

    def should_include(self, relative_path: str, size: int) -> bool:
        if self.include:
            return self.matches(relative_path)
        return not self.matches(relative_path)

    def should_descend(self, relative_dir: str) -> bool:
        # Include patterns only filter files; exclusions prune whole subtrees.
        if self.include:
            return True
        return not self.matches(relative_dir)


class RuleEngine:
    """Engine for applying backup rules."""

    def __init__(
        self,
        include_patterns: Optional[List[str]] = None,
        exclude_patterns: Optional[List[str]] = None,
        max_file_size_mb: Optional[int] = None,
    ):
        self.rules: List[BackupRule] = []

        if include_patterns:
            self.add_rule(PathRule(include_patterns, include=True))
        if exclude_patterns:
            self.add_rule(PathRule(exclude_patterns, include=False))
        if max_file_size_mb:
            self.add_rule(SizeLimitRule(max_file_size_mb))

    @classmethod
    def from_config(cls, scanner_config) -> "RuleEngine":
        """Build the rule set described by a ScannerConfig."""
        return cls(
            include_patterns=scanner_config.include_patterns,
            exclude_patterns=scanner_config.exclude_patterns,
            max_file_size_mb=scanner_config.max_file_size_mb,
        )

    def add_rule(self, rule: BackupRule):
        """Add a backup rule."""
        self.rules.append(rule)
        logger.debug(f"Added backup rule: {rule.name}")

    def should_include_file(self, relative_path: str, size: int) -> bool:
        """Determine if a file should be included based on all rules."""
        for rule in self.rules:
            if not rule.enabled:
                continue

            if not rule.should_include(relative_path, size):
                logger.debug(f"File excluded by rule '{rule.name}': {relative_path}")
                return False

        return True

    def should_descend(self, relative_dir: str) -> bool:
        """Determine if a directory should be walked based on all rules."""
        return all(rule.should_descend(relative_dir) for rule in self.rules if rule.enabled)

    def get_rule_summary(self) -> List[Dict[str, Any]]:
        """Get summary of all rules."""
        return [
            {
                "name": rule.name,
                "description": rule.description,
                "enabled": rule.enabled,
                "type": rule.__class__.__name__
            }
            for rule in self.rules
        ]

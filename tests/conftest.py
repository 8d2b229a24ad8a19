"""Shared fixtures: real temporary source trees and backup stores."""

from pathlib import Path
from typing import Dict

import pytest

from tidemark.backup import BackupManager, BackupStore
from tidemark.config import TidemarkConfig


def write_tree(root: Path, files: Dict[str, str]) -> None:
    """Create text files under root from a {relative path: content} map."""
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)


def read_tree(root: Path, skip: str = ".migration-backups") -> Dict[str, str]:
    """Read every regular file under root back into a {relative path: content} map."""
    result = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        if rel == skip or rel.startswith(skip + "/"):
            continue
        if path.is_file():
            result[rel] = path.read_text()
    return result


@pytest.fixture
def source_root(tmp_path):
    """Source tree with three small files."""
    root = tmp_path / "project"
    write_tree(root, {"A": "1", "B": "2", "C": "3"})
    return root


@pytest.fixture
def config(source_root):
    """Configuration pointing at the temporary source tree."""
    cfg = TidemarkConfig(source_root=source_root)
    cfg.backup.lock_retries = 1
    return cfg


@pytest.fixture
def manager(config):
    return BackupManager(config)


@pytest.fixture
def store(tmp_path):
    return BackupStore(tmp_path / "store")

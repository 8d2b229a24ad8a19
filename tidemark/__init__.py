"""
tidemark - backup and restore engine for protecting application state during migrations.

Captures and restores a local file tree with:
- Full, incremental and labelled snapshot backups
- Content-hash based change detection and chain resolution
- Checksum validation to detect corruption or missing files
- Atomic file writes so interrupted operations never leave torn files
"""

__version__ = "0.1.0"
__author__ = "tidemark Contributors"

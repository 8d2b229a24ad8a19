"""Utility functions for time operations."""

import time
from datetime import datetime, timezone
from typing import Optional


def now_iso() -> str:
    """Get current timestamp in ISO 8601 format."""
    return datetime.now(timezone.utc).isoformat()


def format_duration(seconds: float) -> str:
    """Format duration in human readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def epoch_millis() -> int:
    """Current wall-clock time in milliseconds."""
    return time.time_ns() // 1_000_000


def generate_backup_id(kind: str, millis: Optional[int] = None) -> str:
    """Generate a backup ID such as 'full-1767089492432'."""
    if millis is None:
        millis = epoch_millis()
    return f"{kind}-{millis}"

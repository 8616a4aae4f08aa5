from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """Folder-safe stamp used for export directories."""
    return (now or datetime.now(timezone.utc)).strftime("%Y%m%d-%H%M%S")


def format_epoch(seconds: float) -> str:
    return datetime.fromtimestamp(seconds, timezone.utc).strftime("%Y-%m-%d %H:%M UTC")

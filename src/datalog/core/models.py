"""Shared dataclasses for log sessions and row writes."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from .errors import WriteFailure


@dataclass(frozen=True)
class WriteResult:
    """
    Outcome of a single header or row write.

    ``ok`` means the line was handed to the file. ``pending_flush`` marks a
    line that is buffered but could not be flushed yet; ``error`` then holds
    the flush failure.
    """

    row_index: int
    ok: bool = True
    skipped: bool = False
    attempts: int = 1
    pending_flush: bool = False
    error: Optional[WriteFailure] = None

    def __bool__(self) -> bool:
        return self.ok

    def raise_for_error(self) -> None:
        """Re-raise the recorded :class:`WriteFailure`, if any."""
        if self.error is not None:
            raise self.error


@dataclass
class SessionInfo:
    name: str
    path: Path
    columns: Tuple[str, ...]
    timestamp_mode: str
    started_at: datetime
    closed_at: Optional[datetime] = None
    rows_written: int = 0
    failed_rows: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for the ``.meta.json`` sidecar."""
        data: Dict[str, Any] = {
            "name": self.name,
            "file": self.path.name,
            "columns": list(self.columns),
            "timestamp_mode": self.timestamp_mode,
            "started_at": self.started_at.isoformat(),
            "closed_at": self.closed_at.isoformat() if self.closed_at else None,
            "rows_written": self.rows_written,
            "failed_rows": self.failed_rows,
        }
        return data


__all__ = ["SessionInfo", "WriteResult"]

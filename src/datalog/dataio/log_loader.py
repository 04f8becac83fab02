"""Utilities for loading finished data logs for offline review."""

from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np


def _to_float(text: str) -> float:
    try:
        return float(text)
    except ValueError:
        return np.nan


@dataclass(frozen=True)
class LoadedLog:
    """Header and rows of a log file, all values as text."""

    header: Tuple[str, ...]
    rows: Tuple[Tuple[str, ...], ...]

    def column(self, label: str) -> List[str]:
        """Return every value of the column named *label*."""
        try:
            idx = self.header.index(label)
        except ValueError:
            raise KeyError(f"No column named {label!r}; available: {', '.join(self.header)}") from None
        return [row[idx] for row in self.rows]


def read_log(path: Path) -> LoadedLog:
    """Parse a log file as CSV; the first row is taken as the header."""
    with Path(path).open("r", encoding="utf-8", newline="") as fh:
        reader = csv.reader(fh)
        rows = [tuple(row) for row in reader]
    if not rows:
        return LoadedLog(header=(), rows=())
    return LoadedLog(header=rows[0], rows=tuple(rows[1:]))


def load_numeric(path: Path, columns: Optional[Sequence[str]] = None) -> np.ndarray:
    """
    Load a log file as a 2-D float array.

    Non-numeric cells (state labels, empty fields) become ``nan``. When
    *columns* is given only those columns are returned, in that order.
    """
    log = read_log(path)
    if columns is None:
        indices = list(range(len(log.header)))
    else:
        missing = [c for c in columns if c not in log.header]
        if missing:
            raise KeyError(f"Unknown columns: {', '.join(missing)}")
        indices = [log.header.index(c) for c in columns]

    if not log.rows:
        return np.empty((0, len(indices)))

    return np.array([[_to_float(row[i]) for i in indices] for row in log.rows], dtype=float)


__all__ = ["LoadedLog", "load_numeric", "read_log"]

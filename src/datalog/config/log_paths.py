"""Helpers that codify log file naming.

Sessions, the demo tool and the loader all go through these helpers so a log
file and its metadata sidecar are always named the same way.
"""

from __future__ import annotations

import datetime as _dt
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Allow only alphanumerics, underscore, dot, and dash.
_NAME_RE = re.compile(r"[^A-Za-z0-9_.-]+")

META_SUFFIX = ".meta.json"


def sanitize_log_name(name: str) -> str:
    """
    Sanitize a user-provided log name for use as a file stem.

    - Replace disallowed characters with '_'.
    - Strip leading/trailing underscores and dots.
    - Fall back to 'datalog' if nothing remains.
    """
    cleaned = _NAME_RE.sub("_", str(name).strip()).strip("_.")
    return cleaned or "datalog"


def _format_start_ts(start_dt: _dt.datetime) -> str:
    """Return the canonical timestamp string used in log filenames."""
    return start_dt.strftime("%Y-%m-%d_%H-%M-%S")


@dataclass(frozen=True)
class LogFilePaths:
    """Container with the data file path and its .meta.json sidecar path."""

    data_path: Path
    meta_path: Path


def build_log_file_paths(
    name: str,
    out_dir: Path,
    extension: str,
    start_dt: Optional[_dt.datetime] = None,
) -> LogFilePaths:
    """
    Return full paths for a log file and its metadata companion.

    A *name* that already carries a suffix (``run1.txt``) keeps it; otherwise
    *extension* is appended. When *start_dt* is given the start time is added
    to the stem so repeated runs do not overwrite each other.
    """
    raw = Path(str(name)).name
    stem, suffix = raw, extension
    given = Path(raw).suffix
    if given:
        stem, suffix = raw[: -len(given)], given

    stem = sanitize_log_name(stem)
    if start_dt is not None:
        stem = f"{stem}_{_format_start_ts(start_dt)}"

    data_path = Path(out_dir).expanduser() / f"{stem}{suffix}"
    meta_path = data_path.with_name(data_path.name + META_SUFFIX)
    return LogFilePaths(data_path=data_path, meta_path=meta_path)


__all__ = ["META_SUFFIX", "LogFilePaths", "build_log_file_paths", "sanitize_log_name"]

"""
Runtime configuration for log sessions.

A YAML file configures where logs go and how they are written: output
directory and file extension, the timestamp columns (mode and header
labels), an optional start-time suffix on file names, and durability (retry
once, fsync every row, write the ``.meta.json`` sidecar). Settings may sit at
the top level or under a ``datalog:`` section; keys in the section win over
top-level keys of the same name, and unknown keys are ignored so the file can
be shared with other tools. :meth:`DataLogConfig.sanitized` normalizes the
extension to a leading dot and parses ``timestamp_mode`` strings into
:class:`TimestampMode`, raising ``ValueError`` for unknown modes.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, MutableMapping, Optional

import yaml

from ..core.timestamps import (
    DEFAULT_DELTA_LABEL,
    DEFAULT_ELAPSED_LABEL,
    TimestampMode,
)

DEFAULT_EXTENSION = ".csv"


@dataclass(slots=True)
class DataLogConfig:
    """
    Settings shared by every session built from the same configuration.

    ``directory`` of ``None`` means "use :class:`AppPaths` data root".
    """

    directory: Optional[Path] = None
    extension: str = DEFAULT_EXTENSION
    timestamp_mode: TimestampMode = TimestampMode.DECIMAL_SECONDS
    timestamped_filename: bool = False

    elapsed_label: str = DEFAULT_ELAPSED_LABEL
    delta_label: str = DEFAULT_DELTA_LABEL

    # Failure handling / durability
    retry_once: bool = True
    fsync_each_row: bool = False
    write_metadata: bool = False

    def sanitized(self) -> DataLogConfig:
        """Return a copy with types coerced and empty values defaulted."""
        extension = str(self.extension or "").strip()
        if extension and not extension.startswith("."):
            extension = "." + extension
        directory = self.directory
        if directory is not None and str(directory).strip():
            directory = Path(str(directory)).expanduser()
        else:
            directory = None
        return replace(
            self,
            directory=directory,
            extension=extension or DEFAULT_EXTENSION,
            timestamp_mode=TimestampMode.from_value(self.timestamp_mode),
            timestamped_filename=bool(self.timestamped_filename),
            elapsed_label=str(self.elapsed_label or DEFAULT_ELAPSED_LABEL),
            delta_label=str(self.delta_label or DEFAULT_DELTA_LABEL),
            retry_once=bool(self.retry_once),
            fsync_each_row=bool(self.fsync_each_row),
            write_metadata=bool(self.write_metadata),
        )


def _recognized_fields() -> set[str]:
    """Return the dataclass field names accepted by :class:`DataLogConfig`."""
    return {f.name for f in fields(DataLogConfig)}


def _normalize_mapping(data: Mapping[str, Any]) -> MutableMapping[str, Any]:
    """Flatten a top-level ``datalog`` section into the root mapping."""
    section = data.get("datalog")
    if isinstance(section, Mapping):
        merged: MutableMapping[str, Any] = {
            key: value for key, value in data.items() if key != "datalog"
        }
        # section keys override top-level ones
        merged.update(section)
        return merged
    return dict(data)


def config_from_mapping(data: Mapping[str, Any] | None) -> DataLogConfig:
    """Build :class:`DataLogConfig` from ``data`` (ignoring unknown keys)."""
    if not data:
        return DataLogConfig()
    normalized = _normalize_mapping(data)
    known = _recognized_fields()
    payload = {key: normalized[key] for key in normalized.keys() & known}
    return DataLogConfig(**payload).sanitized()


def load_config(path: str | Path | None) -> DataLogConfig:
    """
    Load configuration from the YAML file at ``path``.

    Missing files fall back to the default :class:`DataLogConfig`.
    """
    if path is None:
        return DataLogConfig()
    cfg_path = Path(path)
    if not cfg_path.exists():
        return DataLogConfig()
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"Expected mapping in {cfg_path}, got {type(raw).__name__}")
    return config_from_mapping(raw)


__all__ = ["DEFAULT_EXTENSION", "DataLogConfig", "config_from_mapping", "load_config"]

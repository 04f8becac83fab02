"""Append-only CSV data logging for control loops.

Fields hold the latest value of each measurement; a session writes them as
rows, in a column order fixed when the session is built, optionally preceded
by elapsed-time and delta-time columns.
"""

from .core import (
    DataLogError,
    Field,
    InvalidFieldOrder,
    LogSession,
    ResourceUnavailable,
    SessionBuilder,
    SessionClosed,
    TimestampMode,
    WriteFailure,
    WriteResult,
)
from .config import DataLogConfig, load_config

__version__ = "0.1.0"
__all__ = [
    "DataLogConfig",
    "load_config",
    "DataLogError",
    "Field",
    "InvalidFieldOrder",
    "LogSession",
    "ResourceUnavailable",
    "SessionBuilder",
    "SessionClosed",
    "TimestampMode",
    "WriteFailure",
    "WriteResult",
]

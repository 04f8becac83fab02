"""Core logging primitives: fields, row assembly, timestamps and sessions.

Callers create :class:`Field` objects, declare their order on a
:class:`SessionBuilder` and drive the resulting :class:`LogSession` from
their control loop.
"""

from .errors import (
    DataLogError,
    InvalidFieldOrder,
    ResourceUnavailable,
    SessionClosed,
    WriteFailure,
)
from .field import Field, format_value
from .models import SessionInfo, WriteResult
from .row_buffer import RowBuffer
from .timestamps import TimestampInjector, TimestampMode
from .session import LogSession, SessionBuilder

__all__ = [
    "DataLogError",
    "InvalidFieldOrder",
    "ResourceUnavailable",
    "SessionClosed",
    "WriteFailure",
    "Field",
    "format_value",
    "SessionInfo",
    "WriteResult",
    "RowBuffer",
    "LogSession",
    "SessionBuilder",
    "TimestampInjector",
    "TimestampMode",
]

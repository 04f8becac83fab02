"""Exception hierarchy for data logging sessions."""

from __future__ import annotations

from pathlib import Path


class DataLogError(Exception):
    """Base class for every error raised by :mod:`datalog`."""


class ResourceUnavailable(DataLogError):
    """The output file (or its directory) could not be created or opened."""

    def __init__(self, path: Path, reason: str) -> None:
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"Cannot open log file {self.path}: {reason}")


class WriteFailure(DataLogError):
    """A row could not be written to the output file."""

    def __init__(self, path: Path, row_index: int, reason: str, attempts: int = 1) -> None:
        self.path = Path(path)
        self.row_index = row_index
        self.reason = reason
        self.attempts = attempts
        super().__init__(
            f"Failed to write row {row_index} to {self.path} "
            f"after {attempts} attempt(s): {reason}"
        )


class InvalidFieldOrder(DataLogError):
    """The column order handed to the session builder is empty or ambiguous."""


class SessionClosed(DataLogError):
    """A write was attempted on a session that has already been closed."""


__all__ = [
    "DataLogError",
    "ResourceUnavailable",
    "WriteFailure",
    "InvalidFieldOrder",
    "SessionClosed",
]

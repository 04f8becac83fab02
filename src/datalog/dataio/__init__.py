"""Data input/output helpers for finished logs.

Log files are written by :mod:`datalog.core.session`; the helpers here read
them back for offline review:
- :mod:`log_loader` parses a log into text rows or a numeric array.
"""

from .log_loader import LoadedLog, load_numeric, read_log

__all__ = ["LoadedLog", "load_numeric", "read_log"]

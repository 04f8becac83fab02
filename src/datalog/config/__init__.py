"""Configuration objects and helpers for datalog.

This package knows how to load the YAML settings shared by log sessions
(output directory, file extension, timestamp columns, durability options)
and where log files live by default. The resulting :class:`DataLogConfig`
is handed to :class:`~datalog.core.session.SessionBuilder`.
"""

from .app_config import AppPaths
from .runtime import DataLogConfig, config_from_mapping, load_config

__all__ = ["AppPaths", "DataLogConfig", "config_from_mapping", "load_config"]

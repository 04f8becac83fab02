"""Default application paths."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class AppPaths:
    """
    Commonly used paths for data logs.

    ``DATALOG_DATA_ROOT`` overrides the default ``datalogs`` folder under the
    current working directory so deployments can keep logs elsewhere
    (e.g. on a removable drive).
    """

    base_dir: Path = field(default_factory=Path.cwd)
    data_root: Path = field(init=False)

    def __post_init__(self) -> None:
        env_data_root = os.environ.get("DATALOG_DATA_ROOT")
        if env_data_root:
            self.data_root = Path(env_data_root).expanduser()
        else:
            self.data_root = Path(self.base_dir) / "datalogs"


__all__ = ["AppPaths"]

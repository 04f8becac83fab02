"""Automatic time columns prepended to every data row."""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable, Tuple

from .row_buffer import RowBuffer

DEFAULT_ELAPSED_LABEL = "Time"
DEFAULT_DELTA_LABEL = "d ms"


class TimestampMode(str, Enum):
    """Which automatic time columns a session writes."""

    NONE = "none"
    DECIMAL_SECONDS = "decimal_seconds"

    @classmethod
    def from_value(cls, value: "TimestampMode | str | None") -> "TimestampMode":
        """Parse a mode from config text (``none``, ``decimal_seconds``)."""
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.NONE
        key = str(value).strip().lower().replace("-", "_")
        if key in {"", "off", "false"}:
            return cls.NONE
        try:
            return cls(key)
        except ValueError:
            valid = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown timestamp mode {value!r} (expected one of: {valid})") from None

    @property
    def enabled(self) -> bool:
        return self is not TimestampMode.NONE


class TimestampInjector:
    """
    Produces the elapsed-seconds and delta-milliseconds columns.

    Elapsed time comes from the wall clock relative to the session start.
    Delta time comes from a monotonic clock relative to the previous row and
    its baseline moves forward on every row, so each delta covers only the
    gap between two consecutive writes.

    Timestamps are taken when a row is completed, just before it is written,
    so they sit as close as possible to the data they describe.
    """

    def __init__(
        self,
        elapsed_label: str = DEFAULT_ELAPSED_LABEL,
        delta_label: str = DEFAULT_DELTA_LABEL,
        *,
        wall_clock: Callable[[], float] = time.time,
        monotonic_ns: Callable[[], int] = time.monotonic_ns,
    ) -> None:
        self.elapsed_label = elapsed_label
        self.delta_label = delta_label
        self._wall_clock = wall_clock
        self._monotonic_ns = monotonic_ns
        self._time_base = 0.0
        self._ns_base = 0
        self._last_elapsed = 0.0
        self.reset_time_base()

    @property
    def labels(self) -> Tuple[str, str]:
        return self.elapsed_label, self.delta_label

    def reset_time_base(self) -> None:
        """Restart the elapsed-time origin and the delta baseline at now."""
        self._time_base = self._wall_clock()
        self._ns_base = self._monotonic_ns()
        self._last_elapsed = 0.0

    def sample(self) -> Tuple[float, float]:
        """
        Return ``(elapsed_s, delta_ms)`` for a row completed now and move the
        delta baseline to this sample.
        """
        wall = self._wall_clock()
        now_ns = self._monotonic_ns()

        # wall clock may step backwards (NTP); keep the column non-decreasing
        elapsed = max(self._last_elapsed, wall - self._time_base)
        delta_ms = max(0, now_ns - self._ns_base) / 1.0e6

        self._last_elapsed = elapsed
        self._ns_base = now_ns
        return elapsed, delta_ms

    def prepare_row(self, buffer: RowBuffer) -> Tuple[float, float]:
        """Insert the two time columns at the front of *buffer*."""
        elapsed, delta_ms = self.sample()
        buffer.prepend(f"{delta_ms:.3f}")
        buffer.prepend(f"{elapsed:.3f}")
        return elapsed, delta_ms


__all__ = [
    "DEFAULT_DELTA_LABEL",
    "DEFAULT_ELAPSED_LABEL",
    "TimestampInjector",
    "TimestampMode",
]

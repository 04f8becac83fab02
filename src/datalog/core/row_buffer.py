"""String accumulator used to build one delimited row at a time."""

from __future__ import annotations

import csv
import io
from typing import List

SEPARATOR = ","
LINE_TERMINATOR = "\n"

# quoting is decided against the writer's terminator, so carrying both
# characters makes any embedded line break get quoted
_WRITER_TERMINATOR = "\r\n"


class RowBuffer:
    """
    Collects the cells of the current row.

    The buffer knows nothing about fields or column order; the same instance
    builds the header line and every data line. Cells containing the
    separator, a quote or a line break are quoted by :mod:`csv` so the
    column count stays fixed.
    """

    def __init__(self) -> None:
        self._cells: List[str] = []

    @property
    def is_empty(self) -> bool:
        return not self._cells

    def __len__(self) -> int:
        return len(self._cells)

    def append(self, text: str) -> None:
        """Add a cell at the end of the row."""
        self._cells.append(str(text))

    def prepend(self, text: str) -> None:
        """Insert a cell at the start of the row."""
        self._cells.insert(0, str(text))

    def peek(self) -> str:
        """Return the row built so far, without terminator."""
        out = io.StringIO()
        writer = csv.writer(out, delimiter=SEPARATOR, lineterminator=_WRITER_TERMINATOR)
        writer.writerow(self._cells)
        return out.getvalue()[: -len(_WRITER_TERMINATOR)]

    def flush_and_reset(self) -> str:
        """Return the terminated row and start a new, empty one."""
        line = self.peek() + LINE_TERMINATOR
        self._cells.clear()
        return line

    def reset(self) -> None:
        self._cells.clear()


__all__ = ["LINE_TERMINATOR", "SEPARATOR", "RowBuffer"]

"""Named log columns that hold the most recently set value as text."""

from __future__ import annotations

from typing import Any, Optional

import numpy as np

DEFAULT_FLOAT_FORMAT = "%.3f"


def _apply_format(value: Any, fmt: str) -> str:
    """Format *value* with a printf-style string or a Python format spec."""
    try:
        # a trailing "%" alone is the percentage format-spec type
        if "%" in fmt[:-1]:
            return fmt % (value,)
        return format(value, fmt)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Cannot format {value!r} with {fmt!r}: {exc}") from exc


def format_value(value: Any, fmt: Optional[str] = None) -> str:
    """
    Convert a boolean, integer, float or string into its logged text.

    Booleans always become ``"1"``/``"0"``. Integers and strings are kept as
    they are and floats use ``"%.3f"`` unless *fmt* overrides the rule.
    NumPy scalars are treated like their builtin counterparts.
    """
    # bool before int: bool is an int subclass
    if isinstance(value, (bool, np.bool_)):
        return "1" if value else "0"
    if isinstance(value, (int, np.integer)):
        value = int(value)
        return str(value) if fmt is None else _apply_format(value, fmt)
    if isinstance(value, (float, np.floating)):
        value = float(value)
        return _apply_format(value, fmt or DEFAULT_FLOAT_FORMAT)
    if isinstance(value, str):
        return value if fmt is None else _apply_format(value, fmt)
    raise TypeError(
        f"Unsupported value type {type(value).__name__}; "
        "expected bool, int, float or str"
    )


class Field:
    """
    One output column.

    The label is fixed at construction; the value is whatever was last passed
    to :meth:`set`. A field that is not updated between two rows repeats its
    previous value in the second row.
    """

    __slots__ = ("_label", "_text")

    def __init__(self, label: str) -> None:
        label = str(label)
        if not label:
            raise ValueError("Field label must be a non-empty string")
        self._label = label
        self._text = ""

    @property
    def label(self) -> str:
        return self._label

    @property
    def text(self) -> str:
        return self._text

    def set(self, value: Any, fmt: Optional[str] = None) -> "Field":
        """Store *value* formatted as text (see :func:`format_value`)."""
        self._text = format_value(value, fmt)
        return self

    def clear(self) -> None:
        self._text = ""

    def __str__(self) -> str:
        return self._text

    def __repr__(self) -> str:
        return f"Field({self._label!r}, text={self._text!r})"


__all__ = ["DEFAULT_FLOAT_FORMAT", "Field", "format_value"]

"""Log sessions and the builder that declares their column layout.

Typical use::

    status = Field("Status")
    counter = Field("Loop Counter")

    builder = (
        SessionBuilder()
        .set_filename("datalog_02")
        .set_timestamp_mode(TimestampMode.DECIMAL_SECONDS)
        .set_fields(status, counter)
    )
    with builder.build() as session:
        for i in range(100):
            counter.set(i)          # fields may be updated in any order
            session.write_row()

The order given to :meth:`SessionBuilder.set_fields` is the only thing that
decides column order; the order in which fields are created or updated by the
control loop has no effect on the file layout.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, List, Optional, TextIO, Tuple

from ..config.app_config import AppPaths
from ..config.log_paths import build_log_file_paths
from ..config.runtime import DataLogConfig
from ..tools.debug import time_block
from .errors import InvalidFieldOrder, ResourceUnavailable, SessionClosed, WriteFailure
from .field import Field
from .models import SessionInfo, WriteResult
from .row_buffer import RowBuffer
from .timestamps import TimestampInjector, TimestampMode

logger = logging.getLogger(__name__)

HEADER_ROW_INDEX = 0


class LogSession:
    """
    An open log file bound to a fixed column order.

    Sessions are created by :meth:`SessionBuilder.build` and are either open
    or closed; :meth:`close` is the only transition and may be called any
    number of times. Use the session as a context manager so the file is
    released on every exit path of the control loop.
    """

    def __init__(
        self,
        stream: TextIO,
        path: Path,
        fields: Tuple[Field, ...],
        *,
        name: str,
        config: DataLogConfig,
        injector: Optional[TimestampInjector] = None,
        meta_path: Optional[Path] = None,
        started_at: Optional[datetime] = None,
    ) -> None:
        self._stream = stream
        self._path = Path(path)
        self._fields = tuple(fields)
        self._config = config
        self._injector = injector
        self._meta_path = meta_path
        self._buffer = RowBuffer()

        self._header_written = False
        self._closed = False
        self._rows_written = 0
        self._failed_rows = 0

        timestamp_labels = injector.labels if injector is not None else ()
        self._info = SessionInfo(
            name=name,
            path=self._path,
            columns=tuple(timestamp_labels) + tuple(f.label for f in self._fields),
            timestamp_mode=self.timestamp_mode.value,
            started_at=started_at or datetime.now(),
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def path(self) -> Path:
        return self._path

    @property
    def fields(self) -> Tuple[Field, ...]:
        return self._fields

    @property
    def columns(self) -> Tuple[str, ...]:
        """Header labels in file order, time columns included."""
        return self._info.columns

    @property
    def timestamp_mode(self) -> TimestampMode:
        if self._injector is None:
            return TimestampMode.NONE
        return TimestampMode.DECIMAL_SECONDS

    @property
    def header_written(self) -> bool:
        return self._header_written

    @property
    def rows_written(self) -> int:
        """Number of data rows written successfully (header excluded)."""
        return self._rows_written

    @property
    def failed_rows(self) -> int:
        return self._failed_rows

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def info(self) -> SessionInfo:
        self._info.rows_written = self._rows_written
        self._info.failed_rows = self._failed_rows
        return self._info

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def write_header(self) -> WriteResult:
        """
        Write the header row (time labels, then field labels).

        The header is written at most once; later calls log a warning and
        return a skipped result instead of duplicating the line.
        """
        self._ensure_open()
        if self._header_written:
            logger.warning("Header already written to %s; ignoring repeated request", self._path)
            return WriteResult(row_index=HEADER_ROW_INDEX, skipped=True)

        self._buffer.reset()
        for label in self.columns:
            self._buffer.append(label)
        result = self._emit(self._buffer.flush_and_reset(), HEADER_ROW_INDEX)
        if result.ok:
            self._header_written = True
        return result

    def write_row(self) -> WriteResult:
        """
        Write one data row with every field's current value.

        The header is written first if it has not been written yet. I/O
        errors do not raise; they come back in the result (see
        :meth:`WriteResult.raise_for_error`) and the session stays open.
        A row whose text reached the stream but could not be flushed counts
        as written and is returned with ``pending_flush`` set.
        """
        self._ensure_open()
        row_index = self._rows_written + self._failed_rows + 1

        if not self._header_written:
            header = self.write_header()
            if not header.ok:
                self._failed_rows += 1
                return WriteResult(
                    row_index=row_index,
                    ok=False,
                    attempts=header.attempts,
                    error=header.error,
                )

        self._buffer.reset()
        for field in self._fields:
            self._buffer.append(field.text)
        if self._injector is not None:
            self._injector.prepare_row(self._buffer)
        line = self._buffer.flush_and_reset()

        with time_block(f"write_row {row_index}"):
            result = self._emit(line, row_index)

        if result.ok:
            self._rows_written += 1
        else:
            self._failed_rows += 1
        return result

    def reset_time_base(self) -> None:
        """Restart the elapsed-time column at zero (no-op without timestamps)."""
        self._ensure_open()
        if self._injector is not None:
            self._injector.reset_time_base()
            logger.debug("Time base reset for %s", self._path)

    def _emit(self, line: str, row_index: int) -> WriteResult:
        """Write and flush *line*, retrying once when configured."""
        attempts = 2 if self._config.retry_once else 1
        written = False
        last_exc: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                # a failed flush leaves the line in the stream buffer
                if not written:
                    self._stream.write(line)
                    written = True
                self._stream.flush()
                if self._config.fsync_each_row:
                    os.fsync(self._stream.fileno())
                return WriteResult(row_index=row_index, attempts=attempt)
            except (OSError, ValueError) as exc:
                last_exc = exc
                if attempt < attempts:
                    logger.warning("Write of row %d to %s failed (%s); retrying", row_index, self._path, exc)

        if written:
            # the line is in the stream buffer and reaches the file on the next
            # successful flush; it must not be written again
            failure = WriteFailure(
                self._path, row_index, f"flush pending: {last_exc}", attempts=attempts
            )
            failure.__cause__ = last_exc
            logger.error("%s", failure)
            return WriteResult(
                row_index=row_index,
                attempts=attempts,
                pending_flush=True,
                error=failure,
            )

        failure = WriteFailure(self._path, row_index, str(last_exc), attempts=attempts)
        failure.__cause__ = last_exc
        logger.error("%s", failure)
        return WriteResult(row_index=row_index, ok=False, attempts=attempts, error=failure)

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosed(f"Log session for {self._path} is closed")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """
        Flush and release the file. Safe to call more than once.

        A session closed before any row was written still leaves a file
        containing the header.
        """
        if self._closed:
            return

        error: Optional[BaseException] = None
        try:
            if not self._header_written:
                header = self.write_header()
                if not header.ok:
                    header.raise_for_error()
            self._stream.flush()
            if self._config.fsync_each_row:
                os.fsync(self._stream.fileno())
        except (OSError, ValueError, WriteFailure) as exc:
            error = exc
        finally:
            self._closed = True
            try:
                self._stream.close()
            except OSError as exc:
                error = error or exc

        self._info.closed_at = datetime.now()
        logger.info(
            "Closed %s (%d rows, %d failed)", self._path, self._rows_written, self._failed_rows
        )

        if error is not None:
            if isinstance(error, WriteFailure):
                raise error
            raise WriteFailure(self._path, self._rows_written, f"close failed: {error}") from error

        if self._meta_path is not None and self._config.write_metadata:
            self._write_metadata()

    def _write_metadata(self) -> None:
        try:
            with self._meta_path.open("w", encoding="utf-8") as mfh:
                json.dump(self.info.to_dict(), mfh, indent=2)
        except OSError as exc:
            raise WriteFailure(
                self._meta_path, self._rows_written, f"metadata not written: {exc}"
            ) from exc
        logger.debug("Metadata written to %s", self._meta_path)

    def __enter__(self) -> "LogSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<LogSession {self._path} {state} rows={self._rows_written}>"


class SessionBuilder:
    """
    Declares the file name, timestamp mode and column order of a session.

    Every setter returns the builder so calls can be chained. The field order
    may only be declared once.
    """

    def __init__(self, config: Optional[DataLogConfig] = None) -> None:
        self._config = config
        self._filename: Optional[str] = None
        self._directory: Optional[Path] = None
        self._timestamp_mode: Optional[TimestampMode] = None
        self._fields: Optional[Tuple[Field, ...]] = None
        self._wall_clock: Optional[Callable[[], float]] = None
        self._monotonic_ns: Optional[Callable[[], int]] = None

    def set_config(self, config: DataLogConfig) -> "SessionBuilder":
        self._config = config
        return self

    def set_filename(self, name: str) -> "SessionBuilder":
        self._filename = str(name)
        return self

    def set_directory(self, directory: str | Path) -> "SessionBuilder":
        self._directory = Path(directory).expanduser()
        return self

    def set_timestamp_mode(self, mode: TimestampMode | str) -> "SessionBuilder":
        self._timestamp_mode = TimestampMode.from_value(mode)
        return self

    def set_fields(self, *fields: Field | Iterable[Field]) -> "SessionBuilder":
        """
        Declare the output columns, in file order.

        Accepts fields as separate arguments or as a single iterable.
        """
        if self._fields is not None:
            raise InvalidFieldOrder("Field order has already been declared for this builder")
        if len(fields) == 1 and not isinstance(fields[0], Field):
            fields = tuple(fields[0])
        for item in fields:
            if not isinstance(item, Field):
                raise TypeError(f"Expected Field, got {type(item).__name__}")
        self._fields = tuple(fields)
        return self

    def set_clocks(
        self,
        wall_clock: Optional[Callable[[], float]] = None,
        monotonic_ns: Optional[Callable[[], int]] = None,
    ) -> "SessionBuilder":
        """Override the clocks used for the time columns."""
        self._wall_clock = wall_clock
        self._monotonic_ns = monotonic_ns
        return self

    def _resolved_config(self) -> DataLogConfig:
        return (self._config or DataLogConfig()).sanitized()

    def _validate_fields(self, timestamp_labels: Tuple[str, ...]) -> Tuple[Field, ...]:
        fields = self._fields or ()
        if not fields:
            raise InvalidFieldOrder("At least one field is required")

        seen_ids = set()
        seen_labels = set(timestamp_labels)
        duplicates: List[str] = []
        for item in fields:
            if id(item) in seen_ids or item.label in seen_labels:
                duplicates.append(item.label)
            seen_ids.add(id(item))
            seen_labels.add(item.label)
        if duplicates:
            raise InvalidFieldOrder(f"Duplicate columns in field order: {', '.join(duplicates)}")
        return fields

    def build(self) -> LogSession:
        """
        Validate the layout, open the output file and return an open session.

        Raises
        ------
        InvalidFieldOrder
            No fields, or a field/label listed twice.
        ResourceUnavailable
            The directory cannot be created or the file cannot be opened.
        """
        if not self._filename:
            raise ValueError("A file name is required (call set_filename)")

        config = self._resolved_config()
        mode = self._timestamp_mode if self._timestamp_mode is not None else config.timestamp_mode

        injector: Optional[TimestampInjector] = None
        if mode.enabled:
            clocks = {}
            if self._wall_clock is not None:
                clocks["wall_clock"] = self._wall_clock
            if self._monotonic_ns is not None:
                clocks["monotonic_ns"] = self._monotonic_ns
            injector = TimestampInjector(config.elapsed_label, config.delta_label, **clocks)

        fields = self._validate_fields(injector.labels if injector is not None else ())

        directory = self._directory or config.directory or AppPaths().data_root
        started_at = datetime.now()
        paths = build_log_file_paths(
            self._filename,
            directory,
            config.extension,
            start_dt=started_at if config.timestamped_filename else None,
        )

        try:
            paths.data_path.parent.mkdir(parents=True, exist_ok=True)
            stream = paths.data_path.open("w", encoding="utf-8", newline="")
        except OSError as exc:
            raise ResourceUnavailable(paths.data_path, exc.strerror or str(exc)) from exc

        if injector is not None:
            # time origin is the moment the file became available
            injector.reset_time_base()

        logger.info(
            "Opened %s (%d fields, timestamps=%s)", paths.data_path, len(fields), mode.value
        )
        return LogSession(
            stream,
            paths.data_path,
            fields,
            name=self._filename,
            config=config,
            injector=injector,
            meta_path=paths.meta_path,
            started_at=started_at,
        )


__all__ = ["HEADER_ROW_INDEX", "LogSession", "SessionBuilder"]

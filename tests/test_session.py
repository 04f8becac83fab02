from __future__ import annotations

import csv
import json
import re
from pathlib import Path

import pytest

from datalog.config.runtime import DataLogConfig
from datalog.core.errors import (
    InvalidFieldOrder,
    ResourceUnavailable,
    SessionClosed,
    WriteFailure,
)
from datalog.core.field import Field
from datalog.core.session import SessionBuilder
from datalog.core.timestamps import TimestampMode
from datalog.dataio.log_loader import read_log


class FakeClock:
    def __init__(self) -> None:
        self.wall = 50.0
        self.mono_ns = 1_000_000_000

    def advance(self, seconds: float) -> None:
        self.wall += seconds
        self.mono_ns += int(round(seconds * 1e9))


class FlakyStream:
    """Wraps a real file and fails the first N writes and/or flushes."""

    def __init__(self, inner, fail_writes: int = 0, fail_flushes: int = 0) -> None:
        self.inner = inner
        self.fail_writes = fail_writes
        self.fail_flushes = fail_flushes

    def write(self, text: str) -> int:
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise OSError(28, "No space left on device")
        return self.inner.write(text)

    def flush(self) -> None:
        if self.fail_flushes > 0:
            self.fail_flushes -= 1
            raise OSError(5, "Input/output error")
        self.inner.flush()

    def fileno(self) -> int:
        return self.inner.fileno()

    def close(self) -> None:
        self.inner.close()


def _builder(tmp_path: Path, *fields: Field, mode=TimestampMode.NONE, config=None) -> SessionBuilder:
    return (
        SessionBuilder(config)
        .set_filename("run")
        .set_directory(tmp_path)
        .set_timestamp_mode(mode)
        .set_fields(*fields)
    )


def _lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8").splitlines()


def _rows(path: Path) -> list[list[str]]:
    with path.open("r", encoding="utf-8", newline="") as fh:
        return list(csv.reader(fh))


def test_unset_field_repeats_previous_value(tmp_path: Path) -> None:
    a, b = Field("A"), Field("B")
    with _builder(tmp_path, a, b).build() as session:
        a.set(1)
        b.set(True)
        session.write_row()
        a.set(2)
        session.write_row()

    assert _lines(session.path) == ["A,B", "1,1", "2,1"]


def test_column_order_comes_from_builder_not_creation_or_update_order(tmp_path: Path) -> None:
    c = Field("c")
    b = Field("b")
    a = Field("a")
    with _builder(tmp_path, a, b, c).build() as session:
        c.set("third")
        a.set("first")
        b.set("second")
        session.write_row()

    assert _lines(session.path) == ["a,b,c", "first,second,third"]


def test_fields_accepted_as_iterable(tmp_path: Path) -> None:
    fields = [Field("x"), Field("y")]
    with _builder(tmp_path, fields).build() as session:
        assert session.fields == tuple(fields)
        assert session.columns == ("x", "y")


def test_timestamp_columns_lead_every_row(tmp_path: Path) -> None:
    x, y = Field("x"), Field("y")
    with _builder(tmp_path, x, y, mode=TimestampMode.DECIMAL_SECONDS).build() as session:
        for i in range(5):
            x.set(i)
            y.set(i * 0.5)
            assert session.write_row().ok

    rows = _rows(session.path)
    assert rows[0] == ["Time", "d ms", "x", "y"]
    assert len(rows) == 6
    assert all(len(row) == len(rows[0]) for row in rows)

    elapsed = [float(row[0]) for row in rows[1:]]
    deltas = [float(row[1]) for row in rows[1:]]
    assert elapsed == sorted(elapsed)
    assert all(d >= 0.0 for d in deltas)
    assert all(re.fullmatch(r"\d+\.\d{3}", row[0]) for row in rows[1:])
    assert all(re.fullmatch(r"\d+\.\d{3}", row[1]) for row in rows[1:])


def test_timestamps_sampled_at_row_completion(tmp_path: Path) -> None:
    clock = FakeClock()
    x = Field("x")
    builder = _builder(tmp_path, x, mode="decimal_seconds").set_clocks(
        wall_clock=lambda: clock.wall, monotonic_ns=lambda: clock.mono_ns
    )
    with builder.build() as session:
        clock.advance(0.5)
        x.set(1)
        session.write_row()
        clock.advance(0.25)
        session.write_row()
        clock.advance(4.0)
        session.reset_time_base()
        clock.advance(0.125)
        session.write_row()

    assert _lines(session.path) == [
        "Time,d ms,x",
        "0.500,500.000,1",
        "0.750,250.000,1",
        "0.125,125.000,1",
    ]


def test_format_specifiers_survive_round_trip(tmp_path: Path) -> None:
    pos, volts, state, note = Field("Grabber Pos."), Field("Pot. Value"), Field("State"), Field("Note")
    with _builder(tmp_path, pos, volts, state, note, mode=TimestampMode.DECIMAL_SECONDS).build() as session:
        pos.set(0.5, "%.2f")
        volts.set(3.14159, "%.1f")
        state.set("RUNNING")
        note.set('arm at 90, "high"')
        session.write_row()

    log = read_log(session.path)
    assert log.header == ("Time", "d ms", "Grabber Pos.", "Pot. Value", "State", "Note")
    assert log.column("Grabber Pos.") == ["0.50"]
    assert log.column("Pot. Value") == ["3.1"]
    assert log.column("State") == ["RUNNING"]
    assert log.column("Note") == ['arm at 90, "high"']
    assert all(len(row) == len(log.header) for row in log.rows)


def test_first_row_writes_header_implicitly(tmp_path: Path) -> None:
    x = Field("x").set(7)
    session = _builder(tmp_path, x).build()
    assert not session.header_written
    result = session.write_row()
    assert result.ok
    assert result.row_index == 1
    assert session.header_written
    session.close()

    assert _lines(session.path) == ["x", "7"]


def test_repeated_header_request_is_skipped(tmp_path: Path, caplog) -> None:
    x = Field("x").set(1)
    with _builder(tmp_path, x).build() as session:
        assert session.write_header().ok
        second = session.write_header()
        session.write_row()

    assert second.skipped
    assert "Header already written" in caplog.text
    assert _lines(session.path) == ["x", "1"]


def test_close_without_rows_leaves_header(tmp_path: Path) -> None:
    session = _builder(tmp_path, Field("x"), mode=TimestampMode.DECIMAL_SECONDS).build()
    session.close()
    assert _lines(session.path) == ["Time,d ms,x"]
    assert session.rows_written == 0


def test_close_is_idempotent(tmp_path: Path) -> None:
    x = Field("x").set(1)
    session = _builder(tmp_path, x).build()
    session.write_row()
    session.close()
    content = session.path.read_text(encoding="utf-8")

    session.close()
    session.close()

    assert session.closed
    assert session.path.read_text(encoding="utf-8") == content


def test_writes_after_close_raise(tmp_path: Path) -> None:
    session = _builder(tmp_path, Field("x")).build()
    session.close()
    with pytest.raises(SessionClosed):
        session.write_row()
    with pytest.raises(SessionClosed):
        session.write_header()
    with pytest.raises(SessionClosed):
        session.reset_time_base()


def test_context_manager_closes_on_error(tmp_path: Path) -> None:
    x = Field("x").set(1)
    with pytest.raises(RuntimeError):
        with _builder(tmp_path, x).build() as session:
            session.write_row()
            raise RuntimeError("control loop crashed")

    assert session.closed
    assert _lines(session.path) == ["x", "1"]


def test_rows_written_counts_data_rows(tmp_path: Path) -> None:
    x = Field("x").set(1)
    with _builder(tmp_path, x).build() as session:
        for _ in range(3):
            session.write_row()
        assert session.rows_written == 3
        assert session.failed_rows == 0


def test_fields_can_be_reused_across_sessions(tmp_path: Path) -> None:
    x = Field("x").set(5)
    with _builder(tmp_path / "one", x).build() as first:
        first.write_row()
    x.set(6)
    with _builder(tmp_path / "two", x).build() as second:
        second.write_row()

    assert _lines(first.path) == ["x", "5"]
    assert _lines(second.path) == ["x", "6"]


# ----------------------------------------------------------------------------
# Builder validation and path resolution
# ----------------------------------------------------------------------------


def test_empty_field_order_rejected(tmp_path: Path) -> None:
    with pytest.raises(InvalidFieldOrder):
        _builder(tmp_path).build()
    with pytest.raises(InvalidFieldOrder):
        SessionBuilder().set_filename("run").set_directory(tmp_path).build()


def test_duplicate_field_rejected(tmp_path: Path) -> None:
    x = Field("x")
    with pytest.raises(InvalidFieldOrder):
        _builder(tmp_path, x, Field("y"), x).build()


def test_duplicate_label_rejected(tmp_path: Path) -> None:
    with pytest.raises(InvalidFieldOrder):
        _builder(tmp_path, Field("x"), Field("x")).build()


def test_label_clashing_with_time_column_rejected(tmp_path: Path) -> None:
    with pytest.raises(InvalidFieldOrder):
        _builder(tmp_path, Field("Time"), mode=TimestampMode.DECIMAL_SECONDS).build()
    # without timestamps the label is free
    with _builder(tmp_path, Field("Time")).build() as session:
        assert session.columns == ("Time",)


def test_field_order_declared_only_once() -> None:
    builder = SessionBuilder().set_fields(Field("x"))
    with pytest.raises(InvalidFieldOrder):
        builder.set_fields(Field("y"))


def test_non_field_rejected() -> None:
    with pytest.raises(TypeError):
        SessionBuilder().set_fields(Field("x"), "y")


def test_filename_required(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        SessionBuilder().set_directory(tmp_path).set_fields(Field("x")).build()


def test_unopenable_directory_raises_resource_unavailable(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", encoding="utf-8")

    builder = _builder(blocker / "logs", Field("x"))
    with pytest.raises(ResourceUnavailable) as excinfo:
        builder.build()

    assert excinfo.value.path == blocker / "logs" / "run.csv"
    assert isinstance(excinfo.value.__cause__, OSError)


def test_missing_directory_is_created(tmp_path: Path) -> None:
    target = tmp_path / "a" / "b"
    with _builder(target, Field("x")).build() as session:
        pass
    assert session.path == target / "run.csv"
    assert session.path.exists()


def test_name_with_extension_keeps_it(tmp_path: Path) -> None:
    builder = SessionBuilder().set_filename("datalog_02.txt").set_directory(tmp_path).set_fields(Field("x"))
    with builder.build() as session:
        pass
    assert session.path.name == "datalog_02.txt"


def test_config_supplies_directory_extension_and_mode(tmp_path: Path) -> None:
    config = DataLogConfig(directory=tmp_path / "cfg", extension="txt", timestamp_mode="none")
    builder = SessionBuilder(config).set_filename("run").set_fields(Field("x"))
    with builder.build() as session:
        pass
    assert session.path == tmp_path / "cfg" / "run.txt"
    assert session.timestamp_mode is TimestampMode.NONE
    assert _lines(session.path) == ["x"]


def test_custom_time_labels_from_config(tmp_path: Path) -> None:
    config = DataLogConfig(elapsed_label="t_s", delta_label="dt_ms")
    with _builder(tmp_path, Field("x"), mode=TimestampMode.DECIMAL_SECONDS, config=config).build() as session:
        pass
    assert _lines(session.path) == ["t_s,dt_ms,x"]


def test_timestamped_filename(tmp_path: Path) -> None:
    config = DataLogConfig(timestamped_filename=True)
    with _builder(tmp_path, Field("x"), config=config).build() as session:
        pass
    assert re.fullmatch(r"run_\d{4}-\d{2}-\d{2}_\d{2}-\d{2}-\d{2}\.csv", session.path.name)


def test_default_directory_from_environment(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("DATALOG_DATA_ROOT", str(tmp_path / "env_root"))
    with SessionBuilder().set_filename("run").set_fields(Field("x")).build() as session:
        pass
    assert session.path == tmp_path / "env_root" / "run.csv"


def test_metadata_sidecar_written_on_close(tmp_path: Path) -> None:
    config = DataLogConfig(write_metadata=True)
    x = Field("x").set(1)
    with _builder(tmp_path, x, mode=TimestampMode.DECIMAL_SECONDS, config=config).build() as session:
        session.write_row()
        session.write_row()

    meta_path = session.path.with_name("run.csv.meta.json")
    meta = json.loads(meta_path.read_text(encoding="utf-8"))
    assert set(meta) == {
        "name",
        "file",
        "columns",
        "timestamp_mode",
        "started_at",
        "closed_at",
        "rows_written",
        "failed_rows",
    }
    assert meta["file"] == "run.csv"
    assert meta["columns"] == ["Time", "d ms", "x"]
    assert meta["timestamp_mode"] == "decimal_seconds"
    assert meta["rows_written"] == 2
    assert meta["closed_at"] is not None


def test_no_metadata_by_default(tmp_path: Path) -> None:
    with _builder(tmp_path, Field("x")).build() as session:
        pass
    assert not session.path.with_name("run.csv.meta.json").exists()


# ----------------------------------------------------------------------------
# Write failures
# ----------------------------------------------------------------------------


def test_failed_write_is_retried_once(tmp_path: Path, caplog) -> None:
    x = Field("x").set(1)
    session = _builder(tmp_path, x).build()
    session.write_header()
    session._stream = FlakyStream(session._stream, fail_writes=1)

    result = session.write_row()
    session.close()

    assert result.ok
    assert result.attempts == 2
    assert "retrying" in caplog.text
    assert _lines(session.path) == ["x", "1"]


def test_failed_flush_retry_does_not_duplicate_row(tmp_path: Path) -> None:
    x = Field("x").set(1)
    session = _builder(tmp_path, x).build()
    session.write_header()
    session._stream = FlakyStream(session._stream, fail_flushes=1)

    result = session.write_row()
    session.close()

    assert result.ok
    assert _lines(session.path) == ["x", "1"]


def test_persistent_failure_is_reported_not_raised(tmp_path: Path, caplog) -> None:
    x = Field("x").set(1)
    session = _builder(tmp_path, x).build()
    session.write_header()
    session._stream = FlakyStream(session._stream, fail_writes=2)

    result = session.write_row()

    assert not result
    assert result.attempts == 2
    assert isinstance(result.error, WriteFailure)
    assert result.error.row_index == 1
    assert isinstance(result.error.__cause__, OSError)
    assert "Failed to write row 1" in caplog.text
    with pytest.raises(WriteFailure):
        result.raise_for_error()

    # the session stays usable
    assert not session.closed
    x.set(2)
    assert session.write_row().ok
    session.close()

    assert session.failed_rows == 1
    assert session.rows_written == 1
    assert _lines(session.path) == ["x", "2"]


def test_retry_can_be_disabled(tmp_path: Path) -> None:
    x = Field("x").set(1)
    session = _builder(tmp_path, x, config=DataLogConfig(retry_once=False)).build()
    session.write_header()
    session._stream = FlakyStream(session._stream, fail_writes=1)

    result = session.write_row()
    session.close()

    assert not result.ok
    assert result.attempts == 1


def test_failed_header_fails_the_row(tmp_path: Path) -> None:
    x = Field("x").set(1)
    session = _builder(tmp_path, x).build()
    session._stream = FlakyStream(session._stream, fail_writes=2)

    result = session.write_row()

    assert not result.ok
    assert not session.header_written
    assert session.failed_rows == 1

    assert session.write_row().ok
    session.close()
    assert _lines(session.path) == ["x", "1"]


def test_unflushed_header_is_not_written_twice(tmp_path: Path) -> None:
    x = Field("x").set(1)
    session = _builder(tmp_path, x).build()
    # header and first row both miss their flushes
    session._stream = FlakyStream(session._stream, fail_flushes=4)

    first = session.write_row()
    second = session.write_row()
    session.close()

    assert session.header_written
    assert first.ok
    assert first.pending_flush
    assert isinstance(first.error, WriteFailure)
    with pytest.raises(WriteFailure):
        first.raise_for_error()
    assert second.ok and not second.pending_flush
    assert _lines(session.path) == ["x", "1", "1"]


def test_unflushed_row_counts_match_file_and_metadata(tmp_path: Path) -> None:
    x = Field("x").set(1)
    session = _builder(tmp_path, x, config=DataLogConfig(write_metadata=True)).build()
    session.write_header()
    session._stream = FlakyStream(session._stream, fail_flushes=2)

    pending = session.write_row()
    assert pending.ok
    assert pending.pending_flush
    assert isinstance(pending.error, WriteFailure)

    x.set(2)
    assert session.write_row().ok
    session.close()

    assert _lines(session.path) == ["x", "1", "2"]
    assert session.rows_written == 2
    assert session.failed_rows == 0
    meta = json.loads(session.path.with_name("run.csv.meta.json").read_text(encoding="utf-8"))
    assert meta["rows_written"] == 2
    assert meta["failed_rows"] == 0


def test_metadata_error_on_close_raises_write_failure(tmp_path: Path) -> None:
    # a directory where the sidecar should go makes the open fail
    (tmp_path / "run.csv.meta.json").mkdir()
    x = Field("x").set(1)
    session = _builder(tmp_path, x, config=DataLogConfig(write_metadata=True)).build()
    session.write_row()

    with pytest.raises(WriteFailure) as excinfo:
        session.close()

    assert isinstance(excinfo.value.__cause__, OSError)
    assert session.closed
    assert _lines(session.path) == ["x", "1"]

"""Simulated control loop that shows how a session is meant to be driven.

Example::

    python -m datalog.tools.demo --name demo_run --rows 200 --period 0.02

The loop mimics a robot program: a status label, a loop counter, an encoder,
a commanded servo position, a touch sensor, a potentiometer and a light
sensor. Sensor values are synthetic (NumPy random generator) so the demo runs
anywhere.
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence

import numpy as np

from ..config.runtime import DataLogConfig, load_config
from ..core.errors import ResourceUnavailable
from ..core.field import Field
from ..core.session import LogSession, SessionBuilder
from ..core.timestamps import TimestampMode

logger = logging.getLogger(__name__)


@dataclass
class DemoLog:
    """
    All fields written by the demo.

    Declaration order here is not important; the column order is the one
    passed to :meth:`SessionBuilder.set_fields` in :meth:`columns`.
    """

    total_light: Field = field(default_factory=lambda: Field("Total Light"))
    pot_value: Field = field(default_factory=lambda: Field("Pot. Value"))
    touch_press: Field = field(default_factory=lambda: Field("Touched"))
    servo_position: Field = field(default_factory=lambda: Field("Grabber Pos."))
    motor_encoder: Field = field(default_factory=lambda: Field("Lifter Enc."))
    loop_counter: Field = field(default_factory=lambda: Field("Loop Counter"))
    status: Field = field(default_factory=lambda: Field("OpModeStatus"))

    def columns(self) -> List[Field]:
        return [
            self.status,
            self.loop_counter,
            self.motor_encoder,
            self.servo_position,
            self.touch_press,
            self.pot_value,
            self.total_light,
        ]


class SyntheticSensors:
    """Random-walk stand-ins for the hardware a real loop would read."""

    def __init__(self, seed: Optional[int] = None) -> None:
        self._rng = np.random.default_rng(seed)
        self._encoder = 0
        self._servo = 0.5

    def read(self) -> dict:
        self._encoder += int(self._rng.integers(-5, 20))
        self._servo = float(np.clip(self._servo + self._rng.normal(0.0, 0.02), 0.0, 1.0))
        return {
            "encoder": self._encoder,
            "servo": self._servo,
            "touch": bool(self._rng.random() < 0.1),
            "pot": float(self._rng.uniform(0.0, 3.3)),
            "light": int(self._rng.integers(0, 1024)),
        }


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Log a simulated control loop to CSV.")
    ap.add_argument("--name", type=str, default="datalog_demo", help="Log file name (without directory)")
    ap.add_argument("--dir", type=str, default=None, help="Output folder (overrides config)")
    ap.add_argument("--config", type=str, default=None, help="Optional YAML config file")
    ap.add_argument("--rows", type=int, default=100, help="Number of loop iterations to log")
    ap.add_argument("--period", type=float, default=0.02, help="Loop period in seconds")
    ap.add_argument("--seed", type=int, default=None, help="Seed for the synthetic sensors")
    ap.add_argument("--no-timestamps", action="store_true", help="Omit the automatic time columns")
    ap.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return ap


def run_loop(session: LogSession, log: DemoLog, sensors: SyntheticSensors, rows: int, period: float) -> int:
    """Drive *session* for *rows* iterations; return the number of failed writes."""
    failures = 0

    # fields not updated on a row repeat their last value
    log.status.set("INIT")
    if not session.write_row():
        failures += 1

    log.status.set("RUNNING")
    for i in range(rows):
        reading = sensors.read()
        log.loop_counter.set(i)
        log.motor_encoder.set(reading["encoder"])
        log.servo_position.set(reading["servo"], "%.2f")
        log.touch_press.set(reading["touch"])
        log.pot_value.set(reading["pot"], "%.1f")
        log.total_light.set(reading["light"])

        result = session.write_row()
        if not result:
            failures += 1
            logger.warning("Row %d not written: %s", result.row_index, result.error)

        if period > 0:
            time.sleep(period)

    log.status.set("STOPPED")
    if not session.write_row():
        failures += 1
    return failures


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config: DataLogConfig = load_config(args.config)
    builder = SessionBuilder(config).set_filename(args.name)
    if args.dir:
        builder.set_directory(Path(args.dir))
    if args.no_timestamps:
        builder.set_timestamp_mode(TimestampMode.NONE)

    log = DemoLog()
    builder.set_fields(log.columns())

    try:
        session = builder.build()
    except ResourceUnavailable as exc:
        logger.error("%s", exc)
        return 1

    with session:
        try:
            failures = run_loop(session, log, SyntheticSensors(args.seed), max(0, args.rows), args.period)
        except KeyboardInterrupt:
            logger.info("Interrupted; closing %s", session.path)
            failures = 0

    logger.info("Wrote %d rows to %s", session.rows_written, session.path)
    return 0 if failures == 0 else 2


if __name__ == "__main__":
    sys.exit(main())

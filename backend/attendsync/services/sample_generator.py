"""
Deterministic placeholder attendance for the current day.

Every value is a function of (date, employee id) only, so bootstrapping
the same day twice yields byte-identical records and never flips a
status or duplicates a row.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from datetime import date, datetime, timedelta

from attendsync.schemas.entities import AttendanceRecord, Employee
from attendsync.services.normalizer import numeric_id

logger = logging.getLogger(__name__)

ATTENDANCE_CHANCE = 1
LATE_CHANCE = 2
TIME_JITTER = 3

PRESENT_THRESHOLD = 0.8
LATE_THRESHOLD = 0.2
GUARANTEED_PRESENT = 3

_ON_TIME_START = (9, 0)
_LATE_START = (9, 15)
_ON_TIME_JITTER_MINUTES = 15
_LATE_JITTER_MINUTES = 30


def date_seed(day: date) -> int:
    return int(day.strftime("%Y%m%d"))


def seeded_fraction(seed: int, variation: int) -> float:
    """frac(sin(seed * variation) * 10000), in [0, 1)."""
    x = math.sin(seed * variation) * 10000
    return x - math.floor(x)


def sample_values(day: date, employee_id: object) -> tuple[float, float, float]:
    """(attendance-chance, late-chance, time-jitter) for one employee and day."""
    seed = date_seed(day) + numeric_id(employee_id)
    return (
        seeded_fraction(seed, ATTENDANCE_CHANCE),
        seeded_fraction(seed, LATE_CHANCE),
        seeded_fraction(seed, TIME_JITTER),
    )


def sample_record(day: date, employee: Employee, position: int) -> AttendanceRecord | None:
    """The placeholder record for ``employee``, or None when they are absent."""
    attendance, late, jitter = sample_values(day, employee.id)
    if attendance >= PRESENT_THRESHOLD and position >= GUARANTEED_PRESENT:
        return None

    is_late = late < LATE_THRESHOLD
    hour, minute = _LATE_START if is_late else _ON_TIME_START
    spread = _LATE_JITTER_MINUTES if is_late else _ON_TIME_JITTER_MINUTES
    clock_in = datetime(day.year, day.month, day.day, hour, minute) + timedelta(
        minutes=int(jitter * (spread + 1))
    )

    return AttendanceRecord(
        id=f"att_{day.isoformat()}_{employee.id}",
        employee_id=employee.id,
        date=day.isoformat(),
        clock_in=clock_in.strftime("%H:%M"),
        clock_out=None,
        status="late" if is_late else "present",
        hours=0.0,
        overtime_hours=0.0,
        notes="Late arrival" if is_late else "On time",
        last_modified=clock_in,
    )


def generate_sample_attendance(
    employees: Iterable[Employee], day: date
) -> list[AttendanceRecord]:
    """Placeholder records for the active employees, in iteration order."""
    active = [employee for employee in employees if employee.status == "active"]
    records: list[AttendanceRecord] = []
    for position, employee in enumerate(active):
        record = sample_record(day, employee, position)
        if record is not None:
            records.append(record)

    logger.info(
        "Generated %d sample attendance record(s) for %s from %d active employee(s)",
        len(records), day.isoformat(), len(active),
    )
    return records

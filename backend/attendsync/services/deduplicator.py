"""
Duplicate removal for normalized snapshots.

Both functions keep the first occurrence of each identity and preserve
the input order of survivors. Every dropped item is logged; logging is
the only side effect.
"""

import logging
from collections.abc import Iterable

from attendsync.schemas.entities import AttendanceRecord, Employee

logger = logging.getLogger(__name__)


def employee_key(employee: Employee) -> str:
    return str(employee.id)


def attendance_key(record: AttendanceRecord) -> tuple[str, str]:
    return str(record.employee_id), record.date


def dedupe_employees(employees: Iterable[Employee]) -> list[Employee]:
    seen: set[str] = set()
    unique: list[Employee] = []
    dropped = 0

    for employee in employees:
        key = employee_key(employee)
        if key in seen:
            dropped += 1
            logger.debug("Duplicate employee #%d dropped: id=%s", dropped, key)
            continue
        seen.add(key)
        unique.append(employee)

    if dropped:
        logger.info("Deduplication removed %d duplicate employee(s)", dropped)
    return unique


def dedupe_attendance(records: Iterable[AttendanceRecord]) -> list[AttendanceRecord]:
    seen: set[tuple[str, str]] = set()
    unique: list[AttendanceRecord] = []
    dropped = 0

    for record in records:
        key = attendance_key(record)
        if key in seen:
            dropped += 1
            logger.debug(
                "Duplicate attendance #%d dropped: employee_id=%s date=%s (id=%s)",
                dropped, key[0], key[1], record.id,
            )
            continue
        seen.add(key)
        unique.append(record)

    if dropped:
        logger.info("Deduplication removed %d duplicate attendance record(s)", dropped)
    return unique

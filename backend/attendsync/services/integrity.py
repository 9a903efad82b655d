"""
Referential integrity repair.

Sources disagree on whether an employee id is ``7`` or ``"7"``, and some
attendance rows point at the employee code instead of the id. Matching
is therefore done over every representation of an identifier rather
than with plain equality.
"""

import logging
from collections.abc import Hashable, Iterable
from dataclasses import dataclass, field

from attendsync.schemas.entities import AttendanceRecord, Employee
from attendsync.services.normalizer import canonical_id

logger = logging.getLogger(__name__)


def identity_keys(value: object) -> set[Hashable]:
    """Raw, string-coerced and integer-coerced forms of an identifier.

    Only plain integer text coerces, so "1e3" and "1_000" stay strings and
    large ids never pass through a float.
    """
    if value is None:
        return set()
    text = str(value).strip()
    if not text:
        return set()
    keys: set[Hashable] = {text}
    if isinstance(value, Hashable) and not isinstance(value, (bool, float)):
        keys.add(value)
    ident = canonical_id(value)
    if ident is not None:
        keys.add(ident)
    return keys


def ids_match(left: object, right: object) -> bool:
    return bool(identity_keys(left) & identity_keys(right))


def employee_identities(employees: Iterable[Employee]) -> set[Hashable]:
    valid: set[Hashable] = set()
    for employee in employees:
        valid |= identity_keys(employee.id)
        if employee.employee_code:
            valid.add(employee.employee_code)
    return valid


@dataclass(frozen=True)
class RepairResult:
    records: list[AttendanceRecord]
    removed: list[AttendanceRecord] = field(default_factory=list)

    @property
    def removed_count(self) -> int:
        return len(self.removed)


def repair_orphans(
    employees: Iterable[Employee],
    records: Iterable[AttendanceRecord],
) -> RepairResult:
    """Drop attendance records whose employee is not in ``employees``."""
    valid = employee_identities(employees)
    kept: list[AttendanceRecord] = []
    removed: list[AttendanceRecord] = []

    for record in records:
        if identity_keys(record.employee_id) & valid:
            kept.append(record)
            continue
        removed.append(record)
        logger.debug(
            "Orphan attendance removed: id=%s employee_id=%s date=%s",
            record.id, record.employee_id, record.date,
        )

    if removed:
        logger.info("Integrity repair removed %d orphan attendance record(s)", len(removed))
    return RepairResult(records=kept, removed=removed)

"""
Record normalizer.

Maps heterogeneous employee and attendance dicts (camelCase, snake_case,
field names from older storage formats) onto the canonical Employee and
AttendanceRecord shapes.

Field names are matched through the alias tables below, case- and
separator-insensitively ("employeeId", "employee_id" and "Employee-ID"
are the same key). Support for a new legacy shape is added by extending
a table.

Nothing here raises on bad input: unparseable values fall back to
defaults and items that are not mappings are skipped.
"""

from __future__ import annotations

import logging
import re
import zlib
from collections.abc import Iterable, Mapping
from datetime import date, datetime, time, timezone
from typing import Any

from pydantic import ValidationError

from attendsync.core.config import settings
from attendsync.schemas.entities import (
    WEEKDAYS,
    AttendanceRecord,
    DaySchedule,
    Employee,
    default_schedule,
)

logger = logging.getLogger(__name__)

EMPLOYEE_FIELD_ALIASES: dict[str, list[str]] = {
    "id": ["id", "user_id", "uid"],
    "employee_code": ["employee_code", "employee_id", "code", "badge_number"],
    "first_name": ["first_name", "given_name"],
    "last_name": ["last_name", "surname", "family_name"],
    "full_name": ["full_name", "name", "display_name"],
    "department": ["department", "dept"],
    "position": ["position", "job_title", "title"],
    "email": ["email", "email_address", "mail"],
    "phone": ["phone", "phone_number", "mobile"],
    "hire_date": ["hire_date", "date_hired", "start_date"],
    "hourly_rate": ["hourly_rate", "wage", "rate"],
    "salary_type": ["salary_type", "pay_type"],
    "status": ["status", "employee_status"],
    "role": ["role", "user_role"],
    "schedule": ["schedule", "work_schedule"],
    "created_at": ["created_at", "date_created"],
}

ATTENDANCE_FIELD_ALIASES: dict[str, list[str]] = {
    "id": ["id", "record_id", "attendance_id"],
    "employee_id": ["employee_id", "emp_id", "user_id", "staff_id"],
    "date": ["date", "attendance_date", "work_date", "day"],
    "clock_in": ["clock_in", "time_in", "check_in", "in_time"],
    "clock_out": ["clock_out", "time_out", "check_out", "out_time"],
    "status": ["status", "attendance_status"],
    "hours": ["hours", "hours_worked", "total_hours", "worked_hours"],
    "overtime_hours": ["overtime_hours", "overtime", "ot_hours"],
    "notes": ["notes", "note", "remarks", "comment"],
    "last_modified": ["last_modified", "updated_at", "modified_at", "timestamp"],
}

EMPLOYEE_STATUS_MAP: dict[str, str] = {
    "active": "active",
    "enabled": "active",
    "inactive": "inactive",
    "disabled": "inactive",
    "suspended": "inactive",
    "terminated": "terminated",
    "offboarded": "terminated",
    "resigned": "terminated",
}

EMPLOYEE_ROLE_MAP: dict[str, str] = {
    "employee": "employee",
    "staff": "employee",
    "user": "employee",
    "worker": "employee",
    "manager": "manager",
    "supervisor": "manager",
    "admin": "admin",
    "administrator": "admin",
}

SALARY_TYPE_MAP: dict[str, str] = {
    "hourly": "hourly",
    "salary": "salary",
    "salaried": "salary",
    "monthly": "salary",
    "fixed": "salary",
}

ATTENDANCE_STATUS_MAP: dict[str, str] = {
    "present": "present",
    "on_time": "present",
    "absent": "absent",
    "late": "late",
    "tardy": "late",
    "on_leave": "on_leave",
    "leave": "on_leave",
    "sick": "sick",
    "sick_leave": "sick",
    "vacation": "vacation",
    "holiday": "vacation",
    "waiting": "waiting",
    "pending": "waiting",
}

_DAY_ABBREVIATIONS: dict[str, str] = {day[:3]: day for day in WEEKDAYS}

_sep_re = re.compile(r"[\s_\-]+")
_int_re = re.compile(r"-?\d+")
_digits_re = re.compile(r"\d+")
_clock_re = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2}(?:\.\d+)?)?\s*([aApP][mM])?$")


def _fold(name: str) -> str:
    return _sep_re.sub("", name).lower()


_EMPLOYEE_LOOKUP: dict[str, tuple[str, ...]] = {
    canonical: tuple(_fold(alias) for alias in aliases)
    for canonical, aliases in EMPLOYEE_FIELD_ALIASES.items()
}
_ATTENDANCE_LOOKUP: dict[str, tuple[str, ...]] = {
    canonical: tuple(_fold(alias) for alias in aliases)
    for canonical, aliases in ATTENDANCE_FIELD_ALIASES.items()
}


def _reverse(lookup: dict[str, tuple[str, ...]]) -> dict[str, str]:
    return {alias: canonical for canonical, aliases in lookup.items() for alias in aliases}


_EMPLOYEE_REVERSE = _reverse(_EMPLOYEE_LOOKUP)
_ATTENDANCE_REVERSE = _reverse(_ATTENDANCE_LOOKUP)


def _remap(raw: Mapping, reverse: dict[str, str]) -> dict[str, Any]:
    remapped: dict[str, Any] = {}
    for key, value in raw.items():
        canonical = reverse.get(_fold(str(key)))
        if canonical is not None:
            remapped[canonical] = value
    return remapped


def remap_employee_fields(raw: Mapping) -> dict[str, Any]:
    """Rename known employee aliases to canonical snake_case names; drop the rest."""
    return _remap(raw, _EMPLOYEE_REVERSE)


def remap_attendance_fields(raw: Mapping) -> dict[str, Any]:
    return _remap(raw, _ATTENDANCE_REVERSE)


def _fold_keys(raw: Mapping) -> dict[str, Any]:
    folded: dict[str, Any] = {}
    for key, value in raw.items():
        folded.setdefault(_fold(str(key)), value)
    return folded


def _pick(folded: dict[str, Any], aliases: tuple[str, ...]) -> Any:
    """Return the first non-blank value found under any alias."""
    for alias in aliases:
        value = folded.get(alias)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------


def canonical_id(value: Any) -> int | str | None:
    """Numeric ids (int, integral float, digit string) become int; others str."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else str(value)
    text = str(value).strip()
    if not text:
        return None
    if _int_re.fullmatch(text):
        return int(text)
    return text


def numeric_id(value: Any) -> int:
    """Integer view of an id: the int itself, the digits it contains, or a CRC32."""
    ident = canonical_id(value)
    if isinstance(ident, int):
        return ident
    if ident is None:
        return 0
    digits = "".join(_digits_re.findall(ident))
    if digits:
        return int(digits)
    return zlib.crc32(ident.encode("utf-8"))


def _as_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value).strip()


def _as_float(value: Any, default: float) -> float:
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if result != result:  # NaN
        return default
    return result


def _as_choice(value: Any, mapping: dict[str, str], default: str) -> str:
    if value is None:
        return default
    if isinstance(value, bool):
        return default
    key = _sep_re.sub("_", str(value).strip().lower())
    return mapping.get(key, default)


def _as_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        # epoch milliseconds from older front-end stores
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def _as_date(value: Any) -> str | None:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10]).isoformat()
        except ValueError:
            return None
    return None


def _as_time(value: Any) -> str | None:
    """Return HH:MM for a time, a datetime, or a clock string."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.strftime("%H:%M")
    if isinstance(value, time):
        return value.strftime("%H:%M")
    text = str(value).strip()
    if not text:
        return None
    match = _clock_re.match(text)
    if match:
        hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3)
        if meridiem:
            hour = hour % 12 + (12 if meridiem.lower() == "pm" else 0)
        if hour > 23 or minute > 59:
            return None
        return f"{hour:02d}:{minute:02d}"
    moment = _as_datetime(text)
    if moment is not None and ("T" in text or " " in text):
        return moment.strftime("%H:%M")
    return None


def _minutes(clock: str) -> int:
    hour, minute = clock.split(":")
    return int(hour) * 60 + int(minute)


def hours_between(clock_in: str | None, clock_out: str | None) -> float:
    """Worked hours between two HH:MM values, rounded to 2 decimals, never negative."""
    if not clock_in or not clock_out:
        return 0.0
    diff = _minutes(clock_out) - _minutes(clock_in)
    return max(0.0, round(diff / 60, 2))


def _as_schedule(value: Any) -> dict[str, DaySchedule]:
    schedule = default_schedule()
    if not isinstance(value, Mapping):
        return schedule
    for key, day_value in value.items():
        day = str(key).strip().lower()
        day = _DAY_ABBREVIATIONS.get(day[:3], day)
        if day not in schedule or not isinstance(day_value, Mapping):
            continue
        current = schedule[day]
        folded = _fold_keys(day_value)
        active = _pick(folded, ("active", "enabled", "working"))
        start = _as_time(_pick(folded, ("start", "starttime", "from")))
        end = _as_time(_pick(folded, ("end", "endtime", "to")))
        schedule[day] = DaySchedule(
            active=bool(active) if active is not None else current.active,
            start=start or current.start,
            end=end or current.end,
        )
    return schedule


# ---------------------------------------------------------------------------
# Employees
# ---------------------------------------------------------------------------


def _employee_code(ident: int | str) -> str:
    if isinstance(ident, int):
        return f"EMP{ident:03d}"
    return f"EMP-{ident}"


def normalize_employee(
    raw: Any,
    *,
    fallback_id: int | str | None = None,
    now: datetime | None = None,
) -> Employee | None:
    """
    Build a canonical Employee from an employee-like mapping.

    Returns None when ``raw`` is not a mapping or no identity can be
    established for it.
    """
    if not isinstance(raw, Mapping):
        return None
    now = now or datetime.now(timezone.utc)
    folded = _fold_keys(raw)

    def pick(field: str) -> Any:
        return _pick(folded, _EMPLOYEE_LOOKUP[field])

    code_value = _as_text(pick("employee_code"))
    ident = canonical_id(pick("id"))
    if ident is None:
        ident = fallback_id if fallback_id is not None else canonical_id(code_value)
    if ident is None:
        return None

    first_name = _as_text(pick("first_name"))
    last_name = _as_text(pick("last_name"))
    full_name = " ".join(_as_text(pick("full_name")).split())
    if not full_name:
        full_name = " ".join(part for part in (first_name, last_name) if part)
    if full_name and not first_name and not last_name:
        first_name, _, last_name = full_name.partition(" ")
    if not full_name:
        full_name = f"Employee {ident}"

    created_at = _as_datetime(pick("created_at")) or now

    try:
        return Employee(
            id=ident,
            employee_code=code_value or _employee_code(ident),
            first_name=first_name,
            last_name=last_name.strip(),
            full_name=full_name,
            department=_as_text(pick("department")),
            position=_as_text(pick("position")),
            email=_as_text(pick("email")),
            phone=_as_text(pick("phone")),
            hire_date=_as_date(pick("hire_date")),
            hourly_rate=_as_float(pick("hourly_rate"), settings.DEFAULT_HOURLY_RATE),
            salary_type=_as_choice(pick("salary_type"), SALARY_TYPE_MAP, "hourly"),
            status=_as_choice(pick("status"), EMPLOYEE_STATUS_MAP, "active"),
            role=_as_choice(pick("role"), EMPLOYEE_ROLE_MAP, "employee"),
            schedule=_as_schedule(pick("schedule")),
            created_at=created_at,
            updated_at=now,
        )
    except ValidationError as exc:
        logger.warning("Employee %r skipped: %s", ident, exc.errors()[0]["msg"])
        return None


def normalize_employees(items: Iterable[Any], *, now: datetime | None = None) -> list[Employee]:
    """
    Normalize a batch of employee-like items.

    Items without an id get ``max(numeric ids in the batch) + 1``, in input
    order, so the same batch always yields the same ids.
    """
    items = list(items)
    now = now or datetime.now(timezone.utc)

    known_ids = [
        canonical_id(_pick(_fold_keys(item), _EMPLOYEE_LOOKUP["id"]))
        for item in items
        if isinstance(item, Mapping)
    ]
    next_id = max([i for i in known_ids if isinstance(i, int)], default=0) + 1

    employees: list[Employee] = []
    skipped = 0
    for item in items:
        if not isinstance(item, Mapping):
            skipped += 1
            continue
        has_id = canonical_id(_pick(_fold_keys(item), _EMPLOYEE_LOOKUP["id"])) is not None
        employee = normalize_employee(item, fallback_id=None if has_id else next_id, now=now)
        if employee is None:
            skipped += 1
            continue
        if not has_id:
            next_id += 1
        employees.append(employee)

    if skipped:
        logger.warning("Normalization skipped %d malformed employee item(s)", skipped)
    return employees


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------


def normalize_attendance_record(
    raw: Any,
    *,
    now: datetime | None = None,
) -> AttendanceRecord | None:
    """Build a canonical AttendanceRecord; None when ``raw`` is not a mapping."""
    if not isinstance(raw, Mapping):
        return None
    now = now or datetime.now(timezone.utc)
    folded = _fold_keys(raw)

    def pick(field: str) -> Any:
        return _pick(folded, _ATTENDANCE_LOOKUP[field])

    employee_id = canonical_id(pick("employee_id"))
    if employee_id is None:
        employee_id = ""

    raw_clock_in = pick("clock_in")
    day = _as_date(pick("date")) or _as_date(_as_datetime(raw_clock_in)) or ""
    clock_in = _as_time(raw_clock_in)
    clock_out = _as_time(pick("clock_out"))

    raw_hours = pick("hours")
    if raw_hours is None:
        hours = hours_between(clock_in, clock_out)
    else:
        hours = max(0.0, round(_as_float(raw_hours, 0.0), 2))

    raw_overtime = pick("overtime_hours")
    if raw_overtime is None:
        overtime = max(0.0, round(hours - settings.STANDARD_WORKDAY_HOURS, 2))
    else:
        overtime = max(0.0, round(_as_float(raw_overtime, 0.0), 2))

    ident = canonical_id(pick("id"))
    if ident is None:
        ident = f"att_{employee_id}_{day}"

    try:
        return AttendanceRecord(
            id=ident,
            employee_id=employee_id,
            date=day,
            clock_in=clock_in,
            clock_out=clock_out,
            status=_as_choice(pick("status"), ATTENDANCE_STATUS_MAP, "present"),
            hours=hours,
            overtime_hours=overtime,
            notes=_as_text(pick("notes")),
            last_modified=_as_datetime(pick("last_modified")) or now,
        )
    except ValidationError as exc:
        logger.warning("Attendance record %r skipped: %s", ident, exc.errors()[0]["msg"])
        return None


def normalize_attendance_records(
    items: Iterable[Any], *, now: datetime | None = None
) -> list[AttendanceRecord]:
    now = now or datetime.now(timezone.utc)
    records: list[AttendanceRecord] = []
    skipped = 0
    for item in items:
        record = normalize_attendance_record(item, now=now)
        if record is None:
            skipped += 1
            continue
        records.append(record)

    if skipped:
        logger.warning("Normalization skipped %d malformed attendance item(s)", skipped)
    return records

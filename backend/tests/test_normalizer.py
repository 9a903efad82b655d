"""
Record Normalizer Tests.

Tests:
  - test_employee_aliases            : camelCase, snake_case and legacy names map to one shape
  - test_employee_defaults           : missing fields degrade to defaults, never raise
  - test_full_name_derivation        : fullName from first/last, from name, or from id
  - test_attendance_hours_derived    : hours/overtime computed from clock times
  - test_malformed_items_skipped     : non-mapping items are dropped from a batch
  - test_missing_ids_deterministic   : id-less employees get max+1 ids in input order
"""

from __future__ import annotations

from datetime import datetime, timezone

from attendsync.services.normalizer import (
    canonical_id,
    normalize_attendance_record,
    normalize_attendance_records,
    normalize_employee,
    normalize_employees,
    numeric_id,
    remap_employee_fields,
)

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class TestEmployeeNormalization:
    def test_employee_aliases(self) -> None:
        """Differently named fields land on the same canonical attributes."""
        camel = normalize_employee(
            {"id": "7", "firstName": "Ann", "lastName": "Lee", "hourlyRate": "21.5"}, now=NOW
        )
        snake = normalize_employee(
            {"ID": 7, "first_name": "Ann", "surname": "Lee", "Wage": 21.5}, now=NOW
        )
        assert camel is not None and snake is not None
        assert camel.id == 7, "Numeric string ids become int"
        assert camel.model_dump() == snake.model_dump()
        assert camel.full_name == "Ann Lee"
        assert camel.hourly_rate == 21.5

    def test_employee_defaults(self) -> None:
        """A bare id still yields a complete employee."""
        employee = normalize_employee({"id": 3}, now=NOW)
        assert employee is not None
        assert employee.employee_code == "EMP003"
        assert employee.full_name == "Employee 3"
        assert employee.status == "active"
        assert employee.role == "employee"
        assert employee.salary_type == "hourly"
        assert employee.hourly_rate == 15.0
        assert employee.schedule["monday"].active is True
        assert employee.schedule["monday"].start == "08:00"
        assert employee.schedule["sunday"].active is False
        assert employee.updated_at == NOW

    def test_unknown_choices_fall_back(self) -> None:
        """Unrecognised enum values use the default instead of failing."""
        employee = normalize_employee(
            {"id": 1, "status": "on vacation", "role": "Supervisor", "payType": "Salaried"},
            now=NOW,
        )
        assert employee is not None
        assert employee.status == "active"
        assert employee.role == "manager"
        assert employee.salary_type == "salary"

    def test_full_name_derivation(self) -> None:
        """fullName comes from first/last, then the name alias, then the id."""
        from_parts = normalize_employee({"id": 1, "firstName": "Ann", "lastName": "Lee"})
        from_name = normalize_employee({"id": 2, "name": "  Bob   Stone "})
        from_id = normalize_employee({"id": "x9"})
        assert from_parts.full_name == "Ann Lee"
        assert from_name.full_name == "Bob Stone"
        assert (from_name.first_name, from_name.last_name) == ("Bob", "Stone")
        assert from_id.full_name == "Employee x9"
        assert from_id.employee_code == "EMP-x9"

    def test_schedule_merges_with_default(self) -> None:
        employee = normalize_employee(
            {"id": 1, "schedule": {"Sat": {"active": True, "start": "10:00"}}}
        )
        assert employee.schedule["saturday"].active is True
        assert employee.schedule["saturday"].start == "10:00"
        assert employee.schedule["saturday"].end == "17:00"
        assert employee.schedule["friday"].active is True

    def test_not_a_mapping(self) -> None:
        assert normalize_employee(["id", 1]) is None
        assert normalize_employee(None) is None


class TestAttendanceNormalization:
    def test_attendance_hours_derived(self) -> None:
        """hours and overtimeHours are computed when absent."""
        record = normalize_attendance_record(
            {"employeeId": "5", "date": "2024-02-02", "timeIn": "8:00 AM", "timeOut": "18:30"},
            now=NOW,
        )
        assert record is not None
        assert record.employee_id == 5
        assert record.clock_in == "08:00"
        assert record.clock_out == "18:30"
        assert record.hours == 10.5
        assert record.overtime_hours == 2.5
        assert record.id == "att_5_2024-02-02"
        assert record.last_modified == NOW

    def test_supplied_hours_kept(self) -> None:
        record = normalize_attendance_record(
            {"id": "a", "emp_id": 5, "date": "2024-02-02", "hoursWorked": "6", "overtime": 0}
        )
        assert record.hours == 6.0
        assert record.overtime_hours == 0.0

    def test_negative_span_is_zero(self) -> None:
        """A clock-out before clock-in never yields negative hours."""
        record = normalize_attendance_record(
            {"employeeId": 1, "date": "2024-02-02", "clockIn": "17:00", "clockOut": "09:00"}
        )
        assert record.hours == 0.0

    def test_date_from_clock_in_timestamp(self) -> None:
        record = normalize_attendance_record(
            {"employeeId": 1, "clockIn": "2024-02-02T09:05:00Z", "status": "Tardy"}
        )
        assert record.date == "2024-02-02"
        assert record.clock_in == "09:05"
        assert record.status == "late"

    def test_malformed_items_skipped(self) -> None:
        """Non-mapping items are dropped; the rest of the batch survives."""
        records = normalize_attendance_records(
            [{"employeeId": 1, "date": "2024-01-01"}, "garbage", 42, None], now=NOW
        )
        assert len(records) == 1


class TestBatchAndIds:
    def test_missing_ids_deterministic(self) -> None:
        """Id-less employees get max(numeric ids) + 1, in input order."""
        items = [{"id": 4, "name": "A"}, {"name": "B"}, {"id": "2", "name": "C"}, {"name": "D"}]
        first = normalize_employees(items, now=NOW)
        second = normalize_employees(items, now=NOW)
        assert [e.id for e in first] == [4, 5, 2, 6]
        assert [e.model_dump() for e in first] == [e.model_dump() for e in second]

    def test_canonical_and_numeric_id(self) -> None:
        assert canonical_id("12") == 12
        assert canonical_id(12.0) == 12
        assert canonical_id(" emp_1 ") == "emp_1"
        assert canonical_id("") is None
        assert numeric_id("emp_007") == 7
        assert numeric_id("abc") == numeric_id("abc"), "CRC fallback is stable"

    def test_remap_employee_fields(self) -> None:
        """Partial updates are renamed to canonical fields; unknown keys dropped."""
        assert remap_employee_fields({"Department": "Ops", "name": "Z", "bogus": 1}) == {
            "department": "Ops",
            "full_name": "Z",
        }

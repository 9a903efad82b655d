"""
Remote authority endpoints under /api/unified.

Bodies go through the record normalizer, so every shape the engine
accepts is accepted here too. Upserts check existence by id first
(attendance also by employee and day), then update or insert.
"""

import logging
from datetime import date, datetime, timezone
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from attendsync.core.exceptions import EmployeeNotFoundError
from attendsync.core.middleware import get_current_principal, require_role
from attendsync.db.models import AttendanceRow, EmployeeRow
from attendsync.db.session import get_db
from attendsync.schemas.entities import AttendanceRecord, Employee
from attendsync.schemas.sync import SnapshotPayload, SyncCounts, SyncResult
from attendsync.services.normalizer import (
    canonical_id,
    normalize_attendance_record,
    normalize_attendance_records,
    normalize_employee,
    normalize_employees,
    remap_attendance_fields,
    remap_employee_fields,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _key(value: Any) -> str:
    return str(canonical_id(value))


def _row_to_employee(row: EmployeeRow) -> Employee:
    data: dict[str, Any] = dict(
        id=canonical_id(row.id),
        employee_code=row.employee_code,
        first_name=row.first_name,
        last_name=row.last_name,
        full_name=row.full_name,
        department=row.department,
        position=row.position,
        email=row.email,
        phone=row.phone,
        hire_date=row.hire_date,
        hourly_rate=row.hourly_rate,
        salary_type=row.salary_type,
        status=row.status,
        role=row.role,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
    if row.schedule:
        data["schedule"] = row.schedule
    return Employee(**data)


def _row_to_record(row: AttendanceRow) -> AttendanceRecord:
    return AttendanceRecord(
        id=canonical_id(row.id),
        employee_id=canonical_id(row.employee_id),
        date=row.date,
        clock_in=row.clock_in,
        clock_out=row.clock_out,
        status=row.status,
        hours=row.hours,
        overtime_hours=row.overtime_hours,
        notes=row.notes,
        last_modified=row.last_modified,
    )


def _apply_employee(row: EmployeeRow, employee: Employee) -> None:
    row.employee_code = employee.employee_code
    row.first_name = employee.first_name
    row.last_name = employee.last_name
    row.full_name = employee.full_name
    row.department = employee.department
    row.position = employee.position
    row.email = employee.email
    row.phone = employee.phone
    row.hire_date = employee.hire_date
    row.hourly_rate = employee.hourly_rate
    row.salary_type = employee.salary_type
    row.status = employee.status
    row.role = employee.role
    row.schedule = {day: slot.model_dump() for day, slot in employee.schedule.items()}
    if employee.created_at is not None and row.created_at is None:
        row.created_at = employee.created_at


def _apply_record(row: AttendanceRow, record: AttendanceRecord, employee_key: str) -> None:
    row.employee_id = employee_key
    row.date = record.date
    row.clock_in = record.clock_in
    row.clock_out = record.clock_out
    row.status = record.status
    row.hours = record.hours
    row.overtime_hours = record.overtime_hours
    row.notes = record.notes
    row.last_modified = record.last_modified or datetime.now(timezone.utc)


async def _resolve_employee(db: AsyncSession, employee_id: Any) -> EmployeeRow:
    """Find an employee by id, falling back to its employee code."""
    row = await db.get(EmployeeRow, _key(employee_id))
    if row is None:
        result = await db.execute(
            select(EmployeeRow).where(EmployeeRow.employee_code == str(employee_id))
        )
        row = result.scalars().first()
    if row is None:
        raise EmployeeNotFoundError(employee_id)
    return row


async def _next_employee_id(db: AsyncSession) -> int:
    result = await db.execute(select(EmployeeRow.id))
    numeric = [ident for ident in map(canonical_id, result.scalars().all()) if isinstance(ident, int)]
    return max(numeric, default=0) + 1


async def _upsert_employee(db: AsyncSession, employee: Employee) -> tuple[EmployeeRow, str]:
    row = await db.get(EmployeeRow, _key(employee.id))
    action = "updated"
    if row is None:
        row = EmployeeRow(id=_key(employee.id))
        db.add(row)
        action = "created"
    _apply_employee(row, employee)
    return row, action


async def _upsert_record(db: AsyncSession, record: AttendanceRecord) -> tuple[AttendanceRow, str]:
    employee = await _resolve_employee(db, record.employee_id)

    row = await db.get(AttendanceRow, _key(record.id))
    if row is None:
        result = await db.execute(
            select(AttendanceRow).where(
                AttendanceRow.employee_id == employee.id,
                AttendanceRow.date == record.date,
            )
        )
        row = result.scalar_one_or_none()

    action = "updated"
    if row is None:
        row = AttendanceRow(id=_key(record.id))
        db.add(row)
        action = "created"
    _apply_record(row, record, employee.id)
    return row, action


# ---------------------------------------------------------------------------
# Whole snapshot
# ---------------------------------------------------------------------------


@router.get(
    "/data",
    summary="All employees and attendance records",
)
async def get_all_data(
    db: AsyncSession = Depends(get_db),
    _principal: dict = Depends(get_current_principal),
) -> dict:
    employees = (
        await db.execute(select(EmployeeRow).order_by(EmployeeRow.created_at, EmployeeRow.id))
    ).scalars().all()
    records = (
        await db.execute(
            select(AttendanceRow).order_by(AttendanceRow.date, AttendanceRow.employee_id)
        )
    ).scalars().all()

    return {
        "success": True,
        "data": {
            "employees": [_row_to_employee(row).to_wire() for row in employees],
            "attendanceRecords": [_row_to_record(row).to_wire() for row in records],
        },
    }


@router.post(
    "/sync",
    summary="Upsert a full snapshot, entity by entity",
)
async def sync_snapshot(
    body: SnapshotPayload,
    db: AsyncSession = Depends(get_db),
    _principal: dict = Depends(get_current_principal),
) -> dict:
    employees = normalize_employees(body.employees)
    records = normalize_attendance_records(body.attendance_records)
    synced = SyncCounts()
    errors: list[str] = []

    skipped = len(body.employees) - len(employees)
    if skipped:
        errors.append(f"{skipped} malformed employee item(s) skipped")
    skipped = len(body.attendance_records) - len(records)
    if skipped:
        errors.append(f"{skipped} malformed attendance item(s) skipped")

    # Employees first so that attendance can reference them.
    for employee in employees:
        try:
            await _upsert_employee(db, employee)
            await db.commit()
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.warning("Sync of employee %s failed: %s", employee.id, exc)
            errors.append(f"employee {employee.id}: {exc.__class__.__name__}")
            continue
        synced.employees += 1

    for record in records:
        try:
            await _upsert_record(db, record)
            await db.commit()
        except EmployeeNotFoundError as exc:
            await db.rollback()
            errors.append(f"attendance {record.id}: {exc}")
            continue
        except SQLAlchemyError as exc:
            await db.rollback()
            logger.warning("Sync of attendance %s failed: %s", record.id, exc)
            errors.append(f"attendance {record.id}: {exc.__class__.__name__}")
            continue
        synced.attendance += 1

    message = f"Synced {synced.employees} employee(s) and {synced.attendance} attendance record(s)"
    if errors:
        message += f", {len(errors)} error(s)"
    logger.info("%s", message)
    return SyncResult(success=not errors, message=message, synced=synced, errors=errors).model_dump()


# ---------------------------------------------------------------------------
# Employees
# ---------------------------------------------------------------------------


@router.post(
    "/employees",
    summary="Create or update one employee",
)
async def upsert_employee(
    body: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    _principal: dict = Depends(get_current_principal),
) -> dict:
    employee = normalize_employee(body, fallback_id=await _next_employee_id(db))
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Employee data could not be normalized",
        )

    row, action = await _upsert_employee(db, employee)
    await db.commit()
    await db.refresh(row)
    return {"success": True, "action": action, "data": _row_to_employee(row).to_wire()}


@router.put(
    "/employees/{employee_id}",
    summary="Update an existing employee",
)
async def update_employee(
    employee_id: str,
    body: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    _principal: dict = Depends(get_current_principal),
) -> dict:
    row = await db.get(EmployeeRow, _key(employee_id))
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Employee not found",
        )

    current = _row_to_employee(row)
    changes = remap_employee_fields(body)
    merged = current.model_dump()
    if ({"first_name", "last_name"} & changes.keys()) and "full_name" not in changes:
        merged.pop("full_name", None)
    merged.update(changes)
    merged["id"] = current.id
    employee = normalize_employee(merged)
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Employee data could not be normalized",
        )

    _apply_employee(row, employee)
    await db.commit()
    await db.refresh(row)
    return {"success": True, "action": "updated", "data": _row_to_employee(row).to_wire()}


@router.delete(
    "/employees/{employee_id}",
    summary="Delete an employee and its attendance (admin or manager)",
)
async def delete_employee(
    employee_id: str,
    db: AsyncSession = Depends(get_db),
    _principal: dict = Depends(require_role("admin", "manager")),
) -> dict:
    row = await db.get(EmployeeRow, _key(employee_id))
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Employee not found",
        )

    result = await db.execute(delete(AttendanceRow).where(AttendanceRow.employee_id == row.id))
    removed = result.rowcount or 0
    await db.delete(row)
    await db.commit()

    logger.info("Employee %s deleted with %d attendance record(s)", employee_id, removed)
    return {
        "success": True,
        "message": f"Employee {employee_id} deleted",
        "removedAttendanceRecords": removed,
    }


# ---------------------------------------------------------------------------
# Attendance
# ---------------------------------------------------------------------------


@router.post(
    "/attendance",
    summary="Create or update one attendance record",
)
async def upsert_attendance(
    body: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    _principal: dict = Depends(get_current_principal),
) -> dict:
    raw = dict(body)
    if "date" not in remap_attendance_fields(raw):
        raw["date"] = date.today().isoformat()
    record = normalize_attendance_record(raw)
    if record is None or not record.date:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Attendance data could not be normalized",
        )

    try:
        row, action = await _upsert_record(db, record)
    except EmployeeNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )
    await db.commit()
    await db.refresh(row)
    return {"success": True, "action": action, "data": _row_to_record(row).to_wire()}


@router.put(
    "/attendance/{record_id}",
    summary="Update an existing attendance record",
)
async def update_attendance(
    record_id: str,
    body: dict[str, Any] = Body(...),
    db: AsyncSession = Depends(get_db),
    _principal: dict = Depends(get_current_principal),
) -> dict:
    row = await db.get(AttendanceRow, _key(record_id))
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Attendance record not found",
        )

    current = _row_to_record(row)
    changes = remap_attendance_fields(body)
    merged = current.model_dump()
    merged.pop("last_modified", None)
    if ({"clock_in", "clock_out"} & changes.keys()) and "hours" not in changes:
        merged.pop("hours", None)
        if "overtime_hours" not in changes:
            merged.pop("overtime_hours", None)
    merged.update(changes)
    merged["id"] = current.id
    record = normalize_attendance_record(merged)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Attendance data could not be normalized",
        )

    try:
        employee = await _resolve_employee(db, record.employee_id)
    except EmployeeNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )

    clash = await db.execute(
        select(AttendanceRow).where(
            AttendanceRow.employee_id == employee.id,
            AttendanceRow.date == record.date,
            AttendanceRow.id != row.id,
        )
    )
    if clash.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Another attendance record exists for this employee and date",
        )

    _apply_record(row, record, employee.id)
    await db.commit()
    await db.refresh(row)
    return {"success": True, "action": "updated", "data": _row_to_record(row).to_wire()}


@router.delete(
    "/attendance/{record_id}",
    summary="Delete one attendance record",
)
async def delete_attendance(
    record_id: str,
    db: AsyncSession = Depends(get_db),
    _principal: dict = Depends(get_current_principal),
) -> dict:
    row = await db.get(AttendanceRow, _key(record_id))
    if row is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Attendance record not found",
        )

    await db.delete(row)
    await db.commit()
    return {"success": True, "message": f"Attendance record {record_id} deleted"}

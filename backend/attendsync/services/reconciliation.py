"""
Reconciliation engine.

One engine owns the snapshot of one execution context and runs the
startup pipeline strictly in order:

    discover   remote pull -> local store -> legacy keys
    merge      normalize -> dedupe -> repair orphans -> fallback roster
    stabilize  sample attendance -> persist -> purge legacy -> push -> arm timer

Every step recovers from its own failures. The only errors that reach a
caller are the not-found errors of the mutation methods.

Mutations replace the whole stored snapshot, then notify the other
contexts, which reload full state from the store. The remote authority
sees local changes on the next push.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Literal

from attendsync.core.config import settings
from attendsync.core.exceptions import (
    AttendanceRecordNotFoundError,
    EmployeeNotFoundError,
    RemoteSyncError,
)
from attendsync.schemas.entities import AttendanceRecord, Employee
from attendsync.schemas.sync import BatchResult, RawSnapshot, Snapshot, SyncMessage, SyncResult
from attendsync.services.deduplicator import dedupe_attendance, dedupe_employees
from attendsync.services.integrity import ids_match, repair_orphans
from attendsync.services.normalizer import (
    normalize_attendance_record,
    normalize_attendance_records,
    normalize_employee,
    normalize_employees,
    remap_attendance_fields,
    remap_employee_fields,
)
from attendsync.services.roster import fallback_roster
from attendsync.services.sample_generator import generate_sample_attendance
from attendsync.storage.snapshot_store import SnapshotStore
from attendsync.sync.broadcaster import CrossContextBroadcaster
from attendsync.sync.events import ATTENDANCE_UPDATE, DATA_SYNC, EMPLOYEE_UPDATE, EventEmitter
from attendsync.sync.remote_client import SyncTransport
from attendsync.tasks.scheduler import PeriodicSync

logger = logging.getLogger(__name__)

DiscoverySource = Literal["remote", "local", "legacy", "none"]


@dataclass
class Discovery:
    source: DiscoverySource
    data: RawSnapshot
    legacy_keys: list[str] = field(default_factory=list)
    remote_reachable: bool = False


@dataclass
class MergeResult:
    snapshot: Snapshot
    duplicates_removed: int = 0
    orphans_removed: int = 0
    used_fallback_roster: bool = False


@dataclass
class InitializationReport:
    """What one startup pass found and did."""

    source: DiscoverySource
    employees: int
    attendance_records: int
    duplicates_removed: int = 0
    orphans_removed: int = 0
    samples_generated: int = 0
    used_fallback_roster: bool = False
    persisted: bool = False
    legacy_keys_purged: list[str] = field(default_factory=list)
    remote_reachable: bool = False
    push: SyncResult | None = None
    periodic_sync: bool = False


class ReconciliationEngine:
    def __init__(
        self,
        store: SnapshotStore,
        transport: SyncTransport | None = None,
        broadcaster: CrossContextBroadcaster | None = None,
        *,
        context_id: str | None = None,
        sync_interval_seconds: float | None = None,
        today: Callable[[], date] = date.today,
        generate_samples: bool | None = None,
    ) -> None:
        self.store = store
        self.transport = transport
        self.broadcaster = broadcaster
        self.context_id = context_id or store.storage.context_id
        self.sync_interval_seconds = sync_interval_seconds or settings.SYNC_INTERVAL_SECONDS
        self.today = today
        self.generate_samples = (
            settings.SAMPLE_ATTENDANCE_ENABLED if generate_samples is None else generate_samples
        )
        self.events = EventEmitter()

        self.employees: list[Employee] = []
        self.attendance_records: list[AttendanceRecord] = []
        self.initialized = False
        self.remote_reachable = False
        self.report: InitializationReport | None = None

        self._init_lock = asyncio.Lock()
        self._periodic: PeriodicSync | None = None
        self._unsubscribe: Callable[[], None] | None = None
        if broadcaster is not None:
            self._unsubscribe = broadcaster.subscribe(self._on_notification)

    # ------------------------------------------------------------------
    # Startup pipeline
    # ------------------------------------------------------------------

    async def initialize(self) -> InitializationReport:
        """Run discover, merge and stabilize once. Later calls return the first report."""
        async with self._init_lock:
            if self.initialized and self.report is not None:
                return self.report

            discovery = await self.discover()
            merged = self.merge(discovery.data)
            report = await self.stabilize(discovery, merged)

            self.report = report
            self.initialized = True
            logger.info(
                "Context %s initialized from %s: employees=%d, attendance=%d",
                self.context_id, report.source, report.employees, report.attendance_records,
            )
            self.events.emit(DATA_SYNC, {"action": "initialized", "source": report.source})
            return report

    async def discover(self) -> Discovery:
        remote_reachable = False

        if self.transport is not None:
            remote = await self._pull()
            if remote is not None:
                remote_reachable = True
                if not remote.is_empty():
                    logger.info("Discovered data on the remote authority")
                    return Discovery("remote", remote, remote_reachable=True)
                logger.info("Remote snapshot is empty, trying the local store")

        try:
            local = await self.store.load()
        except Exception as exc:
            logger.warning("Local snapshot unavailable: %s", exc)
            local = None
        if local is not None and not local.is_empty():
            logger.info("Discovered data in the local store")
            return Discovery("local", local, remote_reachable=remote_reachable)

        try:
            legacy, keys = await self.store.read_legacy_sources()
        except Exception as exc:
            logger.warning("Legacy keys unavailable: %s", exc)
            legacy, keys = RawSnapshot(), []
        if not legacy.is_empty():
            logger.info("Discovered data under legacy keys: %s", ", ".join(keys))
            return Discovery("legacy", legacy, legacy_keys=keys, remote_reachable=remote_reachable)

        logger.info("No existing data found")
        return Discovery("none", RawSnapshot(), remote_reachable=remote_reachable)

    def merge(self, data: RawSnapshot, *, allow_fallback: bool = True) -> MergeResult:
        """Normalize, dedupe and repair a raw snapshot. Never raises."""
        now = datetime.now(timezone.utc)
        employees = normalize_employees(data.employees, now=now)
        records = normalize_attendance_records(data.attendance_records, now=now)

        unique_employees = dedupe_employees(employees)
        unique_records = dedupe_attendance(records)
        duplicates = (len(employees) - len(unique_employees)) + (len(records) - len(unique_records))

        repaired = repair_orphans(unique_employees, unique_records)

        used_fallback = False
        if not unique_employees and allow_fallback:
            logger.info("No employees after merge, using the fallback roster")
            unique_employees = fallback_roster(now)
            used_fallback = True

        logger.info(
            "Merged snapshot: employees=%d, attendance=%d (duplicates=%d, orphans=%d)",
            len(unique_employees), len(repaired.records), duplicates, repaired.removed_count,
        )
        return MergeResult(
            snapshot=Snapshot(employees=unique_employees, attendance_records=repaired.records),
            duplicates_removed=duplicates,
            orphans_removed=repaired.removed_count,
            used_fallback_roster=used_fallback,
        )

    async def stabilize(self, discovery: Discovery, merged: MergeResult) -> InitializationReport:
        employees = list(merged.snapshot.employees)
        records = list(merged.snapshot.attendance_records)

        samples: list[AttendanceRecord] = []
        day = self.today()
        if self.generate_samples and not any(r.date == day.isoformat() for r in records):
            samples = generate_sample_attendance(employees, day)
        records.extend(samples)

        self.employees = employees
        self.attendance_records = records

        persisted = await self._persist()

        purged: list[str] = []
        if persisted and discovery.source == "legacy":
            try:
                purged = await self.store.purge_legacy_sources()
            except Exception as exc:
                logger.warning("Legacy key purge failed: %s", exc)

        push: SyncResult | None = None
        if self.transport is not None:
            push = await self.sync_to_backend()
            if not push.success:
                logger.warning("Initial push failed, continuing local-only: %s", push.message)

        self.remote_reachable = discovery.remote_reachable or bool(push and push.success)
        if self.remote_reachable:
            self.start_periodic_sync()

        return InitializationReport(
            source=discovery.source,
            employees=len(employees),
            attendance_records=len(records),
            duplicates_removed=merged.duplicates_removed,
            orphans_removed=merged.orphans_removed,
            samples_generated=len(samples),
            used_fallback_roster=merged.used_fallback_roster,
            persisted=persisted,
            legacy_keys_purged=purged,
            remote_reachable=self.remote_reachable,
            push=push,
            periodic_sync=self.periodic_sync_running,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_employees(self) -> list[Employee]:
        return list(self.employees)

    def get_employee(self, employee_id: int | str) -> Employee | None:
        index = self._employee_index(employee_id)
        return None if index is None else self.employees[index]

    def get_all_attendance_records(self) -> list[AttendanceRecord]:
        return list(self.attendance_records)

    def get_attendance_by_date(self, day: date | str) -> list[AttendanceRecord]:
        wanted = day.isoformat() if isinstance(day, date) else str(day)
        return [record for record in self.attendance_records if record.date == wanted]

    def get_attendance_by_employee(self, employee_id: int | str) -> list[AttendanceRecord]:
        return [
            record for record in self.attendance_records
            if ids_match(record.employee_id, employee_id)
        ]

    def get_today_attendance_stats(self) -> dict[str, int]:
        today = self.get_attendance_by_date(self.today())
        late = sum(1 for record in today if record.status == "late")
        on_time = sum(1 for record in today if record.status == "present")
        present = late + on_time
        total = len([e for e in self.employees if e.status == "active"])
        return {
            "total": total,
            "present": present,
            "absent": max(0, total - present),
            "late": late,
            "onTime": on_time,
        }

    # ------------------------------------------------------------------
    # Employee mutations
    # ------------------------------------------------------------------

    async def add_employee(self, data: Mapping[str, Any]) -> Employee:
        """
        Add an employee, or replace the one with the same id.

        Also seeds a ``waiting`` attendance record for today when the
        employee has none yet.
        """
        employee = normalize_employee(data, fallback_id=self._next_employee_id())
        if employee is None:
            raise ValueError("Employee data could not be normalized")

        index = self._employee_index(employee.id)
        if index is None:
            self.employees.append(employee)
            action = "add"
        else:
            self.employees[index] = employee
            action = "update"

        today = self.today().isoformat()
        has_today = any(
            record.date == today and ids_match(record.employee_id, employee.id)
            for record in self.attendance_records
        )
        if not has_today:
            self.attendance_records.append(
                AttendanceRecord(
                    id=f"att_{employee.id}_{today}",
                    employee_id=employee.id,
                    date=today,
                    status="waiting",
                    notes="Awaiting clock-in",
                    last_modified=datetime.now(timezone.utc),
                )
            )

        logger.info("Employee %s %s", employee.id, "added" if action == "add" else "replaced")
        await self._commit(EMPLOYEE_UPDATE, {"action": action, "employeeId": employee.id})
        return employee

    async def update_employee(self, employee_id: int | str, changes: Mapping[str, Any]) -> Employee:
        index = self._employee_index(employee_id)
        if index is None:
            raise EmployeeNotFoundError(employee_id)

        current = self.employees[index]
        remapped = remap_employee_fields(changes)
        merged = current.model_dump()
        if ({"first_name", "last_name"} & remapped.keys()) and "full_name" not in remapped:
            merged.pop("full_name", None)
        merged.update(remapped)
        merged["id"] = current.id
        updated = normalize_employee(merged)
        if updated is None:
            raise ValueError(f"Changes to employee {current.id!r} could not be normalized")

        self.employees[index] = updated
        logger.info("Employee %s updated", updated.id)
        await self._commit(EMPLOYEE_UPDATE, {"action": "update", "employeeId": updated.id})
        return updated

    async def delete_employee(self, employee_id: int | str) -> dict[str, Any]:
        """Remove an employee and every attendance record that points at it."""
        index = self._employee_index(employee_id)
        if index is None:
            raise EmployeeNotFoundError(employee_id)

        employee = self.employees.pop(index)
        before = len(self.attendance_records)
        self.attendance_records = [
            record for record in self.attendance_records
            if not (
                ids_match(record.employee_id, employee.id)
                or str(record.employee_id) == employee.employee_code
            )
        ]
        removed = before - len(self.attendance_records)

        logger.info("Employee %s deleted with %d attendance record(s)", employee.id, removed)
        await self._commit(
            EMPLOYEE_UPDATE,
            {"action": "delete", "employeeId": employee.id, "removedAttendanceRecords": removed},
        )
        if self.transport is not None:
            await self._remote_delete("employee", self.transport.delete_employee, employee.id)
        return {"employee": employee, "removedAttendanceRecords": removed}

    # ------------------------------------------------------------------
    # Attendance mutations
    # ------------------------------------------------------------------

    async def add_attendance_record(self, data: Mapping[str, Any]) -> AttendanceRecord:
        """Add a record; an existing record for the same employee and day is replaced."""
        raw = dict(data)
        if "date" not in remap_attendance_fields(raw):
            raw["date"] = self.today().isoformat()
        record = normalize_attendance_record(raw)
        if record is None:
            raise ValueError("Attendance data could not be normalized")
        record = self._attach_owner(record)

        index = self._attendance_slot(record.employee_id, record.date)
        if index is None:
            self.attendance_records.append(record)
            action = "add"
        else:
            self.attendance_records[index] = record
            action = "update"

        logger.info("Attendance %s %s", record.id, "added" if action == "add" else "replaced")
        await self._commit(ATTENDANCE_UPDATE, {"action": action, "recordId": record.id})
        return record

    async def update_attendance_record(
        self, record_id: int | str, changes: Mapping[str, Any]
    ) -> AttendanceRecord:
        index = self._attendance_index(record_id)
        if index is None:
            raise AttendanceRecordNotFoundError(record_id)

        current = self.attendance_records[index]
        remapped = remap_attendance_fields(changes)
        merged = current.model_dump()
        merged.pop("last_modified", None)
        if ({"clock_in", "clock_out"} & remapped.keys()) and "hours" not in remapped:
            merged.pop("hours", None)
            if "overtime_hours" not in remapped:
                merged.pop("overtime_hours", None)
        merged.update(remapped)
        merged["id"] = current.id

        updated = normalize_attendance_record(merged)
        if updated is None:
            raise ValueError(f"Changes to attendance record {current.id!r} could not be normalized")
        updated = self._attach_owner(updated)

        self.attendance_records[index] = updated
        clash = self._attendance_slot(updated.employee_id, updated.date, skip=index)
        if clash is not None:
            dropped = self.attendance_records.pop(clash)
            logger.info("Attendance %s superseded by %s", dropped.id, updated.id)

        logger.info("Attendance %s updated", updated.id)
        await self._commit(ATTENDANCE_UPDATE, {"action": "update", "recordId": updated.id})
        return updated

    async def delete_attendance_record(self, record_id: int | str) -> AttendanceRecord:
        index = self._attendance_index(record_id)
        if index is None:
            raise AttendanceRecordNotFoundError(record_id)

        record = self.attendance_records.pop(index)
        logger.info("Attendance %s deleted", record.id)
        await self._commit(ATTENDANCE_UPDATE, {"action": "delete", "recordId": record.id})
        if self.transport is not None:
            await self._remote_delete(
                "attendance record", self.transport.delete_attendance_record, record.id
            )
        return record

    # ------------------------------------------------------------------
    # Remote sync
    # ------------------------------------------------------------------

    async def sync_to_backend(self) -> SyncResult:
        """Push the current snapshot. Never raises."""
        if self.transport is None:
            return SyncResult(success=False, message="Remote sync is not configured")

        employees = list(self.employees)
        records = list(self.attendance_records)
        try:
            result = await self.transport.push(employees, records)
        except Exception as exc:
            logger.warning("Push to remote failed: %s", exc)
            return SyncResult(success=False, message=str(exc))

        if result.success:
            self.remote_reachable = True
        return result

    async def force_sync_to_backend(self) -> SyncResult:
        result = await self.sync_to_backend()
        self.events.emit(
            DATA_SYNC, {"action": "forceSync", "success": result.success, "message": result.message}
        )
        return result

    async def force_load_from_backend(self) -> bool:
        """Replace the local snapshot with the remote one. False when nothing was loaded."""
        if self.transport is None:
            return False
        remote = await self._pull()
        if remote is None or remote.is_empty():
            logger.info("Nothing to load from the remote authority")
            return False

        merged = self.merge(remote)
        self.employees = list(merged.snapshot.employees)
        self.attendance_records = list(merged.snapshot.attendance_records)
        self.remote_reachable = True
        await self._commit(
            DATA_SYNC,
            {
                "action": "loadFromBackend",
                "employees": len(self.employees),
                "attendanceRecords": len(self.attendance_records),
            },
        )
        return True

    async def push_entities(self) -> BatchResult:
        """Upsert the current snapshot entity by entity on the remote."""
        if self.transport is None:
            return BatchResult(errors=["Remote sync is not configured"])
        return await self.transport.push_entities(
            list(self.employees), list(self.attendance_records)
        )

    @property
    def periodic_sync_running(self) -> bool:
        return self._periodic is not None and self._periodic.running

    def start_periodic_sync(self) -> None:
        if self.periodic_sync_running:
            return
        self._periodic = PeriodicSync(
            self._periodic_push,
            self.sync_interval_seconds,
            job_id=f"periodic_push_{self.context_id}",
        )
        self._periodic.start()

    def stop_periodic_sync(self) -> None:
        if self._periodic is not None:
            self._periodic.stop()
            self._periodic = None

    async def _periodic_push(self) -> None:
        result = await self.sync_to_backend()
        if not result.success:
            logger.warning("Periodic push failed: %s", result.message)

    # ------------------------------------------------------------------
    # Cross-context notifications
    # ------------------------------------------------------------------

    async def reload_from_store(self) -> bool:
        """Replace in-memory state with whatever the store holds now."""
        try:
            loaded = await self.store.load()
        except Exception as exc:
            logger.warning("Reload from local store failed: %s", exc)
            return False
        if loaded is None:
            return False

        merged = self.merge(loaded, allow_fallback=False)
        self.employees = list(merged.snapshot.employees)
        self.attendance_records = list(merged.snapshot.attendance_records)
        return True

    async def _on_notification(self, message: SyncMessage) -> None:
        logger.debug(
            "Context %s received %s from %s", self.context_id, message.type, message.source
        )
        if not await self.reload_from_store():
            return
        if message.type in (EMPLOYEE_UPDATE, ATTENDANCE_UPDATE):
            self.events.emit(message.type, {**message.data, "source": "crossContext"})
        self.events.emit(
            DATA_SYNC,
            {"action": "crossContextReload", "type": message.type, "source": message.source},
        )

    async def shutdown(self) -> None:
        self.stop_periodic_sync()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self.broadcaster is not None:
            await self.broadcaster.close()
        logger.info("Context %s shut down", self.context_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _persist(self) -> bool:
        try:
            await self.store.persist(
                self.employees, self.attendance_records, source=self.context_id
            )
        except Exception:
            logger.exception("Persisting the snapshot of context %s failed", self.context_id)
            return False
        return True

    async def _commit(self, event: str, data: dict[str, Any]) -> None:
        """Persist, tell the other contexts, then tell local listeners."""
        await self._persist()
        if self.broadcaster is not None:
            await self.broadcaster.broadcast(event, data)
        self.events.emit(event, data)

    async def _pull(self) -> RawSnapshot | None:
        try:
            return await self.transport.pull()
        except Exception as exc:
            logger.warning("Pull from remote failed: %s", exc)
            return None

    async def _remote_delete(
        self, entity: str, delete: Callable[[int | str], Any], entity_id: int | str
    ) -> None:
        try:
            await delete(entity_id)
        except RemoteSyncError as exc:
            logger.warning("Remote delete of %s %s failed: %s", entity, entity_id, exc)

    def _employee_index(self, employee_id: int | str) -> int | None:
        for index, employee in enumerate(self.employees):
            if ids_match(employee.id, employee_id):
                return index
        return None

    def _attach_owner(self, record: AttendanceRecord) -> AttendanceRecord:
        """Point ``record`` at its employee by id, accepting the employee code too."""
        owner = self.get_employee(record.employee_id)
        if owner is None:
            owner = next(
                (e for e in self.employees if e.employee_code == str(record.employee_id)), None
            )
        if owner is None:
            raise EmployeeNotFoundError(record.employee_id)
        if owner.id == record.employee_id:
            return record
        return record.model_copy(update={"employee_id": owner.id})

    def _attendance_index(self, record_id: int | str) -> int | None:
        for index, record in enumerate(self.attendance_records):
            if ids_match(record.id, record_id):
                return index
        return None

    def _attendance_slot(
        self, employee_id: int | str, day: str, skip: int | None = None
    ) -> int | None:
        for index, record in enumerate(self.attendance_records):
            if index != skip and record.date == day and ids_match(record.employee_id, employee_id):
                return index
        return None

    def _next_employee_id(self) -> int:
        numeric = [e.id for e in self.employees if isinstance(e.id, int)]
        return max(numeric, default=0) + 1


"""
Local snapshot store.

The merged snapshot lives under one primary key as
``{employees, attendanceRecords, lastUpdated, version}``. Every persist
also refreshes the legacy mirrors and a small "last write" marker whose
only purpose is to wake up other contexts.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from datetime import datetime, timezone

from attendsync.schemas.entities import AttendanceRecord, Employee
from attendsync.schemas.sync import RawSnapshot
from attendsync.storage.base import KeyValueStorage
from attendsync.storage.legacy import LegacyKeyAdapter

logger = logging.getLogger(__name__)

PRIMARY_KEY = "bricks-unified-employee-data"
SYNC_MARKER_KEY = "bricks_data_sync"
SNAPSHOT_VERSION = "2.0"


class SnapshotStore:
    def __init__(
        self,
        storage: KeyValueStorage,
        legacy: LegacyKeyAdapter | None = None,
    ) -> None:
        self.storage = storage
        self.legacy = legacy or LegacyKeyAdapter()

    async def persist(
        self,
        employees: Sequence[Employee],
        records: Sequence[AttendanceRecord],
        *,
        source: str | None = None,
    ) -> None:
        """Replace the whole stored snapshot."""
        stamp = datetime.now(timezone.utc).isoformat()
        employee_docs = [employee.to_wire() for employee in employees]
        record_docs = [record.to_wire() for record in records]

        document = {
            "employees": employee_docs,
            "attendanceRecords": record_docs,
            "lastUpdated": stamp,
            "version": SNAPSHOT_VERSION,
        }
        await self.storage.set(PRIMARY_KEY, json.dumps(document))
        await self.legacy.mirror(self.storage, employee_docs, record_docs, stamp)

        marker = {
            "timestamp": stamp,
            "action": "update",
            "employees": len(employee_docs),
            "attendanceRecords": len(record_docs),
            "source": source or self.storage.context_id,
        }
        await self.storage.set(SYNC_MARKER_KEY, json.dumps(marker))

        logger.info(
            "Snapshot persisted: employees=%d, attendance=%d",
            len(employee_docs), len(record_docs),
        )

    async def load(self) -> RawSnapshot | None:
        """The primary-key snapshot, or None when absent or unreadable."""
        raw = await self.storage.get(PRIMARY_KEY)
        if raw is None:
            return None
        try:
            document = json.loads(raw)
        except ValueError:
            logger.warning("Primary snapshot key holds malformed JSON, ignored")
            return None
        if not isinstance(document, dict):
            logger.warning("Primary snapshot key holds %s, ignored", type(document).__name__)
            return None

        employees = document.get("employees")
        records = document.get("attendanceRecords")
        return RawSnapshot(
            employees=employees if isinstance(employees, list) else [],
            attendance_records=records if isinstance(records, list) else [],
        )

    async def read_legacy_sources(self) -> tuple[RawSnapshot, list[str]]:
        return await self.legacy.scan(self.storage)

    async def purge_legacy_sources(self) -> list[str]:
        return await self.legacy.purge(self.storage)

"""
Compatibility adapter for storage keys written by earlier versions.

Two groups of keys exist:

* mirror keys, still read by older consumers, rewritten on every persist;
* deprecated keys, only ever read during migration and purged once
  their content has made it into the primary snapshot.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from attendsync.schemas.sync import RawSnapshot
from attendsync.storage.base import KeyValueStorage

logger = logging.getLogger(__name__)

EMPLOYEE_MIRROR_KEY = "employees"
ATTENDANCE_MIRROR_KEY = "attendanceRecords"
COMBINED_MIRROR_KEY = "bricks-attendance-data"

MIRROR_KEYS: tuple[str, ...] = (
    EMPLOYEE_MIRROR_KEY,
    ATTENDANCE_MIRROR_KEY,
    COMBINED_MIRROR_KEY,
)

DEPRECATED_KEYS: tuple[str, ...] = (
    "bricks_attendance_data",
    "bricks_attendance_data_minimal",
    "bricks-employees",
    "bricks_employees",
    "bricks-attendance-records",
    "employeeData",
    "attendanceData",
)

# Keys a combined document may keep its arrays under
_EMPLOYEE_FIELDS = ("employees", "employeeList", "staff")
_ATTENDANCE_FIELDS = ("attendanceRecords", "attendance_records", "attendance", "records")


def _extract(key: str, parsed: Any) -> tuple[list[Any], list[Any]]:
    """Split one key's JSON value into (employees, attendance)."""
    if isinstance(parsed, dict):
        employees: list[Any] = []
        records: list[Any] = []
        for field in _EMPLOYEE_FIELDS:
            if isinstance(parsed.get(field), list):
                employees.extend(parsed[field])
                break
        for field in _ATTENDANCE_FIELDS:
            if isinstance(parsed.get(field), list):
                records.extend(parsed[field])
                break
        return employees, records
    if isinstance(parsed, list):
        lowered = key.lower()
        if "attendance" in lowered or "record" in lowered:
            return [], parsed
        return parsed, []
    return [], []


class LegacyKeyAdapter:
    def __init__(
        self,
        mirror_keys: tuple[str, ...] = MIRROR_KEYS,
        deprecated_keys: tuple[str, ...] = DEPRECATED_KEYS,
    ) -> None:
        self.mirror_keys = mirror_keys
        self.deprecated_keys = deprecated_keys

    async def mirror(
        self,
        storage: KeyValueStorage,
        employees: list[dict],
        records: list[dict],
        last_updated: str,
    ) -> None:
        await storage.set(EMPLOYEE_MIRROR_KEY, json.dumps(employees))
        await storage.set(ATTENDANCE_MIRROR_KEY, json.dumps(records))
        await storage.set(
            COMBINED_MIRROR_KEY,
            json.dumps(
                {
                    "employees": employees,
                    "attendanceRecords": records,
                    "lastUpdated": last_updated,
                }
            ),
        )

    async def scan(self, storage: KeyValueStorage) -> tuple[RawSnapshot, list[str]]:
        """Concatenate whatever every legacy key holds. Returns (data, keys found)."""
        employees: list[Any] = []
        records: list[Any] = []
        found: list[str] = []

        for key in (*self.mirror_keys, *self.deprecated_keys):
            raw = await storage.get(key)
            if raw is None:
                continue
            try:
                parsed = json.loads(raw)
            except ValueError:
                logger.warning("Legacy key '%s' holds malformed JSON, skipped", key)
                continue
            key_employees, key_records = _extract(key, parsed)
            if not key_employees and not key_records:
                continue
            found.append(key)
            employees.extend(key_employees)
            records.extend(key_records)
            logger.debug(
                "Legacy key '%s': employees=%d, attendance=%d",
                key, len(key_employees), len(key_records),
            )

        return RawSnapshot(employees=employees, attendance_records=records), found

    async def purge(self, storage: KeyValueStorage) -> list[str]:
        removed: list[str] = []
        for key in self.deprecated_keys:
            if await storage.get(key) is None:
                continue
            await storage.remove(key)
            removed.append(key)
        if removed:
            logger.info("Purged %d deprecated storage key(s): %s", len(removed), ", ".join(removed))
        return removed

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from attendsync.schemas.entities import AttendanceRecord, CamelModel, Employee


class Snapshot(BaseModel):
    """The complete employees/attendance pair held by one context."""

    employees: list[Employee] = Field(default_factory=list)
    attendance_records: list[AttendanceRecord] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.employees and not self.attendance_records


class RawSnapshot(BaseModel):
    """Un-normalized employees/attendance as read from a source."""

    employees: list[Any] = Field(default_factory=list)
    attendance_records: list[Any] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.employees and not self.attendance_records


class SnapshotPayload(CamelModel):
    """Body of POST /sync; items are validated one by one downstream."""

    employees: list[Any] = Field(default_factory=list)
    attendance_records: list[Any] = Field(default_factory=list)


class SyncCounts(BaseModel):
    employees: int = 0
    attendance: int = 0


class SyncResult(BaseModel):
    success: bool
    message: str
    synced: SyncCounts = Field(default_factory=SyncCounts)
    errors: list[str] = Field(default_factory=list)


class EntityOutcome(BaseModel):
    entity: str
    id: int | str
    action: str


class BatchResult(BaseModel):
    results: list[EntityOutcome] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


class SyncMessage(BaseModel):
    """Cross-context change notification."""

    type: str
    data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    source: str = ""

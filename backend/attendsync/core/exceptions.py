"""
Errors raised past the engine boundary.

Only caller misuse (an id that does not exist) escapes the engine's
mutation API. Remote failures are raised by the per-entity client calls
and are always caught by the batch helpers and by the engine.
"""


class AttendSyncError(Exception):
    """Base class for all attendsync errors."""


class NotFoundError(AttendSyncError):
    entity = "Entity"

    def __init__(self, entity_id: object) -> None:
        self.entity_id = entity_id
        super().__init__(f"{self.entity} not found: {entity_id!r}")


class EmployeeNotFoundError(NotFoundError):
    entity = "Employee"


class AttendanceRecordNotFoundError(NotFoundError):
    entity = "Attendance record"


class RemoteSyncError(AttendSyncError):
    """A single request to the remote authority failed."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)

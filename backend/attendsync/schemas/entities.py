from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

EmployeeStatus = Literal["active", "inactive", "terminated"]
EmployeeRole = Literal["employee", "manager", "admin"]
SalaryType = Literal["hourly", "salary"]
AttendanceStatus = Literal[
    "present", "absent", "late", "on_leave", "sick", "vacation", "waiting"
]

WEEKDAYS: tuple[str, ...] = (
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
)


class CamelModel(BaseModel):
    """Snake-case attributes, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class DaySchedule(BaseModel):
    active: bool = True
    start: str = "08:00"
    end: str = "17:00"


def default_schedule() -> dict[str, DaySchedule]:
    """Mon–Fri 08:00–17:00, weekend off."""
    return {
        day: DaySchedule(active=index < 5)
        for index, day in enumerate(WEEKDAYS)
    }


class Employee(CamelModel):
    id: int | str
    employee_code: str
    first_name: str = ""
    last_name: str = ""
    full_name: str
    department: str = ""
    position: str = ""
    email: str = ""
    phone: str = ""
    hire_date: str | None = None
    hourly_rate: float = 15.0
    salary_type: SalaryType = "hourly"
    status: EmployeeStatus = "active"
    role: EmployeeRole = "employee"
    schedule: dict[str, DaySchedule] = Field(default_factory=default_schedule)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("full_name")
    @classmethod
    def not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Field must not be empty")
        return v.strip()


class AttendanceRecord(CamelModel):
    id: int | str
    employee_id: int | str
    date: str
    clock_in: str | None = None
    clock_out: str | None = None
    status: AttendanceStatus = "present"
    hours: float = 0.0
    overtime_hours: float = 0.0
    notes: str = ""
    last_modified: datetime | None = None

"""Fixed roster used when every discovery source comes back empty."""

from datetime import datetime

from attendsync.schemas.entities import Employee
from attendsync.services.normalizer import normalize_employees

FALLBACK_ROSTER: tuple[dict, ...] = (
    {
        "id": "emp_001",
        "employeeCode": "EMP001",
        "fullName": "John Administrator",
        "email": "admin@bricks.com",
        "role": "admin",
        "department": "Management",
        "position": "System Administrator",
        "hireDate": "2024-01-01",
        "hourlyRate": 25.00,
    },
    {
        "id": "emp_002",
        "employeeCode": "EMP002",
        "fullName": "Jane Employee",
        "email": "employee@bricks.com",
        "department": "Operations",
        "position": "Staff",
        "hireDate": "2024-01-15",
        "hourlyRate": 15.00,
    },
    {
        "id": "emp_003",
        "employeeCode": "EMP003",
        "fullName": "Mike Worker",
        "email": "mike@bricks.com",
        "department": "Operations",
        "position": "Construction Worker",
        "hireDate": "2024-02-01",
        "hourlyRate": 18.00,
    },
    {
        "id": "emp_004",
        "employeeCode": "EMP004",
        "fullName": "Sarah Builder",
        "email": "sarah@bricks.com",
        "role": "manager",
        "department": "Operations",
        "position": "Site Supervisor",
        "hireDate": "2024-03-01",
        "hourlyRate": 22.00,
    },
    {
        "id": "emp_005",
        "employeeCode": "EMP005",
        "fullName": "Tom Mason",
        "email": "tom@bricks.com",
        "department": "Operations",
        "position": "Mason",
        "hireDate": "2024-04-01",
        "hourlyRate": 20.00,
    },
)


def fallback_roster(now: datetime | None = None) -> list[Employee]:
    return normalize_employees(FALLBACK_ROSTER, now=now)

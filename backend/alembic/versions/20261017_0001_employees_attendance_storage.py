"""initial: employees, attendance_records, storage_entries

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "0001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # --- employees ---
    op.create_table(
        "employees",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("employee_code", sa.String(64), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("full_name", sa.String(255), nullable=False),
        sa.Column("department", sa.String(100), nullable=False, server_default=""),
        sa.Column("position", sa.String(100), nullable=False, server_default=""),
        sa.Column("email", sa.String(255), nullable=False, server_default=""),
        sa.Column("phone", sa.String(50), nullable=False, server_default=""),
        sa.Column("hire_date", sa.String(10), nullable=True),
        sa.Column("hourly_rate", sa.Float(), nullable=False, server_default="15"),
        sa.Column(
            "salary_type",
            sa.Enum("hourly", "salary", name="salary_type_enum"),
            nullable=False,
            server_default="hourly",
        ),
        sa.Column(
            "status",
            sa.Enum("active", "inactive", "terminated", name="employee_status_enum"),
            nullable=False,
            server_default="active",
        ),
        sa.Column(
            "role",
            sa.Enum("employee", "manager", "admin", name="employee_role_enum"),
            nullable=False,
            server_default="employee",
        ),
        sa.Column("schedule", sa.JSON(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    # --- attendance_records ---
    op.create_table(
        "attendance_records",
        sa.Column("id", sa.String(64), nullable=False),
        sa.Column("employee_id", sa.String(64), nullable=False),
        sa.Column("date", sa.String(10), nullable=False),
        sa.Column("clock_in", sa.String(5), nullable=True),
        sa.Column("clock_out", sa.String(5), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "present", "absent", "late", "on_leave", "sick", "vacation", "waiting",
                name="attendance_status_enum",
            ),
            nullable=False,
            server_default="present",
        ),
        sa.Column("hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("overtime_hours", sa.Float(), nullable=False, server_default="0"),
        sa.Column("notes", sa.Text(), nullable=False, server_default=""),
        sa.Column("last_modified", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("employee_id", "date", name="uq_attendance_employee_date"),
    )
    op.create_index("ix_attendance_date", "attendance_records", ["date"])

    # --- storage_entries ---
    op.create_table(
        "storage_entries",
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("key"),
    )


def downgrade() -> None:
    op.drop_table("storage_entries")
    op.drop_index("ix_attendance_date", table_name="attendance_records")
    op.drop_table("attendance_records")
    op.drop_table("employees")
    if op.get_bind().dialect.name == "postgresql":
        for enum_name in (
            "attendance_status_enum",
            "employee_role_enum",
            "employee_status_enum",
            "salary_type_enum",
        ):
            op.execute(f"DROP TYPE IF EXISTS {enum_name}")

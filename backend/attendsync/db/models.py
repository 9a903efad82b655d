from datetime import datetime

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class EmployeeRow(Base):
    __tablename__ = "employees"

    # ids arrive as numbers or strings; stored in text form
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    employee_code: Mapped[str] = mapped_column(String(64), nullable=False)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    position: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    email: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    hire_date: Mapped[str | None] = mapped_column(String(10), nullable=True)
    hourly_rate: Mapped[float] = mapped_column(Float, nullable=False, default=15.0)
    salary_type: Mapped[str] = mapped_column(
        Enum("hourly", "salary", name="salary_type_enum"),
        nullable=False,
        default="hourly",
    )
    status: Mapped[str] = mapped_column(
        Enum("active", "inactive", "terminated", name="employee_status_enum"),
        nullable=False,
        default="active",
    )
    role: Mapped[str] = mapped_column(
        Enum("employee", "manager", "admin", name="employee_role_enum"),
        nullable=False,
        default="employee",
    )
    schedule: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    attendance_records: Mapped[list["AttendanceRow"]] = relationship(
        "AttendanceRow", back_populates="employee", lazy="raise", passive_deletes=True
    )

    def __repr__(self) -> str:
        return f"<EmployeeRow id={self.id} code={self.employee_code} name={self.full_name}>"


class AttendanceRow(Base):
    __tablename__ = "attendance_records"

    __table_args__ = (
        UniqueConstraint("employee_id", "date", name="uq_attendance_employee_date"),
        Index("ix_attendance_date", "date"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    employee_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    clock_in: Mapped[str | None] = mapped_column(String(5), nullable=True)
    clock_out: Mapped[str | None] = mapped_column(String(5), nullable=True)
    status: Mapped[str] = mapped_column(
        Enum(
            "present", "absent", "late", "on_leave", "sick", "vacation", "waiting",
            name="attendance_status_enum",
        ),
        nullable=False,
        default="present",
    )
    hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    overtime_hours: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    notes: Mapped[str] = mapped_column(Text, nullable=False, default="")
    last_modified: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    employee: Mapped["EmployeeRow"] = relationship(
        "EmployeeRow", back_populates="attendance_records"
    )

    def __repr__(self) -> str:
        return (
            f"<AttendanceRow id={self.id} employee_id={self.employee_id} "
            f"date={self.date} status={self.status}>"
        )


class StorageEntry(Base):
    """Durable key/value entry backing a local snapshot store."""

    __tablename__ = "storage_entries"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<StorageEntry key={self.key}>"

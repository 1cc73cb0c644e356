"""Employee ORM models: Employee, EmployeeExtraInfo."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from attendance_console.database import Base


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    od_id: Mapped[Optional[str]] = mapped_column(sa.String(50), unique=True)
    employee_code: Mapped[Optional[str]] = mapped_column(sa.String(50))
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    email: Mapped[str] = mapped_column(sa.String(255), unique=True, nullable=False)
    designation: Mapped[Optional[str]] = mapped_column(sa.String(100))
    team: Mapped[Optional[str]] = mapped_column(sa.String(100))
    paid_from: Mapped[Optional[str]] = mapped_column(sa.String(100))
    category: Mapped[Optional[str]] = mapped_column(sa.String(100))
    qualification_level: Mapped[Optional[str]] = mapped_column(sa.String(100))
    registered_under_partner: Mapped[Optional[str]] = mapped_column(sa.String(255))
    working_under_partner: Mapped[Optional[str]] = mapped_column(sa.String(255))
    joining_date: Mapped[Optional[date]] = mapped_column(sa.Date)

    # Schedules ("HH:MM")
    schedule_in: Mapped[Optional[str]] = mapped_column(sa.String(5))
    schedule_out: Mapped[Optional[str]] = mapped_column(sa.String(5))
    schedule_sat_in: Mapped[Optional[str]] = mapped_column(sa.String(5))
    schedule_sat_out: Mapped[Optional[str]] = mapped_column(sa.String(5))
    schedule_month_in: Mapped[Optional[str]] = mapped_column(sa.String(5))
    schedule_month_out: Mapped[Optional[str]] = mapped_column(sa.String(5))

    # Leave balance (remaining is always earned - used)
    leave_earned: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    leave_used: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    leave_remaining: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    leave_last_updated: Mapped[Optional[datetime]] = mapped_column(
        sa.DateTime(timezone=True)
    )
    monthly_leave_rate: Mapped[float] = mapped_column(sa.Float, nullable=False, default=2.0)

    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    extra_info: Mapped[list[EmployeeExtraInfo]] = relationship(
        back_populates="employee",
        cascade="all, delete-orphan",
        order_by="EmployeeExtraInfo.label",
    )

    def __repr__(self) -> str:
        return f"<Employee {self.name} ({self.email})>"


class EmployeeExtraInfo(Base):
    __tablename__ = "employee_extra_info"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    label: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    value: Mapped[str] = mapped_column(sa.Text, nullable=False, default="")

    # Relationships
    employee: Mapped[Employee] = relationship(back_populates="extra_info")

    __table_args__ = (
        sa.UniqueConstraint("employee_id", "label", name="uq_employee_extra_info_label"),
    )

"""Attendance ORM models: AttendanceMonth, DailyRecord, Holiday, MachineFormat."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from attendance_console.common.constants import HolidayType, PresenceType
from attendance_console.database import Base

if TYPE_CHECKING:
    from attendance_console.employees.models import Employee


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class AttendanceMonth(Base):
    """One employee-month; the summary columns are derived from its records."""

    __tablename__ = "attendance_months"

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
    month_year: Mapped[str] = mapped_column(sa.String(7), nullable=False)

    # Summary
    total_hours: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    total_late_arrivals: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    excess_hours: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    total_half_days: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    total_present: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    total_absent: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    total_leave: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    total_value: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    # Relationships
    employee: Mapped["Employee"] = relationship()
    records: Mapped[list[DailyRecord]] = relationship(
        back_populates="month",
        cascade="all, delete-orphan",
        order_by="DailyRecord.date",
    )

    __table_args__ = (
        sa.UniqueConstraint("employee_id", "month_year", name="uq_attendance_month"),
        sa.Index("ix_attendance_months_month_year", "month_year"),
    )


class DailyRecord(Base):
    __tablename__ = "daily_records"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    month_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        sa.ForeignKey("attendance_months.id", ondelete="CASCADE"),
        nullable=False,
    )
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    checkin: Mapped[Optional[str]] = mapped_column(sa.String(5))
    checkout: Mapped[Optional[str]] = mapped_column(sa.String(5))
    total_hours: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    excess_hours: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    presence_type: Mapped[PresenceType] = mapped_column(
        sa.Enum(
            PresenceType,
            name="presence_type",
            values_callable=_enum_values,
            length=64,
        ),
        nullable=False,
    )
    half_day: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=False)
    value: Mapped[float] = mapped_column(sa.Float, nullable=False, default=0.0)
    remarks: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Relationships
    month: Mapped[AttendanceMonth] = relationship(back_populates="records")

    __table_args__ = (
        sa.UniqueConstraint("month_id", "date", name="uq_daily_record_date"),
        sa.CheckConstraint("value >= 0 AND value <= 1.2", name="ck_daily_record_value"),
    )


class Holiday(Base):
    __tablename__ = "holidays"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    date: Mapped[date] = mapped_column(sa.Date, unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(200), nullable=False)
    type: Mapped[HolidayType] = mapped_column(
        sa.Enum(HolidayType, name="holiday_type"),
        nullable=False,
        default=HolidayType.national,
    )
    year: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        sa.Index("ix_holidays_year_active", "year", "is_active"),
    )


class MachineFormat(Base):
    """Column template for a punch-machine export."""

    __tablename__ = "machine_formats"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    machine_id: Mapped[str] = mapped_column(sa.String(50), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(sa.String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(sa.Text)
    headers: Mapped[list] = mapped_column(JSONB, nullable=False)
    is_active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

"""Correction request ORM model.

``Pending`` is the only state that accepts an action; ``Approved`` and
``Rejected`` are terminal. ``action_token`` is the secret embedded in the
emailed approve/reject links and is cleared once the request is resolved.
"""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from attendance_console.common.constants import RequestStatus
from attendance_console.database import Base


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class CorrectionRequest(Base):
    __tablename__ = "correction_requests"

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
    user_name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    partner_name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    partner_email: Mapped[Optional[str]] = mapped_column(sa.String(255))
    date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    month_year: Mapped[str] = mapped_column(sa.String(7), nullable=False)

    # Presence type values, stored verbatim
    requested_status: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    original_status: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    reason: Mapped[str] = mapped_column(sa.Text, nullable=False)
    start_time: Mapped[Optional[str]] = mapped_column(sa.String(5))
    end_time: Mapped[Optional[str]] = mapped_column(sa.String(5))

    status: Mapped[RequestStatus] = mapped_column(
        sa.Enum(RequestStatus, name="request_status", values_callable=_enum_values),
        nullable=False,
        default=RequestStatus.pending,
    )
    action_token: Mapped[Optional[str]] = mapped_column(sa.String(64))

    approved_by: Mapped[Optional[str]] = mapped_column(sa.String(255))
    approved_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    rejected_by: Mapped[Optional[str]] = mapped_column(sa.String(255))
    rejected_at: Mapped[Optional[datetime]] = mapped_column(sa.DateTime(timezone=True))
    partner_remarks: Mapped[Optional[str]] = mapped_column(sa.Text)
    hr_remarks: Mapped[Optional[str]] = mapped_column(sa.Text)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        sa.Index("ix_correction_requests_employee_date", "employee_id", "date"),
        sa.Index("ix_correction_requests_partner_status", "partner_name", "status"),
    )

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.pending

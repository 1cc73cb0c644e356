"""Leave ORM models: LeaveTransaction.

Balances live on ``Employee`` (earned / used / remaining); every change is
backed by one ledger row, unique per (employee, kind, period), so a month is
credited at most once and a day is counted as used at most once.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from attendance_console.common.constants import LeaveTransactionKind
from attendance_console.database import Base


class LeaveTransaction(Base):
    __tablename__ = "leave_transactions"

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
    kind: Mapped[LeaveTransactionKind] = mapped_column(
        sa.Enum(LeaveTransactionKind, name="leave_transaction_kind"), nullable=False
    )
    # "YYYY-MM" for accruals, "YYYY-MM-DD" for usage
    period: Mapped[str] = mapped_column(sa.String(10), nullable=False)
    amount: Mapped[float] = mapped_column(sa.Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        sa.UniqueConstraint(
            "employee_id", "kind", "period", name="uq_leave_transaction_period"
        ),
    )

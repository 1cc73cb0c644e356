"""Employee history model and async helper for recording field-level changes."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from typing import Any, Optional

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from attendance_console.common.constants import SYSTEM_ACTOR, HistoryField
from attendance_console.database import Base


# ── Append-only history table ───────────────────────────────────────

class EmployeeHistory(Base):
    """Immutable log of changes to tracked employee attributes."""

    __tablename__ = "employee_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("employees.id", ondelete="CASCADE"),
        nullable=False,
    )
    field: Mapped[HistoryField] = mapped_column(
        SAEnum(HistoryField, name="history_field"), nullable=False,
    )
    old_value: Mapped[Optional[str]] = mapped_column(Text)
    new_value: Mapped[Optional[str]] = mapped_column(Text)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    changed_by: Mapped[str] = mapped_column(
        String(255), nullable=False, default=SYSTEM_ACTOR,
    )
    reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("ix_employee_history_employee_id", "employee_id"),
        Index("ix_employee_history_field", "field"),
    )

    def __repr__(self) -> str:
        return (
            f"<EmployeeHistory {self.field} {self.old_value!r}->{self.new_value!r}"
            f" for {self.employee_id} by {self.changed_by}>"
        )


# ── Helper to create an entry ───────────────────────────────────────

def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


async def record_history(
    session: AsyncSession,
    *,
    employee_id: uuid.UUID,
    field: HistoryField,
    old_value: Any,
    new_value: Any,
    changed_by: Optional[str] = None,
    effective_date: Optional[date] = None,
    reason: Optional[str] = None,
) -> EmployeeHistory:
    """
    Create and flush a history entry.

    Args:
        session: Async SQLAlchemy session.
        employee_id: UUID of the employee whose attribute changed.
        field: One of the tracked ``HistoryField`` attributes.
        old_value: Previous value (stringified).
        new_value: New value (stringified).
        changed_by: Actor name; defaults to "System".
        effective_date: Date the change takes effect; defaults to today.
        reason: Free-text justification.
    """
    entry = EmployeeHistory(
        employee_id=employee_id,
        field=field,
        old_value=_as_text(old_value),
        new_value=_as_text(new_value),
        changed_by=changed_by or SYSTEM_ACTOR,
        effective_date=effective_date or date.today(),
        reason=reason,
    )
    session.add(entry)
    await session.flush()
    return entry

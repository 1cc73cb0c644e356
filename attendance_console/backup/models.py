"""Backup ORM model: a JSON snapshot of every application table."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from attendance_console.database import Base


class Backup(Base):
    __tablename__ = "backups"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    file_name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    # table name → list of rows
    data: Mapped[dict] = mapped_column(JSONB, nullable=False)
    # ``metadata`` is reserved on declarative classes
    meta: Mapped[dict] = mapped_column("metadata", JSONB, nullable=False, default=dict)
    size_bytes: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (
        sa.Index("ix_backups_created_at", "created_at"),
    )

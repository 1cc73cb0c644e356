"""Backup service — snapshot every table into a ``Backup`` row; list and stats.

Snapshots skip the ``backups`` table itself and ``auth_sessions`` (token
hashes). Restoring is not supported.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Iterable, Sequence

from fastapi.encoders import jsonable_encoder
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import defer

from attendance_console.backup.models import Backup
from attendance_console.backup.schemas import BackupStats
from attendance_console.database import Base

logger = logging.getLogger(__name__)

ALWAYS_EXCLUDED = frozenset({"backups", "auth_sessions"})


class BackupService:
    """Async database snapshots."""

    @staticmethod
    async def create_backup(
        db: AsyncSession, exclude_tables: Iterable[str] = ()
    ) -> Backup:
        excluded = ALWAYS_EXCLUDED | set(exclude_tables)
        tables = [t for t in Base.metadata.sorted_tables if t.name not in excluded]

        data: dict[str, list] = {}
        counts: dict[str, int] = {}
        for table in tables:
            result = await db.execute(select(table))
            rows = [jsonable_encoder(dict(row._mapping)) for row in result]
            data[table.name] = rows
            counts[table.name] = len(rows)

        timestamp = datetime.now(timezone.utc)
        backup = Backup(
            file_name=f"backup_{timestamp.strftime('%Y-%m-%dT%H-%M-%S')}.json",
            data=data,
            meta={
                "timestamp": timestamp.isoformat(),
                "tables": counts,
                "total_records": sum(counts.values()),
            },
            size_bytes=len(json.dumps(data).encode("utf-8")),
        )
        db.add(backup)
        await db.flush()
        logger.info(
            "Backup %s: %d table(s), %d record(s), %d bytes",
            backup.file_name, len(counts), backup.meta["total_records"], backup.size_bytes,
        )
        return backup

    @staticmethod
    async def list_backups(db: AsyncSession) -> Sequence[Backup]:
        result = await db.execute(
            select(Backup).options(defer(Backup.data)).order_by(Backup.created_at.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def stats(db: AsyncSession) -> BackupStats:
        result = await db.execute(
            select(
                func.count(Backup.id),
                func.coalesce(func.sum(Backup.size_bytes), 0),
                func.max(Backup.created_at),
                func.min(Backup.created_at),
            )
        )
        count, total, latest, oldest = result.one()
        return BackupStats(
            count=count, total_size_bytes=int(total), latest_at=latest, oldest_at=oldest
        )

"""Backup router — create, list, stats. HR only."""

from typing import Literal, Optional, Union

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_console.auth.dependencies import Principal, require_hr
from attendance_console.backup.schemas import BackupCreate, BackupStats, BackupSummary
from attendance_console.backup.service import BackupService
from attendance_console.common.envelope import ApiResponse, ok
from attendance_console.database import get_db

router = APIRouter(prefix="", tags=["backup"])


# ── POST /backup ────────────────────────────────────────────────────

@router.post("", response_model=ApiResponse[BackupSummary], status_code=201)
async def create_backup(
    body: Optional[BackupCreate] = None,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    backup = await BackupService.create_backup(
        db, exclude_tables=body.exclude_tables if body else ()
    )
    return ok(BackupSummary.model_validate(backup), message="Backup created")


# ── GET /backup?action=list|stats ───────────────────────────────────

@router.get("", response_model=ApiResponse[Union[BackupStats, list[BackupSummary]]])
async def backup_info(
    action: Literal["list", "stats"] = Query("list"),
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    if action == "stats":
        return ok(await BackupService.stats(db))
    backups = await BackupService.list_backups(db)
    return ok([BackupSummary.model_validate(b) for b in backups])

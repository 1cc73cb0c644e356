"""Leave router — monthly accrual, balances, reset. HR only."""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_console.auth.dependencies import Principal, require_hr
from attendance_console.common.envelope import ApiResponse, ok
from attendance_console.database import get_db
from attendance_console.leave.schemas import (
    AccrualReport,
    IncrementMonthlyRequest,
    LeaveBalanceOut,
)
from attendance_console.leave.service import LeaveLedger

router = APIRouter(prefix="", tags=["leave"])


# ── POST /increment-monthly ─────────────────────────────────────────

@router.post("/increment-monthly", response_model=ApiResponse[AccrualReport])
async def increment_monthly(
    body: Optional[IncrementMonthlyRequest] = None,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    """Credit the month's leave to every active employee. Safe to re-run."""
    month_year = body.month_year if body else None
    report = await LeaveLedger.increment_monthly(db, month_year)
    return ok(report, message=f"Leave credited for {report.month_year}")


# ── GET /balances ───────────────────────────────────────────────────

@router.get("/balances", response_model=ApiResponse[list[LeaveBalanceOut]])
async def list_balances(
    include_inactive: bool = Query(False),
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    employees = await LeaveLedger.list_balances(db, active_only=not include_inactive)
    return ok([LeaveBalanceOut.model_validate(e) for e in employees])


# ── POST /{employee_id}/reset ───────────────────────────────────────

@router.post("/{employee_id}/reset", response_model=ApiResponse[LeaveBalanceOut])
async def reset_balance(
    employee_id: uuid.UUID,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    employee = await LeaveLedger.reset_balance(db, employee_id)
    return ok(LeaveBalanceOut.model_validate(employee), message="Leave balance reset")

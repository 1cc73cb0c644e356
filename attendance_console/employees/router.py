"""Employee routers — directory CRUD, history, extra info, bulk schedules, employee login.

Directory endpoints require role ``hr``. ``POST /employee/login`` is public
and rate limited.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_console.auth.dependencies import Principal, require_hr
from attendance_console.auth.service import login_employee
from attendance_console.common.envelope import ApiResponse, ok
from attendance_console.common.rate_limit import limiter
from attendance_console.config import settings
from attendance_console.database import get_db
from attendance_console.employees.schemas import (
    BulkScheduleRequest,
    BulkScheduleStats,
    EmployeeCreate,
    EmployeeLoginRequest,
    EmployeeLoginResponse,
    EmployeeResponse,
    EmployeeUpdate,
    ExtraInfoLabelRequest,
    ExtraInfoLabelResult,
    HistoryCreate,
    HistoryResponse,
)
from attendance_console.employees.service import EmployeeService

router = APIRouter(prefix="", tags=["users"])
login_router = APIRouter(prefix="", tags=["employee"])


# ── GET /users ──────────────────────────────────────────────────────

@router.get("", response_model=ApiResponse[list[EmployeeResponse]])
async def list_employees(
    active: Optional[bool] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    employees = await EmployeeService.list_employees(db, active=active, search=search)
    return ok([EmployeeResponse.model_validate(e) for e in employees])


# ── POST /users ─────────────────────────────────────────────────────

@router.post("", response_model=ApiResponse[EmployeeResponse], status_code=201)
async def create_employee(
    body: EmployeeCreate,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    employee = await EmployeeService.create_employee(db, body)
    return ok(EmployeeResponse.model_validate(employee), message="Employee created")


# ── POST /users/extra-info ──────────────────────────────────────────

@router.post("/extra-info", response_model=ApiResponse[ExtraInfoLabelResult])
async def add_extra_info_label(
    body: ExtraInfoLabelRequest,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    """Add ``label`` (empty value) to every employee that lacks it."""
    affected = await EmployeeService.add_extra_info_label(db, body.label)
    return ok(ExtraInfoLabelResult(label=body.label.strip(), affected=affected))


# ── DELETE /users/extra-info ────────────────────────────────────────

@router.delete("/extra-info", response_model=ApiResponse[ExtraInfoLabelResult])
async def remove_extra_info_label(
    label: str = Query(..., min_length=1, max_length=100),
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    affected = await EmployeeService.remove_extra_info_label(db, label)
    return ok(ExtraInfoLabelResult(label=label.strip(), affected=affected))


# ── POST /users/bulk-schedule-update ────────────────────────────────

@router.post("/bulk-schedule-update", response_model=ApiResponse[BulkScheduleStats])
async def bulk_schedule_update(
    body: BulkScheduleRequest,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    stats = await EmployeeService.bulk_update_schedules(db, body.schedules)
    return ok(stats, message=f"Updated {stats.updated} employee schedule(s)")


# ── GET /users/{id} ─────────────────────────────────────────────────

@router.get("/{employee_id}", response_model=ApiResponse[EmployeeResponse])
async def get_employee(
    employee_id: uuid.UUID,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    employee = await EmployeeService.get_employee(db, employee_id)
    return ok(EmployeeResponse.model_validate(employee))


# ── PUT /users/{id} ─────────────────────────────────────────────────

@router.put("/{employee_id}", response_model=ApiResponse[EmployeeResponse])
async def update_employee(
    employee_id: uuid.UUID,
    body: EmployeeUpdate,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    """Partial update. Tracked fields that change are written to history."""
    if body.changed_by is None:
        body.changed_by = principal.actor_name
    employee = await EmployeeService.update_employee(db, employee_id, body)
    return ok(EmployeeResponse.model_validate(employee), message="Employee updated")


# ── DELETE /users/{id} — soft delete ────────────────────────────────

@router.delete("/{employee_id}", response_model=ApiResponse[EmployeeResponse])
async def deactivate_employee(
    employee_id: uuid.UUID,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    employee = await EmployeeService.deactivate_employee(db, employee_id)
    return ok(EmployeeResponse.model_validate(employee), message="Employee deactivated")


# ── GET /users/{id}/history ─────────────────────────────────────────

@router.get("/{employee_id}/history", response_model=ApiResponse[list[HistoryResponse]])
async def list_history(
    employee_id: uuid.UUID,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    entries = await EmployeeService.list_history(db, employee_id)
    return ok([HistoryResponse.model_validate(h) for h in entries])


# ── POST /users/{id}/history ────────────────────────────────────────

@router.post(
    "/{employee_id}/history", response_model=ApiResponse[HistoryResponse], status_code=201
)
async def add_history(
    employee_id: uuid.UUID,
    body: HistoryCreate,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    if body.changed_by is None:
        body.changed_by = principal.actor_name
    entry = await EmployeeService.add_history(db, employee_id, body)
    return ok(HistoryResponse.model_validate(entry), message="History entry added")


# ── POST /employee/login ────────────────────────────────────────────

@login_router.post("/login", response_model=ApiResponse[EmployeeLoginResponse])
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def employee_login(
    request: Request,
    body: EmployeeLoginRequest,
    db: AsyncSession = Depends(get_db),
):
    employee, token, expires_in = await login_employee(
        db,
        body.email,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return ok(
        EmployeeLoginResponse(
            access_token=token,
            expires_in=expires_in,
            employee=EmployeeResponse.model_validate(employee),
        )
    )

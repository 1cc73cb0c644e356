"""Correction routers — employee requests and partner review.

An employee token may only file requests for its own employee record and
review requests routed to it as partner. HR may do both for anyone.
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_console.auth.dependencies import Principal, require_employee
from attendance_console.common.constants import RequestStatus
from attendance_console.common.envelope import ApiResponse, ok
from attendance_console.corrections.schemas import (
    BulkResolveRequest,
    BulkResolveResult,
    CorrectionCreate,
    CorrectionCreated,
    CorrectionResponse,
    FutureLeaveCreate,
    ResolveRequest,
)
from attendance_console.corrections.service import CorrectionService
from attendance_console.database import get_db

employee_router = APIRouter(prefix="", tags=["corrections"])
partner_router = APIRouter(prefix="", tags=["partner"])


# ── POST /employee/request-correction ───────────────────────────────

@employee_router.post(
    "/request-correction", response_model=ApiResponse[CorrectionCreated], status_code=201
)
async def request_correction(
    body: CorrectionCreate,
    principal: Principal = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    created = await CorrectionService.create_request(db, principal, body)
    return ok(created, message="Request submitted")


# ── GET /employee/request-correction ────────────────────────────────

@employee_router.get("/request-correction", response_model=ApiResponse[list[CorrectionResponse]])
async def list_corrections(
    status: Optional[RequestStatus] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    month_year: Optional[str] = Query(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$"),
    principal: Principal = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    """HR filters freely; an employee sees only their own requests."""
    if not principal.is_hr:
        employee_id = principal.employee.id
    requests = await CorrectionService.list_requests(
        db, status=status, employee_id=employee_id, month_year=month_year
    )
    return ok([CorrectionResponse.model_validate(r) for r in requests])


# ── POST /employee/request-future-leave ─────────────────────────────

@employee_router.post(
    "/request-future-leave", response_model=ApiResponse[CorrectionCreated], status_code=201
)
async def request_future_leave(
    body: FutureLeaveCreate,
    principal: Principal = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    created = await CorrectionService.request_future_leave(db, principal, body)
    return ok(created, message=f"{len(created.requests)} request(s) submitted")


# ── POST /employee/approve ──────────────────────────────────────────

@employee_router.post("/approve", response_model=ApiResponse[CorrectionResponse])
async def resolve_correction(
    body: ResolveRequest,
    principal: Principal = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    req = await CorrectionService.resolve(
        db, principal, body.request_id, body.action, remarks=body.remarks
    )
    return ok(CorrectionResponse.model_validate(req), message=f"Request {req.status.value}")


# ── GET /partner/pending-requests ───────────────────────────────────

@partner_router.get("/pending-requests", response_model=ApiResponse[list[CorrectionResponse]])
async def pending_requests(
    partner_name: Optional[str] = Query(None),
    principal: Principal = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    """A partner sees requests routed to them; HR may ask for any partner."""
    if not principal.is_hr or not partner_name:
        if principal.employee is None:
            return ok([])
        partner_name = principal.employee.name
    requests = await CorrectionService.list_pending_for_partner(db, partner_name)
    return ok([CorrectionResponse.model_validate(r) for r in requests])


# ── POST /partner/bulk-action ───────────────────────────────────────

@partner_router.post("/bulk-action", response_model=ApiResponse[BulkResolveResult])
async def bulk_action(
    body: BulkResolveRequest,
    principal: Principal = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    result = await CorrectionService.bulk_resolve(
        db, principal, body.ids, body.action, remarks=body.remarks
    )
    return ok(result, message=f"{result.resolved} request(s) {body.action.value}d")

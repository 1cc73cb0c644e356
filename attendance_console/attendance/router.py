"""Attendance routers — months, imports, reports, holidays, machine formats, action links.

HR endpoints require role ``hr``. Employees may read their own months only.
``GET /attendance/request-action`` is authenticated by the emailed one-time token.
"""

import uuid
from datetime import date
from html import escape
from typing import Literal, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.responses import HTMLResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_console.attendance.importer import (
    ImportReconciler,
    MachineLayout,
    rows_from_upload,
)
from attendance_console.attendance.schemas import (
    AbsentRecord,
    AbsentRecordsRequest,
    DayUpsertRequest,
    HolidayCreate,
    HolidayResponse,
    HolidayUpdate,
    ImportReport,
    ImportRequest,
    MachineFormatCreate,
    MachineFormatResponse,
    MachineFormatUpdate,
    MonthResponse,
    MonthSummaryResponse,
    RangeExportRequest,
    RangeExportRow,
    StatusUpdateRequest,
    StatusUpdateResult,
)
from attendance_console.attendance.service import (
    AttendanceService,
    HolidayService,
    MachineFormatService,
)
from attendance_console.auth.dependencies import Principal, require_employee, require_hr
from attendance_console.common.constants import RequestAction
from attendance_console.common.envelope import ApiResponse, ok
from attendance_console.common.exceptions import AppException
from attendance_console.corrections.service import CorrectionService
from attendance_console.database import get_db

router = APIRouter(prefix="", tags=["attendance"])
holidays_router = APIRouter(prefix="", tags=["holidays"])
machine_formats_router = APIRouter(prefix="", tags=["machine-formats"])

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _action_page(title: str, message: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"<html><head><title>{escape(title)}</title></head>"
        f"<body><h2>{escape(title)}</h2><p>{escape(message)}</p></body></html>",
        status_code=status_code,
    )


# ═════════════════════════════════════════════════════════════════════
# Attendance months
# ═════════════════════════════════════════════════════════════════════


# ── GET / — list months ─────────────────────────────────────────────

@router.get("", response_model=ApiResponse[list[MonthSummaryResponse]])
async def list_months(
    employee_id: Optional[uuid.UUID] = Query(None),
    month_year: Optional[str] = Query(None),
    principal: Principal = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    """HR sees every employee; an employee only their own months."""
    if not principal.is_hr:
        employee_id = principal.employee.id
    months = await AttendanceService.list_months(
        db, employee_id=employee_id, month_year=month_year
    )
    return ok([MonthSummaryResponse.model_validate(m) for m in months])


# ── POST /import — JSON rows ────────────────────────────────────────

@router.post("/import", response_model=ApiResponse[ImportReport])
async def import_rows(
    body: ImportRequest,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    fmt = await MachineFormatService.get_by_machine_id(db, body.machine_id)
    report = await ImportReconciler.run(db, MachineLayout.from_format(fmt), body.rows)
    return ok(report, message=f"Imported {report.created + report.updated} record(s)")


# ── POST /import/upload — .xlsx / .csv file ─────────────────────────

@router.post("/import/upload", response_model=ApiResponse[ImportReport])
async def import_upload(
    machine_id: str = Form(...),
    file: UploadFile = File(...),
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    fmt = await MachineFormatService.get_by_machine_id(db, machine_id)
    layout = MachineLayout.from_format(fmt)
    rows = rows_from_upload(await file.read(), file.filename or "", layout)
    report = await ImportReconciler.run(db, layout, rows)
    return ok(report, message=f"Imported {report.created + report.updated} record(s)")


# ── POST /absent-records ────────────────────────────────────────────

@router.post("/absent-records", response_model=ApiResponse[list[AbsentRecord]])
async def absent_records(
    body: AbsentRecordsRequest,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    return ok(await AttendanceService.absent_records(db, body.user_ids, body.month_year))


# ── POST /update-status ─────────────────────────────────────────────

@router.post("/update-status", response_model=ApiResponse[StatusUpdateResult])
async def update_status(
    body: StatusUpdateRequest,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    """Bulk-set the presence type of existing days (default ``Leave``)."""
    result = await AttendanceService.bulk_update_status(db, body.updates, body.new_status)
    return ok(result, message=f"Updated {result.updated} day(s)")


# ── POST /range-export ──────────────────────────────────────────────

@router.post("/range-export", response_model=ApiResponse[list[RangeExportRow]])
async def range_export(
    body: RangeExportRequest,
    export_format: Literal["json", "xlsx"] = Query("json", alias="format"),
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    rows = await AttendanceService.range_export(db, body.user_ids, body.month_year)
    if export_format == "xlsx":
        return Response(
            content=AttendanceService.export_workbook(rows),
            media_type=XLSX_MEDIA_TYPE,
            headers={
                "Content-Disposition": f'attachment; filename="attendance-{body.month_year}.xlsx"'
            },
        )
    return ok(rows)


# ── POST /day — manual upsert ───────────────────────────────────────

@router.post("/day", response_model=ApiResponse[MonthResponse])
async def upsert_day(
    body: DayUpsertRequest,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    month = await AttendanceService.upsert_day(db, body)
    return ok(MonthResponse.model_validate(month))


# ── GET /request-action — emailed approve / reject link ─────────────

@router.get("/request-action", response_class=HTMLResponse)
async def request_action(
    request_id: uuid.UUID = Query(..., alias="id"),
    action: RequestAction = Query(...),
    token: str = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
):
    try:
        req = await CorrectionService.resolve_by_link(db, request_id, action, token)
    except AppException as exc:
        await db.rollback()
        return _action_page("Request not processed", exc.detail, exc.status_code)
    return _action_page(
        f"Request {req.status.value.lower()}",
        f"{req.user_name}: {req.date.isoformat()} marked as {req.requested_status} "
        f"has been {req.status.value.lower()}.",
    )


# ── GET /{month_id} ─────────────────────────────────────────────────

@router.get("/{month_id}", response_model=ApiResponse[MonthResponse])
async def get_month(
    month_id: uuid.UUID,
    principal: Principal = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    month = await AttendanceService.get_month(db, month_id)
    principal.ensure_can_act_for(month.employee_id)
    return ok(MonthResponse.model_validate(month))


# ── DELETE /{month_id} ──────────────────────────────────────────────

@router.delete("/{month_id}", response_model=ApiResponse[None])
async def delete_month(
    month_id: uuid.UUID,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    await AttendanceService.delete_month(db, month_id)
    return ok(message="Attendance month deleted")


# ── DELETE /{month_id}/days/{day} ───────────────────────────────────

@router.delete("/{month_id}/days/{day}", response_model=ApiResponse[MonthResponse])
async def delete_day(
    month_id: uuid.UUID,
    day: date,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    month = await AttendanceService.delete_day(db, month_id, day)
    return ok(MonthResponse.model_validate(month), message="Day deleted")


# ═════════════════════════════════════════════════════════════════════
# Holidays
# ═════════════════════════════════════════════════════════════════════


@holidays_router.get("", response_model=ApiResponse[list[HolidayResponse]])
async def list_holidays(
    year: Optional[int] = Query(None, ge=1900, le=2100),
    active_only: bool = Query(False),
    principal: Principal = Depends(require_employee),
    db: AsyncSession = Depends(get_db),
):
    holidays = await HolidayService.list_holidays(db, year=year, active_only=active_only)
    return ok([HolidayResponse.model_validate(h) for h in holidays])


@holidays_router.post("", response_model=ApiResponse[HolidayResponse], status_code=201)
async def create_holiday(
    body: HolidayCreate,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    holiday = await HolidayService.create_holiday(db, body)
    return ok(HolidayResponse.model_validate(holiday), message="Holiday created")


@holidays_router.put("/{holiday_id}", response_model=ApiResponse[HolidayResponse])
async def update_holiday(
    holiday_id: uuid.UUID,
    body: HolidayUpdate,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    holiday = await HolidayService.update_holiday(db, holiday_id, body)
    return ok(HolidayResponse.model_validate(holiday))


@holidays_router.delete("/{holiday_id}", response_model=ApiResponse[None])
async def delete_holiday(
    holiday_id: uuid.UUID,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    await HolidayService.delete_holiday(db, holiday_id)
    return ok(message="Holiday deleted")


# ═════════════════════════════════════════════════════════════════════
# Machine formats
# ═════════════════════════════════════════════════════════════════════


@machine_formats_router.get("", response_model=ApiResponse[list[MachineFormatResponse]])
async def list_machine_formats(
    active_only: bool = Query(False),
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    formats = await MachineFormatService.list_formats(db, active_only=active_only)
    return ok([MachineFormatResponse.model_validate(f) for f in formats])


@machine_formats_router.post(
    "", response_model=ApiResponse[MachineFormatResponse], status_code=201
)
async def create_machine_format(
    body: MachineFormatCreate,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    MachineLayout.from_headers(body.machine_id, body.headers)
    fmt = await MachineFormatService.create_format(db, body)
    return ok(MachineFormatResponse.model_validate(fmt), message="Machine format created")


@machine_formats_router.put("/{machine_id}", response_model=ApiResponse[MachineFormatResponse])
async def update_machine_format(
    machine_id: str,
    body: MachineFormatUpdate,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    if body.headers is not None:
        MachineLayout.from_headers(machine_id, body.headers)
    fmt = await MachineFormatService.update_format(db, machine_id, body)
    return ok(MachineFormatResponse.model_validate(fmt))


@machine_formats_router.delete("/{machine_id}", response_model=ApiResponse[None])
async def delete_machine_format(
    machine_id: str,
    principal: Principal = Depends(require_hr),
    db: AsyncSession = Depends(get_db),
):
    await MachineFormatService.delete_format(db, machine_id)
    return ok(message="Machine format deleted")

"""Import reconciler — punch-machine rows → daily records.

Flow per import:
  1. Map the machine template's headers onto ``identifier / name / date / in / out``
  2. Match each row to an employee: identifier (od_id / employee code),
     then trimmed case-insensitive name, then dotted name
  3. Write a ``ThumbMachine`` day, unless an approved correction for that
     employee/date overrides it
  4. Fill active holidays into every touched month and re-aggregate it
  5. Credit monthly leave for the imported months (idempotent)

Rows that cannot be matched, parsed or saved are reported, never fatal. Each
row is written inside its own savepoint.
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

import pandas as pd
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_console.attendance.aggregator import (
    hours_between,
    month_year_of,
    normalize_date,
    normalize_time,
)
from attendance_console.attendance.models import AttendanceMonth, MachineFormat
from attendance_console.attendance.schemas import ImportReport, ImportRowError
from attendance_console.attendance.service import AttendanceService
from attendance_console.common.constants import PresenceType, RequestStatus
from attendance_console.common.exceptions import ValidationException
from attendance_console.corrections.models import CorrectionRequest
from attendance_console.employees.models import Employee
from attendance_console.employees.service import EmployeeService, NameIndex
from attendance_console.leave.service import LeaveLedger

logger = logging.getLogger(__name__)

# Normalized header → canonical field
HEADER_ALIASES: dict[str, str] = {
    "emp code": "identifier",
    "emp id": "identifier",
    "employee code": "identifier",
    "employee id": "identifier",
    "id": "identifier",
    "od id": "identifier",
    "odid": "identifier",
    "code": "identifier",
    "emp name": "name",
    "employee name": "name",
    "name": "name",
    "date": "date",
    "attendance date": "date",
    "in time": "in",
    "in": "in",
    "check in": "in",
    "checkin": "in",
    "in punch": "in",
    "out time": "out",
    "out": "out",
    "check out": "out",
    "checkout": "out",
    "out punch": "out",
}

_UPLOAD_SUFFIXES = {".xlsx", ".csv"}


def normalize_header(header: str) -> str:
    return re.sub(r"[\s_.\-]+", " ", str(header)).strip().lower()


def _cell_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float):
        if value != value:
            return None
        if value.is_integer():
            return str(int(value))
    text = str(value).strip()
    return text or None


# ═════════════════════════════════════════════════════════════════════
# Machine layout
# ═════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class MachineLayout:
    """Which template header feeds which canonical field."""

    machine_id: str
    headers: tuple[str, ...]
    columns: dict[str, str]

    @classmethod
    def from_headers(cls, machine_id: str, headers: Sequence[str]) -> "MachineLayout":
        columns: dict[str, str] = {}
        for header in headers:
            field = HEADER_ALIASES.get(normalize_header(header))
            if field is not None and field not in columns:
                columns[field] = header

        problems = []
        if "date" not in columns:
            problems.append("no date column")
        if "identifier" not in columns and "name" not in columns:
            problems.append("no employee identifier or name column")
        if problems:
            raise ValidationException(
                {"headers": problems},
                detail=f"Machine format '{machine_id}' is unusable: {', '.join(problems)}.",
            )
        return cls(machine_id=machine_id, headers=tuple(headers), columns=columns)

    @classmethod
    def from_format(cls, fmt: MachineFormat) -> "MachineLayout":
        return cls.from_headers(fmt.machine_id, fmt.headers)

    def missing_headers(self, present: Iterable[str]) -> list[str]:
        available = {normalize_header(h) for h in present}
        return [h for h in self.headers if normalize_header(h) not in available]

    def extract(self, row: dict[str, Any]) -> dict[str, Any]:
        by_normalized = {normalize_header(k): v for k, v in row.items()}
        return {
            field: by_normalized.get(normalize_header(header))
            for field, header in self.columns.items()
        }


def rows_from_upload(content: bytes, filename: str, layout: MachineLayout) -> list[dict[str, Any]]:
    """Parse an uploaded .xlsx / .csv export into header-keyed rows."""
    suffix = Path(filename or "").suffix.lower()
    if suffix not in _UPLOAD_SUFFIXES:
        raise ValidationException(
            {"file": [f"Unsupported file type '{suffix or filename}'."]},
            detail="Upload an .xlsx or .csv file.",
        )
    try:
        if suffix == ".csv":
            frame = pd.read_csv(io.BytesIO(content), dtype=object)
        else:
            frame = pd.read_excel(io.BytesIO(content), engine="openpyxl")
    except (ValueError, OSError) as exc:
        raise ValidationException({"file": [str(exc)]}, detail="The file could not be read.")

    frame.columns = [str(c).strip() for c in frame.columns]
    missing = layout.missing_headers(frame.columns)
    if missing:
        raise ValidationException(
            {"file": [f"Missing column '{h}'" for h in missing]},
            detail=f"Missing columns for {layout.machine_id}: {', '.join(missing)}.",
        )

    frame = frame.dropna(how="all").astype(object)
    frame = frame.where(pd.notna(frame), None)
    return frame.to_dict(orient="records")


# ═════════════════════════════════════════════════════════════════════
# Reconciler
# ═════════════════════════════════════════════════════════════════════


@dataclass
class DayValues:
    presence_type: PresenceType
    checkin: Optional[str]
    checkout: Optional[str]
    total_hours: float
    remarks: Optional[str] = None


class EmployeeMatcher:
    """Identifier first, then name, then dotted name."""

    def __init__(self, employees: Sequence[Employee]) -> None:
        self._by_identifier: dict[str, Employee] = {}
        for emp in employees:
            for key in (emp.od_id, emp.employee_code):
                if key and key.strip():
                    self._by_identifier.setdefault(key.strip().lower(), emp)
        self._names = NameIndex(employees)

    def match(self, identifier: Optional[str], name: Optional[str]) -> Optional[Employee]:
        if identifier:
            emp = self._by_identifier.get(identifier.strip().lower())
            if emp is not None:
                return emp
        return self._names.match(name)


class ImportReconciler:
    """Runs one import and returns its report."""

    @staticmethod
    async def _approved_request(
        db: AsyncSession, employee: Employee, day: date
    ) -> Optional[CorrectionRequest]:
        result = await db.execute(
            select(CorrectionRequest)
            .where(
                CorrectionRequest.employee_id == employee.id,
                CorrectionRequest.date == day,
                CorrectionRequest.status == RequestStatus.approved,
            )
            .order_by(CorrectionRequest.updated_at.desc())
        )
        return result.scalars().first()

    @staticmethod
    def resolve_day(
        checkin: Optional[str],
        checkout: Optional[str],
        approved: Optional[CorrectionRequest],
    ) -> DayValues:
        """Machine values, or the approved correction where it outweighs them."""
        machine_hours = hours_between(checkin, checkout)
        if approved is None:
            return DayValues(PresenceType.thumb_machine, checkin, checkout, machine_hours)

        request_hours = hours_between(approved.start_time, approved.end_time)
        if machine_hours > request_hours:
            return DayValues(
                PresenceType.present,
                checkin,
                checkout,
                machine_hours,
                remarks=f"Present (machine {machine_hours}h > request {request_hours}h)",
            )

        requested = PresenceType(approved.requested_status)
        remarks = f"Overridden by approved request: {requested.value}"
        if approved.start_time and approved.end_time:
            return DayValues(
                requested, approved.start_time, approved.end_time, request_hours, remarks
            )
        if requested in (PresenceType.leave, PresenceType.absent):
            return DayValues(requested, None, None, 0.0, remarks)
        return DayValues(requested, checkin, checkout, machine_hours, remarks)

    @staticmethod
    async def run(
        db: AsyncSession, layout: MachineLayout, rows: Sequence[dict[str, Any]]
    ) -> ImportReport:
        report = ImportReport()
        matcher = EmployeeMatcher(await EmployeeService.list_active(db))
        touched: dict[tuple, tuple[Employee, AttendanceMonth]] = {}

        for index, raw in enumerate(rows, start=1):
            fields = layout.extract(raw)
            identifier = _cell_text(fields.get("identifier"))
            name = _cell_text(fields.get("name"))
            try:
                employee = matcher.match(identifier, name)
                if employee is None:
                    raise ValueError(
                        f"No employee matches identifier '{identifier or ''}' "
                        f"or name '{name or ''}'"
                    )
                day = normalize_date(fields.get("date"))
                checkin = normalize_time(fields.get("in"))
                checkout = normalize_time(fields.get("out"))
            except ValueError as exc:
                report.failed += 1
                report.errors.append(
                    ImportRowError(row=index, identifier=identifier, name=name, reason=str(exc))
                )
                continue

            key = (employee.id, month_year_of(day))
            try:
                async with db.begin_nested():
                    if key in touched:
                        month = touched[key][1]
                    else:
                        month = await AttendanceService.get_or_create_month(
                            db, employee.id, key[1]
                        )
                    approved = await ImportReconciler._approved_request(db, employee, day)
                    values = ImportReconciler.resolve_day(checkin, checkout, approved)
                    _, created = await AttendanceService.write_day(
                        db,
                        employee,
                        month,
                        day,
                        presence_type=values.presence_type,
                        checkin=values.checkin,
                        checkout=values.checkout,
                        total_hours=values.total_hours,
                        remarks=values.remarks or "",
                    )
            except SQLAlchemyError as exc:
                logger.warning("Import row %d (%s) could not be saved: %s", index, day, exc)
                report.failed += 1
                report.errors.append(
                    ImportRowError(
                        row=index,
                        identifier=identifier,
                        name=name,
                        reason=f"Could not save the day: {exc.__class__.__name__}",
                    )
                )
                # The rollback expired what the row touched; reload it.
                await db.refresh(employee)
                if key in touched:
                    touched[key] = (
                        employee, await AttendanceService.find_month(db, key[0], key[1])
                    )
                continue

            touched.setdefault(key, (employee, month))
            if created:
                report.created += 1
            else:
                report.updated += 1

        employees_by_month: dict[str, list[Employee]] = {}
        for (_, month_year), (employee, month) in touched.items():
            report.holidays_added += await AttendanceService.fill_holidays(db, employee, month)
            await AttendanceService.recompute_month(db, month, employee)
            employees_by_month.setdefault(month_year, []).append(employee)

        for month_year in sorted(employees_by_month):
            accrual = await LeaveLedger.increment_monthly(
                db, month_year, employees=employees_by_month[month_year]
            )
            report.leave_credited += accrual.credited

        report.months = sorted(employees_by_month)
        logger.info(
            "Import %s: %d created, %d updated, %d failed, %d holiday(s) added",
            layout.machine_id, report.created, report.updated, report.failed,
            report.holidays_added,
        )
        return report

"""Attendance service layer — monthly documents, day writes, holidays, machine formats.

Every write that touches a day goes through ``AttendanceService.write_day``:
the record is re-derived (value / half day / excess), leave usage follows
the day in or out of ``Leave``, and the caller re-aggregates the month with
``recompute_month`` once its batch is done.
"""

from __future__ import annotations

import calendar
import io
import logging
import uuid
from datetime import date
from typing import Iterable, Optional, Sequence

import pandas as pd
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from attendance_console.attendance.aggregator import (
    MonthlySummary,
    WorkProfile,
    absent_days,
    day_category,
    derive_record,
    hours_between,
    is_late,
    month_year_of,
    parse_month_year,
    scheduled_hours,
    summarize,
)
from attendance_console.attendance.models import (
    AttendanceMonth,
    DailyRecord,
    Holiday,
    MachineFormat,
)
from attendance_console.attendance.schemas import (
    AbsentRecord,
    DayUpsertRequest,
    HolidayCreate,
    HolidayUpdate,
    MachineFormatCreate,
    MachineFormatUpdate,
    RangeExportRow,
    StatusUpdateItem,
    StatusUpdateResult,
)
from attendance_console.common.constants import (
    DEFAULT_MACHINE_FORMATS,
    DayCategory,
    PresenceType,
)
from attendance_console.common.exceptions import (
    ConflictError,
    NotFoundException,
    ValidationException,
)
from attendance_console.employees.models import Employee
from attendance_console.leave.service import LeaveLedger

logger = logging.getLogger(__name__)

_CLEARS_TIMES = {PresenceType.leave, PresenceType.absent}

EXPORT_COLUMNS = {
    "employee_name": "Employee Name",
    "employee_id": "Employee ID",
    "team": "Team",
    "designation": "Designation",
    "date": "Date",
    "day": "Day",
    "status": "Status",
    "in_time": "In Time",
    "out_time": "Out Time",
    "total_hours": "Total Hours",
    "presence_type": "Type of Presence",
    "late_arrival": "Late Arrival",
    "half_day": "Half Day",
    "remarks": "Remarks",
    "scheduled_hours": "Scheduled Hours",
    "excess_or_deficit_hours": "Excess/Deficit Hours",
}


def _month_query():
    return (
        select(AttendanceMonth)
        .options(selectinload(AttendanceMonth.records))
        .execution_options(populate_existing=True)
    )


def _validate_month(month_year: str) -> tuple[int, int]:
    try:
        return parse_month_year(month_year)
    except ValueError as exc:
        raise ValidationException({"month_year": [str(exc)]})


def _export_status(record: Optional[DailyRecord]) -> str:
    if record is None:
        return "Absent"
    category = day_category(record.presence_type, record.total_hours)
    if category == DayCategory.leave:
        return "Leave"
    if category == DayCategory.off:
        return record.presence_type.value
    if record.half_day:
        return "Half Day"
    if category == DayCategory.absent:
        return "Absent"
    return "Present"


# ═════════════════════════════════════════════════════════════════════
# AttendanceService
# ═════════════════════════════════════════════════════════════════════


class AttendanceService:
    """Async operations over attendance months and their daily records."""

    # ── Lookups ─────────────────────────────────────────────────────

    @staticmethod
    async def find_month(
        db: AsyncSession, employee_id: uuid.UUID, month_year: str
    ) -> Optional[AttendanceMonth]:
        result = await db.execute(
            _month_query().where(
                AttendanceMonth.employee_id == employee_id,
                AttendanceMonth.month_year == month_year,
            )
        )
        return result.scalars().first()

    @staticmethod
    async def get_month(db: AsyncSession, month_id: uuid.UUID) -> AttendanceMonth:
        result = await db.execute(_month_query().where(AttendanceMonth.id == month_id))
        month = result.scalars().first()
        if month is None:
            raise NotFoundException("Attendance", str(month_id))
        return month

    @staticmethod
    async def get_or_create_month(
        db: AsyncSession, employee_id: uuid.UUID, month_year: str
    ) -> AttendanceMonth:
        month = await AttendanceService.find_month(db, employee_id, month_year)
        if month is not None:
            return month
        month = AttendanceMonth(employee_id=employee_id, month_year=month_year, records=[])
        db.add(month)
        await db.flush()
        return month

    @staticmethod
    async def list_months(
        db: AsyncSession,
        *,
        employee_id: Optional[uuid.UUID] = None,
        month_year: Optional[str] = None,
    ) -> Sequence[AttendanceMonth]:
        query = select(AttendanceMonth).order_by(
            AttendanceMonth.month_year.desc(), AttendanceMonth.employee_id
        )
        if employee_id is not None:
            query = query.where(AttendanceMonth.employee_id == employee_id)
        if month_year:
            _validate_month(month_year)
            query = query.where(AttendanceMonth.month_year == month_year)
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    def find_record(month: AttendanceMonth, day: date) -> Optional[DailyRecord]:
        for record in month.records:
            if record.date == day:
                return record
        return None

    # ── Writes ──────────────────────────────────────────────────────

    @staticmethod
    async def _sync_leave(
        db: AsyncSession,
        employee: Employee,
        day: date,
        old_type: Optional[PresenceType],
        new_type: Optional[PresenceType],
    ) -> None:
        was_leave = old_type == PresenceType.leave
        is_leave = new_type == PresenceType.leave
        if is_leave and not was_leave:
            await LeaveLedger.record_leave_usage(db, employee, day)
        elif was_leave and not is_leave:
            await LeaveLedger.release_leave_usage(db, employee, day)

    @staticmethod
    async def write_day(
        db: AsyncSession,
        employee: Employee,
        month: AttendanceMonth,
        day: date,
        *,
        presence_type: PresenceType,
        checkin: Optional[str] = None,
        checkout: Optional[str] = None,
        total_hours: Optional[float] = None,
        remarks: Optional[str] = None,
    ) -> tuple[DailyRecord, bool]:
        """Create or overwrite one day. Returns ``(record, created)``."""
        record = AttendanceService.find_record(month, day)
        created = record is None
        old_type = None if created else record.presence_type
        if created:
            record = DailyRecord(date=day, presence_type=presence_type)
            month.records.append(record)

        record.presence_type = presence_type
        record.checkin = checkin
        record.checkout = checkout
        record.total_hours = (
            total_hours if total_hours is not None else hours_between(checkin, checkout)
        )
        if remarks is not None:
            record.remarks = remarks
        derive_record(record, WorkProfile.from_employee(employee))

        await AttendanceService._sync_leave(db, employee, day, old_type, presence_type)
        await db.flush()
        return record, created

    @staticmethod
    async def recompute_month(
        db: AsyncSession, month: AttendanceMonth, employee: Employee
    ) -> MonthlySummary:
        """Re-derive every record and write the summary columns."""
        profile = WorkProfile.from_employee(employee)
        for record in month.records:
            derive_record(record, profile)
        summary = summarize(month.records, profile)
        for field, value in summary.as_dict().items():
            setattr(month, field, value)
        await db.flush()
        return summary

    @staticmethod
    async def upsert_day(db: AsyncSession, data: DayUpsertRequest) -> AttendanceMonth:
        """Manual edit of a single day."""
        employee = await _get_employee(db, data.employee_id)
        month = await AttendanceService.get_or_create_month(
            db, employee.id, month_year_of(data.date)
        )
        checkin, checkout = data.checkin, data.checkout
        if data.presence_type in _CLEARS_TIMES and not (checkin and checkout):
            checkin = checkout = None
        await AttendanceService.write_day(
            db,
            employee,
            month,
            data.date,
            presence_type=data.presence_type,
            checkin=checkin,
            checkout=checkout,
            remarks=data.remarks,
        )
        await AttendanceService.recompute_month(db, month, employee)
        return month

    @staticmethod
    async def apply_correction(
        db: AsyncSession,
        employee: Employee,
        day: date,
        presence_type: PresenceType,
        start_time: Optional[str] = None,
        end_time: Optional[str] = None,
    ) -> DailyRecord:
        """Apply an approved correction to the day and re-aggregate its month."""
        month = await AttendanceService.get_or_create_month(
            db, employee.id, month_year_of(day)
        )
        existing = AttendanceService.find_record(month, day)
        if start_time and end_time:
            checkin, checkout = start_time, end_time
        elif presence_type in _CLEARS_TIMES or existing is None:
            checkin = checkout = None
        else:
            checkin, checkout = existing.checkin, existing.checkout

        hours = None
        if not (start_time and end_time) and existing is not None and checkin:
            hours = existing.total_hours

        record, _ = await AttendanceService.write_day(
            db,
            employee,
            month,
            day,
            presence_type=presence_type,
            checkin=checkin,
            checkout=checkout,
            total_hours=hours,
        )
        await AttendanceService.recompute_month(db, month, employee)
        return record

    # ── Deletes ─────────────────────────────────────────────────────

    @staticmethod
    async def delete_day(db: AsyncSession, month_id: uuid.UUID, day: date) -> AttendanceMonth:
        month = await AttendanceService.get_month(db, month_id)
        record = AttendanceService.find_record(month, day)
        if record is None:
            raise NotFoundException("Daily record", day.isoformat())

        employee = await _get_employee(db, month.employee_id)
        await AttendanceService._sync_leave(db, employee, day, record.presence_type, None)
        month.records.remove(record)
        await db.flush()
        await AttendanceService.recompute_month(db, month, employee)
        return month

    @staticmethod
    async def delete_month(db: AsyncSession, month_id: uuid.UUID) -> None:
        month = await AttendanceService.get_month(db, month_id)
        employee = await _get_employee(db, month.employee_id)
        for record in month.records:
            await AttendanceService._sync_leave(
                db, employee, record.date, record.presence_type, None
            )
        await db.delete(month)
        await db.flush()
        logger.info("Deleted attendance %s for %s", month.month_year, employee.name)

    # ── Reports ─────────────────────────────────────────────────────

    @staticmethod
    async def _months_for(
        db: AsyncSession, user_ids: Iterable[uuid.UUID], month_year: str
    ) -> list[tuple[AttendanceMonth, Employee]]:
        _validate_month(month_year)
        result = await db.execute(
            _month_query()
            .options(selectinload(AttendanceMonth.employee))
            .where(
                AttendanceMonth.employee_id.in_(list(user_ids)),
                AttendanceMonth.month_year == month_year,
            )
        )
        months = result.scalars().all()
        pairs = [(m, m.employee) for m in months]
        return sorted(pairs, key=lambda pair: pair[1].name.lower())

    @staticmethod
    async def absent_records(
        db: AsyncSession, user_ids: Sequence[uuid.UUID], month_year: str
    ) -> list[AbsentRecord]:
        results = []
        for month, employee in await AttendanceService._months_for(db, user_ids, month_year):
            for record in absent_days(month.records):
                results.append(
                    AbsentRecord(
                        user_id=employee.id,
                        user_name=employee.name,
                        od_id=employee.od_id,
                        date=record.date,
                        month_year=month.month_year,
                    )
                )
        return results

    @staticmethod
    async def bulk_update_status(
        db: AsyncSession,
        updates: Sequence[StatusUpdateItem],
        new_status: PresenceType = PresenceType.leave,
    ) -> StatusUpdateResult:
        """Set ``new_status`` on existing records, grouped per employee-month."""
        groups: dict[tuple[uuid.UUID, str], list[date]] = {}
        for item in updates:
            groups.setdefault((item.user_id, item.month_year), []).append(item.date)

        outcome = StatusUpdateResult()
        for (user_id, month_year), days in groups.items():
            month = await AttendanceService.find_month(db, user_id, month_year)
            if month is None:
                logger.warning("No attendance %s for %s; skipped", month_year, user_id)
                continue
            employee = await _get_employee(db, user_id)
            modified = False
            for day in days:
                record = AttendanceService.find_record(month, day)
                if record is None:
                    continue
                keep_times = new_status not in _CLEARS_TIMES
                await AttendanceService.write_day(
                    db,
                    employee,
                    month,
                    day,
                    presence_type=new_status,
                    checkin=record.checkin if keep_times else None,
                    checkout=record.checkout if keep_times else None,
                    total_hours=record.total_hours if keep_times else 0.0,
                )
                outcome.updated += 1
                modified = True
            if modified:
                await AttendanceService.recompute_month(db, month, employee)
                outcome.months.append(f"{employee.name} {month_year}")

        logger.info("Bulk status update to %s: %d day(s)", new_status.value, outcome.updated)
        return outcome

    @staticmethod
    async def range_export(
        db: AsyncSession, user_ids: Sequence[uuid.UUID], month_year: str
    ) -> list[RangeExportRow]:
        """One row per employee per calendar day of the month."""
        year, month_no = _validate_month(month_year)
        days_in_month = calendar.monthrange(year, month_no)[1]

        rows: list[RangeExportRow] = []
        for month, employee in await AttendanceService._months_for(db, user_ids, month_year):
            profile = WorkProfile.from_employee(employee)
            by_date = {r.date: r for r in month.records}
            for day_no in range(1, days_in_month + 1):
                day = date(year, month_no, day_no)
                record = by_date.get(day)
                status = _export_status(record)
                expected = scheduled_hours(day, profile)
                total = record.total_hours if record else 0.0
                rows.append(
                    RangeExportRow(
                        employee_name=employee.name,
                        employee_id=employee.employee_code or employee.od_id or "",
                        team=employee.working_under_partner or employee.team or "",
                        designation=employee.designation or "",
                        date=day,
                        day=day.strftime("%A"),
                        status=status,
                        in_time=(record.checkin if record else None) or "",
                        out_time=(record.checkout if record else None) or "",
                        total_hours=round(total, 2),
                        presence_type=record.presence_type.value if record else "",
                        late_arrival=bool(record) and is_late(record, profile),
                        half_day=bool(record and record.half_day),
                        remarks=(record.remarks if record else None) or "",
                        scheduled_hours=round(expected, 2),
                        excess_or_deficit_hours=(
                            round(total - expected, 2) if status == "Present" else 0.0
                        ),
                    )
                )
        return rows

    @staticmethod
    def export_workbook(rows: Sequence[RangeExportRow], sheet_name: str = "Attendance") -> bytes:
        """Render export rows as an .xlsx workbook."""
        frame = pd.DataFrame(
            [row.model_dump() for row in rows], columns=list(EXPORT_COLUMNS)
        ).rename(columns=EXPORT_COLUMNS)
        for column in ("Late Arrival", "Half Day"):
            frame[column] = frame[column].map({True: "Yes", False: "No"})

        output = io.BytesIO()
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            frame.to_excel(writer, index=False, sheet_name=sheet_name)
        return output.getvalue()

    # ── Holiday fill ────────────────────────────────────────────────

    @staticmethod
    async def fill_holidays(
        db: AsyncSession, employee: Employee, month: AttendanceMonth
    ) -> int:
        """Add a ``Holiday`` record for each active holiday the month has no record for."""
        added = 0
        for holiday in await HolidayService.active_in_month(db, month.month_year):
            if AttendanceService.find_record(month, holiday.date) is not None:
                continue
            await AttendanceService.write_day(
                db,
                employee,
                month,
                holiday.date,
                presence_type=PresenceType.holiday,
                remarks=holiday.name,
            )
            added += 1
        return added


async def _get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
    result = await db.execute(select(Employee).where(Employee.id == employee_id))
    employee = result.scalars().first()
    if employee is None:
        raise NotFoundException("Employee", str(employee_id))
    return employee


# ═════════════════════════════════════════════════════════════════════
# HolidayService
# ═════════════════════════════════════════════════════════════════════


class HolidayService:
    """Holiday calendar CRUD. One holiday per date."""

    @staticmethod
    async def list_holidays(
        db: AsyncSession,
        *,
        year: Optional[int] = None,
        active_only: bool = False,
    ) -> Sequence[Holiday]:
        query = select(Holiday).order_by(Holiday.date)
        if year is not None:
            query = query.where(Holiday.year == year)
        if active_only:
            query = query.where(Holiday.is_active.is_(True))
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def active_in_month(db: AsyncSession, month_year: str) -> Sequence[Holiday]:
        year, month_no = _validate_month(month_year)
        last_day = calendar.monthrange(year, month_no)[1]
        result = await db.execute(
            select(Holiday)
            .where(
                Holiday.is_active.is_(True),
                Holiday.date >= date(year, month_no, 1),
                Holiday.date <= date(year, month_no, last_day),
            )
            .order_by(Holiday.date)
        )
        return result.scalars().all()

    @staticmethod
    async def get_holiday(db: AsyncSession, holiday_id: uuid.UUID) -> Holiday:
        result = await db.execute(select(Holiday).where(Holiday.id == holiday_id))
        holiday = result.scalars().first()
        if holiday is None:
            raise NotFoundException("Holiday", str(holiday_id))
        return holiday

    @staticmethod
    async def create_holiday(db: AsyncSession, data: HolidayCreate) -> Holiday:
        result = await db.execute(select(Holiday.id).where(Holiday.date == data.date))
        if result.scalar_one_or_none() is not None:
            raise ConflictError(
                "date",
                data.date.isoformat(),
                detail=f"A holiday already exists on {data.date.isoformat()}.",
            )
        holiday = Holiday(**data.model_dump(), year=data.date.year)
        db.add(holiday)
        await db.flush()
        logger.info("Holiday added: %s %s", holiday.date, holiday.name)
        return holiday

    @staticmethod
    async def update_holiday(
        db: AsyncSession, holiday_id: uuid.UUID, data: HolidayUpdate
    ) -> Holiday:
        holiday = await HolidayService.get_holiday(db, holiday_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(holiday, field, value)
        await db.flush()
        return holiday

    @staticmethod
    async def delete_holiday(db: AsyncSession, holiday_id: uuid.UUID) -> None:
        holiday = await HolidayService.get_holiday(db, holiday_id)
        await db.delete(holiday)
        await db.flush()
        logger.info("Holiday removed: %s %s", holiday.date, holiday.name)


# ═════════════════════════════════════════════════════════════════════
# MachineFormatService
# ═════════════════════════════════════════════════════════════════════


class MachineFormatService:
    """Punch-machine column templates."""

    @staticmethod
    async def list_formats(db: AsyncSession, *, active_only: bool = False) -> Sequence[MachineFormat]:
        query = select(MachineFormat).order_by(MachineFormat.machine_id)
        if active_only:
            query = query.where(MachineFormat.is_active.is_(True))
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def get_by_machine_id(db: AsyncSession, machine_id: str) -> MachineFormat:
        result = await db.execute(
            select(MachineFormat).where(MachineFormat.machine_id == machine_id)
        )
        fmt = result.scalars().first()
        if fmt is None:
            raise NotFoundException("Machine format", machine_id)
        return fmt

    @staticmethod
    async def create_format(db: AsyncSession, data: MachineFormatCreate) -> MachineFormat:
        result = await db.execute(
            select(MachineFormat.id).where(MachineFormat.machine_id == data.machine_id)
        )
        if result.scalar_one_or_none() is not None:
            raise ConflictError("machine_id", data.machine_id)
        fmt = MachineFormat(**data.model_dump())
        db.add(fmt)
        await db.flush()
        return fmt

    @staticmethod
    async def update_format(
        db: AsyncSession, machine_id: str, data: MachineFormatUpdate
    ) -> MachineFormat:
        fmt = await MachineFormatService.get_by_machine_id(db, machine_id)
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(fmt, field, value)
        await db.flush()
        return fmt

    @staticmethod
    async def delete_format(db: AsyncSession, machine_id: str) -> None:
        fmt = await MachineFormatService.get_by_machine_id(db, machine_id)
        await db.delete(fmt)
        await db.flush()

    @staticmethod
    async def ensure_default_formats(db: AsyncSession) -> int:
        """Insert the built-in templates that are missing. Returns how many were added."""
        result = await db.execute(select(MachineFormat.machine_id))
        existing = set(result.scalars().all())
        added = 0
        for template in DEFAULT_MACHINE_FORMATS:
            if template["machine_id"] in existing:
                continue
            db.add(
                MachineFormat(
                    machine_id=template["machine_id"],
                    name=template["name"],
                    description=template["description"],
                    headers=list(template["headers"]),
                )
            )
            added += 1
        if added:
            await db.flush()
            logger.info("Seeded %d default machine format(s)", added)
        return added

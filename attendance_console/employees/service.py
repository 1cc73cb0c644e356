"""Employee service layer — directory CRUD, history tracking, extra info, schedules.

Uses:
  - ``record_history`` from attendance_console.common.audit
  - ``NotFoundException / ConflictError / ValidationException`` from
    attendance_console.common.exceptions
"""

from __future__ import annotations

import logging
import re
import uuid
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from attendance_console.common.audit import EmployeeHistory, record_history
from attendance_console.common.constants import HistoryField
from attendance_console.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    ValidationException,
)
from attendance_console.config import settings
from attendance_console.employees.models import Employee, EmployeeExtraInfo
from attendance_console.employees.schemas import (
    BulkScheduleStats,
    EmployeeCreate,
    EmployeeUpdate,
    HistoryCreate,
    ScheduleRow,
)

logger = logging.getLogger(__name__)

_TRACKED_FIELDS = {f.value: f for f in HistoryField}
_UPDATE_META_FIELDS = {"changed_by", "change_reason", "effective_date"}


# ── Name matching ───────────────────────────────────────────────────

def name_key(name: str) -> str:
    """Case-insensitive, trimmed lookup key."""
    return name.strip().lower()


def dotted_name_key(name: str) -> str:
    """``"John Doe"`` → ``"john.doe"`` for accounts stored in dotted form."""
    return re.sub(r"\s+", ".", name_key(name))


class NameIndex:
    """In-memory lookup of employees by name, then by dotted name."""

    def __init__(self, employees: Iterable[Employee]) -> None:
        self._by_name: dict[str, Employee] = {}
        for emp in employees:
            if emp.name:
                self._by_name.setdefault(name_key(emp.name), emp)

    def match(self, raw_name: Optional[str]) -> Optional[Employee]:
        if not raw_name or not raw_name.strip():
            return None
        return self._by_name.get(name_key(raw_name)) or self._by_name.get(
            dotted_name_key(raw_name)
        )


# ═════════════════════════════════════════════════════════════════════
# EmployeeService
# ═════════════════════════════════════════════════════════════════════


class EmployeeService:
    """Async employee directory operations."""

    # ── Lookups ─────────────────────────────────────────────────────

    @staticmethod
    async def get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        result = await db.execute(
            select(Employee)
            .where(Employee.id == employee_id)
            .options(selectinload(Employee.extra_info))
            .execution_options(populate_existing=True)
        )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def find_by_name(db: AsyncSession, name: str) -> Optional[Employee]:
        """Resolve a display name (e.g. a partner) to an employee, exact key first."""
        if not name or not name.strip():
            return None
        key, dotted = name_key(name), dotted_name_key(name)
        result = await db.execute(
            select(Employee).where(
                func.lower(func.trim(Employee.name)).in_([key, dotted]),
            )
        )
        candidates = result.scalars().all()
        for wanted in (key, dotted):
            for emp in candidates:
                if name_key(emp.name) == wanted:
                    return emp
        return None

    @staticmethod
    async def get_active_by_email(db: AsyncSession, email: str) -> Employee:
        result = await db.execute(
            select(Employee)
            .where(func.lower(Employee.email) == email.strip().lower())
            .options(selectinload(Employee.extra_info))
        )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", email)
        if not employee.is_active:
            raise ForbiddenException(detail="User account is inactive.")
        return employee

    @staticmethod
    async def list_active(db: AsyncSession) -> Sequence[Employee]:
        result = await db.execute(
            select(Employee).where(Employee.is_active.is_(True)).order_by(Employee.name)
        )
        return result.scalars().all()

    # ── List ────────────────────────────────────────────────────────

    @staticmethod
    async def list_employees(
        db: AsyncSession,
        *,
        active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> Sequence[Employee]:
        query = select(Employee).options(selectinload(Employee.extra_info))
        if active is not None:
            query = query.where(Employee.is_active.is_(active))
        if search:
            pattern = f"%{search.strip().lower()}%"
            query = query.where(
                or_(
                    func.lower(Employee.name).like(pattern),
                    func.lower(Employee.email).like(pattern),
                    func.lower(Employee.od_id).like(pattern),
                )
            )
        result = await db.execute(query.order_by(Employee.name))
        return result.scalars().all()

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def _ensure_unique(
        db: AsyncSession,
        *,
        email: Optional[str],
        od_id: Optional[str],
        exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        if email:
            query = select(Employee.id).where(func.lower(Employee.email) == email.lower())
            if exclude_id is not None:
                query = query.where(Employee.id != exclude_id)
            if (await db.execute(query)).first() is not None:
                raise ConflictError("email", email)
        if od_id:
            query = select(Employee.id).where(Employee.od_id == od_id)
            if exclude_id is not None:
                query = query.where(Employee.id != exclude_id)
            if (await db.execute(query)).first() is not None:
                raise ConflictError("od_id", od_id)

    @staticmethod
    async def create_employee(db: AsyncSession, data: EmployeeCreate) -> Employee:
        """Create a new employee with a zero leave balance."""

        await EmployeeService._ensure_unique(db, email=data.email, od_id=data.od_id)

        values = data.model_dump(exclude={"monthly_leave_rate"})
        employee = Employee(
            **values,
            monthly_leave_rate=(
                data.monthly_leave_rate
                if data.monthly_leave_rate is not None
                else settings.DEFAULT_MONTHLY_LEAVE
            ),
            leave_earned=0.0,
            leave_used=0.0,
            leave_remaining=0.0,
            is_active=True,
            extra_info=[],
        )
        db.add(employee)
        await db.flush()
        logger.info("Created employee %s (%s)", employee.name, employee.id)
        return employee

    # ── Update ──────────────────────────────────────────────────────

    @staticmethod
    async def update_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        data: EmployeeUpdate,
    ) -> Employee:
        """Partial update; tracked attribute changes are written to history."""

        employee = await EmployeeService.get_employee(db, employee_id)
        changes = data.model_dump(exclude_unset=True, exclude=_UPDATE_META_FIELDS)
        if not changes:
            return employee

        await EmployeeService._ensure_unique(
            db,
            email=changes.get("email"),
            od_id=changes.get("od_id"),
            exclude_id=employee.id,
        )

        for field, value in changes.items():
            old_value = getattr(employee, field, None)
            if field in _TRACKED_FIELDS and old_value != value:
                await record_history(
                    db,
                    employee_id=employee.id,
                    field=_TRACKED_FIELDS[field],
                    old_value=old_value,
                    new_value=value,
                    changed_by=data.changed_by,
                    effective_date=data.effective_date,
                    reason=data.change_reason,
                )
            setattr(employee, field, value)

        await db.flush()
        return await EmployeeService.get_employee(db, employee.id)

    # ── Deactivate ──────────────────────────────────────────────────

    @staticmethod
    async def deactivate_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        employee = await EmployeeService.get_employee(db, employee_id)
        employee.is_active = False
        await db.flush()
        logger.info("Deactivated employee %s", employee_id)
        return employee

    # ── History ─────────────────────────────────────────────────────

    @staticmethod
    async def list_history(
        db: AsyncSession, employee_id: uuid.UUID
    ) -> Sequence[EmployeeHistory]:
        await EmployeeService.get_employee(db, employee_id)
        result = await db.execute(
            select(EmployeeHistory)
            .where(EmployeeHistory.employee_id == employee_id)
            .order_by(EmployeeHistory.effective_date.desc(), EmployeeHistory.created_at.desc())
        )
        return result.scalars().all()

    @staticmethod
    async def add_history(
        db: AsyncSession, employee_id: uuid.UUID, data: HistoryCreate
    ) -> EmployeeHistory:
        await EmployeeService.get_employee(db, employee_id)
        return await record_history(
            db,
            employee_id=employee_id,
            field=data.field,
            old_value=data.old_value,
            new_value=data.new_value,
            changed_by=data.changed_by,
            effective_date=data.effective_date,
            reason=data.reason,
        )

    # ── Extra info labels ───────────────────────────────────────────

    @staticmethod
    def _clean_label(label: str) -> str:
        cleaned = label.strip()
        if not cleaned:
            raise ValidationException({"label": ["Label cannot be empty."]})
        return cleaned

    @staticmethod
    async def add_extra_info_label(db: AsyncSession, label: str) -> int:
        """Give every employee lacking ``label`` an empty entry. Returns the count added."""
        cleaned = EmployeeService._clean_label(label)
        has_label = select(EmployeeExtraInfo.employee_id).where(
            EmployeeExtraInfo.label == cleaned
        )
        result = await db.execute(select(Employee.id).where(Employee.id.not_in(has_label)))
        missing = result.scalars().all()
        for employee_id in missing:
            db.add(EmployeeExtraInfo(employee_id=employee_id, label=cleaned, value=""))
        await db.flush()
        return len(missing)

    @staticmethod
    async def remove_extra_info_label(db: AsyncSession, label: str) -> int:
        """Drop ``label`` from every employee. Returns the count removed."""
        cleaned = EmployeeService._clean_label(label)
        result = await db.execute(
            delete(EmployeeExtraInfo).where(EmployeeExtraInfo.label == cleaned)
        )
        await db.flush()
        return result.rowcount or 0

    # ── Bulk schedules ──────────────────────────────────────────────

    @staticmethod
    async def bulk_update_schedules(
        db: AsyncSession, rows: Sequence[ScheduleRow]
    ) -> BulkScheduleStats:
        """Apply spreadsheet schedule rows, matching employees by name."""

        result = await db.execute(select(Employee))
        index = NameIndex(result.scalars().all())
        stats = BulkScheduleStats()

        for row in rows:
            if not row.name or not row.name.strip():
                stats.failed += 1
                stats.errors.append("Row without a name")
                continue

            employee = index.match(row.name)
            if employee is None:
                stats.failed += 1
                stats.errors.append(f"User not found: {row.name}")
                continue

            modified = False
            if row.in_time and row.out_time:
                employee.schedule_in, employee.schedule_out = row.in_time, row.out_time
                modified = True
            if row.in_time and row.out_time_sat:
                employee.schedule_sat_in, employee.schedule_sat_out = row.in_time, row.out_time_sat
                modified = True
            if row.in_time and row.out_time_month:
                employee.schedule_month_in, employee.schedule_month_out = row.in_time, row.out_time_month
                modified = True

            if modified:
                stats.updated += 1
            else:
                stats.failed += 1
                stats.errors.append(f"No valid schedule data for: {row.name}")

        await db.flush()
        logger.info(
            "Bulk schedule update: %d updated, %d failed", stats.updated, stats.failed
        )
        return stats

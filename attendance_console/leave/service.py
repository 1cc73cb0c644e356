"""Leave ledger service — monthly accrual, day usage, balances.

Business logic:
  - ``remaining`` is recomputed as ``earned - used`` after every change
  - Monthly accrual is keyed by (employee, month): re-running a month is a no-op
  - Usage is keyed by (employee, day): marking the same day twice counts once
  - One employee's failure never blocks the rest of a batch
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Iterable, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_console.attendance.aggregator import month_year_of, parse_month_year
from attendance_console.common.constants import LeaveTransactionKind
from attendance_console.common.exceptions import NotFoundException, ValidationException
from attendance_console.employees.models import Employee
from attendance_console.leave.models import LeaveTransaction
from attendance_console.leave.schemas import AccrualError, AccrualReport

logger = logging.getLogger(__name__)


def _recompute(employee: Employee) -> None:
    employee.leave_remaining = round(
        (employee.leave_earned or 0.0) - (employee.leave_used or 0.0), 2
    )
    employee.leave_last_updated = datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════
# LeaveLedger
# ═════════════════════════════════════════════════════════════════════


class LeaveLedger:
    """Async leave balance bookkeeping."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _find_transaction(
        db: AsyncSession,
        employee_id: uuid.UUID,
        kind: LeaveTransactionKind,
        period: str,
    ) -> Optional[LeaveTransaction]:
        result = await db.execute(
            select(LeaveTransaction).where(
                LeaveTransaction.employee_id == employee_id,
                LeaveTransaction.kind == kind,
                LeaveTransaction.period == period,
            )
        )
        return result.scalars().first()

    @staticmethod
    def _resolve_month(month_year: Optional[str]) -> str:
        if not month_year:
            return month_year_of(date.today())
        try:
            parse_month_year(month_year)
        except ValueError as exc:
            raise ValidationException({"month_year": [str(exc)]})
        return month_year

    # ── Accrual ─────────────────────────────────────────────────────

    @staticmethod
    async def credit_month(
        db: AsyncSession, employee: Employee, month_year: str
    ) -> bool:
        """Credit one month of accrual. Returns False if already credited."""
        existing = await LeaveLedger._find_transaction(
            db, employee.id, LeaveTransactionKind.accrual, month_year
        )
        if existing is not None:
            return False

        amount = employee.monthly_leave_rate or 0.0
        db.add(
            LeaveTransaction(
                employee_id=employee.id,
                kind=LeaveTransactionKind.accrual,
                period=month_year,
                amount=amount,
            )
        )
        employee.leave_earned = round((employee.leave_earned or 0.0) + amount, 2)
        _recompute(employee)
        await db.flush()
        return True

    @staticmethod
    async def increment_monthly(
        db: AsyncSession,
        month_year: Optional[str] = None,
        *,
        employees: Optional[Iterable[Employee]] = None,
    ) -> AccrualReport:
        """Credit ``month_year`` (default: current month) to every active employee.

        ``employees`` narrows the batch (used by imports to credit only the
        people present in the file).
        """
        target = LeaveLedger._resolve_month(month_year)
        if employees is None:
            result = await db.execute(
                select(Employee).where(Employee.is_active.is_(True)).order_by(Employee.name)
            )
            employees = result.scalars().all()

        report = AccrualReport(month_year=target)
        for employee in employees:
            if not employee.is_active:
                continue
            # Read before the savepoint: rolling it back expires the employee.
            employee_id, name = employee.id, employee.name
            try:
                async with db.begin_nested():
                    credited = await LeaveLedger.credit_month(db, employee, target)
            except Exception as exc:
                logger.warning("Leave accrual failed for %s (%s): %s", name, employee_id, exc)
                report.errors.append(
                    AccrualError(employee_id=employee_id, name=name, reason=str(exc))
                )
                continue
            if credited:
                report.credited += 1
            else:
                report.skipped += 1

        logger.info(
            "Leave accrual %s: %d credited, %d skipped, %d failed",
            target, report.credited, report.skipped, len(report.errors),
        )
        return report

    # ── Usage ───────────────────────────────────────────────────────

    @staticmethod
    async def record_leave_usage(
        db: AsyncSession, employee: Employee, day: date
    ) -> bool:
        """Count ``day`` as one used leave day. Returns False if already counted."""
        period = day.isoformat()
        existing = await LeaveLedger._find_transaction(
            db, employee.id, LeaveTransactionKind.usage, period
        )
        if existing is not None:
            return False

        db.add(
            LeaveTransaction(
                employee_id=employee.id,
                kind=LeaveTransactionKind.usage,
                period=period,
                amount=1.0,
            )
        )
        employee.leave_used = round((employee.leave_used or 0.0) + 1.0, 2)
        _recompute(employee)
        await db.flush()
        return True

    @staticmethod
    async def release_leave_usage(
        db: AsyncSession, employee: Employee, day: date
    ) -> bool:
        """Undo the usage for ``day`` (the day is no longer leave)."""
        existing = await LeaveLedger._find_transaction(
            db, employee.id, LeaveTransactionKind.usage, day.isoformat()
        )
        if existing is None:
            return False

        employee.leave_used = round((employee.leave_used or 0.0) - existing.amount, 2)
        await db.delete(existing)
        _recompute(employee)
        await db.flush()
        return True

    # ── Balances ────────────────────────────────────────────────────

    @staticmethod
    async def list_balances(
        db: AsyncSession, *, active_only: bool = True
    ) -> Sequence[Employee]:
        query = select(Employee).order_by(Employee.name)
        if active_only:
            query = query.where(Employee.is_active.is_(True))
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def reset_balance(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        """Zero the balance and clear the ledger so accruals can be re-run."""
        result = await db.execute(select(Employee).where(Employee.id == employee_id))
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))

        await db.execute(
            delete(LeaveTransaction).where(LeaveTransaction.employee_id == employee_id)
        )
        employee.leave_earned = 0.0
        employee.leave_used = 0.0
        _recompute(employee)
        await db.flush()
        logger.info("Reset leave balance for %s", employee_id)
        return employee

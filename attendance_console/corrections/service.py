"""Correction workflow — employee requests, partner/HR review, emailed one-time links.

State machine:
  Pending ──approve──▶ Approved   (daily record rewritten, month re-aggregated)
  Pending ──reject───▶ Rejected
  Approved / Rejected are terminal: any further action → StateTransitionError.

Emails (partner digest, employee decision) are best-effort: a delivery failure
is logged and reported, never raised.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_console.attendance.aggregator import WorkProfile, month_year_of, schedule_for
from attendance_console.attendance.service import AttendanceService
from attendance_console.auth.dependencies import Principal
from attendance_console.common.constants import (
    NOT_RECORDED,
    PresenceType,
    RequestAction,
    RequestStatus,
)
from attendance_console.common.exceptions import (
    ConflictError,
    ForbiddenException,
    NotFoundException,
    StateTransitionError,
    ValidationException,
)
from attendance_console.corrections.models import CorrectionRequest
from attendance_console.corrections.schemas import (
    BulkResolveResult,
    BulkSkip,
    CorrectionCreate,
    CorrectionCreated,
    CorrectionResponse,
    FutureLeaveCreate,
)
from attendance_console.employees.models import Employee
from attendance_console.employees.service import EmployeeService, dotted_name_key
from attendance_console.notifications.service import MailDeliveryError, NotificationService
from attendance_console.notifications.templates import decision_email, pending_digest_email

logger = logging.getLogger(__name__)

ALREADY_RESOLVED = "Request already resolved"


# ═════════════════════════════════════════════════════════════════════
# CorrectionService
# ═════════════════════════════════════════════════════════════════════


class CorrectionService:
    """Async correction request lifecycle."""

    # ── Helpers ─────────────────────────────────────────────────────

    @staticmethod
    async def _resolve_partner(db: AsyncSession, employee: Employee) -> tuple[str, str]:
        partner_name = (employee.working_under_partner or "").strip()
        if not partner_name:
            raise ValidationException(
                {"working_under_partner": ["No partner assigned to this employee."]}
            )
        partner = await EmployeeService.find_by_name(db, partner_name)
        if partner is None or not partner.email:
            raise ValidationException(
                {"working_under_partner": [f"Partner '{partner_name}' email not found."]}
            )
        return partner_name, partner.email

    @staticmethod
    async def _current_status(db: AsyncSession, employee_id: uuid.UUID, day: date) -> str:
        month = await AttendanceService.find_month(db, employee_id, month_year_of(day))
        record = AttendanceService.find_record(month, day) if month else None
        return record.presence_type.value if record else NOT_RECORDED

    @staticmethod
    async def _requests_on(
        db: AsyncSession, employee_id: uuid.UUID, day: date
    ) -> Sequence[CorrectionRequest]:
        result = await db.execute(
            select(CorrectionRequest).where(
                CorrectionRequest.employee_id == employee_id,
                CorrectionRequest.date == day,
            )
        )
        return result.scalars().all()

    @staticmethod
    async def _claim_date(db: AsyncSession, employee_id: uuid.UUID, day: date) -> bool:
        """False if ``day`` already has a pending or approved request.

        Otherwise clears any rejected requests on ``day`` so a new one can take it.
        """
        existing = await CorrectionService._requests_on(db, employee_id, day)
        if any(r.status != RequestStatus.rejected for r in existing):
            return False
        if existing:
            await db.execute(
                delete(CorrectionRequest).where(
                    CorrectionRequest.employee_id == employee_id,
                    CorrectionRequest.date == day,
                    CorrectionRequest.status == RequestStatus.rejected,
                )
            )
        return True

    @staticmethod
    def _new_request(
        employee: Employee,
        partner_name: str,
        partner_email: str,
        day: date,
        requested: PresenceType,
        original_status: str,
        reason: str,
        start_time: Optional[str],
        end_time: Optional[str],
    ) -> CorrectionRequest:
        return CorrectionRequest(
            employee_id=employee.id,
            user_name=employee.name,
            partner_name=partner_name,
            partner_email=partner_email,
            date=day,
            month_year=month_year_of(day),
            requested_status=requested.value,
            original_status=original_status,
            reason=reason,
            start_time=start_time,
            end_time=end_time,
            status=RequestStatus.pending,
            action_token=secrets.token_urlsafe(32),
        )

    @staticmethod
    async def _notify_partner(db: AsyncSession, partner_name: str, partner_email: str) -> bool:
        """Email the partner every request still pending for them."""
        pending = await CorrectionService.list_pending_for_partner(db, partner_name)
        if not pending:
            return False
        subject, html, text = pending_digest_email(partner_name, pending)
        try:
            await NotificationService.send_email(partner_email, subject, html, text)
        except MailDeliveryError as exc:
            logger.warning("Partner digest to %s failed: %s", partner_email, exc)
            return False
        return True

    @staticmethod
    async def _notify_employee(db: AsyncSession, req: CorrectionRequest) -> bool:
        employee = await EmployeeService.get_employee(db, req.employee_id)
        subject, html, text = decision_email(req)
        try:
            await NotificationService.send_email(employee.email, subject, html, text)
        except MailDeliveryError as exc:
            logger.warning("Decision email to %s failed: %s", employee.email, exc)
            return False
        return True

    @staticmethod
    def _ensure_can_review(principal: Principal, req: CorrectionRequest) -> None:
        """HR reviews anything; an employee only requests routed to them as partner."""
        if principal.is_hr:
            return
        if principal.employee is None or dotted_name_key(principal.employee.name) != dotted_name_key(
            req.partner_name
        ):
            raise ForbiddenException(detail="This request is not assigned to you.")

    # ── Create ──────────────────────────────────────────────────────

    @staticmethod
    async def create_request(
        db: AsyncSession, principal: Principal, data: CorrectionCreate
    ) -> CorrectionCreated:
        principal.ensure_can_act_for(data.employee_id)
        employee = await EmployeeService.get_employee(db, data.employee_id)
        partner_name, partner_email = await CorrectionService._resolve_partner(db, employee)

        if not await CorrectionService._claim_date(db, employee.id, data.date):
            raise ConflictError(
                "date",
                data.date.isoformat(),
                detail=f"A request for {data.date.isoformat()} already exists.",
            )

        req = CorrectionService._new_request(
            employee,
            partner_name,
            partner_email,
            data.date,
            data.requested_status,
            await CorrectionService._current_status(db, employee.id, data.date),
            data.reason,
            data.start_time,
            data.end_time,
        )
        db.add(req)
        await db.flush()
        logger.info(
            "Correction requested by %s for %s: %s", employee.name, data.date, req.requested_status
        )

        email_sent = await CorrectionService._notify_partner(db, partner_name, partner_email)
        return CorrectionCreated(
            requests=[CorrectionResponse.model_validate(req)], email_sent=email_sent
        )

    @staticmethod
    async def request_future_leave(
        db: AsyncSession, principal: Principal, data: FutureLeaveCreate
    ) -> CorrectionCreated:
        """One request per day in the range; Sundays and days already requested are skipped."""
        principal.ensure_can_act_for(data.employee_id)
        employee = await EmployeeService.get_employee(db, data.employee_id)
        partner_name, partner_email = await CorrectionService._resolve_partner(db, employee)
        profile = WorkProfile.from_employee(employee)

        created: list[CorrectionRequest] = []
        skipped: list[date] = []
        day = data.start_date
        while day <= data.end_date:
            current, day = day, day + timedelta(days=1)
            if current.weekday() == 6:
                continue
            if not await CorrectionService._claim_date(db, employee.id, current):
                skipped.append(current)
                continue

            start_time, end_time = data.start_time, data.end_time
            if data.requested_status == PresenceType.present_outstation:
                scheduled_in, scheduled_out = schedule_for(current, profile)
                if scheduled_in and scheduled_out:
                    start_time, end_time = scheduled_in, scheduled_out

            req = CorrectionService._new_request(
                employee,
                partner_name,
                partner_email,
                current,
                data.requested_status,
                await CorrectionService._current_status(db, employee.id, current),
                data.reason,
                start_time,
                end_time,
            )
            db.add(req)
            created.append(req)

        if not created:
            raise ValidationException(
                {"dates": ["No requestable dates in range (Sundays and already-requested days are skipped)."]}
            )
        await db.flush()
        logger.info(
            "Future %s requested by %s: %d day(s), %d skipped",
            data.requested_status.value, employee.name, len(created), len(skipped),
        )

        email_sent = await CorrectionService._notify_partner(db, partner_name, partner_email)
        return CorrectionCreated(
            requests=[CorrectionResponse.model_validate(r) for r in created],
            skipped_dates=skipped,
            email_sent=email_sent,
        )

    # ── List / get ──────────────────────────────────────────────────

    @staticmethod
    async def get_request(db: AsyncSession, request_id: uuid.UUID) -> CorrectionRequest:
        result = await db.execute(
            select(CorrectionRequest).where(CorrectionRequest.id == request_id)
        )
        req = result.scalars().first()
        if req is None:
            raise NotFoundException("Correction request", str(request_id))
        return req

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        *,
        status: Optional[RequestStatus] = None,
        employee_id: Optional[uuid.UUID] = None,
        month_year: Optional[str] = None,
    ) -> Sequence[CorrectionRequest]:
        query = select(CorrectionRequest).order_by(
            CorrectionRequest.date.desc(), CorrectionRequest.created_at.desc()
        )
        if status is not None:
            query = query.where(CorrectionRequest.status == status)
        if employee_id is not None:
            query = query.where(CorrectionRequest.employee_id == employee_id)
        if month_year:
            query = query.where(CorrectionRequest.month_year == month_year)
        result = await db.execute(query)
        return result.scalars().all()

    @staticmethod
    async def list_pending_for_partner(
        db: AsyncSession, partner_name: str
    ) -> Sequence[CorrectionRequest]:
        """Pending requests routed to ``partner_name`` (plain or dotted spelling)."""
        result = await db.execute(
            select(CorrectionRequest)
            .where(CorrectionRequest.status == RequestStatus.pending)
            .order_by(CorrectionRequest.created_at, CorrectionRequest.date)
        )
        wanted = dotted_name_key(partner_name)
        return [r for r in result.scalars().all() if dotted_name_key(r.partner_name) == wanted]

    # ── Resolve ─────────────────────────────────────────────────────

    @staticmethod
    async def _apply_action(
        db: AsyncSession,
        req: CorrectionRequest,
        action: RequestAction,
        *,
        actor: str,
        remarks: Optional[str],
        as_partner: bool,
    ) -> CorrectionRequest:
        if not req.is_pending:
            raise StateTransitionError(ALREADY_RESOLVED)

        now = datetime.now(timezone.utc)
        if as_partner:
            req.partner_remarks = remarks
        else:
            req.hr_remarks = remarks

        if action == RequestAction.approve:
            employee = await EmployeeService.get_employee(db, req.employee_id)
            await AttendanceService.apply_correction(
                db,
                employee,
                req.date,
                PresenceType(req.requested_status),
                req.start_time,
                req.end_time,
            )
            req.status = RequestStatus.approved
            req.approved_by = actor
            req.approved_at = now
        else:
            req.status = RequestStatus.rejected
            req.rejected_by = actor
            req.rejected_at = now

        req.action_token = None
        await db.flush()
        logger.info("Correction %s %s by %s", req.id, req.status.value, actor)
        return req

    @staticmethod
    async def resolve_by_link(
        db: AsyncSession, request_id: uuid.UUID, action: RequestAction, token: str
    ) -> CorrectionRequest:
        """Resolve from an emailed link; the one-time token must match."""
        req = await CorrectionService.get_request(db, request_id)
        if not req.is_pending:
            raise StateTransitionError(ALREADY_RESOLVED)
        if not req.action_token or not secrets.compare_digest(req.action_token, token or ""):
            raise ForbiddenException(detail="Invalid or expired action link.")

        await CorrectionService._apply_action(
            db, req, action, actor=req.partner_name, remarks=None, as_partner=True
        )
        await CorrectionService._notify_employee(db, req)
        return req

    @staticmethod
    async def resolve(
        db: AsyncSession,
        principal: Principal,
        request_id: uuid.UUID,
        action: RequestAction,
        remarks: Optional[str] = None,
    ) -> CorrectionRequest:
        req = await CorrectionService.get_request(db, request_id)
        CorrectionService._ensure_can_review(principal, req)
        await CorrectionService._apply_action(
            db,
            req,
            action,
            actor=principal.actor_name,
            remarks=remarks,
            as_partner=not principal.is_hr,
        )
        await CorrectionService._notify_employee(db, req)
        return req

    @staticmethod
    async def bulk_resolve(
        db: AsyncSession,
        principal: Principal,
        ids: Sequence[uuid.UUID],
        action: RequestAction,
        remarks: Optional[str] = None,
    ) -> BulkResolveResult:
        """Apply one action to many requests; missing or resolved ones are skipped."""
        if remarks is None:
            remarks = "Bulk approved" if action == RequestAction.approve else "Bulk rejected"

        outcome = BulkResolveResult()
        for request_id in dict.fromkeys(ids):
            result = await db.execute(
                select(CorrectionRequest).where(CorrectionRequest.id == request_id)
            )
            req = result.scalars().first()
            if req is None:
                outcome.skipped.append(BulkSkip(id=request_id, reason="Not found"))
                continue
            if not req.is_pending:
                outcome.skipped.append(BulkSkip(id=request_id, reason=ALREADY_RESOLVED))
                continue
            try:
                CorrectionService._ensure_can_review(principal, req)
            except ForbiddenException as exc:
                outcome.skipped.append(BulkSkip(id=request_id, reason=exc.detail))
                continue

            await CorrectionService._apply_action(
                db,
                req,
                action,
                actor=principal.actor_name,
                remarks=remarks,
                as_partner=not principal.is_hr,
            )
            await CorrectionService._notify_employee(db, req)
            outcome.resolved += 1

        logger.info(
            "Bulk %s by %s: %d resolved, %d skipped",
            action.value, principal.actor_name, outcome.resolved, len(outcome.skipped),
        )
        return outcome

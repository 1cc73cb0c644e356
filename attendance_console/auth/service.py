"""Auth service — HR password + emailed OTP, employee email login, JWT sessions."""

from __future__ import annotations

import hashlib
import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_console.auth.models import AuthSession
from attendance_console.auth.otp import generate_code, new_session_id, otp_store
from attendance_console.common.constants import UserRole
from attendance_console.common.exceptions import (
    AuthenticationException,
    ServiceUnavailableException,
)
from attendance_console.config import settings
from attendance_console.employees.models import Employee
from attendance_console.employees.service import EmployeeService
from attendance_console.notifications.service import MailDeliveryError, NotificationService
from attendance_console.notifications.templates import otp_email

logger = logging.getLogger(__name__)


# ── JWT helpers ─────────────────────────────────────────────────────

def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _expiry_hours(role: UserRole) -> int:
    if role == UserRole.hr:
        return settings.JWT_EXPIRY_HOURS
    return settings.EMPLOYEE_JWT_EXPIRY_HOURS


def create_access_token(
    role: UserRole,
    employee_id: Optional[uuid.UUID] = None,
) -> tuple[str, int]:
    """Return (encoded_jwt, expires_in_seconds)."""
    hours = _expiry_hours(role)
    payload = {
        "sub": str(employee_id) if employee_id else role.value,
        "role": role.value,
        "type": "access",
        "exp": datetime.now(timezone.utc) + timedelta(hours=hours),
    }
    token = jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)
    return token, hours * 3600


# ── Session management ──────────────────────────────────────────────

async def create_session(
    db: AsyncSession,
    role: UserRole,
    *,
    employee_id: Optional[uuid.UUID] = None,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> tuple[str, int]:
    """Issue a JWT and persist its hash. Returns (access_token, expires_in)."""
    token, expires_in = create_access_token(role, employee_id)
    db.add(
        AuthSession(
            role=role,
            employee_id=employee_id,
            token_hash=hash_token(token),
            ip_address=ip,
            user_agent=user_agent,
            expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        )
    )
    await db.flush()
    return token, expires_in


async def revoke_session(db: AsyncSession, token_hash: str) -> None:
    """Mark a session as revoked by its token hash."""
    result = await db.execute(
        select(AuthSession).where(AuthSession.token_hash == token_hash),
    )
    session = result.scalars().first()
    if session:
        session.is_revoked = True
        await db.flush()


# ── HR login (password → emailed OTP → token) ───────────────────────

async def start_hr_login(password: str) -> str:
    """Check the HR password and email a one-time code. Returns the login session id."""
    if not settings.HR_PASSWORD or not secrets.compare_digest(
        password.encode(), settings.HR_PASSWORD.encode()
    ):
        raise AuthenticationException("Invalid password.")
    if not settings.ADMIN_EMAIL:
        raise ServiceUnavailableException("No administrator email is configured.")

    session_id = new_session_id()
    code = generate_code()
    otp_store.issue(session_id, code)

    subject, html, text = otp_email(code)
    try:
        await NotificationService.send_email(settings.ADMIN_EMAIL, subject, html, text)
    except MailDeliveryError:
        logger.exception("Could not deliver login code to %s", settings.ADMIN_EMAIL)
        raise ServiceUnavailableException("Could not deliver the one-time code.")
    return session_id


async def verify_hr_otp(
    db: AsyncSession,
    session_id: str,
    code: str,
    *,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> tuple[str, int]:
    if not otp_store.verify(session_id, code):
        raise AuthenticationException("Invalid or expired one-time code.")
    return await create_session(db, UserRole.hr, ip=ip, user_agent=user_agent)


# ── Employee login (email lookup) ───────────────────────────────────

async def login_employee(
    db: AsyncSession,
    email: str,
    *,
    ip: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> tuple[Employee, str, int]:
    employee = await EmployeeService.get_active_by_email(db, email)
    token, expires_in = await create_session(
        db, UserRole.employee, employee_id=employee.id, ip=ip, user_agent=user_agent,
    )
    return employee, token, expires_in

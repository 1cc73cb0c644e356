"""Auth dependencies — JWT validation, role enforcement."""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_console.auth.models import AuthSession
from attendance_console.auth.service import hash_token
from attendance_console.common.constants import UserRole
from attendance_console.common.exceptions import ForbiddenException
from attendance_console.config import settings
from attendance_console.database import get_db
from attendance_console.employees.models import Employee

# HR implicitly holds employee permissions
_ROLE_HIERARCHY: dict[UserRole, set[UserRole]] = {
    UserRole.hr: {UserRole.hr, UserRole.employee},
    UserRole.employee: {UserRole.employee},
}


@dataclass
class Principal:
    role: UserRole
    token_hash: str
    employee: Optional[Employee] = None

    @property
    def is_hr(self) -> bool:
        return self.role == UserRole.hr

    @property
    def actor_name(self) -> str:
        if self.employee is not None:
            return self.employee.name
        return "HR"

    def ensure_can_act_for(self, employee_id: uuid.UUID) -> None:
        """Employees may only act on their own records; HR may act for anyone."""
        if self.is_hr:
            return
        if self.employee is None or self.employee.id != employee_id:
            raise ForbiddenException(detail="You can only act on your own records.")


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_principal(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Principal:
    """Validate JWT, verify session, return the authenticated principal."""
    token = _extract_bearer(request)

    # Decode JWT
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    if payload.get("type") != "access":
        raise HTTPException(status_code=401, detail="Invalid token type.")

    try:
        role = UserRole(payload.get("role"))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid token role.")

    # Verify session exists, not revoked, not expired
    token_hash = hash_token(token)
    result = await db.execute(
        select(AuthSession).where(
            AuthSession.token_hash == token_hash,
            AuthSession.is_revoked.is_(False),
            AuthSession.expires_at > datetime.now(timezone.utc),
        ),
    )
    if result.scalars().first() is None:
        raise HTTPException(status_code=401, detail="Session invalid or expired.")

    principal = Principal(role=role, token_hash=token_hash)
    if role == UserRole.employee:
        try:
            employee_id = uuid.UUID(payload["sub"])
        except (KeyError, ValueError):
            raise HTTPException(status_code=401, detail="Invalid token subject.")
        emp_result = await db.execute(
            select(Employee).where(Employee.id == employee_id, Employee.is_active.is_(True)),
        )
        principal.employee = emp_result.scalars().first()
        if principal.employee is None:
            raise HTTPException(status_code=401, detail="User account is inactive or not found.")

    request.state.user_role = role
    return principal


# ── Role-based dependency ───────────────────────────────────────────

def require_role(*allowed_roles: UserRole) -> Callable:
    """Return a FastAPI dependency that enforces role membership (HR ⊇ employee)."""

    async def _check(
        principal: Principal = Depends(get_current_principal),
    ) -> Principal:
        effective_roles = _ROLE_HIERARCHY.get(principal.role, {principal.role})
        if not effective_roles.intersection(set(allowed_roles)):
            raise ForbiddenException(
                detail=f"Role '{principal.role.value}' is not permitted. Required: {[r.value for r in allowed_roles]}.",
            )
        return principal

    return _check


require_hr = require_role(UserRole.hr)
require_employee = require_role(UserRole.employee)

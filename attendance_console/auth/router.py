"""Auth router — HR password + OTP login, logout."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from attendance_console.auth.dependencies import Principal, get_current_principal
from attendance_console.auth.schemas import (
    LoginRequest,
    LoginResponse,
    TokenResponse,
    VerifyOtpRequest,
)
from attendance_console.auth.service import revoke_session, start_hr_login, verify_hr_otp
from attendance_console.common.constants import UserRole
from attendance_console.common.envelope import ApiResponse, ok
from attendance_console.common.rate_limit import limiter
from attendance_console.config import settings
from attendance_console.database import get_db

router = APIRouter(prefix="", tags=["auth"])


# ── POST /login — password → emailed one-time code ──────────────────

@router.post("/login", response_model=ApiResponse[LoginResponse])
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def login(request: Request, body: LoginRequest):
    session_id = await start_hr_login(body.password)
    return ok(
        LoginResponse(session_id=session_id, expires_in=settings.OTP_TTL_SECONDS),
        message="A one-time code has been sent to the administrator email.",
    )


# ── POST /verify-otp — one-time code → session token ────────────────

@router.post("/verify-otp", response_model=ApiResponse[TokenResponse])
@limiter.limit(settings.LOGIN_RATE_LIMIT)
async def verify_otp(
    request: Request,
    body: VerifyOtpRequest,
    db: AsyncSession = Depends(get_db),
):
    token, expires_in = await verify_hr_otp(
        db,
        body.session_id,
        body.otp,
        ip=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )
    return ok(TokenResponse(access_token=token, expires_in=expires_in, role=UserRole.hr.value))


# ── POST /logout — Revoke current session ──────────────────────────

@router.post("/logout", response_model=ApiResponse[None])
async def logout(
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    await revoke_session(db, principal.token_hash)
    return ok(message="Logged out successfully")

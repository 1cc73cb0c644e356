"""Auth Pydantic schemas for request / response validation."""

from pydantic import BaseModel, Field


# ── Requests ────────────────────────────────────────────────────────

class LoginRequest(BaseModel):
    password: str = Field(..., min_length=1)


class VerifyOtpRequest(BaseModel):
    session_id: str = Field(..., min_length=1)
    otp: str = Field(..., pattern=r"^\d{4,8}$")


# ── Responses ───────────────────────────────────────────────────────

class LoginResponse(BaseModel):
    session_id: str
    expires_in: int


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    role: str

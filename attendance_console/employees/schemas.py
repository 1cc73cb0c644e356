"""Employee Pydantic v2 schemas — directory, history, extra info, schedules."""

import uuid
from datetime import date, datetime
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from attendance_console.common.constants import HistoryField

HHMM = Annotated[str, Field(pattern=r"^([01]\d|2[0-3]):[0-5]\d$")]


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class EmployeeBase(BaseModel):
    od_id: Optional[str] = Field(None, max_length=50)
    employee_code: Optional[str] = Field(None, max_length=50)
    designation: Optional[str] = Field(None, max_length=100)
    team: Optional[str] = Field(None, max_length=100)
    paid_from: Optional[str] = Field(None, max_length=100)
    category: Optional[str] = Field(None, max_length=100)
    qualification_level: Optional[str] = Field(None, max_length=100)
    registered_under_partner: Optional[str] = Field(None, max_length=255)
    working_under_partner: Optional[str] = Field(None, max_length=255)
    joining_date: Optional[date] = None
    schedule_in: Optional[HHMM] = None
    schedule_out: Optional[HHMM] = None
    schedule_sat_in: Optional[HHMM] = None
    schedule_sat_out: Optional[HHMM] = None
    schedule_month_in: Optional[HHMM] = None
    schedule_month_out: Optional[HHMM] = None
    monthly_leave_rate: Optional[float] = Field(None, ge=0, le=31)


class EmployeeCreate(EmployeeBase):
    """Payload for creating an employee."""

    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr


class EmployeeUpdate(EmployeeBase):
    """Partial-update payload (all fields optional).

    ``changed_by`` / ``change_reason`` / ``effective_date`` annotate the
    history entries written for tracked fields.
    """

    name: Optional[str] = Field(None, min_length=1, max_length=255)
    email: Optional[EmailStr] = None
    is_active: Optional[bool] = None
    changed_by: Optional[str] = Field(None, max_length=255)
    change_reason: Optional[str] = None
    effective_date: Optional[date] = None


class ExtraInfoItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    label: str
    value: str


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    od_id: Optional[str] = None
    employee_code: Optional[str] = None
    name: str
    email: str
    designation: Optional[str] = None
    team: Optional[str] = None
    paid_from: Optional[str] = None
    category: Optional[str] = None
    qualification_level: Optional[str] = None
    registered_under_partner: Optional[str] = None
    working_under_partner: Optional[str] = None
    joining_date: Optional[date] = None
    schedule_in: Optional[str] = None
    schedule_out: Optional[str] = None
    schedule_sat_in: Optional[str] = None
    schedule_sat_out: Optional[str] = None
    schedule_month_in: Optional[str] = None
    schedule_month_out: Optional[str] = None
    leave_earned: float
    leave_used: float
    leave_remaining: float
    leave_last_updated: Optional[datetime] = None
    monthly_leave_rate: float
    is_active: bool
    extra_info: list[ExtraInfoItem] = Field(default_factory=list)


class EmployeeLoginRequest(BaseModel):
    email: EmailStr


class EmployeeLoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    employee: EmployeeResponse


# ═════════════════════════════════════════════════════════════════════
# History
# ═════════════════════════════════════════════════════════════════════


class HistoryCreate(BaseModel):
    """Manual history entry (e.g. back-dated partner change)."""

    field: HistoryField
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    effective_date: Optional[date] = None
    changed_by: Optional[str] = Field(None, max_length=255)
    reason: Optional[str] = None


class HistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    field: HistoryField
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    effective_date: date
    changed_by: str
    reason: Optional[str] = None
    created_at: datetime


# ═════════════════════════════════════════════════════════════════════
# Extra info (label applied across all employees)
# ═════════════════════════════════════════════════════════════════════


class ExtraInfoLabelRequest(BaseModel):
    label: str = Field(..., min_length=1, max_length=100)


class ExtraInfoLabelResult(BaseModel):
    label: str
    affected: int


# ═════════════════════════════════════════════════════════════════════
# Bulk schedule update
# ═════════════════════════════════════════════════════════════════════


class ScheduleRow(BaseModel):
    """One spreadsheet row: a shared in-time plus per-schedule out-times."""

    name: Optional[str] = None
    in_time: Optional[HHMM] = None
    out_time: Optional[HHMM] = None
    out_time_sat: Optional[HHMM] = None
    out_time_month: Optional[HHMM] = None


class BulkScheduleRequest(BaseModel):
    schedules: list[ScheduleRow] = Field(..., min_length=1)


class BulkScheduleStats(BaseModel):
    updated: int = 0
    failed: int = 0
    errors: list[str] = Field(default_factory=list)

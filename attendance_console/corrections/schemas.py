"""Correction request Pydantic v2 schemas."""

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from attendance_console.common.constants import PresenceType, RequestAction, RequestStatus
from attendance_console.employees.schemas import HHMM


def _check_time_range(start: Optional[str], end: Optional[str]) -> None:
    if bool(start) != bool(end):
        raise ValueError("start_time and end_time must be given together")
    if start and end and end <= start:
        raise ValueError("end_time must be after start_time")


class CorrectionCreate(BaseModel):
    employee_id: uuid.UUID
    date: date
    requested_status: PresenceType
    reason: str = Field(..., min_length=1)
    start_time: Optional[HHMM] = None
    end_time: Optional[HHMM] = None

    @model_validator(mode="after")
    def _times(self):
        _check_time_range(self.start_time, self.end_time)
        return self


class FutureLeaveCreate(BaseModel):
    """A request per day in ``[start_date, end_date]``, Sundays skipped."""

    employee_id: uuid.UUID
    start_date: date
    end_date: date
    requested_status: PresenceType = PresenceType.leave
    reason: str = Field(..., min_length=1)
    start_time: Optional[HHMM] = None
    end_time: Optional[HHMM] = None

    @model_validator(mode="after")
    def _range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if (self.end_date - self.start_date).days > 366:
            raise ValueError("date range is limited to one year")
        _check_time_range(self.start_time, self.end_time)
        return self


class CorrectionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    user_name: str
    partner_name: str
    date: date
    month_year: str
    requested_status: str
    original_status: str
    reason: str
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    status: RequestStatus
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_by: Optional[str] = None
    rejected_at: Optional[datetime] = None
    partner_remarks: Optional[str] = None
    hr_remarks: Optional[str] = None
    created_at: datetime


class CorrectionCreated(BaseModel):
    requests: list[CorrectionResponse]
    skipped_dates: list[date] = Field(default_factory=list)
    email_sent: bool


class ResolveRequest(BaseModel):
    request_id: uuid.UUID
    action: RequestAction
    remarks: Optional[str] = None


class BulkResolveRequest(BaseModel):
    ids: list[uuid.UUID] = Field(..., min_length=1)
    action: RequestAction
    remarks: Optional[str] = None


class BulkSkip(BaseModel):
    id: uuid.UUID
    reason: str


class BulkResolveResult(BaseModel):
    resolved: int = 0
    skipped: list[BulkSkip] = Field(default_factory=list)

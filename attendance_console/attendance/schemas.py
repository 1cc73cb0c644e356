"""Attendance Pydantic v2 schemas — months, daily records, imports, holidays, machine formats."""

import uuid
from datetime import date, datetime
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from attendance_console.common.constants import HolidayType, PresenceType
from attendance_console.employees.schemas import HHMM

MonthYear = Annotated[str, Field(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")]


# ═════════════════════════════════════════════════════════════════════
# Daily records / months
# ═════════════════════════════════════════════════════════════════════


class DailyRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    date: date
    checkin: Optional[str] = None
    checkout: Optional[str] = None
    total_hours: float
    excess_hours: float
    presence_type: PresenceType
    half_day: bool
    value: float
    remarks: Optional[str] = None


class MonthSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    month_year: str
    total_hours: float
    total_late_arrivals: int
    excess_hours: float
    total_half_days: int
    total_present: int
    total_absent: int
    total_leave: int
    total_value: float
    updated_at: Optional[datetime] = None


class MonthResponse(MonthSummaryResponse):
    records: list[DailyRecordResponse] = Field(default_factory=list)


class DayUpsertRequest(BaseModel):
    """Manual edit of one day. ``value`` / ``half_day`` are always derived."""

    employee_id: uuid.UUID
    date: date
    presence_type: PresenceType
    checkin: Optional[HHMM] = None
    checkout: Optional[HHMM] = None
    remarks: Optional[str] = None

    @model_validator(mode="after")
    def _times_in_order(self):
        if self.checkin and self.checkout and self.checkout <= self.checkin:
            raise ValueError("checkout must be after checkin")
        return self


# ── Absent records ──────────────────────────────────────────────────

class AbsentRecordsRequest(BaseModel):
    user_ids: list[uuid.UUID] = Field(..., min_length=1)
    month_year: MonthYear


class AbsentRecord(BaseModel):
    user_id: uuid.UUID
    user_name: str
    od_id: Optional[str] = None
    date: date
    month_year: str
    current_status: str = "Absent"


# ── Bulk status update ──────────────────────────────────────────────

class StatusUpdateItem(BaseModel):
    user_id: uuid.UUID
    month_year: MonthYear
    date: date


class StatusUpdateRequest(BaseModel):
    updates: list[StatusUpdateItem] = Field(..., min_length=1)
    new_status: PresenceType = PresenceType.leave


class StatusUpdateResult(BaseModel):
    updated: int = 0
    months: list[str] = Field(default_factory=list)


# ── Range export ────────────────────────────────────────────────────

class RangeExportRequest(BaseModel):
    user_ids: list[uuid.UUID] = Field(..., min_length=1)
    month_year: MonthYear


class RangeExportRow(BaseModel):
    employee_name: str
    employee_id: str
    team: str
    designation: str
    date: date
    day: str
    status: str
    in_time: str
    out_time: str
    total_hours: float
    presence_type: str
    late_arrival: bool
    half_day: bool
    remarks: str
    scheduled_hours: float
    excess_or_deficit_hours: float


# ═════════════════════════════════════════════════════════════════════
# Import
# ═════════════════════════════════════════════════════════════════════


class ImportRequest(BaseModel):
    """Rows keyed by the machine template's header names."""

    machine_id: str = Field(..., min_length=1, max_length=50)
    rows: list[dict[str, Any]] = Field(..., min_length=1)


class ImportRowError(BaseModel):
    row: int
    identifier: Optional[str] = None
    name: Optional[str] = None
    reason: str


class ImportReport(BaseModel):
    created: int = 0
    updated: int = 0
    failed: int = 0
    errors: list[ImportRowError] = Field(default_factory=list)
    months: list[str] = Field(default_factory=list)
    holidays_added: int = 0
    leave_credited: int = 0


# ═════════════════════════════════════════════════════════════════════
# Holidays
# ═════════════════════════════════════════════════════════════════════


class HolidayCreate(BaseModel):
    date: date
    name: str = Field(..., min_length=1, max_length=200)
    type: HolidayType = HolidayType.national
    description: Optional[str] = None
    is_active: bool = True


class HolidayUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    type: Optional[HolidayType] = None
    description: Optional[str] = None
    is_active: Optional[bool] = None


class HolidayResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    date: date
    name: str
    type: HolidayType
    year: int
    description: Optional[str] = None
    is_active: bool


# ═════════════════════════════════════════════════════════════════════
# Machine formats
# ═════════════════════════════════════════════════════════════════════


class MachineFormatCreate(BaseModel):
    machine_id: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = None
    headers: list[str] = Field(..., min_length=1)
    is_active: bool = True


class MachineFormatUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = None
    headers: Optional[list[str]] = Field(None, min_length=1)
    is_active: Optional[bool] = None


class MachineFormatResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    machine_id: str
    name: str
    description: Optional[str] = None
    headers: list[str]
    is_active: bool

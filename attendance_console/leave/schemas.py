"""Leave Pydantic v2 schemas — balances, accrual report."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IncrementMonthlyRequest(BaseModel):
    month_year: Optional[str] = Field(None, pattern=r"^\d{4}-(0[1-9]|1[0-2])$")


class AccrualError(BaseModel):
    employee_id: uuid.UUID
    name: str
    reason: str


class AccrualReport(BaseModel):
    month_year: str
    credited: int = 0
    skipped: int = 0
    errors: list[AccrualError] = Field(default_factory=list)


class LeaveBalanceOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    email: str
    od_id: Optional[str] = None
    leave_earned: float
    leave_used: float
    leave_remaining: float
    monthly_leave_rate: float
    leave_last_updated: Optional[datetime] = None

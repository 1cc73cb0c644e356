"""Enums and constants for the attendance console."""

from __future__ import annotations

import enum


# ── Auth / Roles ────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    hr = "hr"


# ── Attendance ──────────────────────────────────────────────────────

class PresenceType(str, enum.Enum):
    """How a day was recorded. Values are stored verbatim."""

    thumb_machine = "ThumbMachine"
    manual = "Manual"
    remote = "Remote"
    leave = "Leave"
    holiday = "Holiday"
    absent = "Absent"
    present = "Present"
    present_office = "Present - in office"
    present_client = "Present - client place"
    present_outstation = "Present - outstation"
    present_weekoff = "Present - weekoff"
    half_day_weekdays = "Half Day - weekdays"
    half_day_weekoff = "Half Day - weekoff"
    wfh_weekdays = "WFH - weekdays"
    wfh_weekoff = "WFH - weekoff"
    weekoff_special_allowance = "Weekoff - special allowance"
    ohd = "OHD"
    official_holiday_duty = "Official Holiday Duty (OHD)"
    weekly_off_present = "Weekly Off - Present (WO-Present)"
    half_day_hd = "Half Day (HD)"
    work_from_home = "Work From Home (WFH)"
    weekly_off_wfh = "Weekly Off - Work From Home (WO-WFH)"
    onsite_presence = "Onsite Presence (OS-P)"
    week_off = "Week Off"


HALF_DAY_TYPES = frozenset({
    PresenceType.half_day_weekdays,
    PresenceType.half_day_weekoff,
    PresenceType.half_day_hd,
})

OFF_DAY_TYPES = frozenset({PresenceType.holiday, PresenceType.week_off})


class DayCategory(str, enum.Enum):
    present = "present"
    absent = "absent"
    leave = "leave"
    off = "off"


class HolidayType(str, enum.Enum):
    national = "national"
    regional = "regional"
    company = "company"
    optional = "optional"


# ── Corrections ─────────────────────────────────────────────────────

class RequestStatus(str, enum.Enum):
    pending = "Pending"
    approved = "Approved"
    rejected = "Rejected"


class RequestAction(str, enum.Enum):
    approve = "approve"
    reject = "reject"


# ── Leave ───────────────────────────────────────────────────────────

class LeaveTransactionKind(str, enum.Enum):
    accrual = "accrual"
    usage = "usage"


# ── Employee history ────────────────────────────────────────────────

class HistoryField(str, enum.Enum):
    working_under_partner = "working_under_partner"
    designation = "designation"
    paid_from = "paid_from"
    category = "category"
    qualification_level = "qualification_level"
    registered_under_partner = "registered_under_partner"


# ── Formats ─────────────────────────────────────────────────────────

MONTH_YEAR_FORMAT = "%Y-%m"
DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"
HALF_DAY_CHECKIN = "13:00"
HALF_DAY_MAX_HOURS = 6.0
ARTICLESHIP_DESIGNATION = "article"
NOT_RECORDED = "Not Recorded"
SYSTEM_ACTOR = "System"

DEFAULT_MACHINE_FORMATS: list[dict] = [
    {
        "machine_id": "machine1",
        "name": "BioMax",
        "description": "BioMax export; In/Out may carry the full timestamp",
        "headers": ["EMP Code", "Emp Name", "In Time", "Out Time", "Date"],
    },
    {
        "machine_id": "machine2",
        "name": "Generic",
        "description": "Generic punch export",
        "headers": ["ID", "Name", "Date", "In", "Out"],
    },
]

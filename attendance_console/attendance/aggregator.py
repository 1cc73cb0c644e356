"""Attendance aggregation — pure per-day derivations and the monthly summary.

Nothing here touches the database. Records are any objects exposing
``presence_type``, ``checkin``, ``total_hours``, ``excess_hours``,
``half_day``, ``value`` and ``date`` (ORM ``DailyRecord`` rows or plain
dataclasses in tests).

Rules:
  - One absence predicate (``is_absent``): ``Absent``, or ``ThumbMachine``
    with zero / missing hours. The summary, the absent-record report and
    the day value all go through it.
  - Late: checkin after the scheduled in-time (Dec/Jan monthly schedule,
    Saturday schedule, else regular; "09:00" when unset).
  - Half day: checkin at or after 13:00; non-articleship staff must also
    have worked under 6 hours.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Iterable, Optional

from attendance_console.common.constants import (
    ARTICLESHIP_DESIGNATION,
    HALF_DAY_CHECKIN,
    HALF_DAY_MAX_HOURS,
    HALF_DAY_TYPES,
    OFF_DAY_TYPES,
    DayCategory,
    PresenceType,
)
from attendance_console.config import settings

_EXCEL_EPOCH = date(1899, 12, 30)
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2})(?:\.\d+)?)?\s*([AaPp][Mm])?$")
_DATE_FORMATS = ("%d-%m-%Y", "%d/%m/%Y", "%Y-%m-%d", "%Y/%m/%d", "%d.%m.%Y")
_DATE_PREFIX_RE = re.compile(r"^\d{1,4}[-/.]\d{1,2}[-/.]\d{1,4}[ T]")


# ── Profile / summary types ─────────────────────────────────────────

@dataclass(frozen=True)
class WorkProfile:
    """The slice of an employee the aggregation rules depend on."""

    designation: Optional[str] = None
    schedule_in: Optional[str] = None
    schedule_out: Optional[str] = None
    schedule_sat_in: Optional[str] = None
    schedule_sat_out: Optional[str] = None
    schedule_month_in: Optional[str] = None
    schedule_month_out: Optional[str] = None

    @classmethod
    def from_employee(cls, employee: Any) -> "WorkProfile":
        return cls(
            designation=employee.designation,
            schedule_in=employee.schedule_in,
            schedule_out=employee.schedule_out,
            schedule_sat_in=employee.schedule_sat_in,
            schedule_sat_out=employee.schedule_sat_out,
            schedule_month_in=employee.schedule_month_in,
            schedule_month_out=employee.schedule_month_out,
        )

    @property
    def is_articleship(self) -> bool:
        return (self.designation or "").strip().lower() == ARTICLESHIP_DESIGNATION


@dataclass
class MonthlySummary:
    total_hours: float = 0.0
    total_late_arrivals: int = 0
    excess_hours: float = 0.0
    total_half_days: int = 0
    total_present: int = 0
    total_absent: int = 0
    total_leave: int = 0
    total_value: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


# ═════════════════════════════════════════════════════════════════════
# Normalization
# ═════════════════════════════════════════════════════════════════════


def _is_blank(raw: Any) -> bool:
    if raw is None:
        return True
    if isinstance(raw, float) and raw != raw:  # NaN from pandas
        return True
    return isinstance(raw, str) and not raw.strip()


def normalize_time(raw: Any) -> Optional[str]:
    """Return ``"HH:MM"`` for a time-ish value, ``None`` when blank.

    Accepts "HH:MM", "HH:MM:SS", "h:mm AM", datetime strings such as
    "01-12-2025 10:56:00" or "2025-12-01T10:56", and time/datetime objects.
    """
    if _is_blank(raw):
        return None
    if isinstance(raw, datetime):
        return raw.strftime("%H:%M")
    if isinstance(raw, time):
        return raw.strftime("%H:%M")
    if isinstance(raw, timedelta):
        minutes = int(raw.total_seconds() // 60)
        return f"{minutes // 60:02d}:{minutes % 60:02d}"

    text = str(raw).strip()
    # Datetime string: keep the time part
    date_prefix = _DATE_PREFIX_RE.match(text)
    if date_prefix is not None:
        text = text[date_prefix.end():].strip()

    match = _TIME_RE.match(text)
    if match is None:
        raise ValueError(f"Unrecognized time '{raw}'")
    hours, minutes = int(match.group(1)), int(match.group(2))
    meridiem = (match.group(4) or "").lower()
    if meridiem == "pm" and hours < 12:
        hours += 12
    elif meridiem == "am" and hours == 12:
        hours = 0
    if hours > 23 or minutes > 59:
        raise ValueError(f"Time out of range '{raw}'")
    return f"{hours:02d}:{minutes:02d}"


def normalize_date(raw: Any) -> date:
    """Parse DD-MM-YYYY, YYYY-MM-DD (time part ignored), date objects, Excel serials."""
    if _is_blank(raw):
        raise ValueError("Missing date")
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        return _EXCEL_EPOCH + timedelta(days=int(raw))

    text = str(raw).strip()
    text = re.split(r"[ T]", text, maxsplit=1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognized date '{raw}'")


def month_year_of(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def parse_month_year(month_year: str) -> tuple[int, int]:
    match = re.fullmatch(r"(\d{4})-(\d{2})", month_year or "")
    if match is None or not 1 <= int(match.group(2)) <= 12:
        raise ValueError(f"Invalid month '{month_year}', expected YYYY-MM")
    return int(match.group(1)), int(match.group(2))


def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)


# ═════════════════════════════════════════════════════════════════════
# Per-day rules
# ═════════════════════════════════════════════════════════════════════


def hours_between(checkin: Optional[str], checkout: Optional[str]) -> float:
    if not checkin or not checkout:
        return 0.0
    diff = _minutes(checkout) - _minutes(checkin)
    if diff <= 0:
        return 0.0
    return round(diff / 60, 2)


def excess_hours(total_hours: float) -> float:
    standard = settings.STANDARD_DAY_HOURS
    if total_hours > standard:
        return round(total_hours - standard, 2)
    return 0.0


def schedule_for(day: date, profile: WorkProfile) -> tuple[Optional[str], Optional[str]]:
    if day.month in (12, 1):
        return profile.schedule_month_in, profile.schedule_month_out
    if day.weekday() == 5:
        return profile.schedule_sat_in, profile.schedule_sat_out
    return profile.schedule_in, profile.schedule_out


def scheduled_in_time(day: date, profile: WorkProfile) -> str:
    in_time, _ = schedule_for(day, profile)
    return in_time or settings.DEFAULT_SCHEDULE_IN


def scheduled_hours(day: date, profile: WorkProfile) -> float:
    """Expected hours for the day: 0 on Sundays, the schedule span, else the standard day."""
    if day.weekday() == 6:
        return 0.0
    in_time, out_time = schedule_for(day, profile)
    if not in_time or not out_time:
        return settings.STANDARD_DAY_HOURS
    return hours_between(in_time, out_time)


def is_absent(presence_type: PresenceType, total_hours: Optional[float]) -> bool:
    if presence_type == PresenceType.absent:
        return True
    return presence_type == PresenceType.thumb_machine and not total_hours


def day_category(presence_type: PresenceType, total_hours: Optional[float]) -> DayCategory:
    if is_absent(presence_type, total_hours):
        return DayCategory.absent
    if presence_type == PresenceType.leave:
        return DayCategory.leave
    if presence_type in OFF_DAY_TYPES:
        return DayCategory.off
    return DayCategory.present


def attendance_value(presence_type: PresenceType, total_hours: Optional[float]) -> float:
    category = day_category(presence_type, total_hours)
    if category in (DayCategory.absent, DayCategory.off):
        return 0.0
    if presence_type in HALF_DAY_TYPES:
        return 0.75
    if presence_type == PresenceType.weekoff_special_allowance:
        return 1.2
    return 1.0


def is_half_day(checkin: Optional[str], total_hours: float, profile: WorkProfile) -> bool:
    if not checkin or checkin < HALF_DAY_CHECKIN:
        return False
    if profile.is_articleship:
        return True
    return (total_hours or 0.0) < HALF_DAY_MAX_HOURS


def is_late(record: Any, profile: WorkProfile) -> bool:
    if day_category(record.presence_type, record.total_hours) != DayCategory.present:
        return False
    if not record.checkin:
        return False
    return record.checkin > scheduled_in_time(record.date, profile)


def derive_record(record: Any, profile: WorkProfile) -> Any:
    """Set the derived ``half_day``, ``value`` and ``excess_hours`` fields in place."""
    presence = PresenceType(record.presence_type)
    record.half_day = presence in HALF_DAY_TYPES or is_half_day(
        record.checkin, record.total_hours or 0.0, profile
    )
    record.value = attendance_value(presence, record.total_hours)
    if day_category(presence, record.total_hours) == DayCategory.present:
        record.excess_hours = excess_hours(record.total_hours or 0.0)
    else:
        record.excess_hours = 0.0
    return record


# ═════════════════════════════════════════════════════════════════════
# Monthly summary
# ═════════════════════════════════════════════════════════════════════


def summarize(records: Iterable[Any], profile: WorkProfile) -> MonthlySummary:
    """Reduce a month of records to its summary. Pure and idempotent."""

    summary = MonthlySummary()
    hours = excess = value = 0.0

    for record in records:
        hours += record.total_hours or 0.0
        excess += record.excess_hours or 0.0
        value += record.value or 0.0

        if record.half_day:
            summary.total_half_days += 1
        if is_late(record, profile):
            summary.total_late_arrivals += 1

        category = day_category(record.presence_type, record.total_hours)
        if category == DayCategory.present:
            summary.total_present += 1
        elif category == DayCategory.absent:
            summary.total_absent += 1
        elif category == DayCategory.leave:
            summary.total_leave += 1

    summary.total_hours = round(hours, 2)
    summary.excess_hours = round(excess, 2)
    summary.total_value = round(value, 2)
    return summary


def absent_days(records: Iterable[Any]) -> list[Any]:
    """Records the absence predicate flags, in date order."""
    return sorted(
        (r for r in records if is_absent(r.presence_type, r.total_hours)),
        key=lambda r: r.date,
    )

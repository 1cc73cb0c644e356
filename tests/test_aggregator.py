"""Aggregator test suite — normalization, per-day rules and the monthly summary.

Pure functions only; no database access.
"""

from __future__ import annotations

from datetime import date, time
from types import SimpleNamespace

import pytest

from attendance_console.attendance.aggregator import (
    WorkProfile,
    absent_days,
    attendance_value,
    derive_record,
    hours_between,
    is_absent,
    is_half_day,
    is_late,
    month_year_of,
    normalize_date,
    normalize_time,
    parse_month_year,
    scheduled_hours,
    summarize,
)
from attendance_console.common.constants import PresenceType


def _record(day: date, presence: PresenceType, checkin=None, checkout=None, profile=None):
    record = SimpleNamespace(
        date=day,
        presence_type=presence,
        checkin=checkin,
        checkout=checkout,
        total_hours=hours_between(checkin, checkout),
        excess_hours=0.0,
        half_day=False,
        value=0.0,
        remarks=None,
    )
    return derive_record(record, profile or WorkProfile())


# ═════════════════════════════════════════════════════════════════════
# Normalization
# ═════════════════════════════════════════════════════════════════════


class TestNormalizeTime:

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("9:05", "09:05"),
            ("09:05:59", "09:05"),
            ("2:30 PM", "14:30"),
            ("12:10 am", "00:10"),
            ("01-12-2025 10:56:00", "10:56"),
            ("2025-12-01T18:02", "18:02"),
            (time(8, 0), "08:00"),
        ],
    )
    def test_accepted_formats(self, raw, expected):
        assert normalize_time(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", float("nan")])
    def test_blank_is_none(self, raw):
        assert normalize_time(raw) is None

    @pytest.mark.parametrize("raw", ["25:00", "late", "9h30"])
    def test_rejects_garbage(self, raw):
        with pytest.raises(ValueError):
            normalize_time(raw)


class TestNormalizeDate:

    @pytest.mark.parametrize(
        "raw",
        ["01-12-2025", "01/12/2025", "2025-12-01", "2025-12-01 00:00:00", 45992],
    )
    def test_accepted_formats(self, raw):
        assert normalize_date(raw) == date(2025, 12, 1)

    def test_missing_date_raises(self):
        with pytest.raises(ValueError, match="Missing date"):
            normalize_date(None)

    def test_unknown_format_raises(self):
        with pytest.raises(ValueError):
            normalize_date("December first")


def test_month_year_helpers():
    assert month_year_of(date(2025, 3, 9)) == "2025-03"
    assert parse_month_year("2025-11") == (2025, 11)
    with pytest.raises(ValueError):
        parse_month_year("2025-13")


# ═════════════════════════════════════════════════════════════════════
# Per-day rules
# ═════════════════════════════════════════════════════════════════════


def test_hours_between():
    assert hours_between("09:00", "18:30") == 9.5
    assert hours_between("18:00", "09:00") == 0.0
    assert hours_between(None, "18:00") == 0.0


class TestAbsence:

    def test_thumb_machine_without_hours_is_absent(self):
        assert is_absent(PresenceType.thumb_machine, 0.0)
        assert is_absent(PresenceType.thumb_machine, None)

    def test_thumb_machine_with_hours_is_not_absent(self):
        assert not is_absent(PresenceType.thumb_machine, 7.5)

    def test_explicit_absent(self):
        assert is_absent(PresenceType.absent, 8.0)

    def test_zero_hour_rule_only_applies_to_machine_days(self):
        assert not is_absent(PresenceType.manual, 0.0)
        assert not is_absent(PresenceType.remote, None)


class TestAttendanceValue:

    @pytest.mark.parametrize(
        "presence, hours, expected",
        [
            (PresenceType.thumb_machine, 9.0, 1.0),
            (PresenceType.thumb_machine, 0.0, 0.0),
            (PresenceType.absent, 0.0, 0.0),
            (PresenceType.holiday, 0.0, 0.0),
            (PresenceType.week_off, 0.0, 0.0),
            (PresenceType.leave, 0.0, 1.0),
            (PresenceType.half_day_weekdays, 4.0, 0.75),
            (PresenceType.half_day_hd, 4.0, 0.75),
            (PresenceType.weekoff_special_allowance, 8.0, 1.2),
            (PresenceType.wfh_weekdays, 8.0, 1.0),
        ],
    )
    def test_values(self, presence, hours, expected):
        assert attendance_value(presence, hours) == expected


class TestHalfDay:

    def test_late_short_day_is_half_day(self):
        assert is_half_day("13:30", 4.0, WorkProfile())

    def test_late_long_day_is_not_half_day_for_staff(self):
        assert not is_half_day("13:30", 7.0, WorkProfile(designation="Associate"))

    def test_articleship_ignores_hours(self):
        assert is_half_day("13:30", 7.0, WorkProfile(designation="Article"))

    def test_morning_checkin_is_never_half_day(self):
        assert not is_half_day("12:59", 2.0, WorkProfile())
        assert not is_half_day(None, 0.0, WorkProfile())

    def test_half_day_presence_type_sets_flag(self):
        record = _record(date(2025, 11, 3), PresenceType.half_day_weekdays, "09:00", "13:00")
        assert record.half_day is True
        assert record.value == 0.75


class TestLate:

    def test_regular_schedule(self):
        profile = WorkProfile(schedule_in="09:00")
        # 2025-11-03 is a Monday
        assert is_late(_record(date(2025, 11, 3), PresenceType.thumb_machine, "09:15", "18:00"), profile)
        assert not is_late(_record(date(2025, 11, 3), PresenceType.thumb_machine, "09:00", "18:00"), profile)

    def test_saturday_schedule(self):
        profile = WorkProfile(schedule_in="09:00", schedule_sat_in="10:00")
        saturday = date(2025, 11, 8)
        assert not is_late(_record(saturday, PresenceType.thumb_machine, "09:45", "14:00"), profile)

    def test_december_uses_monthly_schedule(self):
        profile = WorkProfile(schedule_in="09:00", schedule_month_in="10:00")
        assert not is_late(_record(date(2025, 12, 1), PresenceType.thumb_machine, "09:30", "18:00"), profile)

    def test_unset_schedule_defaults_to_nine(self):
        assert is_late(_record(date(2025, 11, 4), PresenceType.manual, "09:01", "18:00"), WorkProfile())

    def test_leave_is_never_late(self):
        assert not is_late(_record(date(2025, 11, 4), PresenceType.leave, "11:00", "18:00"), WorkProfile())


def test_scheduled_hours():
    profile = WorkProfile(schedule_in="09:30", schedule_out="18:00")
    assert scheduled_hours(date(2025, 11, 3), profile) == 8.5
    assert scheduled_hours(date(2025, 11, 2), profile) == 0.0  # Sunday
    assert scheduled_hours(date(2025, 11, 3), WorkProfile()) == 9.0


def test_excess_hours_only_on_present_days():
    present = _record(date(2025, 11, 3), PresenceType.thumb_machine, "08:00", "19:30")
    assert present.excess_hours == 2.5
    leave = _record(date(2025, 11, 4), PresenceType.leave, "08:00", "19:30")
    assert leave.excess_hours == 0.0


# ═════════════════════════════════════════════════════════════════════
# Monthly summary
# ═════════════════════════════════════════════════════════════════════


def _november_records():
    return [
        _record(date(2025, 11, 3), PresenceType.thumb_machine, "09:15", "18:45"),
        _record(date(2025, 11, 4), PresenceType.thumb_machine),
        _record(date(2025, 11, 5), PresenceType.leave),
        _record(date(2025, 11, 6), PresenceType.holiday),
        _record(date(2025, 11, 7), PresenceType.thumb_machine, "13:30", "17:30"),
    ]


def test_summarize_month():
    summary = summarize(_november_records(), WorkProfile())

    assert summary.total_hours == 13.5
    assert summary.total_present == 2
    assert summary.total_absent == 1
    assert summary.total_leave == 1
    assert summary.total_half_days == 1
    assert summary.total_late_arrivals == 2
    assert summary.excess_hours == 0.5
    assert summary.total_value == 3.0


def test_summarize_is_idempotent():
    records = _november_records()
    first = summarize(records, WorkProfile())
    second = summarize(records, WorkProfile())
    assert first == second


def test_absent_days_sorted_by_date():
    records = [
        _record(date(2025, 11, 20), PresenceType.absent),
        _record(date(2025, 11, 3), PresenceType.thumb_machine),
        _record(date(2025, 11, 4), PresenceType.manual),
    ]
    assert [r.date for r in absent_days(records)] == [date(2025, 11, 3), date(2025, 11, 20)]

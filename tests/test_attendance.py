"""Attendance test suite — manual day edits, leave sync, absent report,
bulk status update, range export, deletes and machine formats.
"""

from __future__ import annotations

import io

import pandas as pd

from attendance_console.employees.models import Employee
from tests.conftest import _seed_employee


async def _put_day(client, headers, employee_id, day, presence, checkin=None, checkout=None):
    body = {"employee_id": str(employee_id), "date": day, "presence_type": presence}
    if checkin:
        body.update(checkin=checkin, checkout=checkout)
    resp = await client.post("/api/v1/attendance/day", json=body, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


async def _employee(db, employee_id) -> Employee:
    return await db.get(Employee, employee_id, populate_existing=True)


# ═════════════════════════════════════════════════════════════════════
# Day edits
# ═════════════════════════════════════════════════════════════════════


async def test_day_upsert_aggregates_month(client, hr_headers, test_employee):
    month = await _put_day(
        client, hr_headers, test_employee.id, "2025-11-03", "ThumbMachine", "09:30", "19:00"
    )

    assert month["month_year"] == "2025-11"
    assert month["total_hours"] == 9.5
    assert month["excess_hours"] == 0.5
    assert month["total_late_arrivals"] == 1
    assert month["total_present"] == 1
    assert month["total_value"] == 1.0
    record = month["records"][0]
    assert record["checkin"] == "09:30"
    assert record["value"] == 1.0


async def test_day_upsert_rejects_reversed_times(client, hr_headers, test_employee):
    resp = await client.post(
        "/api/v1/attendance/day",
        json={
            "employee_id": str(test_employee.id),
            "date": "2025-11-03",
            "presence_type": "Manual",
            "checkin": "18:00",
            "checkout": "09:00",
        },
        headers=hr_headers,
    )
    assert resp.status_code == 422


async def test_leave_day_follows_ledger(client, db, hr_headers, test_employee):
    await _put_day(client, hr_headers, test_employee.id, "2025-11-04", "Leave")
    assert (await _employee(db, test_employee.id)).leave_used == 1.0

    # Same day again: counted once
    await _put_day(client, hr_headers, test_employee.id, "2025-11-04", "Leave")
    assert (await _employee(db, test_employee.id)).leave_used == 1.0

    month = await _put_day(
        client, hr_headers, test_employee.id, "2025-11-04", "Present", "09:00", "18:00"
    )
    employee = await _employee(db, test_employee.id)
    assert employee.leave_used == 0.0
    assert employee.leave_remaining == employee.leave_earned - employee.leave_used
    assert month["total_leave"] == 0
    assert month["total_present"] == 1


async def test_delete_day_releases_leave(client, db, hr_headers, test_employee):
    month = await _put_day(client, hr_headers, test_employee.id, "2025-11-04", "Leave")
    await _put_day(client, hr_headers, test_employee.id, "2025-11-05", "Present", "09:00", "18:00")

    resp = await client.delete(
        f"/api/v1/attendance/{month['id']}/days/2025-11-04", headers=hr_headers
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert [r["date"] for r in data["records"]] == ["2025-11-05"]
    assert data["total_leave"] == 0
    assert (await _employee(db, test_employee.id)).leave_used == 0.0

    missing = await client.delete(
        f"/api/v1/attendance/{month['id']}/days/2025-11-04", headers=hr_headers
    )
    assert missing.status_code == 404


async def test_delete_month(client, db, hr_headers, test_employee):
    month = await _put_day(client, hr_headers, test_employee.id, "2025-11-04", "Leave")

    resp = await client.delete(f"/api/v1/attendance/{month['id']}", headers=hr_headers)
    assert resp.status_code == 200
    assert (await _employee(db, test_employee.id)).leave_used == 0.0

    gone = await client.get(f"/api/v1/attendance/{month['id']}", headers=hr_headers)
    assert gone.status_code == 404


async def test_employee_reads_only_own_months(client, db, hr_headers, employee_headers, test_employee, partner):
    own = await _put_day(client, hr_headers, test_employee.id, "2025-11-03", "Present", "09:00", "18:00")
    other = await _put_day(client, hr_headers, partner.id, "2025-11-03", "Present", "09:00", "18:00")

    assert (await client.get(f"/api/v1/attendance/{own['id']}", headers=employee_headers)).status_code == 200
    assert (await client.get(f"/api/v1/attendance/{other['id']}", headers=employee_headers)).status_code == 403

    listing = await client.get(
        "/api/v1/attendance", params={"employee_id": str(partner.id)}, headers=employee_headers
    )
    assert [m["id"] for m in listing.json()["data"]] == [own["id"]]


async def test_day_upsert_requires_hr(client, employee_headers, test_employee):
    resp = await client.post(
        "/api/v1/attendance/day",
        json={"employee_id": str(test_employee.id), "date": "2025-11-03", "presence_type": "Leave"},
        headers=employee_headers,
    )
    assert resp.status_code == 403


# ═════════════════════════════════════════════════════════════════════
# Absent report / bulk status
# ═════════════════════════════════════════════════════════════════════


async def test_absent_records_and_bulk_leave(client, db, hr_headers, test_employee):
    await _put_day(client, hr_headers, test_employee.id, "2025-11-03", "ThumbMachine", "09:00", "18:00")
    await _put_day(client, hr_headers, test_employee.id, "2025-11-05", "ThumbMachine")
    await _put_day(client, hr_headers, test_employee.id, "2025-11-06", "Absent")
    await _put_day(client, hr_headers, test_employee.id, "2025-11-07", "Manual")

    resp = await client.post(
        "/api/v1/attendance/absent-records",
        json={"user_ids": [str(test_employee.id)], "month_year": "2025-11"},
        headers=hr_headers,
    )
    assert resp.status_code == 200
    absent = resp.json()["data"]
    assert [a["date"] for a in absent] == ["2025-11-05", "2025-11-06"]
    assert absent[0]["user_name"] == "Test User"
    assert absent[0]["od_id"] == "OD-100"
    assert absent[0]["current_status"] == "Absent"

    update = await client.post(
        "/api/v1/attendance/update-status",
        json={
            "updates": [
                {"user_id": a["user_id"], "month_year": a["month_year"], "date": a["date"]}
                for a in absent
            ]
            # a day without a record is ignored
            + [{"user_id": str(test_employee.id), "month_year": "2025-11", "date": "2025-11-20"}],
        },
        headers=hr_headers,
    )
    assert update.status_code == 200
    assert update.json()["data"]["updated"] == 2

    again = await client.post(
        "/api/v1/attendance/absent-records",
        json={"user_ids": [str(test_employee.id)], "month_year": "2025-11"},
        headers=hr_headers,
    )
    assert again.json()["data"] == []
    assert (await _employee(db, test_employee.id)).leave_used == 2.0


async def test_absent_records_validates_month(client, hr_headers, test_employee):
    resp = await client.post(
        "/api/v1/attendance/absent-records",
        json={"user_ids": [str(test_employee.id)], "month_year": "2025-1"},
        headers=hr_headers,
    )
    assert resp.status_code == 422


# ═════════════════════════════════════════════════════════════════════
# Range export
# ═════════════════════════════════════════════════════════════════════


async def test_range_export_json(client, hr_headers, test_employee):
    await _put_day(client, hr_headers, test_employee.id, "2025-11-03", "ThumbMachine", "09:15", "18:45")
    await _put_day(client, hr_headers, test_employee.id, "2025-11-04", "Leave")

    resp = await client.post(
        "/api/v1/attendance/range-export",
        json={"user_ids": [str(test_employee.id)], "month_year": "2025-11"},
        headers=hr_headers,
    )
    assert resp.status_code == 200
    rows = resp.json()["data"]
    assert len(rows) == 30
    by_date = {row["date"]: row for row in rows}

    monday = by_date["2025-11-03"]
    assert monday["status"] == "Present"
    assert monday["day"] == "Monday"
    assert monday["late_arrival"] is True
    assert monday["total_hours"] == 9.5
    assert monday["scheduled_hours"] == 9.0
    assert monday["excess_or_deficit_hours"] == 0.5
    assert monday["employee_id"] == "OD-100"
    assert monday["team"] == "Priya Shah"

    assert by_date["2025-11-04"]["status"] == "Leave"
    assert by_date["2025-11-10"]["status"] == "Absent"
    assert by_date["2025-11-02"]["scheduled_hours"] == 0.0


async def test_range_export_xlsx(client, hr_headers, test_employee):
    await _put_day(client, hr_headers, test_employee.id, "2025-11-03", "ThumbMachine", "09:15", "18:45")

    resp = await client.post(
        "/api/v1/attendance/range-export",
        params={"format": "xlsx"},
        json={"user_ids": [str(test_employee.id)], "month_year": "2025-11"},
        headers=hr_headers,
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(
        "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    assert "attendance-2025-11.xlsx" in resp.headers["content-disposition"]

    frame = pd.read_excel(io.BytesIO(resp.content), engine="openpyxl")
    assert len(frame) == 30
    assert list(frame.columns)[:3] == ["Employee Name", "Employee ID", "Team"]
    assert frame.iloc[2]["Late Arrival"] == "Yes"
    assert frame.iloc[0]["Late Arrival"] == "No"


async def test_range_export_skips_employees_without_month(client, db, hr_headers, test_employee):
    idle = await _seed_employee(db, name="Idle Person")
    await db.commit()
    await _put_day(client, hr_headers, test_employee.id, "2025-11-03", "Present", "09:00", "18:00")

    resp = await client.post(
        "/api/v1/attendance/range-export",
        json={"user_ids": [str(test_employee.id), str(idle.id)], "month_year": "2025-11"},
        headers=hr_headers,
    )
    assert {row["employee_name"] for row in resp.json()["data"]} == {"Test User"}


# ═════════════════════════════════════════════════════════════════════
# Machine formats
# ═════════════════════════════════════════════════════════════════════


async def test_machine_format_crud(client, hr_headers):
    created = await client.post(
        "/api/v1/machine-formats",
        json={"machine_id": "machine9", "name": "Lobby", "headers": ["Code", "Date", "In", "Out"]},
        headers=hr_headers,
    )
    assert created.status_code == 201
    assert created.json()["data"]["headers"] == ["Code", "Date", "In", "Out"]

    duplicate = await client.post(
        "/api/v1/machine-formats",
        json={"machine_id": "machine9", "name": "Again", "headers": ["Code", "Date"]},
        headers=hr_headers,
    )
    assert duplicate.status_code == 400

    updated = await client.put(
        "/api/v1/machine-formats/machine9",
        json={"name": "Lobby Gate", "is_active": False},
        headers=hr_headers,
    )
    assert updated.status_code == 200
    assert updated.json()["data"]["name"] == "Lobby Gate"

    active = await client.get(
        "/api/v1/machine-formats", params={"active_only": True}, headers=hr_headers
    )
    assert active.json()["data"] == []

    deleted = await client.delete("/api/v1/machine-formats/machine9", headers=hr_headers)
    assert deleted.status_code == 200
    missing = await client.delete("/api/v1/machine-formats/machine9", headers=hr_headers)
    assert missing.status_code == 404


async def test_machine_format_without_date_column(client, hr_headers):
    resp = await client.post(
        "/api/v1/machine-formats",
        json={"machine_id": "machine9", "name": "Broken", "headers": ["Name", "In", "Out"]},
        headers=hr_headers,
    )
    assert resp.status_code == 400
    assert "no date column" in resp.json()["error"]


async def test_default_machine_formats_seeded_once(db):
    from attendance_console.attendance.service import MachineFormatService

    assert await MachineFormatService.ensure_default_formats(db) == 2
    assert await MachineFormatService.ensure_default_formats(db) == 0
    machine_ids = [f.machine_id for f in await MachineFormatService.list_formats(db)]
    assert machine_ids == ["machine1", "machine2"]

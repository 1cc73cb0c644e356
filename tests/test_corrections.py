"""Correction workflow test suite — requests, partner/HR review, emailed links,
bulk actions, future leave and the one-way state machine.
"""

from __future__ import annotations

import uuid
from datetime import date

from sqlalchemy import select

from attendance_console.common.constants import RequestStatus, UserRole
from attendance_console.corrections.models import CorrectionRequest
from attendance_console.employees.models import Employee
from attendance_console.notifications.service import MailDeliveryError
from tests.conftest import _auth_headers, _seed_employee


def _correction(employee_id, day="2025-11-04", status="Present", **extra) -> dict:
    body = {
        "employee_id": str(employee_id),
        "date": day,
        "requested_status": status,
        "reason": "Forgot to punch",
    }
    body.update(extra)
    return body


async def _submit(client, headers, employee_id, **kwargs) -> dict:
    resp = await client.post(
        "/api/v1/employee/request-correction",
        json=_correction(employee_id, **kwargs),
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["requests"][0]


async def _load(db, request_id) -> CorrectionRequest:
    result = await db.execute(
        select(CorrectionRequest)
        .where(CorrectionRequest.id == uuid.UUID(request_id))
        .execution_options(populate_existing=True)
    )
    return result.scalars().one()


# ═════════════════════════════════════════════════════════════════════
# Create
# ═════════════════════════════════════════════════════════════════════


async def test_create_request_notifies_partner(client, employee_headers, test_employee, mock_mail):
    resp = await client.post(
        "/api/v1/employee/request-correction",
        json=_correction(test_employee.id, start_time="09:00", end_time="18:00"),
        headers=employee_headers,
    )

    assert resp.status_code == 201
    data = resp.json()["data"]
    assert data["email_sent"] is True
    req = data["requests"][0]
    assert req["status"] == "Pending"
    assert req["partner_name"] == "Priya Shah"
    assert req["original_status"] == "Not Recorded"
    assert req["month_year"] == "2025-11"
    assert mock_mail.await_count == 1
    assert mock_mail.await_args.args[0] == "priya.shah@example.com"


async def test_create_request_reports_mail_failure(client, employee_headers, test_employee, mock_mail):
    mock_mail.side_effect = MailDeliveryError("smtp down")

    resp = await client.post(
        "/api/v1/employee/request-correction",
        json=_correction(test_employee.id),
        headers=employee_headers,
    )

    assert resp.status_code == 201
    assert resp.json()["data"]["email_sent"] is False


async def test_duplicate_open_request_rejected(client, employee_headers, test_employee, mock_mail):
    await _submit(client, employee_headers, test_employee.id)

    resp = await client.post(
        "/api/v1/employee/request-correction",
        json=_correction(test_employee.id, status="Leave"),
        headers=employee_headers,
    )
    assert resp.status_code == 400
    assert "already exists" in resp.json()["error"]


async def test_resubmit_after_rejection(client, hr_headers, employee_headers, test_employee, mock_mail):
    first = await _submit(client, employee_headers, test_employee.id)
    await client.post(
        "/api/v1/employee/approve",
        json={"request_id": first["id"], "action": "reject"},
        headers=hr_headers,
    )

    second = await _submit(client, employee_headers, test_employee.id, status="Leave")
    assert second["id"] != first["id"]


async def test_cannot_request_for_someone_else(client, db, employee_headers, partner, mock_mail):
    resp = await client.post(
        "/api/v1/employee/request-correction",
        json=_correction(partner.id),
        headers=employee_headers,
    )
    assert resp.status_code == 403


async def test_request_without_partner(client, db, mock_mail):
    loner = await _seed_employee(db, name="Lone Wolf")
    headers = await _auth_headers(db, UserRole.employee, loner.id)

    resp = await client.post(
        "/api/v1/employee/request-correction",
        json=_correction(loner.id),
        headers=headers,
    )
    assert resp.status_code == 400


async def test_partner_matched_by_dotted_name(client, db, mock_mail):
    await _seed_employee(db, name="ravi.kumar", email="ravi@example.com")
    staff = await _seed_employee(db, name="Staff One", working_under_partner="Ravi Kumar")
    headers = await _auth_headers(db, UserRole.employee, staff.id)

    req = await _submit(client, headers, staff.id)
    assert req["partner_name"] == "Ravi Kumar"
    assert mock_mail.await_args.args[0] == "ravi@example.com"


async def test_invalid_time_range(client, employee_headers, test_employee):
    resp = await client.post(
        "/api/v1/employee/request-correction",
        json=_correction(test_employee.id, start_time="18:00", end_time="09:00"),
        headers=employee_headers,
    )
    assert resp.status_code == 422


# ═════════════════════════════════════════════════════════════════════
# Resolve
# ═════════════════════════════════════════════════════════════════════


async def test_hr_approve_rewrites_day(client, db, hr_headers, employee_headers, test_employee, mock_mail):
    req = await _submit(
        client, employee_headers, test_employee.id, start_time="09:00", end_time="18:00"
    )

    resp = await client.post(
        "/api/v1/employee/approve",
        json={"request_id": req["id"], "action": "approve", "remarks": "ok"},
        headers=hr_headers,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "Approved"
    assert data["approved_by"] == "HR"
    assert data["hr_remarks"] == "ok"

    months = await client.get(
        "/api/v1/attendance",
        params={"employee_id": str(test_employee.id), "month_year": "2025-11"},
        headers=hr_headers,
    )
    month_id = months.json()["data"][0]["id"]
    month = (await client.get(f"/api/v1/attendance/{month_id}", headers=hr_headers)).json()["data"]
    record = month["records"][0]
    assert record["date"] == "2025-11-04"
    assert record["presence_type"] == "Present"
    assert record["total_hours"] == 9.0
    assert month["total_present"] == 1

    # Employee is told about the decision
    assert mock_mail.await_args.args[0] == "test.user@example.com"


async def test_resolved_request_is_terminal(client, db, hr_headers, employee_headers, test_employee, mock_mail):
    req = await _submit(client, employee_headers, test_employee.id, status="Leave")
    await client.post(
        "/api/v1/employee/approve",
        json={"request_id": req["id"], "action": "approve"},
        headers=hr_headers,
    )

    again = await client.post(
        "/api/v1/employee/approve",
        json={"request_id": req["id"], "action": "reject"},
        headers=hr_headers,
    )
    assert again.status_code == 409
    assert again.json()["error"] == "Request already resolved"

    stored = await _load(db, req["id"])
    assert stored.status == RequestStatus.approved
    assert stored.rejected_by is None

    employee = await db.get(Employee, test_employee.id, populate_existing=True)
    assert employee.leave_used == 1.0


async def test_partner_can_review_routed_request(client, employee_headers, partner_headers, test_employee, mock_mail):
    req = await _submit(client, employee_headers, test_employee.id)

    pending = await client.get("/api/v1/partner/pending-requests", headers=partner_headers)
    assert [r["id"] for r in pending.json()["data"]] == [req["id"]]

    resp = await client.post(
        "/api/v1/employee/approve",
        json={"request_id": req["id"], "action": "reject", "remarks": "Not verified"},
        headers=partner_headers,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["status"] == "Rejected"
    assert data["rejected_by"] == "Priya Shah"
    assert data["partner_remarks"] == "Not verified"


async def test_other_employee_cannot_review(client, db, employee_headers, test_employee, mock_mail):
    req = await _submit(client, employee_headers, test_employee.id)

    resp = await client.post(
        "/api/v1/employee/approve",
        json={"request_id": req["id"], "action": "approve"},
        headers=employee_headers,
    )
    assert resp.status_code == 403


async def test_approve_unknown_request(client, hr_headers):
    resp = await client.post(
        "/api/v1/employee/approve",
        json={"request_id": str(uuid.uuid4()), "action": "approve"},
        headers=hr_headers,
    )
    assert resp.status_code == 404


# ═════════════════════════════════════════════════════════════════════
# Emailed action link
# ═════════════════════════════════════════════════════════════════════


async def test_action_link_flow(client, db, employee_headers, test_employee, mock_mail):
    req = await _submit(client, employee_headers, test_employee.id)
    token = (await _load(db, req["id"])).action_token
    assert token

    resp = await client.get(
        "/api/v1/attendance/request-action",
        params={"id": req["id"], "action": "reject", "token": token},
    )
    assert resp.status_code == 200
    assert "rejected" in resp.text

    stored = await _load(db, req["id"])
    assert stored.status == RequestStatus.rejected
    assert stored.rejected_by == "Priya Shah"
    assert stored.action_token is None

    replay = await client.get(
        "/api/v1/attendance/request-action",
        params={"id": req["id"], "action": "approve", "token": token},
    )
    assert replay.status_code == 409
    assert "Request already resolved" in replay.text


async def test_action_link_wrong_token(client, db, employee_headers, test_employee, mock_mail):
    req = await _submit(client, employee_headers, test_employee.id)

    resp = await client.get(
        "/api/v1/attendance/request-action",
        params={"id": req["id"], "action": "approve", "token": "forged"},
    )
    assert resp.status_code == 403

    stored = await _load(db, req["id"])
    assert stored.status == RequestStatus.pending


# ═════════════════════════════════════════════════════════════════════
# Bulk / listing / future leave
# ═════════════════════════════════════════════════════════════════════


async def test_bulk_action(client, hr_headers, employee_headers, test_employee, mock_mail):
    first = await _submit(client, employee_headers, test_employee.id, day="2025-11-04")
    second = await _submit(client, employee_headers, test_employee.id, day="2025-11-05")
    missing = str(uuid.uuid4())

    resp = await client.post(
        "/api/v1/partner/bulk-action",
        json={"ids": [first["id"], second["id"], missing], "action": "approve"},
        headers=hr_headers,
    )
    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["resolved"] == 2
    assert data["skipped"] == [{"id": missing, "reason": "Not found"}]

    again = await client.post(
        "/api/v1/partner/bulk-action",
        json={"ids": [first["id"]], "action": "reject"},
        headers=hr_headers,
    )
    assert again.json()["data"]["resolved"] == 0
    assert again.json()["data"]["skipped"][0]["reason"] == "Request already resolved"

    listing = await client.get(
        "/api/v1/employee/request-correction",
        params={"status": "Approved"},
        headers=employee_headers,
    )
    approved = listing.json()["data"]
    assert len(approved) == 2
    assert {r["hr_remarks"] for r in approved} == {"Bulk approved"}


async def test_future_leave_skips_sundays(client, employee_headers, test_employee, mock_mail):
    resp = await client.post(
        "/api/v1/employee/request-future-leave",
        json={
            "employee_id": str(test_employee.id),
            # Saturday → Monday
            "start_date": "2025-11-01",
            "end_date": "2025-11-03",
            "reason": "Travel",
        },
        headers=employee_headers,
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert [r["date"] for r in data["requests"]] == ["2025-11-01", "2025-11-03"]
    assert {r["requested_status"] for r in data["requests"]} == {"Leave"}
    assert data["email_sent"] is True


async def test_future_leave_skips_open_requests(client, employee_headers, test_employee, mock_mail):
    await _submit(client, employee_headers, test_employee.id, day="2025-11-03")

    resp = await client.post(
        "/api/v1/employee/request-future-leave",
        json={
            "employee_id": str(test_employee.id),
            "start_date": "2025-11-03",
            "end_date": "2025-11-04",
            "reason": "Travel",
        },
        headers=employee_headers,
    )
    data = resp.json()["data"]
    assert [r["date"] for r in data["requests"]] == ["2025-11-04"]
    assert data["skipped_dates"] == ["2025-11-03"]


async def test_future_leave_skips_approved_days(client, hr_headers, employee_headers, test_employee, mock_mail):
    approved = await _submit(client, employee_headers, test_employee.id, day="2025-11-03")
    await client.post(
        "/api/v1/employee/approve",
        json={"request_id": approved["id"], "action": "approve"},
        headers=hr_headers,
    )

    resp = await client.post(
        "/api/v1/employee/request-future-leave",
        json={
            "employee_id": str(test_employee.id),
            "start_date": "2025-11-03",
            "end_date": "2025-11-04",
            "reason": "Travel",
        },
        headers=employee_headers,
    )
    assert resp.status_code == 201
    data = resp.json()["data"]
    assert [r["date"] for r in data["requests"]] == ["2025-11-04"]
    assert data["skipped_dates"] == ["2025-11-03"]

    listing = await client.get(
        "/api/v1/employee/request-correction",
        params={"month_year": "2025-11"},
        headers=employee_headers,
    )
    on_day = [r["status"] for r in listing.json()["data"] if r["date"] == "2025-11-03"]
    assert on_day == ["Approved"]


async def test_future_leave_replaces_rejected_request(client, hr_headers, employee_headers, test_employee, mock_mail):
    rejected = await _submit(client, employee_headers, test_employee.id, day="2025-11-04")
    await client.post(
        "/api/v1/employee/approve",
        json={"request_id": rejected["id"], "action": "reject"},
        headers=hr_headers,
    )

    resp = await client.post(
        "/api/v1/employee/request-future-leave",
        json={
            "employee_id": str(test_employee.id),
            "start_date": "2025-11-04",
            "end_date": "2025-11-04",
            "reason": "Travel",
        },
        headers=employee_headers,
    )
    assert resp.status_code == 201

    listing = await client.get("/api/v1/employee/request-correction", headers=employee_headers)
    assert [r["status"] for r in listing.json()["data"]] == ["Pending"]


async def test_future_leave_only_sunday(client, employee_headers, test_employee, mock_mail):
    resp = await client.post(
        "/api/v1/employee/request-future-leave",
        json={
            "employee_id": str(test_employee.id),
            "start_date": "2025-11-02",
            "end_date": "2025-11-02",
            "reason": "Rest",
        },
        headers=employee_headers,
    )
    assert resp.status_code == 400


async def test_employee_lists_only_own_requests(client, db, employee_headers, test_employee, mock_mail):
    other = await _seed_employee(db, name="Other Person", working_under_partner="Priya Shah")
    other_headers = await _auth_headers(db, UserRole.employee, other.id)
    await _submit(client, other_headers, other.id)
    mine = await _submit(client, employee_headers, test_employee.id)

    resp = await client.get("/api/v1/employee/request-correction", headers=employee_headers)
    assert [r["id"] for r in resp.json()["data"]] == [mine["id"]]


async def test_original_status_reflects_current_day(client, hr_headers, employee_headers, test_employee, mock_mail):
    await client.post(
        "/api/v1/attendance/day",
        json={
            "employee_id": str(test_employee.id),
            "date": "2025-11-04",
            "presence_type": "Absent",
        },
        headers=hr_headers,
    )

    req = await _submit(client, employee_headers, test_employee.id)
    assert req["original_status"] == "Absent"
    assert date.fromisoformat(req["date"]) == date(2025, 11, 4)

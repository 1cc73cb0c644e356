"""Email bodies: OTP, partner digest of pending corrections, decision notice."""

from __future__ import annotations

from html import escape
from typing import Sequence
from urllib.parse import urlencode

from attendance_console.config import settings


def action_link(request_id, action: str, token: str) -> str:
    query = urlencode({"id": str(request_id), "action": action, "token": token})
    return f"{settings.PUBLIC_BASE_URL.rstrip('/')}/api/v1/attendance/request-action?{query}"


def otp_email(code: str) -> tuple[str, str, str]:
    minutes = max(settings.OTP_TTL_SECONDS // 60, 1)
    subject = "Your attendance console login code"
    text = f"Your one-time login code is {code}. It expires in {minutes} minutes."
    html = (
        "<p>Your one-time login code is</p>"
        f"<h2 style=\"letter-spacing:4px\">{escape(code)}</h2>"
        f"<p>It expires in {minutes} minutes.</p>"
    )
    return subject, html, text


def pending_digest_email(partner_name: str, requests: Sequence) -> tuple[str, str, str]:
    """Digest of every pending request routed to ``partner_name`` with approve/reject links."""
    subject = f"{len(requests)} attendance request(s) awaiting your review"
    rows = []
    lines = []
    for req in requests:
        times = f"{req.start_time}–{req.end_time}" if req.start_time and req.end_time else ""
        approve = action_link(req.id, "approve", req.action_token or "")
        reject = action_link(req.id, "reject", req.action_token or "")
        rows.append(
            "<tr>"
            f"<td>{escape(req.user_name)}</td>"
            f"<td>{req.date.isoformat()}</td>"
            f"<td>{escape(req.original_status or '')}</td>"
            f"<td>{escape(req.requested_status)}</td>"
            f"<td>{escape(times)}</td>"
            f"<td>{escape(req.reason or '')}</td>"
            f"<td><a href=\"{escape(approve)}\">Approve</a> | "
            f"<a href=\"{escape(reject)}\">Reject</a></td>"
            "</tr>"
        )
        lines.append(
            f"{req.user_name} {req.date.isoformat()} {req.requested_status}: "
            f"approve {approve} / reject {reject}"
        )
    html = (
        f"<p>Dear {escape(partner_name)},</p>"
        "<p>The following attendance requests are pending your review.</p>"
        "<table border=\"1\" cellpadding=\"4\" cellspacing=\"0\">"
        "<tr><th>Employee</th><th>Date</th><th>Current</th><th>Requested</th>"
        "<th>Time</th><th>Reason</th><th>Action</th></tr>"
        + "".join(rows)
        + "</table>"
    )
    return subject, html, "\n".join(lines)


def decision_email(req) -> tuple[str, str, str]:
    verb = req.status.value.lower()
    subject = f"Attendance request for {req.date.isoformat()} {verb}"
    remarks = req.partner_remarks or req.hr_remarks or ""
    text = (
        f"Your request to mark {req.date.isoformat()} as {req.requested_status} was {verb}."
        + (f" Remarks: {remarks}" if remarks else "")
    )
    html = f"<p>Dear {escape(req.user_name)},</p><p>{escape(text)}</p>"
    return subject, html, text

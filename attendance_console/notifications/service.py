"""Notification service — outbound SMTP email.

Delivery uses blocking ``smtplib`` and therefore runs in the threadpool.
Without ``SMTP_HOST`` configured, messages are logged instead of sent.
"""

from __future__ import annotations

import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Optional, Sequence, Union

from fastapi.concurrency import run_in_threadpool

from attendance_console.config import settings

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    """SMTP delivery failed."""


# ── Core service ────────────────────────────────────────────────────


class NotificationService:
    """Async email dispatch."""

    @staticmethod
    def _build_message(
        to: Sequence[str],
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> EmailMessage:
        message = EmailMessage()
        message["From"] = settings.MAIL_FROM
        message["To"] = ", ".join(to)
        message["Subject"] = subject
        message.set_content(text or "This message requires an HTML-capable mail client.")
        message.add_alternative(html, subtype="html")
        return message

    @staticmethod
    def _deliver(message: EmailMessage) -> None:
        try:
            if settings.SMTP_USE_SSL:
                server: smtplib.SMTP = smtplib.SMTP_SSL(
                    settings.SMTP_HOST,
                    settings.SMTP_PORT,
                    timeout=settings.SMTP_TIMEOUT_SECONDS,
                    context=ssl.create_default_context(),
                )
            else:
                server = smtplib.SMTP(
                    settings.SMTP_HOST,
                    settings.SMTP_PORT,
                    timeout=settings.SMTP_TIMEOUT_SECONDS,
                )
            with server:
                if not settings.SMTP_USE_SSL:
                    server.starttls(context=ssl.create_default_context())
                if settings.SMTP_USER:
                    server.login(settings.SMTP_USER, settings.SMTP_PASSWORD)
                server.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(str(exc)) from exc

    @staticmethod
    async def send_email(
        to: Union[str, Sequence[str]],
        subject: str,
        html: str,
        text: Optional[str] = None,
    ) -> None:
        """Send an email; raises ``MailDeliveryError`` when SMTP fails."""
        recipients = [to] if isinstance(to, str) else list(to)
        if not recipients:
            raise MailDeliveryError("No recipients")

        message = NotificationService._build_message(recipients, subject, html, text)
        if not settings.SMTP_HOST:
            logger.info("SMTP not configured; email to %s: %s\n%s", recipients, subject, text or html)
            return

        await run_in_threadpool(NotificationService._deliver, message)
        logger.info("Sent email to %s: %s", recipients, subject)

from __future__ import annotations

import mimetypes
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Any, Iterable, Sequence

from jinja2 import Template

from dms_reporter.config import Settings
from dms_reporter.errors import NotificationDeliveryError
from dms_reporter.json_logger import JsonLogger, log_event

REPORT_SUBJECT_TEMPLATE = "THAI TRACKING DMS REPORT: {{ report_date }}"
REPORT_BODY_TEMPLATE = (
    "ถึง ผู้เกี่ยวข้อง\n"
    "รายงาน THAI TRACKING DMS REPORT รอบ {{ window_start }} ถึง {{ window_end }} น.\n"
    "ด้วยความนับถือ\n"
    "BOT REPORT"
)
FAILURE_SUBJECT_TEMPLATE = "GPS Automation FAILED"
FAILURE_BODY_TEMPLATE = "Error details: {{ error }}"


@dataclass
class EmailPlan:
    subject: str
    body: str
    to: list[str]
    attachments: list[Path]


def render_template(raw: str, context: dict[str, Any]) -> str:
    return Template(raw).render(**context)


def _unique(items: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    ordered: list[str] = []
    for item in items:
        if not item or item in seen:
            continue
        seen.add(item)
        ordered.append(item)
    return ordered


def build_message(settings: Settings, plan: EmailPlan) -> EmailMessage:
    message = EmailMessage()
    message["Subject"] = plan.subject
    message["From"] = formataddr((settings.email_sender_name, settings.email_from))
    message["To"] = ", ".join(plan.to)
    message.set_content(plan.body)
    for attachment in plan.attachments:
        data = attachment.read_bytes()
        mime_type, _ = mimetypes.guess_type(attachment.name)
        maintype, subtype = (mime_type or "application/octet-stream").split("/", 1)
        message.add_attachment(data, maintype=maintype, subtype=subtype, filename=attachment.name)
    return message


def _deliver(settings: Settings, message: EmailMessage, recipients: Sequence[str]) -> None:
    try:
        with smtplib.SMTP(settings.email_smtp_host, settings.email_smtp_port) as client:
            if settings.email_use_tls:
                client.starttls()
            client.login(settings.email_from, settings.email_password)
            client.send_message(message, to_addrs=list(recipients))
    except (smtplib.SMTPException, OSError) as exc:
        raise NotificationDeliveryError(str(exc)) from exc


def send_report_email(
    *,
    settings: Settings,
    subject: str,
    body: str,
    logger: JsonLogger,
    attachments: Sequence[Path] = (),
) -> bool:
    """Send one e-mail. Delivery problems are logged and reported as ``False``."""

    recipients = _unique(settings.email_to)
    if not settings.email_enabled or not recipients:
        reason = (
            "No recipients configured."
            if settings.email_from and settings.email_password
            else "No credentials provided."
        )
        log_event(logger=logger, phase="notify", status="warn", message=f"Skipping email: {reason}")
        return False

    present: list[Path] = []
    for attachment in attachments:
        if attachment and Path(attachment).exists():
            present.append(Path(attachment))
        else:
            log_event(
                logger=logger,
                phase="notify",
                status="warn",
                message="attachment missing during send",
                path=str(attachment),
            )

    plan = EmailPlan(subject=subject, body=body, to=recipients, attachments=present)
    try:
        message = build_message(settings, plan)
        _deliver(settings, message, plan.to)
    except (NotificationDeliveryError, OSError) as exc:
        log_event(
            logger=logger,
            phase="notify",
            status="error",
            message="Failed to send email",
            subject=plan.subject,
            error=str(exc),
        )
        return False

    log_event(
        logger=logger,
        phase="notify",
        message="Email sent successfully.",
        subject=plan.subject,
        recipients=plan.to,
        attachments=[path.name for path in plan.attachments],
    )
    return True

from __future__ import annotations

import smtplib
from pathlib import Path

from dms_reporter import notifications
from dms_reporter.notifications import (
    REPORT_BODY_TEMPLATE,
    REPORT_SUBJECT_TEMPLATE,
    render_template,
    send_report_email,
)


class _FakeSMTP:
    instances: list["_FakeSMTP"] = []
    fail_with: Exception | None = None

    def __init__(self, host: str, port: int) -> None:
        self.host = host
        self.port = port
        self.started_tls = False
        self.logged_in: tuple[str, str] | None = None
        self.sent: list[tuple[object, list[str]]] = []
        _FakeSMTP.instances.append(self)

    def __enter__(self) -> "_FakeSMTP":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def starttls(self) -> None:
        self.started_tls = True

    def login(self, user: str, password: str) -> None:
        self.logged_in = (user, password)

    def send_message(self, message, to_addrs) -> None:
        if _FakeSMTP.fail_with is not None:
            raise _FakeSMTP.fail_with
        self.sent.append((message, to_addrs))


def _patch_smtp(monkeypatch, fail_with: Exception | None = None) -> type[_FakeSMTP]:
    _FakeSMTP.instances = []
    _FakeSMTP.fail_with = fail_with
    monkeypatch.setattr(notifications.smtplib, "SMTP", _FakeSMTP)
    return _FakeSMTP


def test_report_templates_render() -> None:
    subject = render_template(REPORT_SUBJECT_TEMPLATE, {"report_date": "2024-03-15"})
    body = render_template(REPORT_BODY_TEMPLATE, {"window_start": "18:00", "window_end": "06:00"})

    assert subject == "THAI TRACKING DMS REPORT: 2024-03-15"
    assert "18:00 ถึง 06:00" in body


def test_skips_without_credentials(settings, logger, events, monkeypatch) -> None:
    fake = _patch_smtp(monkeypatch)
    anonymous = settings.with_overrides(email_password="")

    assert send_report_email(settings=anonymous, subject="s", body="b", logger=logger) is False
    assert fake.instances == []
    assert events()[-1]["message"] == "Skipping email: No credentials provided."


def test_sends_with_attachment(settings, logger, events, monkeypatch, tmp_path: Path) -> None:
    fake = _patch_smtp(monkeypatch)
    report = tmp_path / "GPS_Report_2024-03-15.xlsx"
    report.write_bytes(b"PK\x03\x04xlsx")

    sent = send_report_email(
        settings=settings,
        subject="THAI TRACKING DMS REPORT: 2024-03-15",
        body="body",
        attachments=[report, tmp_path / "missing.png"],
        logger=logger,
    )

    assert sent is True
    client = fake.instances[0]
    assert (client.host, client.port) == ("smtp.gmail.com", 587)
    assert client.started_tls
    assert client.logged_in == ("reports@example.com", "mail-pass")
    message, recipients = client.sent[0]
    assert recipients == ["ops@example.com", "fleet@example.com"]
    assert [part.get_filename() for part in message.iter_attachments()] == [report.name]
    messages = [entry["message"] for entry in events()]
    assert "attachment missing during send" in messages
    assert messages[-1] == "Email sent successfully."


def test_delivery_failure_is_logged_not_raised(settings, logger, events, monkeypatch) -> None:
    _patch_smtp(monkeypatch, fail_with=smtplib.SMTPAuthenticationError(535, b"bad credentials"))

    sent = send_report_email(settings=settings, subject="GPS Automation FAILED", body="x", logger=logger)

    assert sent is False
    last = events()[-1]
    assert last["status"] == "error"
    assert last["message"] == "Failed to send email"
    assert "mail-pass" not in str(last)


def test_skips_without_recipients(settings, logger, events, monkeypatch) -> None:
    fake = _patch_smtp(monkeypatch)

    sent = send_report_email(settings=settings.with_overrides(email_to=[]), subject="s", body="b", logger=logger)

    assert sent is False
    assert fake.instances == []
    assert events()[-1]["message"] == "Skipping email: No recipients configured."

"""
Unit Tests: status-change e-mail notifications
"""

import smtplib

import pytest

from homologation.config import NotificationConfig
from homologation.workflow.models import SubmissionStatus
from homologation.workflow.notifier import (
    TEMPLATES,
    DeliveryStatus,
    EmailNotifier,
    NotificationContext,
    render_email,
)


class FakeSMTP:
    """Records the SMTP conversation; optionally fails on login."""

    instances = []

    def __init__(self, host, port, fail_with=None):
        self.host = host
        self.port = port
        self.fail_with = fail_with
        self.calls = []
        self.sent = []
        FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.calls.append("quit")
        return False

    def ehlo(self):
        self.calls.append("ehlo")

    def starttls(self):
        self.calls.append("starttls")

    def login(self, user, password):
        self.calls.append("login")
        if self.fail_with:
            raise self.fail_with

    def sendmail(self, sender, recipients, message):
        self.calls.append("sendmail")
        self.sent.append((sender, recipients, message))


@pytest.fixture(autouse=True)
def reset_fake_smtp():
    FakeSMTP.instances = []


def _settings(configured=True):
    if not configured:
        return NotificationConfig(smtp_host="", smtp_user="", smtp_password="", app_url="https://app.test")
    return NotificationConfig(
        email_from="noreply@av-homologacion.com",
        smtp_host="smtp.test",
        smtp_port=587,
        smtp_user="mailer",
        smtp_password="secret",
        app_url="https://app.test",
    )


def _context(status=SubmissionStatus.INCOMPLETE, email="ana@example.com", reason="Falta foto trasera"):
    return NotificationContext(
        owner_name="Ana García",
        owner_email=email,
        submission_id="sub-1",
        status=status,
        reason=reason,
    )


class TestRenderEmail:

    def test_every_non_draft_status_has_a_template(self):
        assert set(TEMPLATES) == set(SubmissionStatus) - {SubmissionStatus.DRAFT}

    def test_incomplete_includes_reason_and_link(self):
        message = render_email(_context(), "https://app.test/")

        assert message.to == "ana@example.com"
        assert message.subject == "Documentación Incompleta - AV Homologación"
        assert "Motivo: Falta foto trasera" in message.body
        assert "https://app.test/homologaciones/sub-1" in message.body
        assert "Estimado/a Ana García" in message.body

    def test_approved_omits_reason(self):
        message = render_email(_context(status=SubmissionStatus.APPROVED, reason="ok"), "https://app.test")

        assert "Motivo" not in message.body
        assert message.subject == "¡Solicitud Aprobada! - AV Homologación"

    def test_html_is_escaped(self):
        message = render_email(_context(reason="<script>x</script>"), "https://app.test")

        assert "<script>" not in message.html
        assert "&lt;script&gt;" in message.html

    def test_no_template_or_no_email(self):
        assert render_email(_context(status=SubmissionStatus.DRAFT), "https://app.test") is None
        assert render_email(_context(email=None), "https://app.test") is None


class TestEmailNotifier:

    def test_sends_over_starttls(self):
        notifier = EmailNotifier(settings=_settings(), smtp_factory=FakeSMTP)

        outcome = notifier.send_status_notification(_context())

        assert outcome.status == DeliveryStatus.SENT
        assert outcome.delivered
        smtp = FakeSMTP.instances[0]
        assert (smtp.host, smtp.port) == ("smtp.test", 587)
        assert smtp.calls == ["ehlo", "starttls", "ehlo", "login", "sendmail", "quit"]
        sender, recipients, raw = smtp.sent[0]
        assert sender == "noreply@av-homologacion.com"
        assert recipients == ["ana@example.com"]
        raw.encode("ascii")

    def test_unconfigured_smtp_logs_instead(self):
        notifier = EmailNotifier(settings=_settings(configured=False), smtp_factory=FakeSMTP)

        outcome = notifier.send_status_notification(_context())

        assert outcome.status == DeliveryStatus.LOGGED
        assert outcome.delivered
        assert FakeSMTP.instances == []

    def test_skipped_without_recipient(self):
        notifier = EmailNotifier(settings=_settings(), smtp_factory=FakeSMTP)

        outcome = notifier.send_status_notification(_context(email=None))

        assert outcome.status == DeliveryStatus.SKIPPED
        assert not outcome.delivered

    def test_smtp_errors_are_reported_not_raised(self):
        def factory(host, port):
            return FakeSMTP(host, port, fail_with=smtplib.SMTPAuthenticationError(535, b"bad credentials"))

        notifier = EmailNotifier(settings=_settings(), smtp_factory=factory)

        outcome = notifier.send_status_notification(_context())

        assert outcome.status == DeliveryStatus.FAILED
        assert "bad credentials" in outcome.error
        assert outcome.to_dict()["status"] == "failed"

    def test_connection_refused_is_failed(self):
        def factory(host, port):
            raise ConnectionRefusedError("connection refused")

        notifier = EmailNotifier(settings=_settings(), smtp_factory=factory)

        assert notifier.send_status_notification(_context()).status == DeliveryStatus.FAILED

"""Tests for email notifications."""

from datetime import datetime, timezone
from unittest.mock import patch

from intake.services.database_service import Submission
from intake.services.notification_service import (
    EmailNotificationService,
    render_admin_notification_text,
    render_user_confirmation_html,
    render_user_confirmation_text,
)


def make_submission(**overrides) -> Submission:
    fields = dict(
        id="5b4f0c1e-1111-2222-3333-444455556666",
        submission_id="SUB-202603-0042",
        full_name="Jane Doe",
        email="jane@example.com",
        phone="+254700000000",
        position="Secretary",
        branch="Central Branch",
        region="rift-valley",
        submission_type="Monthly Report",
        subject="March report",
        description="Monthly activity report.",
        urgency="urgent",
        status="pending",
        files=[{
            "file_name": "report.pdf",
            "file_id": "a" * 32,
            "file_size": 2 * 1024 * 1024,
            "file_type": "application/pdf",
            "uploaded_at": "2026-03-14T09:30:00+00:00",
        }],
        ip_address="10.0.0.1",
        user_agent="pytest",
        created_at=datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc),
    )
    fields.update(overrides)
    return Submission(**fields)


class TestRendering:

    def test_user_confirmation_text(self):
        text = render_user_confirmation_text(make_submission())
        assert "Dear Jane Doe," in text
        assert "Submission ID: SUB-202603-0042" in text
        assert "Region: Rift Valley Region" in text
        assert "Priority: Urgent" in text
        assert "Files Attached: 1 file(s)" in text

    def test_user_confirmation_html_escapes(self):
        html = render_user_confirmation_html(make_submission(full_name="<b>Jane</b>"))
        assert "&lt;b&gt;Jane&lt;/b&gt;" in html
        assert "<b>Jane</b>" not in html

    def test_admin_notification_lists_files(self):
        text = render_admin_notification_text(make_submission())
        assert "report.pdf (2.00 MB)" in text
        assert "Email: jane@example.com" in text
        assert "IP Address: 10.0.0.1" in text


class TestEmailNotificationService:

    def test_skips_without_host(self):
        service = EmailNotificationService(host=None, admin_email="admin@example.com")
        with patch("intake.services.notification_service.smtplib.SMTP") as smtp:
            service.notify(make_submission())
        smtp.assert_not_called()

    def test_sends_both_messages(self):
        service = EmailNotificationService(
            host="smtp.example.com",
            username="intake@example.com",
            password="secret",
            admin_email="admin@example.com"
        )
        with patch("intake.services.notification_service.smtplib.SMTP") as smtp:
            service.notify(make_submission())

        connection = smtp.return_value
        sent = [call.args[0] for call in connection.send_message.call_args_list]
        assert [m["To"] for m in sent] == ["jane@example.com", "admin@example.com"]
        assert sent[0]["Subject"] == "Submission Received - SUB-202603-0042"
        assert sent[1]["Subject"] == "New Submission - Monthly Report [Urgent]"
        connection.starttls.assert_called()
        connection.login.assert_called_with("intake@example.com", "secret")

    def test_admin_skipped_without_admin_email(self):
        service = EmailNotificationService(host="smtp.example.com", username="intake@example.com")
        with patch("intake.services.notification_service.smtplib.SMTP") as smtp:
            service.notify(make_submission())

        connection = smtp.return_value
        assert connection.send_message.call_count == 1

    def test_failures_are_not_raised(self):
        service = EmailNotificationService(host="smtp.example.com", admin_email="admin@example.com")
        with patch("intake.services.notification_service.smtplib.SMTP", side_effect=OSError("refused")):
            service.notify(make_submission())

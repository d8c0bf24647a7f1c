"""
Email notifications for new submissions.
"""

import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr
from html import escape
from typing import Optional

from intake.services.database_service import Submission
from intake.models.submission import region_display, urgency_display

logger = logging.getLogger(__name__)


class NotificationService:
    """Interface for anything that reacts to a new submission."""

    def notify(self, submission: Submission) -> None:
        raise NotImplementedError


class EmailNotificationService(NotificationService):
    """
    Sends a confirmation to the submitter and an alert to the admin inbox.

    Attributes:
        host: SMTP host; when empty every send is skipped
        port: SMTP port; 465 uses implicit TLS, anything else STARTTLS
        username: SMTP login, also used as the sender address
        password: SMTP password
        from_name: Display name of the sender
        admin_email: Recipient of admin notifications
    """

    def __init__(
        self,
        host: Optional[str],
        port: int = 587,
        username: Optional[str] = None,
        password: Optional[str] = None,
        from_name: str = "Submissions Office",
        admin_email: Optional[str] = None,
        timeout: int = 30
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_name = from_name
        self.admin_email = admin_email
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "EmailNotificationService":
        return cls(
            host=settings.EMAIL_HOST,
            port=settings.EMAIL_PORT,
            username=settings.EMAIL_USER,
            password=settings.EMAIL_PASS,
            from_name=settings.EMAIL_FROM_NAME,
            admin_email=settings.ADMIN_EMAIL,
        )

    def notify(self, submission: Submission) -> None:
        """Send both messages. Failures are logged, never raised."""
        for send in (self.send_user_confirmation, self.send_admin_notification):
            try:
                send(submission)
            except Exception as e:
                logger.error(f"✗ {send.__name__} failed for {submission.submission_id}: {e}")

    def send_user_confirmation(self, submission: Submission) -> None:
        message = self._message(
            to=submission.email,
            subject=f"Submission Received - {submission.submission_id}",
            text=render_user_confirmation_text(submission),
            html=render_user_confirmation_html(submission),
        )
        if self._send(message):
            logger.info(f"✓ Confirmation email sent to user: {submission.email}")

    def send_admin_notification(self, submission: Submission) -> None:
        if not self.admin_email:
            logger.info("ADMIN_EMAIL not set, skipping admin notification")
            return
        message = self._message(
            to=self.admin_email,
            subject=(
                f"New Submission - {submission.submission_type} "
                f"[{urgency_display(submission.urgency)}]"
            ),
            text=render_admin_notification_text(submission),
            html=render_admin_notification_html(submission),
        )
        if self._send(message):
            logger.info(f"✓ Admin notification email sent for {submission.submission_id}")

    def _message(self, to: str, subject: str, text: str, html: str) -> EmailMessage:
        message = EmailMessage()
        if self.username:
            message["From"] = formataddr((self.from_name, self.username))
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text)
        message.add_alternative(html, subtype="html")
        return message

    def _send(self, message: EmailMessage) -> bool:
        if not self.host:
            logger.info(f"EMAIL_HOST not set, skipping email to {message['To']}")
            return False

        context = ssl.create_default_context()
        if self.port == 465:
            smtp = smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)
        else:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        with smtp:
            if self.port != 465:
                smtp.starttls(context=context)
            if self.username and self.password:
                smtp.login(self.username, self.password)
            smtp.send_message(message)
        return True


def _submitted_at(submission: Submission) -> str:
    if submission.created_at is None:
        return ""
    return submission.created_at.strftime("%Y-%m-%d %H:%M")


def render_user_confirmation_text(submission: Submission) -> str:
    return "\n".join([
        f"Dear {submission.full_name},",
        "",
        "Thank you for your submission. We have received your documents and "
        "they are now being processed.",
        "",
        f"Submission ID: {submission.submission_id}",
        f"Type: {submission.submission_type}",
        f"Subject: {submission.subject}",
        f"Branch: {submission.branch}",
        f"Region: {region_display(submission.region)}",
        f"Priority: {urgency_display(submission.urgency)}",
        f"Files Attached: {len(submission.files or [])} file(s)",
        f"Submitted: {_submitted_at(submission)}",
        "",
        "Please save your Submission ID for tracking purposes.",
        "Your submission will be reviewed within 3-5 business days and you "
        "will be notified once it has been reviewed.",
    ])


def render_user_confirmation_html(submission: Submission) -> str:
    rows = [
        ("Submission ID", submission.submission_id),
        ("Type", submission.submission_type),
        ("Subject", submission.subject),
        ("Branch", submission.branch),
        ("Region", region_display(submission.region)),
        ("Priority", urgency_display(submission.urgency)),
        ("Files Attached", f"{len(submission.files or [])} file(s)"),
        ("Submitted", _submitted_at(submission)),
    ]
    details = "".join(
        f"<p><strong>{label}:</strong> {escape(str(value))}</p>" for label, value in rows
    )
    return (
        "<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        "<h2>Submission Received Successfully!</h2>"
        f"<p>Dear {escape(submission.full_name)},</p>"
        "<p>Thank you for your submission. We have received your documents and "
        "they are now being processed.</p>"
        f"<div>{details}</div>"
        "<p><strong>Please save your Submission ID for tracking purposes.</strong></p>"
        "<ul>"
        "<li>Your submission will be reviewed within 3-5 business days</li>"
        "<li>You will receive an email notification once it has been reviewed</li>"
        "</ul>"
        "</div>"
    )


def _file_lines(submission: Submission):
    for stored in submission.files or []:
        size_mb = stored["file_size"] / 1024 / 1024
        yield f"{stored['file_name']} ({size_mb:.2f} MB)"


def render_admin_notification_text(submission: Submission) -> str:
    lines = [
        f"{urgency_display(submission.urgency)} Submission",
        "",
        f"Submission ID: {submission.submission_id}",
        f"Type: {submission.submission_type}",
        f"Subject: {submission.subject}",
        f"Status: {submission.status}",
        f"Submitted: {_submitted_at(submission)}",
        "",
        f"Name: {submission.full_name}",
        f"Position: {submission.position}",
        f"Email: {submission.email}",
        f"Phone: {submission.phone}",
        f"Branch: {submission.branch}",
        f"Region: {region_display(submission.region)}",
        "",
        "Description:",
        submission.description,
        "",
        f"Files Attached: {len(submission.files or [])} file(s)",
    ]
    lines.extend(f"  - {line}" for line in _file_lines(submission))
    lines.extend([
        "",
        f"IP Address: {submission.ip_address}",
        f"User Agent: {submission.user_agent}",
    ])
    return "\n".join(lines)


def render_admin_notification_html(submission: Submission) -> str:
    text = render_admin_notification_text(submission)
    return (
        "<div style=\"font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;\">"
        f"<pre style=\"white-space: pre-wrap;\">{escape(text)}</pre>"
        "</div>"
    )

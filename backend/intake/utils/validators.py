"""
Form and file validation utilities.
"""

import os
import re
from typing import Any, List, Mapping, Optional, Sequence

from intake.errors import ValidationError
from intake.models.attachment import IncomingFile
from intake.models.submission import (
    Region,
    SubmissionForm,
    SubmissionStatus,
    SubmissionType,
    Urgency,
)


# Allowed attachment types
ALLOWED_MIME_TYPES = {
    "application/pdf",
    "application/msword",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/vnd.ms-excel",
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "image/jpeg",
    "image/jpg",
    "image/png",
}

# Maximum file size: 10MB
MAX_FILE_SIZE = 10 * 1024 * 1024
MAX_FILES = 10

MAX_FULL_NAME_LENGTH = 100
MAX_SUBJECT_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 5000

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

_SCRIPT_BLOCK = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_IFRAME_BLOCK = re.compile(r"<iframe\b[^<]*(?:(?!</iframe>)<[^<]*)*</iframe>", re.IGNORECASE)

# (form field, label used in messages)
REQUIRED_TEXT_FIELDS = [
    ("fullName", "Full name"),
    ("phone", "Phone number"),
    ("position", "Position/Title"),
    ("branch", "Branch/Church name"),
    ("subject", "Subject"),
    ("description", "Description"),
]


def sanitize_text(value: Optional[str]) -> Optional[str]:
    """
    Strip embedded script and iframe blocks and surrounding whitespace.

    This is a best-effort filter against stored markup; consumers still have
    to encode output.
    """
    if value is None:
        return None
    value = _SCRIPT_BLOCK.sub("", value)
    value = _IFRAME_BLOCK.sub("", value)
    return value.strip()


def sanitize_fields(raw: Mapping[str, Any]) -> dict:
    """Sanitise every string value of a form mapping."""
    return {
        key: sanitize_text(value) if isinstance(value, str) else value
        for key, value in raw.items()
    }


def is_valid_email(email: str) -> bool:
    return bool(EMAIL_PATTERN.match(email))


def _choices(enum_cls) -> str:
    return ", ".join(member.value for member in enum_cls)


def validate_submission_fields(raw: Mapping[str, Any]) -> SubmissionForm:
    """
    Sanitise and validate the text fields of a submission.

    All violations are collected so the caller gets the full list at once.

    Args:
        raw: Form fields keyed by their wire names (fullName, email, ...)

    Returns:
        Validated SubmissionForm

    Raises:
        ValidationError: If any field is missing or malformed
    """
    fields = sanitize_fields(raw)
    errors: List[str] = []

    for key, label in REQUIRED_TEXT_FIELDS:
        if not fields.get(key):
            errors.append(f"{label} is required")

    email = fields.get("email") or ""
    if not email or not is_valid_email(email):
        errors.append("Valid email address is required")

    region = fields.get("region")
    if not region:
        errors.append("Region is required")
    elif region not in {r.value for r in Region}:
        errors.append(f"Region must be one of: {_choices(Region)}")

    submission_type = fields.get("submissionType")
    if not submission_type:
        errors.append("Submission type is required")
    elif submission_type not in {t.value for t in SubmissionType}:
        errors.append(f"Submission type must be one of: {_choices(SubmissionType)}")

    urgency = fields.get("urgency") or Urgency.NORMAL.value
    if urgency not in {u.value for u in Urgency}:
        errors.append(f"Urgency must be one of: {_choices(Urgency)}")

    full_name = fields.get("fullName") or ""
    if len(full_name) > MAX_FULL_NAME_LENGTH:
        errors.append(f"Full name must not exceed {MAX_FULL_NAME_LENGTH} characters")

    subject = fields.get("subject") or ""
    if len(subject) > MAX_SUBJECT_LENGTH:
        errors.append(f"Subject must not exceed {MAX_SUBJECT_LENGTH} characters")

    description = fields.get("description") or ""
    if len(description) > MAX_DESCRIPTION_LENGTH:
        errors.append(f"Description must not exceed {MAX_DESCRIPTION_LENGTH} characters")

    if errors:
        raise ValidationError("Validation failed", errors)

    return SubmissionForm(
        full_name=full_name,
        email=email.lower(),
        phone=fields["phone"],
        position=fields["position"],
        branch=fields["branch"],
        region=Region(region),
        submission_type=SubmissionType(submission_type),
        subject=subject,
        description=description,
        urgency=Urgency(urgency),
    )


def validate_status_update(status: Optional[str]) -> SubmissionStatus:
    """
    Validate a requested review status.

    Raises:
        ValidationError: If the status is missing or not a known value
    """
    if not status:
        raise ValidationError("Status is required", ["Status is required"])
    try:
        return SubmissionStatus(status)
    except ValueError:
        message = f"Invalid status. Must be one of: {_choices(SubmissionStatus)}"
        raise ValidationError(message, [message])


def validate_mime_type(content_type: Optional[str]) -> bool:
    """
    Validate that a MIME type is allowed.

    Args:
        content_type: MIME type to validate

    Returns:
        True if MIME type is allowed, False otherwise
    """
    return content_type in ALLOWED_MIME_TYPES


def validate_file_size(file_size: int, max_size: int = MAX_FILE_SIZE) -> bool:
    """
    Validate that a file size is within limits.

    Args:
        file_size: Size of the file in bytes
        max_size: Upper bound in bytes (inclusive)

    Returns:
        True if size is within limits, False otherwise
    """
    return file_size <= max_size


def validate_attachments(
    files: Sequence[IncomingFile],
    max_size: int = MAX_FILE_SIZE,
    max_files: int = MAX_FILES
) -> None:
    """
    Validate the files of a submission before anything is stored.

    Raises:
        ValidationError: If there are too many files, or any file has a
            disallowed type or is too large
    """
    errors: List[str] = []

    if len(files) > max_files:
        errors.append(f"Too many files. Maximum is {max_files} files per submission.")

    max_size_mb = max_size / (1024 * 1024)
    for incoming in files:
        if not incoming.file_name:
            errors.append("No filename provided")
            continue
        if not validate_mime_type(incoming.content_type):
            errors.append(
                f"Invalid file type for '{incoming.file_name}'. "
                "Only PDF, DOC, DOCX, XLS, XLSX, JPG, PNG are allowed."
            )
        if not validate_file_size(incoming.size, max_size):
            errors.append(
                f"File '{incoming.file_name}' is too large. Maximum size: {max_size_mb:g}MB"
            )

    if errors:
        raise ValidationError("File validation failed", errors)


def sanitize_filename(filename: str) -> str:
    """
    Sanitize a filename to prevent path traversal attacks.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename
    """
    # Get just the basename (remove any path components)
    filename = os.path.basename(filename.replace("\\", "/"))

    # Remove any characters that aren't alphanumeric, dash, underscore, or dot
    filename = re.sub(r'[^\w\-.]', '_', filename)

    # Ensure filename isn't empty after sanitization
    if not filename or filename in (".", ".."):
        filename = "unnamed_file"

    return filename

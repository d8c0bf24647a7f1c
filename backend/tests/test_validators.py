"""Tests for form and file validation."""

import pytest

from conftest import make_file, make_form
from intake.errors import ValidationError
from intake.models.submission import Region, SubmissionStatus, SubmissionType, Urgency
from intake.utils.validators import (
    MAX_FILE_SIZE,
    sanitize_filename,
    sanitize_text,
    validate_attachments,
    validate_file_size,
    validate_mime_type,
    validate_status_update,
    validate_submission_fields,
)


class SizedFile:
    """Stand-in upload that reports a size without holding the bytes."""

    def __init__(self, size, name="big.pdf", content_type="application/pdf"):
        self.file_name = name
        self.content_type = content_type
        self.size = size


class TestValidateSubmissionFields:

    def test_valid_form(self):
        form = validate_submission_fields(make_form())
        assert form.full_name == "Jane Doe"
        assert form.email == "jane@example.com"
        assert form.region is Region.NAIROBI
        assert form.submission_type is SubmissionType.MONTHLY_REPORT
        assert form.urgency is Urgency.NORMAL

    def test_urgency_defaults_to_normal(self):
        form = validate_submission_fields(make_form(urgency=None))
        assert form.urgency is Urgency.NORMAL

    def test_missing_full_name(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_submission_fields(make_form(fullName=""))
        assert "Full name is required" in exc_info.value.errors

    def test_collects_every_error(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_submission_fields(make_form(fullName=None, phone="", email="nope"))
        errors = exc_info.value.errors
        assert "Full name is required" in errors
        assert "Phone number is required" in errors
        assert "Valid email address is required" in errors

    def test_unknown_region(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_submission_fields(make_form(region="mars"))
        assert any(e.startswith("Region must be one of") for e in exc_info.value.errors)

    def test_unknown_submission_type(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_submission_fields(make_form(submissionType="Poem"))
        assert any(e.startswith("Submission type must be one of") for e in exc_info.value.errors)

    def test_unknown_urgency(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_submission_fields(make_form(urgency="whenever"))
        assert any(e.startswith("Urgency must be one of") for e in exc_info.value.errors)

    def test_length_limits(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_submission_fields(make_form(
                fullName="x" * 101,
                subject="s" * 201,
                description="d" * 5001
            ))
        errors = exc_info.value.errors
        assert "Full name must not exceed 100 characters" in errors
        assert "Subject must not exceed 200 characters" in errors
        assert "Description must not exceed 5000 characters" in errors

    def test_subject_at_limit_is_accepted(self):
        form = validate_submission_fields(make_form(subject="s" * 200))
        assert len(form.subject) == 200

    def test_script_blocks_are_stripped(self):
        form = validate_submission_fields(
            make_form(description="Hello <script>alert(1)</script>world")
        )
        assert "<script>" not in form.description
        assert form.description == "Hello world"

    def test_whitespace_only_counts_as_missing(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_submission_fields(make_form(subject="   "))
        assert "Subject is required" in exc_info.value.errors


class TestValidateStatusUpdate:

    def test_known_status(self):
        assert validate_status_update("under-review") is SubmissionStatus.UNDER_REVIEW

    def test_missing_status(self):
        with pytest.raises(ValidationError, match="Status is required"):
            validate_status_update(None)

    def test_unknown_status(self):
        with pytest.raises(ValidationError, match="Invalid status"):
            validate_status_update("archived")


class TestValidateAttachments:

    def test_accepts_allowed_files(self):
        validate_attachments([make_file(), make_file("photo.png", b"png", "image/png")])

    def test_size_at_limit_is_accepted(self):
        validate_attachments([SizedFile(MAX_FILE_SIZE)])

    def test_size_over_limit_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_attachments([SizedFile(MAX_FILE_SIZE + 1)])
        assert "File 'big.pdf' is too large. Maximum size: 10MB" in exc_info.value.errors

    def test_empty_file_is_accepted(self):
        validate_attachments([make_file("empty.pdf", b"")])

    def test_disallowed_type(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_attachments([make_file("bundle.zip", b"PK", "application/zip")])
        assert exc_info.value.message == "File validation failed"
        assert exc_info.value.errors[0].startswith("Invalid file type for 'bundle.zip'")

    def test_too_many_files(self):
        files = [make_file(f"doc{i}.pdf") for i in range(11)]
        with pytest.raises(ValidationError) as exc_info:
            validate_attachments(files)
        assert "Too many files. Maximum is 10 files per submission." in exc_info.value.errors

    def test_ten_files_is_accepted(self):
        validate_attachments([make_file(f"doc{i}.pdf") for i in range(10)])


class TestHelpers:

    def test_validate_mime_type(self):
        assert validate_mime_type("application/pdf")
        assert validate_mime_type("image/jpeg")
        assert not validate_mime_type("text/html")
        assert not validate_mime_type(None)

    def test_validate_file_size(self):
        assert validate_file_size(1)
        assert validate_file_size(MAX_FILE_SIZE)
        assert validate_file_size(0)
        assert not validate_file_size(MAX_FILE_SIZE + 1)

    def test_sanitize_text(self):
        assert sanitize_text(None) is None
        assert sanitize_text("  a<iframe src=x></iframe>b  ") == "ab"

    def test_sanitize_filename(self):
        assert sanitize_filename("../../etc/passwd") == "passwd"
        assert sanitize_filename("C:\\docs\\my report.pdf") == "my_report.pdf"
        assert sanitize_filename("..") == "unnamed_file"

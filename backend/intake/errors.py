"""
Error types raised by the submission services.

Each error carries the HTTP status it maps to; the handlers in
``intake.main`` turn them into the standard response envelope.
"""

from typing import List, Optional


class IntakeError(Exception):
    """Base class for all service errors."""

    status_code = 500

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class ValidationError(IntakeError):
    """Bad or missing input. Raised before anything is persisted."""

    status_code = 400


class NotFound(IntakeError):
    """A record, attachment or derived lookup did not resolve."""

    status_code = 404


class SubmissionNotFound(NotFound):
    def __init__(self, identifier: str):
        super().__init__("Submission not found")
        self.identifier = identifier


class AttachmentNotFound(NotFound):
    def __init__(self, object_id: str):
        super().__init__("File not found")
        self.object_id = object_id


class StoreWriteError(IntakeError):
    """The attachment backend failed to store or remove an object."""


class ObjectKeyExists(StoreWriteError):
    """A create-only upload hit a key that is already taken."""

    def __init__(self, object_key: str):
        super().__init__(f"Object {object_key} already exists")
        self.object_key = object_key


class StoreReadError(IntakeError):
    """The attachment backend failed to read an object."""


class PersistenceError(IntakeError):
    """The submission store failed, or public id retries were exhausted."""


class DuplicatePublicId(PersistenceError):
    """Insert rejected by the unique constraint on the public submission id."""

    def __init__(self, submission_id: str):
        super().__init__(f"Submission id {submission_id} already exists")
        self.submission_id = submission_id


class RateLimitExceeded(IntakeError):
    """Too many requests from one client inside the current window."""

    status_code = 429

    def __init__(self, message: str, retry_after: int):
        super().__init__(message)
        self.retry_after = retry_after

"""Test configuration and fixtures."""

import io
from typing import List

import pytest
from fastapi.testclient import TestClient

from intake.config import Settings
from intake.main import create_app
from intake.models.attachment import IncomingFile
from intake.services.attachment_store import AttachmentStore
from intake.services.database_service import DatabaseService, Submission
from intake.services.logging_service import AuditLoggingService
from intake.services.notification_service import NotificationService
from intake.services.storage_service import LocalStorageService
from intake.services.submission_repository import SubmissionRepository
from intake.services.submission_service import SubmissionService
from intake.storage.rate_limit_store import InMemoryRateLimitStore

PDF_BYTES = b"%PDF-1.4 test document"


class RecordingNotifier(NotificationService):
    """Collects notified submissions instead of sending email."""

    def __init__(self):
        self.notified: List[Submission] = []

    def notify(self, submission: Submission) -> None:
        self.notified.append(submission)


class RecordingAuditLogger(AuditLoggingService):
    """Audit logger that keeps events in memory."""

    def __init__(self):
        super().__init__(enabled=False)
        self.events: List[dict] = []

    def log_event(self, event_type, severity="INFO", submission_id=None,
                  ip_address=None, user_agent=None, details=None):
        self.events.append({
            "event_type": event_type,
            "severity": severity,
            "submission_id": submission_id,
            "details": details or {},
        })

    def of_type(self, event_type: str) -> List[dict]:
        return [e for e in self.events if e["event_type"] == event_type]


def make_form(**overrides) -> dict:
    """Create a valid submission form with optional overrides."""
    defaults = {
        "fullName": "Jane Doe",
        "email": "Jane@Example.com",
        "phone": "+254700000000",
        "position": "Secretary",
        "branch": "Central Branch",
        "region": "nairobi",
        "submissionType": "Monthly Report",
        "subject": "March report",
        "description": "Monthly activity report for March.",
        "urgency": "normal",
    }
    defaults.update(overrides)
    return defaults


def make_file(name: str = "report.pdf", content: bytes = PDF_BYTES,
              content_type: str = "application/pdf") -> IncomingFile:
    return IncomingFile(
        file_name=name,
        content_type=content_type,
        stream=io.BytesIO(content),
        size=len(content)
    )


@pytest.fixture
def database_service(tmp_path) -> DatabaseService:
    """File-backed SQLite database, created fresh for each test."""
    service = DatabaseService(database_url=f"sqlite:///{tmp_path / 'test.db'}")
    service.initialize()
    yield service
    service.close()


@pytest.fixture
def storage_service(tmp_path) -> LocalStorageService:
    return LocalStorageService(str(tmp_path / "attachments"))


@pytest.fixture
def attachment_store(database_service, storage_service) -> AttachmentStore:
    return AttachmentStore(database_service, storage_service)


@pytest.fixture
def repository(database_service) -> SubmissionRepository:
    return SubmissionRepository(database_service)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def audit_logger() -> RecordingAuditLogger:
    return RecordingAuditLogger()


@pytest.fixture
def submission_service(repository, attachment_store, notifier, audit_logger) -> SubmissionService:
    return SubmissionService(
        repository=repository,
        attachment_store=attachment_store,
        notifier=notifier,
        audit_logger=audit_logger
    )


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite:///{tmp_path / 'test.db'}",
        LOCAL_STORAGE_PATH=str(tmp_path / "attachments"),
        EMAIL_HOST=None,
        AUDIT_LOG_ENABLED=False,
    )


@pytest.fixture
def app(test_settings, database_service, storage_service, notifier, audit_logger):
    return create_app(
        test_settings,
        database_service=database_service,
        storage_service=storage_service,
        notifier=notifier,
        audit_logger=audit_logger,
        rate_limit_store=InMemoryRateLimitStore()
    )


@pytest.fixture
def client(app) -> TestClient:
    with TestClient(app) as test_client:
        yield test_client

"""
Application configuration management.
"""

from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Attributes:
        APP_NAME: Name reported by the health and discovery endpoints
        ENVIRONMENT: Deployment environment (development, production)
        DATABASE_URL: SQLAlchemy URL for the submission store. Leave empty to
            connect through the Cloud SQL connector instead
        PROJECT_ID: GCP project identifier (Cloud SQL, GCS, Cloud Logging)
        REGION: GCP region for Cloud SQL
        DB_INSTANCE_NAME: Cloud SQL instance name
        DB_NAME: Database name
        DB_USER: Database user
        DB_SECRET_NAME: Secret Manager secret holding the database password
        STORAGE_BACKEND: Attachment blob backend, "local" or "gcs"
        ATTACHMENTS_BUCKET: GCS bucket for attachments (gcs backend)
        LOCAL_STORAGE_PATH: Directory for attachments (local backend)
        MAX_FILE_SIZE_MB: Per-file upload limit
        MAX_FILES_PER_SUBMISSION: Maximum number of files in one submission
        PUBLIC_ID_MAX_ATTEMPTS: Insert attempts before a public id collision fails
        EMAIL_HOST: SMTP host; notifications are skipped when empty
        EMAIL_PORT: SMTP port (465 uses implicit TLS, others STARTTLS)
        ADMIN_EMAIL: Recipient of new-submission notifications
        RATE_LIMIT_BACKEND: Counter store, "memory" or "database"
        AUDIT_LOG_ENABLED: Write audit events to Cloud Logging
    """
    APP_NAME: str = "Submission Intake API"
    API_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: Optional[str] = "sqlite:///./submissions.db"
    PROJECT_ID: Optional[str] = None
    REGION: str = "us-central1"
    DB_INSTANCE_NAME: Optional[str] = None
    DB_NAME: str = "submissions"
    DB_USER: str = "intake"
    DB_SECRET_NAME: str = "submission-intake-db-credentials"

    STORAGE_BACKEND: str = "local"
    ATTACHMENTS_BUCKET: Optional[str] = None
    LOCAL_STORAGE_PATH: str = "./attachments"

    MAX_FILE_SIZE_MB: int = 10
    MAX_FILES_PER_SUBMISSION: int = 10
    PUBLIC_ID_MAX_ATTEMPTS: int = 3

    EMAIL_HOST: Optional[str] = None
    EMAIL_PORT: int = 587
    EMAIL_USER: Optional[str] = None
    EMAIL_PASS: Optional[str] = None
    EMAIL_FROM_NAME: str = "Submissions Office"
    ADMIN_EMAIL: Optional[str] = None

    RATE_LIMIT_BACKEND: str = "memory"
    API_RATE_LIMIT_MAX: int = 100
    API_RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    SUBMISSION_RATE_LIMIT_MAX: int = 10
    SUBMISSION_RATE_LIMIT_WINDOW_SECONDS: int = 60 * 60
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS: int = 60 * 60

    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:3001",
        "http://localhost:3002",
    ]
    AUDIT_LOG_ENABLED: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )

    @property
    def max_file_size_bytes(self) -> int:
        return self.MAX_FILE_SIZE_MB * 1024 * 1024


# Global settings instance
settings = Settings()

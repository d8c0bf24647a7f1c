"""
Database service for the submission store.

Connects through the Cloud SQL connector in production, or to any SQLAlchemy
URL (SQLite in development and tests) when DATABASE_URL is set.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional
import logging

from google.cloud import secretmanager
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from intake.models.submission import region_display, urgency_display

logger = logging.getLogger(__name__)

Base = declarative_base()

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class Submission(Base):
    """SQLAlchemy model for submission records"""
    __tablename__ = 'submissions'
    __table_args__ = (
        UniqueConstraint('submission_id', name='uq_submissions_submission_id'),
    )

    # Primary key - UUID as string
    id = Column(String(36), primary_key=True)
    submission_id = Column(String(20), nullable=False)

    # Contact fields
    full_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, index=True)
    phone = Column(String(50), nullable=False)
    position = Column(String(255), nullable=False)

    # Organisation fields
    branch = Column(String(255), nullable=False)
    region = Column(String(50), nullable=False, index=True)

    # Classification
    submission_type = Column(String(100), nullable=False, index=True)
    subject = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    urgency = Column(String(20), nullable=False, default='normal', index=True)

    # Attachment descriptors, in upload order
    files = Column(JSONType, nullable=False, default=list)

    # Review fields
    status = Column(String(50), nullable=False, default='pending', index=True)
    reviewed_by = Column(String(255), nullable=True)
    review_notes = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)

    # Provenance
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def to_dict(self) -> dict:
        """Convert model to the wire representation used by the API"""
        return {
            "_id": self.id,
            "id": self.id,
            "submissionId": self.submission_id,
            "fullName": self.full_name,
            "email": self.email,
            "phone": self.phone,
            "position": self.position,
            "branch": self.branch,
            "region": self.region,
            "regionDisplay": region_display(self.region),
            "submissionType": self.submission_type,
            "subject": self.subject,
            "description": self.description,
            "urgency": self.urgency,
            "urgencyDisplay": urgency_display(self.urgency),
            "files": [_descriptor_to_wire(f) for f in (self.files or [])],
            "status": self.status,
            "reviewedBy": self.reviewed_by,
            "reviewedAt": _isoformat(self.reviewed_at),
            "reviewNotes": self.review_notes,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "createdAt": _isoformat(self.created_at),
            "updatedAt": _isoformat(self.updated_at),
        }


def _descriptor_to_wire(stored: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "fileName": stored["file_name"],
        "fileId": stored["file_id"],
        "fileSize": stored["file_size"],
        "fileType": stored["file_type"],
        "uploadedAt": stored["uploaded_at"],
    }


class StoredObjectRecord(Base):
    """Registry row for one attachment object held by the blob backend"""
    __tablename__ = 'stored_objects'

    id = Column(String(32), primary_key=True)
    object_key = Column(String(1024), nullable=False, index=True)
    owner_submission_id = Column(String(20), nullable=False, index=True)
    original_name = Column(String(500), nullable=False)
    content_type = Column(String(100), nullable=False)
    size = Column(Integer, nullable=False)
    uploaded_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class RateLimitCounter(Base):
    """Shared request counter for one client inside one rate-limit scope"""
    __tablename__ = 'rate_limit_counters'

    key = Column(String(255), primary_key=True)
    count = Column(Integer, nullable=False, default=0)
    reset_at = Column(Float, nullable=False, index=True)


class DatabaseService:
    """Service for managing database connections and sessions"""

    def __init__(
        self,
        database_url: Optional[str] = None,
        project_id: Optional[str] = None,
        region: Optional[str] = None,
        instance_name: Optional[str] = None,
        database_name: Optional[str] = None,
        db_user: Optional[str] = None,
        secret_name: Optional[str] = None
    ):
        """
        Initialize database service.

        Args:
            database_url: SQLAlchemy URL. When empty, Cloud SQL settings are used
            project_id: GCP project ID
            region: Cloud SQL instance region
            instance_name: Cloud SQL instance name
            database_name: Database name
            db_user: Database user
            secret_name: Secret Manager secret name for database password
        """
        self.database_url = database_url
        self.project_id = project_id
        self.region = region
        self.instance_name = instance_name
        self.database_name = database_name
        self.db_user = db_user
        self.secret_name = secret_name

        self.connector = None
        self.engine = None
        self.SessionLocal = None

        target = database_url or f"cloudsql:{project_id}:{region}:{instance_name}"
        logger.info(f"Initializing DatabaseService for: {target.split('@')[-1]}")

    def _get_db_password(self) -> str:
        """Fetch database password from Secret Manager"""
        try:
            client = secretmanager.SecretManagerServiceClient()
            secret_path = f"projects/{self.project_id}/secrets/{self.secret_name}/versions/latest"
            response = client.access_secret_version(request={"name": secret_path})
            password = response.payload.data.decode("UTF-8")
            logger.info("Successfully retrieved database password from Secret Manager")
            return password
        except Exception as e:
            logger.error(f"Failed to retrieve database password from Secret Manager: {e}")
            raise

    def _get_connection(self) -> Any:
        """Create a database connection using Cloud SQL Connector"""
        try:
            instance_connection_string = f"{self.project_id}:{self.region}:{self.instance_name}"
            conn = self.connector.connect(
                instance_connection_string,
                "pg8000",
                user=self.db_user,
                password=self._get_db_password(),
                db=self.database_name
            )
            return conn
        except Exception as e:
            logger.error(f"Failed to create database connection: {e}")
            raise

    def _create_engine(self):
        if self.database_url:
            if self.database_url.startswith("sqlite"):
                # SQLite configuration for development/testing.
                # An in-memory database only exists on its one connection.
                in_memory = ":memory:" in self.database_url or self.database_url == "sqlite://"
                return create_engine(
                    self.database_url,
                    connect_args={"check_same_thread": False, "timeout": 30},
                    poolclass=StaticPool if in_memory else None,
                )
            return create_engine(
                self.database_url,
                pool_pre_ping=True,
                pool_size=5,
                max_overflow=10,
                pool_recycle=1800,
            )

        from google.cloud.sql.connector import Connector

        logger.info("Initializing Cloud SQL connector...")
        self.connector = Connector()
        return create_engine(
            "postgresql+pg8000://",
            creator=self._get_connection,
            pool_size=5,
            max_overflow=2,
            pool_timeout=30,
            pool_recycle=1800,  # Recycle connections after 30 minutes
        )

    def initialize(self):
        """Initialize database connection pool and create tables"""
        try:
            self.engine = self._create_engine()

            # Create session factory
            self.SessionLocal = sessionmaker(
                autocommit=False,
                autoflush=False,
                expire_on_commit=False,
                bind=self.engine
            )

            # Create tables if they don't exist
            Base.metadata.create_all(bind=self.engine)
            logger.info("Database initialization complete. Tables created/verified.")

        except Exception as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    def get_session(self) -> Session:
        """Get a new database session"""
        if not self.SessionLocal:
            raise RuntimeError("Database not initialized. Call initialize() first.")
        return self.SessionLocal()

    def close(self):
        """Close database connections and cleanup"""
        try:
            if self.engine:
                self.engine.dispose()
            if self.connector:
                self.connector.close()
                logger.info("Database connector closed successfully")
        except Exception as e:
            logger.error(f"Error closing database connector: {e}")

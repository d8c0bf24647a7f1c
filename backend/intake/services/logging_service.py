from datetime import datetime, timezone
from typing import Dict, Optional, Any
import json
import logging

from google.cloud import logging as cloud_logging

fallback_logger = logging.getLogger("intake.audit")


class AuditLoggingService:
    def __init__(self, project_id: Optional[str] = None, enabled: bool = True,
                 log_name: str = "submission-intake-audit"):
        """
        Initialize audit logging service.

        Args:
            project_id: GCP project ID
            enabled: Write to Cloud Logging. When False, entries go to the
                "intake.audit" stdlib logger as JSON
            log_name: Cloud Logging log name
        """
        self.project_id = project_id
        self.enabled = enabled
        self.logger = None

        if enabled:
            # Initialize Cloud Logging client
            self.client = cloud_logging.Client(project=project_id)
            self.logger = self.client.logger(log_name)

    def log_event(
        self,
        event_type: str,
        severity: str = "INFO",
        submission_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Log an audit event.

        Args:
            event_type: Type of event (e.g., "submission_created", "status_updated")
            severity: Log severity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            submission_id: Public submission id (if applicable)
            ip_address: Client IP address
            user_agent: Client user agent
            details: Additional event details
        """
        # Build structured log entry
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "severity": severity
        }

        if submission_id:
            log_entry["submission_id"] = submission_id

        if ip_address:
            log_entry["ip_address"] = ip_address

        if user_agent:
            log_entry["user_agent"] = user_agent

        if details:
            log_entry["details"] = details

        try:
            if self.logger is not None:
                self.logger.log_struct(log_entry, severity=severity)
            else:
                level = logging.getLevelName(severity)
                if not isinstance(level, int):
                    level = logging.INFO
                fallback_logger.log(level, json.dumps(log_entry, default=str))
        except Exception as e:
            # Never fail the operation due to logging error
            fallback_logger.warning(f"Failed to write audit event {event_type}: {e}")

    # Convenience methods for common events

    def log_submission_created(self, submission_id: str, submission_type: str,
                               file_count: int, ip_address: Optional[str] = None,
                               user_agent: Optional[str] = None):
        """Log submission creation event"""
        self.log_event(
            event_type="submission_created",
            submission_id=submission_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={
                "submission_type": submission_type,
                "file_count": file_count,
                "action": "Submission received"
            }
        )

    def log_attachment_upload_failed(self, submission_id: str, filename: str, error: str):
        """Log a failed attachment upload during submission creation"""
        self.log_event(
            event_type="attachment_upload_failed",
            submission_id=submission_id,
            severity="WARNING",
            details={
                "filename": filename,
                "error": error,
                "action": "Attachment could not be stored; submission kept"
            }
        )

    def log_status_updated(self, submission_id: str, previous_status: str,
                           new_status: str, reviewed_by: Optional[str] = None):
        """Log review status change"""
        details = {
            "previous_status": previous_status,
            "new_status": new_status,
            "action": "Submission status updated"
        }
        if reviewed_by:
            details["reviewed_by"] = reviewed_by

        self.log_event(
            event_type="status_updated",
            submission_id=submission_id,
            details=details
        )

    def log_submission_deleted(self, submission_id: str, files_deleted: int,
                               files_failed: int = 0):
        """Log submission deletion event"""
        self.log_event(
            event_type="submission_deleted",
            submission_id=submission_id,
            severity="WARNING",
            details={
                "files_deleted": files_deleted,
                "files_failed": files_failed,
                "action": "Submission and attachments deleted"
            }
        )

    def log_attachment_delete_failed(self, submission_id: str, file_id: str,
                                     filename: str, error: str):
        """Log an attachment that could not be removed during deletion"""
        self.log_event(
            event_type="attachment_delete_failed",
            submission_id=submission_id,
            severity="ERROR",
            details={
                "file_id": file_id,
                "filename": filename,
                "error": error,
                "action": "Attachment delete failed; record deletion continued"
            }
        )

    def log_file_downloaded(self, file_id: str, filename: str,
                            submission_id: Optional[str] = None,
                            ip_address: Optional[str] = None):
        """Log attachment download event"""
        self.log_event(
            event_type="file_downloaded",
            submission_id=submission_id,
            ip_address=ip_address,
            details={
                "file_id": file_id,
                "filename": filename,
                "action": "Attachment downloaded"
            }
        )

    def log_rate_limit_exceeded(self, scope: str, client_key: str, retry_after: int):
        """Log a rejected request"""
        self.log_event(
            event_type="rate_limit_exceeded",
            severity="WARNING",
            ip_address=client_key,
            details={
                "scope": scope,
                "retry_after_seconds": retry_after,
                "action": "Request rejected by rate limiter"
            }
        )

"""Tests for audit logging."""

import json
import logging
from unittest.mock import patch

from intake.services.logging_service import AuditLoggingService


class TestAuditLoggingService:

    def test_disabled_writes_json_to_stdlib_logger(self, caplog):
        service = AuditLoggingService(enabled=False)
        with caplog.at_level(logging.INFO, logger="intake.audit"):
            service.log_submission_created("SUB-202603-0042", "Monthly Report", 2, ip_address="10.0.0.1")

        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["event_type"] == "submission_created"
        assert entry["submission_id"] == "SUB-202603-0042"
        assert entry["ip_address"] == "10.0.0.1"
        assert entry["details"]["file_count"] == 2

    def test_severity_maps_to_level(self, caplog):
        service = AuditLoggingService(enabled=False)
        with caplog.at_level(logging.INFO, logger="intake.audit"):
            service.log_attachment_delete_failed("SUB-202603-0042", "a" * 32, "a.pdf", "boom")
        assert caplog.records[-1].levelno == logging.ERROR

    def test_enabled_writes_to_cloud_logging(self):
        with patch("intake.services.logging_service.cloud_logging.Client") as client:
            service = AuditLoggingService(project_id="test-project", enabled=True)
            service.log_status_updated("SUB-202603-0042", "pending", "approved", "Admin")

        client.assert_called_once_with(project="test-project")
        cloud_logger = client.return_value.logger.return_value
        entry = cloud_logger.log_struct.call_args.args[0]
        assert entry["details"]["new_status"] == "approved"
        assert entry["details"]["reviewed_by"] == "Admin"

    def test_cloud_logging_failure_is_not_raised(self, caplog):
        with patch("intake.services.logging_service.cloud_logging.Client") as client:
            client.return_value.logger.return_value.log_struct.side_effect = RuntimeError("offline")
            service = AuditLoggingService(project_id="test-project", enabled=True)
            with caplog.at_level(logging.WARNING, logger="intake.audit"):
                service.log_submission_deleted("SUB-202603-0042", 1)

        assert "Failed to write audit event submission_deleted" in caplog.text

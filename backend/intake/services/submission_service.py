"""
Submission lifecycle: intake, review, and removal.

Records and attachment bytes live in different stores with no shared
transaction. The ordering here keeps failures recoverable:

- create: insert the record first (so its public id can namespace the
  attachment keys), upload attachments, then write the descriptors back.
  A failed upload leaves the record in place with the files that did succeed.
- delete: remove attachments first and the record last. A crash in between
  leaves a record with stale descriptors, which a repeated delete cleans up.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, BinaryIO, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from fastapi import BackgroundTasks

from intake.errors import (
    DuplicatePublicId,
    ObjectKeyExists,
    PersistenceError,
    SubmissionNotFound,
)
from intake.models.attachment import AttachmentDescriptor, AttachmentMetadata, IncomingFile
from intake.models.submission import ClientMeta, SubmissionForm, SubmissionStatus
from intake.services.attachment_store import AttachmentStore, build_object_key
from intake.services.database_service import Submission, utcnow
from intake.services.identifier import generate_submission_id
from intake.services.logging_service import AuditLoggingService
from intake.services.notification_service import NotificationService
from intake.services.submission_repository import (
    SubmissionFilter,
    SubmissionRepository,
    parse_submission_key,
)
from intake.utils.validators import (
    MAX_FILE_SIZE,
    MAX_FILES,
    sanitize_text,
    validate_attachments,
    validate_status_update,
    validate_submission_fields,
)

logger = logging.getLogger(__name__)

# Attempts at a fresh key when two uploads land on the same millisecond and name
MAX_KEY_ATTEMPTS = 3


@dataclass
class SubmissionReceipt:
    """Outcome of a create call."""
    submission: Submission
    warnings: List[str] = field(default_factory=list)


class SubmissionService:
    """
    Orchestrates the submission repository, attachment store and notifier.

    Attributes:
        repository: Submission record persistence
        attachment_store: Attachment object persistence
        notifier: Receives every new submission; may be None
        audit_logger: Structured audit trail; may be None
        id_generator: Produces public submission ids
        max_id_attempts: Inserts tried before a public id collision is fatal
        clock: Source of upload and review timestamps
    """

    def __init__(
        self,
        repository: SubmissionRepository,
        attachment_store: AttachmentStore,
        notifier: Optional[NotificationService] = None,
        audit_logger: Optional[AuditLoggingService] = None,
        id_generator: Callable[[], str] = generate_submission_id,
        max_id_attempts: int = 3,
        max_file_size: int = MAX_FILE_SIZE,
        max_files: int = MAX_FILES,
        clock: Callable[[], datetime] = utcnow
    ):
        self.repository = repository
        self.attachment_store = attachment_store
        self.notifier = notifier
        self.audit_logger = audit_logger
        self.id_generator = id_generator
        self.max_id_attempts = max_id_attempts
        self.max_file_size = max_file_size
        self.max_files = max_files
        self.clock = clock

    async def create(
        self,
        raw_fields: Mapping[str, Any],
        files: Sequence[IncomingFile] = (),
        client: Optional[ClientMeta] = None,
        background_tasks: Optional[BackgroundTasks] = None
    ) -> SubmissionReceipt:
        """
        Validate and persist a submission with its attachments.

        Args:
            raw_fields: Form fields keyed by wire name
            files: Attachments in the order the client sent them
            client: Submitting client's address and user agent
            background_tasks: Where to schedule notifications; when omitted
                they run on the default executor. Never awaited.

        Returns:
            SubmissionReceipt with the finalized record and any upload warnings

        Raises:
            ValidationError: If fields or files are invalid (nothing is stored)
            PersistenceError: If the record cannot be written
        """
        client = client or ClientMeta()
        form = validate_submission_fields(raw_fields)
        validate_attachments(files, self.max_file_size, self.max_files)

        submission = await asyncio.to_thread(self._insert_with_unique_id, form, client)
        warnings: List[str] = []

        if files:
            descriptors, warnings = await self._store_attachments(submission.submission_id, files)
            if descriptors:
                updated = await asyncio.to_thread(
                    self.repository.set_attachments, submission.id, descriptors
                )
                if updated is None:
                    raise SubmissionNotFound(submission.submission_id)
                submission = updated

        logger.info(
            f"Submission {submission.submission_id} created with "
            f"{len(submission.files or [])}/{len(files)} attachment(s)"
        )
        if self.audit_logger:
            self.audit_logger.log_submission_created(
                submission_id=submission.submission_id,
                submission_type=submission.submission_type,
                file_count=len(submission.files or []),
                ip_address=client.ip_address,
                user_agent=client.user_agent
            )

        self._dispatch_notification(submission, background_tasks)
        return SubmissionReceipt(submission=submission, warnings=warnings)

    def _insert_with_unique_id(self, form: SubmissionForm, client: ClientMeta) -> Submission:
        for attempt in range(1, self.max_id_attempts + 1):
            public_id = self.id_generator()
            try:
                return self.repository.insert(
                    id=str(uuid.uuid4()),
                    submission_id=public_id,
                    full_name=form.full_name,
                    email=form.email,
                    phone=form.phone,
                    position=form.position,
                    branch=form.branch,
                    region=form.region.value,
                    submission_type=form.submission_type.value,
                    subject=form.subject,
                    description=form.description,
                    urgency=form.urgency.value,
                    status=SubmissionStatus.PENDING.value,
                    files=[],
                    ip_address=client.ip_address,
                    user_agent=client.user_agent
                )
            except DuplicatePublicId:
                logger.warning(
                    f"Submission id {public_id} already taken "
                    f"(attempt {attempt}/{self.max_id_attempts})"
                )
        raise PersistenceError(
            f"Could not allocate a unique submission id after {self.max_id_attempts} attempts"
        )

    async def _store_attachments(
        self,
        owner_submission_id: str,
        files: Sequence[IncomingFile]
    ) -> Tuple[List[Dict[str, Any]], List[str]]:
        """Upload files concurrently; descriptors keep the input order."""
        results = await asyncio.gather(
            *(asyncio.to_thread(self._store_one, owner_submission_id, incoming) for incoming in files),
            return_exceptions=True
        )

        descriptors: List[Dict[str, Any]] = []
        warnings: List[str] = []
        for incoming, result in zip(files, results):
            if isinstance(result, Exception):
                logger.error(
                    f"Failed to store attachment {incoming.file_name!r} "
                    f"for {owner_submission_id}: {result}"
                )
                warnings.append(f"Failed to store attachment '{incoming.file_name}'")
                if self.audit_logger:
                    self.audit_logger.log_attachment_upload_failed(
                        owner_submission_id, incoming.file_name, str(result)
                    )
            elif isinstance(result, BaseException):
                raise result
            else:
                descriptors.append(result.model_dump(mode="json"))
        return descriptors, warnings

    def _store_one(self, owner_submission_id: str, incoming: IncomingFile) -> AttachmentDescriptor:
        uploaded_at = self.clock()
        for attempt in range(MAX_KEY_ATTEMPTS):
            object_key = build_object_key(owner_submission_id, uploaded_at, incoming.file_name)
            try:
                stored = self.attachment_store.put(
                    object_key,
                    incoming.stream,
                    AttachmentMetadata(
                        original_name=incoming.file_name,
                        content_type=incoming.content_type,
                        owner_submission_id=owner_submission_id,
                        uploaded_at=uploaded_at
                    )
                )
                break
            except ObjectKeyExists:
                if attempt == MAX_KEY_ATTEMPTS - 1:
                    raise
                uploaded_at += timedelta(milliseconds=1)

        return AttachmentDescriptor(
            file_name=incoming.file_name,
            file_id=stored.object_id,
            file_size=stored.size,
            file_type=incoming.content_type,
            uploaded_at=uploaded_at
        )

    def _dispatch_notification(
        self,
        submission: Submission,
        background_tasks: Optional[BackgroundTasks]
    ) -> None:
        if self.notifier is None:
            return
        if background_tasks is not None:
            background_tasks.add_task(self._notify_safely, submission)
        else:
            asyncio.get_running_loop().run_in_executor(None, self._notify_safely, submission)

    def _notify_safely(self, submission: Submission) -> None:
        try:
            self.notifier.notify(submission)
        except Exception as e:
            logger.error(f"Notification for {submission.submission_id} failed: {e}")

    def get_by_identifier(self, identifier: str) -> Submission:
        """
        Fetch a submission by internal id or public id.

        Raises:
            SubmissionNotFound: If neither matches
        """
        submission = self.repository.get(parse_submission_key(identifier))
        if submission is None:
            raise SubmissionNotFound(identifier)
        return submission

    def find_by_email(self, email: str) -> List[Submission]:
        return self.repository.find_by_email(email)

    def list(
        self,
        filters: Optional[SubmissionFilter] = None,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "createdAt",
        order: str = "desc"
    ) -> Tuple[List[Submission], int]:
        """Filtered page of submissions and the total matching the filter."""
        return self.repository.list(filters or SubmissionFilter(), page, limit, sort_by, order)

    def update_status(
        self,
        identifier: str,
        status: Optional[str],
        reviewed_by: Optional[str] = None,
        review_notes: Optional[str] = None
    ) -> Submission:
        """
        Record a review decision.

        reviewed_at is stamped on every call, even when the status does not
        change. Reviewer and notes are only overwritten when provided.

        Raises:
            ValidationError: If status is missing or unknown (record untouched)
            SubmissionNotFound: If the identifier does not resolve
        """
        new_status = validate_status_update(status)
        submission = self.get_by_identifier(identifier)
        previous_status = submission.status

        updated = self.repository.update_review(
            submission.id,
            new_status.value,
            reviewed_at=self.clock(),
            reviewed_by=sanitize_text(reviewed_by),
            review_notes=sanitize_text(review_notes)
        )
        if updated is None:
            raise SubmissionNotFound(identifier)

        if self.audit_logger:
            self.audit_logger.log_status_updated(
                updated.submission_id, previous_status, updated.status, updated.reviewed_by
            )
        return updated

    async def delete(self, identifier: str) -> None:
        """
        Delete a submission and all of its attachments.

        Every attachment delete is attempted; individual failures are logged
        and do not stop the record from being removed.

        Raises:
            SubmissionNotFound: If the identifier does not resolve
        """
        submission = await asyncio.to_thread(self.get_by_identifier, identifier)
        stored_files = list(submission.files or [])

        results = await asyncio.gather(
            *(asyncio.to_thread(self.attachment_store.delete, stored["file_id"]) for stored in stored_files),
            return_exceptions=True
        )

        failed = 0
        for stored, result in zip(stored_files, results):
            if isinstance(result, Exception):
                failed += 1
                logger.error(f"Error deleting file {stored['file_name']}: {result}")
                if self.audit_logger:
                    self.audit_logger.log_attachment_delete_failed(
                        submission.submission_id, stored["file_id"], stored["file_name"], str(result)
                    )
            elif isinstance(result, BaseException):
                raise result

        deleted = await asyncio.to_thread(self.repository.delete, submission.id)
        if not deleted:
            raise SubmissionNotFound(identifier)

        if self.audit_logger:
            self.audit_logger.log_submission_deleted(
                submission.submission_id, len(stored_files) - failed, failed
            )

    def stats(self) -> Dict[str, Any]:
        return self.repository.stats()

    def open_attachment(self, file_id: str) -> Tuple[AttachmentMetadata, int, BinaryIO]:
        """
        Open an attachment for download.

        Raises:
            AttachmentNotFound: If the file id is unknown
        """
        return self.attachment_store.get(file_id)

"""
Persistence operations over submission records.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from intake.errors import DuplicatePublicId, PersistenceError, ValidationError
from intake.models.submission import SubmissionStatus, Urgency
from intake.services.database_service import DatabaseService, Submission, utcnow
from intake.services.identifier import is_public_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ByInternalId:
    value: str


@dataclass(frozen=True)
class ByPublicId:
    value: str


SubmissionKey = Union[ByInternalId, ByPublicId]


def parse_submission_key(raw: str) -> SubmissionKey:
    """
    Resolve a path identifier to a tagged lookup key.

    Public ids have a fixed SUB-YYYYMM-dddd shape that internal UUIDs can
    never match, so the shape alone decides which column is searched.
    """
    raw = raw.strip()
    if is_public_id(raw):
        return ByPublicId(raw)
    return ByInternalId(raw)


# Wire names accepted by sortBy
SORT_FIELDS = {
    "createdAt": Submission.created_at,
    "updatedAt": Submission.updated_at,
    "submissionId": Submission.submission_id,
    "status": Submission.status,
    "urgency": Submission.urgency,
    "region": Submission.region,
    "submissionType": Submission.submission_type,
    "fullName": Submission.full_name,
    "reviewedAt": Submission.reviewed_at,
}

FILTER_FIELDS = {
    "status": Submission.status,
    "region": Submission.region,
    "urgency": Submission.urgency,
    "submission_type": Submission.submission_type,
}


@dataclass
class SubmissionFilter:
    """Optional, AND-combined equality filters for listing."""
    status: Optional[str] = None
    region: Optional[str] = None
    urgency: Optional[str] = None
    submission_type: Optional[str] = None


class SubmissionRepository:
    """Submission CRUD on top of the database service"""

    def __init__(self, database_service: DatabaseService):
        self.database_service = database_service

    def insert(self, **fields: Any) -> Submission:
        """
        Insert a new submission record.

        Args:
            **fields: Column values, including id and submission_id

        Returns:
            Created Submission object

        Raises:
            DuplicatePublicId: If submission_id is already taken
            PersistenceError: If the store rejects the insert for any other reason
        """
        session = self.database_service.get_session()
        try:
            submission = Submission(**fields)
            session.add(submission)
            session.commit()
            session.refresh(submission)
            logger.info(f"Created submission record: {submission.submission_id}")
            return submission
        except IntegrityError as e:
            session.rollback()
            if _is_public_id_violation(e):
                raise DuplicatePublicId(fields.get("submission_id", ""))
            logger.error(f"Failed to create submission: {e}")
            raise PersistenceError(f"Failed to create submission: {e.orig}")
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to create submission: {e}")
            raise PersistenceError(f"Failed to create submission: {e}")
        finally:
            session.close()

    def get(self, key: SubmissionKey) -> Optional[Submission]:
        """Get a submission by internal id or public id"""
        session = self.database_service.get_session()
        try:
            query = session.query(Submission)
            if isinstance(key, ByPublicId):
                query = query.filter(Submission.submission_id == key.value)
            else:
                query = query.filter(Submission.id == key.value)
            return query.first()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to fetch submission: {e}")
        finally:
            session.close()

    def find_by_email(self, email: str) -> List[Submission]:
        """Get all submissions for an email address, newest first"""
        session = self.database_service.get_session()
        try:
            return session.query(Submission).filter(
                Submission.email == email.strip().lower()
            ).order_by(Submission.created_at.desc()).all()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to fetch submissions: {e}")
        finally:
            session.close()

    def list(
        self,
        filters: SubmissionFilter,
        page: int = 1,
        limit: int = 20,
        sort_by: str = "createdAt",
        order: str = "desc"
    ) -> Tuple[List[Submission], int]:
        """
        List submissions matching the filters, one page at a time.

        Args:
            filters: Equality filters; None fields are ignored
            page: 1-indexed page number
            limit: Page size
            sort_by: Wire name of the sort field
            order: "asc" or "desc"

        Returns:
            Tuple of (records on the page, total count matching the filters)

        Raises:
            ValidationError: If pagination or sorting parameters are invalid
        """
        errors = []
        if page < 1:
            errors.append("Page must be 1 or greater")
        if limit < 1:
            errors.append("Limit must be 1 or greater")
        if sort_by not in SORT_FIELDS:
            errors.append(f"Cannot sort by '{sort_by}'. Allowed: {', '.join(SORT_FIELDS)}")
        if errors:
            raise ValidationError("Invalid query parameters", errors)

        sort_column = SORT_FIELDS[sort_by]
        ordering = sort_column.asc() if order == "asc" else sort_column.desc()

        session = self.database_service.get_session()
        try:
            query = session.query(Submission)
            for name, column in FILTER_FIELDS.items():
                value = getattr(filters, name)
                if value:
                    query = query.filter(column == value)

            total = query.count()
            records = query.order_by(ordering, Submission.id).offset(
                (page - 1) * limit
            ).limit(limit).all()
            return records, total
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to list submissions: {e}")
        finally:
            session.close()

    def update(self, submission_pk: str, **kwargs: Any) -> Optional[Submission]:
        """
        Update submission record

        Args:
            submission_pk: Internal submission id
            **kwargs: Fields to update

        Returns:
            Updated Submission object or None if not found
        """
        session = self.database_service.get_session()
        try:
            submission = session.get(Submission, submission_pk)
            if not submission:
                return None

            for key, value in kwargs.items():
                if hasattr(submission, key):
                    setattr(submission, key, value)

            submission.updated_at = utcnow()
            session.commit()
            session.refresh(submission)
            logger.info(f"Updated submission: {submission.submission_id}")
            return submission
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to update submission: {e}")
            raise PersistenceError(f"Failed to update submission: {e}")
        finally:
            session.close()

    def set_attachments(self, submission_pk: str, descriptors: List[Dict[str, Any]]) -> Optional[Submission]:
        """Replace the attachment descriptor list of a submission"""
        return self.update(submission_pk, files=list(descriptors))

    def update_review(
        self,
        submission_pk: str,
        status: str,
        reviewed_at: datetime,
        reviewed_by: Optional[str] = None,
        review_notes: Optional[str] = None
    ) -> Optional[Submission]:
        """Set the review status; reviewer and notes change only when given"""
        changes: Dict[str, Any] = {"status": status, "reviewed_at": reviewed_at}
        if reviewed_by:
            changes["reviewed_by"] = reviewed_by
        if review_notes:
            changes["review_notes"] = review_notes
        return self.update(submission_pk, **changes)

    def delete(self, submission_pk: str) -> bool:
        """Delete submission by internal id"""
        session = self.database_service.get_session()
        try:
            deleted = session.query(Submission).filter(
                Submission.id == submission_pk
            ).delete()
            session.commit()
            if deleted:
                logger.info(f"Deleted submission: {submission_pk}")
            return bool(deleted)
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to delete submission: {e}")
            raise PersistenceError(f"Failed to delete submission: {e}")
        finally:
            session.close()

    def stats(self) -> Dict[str, Any]:
        """Aggregate counts over all submissions"""
        session = self.database_service.get_session()
        try:
            def count_where(*criteria) -> int:
                return session.query(func.count(Submission.id)).filter(*criteria).scalar()

            def grouped(column) -> List[Dict[str, Any]]:
                count = func.count(Submission.id).label("count")
                rows = session.query(column, count).group_by(column).order_by(
                    count.desc(), column
                ).all()
                return [{"_id": value, "count": n} for value, n in rows]

            return {
                "total": session.query(func.count(Submission.id)).scalar(),
                "pending": count_where(Submission.status == SubmissionStatus.PENDING.value),
                "underReview": count_where(Submission.status == SubmissionStatus.UNDER_REVIEW.value),
                "approved": count_where(Submission.status == SubmissionStatus.APPROVED.value),
                "urgent": count_where(Submission.urgency == Urgency.URGENT.value),
                "byRegion": grouped(Submission.region),
                "byType": grouped(Submission.submission_type),
            }
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to compute statistics: {e}")
        finally:
            session.close()


def _is_public_id_violation(error: IntegrityError) -> bool:
    message = str(error.orig).lower()
    return "submission_id" in message or "uq_submissions_submission_id" in message

"""
Submission endpoints.

Review endpoints (status update, delete) carry no access control; an
authorization layer with reviewer and admin capabilities has to be added
before production use.
"""

import math
from typing import BinaryIO, Iterator, List, Optional
from urllib.parse import quote

from fastapi import (
    APIRouter,
    BackgroundTasks,
    Depends,
    File,
    Form,
    Request,
    UploadFile,
    status,
)
from fastapi.responses import StreamingResponse

from intake.errors import RateLimitExceeded
from intake.models.attachment import IncomingFile
from intake.models.submission import ClientMeta, StatusUpdateRequest
from intake.services.rate_limiter import RateLimiter
from intake.services.submission_repository import SubmissionFilter
from intake.services.submission_service import SubmissionService

DOWNLOAD_CHUNK_SIZE = 64 * 1024


def client_address(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _enforce(request: Request, limiter: RateLimiter) -> None:
    try:
        limiter.check(client_address(request))
    except RateLimitExceeded as e:
        request.app.state.audit_logger.log_rate_limit_exceeded(
            limiter.scope, client_address(request) or "unknown", e.retry_after
        )
        raise


def api_rate_limit(request: Request) -> None:
    """General per-client limit applied to every /api route."""
    _enforce(request, request.app.state.api_rate_limiter)


def submission_rate_limit(request: Request) -> None:
    """Stricter per-client limit on new submissions."""
    _enforce(request, request.app.state.submission_rate_limiter)


def get_submission_service(request: Request) -> SubmissionService:
    return request.app.state.submission_service


router = APIRouter(
    prefix="/api/submissions",
    tags=["submissions"],
    dependencies=[Depends(api_rate_limit)]
)


def _file_size(file_obj: BinaryIO) -> int:
    file_obj.seek(0, 2)  # Seek to end
    size = file_obj.tell()
    file_obj.seek(0)  # Reset to beginning
    return size


def _iter_file(stream: BinaryIO) -> Iterator[bytes]:
    try:
        while True:
            chunk = stream.read(DOWNLOAD_CHUNK_SIZE)
            if not chunk:
                break
            yield chunk
    finally:
        stream.close()


def _content_disposition(filename: str) -> str:
    if filename.isascii() and '"' not in filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename*=UTF-8''{quote(filename)}"


@router.post("", status_code=status.HTTP_201_CREATED, dependencies=[Depends(submission_rate_limit)])
async def create_submission(
    request: Request,
    background_tasks: BackgroundTasks,
    fullName: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    phone: Optional[str] = Form(None),
    position: Optional[str] = Form(None),
    branch: Optional[str] = Form(None),
    region: Optional[str] = Form(None),
    submissionType: Optional[str] = Form(None),
    subject: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    urgency: Optional[str] = Form(None),
    files: Optional[List[UploadFile]] = File(None),
    service: SubmissionService = Depends(get_submission_service)
):
    """
    Create a submission from a multipart form with up to ten attachments.

    Returns:
        Envelope with the public submission id and the stored record. Files
        that could not be stored are listed under data.warnings.

    Raises:
        ValidationError: If a field or file is invalid
    """
    raw_fields = {
        "fullName": fullName,
        "email": email,
        "phone": phone,
        "position": position,
        "branch": branch,
        "region": region,
        "submissionType": submissionType,
        "subject": subject,
        "description": description,
        "urgency": urgency,
    }
    incoming = [
        IncomingFile(
            file_name=upload.filename or "",
            content_type=upload.content_type or "",
            stream=upload.file,
            size=_file_size(upload.file)
        )
        for upload in files or []
    ]
    client = ClientMeta(
        ip_address=client_address(request),
        user_agent=request.headers.get("user-agent")
    )

    receipt = await service.create(raw_fields, incoming, client, background_tasks)
    submission = receipt.submission

    data = {
        "submissionId": submission.submission_id,
        "submission": submission.to_dict(),
    }
    if receipt.warnings:
        data["warnings"] = receipt.warnings

    return {
        "success": True,
        "message": "Submission created successfully",
        "data": data,
    }


@router.get("")
def list_submissions(
    status: Optional[str] = None,
    region: Optional[str] = None,
    urgency: Optional[str] = None,
    submissionType: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    sortBy: str = "createdAt",
    order: str = "desc",
    service: SubmissionService = Depends(get_submission_service)
):
    """
    List submissions with optional filters, pagination and sorting.
    """
    filters = SubmissionFilter(
        status=status,
        region=region,
        urgency=urgency,
        submission_type=submissionType
    )
    submissions, total = service.list(filters, page, limit, sortBy, order)

    return {
        "success": True,
        "data": {
            "submissions": [s.to_dict() for s in submissions],
            "pagination": {
                "total": total,
                "page": page,
                "limit": limit,
                "pages": math.ceil(total / limit),
            },
        },
    }


@router.get("/stats")
def get_submission_stats(service: SubmissionService = Depends(get_submission_service)):
    """Aggregate counts by status, urgency, region and type."""
    return {"success": True, "data": service.stats()}


@router.get("/email/{email}")
def get_submissions_by_email(
    email: str,
    service: SubmissionService = Depends(get_submission_service)
):
    """All submissions made from one email address, newest first."""
    submissions = service.find_by_email(email)
    return {
        "success": True,
        "data": {
            "email": email,
            "count": len(submissions),
            "submissions": [s.to_dict() for s in submissions],
        },
    }


@router.get("/files/{file_id}")
def download_file(
    file_id: str,
    request: Request,
    service: SubmissionService = Depends(get_submission_service)
):
    """
    Stream an attachment with its original content type and file name.

    Raises:
        AttachmentNotFound: If the file id is unknown
    """
    metadata, size, stream = service.open_attachment(file_id)

    request.app.state.audit_logger.log_file_downloaded(
        file_id=file_id,
        filename=metadata.original_name,
        submission_id=metadata.owner_submission_id,
        ip_address=client_address(request)
    )

    return StreamingResponse(
        _iter_file(stream),
        media_type=metadata.content_type,
        headers={
            "Content-Disposition": _content_disposition(metadata.original_name),
            "Content-Length": str(size),
        }
    )


@router.get("/{submission_id}")
def get_submission(
    submission_id: str,
    service: SubmissionService = Depends(get_submission_service)
):
    """Get a submission by internal id or public submission id."""
    submission = service.get_by_identifier(submission_id)
    return {"success": True, "data": submission.to_dict()}


@router.patch("/{submission_id}/status")
def update_submission_status(
    submission_id: str,
    body: Optional[StatusUpdateRequest] = None,
    service: SubmissionService = Depends(get_submission_service)
):
    """Set the review status, reviewer and notes of a submission."""
    body = body or StatusUpdateRequest()
    submission = service.update_status(
        submission_id,
        body.status,
        reviewed_by=body.reviewedBy,
        review_notes=body.reviewNotes
    )
    return {
        "success": True,
        "message": "Submission status updated successfully",
        "data": submission.to_dict(),
    }


@router.delete("/{submission_id}")
async def delete_submission(
    submission_id: str,
    service: SubmissionService = Depends(get_submission_service)
):
    """Delete a submission and its attachments."""
    await service.delete(submission_id)
    return {
        "success": True,
        "message": "Submission deleted successfully",
    }

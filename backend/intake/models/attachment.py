"""
Attachment data models.
"""

from datetime import datetime
from typing import BinaryIO
from pydantic import BaseModel, Field


class AttachmentMetadata(BaseModel):
    """
    Metadata recorded alongside every stored attachment object.

    Attributes:
        original_name: File name as supplied by the submitter
        content_type: Declared MIME type
        owner_submission_id: Public id of the submission owning the object
        uploaded_at: Upload timestamp
    """
    original_name: str
    content_type: str
    owner_submission_id: str
    uploaded_at: datetime


class StoredObject(BaseModel):
    """Result of a successful put into the attachment store."""
    object_id: str
    object_key: str
    size: int = Field(..., ge=0)


class AttachmentDescriptor(BaseModel):
    """
    Reference to a stored attachment, embedded in a submission record.

    Attributes:
        file_name: Display file name (original, user-supplied)
        file_id: Object id in the attachment store
        file_size: Size in bytes
        file_type: Declared content type
        uploaded_at: Upload timestamp
    """
    file_name: str
    file_id: str
    file_size: int = Field(..., ge=0)
    file_type: str
    uploaded_at: datetime


class IncomingFile:
    """
    A file received with a submission, before it reaches the store.

    Wraps the spooled upload stream so the service never depends on the
    web framework's upload type.
    """

    def __init__(self, file_name: str, content_type: str, stream: BinaryIO, size: int):
        self.file_name = file_name
        self.content_type = content_type
        self.stream = stream
        self.size = size

    def __repr__(self) -> str:
        return f"IncomingFile({self.file_name!r}, {self.content_type!r}, size={self.size})"

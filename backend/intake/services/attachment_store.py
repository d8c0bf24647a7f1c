"""
Attachment store: binary objects owned by submissions.

Bytes live in a blob backend (GCS or local disk). A registry table maps each
store-assigned object id to its key and metadata; an object counts as stored
only once its registry row exists, and the row is written after the backend
has accepted the complete upload.
"""

import logging
import uuid
from datetime import datetime
from typing import BinaryIO, Tuple

from sqlalchemy.exc import SQLAlchemyError

from intake.errors import AttachmentNotFound, StoreReadError, StoreWriteError
from intake.models.attachment import AttachmentMetadata, StoredObject
from intake.services.database_service import DatabaseService, StoredObjectRecord
from intake.services.storage_service import StorageService
from intake.utils.validators import sanitize_filename

logger = logging.getLogger(__name__)


def build_object_key(owner_submission_id: str, uploaded_at: datetime, original_name: str) -> str:
    """
    Object key for an attachment: {owner}/{epoch_ms}-{original_name}.

    The owner prefix gives each submission its own namespace. The file name is
    sanitised so it cannot escape that namespace.
    """
    timestamp_ms = int(uploaded_at.timestamp() * 1000)
    return f"{owner_submission_id}/{timestamp_ms}-{sanitize_filename(original_name)}"


class AttachmentStore:
    """
    Put, get and delete attachment objects by id.

    Attributes:
        database_service: Holds the object registry
        storage: Blob backend holding the bytes
    """

    def __init__(self, database_service: DatabaseService, storage: StorageService):
        self.database_service = database_service
        self.storage = storage

    def put(self, object_key: str, stream: BinaryIO, metadata: AttachmentMetadata) -> StoredObject:
        """
        Store an object and register it.

        Args:
            object_key: Key built by build_object_key
            stream: Readable binary stream, consumed completely
            metadata: Original name, content type, owner and upload time

        Returns:
            StoredObject with the new object id and byte size

        Raises:
            StoreWriteError: If the backend or the registry write fails
        """
        object_id = uuid.uuid4().hex
        size = self.storage.upload_file(
            object_key,
            stream,
            content_type=metadata.content_type,
            metadata={
                "objectId": object_id,
                "originalName": metadata.original_name,
                "submissionId": metadata.owner_submission_id,
                "uploadedAt": metadata.uploaded_at.isoformat(),
            }
        )

        session = self.database_service.get_session()
        try:
            session.add(StoredObjectRecord(
                id=object_id,
                object_key=object_key,
                owner_submission_id=metadata.owner_submission_id,
                original_name=metadata.original_name,
                content_type=metadata.content_type,
                size=size,
                uploaded_at=metadata.uploaded_at
            ))
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"Failed to register object {object_key}: {e}")
            self._discard_blob(object_key)
            raise StoreWriteError(f"Failed to register {metadata.original_name}: {e}")
        finally:
            session.close()

        logger.info(f"Stored attachment {object_id} at {object_key} ({size} bytes)")
        return StoredObject(object_id=object_id, object_key=object_key, size=size)

    def get(self, object_id: str) -> Tuple[AttachmentMetadata, int, BinaryIO]:
        """
        Open a stored object.

        Returns:
            Tuple of (metadata, size in bytes, readable stream). The caller
            closes the stream.

        Raises:
            AttachmentNotFound: If no object has this id
            StoreReadError: If the backend fails
        """
        record = self._get_record(object_id)
        stream = self.storage.open_file(record.object_key)
        metadata = AttachmentMetadata(
            original_name=record.original_name,
            content_type=record.content_type,
            owner_submission_id=record.owner_submission_id,
            uploaded_at=record.uploaded_at
        )
        return metadata, record.size, stream

    def delete(self, object_id: str) -> None:
        """
        Delete a stored object.

        Raises:
            AttachmentNotFound: If no object has this id. Bulk cleanup callers
                treat this as non-fatal.
            StoreWriteError: If the backend or the registry delete fails
        """
        record = self._get_record(object_id)
        try:
            self.storage.delete_file(record.object_key)
        except AttachmentNotFound:
            logger.warning(f"Blob {record.object_key} for object {object_id} was already gone")

        session = self.database_service.get_session()
        try:
            session.query(StoredObjectRecord).filter(
                StoredObjectRecord.id == object_id
            ).delete()
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreWriteError(f"Failed to unregister object {object_id}: {e}")
        finally:
            session.close()
        logger.info(f"Deleted attachment {object_id}")

    def _get_record(self, object_id: str) -> StoredObjectRecord:
        session = self.database_service.get_session()
        try:
            record = session.get(StoredObjectRecord, object_id)
        except SQLAlchemyError as e:
            raise StoreReadError(f"Failed to look up object {object_id}: {e}")
        finally:
            session.close()
        if record is None:
            raise AttachmentNotFound(object_id)
        return record

    def _discard_blob(self, object_key: str) -> None:
        try:
            self.storage.delete_file(object_key)
        except (AttachmentNotFound, StoreWriteError) as e:
            logger.warning(f"Could not remove unregistered blob {object_key}: {e}")

"""
Blob storage backends for attachment bytes.

Both backends write create-only: an upload to a key that already exists
fails instead of replacing the stored bytes, and a partially written object
is never visible under its final key.
"""

import logging
import os
import shutil
import tempfile
import uuid
from typing import BinaryIO, Dict, Optional, Type

from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from intake.errors import (
    AttachmentNotFound,
    IntakeError,
    ObjectKeyExists,
    StoreReadError,
    StoreWriteError,
)

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class StorageService:
    """
    Interface shared by the blob backends.

    Blob names are the object keys built by the attachment store.
    """

    def upload_file(
        self,
        blob_name: str,
        file_obj: BinaryIO,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> int:
        """
        Store the full contents of file_obj under blob_name.

        Returns:
            Number of bytes stored

        Raises:
            StoreWriteError: If the blob exists already or the write fails
        """
        raise NotImplementedError

    def open_file(self, blob_name: str) -> BinaryIO:
        """
        Open a stored blob for reading.

        Raises:
            AttachmentNotFound: If the blob does not exist
            StoreReadError: If the backend fails
        """
        raise NotImplementedError

    def delete_file(self, blob_name: str) -> None:
        """
        Delete a stored blob.

        Raises:
            AttachmentNotFound: If the blob does not exist
            StoreWriteError: If the backend fails
        """
        raise NotImplementedError


class GCSStorageService(StorageService):
    """
    Google Cloud Storage backend.

    Attributes:
        project_id: GCP project identifier
        bucket_name: Bucket holding attachment objects
        client: Google Cloud Storage client instance
    """

    def __init__(self, project_id: Optional[str], bucket_name: str, client: Optional[storage.Client] = None):
        """
        Initialize the storage service.

        Args:
            project_id: GCP project identifier
            bucket_name: Bucket holding attachment objects
            client: Preconfigured client (created from project_id when omitted)
        """
        self.project_id = project_id
        self.bucket_name = bucket_name
        self.client = client or storage.Client(project=project_id)

    def upload_file(
        self,
        blob_name: str,
        file_obj: BinaryIO,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> int:
        bucket = self.client.bucket(self.bucket_name)
        blob = bucket.blob(blob_name)
        if metadata:
            blob.metadata = metadata

        try:
            # GCS only exposes an object once the upload is finalized;
            # if_generation_match=0 makes the write create-only.
            blob.upload_from_file(
                file_obj,
                rewind=True,
                content_type=content_type,
                if_generation_match=0
            )
        except gcs_exceptions.PreconditionFailed:
            raise ObjectKeyExists(blob_name)
        except gcs_exceptions.GoogleAPIError as e:
            logger.error(f"GCS upload of {blob_name} failed: {e}")
            raise StoreWriteError(f"Failed to store {blob_name}: {e}")

        if blob.size is None:
            blob.reload()
        return blob.size

    def open_file(self, blob_name: str) -> BinaryIO:
        bucket = self.client.bucket(self.bucket_name)
        try:
            blob = bucket.get_blob(blob_name)
            if blob is None:
                raise AttachmentNotFound(blob_name)
            return blob.open("rb")
        except gcs_exceptions.NotFound:
            raise AttachmentNotFound(blob_name)
        except gcs_exceptions.GoogleAPIError as e:
            logger.error(f"GCS read of {blob_name} failed: {e}")
            raise StoreReadError(f"Failed to read {blob_name}: {e}")

    def delete_file(self, blob_name: str) -> None:
        bucket = self.client.bucket(self.bucket_name)
        blob = bucket.blob(blob_name)
        try:
            blob.delete()
        except gcs_exceptions.NotFound:
            raise AttachmentNotFound(blob_name)
        except gcs_exceptions.GoogleAPIError as e:
            logger.error(f"GCS delete of {blob_name} failed: {e}")
            raise StoreWriteError(f"Failed to delete {blob_name}: {e}")


class LocalStorageService(StorageService):
    """
    Filesystem backend for development and tests.

    Bytes are streamed into a temporary file beside the target, flushed to
    disk, then hard-linked into place. The link fails if the key exists.
    """

    def __init__(self, root_path: str):
        self.root_path = os.path.abspath(root_path)

    def _path_for(self, blob_name: str, error: Type[IntakeError] = StoreWriteError) -> str:
        path = os.path.abspath(os.path.join(self.root_path, blob_name))
        if os.path.commonpath([path, self.root_path]) != self.root_path:
            raise error(f"Invalid object key: {blob_name}")
        return path

    def upload_file(
        self,
        blob_name: str,
        file_obj: BinaryIO,
        content_type: Optional[str] = None,
        metadata: Optional[Dict[str, str]] = None
    ) -> int:
        target = self._path_for(blob_name)
        directory = os.path.dirname(target)
        tmp_path = None
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=f".{uuid.uuid4().hex}.", suffix=".partial")
            with os.fdopen(fd, "wb") as tmp:
                file_obj.seek(0)
                shutil.copyfileobj(file_obj, tmp, CHUNK_SIZE)
                tmp.flush()
                os.fsync(tmp.fileno())
                size = tmp.tell()
            os.link(tmp_path, target)
        except FileExistsError:
            raise ObjectKeyExists(blob_name)
        except OSError as e:
            logger.error(f"Local write of {blob_name} failed: {e}")
            raise StoreWriteError(f"Failed to store {blob_name}: {e}")
        finally:
            if tmp_path and os.path.exists(tmp_path):
                os.unlink(tmp_path)
        return size

    def open_file(self, blob_name: str) -> BinaryIO:
        path = self._path_for(blob_name, StoreReadError)
        try:
            return open(path, "rb")
        except FileNotFoundError:
            raise AttachmentNotFound(blob_name)
        except OSError as e:
            raise StoreReadError(f"Failed to read {blob_name}: {e}")

    def delete_file(self, blob_name: str) -> None:
        path = self._path_for(blob_name)
        try:
            os.unlink(path)
        except FileNotFoundError:
            raise AttachmentNotFound(blob_name)
        except OSError as e:
            raise StoreWriteError(f"Failed to delete {blob_name}: {e}")


def build_storage_service(settings) -> StorageService:
    """Create the blob backend selected by STORAGE_BACKEND."""
    if settings.STORAGE_BACKEND == "gcs":
        if not settings.ATTACHMENTS_BUCKET:
            raise ValueError("ATTACHMENTS_BUCKET is required when STORAGE_BACKEND=gcs")
        return GCSStorageService(settings.PROJECT_ID, settings.ATTACHMENTS_BUCKET)
    if settings.STORAGE_BACKEND == "local":
        return LocalStorageService(settings.LOCAL_STORAGE_PATH)
    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")

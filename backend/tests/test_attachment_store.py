"""Tests for the attachment store and its local blob backend."""

import io
import os
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as gcs_exceptions

from intake.errors import AttachmentNotFound, ObjectKeyExists, StoreReadError, StoreWriteError
from intake.models.attachment import AttachmentMetadata
from intake.services.attachment_store import build_object_key
from intake.services.database_service import StoredObjectRecord
from intake.services.storage_service import GCSStorageService

UPLOADED_AT = datetime(2026, 3, 14, 9, 30, tzinfo=timezone.utc)


def make_metadata(name="report.pdf", owner="SUB-202603-0042") -> AttachmentMetadata:
    return AttachmentMetadata(
        original_name=name,
        content_type="application/pdf",
        owner_submission_id=owner,
        uploaded_at=UPLOADED_AT
    )


class TestBuildObjectKey:

    def test_namespaced_by_owner(self):
        key = build_object_key("SUB-202603-0042", UPLOADED_AT, "report.pdf")
        timestamp_ms = int(UPLOADED_AT.timestamp() * 1000)
        assert key == f"SUB-202603-0042/{timestamp_ms}-report.pdf"

    def test_file_name_cannot_escape_namespace(self):
        key = build_object_key("SUB-202603-0042", UPLOADED_AT, "../../secret.pdf")
        assert key.startswith("SUB-202603-0042/")
        assert ".." not in key


class TestLocalStorageService:

    def test_upload_and_read(self, storage_service):
        size = storage_service.upload_file("SUB-1/a.pdf", io.BytesIO(b"hello"))
        assert size == 5
        with storage_service.open_file("SUB-1/a.pdf") as stream:
            assert stream.read() == b"hello"

    def test_upload_is_create_only(self, storage_service):
        storage_service.upload_file("SUB-1/a.pdf", io.BytesIO(b"first"))
        with pytest.raises(ObjectKeyExists):
            storage_service.upload_file("SUB-1/a.pdf", io.BytesIO(b"second"))
        with storage_service.open_file("SUB-1/a.pdf") as stream:
            assert stream.read() == b"first"

    def test_no_partial_files_left_behind(self, storage_service):
        storage_service.upload_file("SUB-1/a.pdf", io.BytesIO(b"hello"))
        assert os.listdir(os.path.join(storage_service.root_path, "SUB-1")) == ["a.pdf"]

    def test_rejects_keys_outside_root(self, storage_service):
        with pytest.raises(StoreWriteError):
            storage_service.upload_file("../outside.pdf", io.BytesIO(b"x"))

    def test_rejects_reads_outside_root(self, storage_service):
        with pytest.raises(StoreReadError):
            storage_service.open_file("../outside.pdf")

    def test_missing_blob(self, storage_service):
        with pytest.raises(AttachmentNotFound):
            storage_service.open_file("SUB-1/missing.pdf")
        with pytest.raises(AttachmentNotFound):
            storage_service.delete_file("SUB-1/missing.pdf")


class TestAttachmentStore:

    def test_put_then_get(self, attachment_store):
        stored = attachment_store.put("SUB-202603-0042/1-report.pdf", io.BytesIO(b"%PDF"), make_metadata())
        assert stored.size == 4

        metadata, size, stream = attachment_store.get(stored.object_id)
        with stream:
            assert stream.read() == b"%PDF"
        assert size == 4
        assert metadata.original_name == "report.pdf"
        assert metadata.content_type == "application/pdf"
        assert metadata.owner_submission_id == "SUB-202603-0042"

    def test_object_ids_are_unique(self, attachment_store):
        first = attachment_store.put("SUB-1/1-a.pdf", io.BytesIO(b"a"), make_metadata("a.pdf"))
        second = attachment_store.put("SUB-1/2-b.pdf", io.BytesIO(b"b"), make_metadata("b.pdf"))
        assert first.object_id != second.object_id

    def test_get_unknown_id(self, attachment_store):
        with pytest.raises(AttachmentNotFound):
            attachment_store.get("0" * 32)

    def test_delete(self, attachment_store, database_service):
        stored = attachment_store.put("SUB-1/1-a.pdf", io.BytesIO(b"a"), make_metadata("a.pdf"))
        attachment_store.delete(stored.object_id)

        with pytest.raises(AttachmentNotFound):
            attachment_store.get(stored.object_id)
        session = database_service.get_session()
        try:
            assert session.get(StoredObjectRecord, stored.object_id) is None
        finally:
            session.close()

    def test_delete_unknown_id(self, attachment_store):
        with pytest.raises(AttachmentNotFound):
            attachment_store.delete("0" * 32)

    def test_delete_tolerates_missing_blob(self, attachment_store, storage_service):
        stored = attachment_store.put("SUB-1/1-a.pdf", io.BytesIO(b"a"), make_metadata("a.pdf"))
        storage_service.delete_file(stored.object_key)

        attachment_store.delete(stored.object_id)
        with pytest.raises(AttachmentNotFound):
            attachment_store.get(stored.object_id)

    def test_existing_key_is_not_overwritten(self, attachment_store):
        attachment_store.put("SUB-1/1-a.pdf", io.BytesIO(b"first"), make_metadata("a.pdf"))
        with pytest.raises(ObjectKeyExists):
            attachment_store.put("SUB-1/1-a.pdf", io.BytesIO(b"second"), make_metadata("a.pdf"))


class TestGCSStorageService:

    def make_service(self):
        client = MagicMock()
        return GCSStorageService("test-project", "attachments", client=client), client

    def test_upload_is_create_only(self):
        service, client = self.make_service()
        blob = client.bucket.return_value.blob.return_value
        blob.size = 5

        assert service.upload_file("SUB-1/a.pdf", io.BytesIO(b"hello"), "application/pdf") == 5
        assert blob.upload_from_file.call_args.kwargs["if_generation_match"] == 0

    def test_existing_key(self):
        service, client = self.make_service()
        blob = client.bucket.return_value.blob.return_value
        blob.upload_from_file.side_effect = gcs_exceptions.PreconditionFailed("exists")

        with pytest.raises(ObjectKeyExists):
            service.upload_file("SUB-1/a.pdf", io.BytesIO(b"hello"))

    def test_backend_failure(self):
        service, client = self.make_service()
        blob = client.bucket.return_value.blob.return_value
        blob.upload_from_file.side_effect = gcs_exceptions.ServiceUnavailable("down")

        with pytest.raises(StoreWriteError):
            service.upload_file("SUB-1/a.pdf", io.BytesIO(b"hello"))

    def test_missing_blob(self):
        service, client = self.make_service()
        client.bucket.return_value.get_blob.return_value = None
        client.bucket.return_value.blob.return_value.delete.side_effect = gcs_exceptions.NotFound("gone")

        with pytest.raises(AttachmentNotFound):
            service.open_file("SUB-1/a.pdf")
        with pytest.raises(AttachmentNotFound):
            service.delete_file("SUB-1/a.pdf")

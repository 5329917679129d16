import os

import pytest
from unittest.mock import AsyncMock
from sqlalchemy import func, select

from docchat.core.exceptions import (
    FileValidationError,
    MissingFieldError,
    PayloadTooLarge,
    StorageError,
    UnsupportedMediaType,
)
from docchat.db.models.document import Document, DocumentStatus
from docchat.services.ingestion.ingestor import DocumentIngestor, sanitize_filename, validate_upload

PDF_BYTES = b"%PDF-1.7\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF"


def _blob_count(storage) -> int:
    return sum(len(files) for _, _, files in os.walk(storage.root))


def test_validate_upload_rejects_unsupported_mime_type():
    with pytest.raises(UnsupportedMediaType) as exc_info:
        validate_upload(b"hello", "text/plain", "notes.txt")
    assert exc_info.value.status_code == 415
    assert exc_info.value.retryable is False


def test_validate_upload_rejects_oversized_file(monkeypatch):
    from docchat.core.config import settings

    monkeypatch.setattr(settings, "MAX_UPLOAD_BYTES", 16)
    with pytest.raises(PayloadTooLarge) as exc_info:
        validate_upload(PDF_BYTES, "application/pdf", "big.pdf")
    assert exc_info.value.details["max_size"] == 16


def test_validate_upload_magic_bytes_mismatch_is_distinct_from_mime_rejection():
    with pytest.raises(FileValidationError) as exc_info:
        validate_upload(b"\x89PNG\r\n\x1a\n....", "application/pdf", "fake.pdf")
    assert exc_info.value.code == "file_validation_failed"
    assert not isinstance(exc_info.value, UnsupportedMediaType)


def test_validate_upload_requires_filename():
    with pytest.raises(MissingFieldError):
        validate_upload(PDF_BYTES, "application/pdf", "")


def test_validate_upload_accepts_types_without_signature_check():
    # DOCX/WEBP/TIFF are allowed without a magic-byte table entry
    validate_upload(b"PK\x03\x04rest", "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
                    "lease.docx")


def test_sanitize_filename():
    assert sanitize_filename("my lease (final).pdf") == "my_lease__final_.pdf"


@pytest.mark.asyncio
async def test_ingest_creates_uploaded_document(db_session, storage, owner_id):
    """A new upload stores one blob and one document row."""
    ingestor = DocumentIngestor(db_session, storage)

    result = await ingestor.ingest(PDF_BYTES, "application/pdf", "contract.pdf", owner_id)

    assert result.status == "uploaded"
    assert result.duplicate is False

    document = await db_session.get(Document, result.document_id)
    assert document.status == DocumentStatus.UPLOADED
    assert document.owner_id == owner_id
    assert document.storage_path.startswith(f"documents/{owner_id}/{document.id}/")
    assert document.storage_path.endswith("-contract.pdf")
    assert document.meta_data["extension"] == "pdf"
    assert document.meta_data["content_category"] == "document"
    assert storage.get(document.storage_path) == PDF_BYTES


@pytest.mark.asyncio
async def test_duplicate_upload_returns_existing_id(db_session, storage, owner_id):
    """Same bytes under a different name resolve to the first document."""
    ingestor = DocumentIngestor(db_session, storage)

    first = await ingestor.ingest(PDF_BYTES, "application/pdf", "contract.pdf", owner_id)
    second = await ingestor.ingest(PDF_BYTES, "application/pdf", "contract_copy.pdf", owner_id)

    assert second.status == "duplicate"
    assert second.duplicate is True
    assert second.document_id == first.document_id
    assert second.metadata["original_filename"] == "contract.pdf"
    assert second.metadata["current_status"] == "uploaded"

    count = await db_session.scalar(select(func.count()).select_from(Document))
    assert count == 1
    assert _blob_count(storage) == 1


@pytest.mark.asyncio
async def test_duplicate_from_other_owner_hides_filename(db_session, storage):
    ingestor = DocumentIngestor(db_session, storage)

    first = await ingestor.ingest(PDF_BYTES, "application/pdf", "private.pdf", "alice")
    second = await ingestor.ingest(PDF_BYTES, "application/pdf", "mine.pdf", "bob")

    assert second.document_id == first.document_id
    assert "original_filename" not in second.metadata


@pytest.mark.asyncio
async def test_failed_insert_removes_blob(db_session, storage, owner_id):
    """A failure after the blob write leaves no orphaned storage."""
    ingestor = DocumentIngestor(db_session, storage)
    db_session.commit = AsyncMock(side_effect=RuntimeError("database unavailable"))

    with pytest.raises(RuntimeError):
        await ingestor.ingest(PDF_BYTES, "application/pdf", "contract.pdf", owner_id)

    assert _blob_count(storage) == 0


@pytest.mark.asyncio
async def test_validation_failure_writes_nothing(db_session, storage, owner_id):
    ingestor = DocumentIngestor(db_session, storage)

    with pytest.raises(FileValidationError):
        await ingestor.ingest(b"not a pdf", "application/pdf", "contract.pdf", owner_id)

    assert _blob_count(storage) == 0
    assert await db_session.scalar(select(func.count()).select_from(Document)) == 0


def test_storage_rejects_path_traversal(storage):
    with pytest.raises(StorageError):
        storage.get("../../etc/passwd")

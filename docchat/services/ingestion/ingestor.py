"""Document ingestion: validation, content-hash dedup, blob + record persistence."""

import hashlib
import logging
import os
import re
import uuid
from datetime import datetime, UTC
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from docchat.core.config import settings
from docchat.core.constants import FILE_SIGNATURES, PROCESSING_VERSION
from docchat.core.exceptions import (
    FileValidationError,
    MissingFieldError,
    PayloadTooLarge,
    UnsupportedMediaType,
)
from docchat.db.models.document import Document, DocumentStatus
from docchat.schemas.document import UploadResult
from docchat.services.ingestion.storage import ObjectStorage

logger = logging.getLogger(__name__)


def sanitize_filename(filename: str) -> str:
    return re.sub(r"[^a-zA-Z0-9._-]", "_", filename)


def validate_upload(data: bytes, mime_type: str, filename: str) -> None:
    """Reject an upload before anything is stored.

    Raises:
        MissingFieldError: no filename
        UnsupportedMediaType: MIME type not allowed
        PayloadTooLarge: larger than the upload ceiling
        FileValidationError: empty file or magic bytes don't match the MIME type
    """
    if not filename:
        raise MissingFieldError("Missing required field: file")
    if mime_type not in settings.ALLOWED_MIME_TYPES:
        raise UnsupportedMediaType(
            "Unsupported file type",
            {"mime_type": mime_type, "supported_types": settings.ALLOWED_MIME_TYPES},
        )
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise PayloadTooLarge(
            "File too large",
            {"max_size": settings.MAX_UPLOAD_BYTES, "actual_size": len(data)},
        )
    if not data:
        raise FileValidationError("File is empty")

    signatures = FILE_SIGNATURES.get(mime_type)
    if signatures and not any(data.startswith(sig) for sig in signatures):
        raise FileValidationError(f"File content does not match declared type {mime_type}")


class DocumentIngestor:
    """Accepts raw uploads and turns them into ``uploaded`` documents."""

    def __init__(self, db: AsyncSession, storage: Optional[ObjectStorage] = None):
        self.db = db
        self.storage = storage or ObjectStorage()

    async def _find_by_hash(self, content_hash: str) -> Optional[Document]:
        result = await self.db.execute(select(Document).where(Document.content_hash == content_hash))
        return result.scalar_one_or_none()

    @staticmethod
    def _duplicate_result(existing: Document, owner_id: str) -> UploadResult:
        metadata: Dict[str, Any] = {
            "upload_date": existing.created_at.isoformat() if existing.created_at else None,
            "current_status": existing.status.value,
        }
        # Another owner's filename is not disclosed
        if existing.owner_id == owner_id:
            metadata["original_filename"] = existing.filename
            metadata["message"] = f'This file was already uploaded as "{existing.filename}"'
        else:
            metadata["message"] = "This file was already uploaded"
        return UploadResult(
            document_id=existing.id,
            status="duplicate",
            duplicate=True,
            metadata=metadata,
        )

    async def ingest(self, data: bytes, mime_type: str, filename: str, owner_id: str) -> UploadResult:
        """Validate, dedup and persist an upload.

        Args:
            data: Full file content
            mime_type: Declared MIME type
            filename: Declared filename
            owner_id: Caller identity

        Returns:
            UploadResult with status ``uploaded`` or ``duplicate``
        """
        validate_upload(data, mime_type, filename)

        content_hash = hashlib.sha256(data).hexdigest()
        existing = await self._find_by_hash(content_hash)
        if existing:
            logger.info(f"Duplicate upload of document {existing.id}")
            return self._duplicate_result(existing, owner_id)

        document_id = str(uuid.uuid4())
        timestamp = datetime.now(UTC).isoformat().replace(":", "-").replace(".", "-")
        key = f"{owner_id}/{document_id}/{timestamp}-{sanitize_filename(filename)}"
        locator = self.storage.put(data, key)

        extension = os.path.splitext(filename)[1].lstrip(".").lower()
        document = Document(
            id=document_id,
            owner_id=owner_id,
            content_hash=content_hash,
            filename=filename,
            mime_type=mime_type,
            size_bytes=len(data),
            storage_path=locator,
            status=DocumentStatus.UPLOADED,
            meta_data={
                "content_category": "image" if mime_type.startswith("image/") else "document",
                "original_filename": filename,
                "extension": extension,
                "upload_timestamp": datetime.now(UTC).isoformat(),
                "processing_version": PROCESSING_VERSION,
            },
        )

        try:
            self.db.add(document)
            await self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent upload of the same bytes
            await self.db.rollback()
            self.storage.delete(locator)
            existing = await self._find_by_hash(content_hash)
            if existing:
                logger.info(f"Concurrent duplicate upload resolved to document {existing.id}")
                return self._duplicate_result(existing, owner_id)
            raise
        except Exception as e:
            logger.error(f"Error inserting document {document_id}: {str(e)}")
            await self.db.rollback()
            self.storage.delete(locator)
            raise

        logger.info(f"Uploaded document {document_id} ({len(data)} bytes, {mime_type})")
        return UploadResult(document_id=document_id, status="uploaded")

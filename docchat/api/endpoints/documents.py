"""Document upload, processing and management endpoints."""

import logging
from typing import Callable

from fastapi import APIRouter, Depends, File, Query, UploadFile, status
from fastapi.responses import JSONResponse, Response
from sqlalchemy.ext.asyncio import AsyncSession

from docchat.api.deps import get_current_user, get_db, get_ocr_trigger, get_storage
from docchat.core.config import settings
from docchat.core.exceptions import PayloadTooLarge
from docchat.db.models.document import DocumentStatus
from docchat.schemas.document import DocumentList, DocumentOut, JobOut, ProcessAccepted
from docchat.services.documents import DocumentService
from docchat.services.ingestion.ingestor import DocumentIngestor
from docchat.services.ingestion.storage import ObjectStorage
from docchat.services.processing.pipeline import start_processing

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("")
async def upload_document(
    file: UploadFile = File(...),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
) -> JSONResponse:
    """
    Upload a document.

    Returns 202 with the new document id, or 200 with the existing id when the
    same bytes were uploaded before.
    """
    if file.size is not None and file.size > settings.MAX_UPLOAD_BYTES:
        raise PayloadTooLarge(
            "File too large",
            {"max_size": settings.MAX_UPLOAD_BYTES, "actual_size": file.size},
        )
    # One byte past the ceiling is enough for the size check
    data = await file.read(settings.MAX_UPLOAD_BYTES + 1)
    result = await DocumentIngestor(db, storage).ingest(
        data,
        file.content_type or "",
        file.filename or "",
        current_user["id"],
    )
    status_code = status.HTTP_200_OK if result.duplicate else status.HTTP_202_ACCEPTED
    return JSONResponse(status_code=status_code, content=result.model_dump())


@router.post("/{document_id}/process", status_code=status.HTTP_202_ACCEPTED)
async def process_document(
    document_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    trigger_ocr: Callable[[str], object] = Depends(get_ocr_trigger),
) -> ProcessAccepted:
    """Start OCR and embedding in the background and return at once."""
    document, job = await start_processing(db, document_id, current_user["id"], trigger_ocr)
    if job is None:
        return ProcessAccepted(
            document_id=document.id,
            status=DocumentStatus.AWAITING_CREDIT.value,
            message="Too many documents are processing; retry when one finishes",
        )
    return ProcessAccepted(
        document_id=document.id,
        status=DocumentStatus.QUEUED.value,
        job_id=job.id,
        message="Processing started",
    )


@router.get("")
async def list_documents(
    limit: int = Query(50, ge=1, le=200, description="Maximum number of documents to return"),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DocumentList:
    documents = await DocumentService(db).list_documents(current_user["id"], limit=limit, offset=offset)
    return DocumentList(
        documents=[DocumentOut.model_validate(d.to_dict()) for d in documents],
        total=len(documents),
    )


@router.get("/{document_id}")
async def get_document(
    document_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DocumentOut:
    document = await DocumentService(db).get_document(document_id, current_user["id"])
    return DocumentOut.model_validate(document.to_dict())


@router.get("/{document_id}/jobs")
async def list_document_jobs(
    document_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> list[JobOut]:
    """Processing job history, oldest first."""
    jobs = await DocumentService(db).list_jobs(document_id, current_user["id"])
    return [JobOut.model_validate(job.to_dict()) for job in jobs]


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: str,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_storage),
) -> Response:
    await DocumentService(db, storage).delete_document(document_id, current_user["id"])
    return Response(status_code=status.HTTP_204_NO_CONTENT)

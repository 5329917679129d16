"""Pipeline stage runners.

Each stage claims its job, does its work, enqueues the next stage's job with a
typed input envelope, then fires the next stage's trigger. A trigger is any
callable taking a job id (the Celery tasks pass ``task.delay``).
"""

import logging
import time
from datetime import datetime, UTC
from typing import Callable, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from docchat.core.exceptions import DocChatError, NotFoundError, ForbiddenError, JobConflictError, PipelineError
from docchat.db.models.document import Document, DocumentStatus
from docchat.db.models.processing_job import JobStage, ProcessingJob
from docchat.schemas.pipeline import (
    EmbedJobInput,
    EmbedJobOutput,
    OcrJobInput,
    OcrJobOutput,
)
from docchat.services.categories import detect_category
from docchat.services.embedding.embedder import Embedder
from docchat.services.ingestion.chunking import CATEGORY_SAMPLE_PAGES, SemanticChunker
from docchat.services.ingestion.storage import ObjectStorage
from docchat.services.ocr.extractor import OCRExtractor
from docchat.services.processing.holds import HoldService
from docchat.services.processing.jobs import JobService

logger = logging.getLogger(__name__)

Trigger = Callable[[str], object]

# States from which processing may be (re)started
STARTABLE_STATUSES = (DocumentStatus.UPLOADED, DocumentStatus.FAILED, DocumentStatus.AWAITING_CREDIT)


async def _load_document(db: AsyncSession, document_id: str) -> Document:
    document = await db.get(Document, document_id, populate_existing=True)
    if not document:
        raise NotFoundError(f"Document {document_id} not found")
    return document


async def _fail_stage(db: AsyncSession, job_id: str, document_id: str, message: str) -> None:
    """Mark a job failed and release the document's hold in one commit.

    The hold is released even when the job row cannot be updated; that error
    is raised afterwards.
    """
    await db.rollback()
    jobs = JobService(db)
    try:
        await jobs.fail(job_id, message, commit=False)
    except DocChatError as e:
        logger.warning(f"Could not mark job {job_id} failed: {e.message}")
    except Exception:
        await db.rollback()
        raise
    finally:
        await HoldService(db).finalize(document_id, success=False)


async def start_processing(
    db: AsyncSession,
    document_id: str,
    owner_id: str,
    trigger_ocr: Trigger,
) -> Tuple[Document, Optional[ProcessingJob]]:
    """Place a hold, enqueue the OCR job and fire the OCR trigger.

    Returns the document and the queued job; the job is None when the owner is
    at the hold limit and the document was parked in ``awaiting_credit``.

    Raises:
        NotFoundError, ForbiddenError: unknown or foreign document
        JobConflictError: document is already queued, processing or completed
    """
    document = await _load_document(db, document_id)
    if document.owner_id != owner_id:
        raise ForbiddenError("Document not owned by user")
    if document.status not in STARTABLE_STATUSES:
        raise JobConflictError(f"Document {document_id} is {document.status.value}")

    hold = await HoldService(db).place_hold(document)
    if hold is None:
        return document, None

    jobs = JobService(db)
    try:
        job = await jobs.enqueue(
            document_id,
            JobStage.OCR,
            OcrJobInput(
                storage_path=document.storage_path,
                mime_type=document.mime_type,
                filename=document.filename,
            ),
            commit=False,
        )
        document.status = DocumentStatus.QUEUED
        await db.commit()
    except Exception:
        await db.rollback()
        await HoldService(db).finalize(document_id, success=False)
        raise

    job_id = job.id
    try:
        trigger_ocr(job_id)
    except Exception as e:
        logger.error(f"Error triggering OCR for job {job_id}: {str(e)}")
        await _fail_stage(db, job_id, document_id, f"Error triggering OCR: {str(e)}")
        raise PipelineError(f"Could not start processing: {str(e)}") from e

    logger.info(f"Processing started for document {document_id} (job {job_id})")
    return document, job


async def run_ocr_stage(
    db: AsyncSession,
    job_id: str,
    extractor: OCRExtractor,
    trigger_embed: Trigger,
    storage: Optional[ObjectStorage] = None,
) -> Optional[ProcessingJob]:
    """Run OCR for a queued job and hand the pages to a new embed job.

    Returns the embed job, or None when the job could not be claimed or failed.
    """
    jobs = JobService(db)
    job = await jobs.claim(job_id)
    if job is None:
        return None

    document_id = job.document_id
    started = time.monotonic()
    try:
        document = await _load_document(db, document_id)
        document.status = DocumentStatus.PROCESSING
        await db.commit()

        job_input = OcrJobInput.model_validate(job.input_data)
        data = (storage or ObjectStorage()).get(job_input.storage_path)
        result = await extractor.extract(data, job_input.mime_type, job_input.filename)

        sample = "\n\n".join(p.text for p in result.pages[:CATEGORY_SAMPLE_PAGES])
        category = detect_category(job_input.filename, sample)
        document.meta_data = {
            **(document.meta_data or {}),
            "ocr_processed_at": datetime.now(UTC).isoformat(),
            "ocr_model": result.model,
            "page_count": len(result.pages),
            "document_annotation": result.document_annotation,
            "bbox_annotations": [b.model_dump() for b in result.bbox_annotations],
            "detected_category": category,
        }
        await db.commit()

        # The embed job and the OCR job's completion are committed together
        embed_job = await jobs.enqueue(
            document_id,
            JobStage.EMBED,
            EmbedJobInput(
                pages=result.pages,
                filename=job_input.filename,
                document_category=category,
            ),
            commit=False,
        )
        embed_job_id = embed_job.id
        await jobs.complete(job_id, OcrJobOutput(
            page_count=len(result.pages),
            embed_job_id=embed_job_id,
            annotation_pages=min(extractor.annotation_pages, len(result.pages)) if result.document_annotation else 0,
            bbox_count=len(result.bbox_annotations),
            attempts=result.attempts,
        ), commit=False)
        await db.commit()
    except Exception as e:
        logger.error(f"OCR job {job_id} failed after {int((time.monotonic() - started) * 1000)}ms: {str(e)}")
        message = e.message if isinstance(e, DocChatError) else str(e)
        await _fail_stage(db, job_id, document_id, message)
        return None

    try:
        trigger_embed(embed_job_id)
    except Exception as e:
        logger.error(f"Error triggering embedding for job {embed_job_id}: {str(e)}")
        await _fail_stage(db, embed_job_id, document_id, f"Error triggering embedding: {str(e)}")
        return None

    return embed_job


async def run_embed_stage(
    db: AsyncSession,
    job_id: str,
    chunker: SemanticChunker,
    embedder: Embedder,
) -> Optional[ProcessingJob]:
    """Chunk the pages carried by the job, embed and store them, then finalize."""
    jobs = JobService(db)
    job = await jobs.claim(job_id)
    if job is None:
        return None

    document_id = job.document_id
    started = time.monotonic()
    try:
        job_input = EmbedJobInput.model_validate(job.input_data)
        if not job_input.pages:
            raise PipelineError("No pages data found in the job input")

        drafts = chunker.chunk_pages(job_input.pages, job_input.filename)
        count = await embedder.embed_and_store(document_id, drafts)
        # Job completion, hold consumption and document status commit together
        done = await jobs.complete(job_id, EmbedJobOutput(
            chunk_count=count,
            elapsed_ms=int((time.monotonic() - started) * 1000),
            model=embedder.model,
        ), commit=False)
        await HoldService(db).finalize(document_id, success=True, commit=False)
        await db.commit()
    except Exception as e:
        logger.error(f"Embed job {job_id} failed: {str(e)}")
        await db.rollback()
        try:
            await embedder.delete_chunks(document_id)
        except Exception as cleanup_error:
            logger.error(f"Error removing chunks of document {document_id}: {str(cleanup_error)}")
        message = e.message if isinstance(e, DocChatError) else str(e)
        await _fail_stage(db, job_id, document_id, message)
        return None

    return done

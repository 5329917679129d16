"""Celery tasks for the document processing pipeline.

Each task runs one stage and hands off to the next with ``.delay``; nothing
waits on the following stage.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from docchat.db.session import AsyncSessionLocal
from docchat.services.embedding.embedder import Embedder
from docchat.services.ingestion.chunking import SemanticChunker
from docchat.services.ocr import OCRExtractor, get_ocr_client
from docchat.services.processing.pipeline import run_embed_stage, run_ocr_stage
from docchat.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


def _run(coro):
    """Run a coroutine on the worker's event loop."""
    try:
        loop = asyncio.get_event_loop()
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)


async def _ocr(job_id: str) -> Optional[str]:
    client = get_ocr_client()
    try:
        async with AsyncSessionLocal() as db:
            embed_job = await run_ocr_stage(
                db,
                job_id,
                OCRExtractor(client),
                trigger_embed=run_embed_job.delay,
            )
            return embed_job.id if embed_job else None
    finally:
        await client.close()


async def _embed(job_id: str) -> Optional[Dict[str, Any]]:
    async with AsyncSessionLocal() as db:
        job = await run_embed_stage(db, job_id, SemanticChunker(), Embedder(db))
        return job.output_data if job else None


@celery_app.task(name="docchat.worker.tasks.pipeline_tasks.run_ocr_job")
def run_ocr_job(job_id: str) -> Dict[str, Any]:
    """Run the OCR stage for a queued job.

    Args:
        job_id: ID of the ``ocr`` processing job

    Returns:
        The job id and the id of the embed job it handed off to (None on failure)
    """
    logger.info(f"Starting OCR job {job_id}")
    embed_job_id = _run(_ocr(job_id))
    logger.info(f"Finished OCR job {job_id} (next: {embed_job_id})")
    return {"job_id": job_id, "embed_job_id": embed_job_id}


@celery_app.task(name="docchat.worker.tasks.pipeline_tasks.run_embed_job")
def run_embed_job(job_id: str) -> Dict[str, Any]:
    """Chunk, embed and store a document's pages for a queued embed job."""
    logger.info(f"Starting embed job {job_id}")
    output = _run(_embed(job_id))
    logger.info(f"Finished embed job {job_id}")
    return {"job_id": job_id, "output": output}

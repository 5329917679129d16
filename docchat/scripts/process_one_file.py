#!/usr/bin/env python
"""Script to upload and process a single local file without a Celery worker.

Runs the same stages the worker runs, one after the other, and prints the
resulting chunk count. Uses the configured database, storage and providers.

Usage:
    python -m docchat.scripts.process_one_file path/to/file.pdf [owner_id]
"""

import asyncio
import logging
import mimetypes
import sys
from pathlib import Path
from typing import List

from docchat.core.logging import setup_logging
from docchat.db.session import get_async_session
from docchat.services.embedding.embedder import Embedder
from docchat.services.ingestion.chunking import SemanticChunker
from docchat.services.ingestion.ingestor import DocumentIngestor
from docchat.services.ocr import OCRExtractor, get_ocr_client
from docchat.services.processing.pipeline import run_embed_stage, run_ocr_stage, start_processing

setup_logging()
logger = logging.getLogger(__name__)


async def process_file(path: Path, owner_id: str) -> dict:
    """Ingest ``path`` for ``owner_id`` and run OCR and embedding inline.

    Args:
        path: Local file to upload
        owner_id: Owner to upload as

    Returns:
        Summary with the document id, status and chunk count
    """
    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    queued: List[str] = []

    async with get_async_session() as db:
        upload = await DocumentIngestor(db).ingest(path.read_bytes(), mime_type, path.name, owner_id)
        logger.info(f"Upload: {upload.status} ({upload.document_id})")
        if upload.duplicate:
            return {"document_id": upload.document_id, "status": "duplicate"}

        document, job = await start_processing(db, upload.document_id, owner_id, queued.append)
        if job is None:
            return {"document_id": document.id, "status": document.status.value}

        client = get_ocr_client()
        try:
            await run_ocr_stage(db, queued.pop(), OCRExtractor(client), trigger_embed=queued.append)
        finally:
            await client.close()
        if not queued:
            return {"document_id": document.id, "status": "failed", "stage": "ocr"}

        done = await run_embed_stage(db, queued.pop(), SemanticChunker(), Embedder(db))
        if done is None:
            return {"document_id": document.id, "status": "failed", "stage": "embed"}
        return {"document_id": document.id, "status": "completed", **(done.output_data or {})}


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(2)

    file_path = Path(sys.argv[1])
    owner = sys.argv[2] if len(sys.argv) > 2 else "local-user"

    result = asyncio.run(process_file(file_path, owner))

    logger.info("-" * 60)
    if result["status"] in ("completed", "duplicate"):
        logger.info(f"Document {result['document_id']}: {result['status']}")
        if "chunk_count" in result:
            logger.info(f"  Chunks: {result['chunk_count']} in {result['elapsed_ms']}ms")
    else:
        logger.error(f"Document {result['document_id']}: {result['status']} {result.get('stage', '')}")
        sys.exit(1)

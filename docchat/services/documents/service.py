import logging
from typing import List, Optional

from sqlalchemy import delete, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from docchat.core.exceptions import DocumentInUseError, ForbiddenError, NotFoundError
from docchat.db.models.chat_session import ChatSession
from docchat.db.models.document import Document
from docchat.db.models.document_chunk import DocumentChunk
from docchat.db.models.processing_hold import ProcessingHold
from docchat.db.models.processing_job import ProcessingJob
from docchat.services.ingestion.storage import ObjectStorage

logger = logging.getLogger(__name__)


class DocumentService:
    """Read and delete caller-owned documents."""

    def __init__(self, db_session: AsyncSession, storage: Optional[ObjectStorage] = None):
        self.db = db_session
        self.storage = storage or ObjectStorage()

    async def get_document(self, document_id: str, owner_id: str) -> Document:
        """Get a document owned by the caller.

        Raises:
            NotFoundError: no such document
            ForbiddenError: document belongs to someone else
        """
        document = await self.db.get(Document, document_id)
        if not document:
            raise NotFoundError(f"Document {document_id} not found")
        if document.owner_id != owner_id:
            raise ForbiddenError("Document not owned by user")
        return document

    async def list_documents(self, owner_id: str, limit: int = 50, offset: int = 0) -> List[Document]:
        result = await self.db.execute(
            select(Document)
            .where(Document.owner_id == owner_id)
            .order_by(desc(Document.created_at))
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_jobs(self, document_id: str, owner_id: str) -> List[ProcessingJob]:
        await self.get_document(document_id, owner_id)
        result = await self.db.execute(
            select(ProcessingJob)
            .where(ProcessingJob.document_id == document_id)
            .order_by(ProcessingJob.created_at)
        )
        return list(result.scalars().all())

    async def delete_document(self, document_id: str, owner_id: str) -> None:
        """Delete a document with its chunks, jobs and holds, then its blob.

        Raises:
            DocumentInUseError: chat sessions still reference the document
        """
        document = await self.get_document(document_id, owner_id)

        session_count = await self.db.scalar(
            select(func.count()).select_from(ChatSession).where(ChatSession.document_id == document_id)
        )
        if session_count:
            raise DocumentInUseError(
                "Document has chat sessions; delete them first",
                {"session_count": session_count},
            )

        locator = document.storage_path
        try:
            for model in (DocumentChunk, ProcessingJob, ProcessingHold):
                await self.db.execute(delete(model).where(model.document_id == document_id))
            await self.db.delete(document)
            await self.db.commit()
        except Exception as e:
            await self.db.rollback()
            logger.error(f"Error deleting document {document_id}: {str(e)}")
            raise

        if not self.storage.delete(locator):
            logger.warning(f"Blob for document {document_id} was already gone")
        logger.info(f"Deleted document {document_id}")

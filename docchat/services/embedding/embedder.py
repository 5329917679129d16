"""Chunk embedding and persistence."""

import logging
from typing import List, Optional

from openai import AsyncOpenAI
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from docchat.core.config import settings
from docchat.core.exceptions import EmbeddingError, EmbeddingOrderError
from docchat.db.models.document_chunk import DocumentChunk
from docchat.schemas.pipeline import ChunkDraft

logger = logging.getLogger(__name__)


class Embedder:
    """Embeds chunk text with the OpenAI embeddings API and stores the rows.

    Vectors are paired with chunks by position. The response is checked for
    count, order (``data[i].index == i``) and dimension before anything is
    written.
    """

    def __init__(
        self,
        db: AsyncSession,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None,
        dimensions: Optional[int] = None,
        insert_batch_size: Optional[int] = None,
    ):
        self.db = db
        self.client = client or AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        self.model = model or settings.EMBEDDING_MODEL
        self.dimensions = dimensions or settings.EMBEDDING_DIM
        self.insert_batch_size = insert_batch_size or settings.EMBEDDING_INSERT_BATCH

    async def embed_texts(self, texts: List[str]) -> List[List[float]]:
        """Embed texts in one request.

        Raises:
            EmbeddingError: provider failure, wrong count or wrong dimension
            EmbeddingOrderError: response items out of input order
        """
        if not texts:
            return []

        try:
            response = await self.client.embeddings.create(model=self.model, input=texts)
        except Exception as e:
            logger.error(f"Embedding request failed: {str(e)}")
            raise EmbeddingError(f"Embedding generation failed: {str(e)}") from e

        data = list(response.data)
        if len(data) != len(texts):
            raise EmbeddingError(f"Embedding count mismatch: expected {len(texts)}, got {len(data)}")

        vectors = []
        for position, item in enumerate(data):
            if item.index != position:
                raise EmbeddingOrderError(
                    f"Embedding at position {position} belongs to input {item.index}"
                )
            if len(item.embedding) != self.dimensions:
                raise EmbeddingError(f"Unexpected embedding dimension: {len(item.embedding)}")
            vectors.append(list(item.embedding))
        return vectors

    async def embed_query(self, text: str) -> List[float]:
        vectors = await self.embed_texts([text])
        return vectors[0]

    async def store(self, document_id: str, drafts: List[ChunkDraft], vectors: List[List[float]]) -> int:
        """Insert chunk rows in batches, one commit per batch."""
        if len(drafts) != len(vectors):
            raise EmbeddingError(f"Got {len(vectors)} vectors for {len(drafts)} chunks")

        for start in range(0, len(drafts), self.insert_batch_size):
            batch = [
                DocumentChunk(
                    document_id=document_id,
                    chunk_order=draft.chunk_order,
                    content=draft.content,
                    embedding=vector,
                    meta_data=draft.metadata.model_dump(),
                )
                for draft, vector in zip(drafts[start:start + self.insert_batch_size],
                                         vectors[start:start + self.insert_batch_size])
            ]
            self.db.add_all(batch)
            await self.db.commit()
            logger.debug(f"Stored chunks {start + 1}-{start + len(batch)} for document {document_id}")
        return len(drafts)

    async def delete_chunks(self, document_id: str) -> None:
        await self.db.execute(delete(DocumentChunk).where(DocumentChunk.document_id == document_id))
        await self.db.commit()

    async def embed_and_store(self, document_id: str, drafts: List[ChunkDraft]) -> int:
        """Embed all drafts and persist them. Partial writes are removed on failure."""
        vectors = await self.embed_texts([d.content for d in drafts])
        try:
            count = await self.store(document_id, drafts, vectors)
        except Exception as e:
            logger.error(f"Error storing chunks for document {document_id}: {str(e)}")
            await self.db.rollback()
            await self.delete_chunks(document_id)
            raise EmbeddingError(f"Failed to store document chunks: {str(e)}") from e
        logger.info(f"Embedded and stored {count} chunks for document {document_id}")
        return count

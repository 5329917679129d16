"""Document-scoped retrieval with a four-tier fallback cascade.

1. hybrid: vector cosine similarity fused with full-text rank
2. vector: cosine similarity only (runs only when the hybrid query errored)
3. keyword: substring match on words from the raw question
4. category: substring match on the category's fallback keywords

The first tier that returns rows wins. Every tier is scoped to one document
and to the caller's ownership of it.

A failing tier rolls the session back, which expires every loaded instance;
callers read what they need from ORM objects before calling ``retrieve``.
"""

import logging
import re
from typing import List, Optional, Sequence

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from docchat.core.config import settings
from docchat.core.exceptions import ForbiddenError
from docchat.db.models.document import Document
from docchat.db.models.document_chunk import DocumentChunk
from docchat.schemas.retrieval import RetrievalResult, RetrievedChunk
from docchat.services.categories import category_keywords, detect_category, expand_query
from docchat.services.embedding.embedder import Embedder

logger = logging.getLogger(__name__)

NON_WORD = re.compile(r"[^\w\s]")


def extract_query_keywords(query: str, max_terms: Optional[int] = None) -> List[str]:
    """Lowercased words longer than two characters, in query order."""
    max_terms = max_terms or settings.KEYWORD_MAX_TERMS
    words = NON_WORD.sub(" ", query.lower()).split()
    return [w for w in words if len(w) > 2][:max_terms]


class HybridRetriever:
    """Retrieves chunks of one document for a question."""

    def __init__(self, db: AsyncSession, embedder: Embedder):
        self.db = db
        self.embedder = embedder
        self.threshold = settings.RETRIEVAL_MATCH_THRESHOLD
        self.match_count = settings.RETRIEVAL_MATCH_COUNT

    def _scoped(self, stmt, document_id: str, owner_id: str):
        return stmt.join(Document, Document.id == DocumentChunk.document_id).where(
            DocumentChunk.document_id == document_id,
            Document.owner_id == owner_id,
        )

    @staticmethod
    def _to_chunk(row: DocumentChunk, similarity: float) -> RetrievedChunk:
        return RetrievedChunk(
            id=row.id,
            document_id=row.document_id,
            content=row.content,
            chunk_order=row.chunk_order,
            similarity=float(similarity),
            metadata=row.meta_data or {},
        )

    def hybrid_statement(self, document_id: str, owner_id: str, query_text: str, embedding: List[float]):
        """Tier 1: cosine similarity fused with full-text rank."""
        vector_similarity = 1 - DocumentChunk.embedding.cosine_distance(embedding)
        ts_vector = func.to_tsvector("english", DocumentChunk.content)
        ts_query = func.plainto_tsquery("english", query_text)
        text_rank = func.ts_rank_cd(ts_vector, ts_query)
        score = (
            settings.HYBRID_VECTOR_WEIGHT * vector_similarity
            + settings.HYBRID_TEXT_WEIGHT * text_rank
        )

        stmt = self._scoped(select(DocumentChunk, score.label("score")), document_id, owner_id)
        return stmt.where(
            or_(vector_similarity >= self.threshold, ts_vector.op("@@")(ts_query))
        ).order_by(score.desc()).limit(self.match_count)

    def vector_statement(self, document_id: str, owner_id: str, embedding: List[float]):
        """Tier 2: cosine similarity only."""
        distance = DocumentChunk.embedding.cosine_distance(embedding)
        stmt = self._scoped(select(DocumentChunk, (1 - distance).label("similarity")), document_id, owner_id)
        return stmt.where(1 - distance >= self.threshold).order_by(distance).limit(self.match_count)

    async def _hybrid_search(
        self, document_id: str, owner_id: str, query_text: str, embedding: List[float]
    ) -> List[RetrievedChunk]:
        result = await self.db.execute(self.hybrid_statement(document_id, owner_id, query_text, embedding))
        return [self._to_chunk(row, s) for row, s in result.all()]

    async def _vector_search(
        self, document_id: str, owner_id: str, embedding: List[float]
    ) -> List[RetrievedChunk]:
        result = await self.db.execute(self.vector_statement(document_id, owner_id, embedding))
        return [self._to_chunk(row, s) for row, s in result.all()]

    async def _keyword_search(
        self, document_id: str, owner_id: str, words: Sequence[str], limit: int
    ) -> List[RetrievedChunk]:
        if not words:
            return []
        content = func.lower(DocumentChunk.content)
        stmt = self._scoped(select(DocumentChunk), document_id, owner_id)
        stmt = stmt.where(
            or_(*[content.contains(word.lower(), autoescape=True) for word in words])
        ).order_by(DocumentChunk.chunk_order).limit(limit)

        result = await self.db.execute(stmt)
        return [
            self._to_chunk(row, settings.KEYWORD_FALLBACK_SIMILARITY)
            for row in result.scalars().all()
        ]

    async def _embed_query(self, text: str) -> Optional[List[float]]:
        try:
            return await self.embedder.embed_query(text)
        except Exception as e:
            logger.warning(f"Query embedding failed, using keyword tiers only: {str(e)}")
            return None

    async def retrieve(self, document_id: str, query: str, owner_id: str) -> RetrievalResult:
        """Return chunks for ``query`` from one caller-owned document.

        An empty result (tier ``none``) means every tier came up empty.

        Raises:
            ForbiddenError: the document does not exist or is not the caller's
        """
        document = (
            await self.db.execute(
                select(Document).where(Document.id == document_id, Document.owner_id == owner_id)
            )
        ).scalar_one_or_none()
        if document is None:
            raise ForbiddenError("Document not owned by user")

        category = (document.meta_data or {}).get("detected_category") or detect_category(document.filename)
        expanded = expand_query(query, category)
        outcome = RetrievalResult(expanded_query=expanded, category=category)

        embedding = await self._embed_query(expanded)
        if embedding is not None:
            try:
                chunks = await self._hybrid_search(document_id, owner_id, expanded, embedding)
                if chunks:
                    return self._done(outcome, chunks, "hybrid", document_id)
            except Exception as e:
                await self.db.rollback()
                logger.warning(f"Hybrid search failed, falling back to vector search: {str(e)}")
                try:
                    chunks = await self._vector_search(document_id, owner_id, embedding)
                    if chunks:
                        return self._done(outcome, chunks, "vector", document_id)
                except Exception as e:
                    await self.db.rollback()
                    logger.error(f"Vector search failed: {str(e)}")

        chunks = await self._keyword_search(
            document_id, owner_id, extract_query_keywords(query), settings.KEYWORD_FALLBACK_LIMIT
        )
        if chunks:
            return self._done(outcome, chunks, "keyword", document_id)

        chunks = await self._keyword_search(
            document_id, owner_id, category_keywords(category), settings.CATEGORY_FALLBACK_LIMIT
        )
        if chunks:
            return self._done(outcome, chunks, "category", document_id)

        logger.info(f"Retrieval for document {document_id} found nothing in any tier")
        return outcome

    @staticmethod
    def _done(outcome: RetrievalResult, chunks: List[RetrievedChunk], tier: str, document_id: str) -> RetrievalResult:
        logger.info(f"Retrieved {len(chunks)} chunks for document {document_id} via {tier} tier")
        return outcome.model_copy(update={"chunks": chunks, "tier": tier})

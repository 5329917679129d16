"""Embedded chunk of a document."""

from datetime import datetime, UTC
import uuid
from typing import Any, Dict, List

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, String, ForeignKey, DateTime, Text, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docchat.core.config import settings
from docchat.db.base_class import Base, JSONType


class DocumentChunk(Base):
    """A chunk of document text with its embedding.

    ``meta_data`` holds page_number, section_title, detected_category,
    chunk_type, citation_key, content_hash and token_count.
    """

    __table_args__ = (
        UniqueConstraint("document_id", "chunk_order", name="uq_document_chunk_order"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("document.id", ondelete="CASCADE"), index=True
    )
    chunk_order: Mapped[int] = mapped_column(Integer)
    content: Mapped[str] = mapped_column(Text)
    embedding: Mapped[List[float]] = mapped_column(
        Vector(settings.EMBEDDING_DIM).with_variant(JSON(), "sqlite")
    )
    meta_data: Mapped[Dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))

    document = relationship("Document", back_populates="chunks")

    def __repr__(self):
        return f"<DocumentChunk(id='{self.id}', document_id='{self.document_id}', order={self.chunk_order})>"

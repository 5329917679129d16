"""Document model: one uploaded file and its processing lifecycle."""

from datetime import datetime, UTC
from enum import Enum
import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import String, Integer, DateTime, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docchat.db.base_class import Base, JSONType


class DocumentStatus(str, Enum):
    """Lifecycle of a document; mirrors the furthest completed pipeline stage."""
    UPLOADED = "uploaded"
    QUEUED = "queued"
    PROCESSING = "processing"
    AWAITING_CREDIT = "awaiting_credit"
    COMPLETED = "completed"
    FAILED = "failed"


class Document(Base):
    """An uploaded document.

    The content hash is unique: re-uploading byte-identical content resolves to
    the existing row instead of creating a second one.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    content_hash: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    filename: Mapped[str] = mapped_column(String(512))
    mime_type: Mapped[str] = mapped_column(String(255))
    size_bytes: Mapped[int] = mapped_column(Integer)
    storage_path: Mapped[str] = mapped_column(String(1024))
    status: Mapped[DocumentStatus] = mapped_column(
        SQLEnum(DocumentStatus, values_callable=lambda x: [e.value for e in x], name="documentstatus"),
        default=DocumentStatus.UPLOADED,
        index=True,
    )
    meta_data: Mapped[Dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    jobs: Mapped[List["ProcessingJob"]] = relationship(
        "ProcessingJob", back_populates="document", cascade="all, delete-orphan", passive_deletes=True
    )
    chunks: Mapped[List["DocumentChunk"]] = relationship(
        "DocumentChunk", back_populates="document", cascade="all, delete-orphan", passive_deletes=True
    )
    holds: Mapped[List["ProcessingHold"]] = relationship(
        "ProcessingHold", back_populates="document", cascade="all, delete-orphan", passive_deletes=True
    )
    sessions: Mapped[List["ChatSession"]] = relationship("ChatSession", back_populates="document")

    @property
    def detected_category(self) -> Optional[str]:
        return (self.meta_data or {}).get("detected_category")

    def __repr__(self):
        return f"<Document(id='{self.id}', filename='{self.filename}', status='{self.status}')>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dict."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "filename": self.filename,
            "mime_type": self.mime_type,
            "size_bytes": self.size_bytes,
            "status": self.status.value if isinstance(self.status, DocumentStatus) else self.status,
            "metadata": self.meta_data,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

from datetime import datetime, UTC
import uuid
from sqlalchemy import String, ForeignKey, DateTime, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import Optional, Dict, Any

from docchat.db.base_class import Base, JSONType


class ChatSession(Base):
    """Chat session over a single document.

    ``message_count`` is the sequence counter: the next message gets
    ``message_count + 1``.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    document_id: Mapped[str] = mapped_column(String(36), ForeignKey("document.id"), index=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    message_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    meta_data: Mapped[Dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True),
                                               default=lambda: datetime.now(UTC),
                                               onupdate=lambda: datetime.now(UTC))

    messages = relationship(
        "ChatMessage", back_populates="session", cascade="all, delete-orphan",
        order_by="ChatMessage.sequence_number",
    )
    document = relationship("Document", back_populates="sessions")

    def __repr__(self):
        return f"<ChatSession(id='{self.id}', document_id='{self.document_id}', title='{self.title}')>"

    def to_dict(self):
        """Convert model to dict."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "document_id": self.document_id,
            "title": self.title,
            "message_count": self.message_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "metadata": self.meta_data,
        }

from datetime import datetime, UTC
import uuid
from enum import Enum
from typing import Dict, Any
from sqlalchemy import String, ForeignKey, DateTime, Text, Integer, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docchat.db.base_class import Base, JSONType


class MessageRole(str, Enum):
    """Enum for message roles."""
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(Base):
    """Chat message model."""

    __table_args__ = (
        UniqueConstraint("session_id", "sequence_number", name="uq_chat_message_sequence"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    session_id: Mapped[str] = mapped_column(String(36), ForeignKey("chat_session.id", ondelete="CASCADE"), index=True)
    role: Mapped[MessageRole] = mapped_column(
        SQLEnum(MessageRole, values_callable=lambda x: [e.value for e in x], name="messagerole"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text)
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)
    meta_data: Mapped[Dict[str, Any]] = mapped_column("metadata", JSONType, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC), index=True)

    session = relationship("ChatSession", back_populates="messages")

    def __repr__(self):
        return f"<ChatMessage(id='{self.id}', session_id='{self.session_id}', seq={self.sequence_number})>"

    def to_dict(self):
        """Convert model to dict."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "role": self.role.value if isinstance(self.role, MessageRole) else self.role,
            "content": self.content,
            "sequence_number": self.sequence_number,
            "metadata": self.meta_data,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

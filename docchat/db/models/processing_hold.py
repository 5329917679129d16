"""Processing hold: a per-attempt reservation consumed or released exactly once."""

from datetime import datetime, UTC
from enum import Enum
import uuid
from typing import Optional

from sqlalchemy import String, ForeignKey, DateTime, Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docchat.db.base_class import Base


class HoldStatus(str, Enum):
    ACTIVE = "active"
    CONSUMED = "consumed"
    RELEASED = "released"


class ProcessingHold(Base):
    """Reservation taken when processing starts.

    Consumed on success, released on failure. Moving out of ``active`` is the
    only transition, so finalizing twice is a no-op.
    """

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("document.id", ondelete="CASCADE"), index=True
    )
    owner_id: Mapped[str] = mapped_column(String(64), index=True)
    status: Mapped[HoldStatus] = mapped_column(
        SQLEnum(HoldStatus, values_callable=lambda x: [e.value for e in x], name="holdstatus"),
        default=HoldStatus.ACTIVE,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    finalized_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    document = relationship("Document", back_populates="holds")

    def __repr__(self):
        return f"<ProcessingHold(id='{self.id}', document_id='{self.document_id}', status='{self.status}')>"

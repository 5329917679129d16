"""Processing job model: one pipeline stage run for one document."""

from datetime import datetime, UTC
from enum import Enum
import uuid
from typing import Any, Dict, Optional

from sqlalchemy import String, ForeignKey, DateTime, Text, Integer, Index, Enum as SQLEnum, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from docchat.db.base_class import Base, JSONType


class JobStage(str, Enum):
    """Pipeline stages."""
    INGEST = "ingest"
    OCR = "ocr"
    ANNOTATION = "annotation"
    VECTORIZATION = "vectorization"
    EMBED = "embed"
    FINALIZE = "finalize"


class JobStatus(str, Enum):
    """Job states. ``done`` and ``failed`` are terminal."""
    QUEUED = "queued"
    PROCESSING = "processing"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.DONE, JobStatus.FAILED)


ACTIVE_JOB_CONDITION = "status IN ('queued', 'processing')"


class ProcessingJob(Base):
    """A stage of work for a document.

    ``input_data`` and ``output_data`` hold the typed envelopes passed from one
    stage to the next. At most one queued/processing job may exist per
    (document, stage).
    """

    __table_args__ = (
        Index(
            "uq_processing_job_active_stage",
            "document_id",
            "stage",
            unique=True,
            postgresql_where=text(ACTIVE_JOB_CONDITION),
            sqlite_where=text(ACTIVE_JOB_CONDITION),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    document_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("document.id", ondelete="CASCADE"), index=True
    )
    stage: Mapped[JobStage] = mapped_column(
        SQLEnum(JobStage, values_callable=lambda x: [e.value for e in x], name="jobstage")
    )
    status: Mapped[JobStatus] = mapped_column(
        SQLEnum(JobStatus, values_callable=lambda x: [e.value for e in x], name="jobstatus"),
        default=JobStatus.QUEUED,
        index=True,
    )
    input_data: Mapped[Dict[str, Any]] = mapped_column(JSONType, default=dict)
    output_data: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSONType, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    document = relationship("Document", back_populates="jobs")

    def __repr__(self):
        return f"<ProcessingJob(id='{self.id}', stage='{self.stage}', status='{self.status}')>"

    def to_dict(self) -> Dict[str, Any]:
        """Convert model to dict, without the (potentially large) input payload."""
        return {
            "id": self.id,
            "document_id": self.document_id,
            "stage": self.stage.value if isinstance(self.stage, JobStage) else self.stage,
            "status": self.status.value if isinstance(self.status, JobStatus) else self.status,
            "output_data": self.output_data,
            "error_message": self.error_message,
            "attempts": self.attempts,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

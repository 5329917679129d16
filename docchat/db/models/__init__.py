from docchat.db.models.document import Document, DocumentStatus
from docchat.db.models.processing_job import ProcessingJob, JobStage, JobStatus
from docchat.db.models.processing_hold import ProcessingHold, HoldStatus
from docchat.db.models.document_chunk import DocumentChunk
from docchat.db.models.chat_session import ChatSession
from docchat.db.models.chat_message import ChatMessage, MessageRole

# These imports are required to ensure all models are discovered by SQLAlchemy
__all__ = [
    "Document",
    "DocumentStatus",
    "ProcessingJob",
    "JobStage",
    "JobStatus",
    "ProcessingHold",
    "HoldStatus",
    "DocumentChunk",
    "ChatSession",
    "ChatMessage",
    "MessageRole",
]

# Import all models so that Base has them before running Alembic
from docchat.db.base_class import Base  # noqa: F401
from docchat.db.models import (  # noqa: F401
    Document,
    ProcessingJob,
    ProcessingHold,
    DocumentChunk,
    ChatSession,
    ChatMessage,
)

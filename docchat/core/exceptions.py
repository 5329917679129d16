"""Exception hierarchy shared by the API, the services and the worker.

Every error carries a stable ``code`` and a ``retryable`` flag so that a client
can tell "fix and resubmit" (validation) apart from "try again" (transient or
terminal processing failures).
"""

from typing import Any, Dict, Optional


class DocChatError(Exception):
    """Base class for all domain errors."""

    code = "internal_error"
    status_code = 500
    retryable = False

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for an API error body."""
        body = {
            "error": self.message,
            "code": self.code,
            "retryable": self.retryable,
        }
        if self.details:
            body["detail"] = self.details
        return body


# Validation

class ValidationError(DocChatError):
    code = "validation_error"
    status_code = 400


class UnsupportedMediaType(ValidationError):
    code = "unsupported_media_type"
    status_code = 415


class PayloadTooLarge(ValidationError):
    code = "payload_too_large"
    status_code = 413


class FileValidationError(ValidationError):
    code = "file_validation_failed"


class MissingFieldError(ValidationError):
    code = "missing_field"


# Authorization

class AuthenticationError(DocChatError):
    code = "unauthorized"
    status_code = 401


class ForbiddenError(DocChatError):
    code = "forbidden"
    status_code = 403


class NotFoundError(DocChatError):
    code = "not_found"
    status_code = 404


class RateLimitExceeded(DocChatError):
    code = "rate_limited"
    status_code = 429
    retryable = True


# Conflicts

class JobConflictError(DocChatError):
    code = "job_conflict"
    status_code = 409


class InvalidJobTransition(DocChatError):
    code = "invalid_job_transition"
    status_code = 409


class DocumentInUseError(DocChatError):
    code = "document_in_use"
    status_code = 409


class HoldUnavailableError(DocChatError):
    code = "hold_unavailable"
    status_code = 409


# Pipeline

class PipelineError(DocChatError):
    code = "processing_failed"
    retryable = True


class StorageError(PipelineError):
    code = "storage_error"


class OCRExtractionError(PipelineError):
    code = "ocr_failed"


class ChunkingError(PipelineError):
    code = "chunking_failed"


class EmbeddingError(PipelineError):
    code = "embedding_failed"


class EmbeddingOrderError(EmbeddingError):
    code = "embedding_order_mismatch"

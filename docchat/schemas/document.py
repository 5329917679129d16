"""Pydantic schemas for documents and uploads."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class UploadResult(BaseModel):
    """Outcome of an upload: a new document or the existing duplicate."""

    document_id: str = Field(..., description="ID of the new or existing document")
    status: str = Field(..., description="'uploaded' or 'duplicate'")
    duplicate: bool = Field(False, description="True when the content was already stored")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DocumentOut(BaseModel):
    """Document as returned by the API."""

    id: str
    filename: str
    mime_type: str
    size_bytes: int
    status: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class DocumentList(BaseModel):
    documents: List[DocumentOut]
    total: int


class ProcessAccepted(BaseModel):
    """Response to a processing request; work continues in the background."""

    document_id: str
    status: str
    job_id: Optional[str] = None
    message: str = ""


class JobOut(BaseModel):
    id: str
    document_id: str
    stage: str
    status: str
    output_data: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    attempts: int = 0
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None

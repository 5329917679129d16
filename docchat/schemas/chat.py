"""Pydantic schemas for chat sessions and messages."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class ChatSessionCreate(BaseModel):
    document_id: str
    title: Optional[str] = Field(None, max_length=255)


class ChatSessionUpdate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)


class ChatSessionOut(BaseModel):
    id: str
    document_id: str
    title: Optional[str] = None
    message_count: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ChatMessageOut(BaseModel):
    id: str
    session_id: str
    role: str
    content: str
    sequence_number: int
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None


class ChatSessionDetail(ChatSessionOut):
    messages: List[ChatMessageOut] = Field(default_factory=list)


class ChatTurnRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=4000)

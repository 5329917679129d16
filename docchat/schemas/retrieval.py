"""Schemas for retrieval results."""

from typing import Any, Dict, List

from pydantic import BaseModel, Field


class RetrievedChunk(BaseModel):
    id: str
    document_id: str
    content: str
    chunk_order: int
    similarity: float
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @property
    def page_number(self) -> int:
        return int(self.metadata.get("page_number") or 0)

    @property
    def section_title(self) -> str:
        return self.metadata.get("section_title") or "Body"


class RetrievalResult(BaseModel):
    """Chunks plus the tier that produced them (``none`` when every tier came up empty)."""

    chunks: List[RetrievedChunk] = Field(default_factory=list)
    tier: str = "none"
    expanded_query: str = ""
    category: str = "general"

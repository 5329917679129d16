"""Typed payloads handed between pipeline stages.

Each ProcessingJob stores one of these in ``input_data``/``output_data``; a stage
reads its input envelope, never shared state.
"""

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class Page(BaseModel):
    """Text of one page. ``index`` is zero-based, as returned by OCR."""

    index: int
    text: str = ""

    @property
    def page_number(self) -> int:
        return self.index + 1


class BBoxAnnotation(BaseModel):
    """Visual region detected on a page (table, chart, signature...)."""

    image_type: str = Field("unknown", description="table, chart, signature, logo, diagram, photo or other")
    description: str = Field("", description="What the region shows")
    extracted_text: Optional[str] = Field(None, description="Text readable inside the region")
    relevance: Optional[str] = Field(None, description="Why the region matters for the document")
    page_index: Optional[int] = None
    image_id: Optional[str] = None


class DocumentAnnotation(BaseModel):
    """Structured summary produced by the annotation pass."""

    document_type: Optional[str] = Field(None, description="Kind of document, e.g. lease, NDA, invoice")
    category: Optional[str] = Field(None, description="Business domain of the document")
    key_sections: List[str] = Field(default_factory=list, description="Titles of the main sections")
    compliance_indicators: List[str] = Field(default_factory=list, description="Regulatory or compliance references")
    payment_terms: List[str] = Field(default_factory=list, description="Amounts, schedules and payment conditions")
    effective_dates: List[str] = Field(default_factory=list, description="Effective, start, end or renewal dates")
    parties: List[str] = Field(default_factory=list, description="Names of the parties involved")


class OCRResult(BaseModel):
    pages: List[Page]
    document_annotation: Dict[str, Any] = Field(default_factory=dict)
    bbox_annotations: List[BBoxAnnotation] = Field(default_factory=list)
    attempts: int = 1
    model: str = ""


class OcrJobInput(BaseModel):
    storage_path: str
    mime_type: str
    filename: str


class OcrJobOutput(BaseModel):
    page_count: int
    embed_job_id: str
    annotation_pages: int = 0
    bbox_count: int = 0
    attempts: int = 1


class EmbedJobInput(BaseModel):
    pages: List[Page]
    source_stage: Literal["ocr"] = "ocr"
    filename: str = ""
    document_category: Optional[str] = None


class EmbedJobOutput(BaseModel):
    chunk_count: int
    elapsed_ms: int
    model: str


class ChunkMetadata(BaseModel):
    page_number: int
    section_title: str
    detected_category: str = "general"
    chunk_type: Literal["definition", "clause", "general", "header"] = "general"
    citation_key: str
    content_hash: str
    token_count: int = 0


class ChunkDraft(BaseModel):
    """A chunk produced by the chunker, before it has an embedding."""

    chunk_order: int
    content: str
    metadata: ChunkMetadata

"""Ingestion services: upload validation, blob storage and chunking."""

from docchat.services.ingestion.chunking import SemanticChunker
from docchat.services.ingestion.ingestor import DocumentIngestor
from docchat.services.ingestion.storage import ObjectStorage

__all__ = [
    "DocumentIngestor",
    "ObjectStorage",
    "SemanticChunker",
]

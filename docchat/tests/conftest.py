"""Test fixtures for the application."""

import hashlib
import uuid
from typing import Any, Dict, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from docchat.core.config import settings
from docchat.db.base import Base
from docchat.db.models.document import Document, DocumentStatus
from docchat.db.models.document_chunk import DocumentChunk
from docchat.services.ingestion.storage import ObjectStorage


@pytest_asyncio.fixture(scope="function")
async def engine():
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        settings.TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Session factory bound to the test engine."""
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory):
    """Create a clean database session for a test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def storage(tmp_path):
    """Object storage rooted in a temporary directory."""
    return ObjectStorage(root=str(tmp_path / "data"))


@pytest.fixture
def owner_id():
    return "user-123"


@pytest.fixture
def make_document(db_session):
    """Factory inserting a document row directly."""

    async def _make(
        owner_id: str = "user-123",
        filename: str = "contract.pdf",
        status: DocumentStatus = DocumentStatus.UPLOADED,
        meta_data: Optional[Dict[str, Any]] = None,
    ) -> Document:
        document_id = str(uuid.uuid4())
        document = Document(
            id=document_id,
            owner_id=owner_id,
            content_hash=hashlib.sha256(document_id.encode()).hexdigest(),
            filename=filename,
            mime_type="application/pdf",
            size_bytes=1024,
            storage_path=f"documents/{owner_id}/{document_id}/{filename}",
            status=status,
            meta_data=meta_data or {},
        )
        db_session.add(document)
        await db_session.commit()
        return document

    return _make


@pytest.fixture
def add_chunk(db_session):
    """Factory inserting a stored chunk for a document."""

    async def _add(document_id: str, chunk_order: int, content: str, page_number: int = 1,
                   section_title: str = "Body") -> DocumentChunk:
        chunk = DocumentChunk(
            document_id=document_id,
            chunk_order=chunk_order,
            content=content,
            embedding=[0.0] * settings.EMBEDDING_DIM,
            meta_data={
                "page_number": page_number,
                "section_title": section_title,
                "citation_key": f"{page_number}_{section_title.lower()}",
            },
        )
        db_session.add(chunk)
        await db_session.commit()
        return chunk

    return _add

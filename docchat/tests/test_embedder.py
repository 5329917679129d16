import random
from types import SimpleNamespace
from typing import List

import pytest
from unittest.mock import AsyncMock, MagicMock
from sqlalchemy import func, select

from docchat.core.exceptions import EmbeddingError, EmbeddingOrderError
from docchat.db.models.document_chunk import DocumentChunk
from docchat.schemas.pipeline import ChunkDraft, ChunkMetadata
from docchat.services.embedding.embedder import Embedder

DIM = 8


def _response(vectors: List[List[float]], indexes: List[int] = None):
    indexes = indexes if indexes is not None else list(range(len(vectors)))
    return SimpleNamespace(data=[
        SimpleNamespace(index=i, embedding=vectors[i]) for i in indexes
    ])


def _vector(i: int) -> List[float]:
    return [float(i)] + [0.0] * (DIM - 1)


def _drafts(count: int) -> List[ChunkDraft]:
    return [
        ChunkDraft(
            chunk_order=i + 1,
            content=f"chunk {i + 1}",
            metadata=ChunkMetadata(
                page_number=1,
                section_title="Body",
                detected_category="general",
                chunk_type="general",
                citation_key="1_Body",
                content_hash=str(i),
                token_count=2,
            ),
        )
        for i in range(count)
    ]


@pytest.fixture
def mock_openai():
    """Mock AsyncOpenAI client echoing one vector per input."""
    client = MagicMock()

    async def create(model, input):
        return _response([_vector(i) for i in range(len(input))])

    client.embeddings.create = AsyncMock(side_effect=create)
    return client


@pytest.mark.asyncio
async def test_embed_texts_pairs_by_position(db_session, mock_openai):
    embedder = Embedder(db_session, client=mock_openai, model="test-embed", dimensions=DIM)

    vectors = await embedder.embed_texts(["a", "b", "c"])

    assert [v[0] for v in vectors] == [0.0, 1.0, 2.0]
    mock_openai.embeddings.create.assert_awaited_once_with(model="test-embed", input=["a", "b", "c"])


@pytest.mark.asyncio
async def test_shuffled_response_is_detected(db_session):
    """A provider returning vectors out of order must not be paired silently."""
    vectors = [_vector(i) for i in range(5)]
    shuffled = list(range(5))
    while shuffled == sorted(shuffled):
        random.shuffle(shuffled)
    client = MagicMock()
    client.embeddings.create = AsyncMock(return_value=_response(vectors, shuffled))
    embedder = Embedder(db_session, client=client, dimensions=DIM)

    with pytest.raises(EmbeddingOrderError):
        await embedder.embed_texts([f"t{i}" for i in range(5)])


@pytest.mark.asyncio
async def test_count_and_dimension_are_checked(db_session):
    client = MagicMock()
    client.embeddings.create = AsyncMock(return_value=_response([_vector(0)]))
    embedder = Embedder(db_session, client=client, dimensions=DIM)
    with pytest.raises(EmbeddingError):
        await embedder.embed_texts(["a", "b"])

    client.embeddings.create = AsyncMock(return_value=_response([[0.1, 0.2]]))
    with pytest.raises(EmbeddingError):
        await embedder.embed_texts(["a"])


@pytest.mark.asyncio
async def test_provider_failure_surfaces_message(db_session):
    client = MagicMock()
    client.embeddings.create = AsyncMock(side_effect=RuntimeError("rate limited by provider"))
    embedder = Embedder(db_session, client=client, dimensions=DIM)

    with pytest.raises(EmbeddingError) as exc_info:
        await embedder.embed_texts(["a"])
    assert "rate limited by provider" in exc_info.value.message


@pytest.mark.asyncio
async def test_store_commits_in_batches_of_100(db_session, make_document, mock_openai):
    document = await make_document()
    embedder = Embedder(db_session, client=mock_openai, dimensions=DIM)
    commit_spy = AsyncMock(wraps=db_session.commit)
    db_session.commit = commit_spy

    count = await embedder.embed_and_store(document.id, _drafts(250))

    assert count == 250
    assert commit_spy.await_count == 3
    stored = await db_session.scalar(
        select(func.count()).select_from(DocumentChunk).where(DocumentChunk.document_id == document.id)
    )
    assert stored == 250

    chunk = (await db_session.execute(
        select(DocumentChunk).where(DocumentChunk.document_id == document.id, DocumentChunk.chunk_order == 42)
    )).scalar_one()
    assert chunk.content == "chunk 42"
    assert chunk.embedding[0] == 41.0
    assert chunk.meta_data["citation_key"] == "1_Body"


@pytest.mark.asyncio
async def test_store_failure_removes_partial_chunks(db_session, make_document, mock_openai):
    document = await make_document()
    embedder = Embedder(db_session, client=mock_openai, dimensions=DIM, insert_batch_size=2)
    drafts = _drafts(4)
    # duplicate chunk_order in the second batch violates the unique constraint
    drafts[3] = drafts[3].model_copy(update={"chunk_order": 3})

    with pytest.raises(EmbeddingError):
        await embedder.embed_and_store(document.id, drafts)

    stored = await db_session.scalar(
        select(func.count()).select_from(DocumentChunk).where(DocumentChunk.document_id == document.id)
    )
    assert stored == 0

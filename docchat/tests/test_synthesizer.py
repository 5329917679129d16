from typing import List, Optional

import pytest
import pytest_asyncio
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage, SystemMessage
from sqlalchemy import select

from docchat.db.models.chat_message import ChatMessage, MessageRole
from docchat.schemas.retrieval import RetrievalResult, RetrievedChunk
from docchat.services.chat.synthesizer import AnswerSynthesizer
from docchat.services.conversation.service import ChatSessionService


class FakeStreamingLLM:
    """Streams the given tokens, optionally raising after ``fail_after`` of them."""

    def __init__(self, tokens: List[str], fail_after: Optional[int] = None):
        self.tokens = tokens
        self.fail_after = fail_after
        self.calls = []

    async def astream(self, messages):
        self.calls.append(messages)
        for i, token in enumerate(self.tokens):
            if self.fail_after is not None and i == self.fail_after:
                raise RuntimeError("model connection reset")
            yield AIMessageChunk(content=token)


@pytest.fixture
def retrieval():
    return RetrievalResult(
        chunks=[RetrievedChunk(
            id="chunk-1",
            document_id="doc-1",
            content="No pets are allowed.",
            chunk_order=4,
            similarity=0.3,
            metadata={"page_number": 3, "section_title": "Pets", "citation_key": "3_Pets"},
        )],
        tier="keyword",
        expanded_query="pet rules",
        category="realestate",
    )


@pytest_asyncio.fixture
async def chat_session(db_session, make_document):
    document = await make_document(filename="lease.pdf")
    service = ChatSessionService(db_session)
    session = await service.create_session(document.owner_id, document.id)
    await service.append_message(session.id, MessageRole.USER, "Are pets allowed?")
    return session.id


async def _assistant_messages(session_factory, session_id):
    async with session_factory() as db:
        result = await db.execute(
            select(ChatMessage).where(
                ChatMessage.session_id == session_id,
                ChatMessage.role == MessageRole.ASSISTANT,
            )
        )
        return result.scalars().all()


@pytest.mark.asyncio
async def test_tokens_are_forwarded_and_answer_stored_once(session_factory, chat_session, retrieval):
    tokens = ["### From your document\n", "No pets ", 'are allowed [p3, "Pets"].']
    synthesizer = AnswerSynthesizer(llm=FakeStreamingLLM(tokens), session_factory=session_factory)

    received = [t async for t in synthesizer.stream(chat_session, "lease.pdf", retrieval, [], "Are pets allowed?")]

    assert received == tokens
    stored = await _assistant_messages(session_factory, chat_session)
    assert len(stored) == 1
    assert stored[0].content == "".join(tokens)
    assert stored[0].sequence_number == 2
    assert stored[0].meta_data == {"tier": "keyword", "chunk_ids": ["chunk-1"], "citation_keys": ["3_Pets"]}


@pytest.mark.asyncio
async def test_stream_error_stores_nothing(session_factory, chat_session, retrieval):
    llm = FakeStreamingLLM(["partial ", "answer ", "never"], fail_after=2)
    synthesizer = AnswerSynthesizer(llm=llm, session_factory=session_factory)
    received = []

    with pytest.raises(RuntimeError):
        async for token in synthesizer.stream(chat_session, "lease.pdf", retrieval, [], "Are pets allowed?"):
            received.append(token)

    assert received == ["partial ", "answer "]
    assert await _assistant_messages(session_factory, chat_session) == []


@pytest.mark.asyncio
async def test_empty_answer_stores_nothing(session_factory, chat_session, retrieval):
    synthesizer = AnswerSynthesizer(llm=FakeStreamingLLM(["", "  "]), session_factory=session_factory)

    received = [t async for t in synthesizer.stream(chat_session, "lease.pdf", retrieval, [], "Hi")]

    assert received == ["  "]
    assert await _assistant_messages(session_factory, chat_session) == []


@pytest.mark.asyncio
async def test_cancelled_stream_stores_nothing(session_factory, chat_session, retrieval):
    synthesizer = AnswerSynthesizer(llm=FakeStreamingLLM(["a", "b", "c"]), session_factory=session_factory)

    stream = synthesizer.stream(chat_session, "lease.pdf", retrieval, [], "Are pets allowed?")
    assert await stream.__anext__() == "a"
    await stream.aclose()

    assert await _assistant_messages(session_factory, chat_session) == []


def test_build_messages_orders_system_history_question(retrieval):
    history = [
        {"role": "user", "content": "Hello"},
        {"role": "assistant", "content": "Hi, ask me about the lease."},
    ]

    messages = AnswerSynthesizer.build_messages("lease.pdf", retrieval, history, "Are pets allowed?")

    assert isinstance(messages[0], SystemMessage)
    assert "Real Estate" in messages[0].content
    assert isinstance(messages[1], HumanMessage) and messages[1].content == "Hello"
    assert isinstance(messages[2], AIMessage)
    assert isinstance(messages[3], HumanMessage)
    assert '[#1] p3 :: "Pets"\nNo pets are allowed.' in messages[3].content
    assert messages[3].content.endswith("Question: Are pets allowed?")

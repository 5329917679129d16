"""Streams a two-lane answer and stores it once the stream has finished."""

import logging
from typing import AsyncIterator, Callable, Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from docchat.core.config import settings
from docchat.db.models.chat_message import MessageRole
from docchat.db.session import AsyncSessionLocal
from docchat.schemas.retrieval import RetrievalResult
from docchat.services.chat.prompts import build_system_prompt, build_user_prompt, context_citation_keys
from docchat.services.conversation.service import ChatSessionService

logger = logging.getLogger(__name__)


class AnswerSynthesizer:
    """Builds the prompt for a chat turn and streams the model's answer.

    The assistant message is written here, by the server, after the last token
    has been forwarded. An empty answer, a provider error or a cancelled stream
    stores nothing.
    """

    def __init__(self, llm: Optional[ChatOpenAI] = None, session_factory: Callable = AsyncSessionLocal):
        self.llm = llm or ChatOpenAI(
            api_key=settings.OPENAI_API_KEY,
            model=settings.CHAT_MODEL,
            temperature=settings.OPENAI_TEMPERATURE,
            max_tokens=settings.CHAT_MAX_TOKENS,
            streaming=True,
        )
        self.session_factory = session_factory

    @staticmethod
    def build_messages(
        filename: str,
        retrieval: RetrievalResult,
        history: Sequence[Dict[str, str]],
        question: str,
    ) -> List[BaseMessage]:
        """System prompt, prior turns, then the context-bearing question."""
        messages: List[BaseMessage] = [SystemMessage(content=build_system_prompt(filename, retrieval.category))]
        for turn in history:
            if turn["role"] == MessageRole.USER.value:
                messages.append(HumanMessage(content=turn["content"]))
            else:
                messages.append(AIMessage(content=turn["content"]))
        messages.append(HumanMessage(content=build_user_prompt(question, retrieval.chunks)))
        return messages

    async def stream(
        self,
        session_id: str,
        filename: str,
        retrieval: RetrievalResult,
        history: Sequence[Dict[str, str]],
        question: str,
    ) -> AsyncIterator[str]:
        """Yield answer tokens as the model produces them.

        Args:
            session_id: Chat session that receives the assistant message
            filename: Document filename shown to the model
            retrieval: Chunks, tier and category from the retriever
            history: Prior turns as ``{"role", "content"}`` dicts, oldest first
            question: The user's latest message
        """
        messages = self.build_messages(filename, retrieval, history, question)
        parts: List[str] = []

        try:
            async for chunk in self.llm.astream(messages):
                token = chunk.content if isinstance(chunk.content, str) else ""
                if token:
                    parts.append(token)
                    yield token
        except Exception as e:
            logger.error(f"Answer stream for session {session_id} failed: {str(e)}")
            raise

        answer = "".join(parts)
        if not answer.strip():
            logger.warning(f"Model returned an empty answer for session {session_id}; nothing stored")
            return

        await self._store(session_id, answer, retrieval)

    async def _store(self, session_id: str, answer: str, retrieval: RetrievalResult) -> None:
        meta_data = {
            "tier": retrieval.tier,
            "chunk_ids": [c.id for c in retrieval.chunks],
            "citation_keys": context_citation_keys(retrieval.chunks),
        }
        async with self.session_factory() as db:
            message = await ChatSessionService(db).append_message(
                session_id, MessageRole.ASSISTANT, answer, meta_data=meta_data
            )
        logger.info(f"Stored assistant message #{message.sequence_number} for session {session_id}")
